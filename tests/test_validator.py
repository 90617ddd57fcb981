"""Tests for count parsing, result models and the failure Watchdog.

Parsing is where every extractor converges, so it gets both
parametrized boundary cases and hypothesis fuzzing.
"""

from datetime import UTC, datetime

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st
from pydantic import ValidationError

from config.settings import GlobalConfig, SourceId
from usercount.exceptions import FetchError, NoNumberFoundError, NumericParseError
from usercount.validator import (
    MAX_COUNT,
    AggregateSnapshot,
    FailureTracker,
    SourceResult,
    parse_count,
)


class TestParseCount:
    """Test suite for digit extraction."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("1,234,567 users", 1234567),
            ("0 users", 0),
            ("10,000+ users", 10000),
            ("  52 users  ", 52),
            ("Users: 9,999", 9999),
            ("1234567", 1234567),
            ("2,000 users, 4.5 stars", 2000),
            ("700 users.", 700),
        ],
    )
    def test_valid_counts(self, text: str, expected: int) -> None:
        assert parse_count(text) == expected

    @pytest.mark.parametrize("text", ["", "No users yet", "users", "   "])
    def test_text_without_digits_raises_no_number_found(self, text: str) -> None:
        with pytest.raises(NoNumberFoundError) as exc_info:
            parse_count(text)
        assert exc_info.value.kind == "NoNumberFound"

    @pytest.mark.parametrize("text", ["1,23 users", "12,3456 users", "1,,234 users"])
    def test_misplaced_separator_raises_numeric_parse_error(self, text: str) -> None:
        with pytest.raises(NumericParseError) as exc_info:
            parse_count(text)
        assert exc_info.value.kind == "NumericParseError"

    def test_overflow_raises_numeric_parse_error(self) -> None:
        with pytest.raises(NumericParseError):
            parse_count(f"{MAX_COUNT + 1} users")

    def test_maximum_value_accepted(self) -> None:
        assert parse_count(f"{MAX_COUNT:,} users") == MAX_COUNT

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("00000000000000000000 users", 0),
            ("000000000000000000042 users", 42),
            (f"000{MAX_COUNT} users", MAX_COUNT),
        ],
    )
    def test_leading_zeros_do_not_trigger_overflow(self, text: str, expected: int) -> None:
        assert parse_count(text) == expected

    @given(value=st.integers(min_value=0, max_value=MAX_COUNT))
    def test_grouped_rendering_parses_back(self, value: int) -> None:
        """Property: any count rendered with thousands separators parses back."""
        assert parse_count(f"{value:,} users") == value

    @given(text=st.text(alphabet=st.characters(blacklist_categories=("Cs",)), max_size=60))
    def test_parser_never_crashes(self, text: str) -> None:
        """Property: arbitrary text yields a count or a typed parse error."""
        try:
            assert parse_count(text) >= 0
        except (NoNumberFoundError, NumericParseError):
            pass


class TestSourceResult:
    """Test suite for SourceResult invariants."""

    def test_success_carries_value_only(self) -> None:
        result = SourceResult.success(SourceId.CHROME, 2000)
        assert result.succeeded
        assert result.value == 2000
        assert result.error is None

    def test_failure_keeps_error_kind(self) -> None:
        exc = FetchError(url="https://x.example.com", reason="HTTP 500", status_code=500)
        result = SourceResult.failure(SourceId.FIREFOX, exc)

        assert not result.succeeded
        assert result.value is None
        assert result.error.kind == "FetchError"
        assert "HTTP 500" in result.error.message

    def test_unexpected_exception_recorded_as_unexpected_error(self) -> None:
        result = SourceResult.failure(SourceId.EDGE, KeyError("boom"))
        assert result.error.kind == "UnexpectedError"
        assert "KeyError" in result.error.message

    def test_value_and_error_together_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SourceResult(
                source_id=SourceId.CHROME,
                value=1,
                error={"kind": "FetchError", "message": "x"},
            )

    def test_neither_value_nor_error_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SourceResult(source_id=SourceId.CHROME)

    def test_negative_value_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SourceResult(source_id=SourceId.CHROME, value=-1)

    def test_result_is_immutable(self) -> None:
        result = SourceResult.success(SourceId.CHROME, 5)
        with pytest.raises(ValidationError):
            result.value = 6


class TestAggregateSnapshot:
    """Test suite for snapshot construction."""

    def test_total_excludes_failed_sources(self) -> None:
        results = [
            SourceResult.success(SourceId.CHROME, 2000),
            SourceResult.failure(SourceId.FIREFOX, FetchError(url="u", reason="down")),
            SourceResult.success(SourceId.EDGE, 500),
        ]
        snapshot = AggregateSnapshot.from_results(results)

        assert snapshot.total_count == 2500
        assert [r.source_id for r in snapshot.source_results] == [
            SourceId.CHROME,
            SourceId.FIREFOX,
            SourceId.EDGE,
        ]
        assert snapshot.computed_at.tzinfo is not None

    def test_all_failed_cannot_form_snapshot(self) -> None:
        results = [
            SourceResult.failure(s, FetchError(url="u", reason="down")) for s in SourceId
        ]
        with pytest.raises(ValidationError):
            AggregateSnapshot.from_results(results)

    def test_mismatched_total_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AggregateSnapshot(
                total_count=10,
                computed_at=datetime.now(UTC),
                source_results=(SourceResult.success(SourceId.CHROME, 9),),
            )

    @given(values=st.lists(st.integers(min_value=0, max_value=10**9), min_size=1, max_size=3))
    def test_total_equals_sum_of_values(self, values: list[int]) -> None:
        """Property: total_count == sum of present values."""
        sources = list(SourceId)
        results = [SourceResult.success(sources[i], v) for i, v in enumerate(values)]
        assert AggregateSnapshot.from_results(results).total_count == sum(values)


class TestFailureTracker:
    """Test suite for the consecutive-failure Watchdog."""

    @staticmethod
    def _failed(source_id: SourceId) -> SourceResult:
        return SourceResult.failure(source_id, FetchError(url="u", reason="down"))

    def test_initial_state_is_clean(self, mock_config: GlobalConfig) -> None:
        tracker = FailureTracker(mock_config)
        assert tracker.streak(SourceId.CHROME) == 0
        assert tracker.get_summary()["total_cycles"] == 0

    def test_streak_counts_consecutive_failures(self, mock_config: GlobalConfig) -> None:
        tracker = FailureTracker(mock_config)
        tracker.record_cycle([self._failed(SourceId.FIREFOX)])
        tracker.record_cycle([self._failed(SourceId.FIREFOX)])
        tracker.record_cycle([self._failed(SourceId.FIREFOX)])

        assert tracker.streak(SourceId.FIREFOX) == 3
        assert tracker.get_summary()["last_errors"] == {"firefox": "FetchError"}

    def test_success_resets_streak(self, mock_config: GlobalConfig) -> None:
        tracker = FailureTracker(mock_config)
        tracker.record_cycle([self._failed(SourceId.EDGE)])
        tracker.record_cycle([SourceResult.success(SourceId.EDGE, 1)])

        assert tracker.streak(SourceId.EDGE) == 0
        assert not tracker.is_alerting(SourceId.EDGE)

    def test_alert_raised_once_at_threshold(self, mock_config: GlobalConfig, mocker) -> None:
        """Threshold is 2 in the test config; a third failure must not re-alert."""
        tracker = FailureTracker(mock_config)
        mock_log = mocker.patch("usercount.validator.log")

        for _ in range(3):
            tracker.record_cycle([self._failed(SourceId.CHROME)])

        assert tracker.is_alerting(SourceId.CHROME)
        mock_log.critical.assert_called_once()
        assert mock_log.critical.call_args.kwargs["source"] == "chrome"

    @settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(outcomes=st.lists(st.booleans(), max_size=20))
    def test_streak_matches_trailing_failures(
        self, mock_config: GlobalConfig, outcomes: list[bool]
    ) -> None:
        """Property: streak equals the number of trailing failed cycles."""
        tracker = FailureTracker(mock_config)
        for ok in outcomes:
            result = SourceResult.success(SourceId.CHROME, 1) if ok else self._failed(SourceId.CHROME)
            tracker.record_cycle([result])

        trailing = 0
        for ok in reversed(outcomes):
            if ok:
                break
            trailing += 1
        assert tracker.streak(SourceId.CHROME) == trailing
