"""Result models, count parsing and source health monitoring.

This module implements:
- Pydantic models for per-source results and aggregate snapshots
- ``parse_count``, the digit-extraction rule shared by every extractor
- FailureTracker (Watchdog) for spotting sources that keep failing

A storefront that changes its markup fails the same way as one that is
briefly unreachable: it contributes nothing to the current cycle. The
Watchdog is what tells the two apart over time, by escalating a source
once it has failed several cycles in a row.
"""

import re
from datetime import UTC, datetime
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field, model_validator

from config.settings import GlobalConfig, SourceId, get_config
from usercount.exceptions import (
    NoNumberFoundError,
    NumericParseError,
    UserCountError,
)
from usercount.logger import get_logger

log = get_logger(__name__)

# Largest count we accept; matches a signed 64-bit integer.
MAX_COUNT = 2**63 - 1

_COUNT_RUN = re.compile(r"[0-9][0-9,]*")
_GROUPED = re.compile(r"[0-9]{1,3}(?:,[0-9]{3})+")


def parse_count(text: str) -> int:
    """Extract the first number from storefront text.

    Handles the formats the storefronts render:
    - "1,234,567 users" -> 1234567
    - "10,000+ users" -> 10000
    - "0 users" -> 0

    Args:
        text: Text content of the selected node.

    Returns:
        The parsed non-negative count.

    Raises:
        NoNumberFoundError: If the text contains no digits.
        NumericParseError: If the digit run is malformed or too large.
    """
    match = _COUNT_RUN.search(text)
    if match is None:
        raise NoNumberFoundError(text)

    # A trailing comma is sentence punctuation, not a separator
    raw = match.group().rstrip(",")

    if "," in raw and _GROUPED.fullmatch(raw) is None:
        raise NumericParseError(raw, "misplaced thousands separator")

    # Leading zeros do not count towards the length guard
    digits = raw.replace(",", "").lstrip("0") or "0"
    if len(digits) > len(str(MAX_COUNT)) or int(digits) > MAX_COUNT:
        raise NumericParseError(raw, "value exceeds 64-bit range")

    return int(digits)


class ExtractionFailure(BaseModel):
    """Why a source produced no value.

    Attributes:
        kind: Failure category (FetchError, ParseError, TimeoutError, ...).
        message: Human-readable detail.
    """

    model_config = ConfigDict(frozen=True)

    kind: str = Field(..., min_length=1)
    message: str


class SourceResult(BaseModel):
    """Outcome of one extraction attempt for one source.

    Exactly one of ``value`` and ``error`` is set.
    """

    model_config = ConfigDict(frozen=True)

    source_id: SourceId
    value: int | None = Field(default=None, ge=0, le=MAX_COUNT)
    error: ExtractionFailure | None = None

    @model_validator(mode="after")
    def validate_outcome(self) -> "SourceResult":
        if (self.value is None) == (self.error is None):
            raise ValueError("SourceResult needs exactly one of value or error")
        return self

    @property
    def succeeded(self) -> bool:
        return self.value is not None

    @classmethod
    def success(cls, source_id: SourceId, value: int) -> "SourceResult":
        return cls(source_id=source_id, value=value)

    @classmethod
    def failure(cls, source_id: SourceId, exc: Exception) -> "SourceResult":
        """Capture an exception as result data.

        Application errors keep their ``kind``; anything else is recorded
        as ``UnexpectedError`` with its type name in the message.
        """
        if isinstance(exc, UserCountError):
            error = ExtractionFailure(kind=exc.kind, message=exc.message)
        else:
            error = ExtractionFailure(
                kind="UnexpectedError",
                message=f"{type(exc).__name__}: {exc}",
            )
        return cls(source_id=source_id, error=error)


class AggregateSnapshot(BaseModel):
    """Immutable result of a cycle in which at least one source succeeded.

    Attributes:
        total_count: Sum of every successful source value.
        computed_at: UTC time the cycle completed.
        source_results: Per-source outcomes in configured order.
    """

    model_config = ConfigDict(frozen=True)

    total_count: int = Field(..., ge=0)
    computed_at: datetime
    source_results: tuple[SourceResult, ...]

    @model_validator(mode="after")
    def validate_total(self) -> "AggregateSnapshot":
        values = [r.value for r in self.source_results if r.value is not None]
        if not values:
            raise ValueError("Snapshot requires at least one successful source")
        if self.total_count != sum(values):
            raise ValueError(
                f"total_count {self.total_count} does not match source sum {sum(values)}"
            )
        return self

    @classmethod
    def from_results(
        cls,
        results: Iterable[SourceResult],
        computed_at: datetime | None = None,
    ) -> "AggregateSnapshot":
        """Sum the successful results into a new snapshot.

        Raises:
            ValidationError: If no result carries a value.
        """
        results = tuple(results)
        return cls(
            total_count=sum(r.value for r in results if r.value is not None),
            computed_at=computed_at or datetime.now(UTC),
            source_results=results,
        )


class FailureTracker:
    """Watchdog counting consecutive failed cycles per source.

    When a source reaches the configured threshold a CRITICAL alert is
    logged once; the streak and the alert reset when the source next
    succeeds. The tracker only reports. It has no say in whether a
    snapshot is published.

    Attributes:
        config: GlobalConfig with threshold settings.
        _streaks: Consecutive failure count per source.
        _total_cycles: Cycles recorded so far.
    """

    def __init__(self, config: GlobalConfig | None = None) -> None:
        self.config = config or get_config()
        self._streaks: dict[SourceId, int] = {}
        self._last_errors: dict[SourceId, str] = {}
        self._total_cycles: int = 0

    def record_cycle(self, results: Iterable[SourceResult]) -> None:
        """Update streaks from one cycle's results."""
        self._total_cycles += 1
        for result in results:
            if result.succeeded:
                self._record_success(result.source_id)
            else:
                self._record_failure(result)

    def _record_success(self, source_id: SourceId) -> None:
        threshold = self.config.failure_alert_threshold
        if self._streaks.get(source_id, 0) >= threshold:
            log.info(
                "Source recovered after repeated failures",
                source=source_id.value,
                failed_cycles=self._streaks[source_id],
            )
        self._streaks[source_id] = 0
        self._last_errors.pop(source_id, None)

    def _record_failure(self, result: SourceResult) -> None:
        streak = self._streaks.get(result.source_id, 0) + 1
        self._streaks[result.source_id] = streak
        self._last_errors[result.source_id] = result.error.kind

        if streak == self.config.failure_alert_threshold:
            log.critical(
                "WATCHDOG ALERT: Source failing repeatedly - selector drift suspected",
                source=result.source_id.value,
                consecutive_failures=streak,
                last_error=result.error.kind,
                detail=result.error.message,
            )

    def streak(self, source_id: SourceId) -> int:
        return self._streaks.get(source_id, 0)

    def is_alerting(self, source_id: SourceId) -> bool:
        return self.streak(source_id) >= self.config.failure_alert_threshold

    def get_summary(self) -> dict[str, Any]:
        """Generate summary statistics for logging.

        Returns:
            Dictionary with per-source streaks and the alert threshold.
        """
        return {
            "total_cycles": self._total_cycles,
            "failure_streaks": {s.value: n for s, n in self._streaks.items()},
            "last_errors": {s.value: k for s, k in self._last_errors.items()},
            "threshold": self.config.failure_alert_threshold,
        }
