"""Aggregation cycle: run every extractor, sum what succeeded, publish.

Publishing policy:
    If at least one source produced a value, the sum of the values becomes
    the new snapshot. If every source failed, the cache is left alone and
    the previous snapshot (if any) keeps being served. A stale number is
    preferred over no number.

Isolation:
    Every extractor runs in its own task. An exception escaping one of
    them, or a cycle timeout, turns into a failed SourceResult for that
    source only; finished siblings keep their results.
"""

import asyncio
from typing import Sequence

from config.settings import GlobalConfig, get_config
from usercount.cache import SnapshotCache
from usercount.exceptions import ExtractionTimeoutError
from usercount.extractor import BaseExtractor
from usercount.logger import get_logger
from usercount.validator import AggregateSnapshot, FailureTracker, SourceResult

log = get_logger(__name__)


class Aggregator:
    """Runs aggregation cycles and owns write access to the cache.

    Attributes:
        cache: Snapshot store this aggregator publishes into.
        config: GlobalConfig instance for runtime configuration.
        tracker: Watchdog fed with every cycle's results.
    """

    def __init__(
        self,
        cache: SnapshotCache,
        config: GlobalConfig | None = None,
        tracker: FailureTracker | None = None,
    ) -> None:
        self.cache = cache
        self.config = config or get_config()
        self.tracker = tracker or FailureTracker(self.config)

    async def _run_extractor(
        self,
        extractor: BaseExtractor,
        session_slot: asyncio.Semaphore,
    ) -> SourceResult:
        if extractor.heavyweight:
            async with session_slot:
                return await extractor.extract()
        return await extractor.extract()

    @staticmethod
    def _consume_outcome(task: asyncio.Task) -> None:
        if not task.cancelled():
            task.exception()

    async def _cancel_all(self, tasks) -> set[asyncio.Task]:
        """Cancel ``tasks`` and give their teardown a bounded grace period.

        A cancellation of this coroutine does not cut the grace period
        short; it is re-raised once the extractors have unwound.

        Returns:
            Tasks still running when the grace period ran out.
        """
        for task in tasks:
            task.cancel()
            task.add_done_callback(self._consume_outcome)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.teardown_timeout_sec
        stragglers = set(tasks)
        interrupted = False
        while stragglers:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            try:
                _, stragglers = await asyncio.wait(stragglers, timeout=remaining)
            except asyncio.CancelledError:
                interrupted = True

        if stragglers:
            log.warning(
                "Extractors still tearing down after grace period",
                tasks=sorted(task.get_name() for task in stragglers),
                grace_sec=self.config.teardown_timeout_sec,
            )

        if interrupted:
            raise asyncio.CancelledError()
        return stragglers

    async def collect(self, extractors: Sequence[BaseExtractor]) -> list[SourceResult]:
        """Run all extractors concurrently under the cycle timeout.

        Args:
            extractors: Extractors in the order results should be reported.

        Returns:
            One SourceResult per extractor, in input order.
        """
        # At most one browser session per cycle
        session_slot = asyncio.Semaphore(1)
        tasks = [
            asyncio.create_task(
                self._run_extractor(extractor, session_slot),
                name=f"extract-{extractor.source_id.value}",
            )
            for extractor in extractors
        ]
        if not tasks:
            return []

        timeout = self.config.cycle_timeout_sec
        try:
            _, pending = await asyncio.wait(tasks, timeout=timeout)
        except asyncio.CancelledError:
            await self._cancel_all(tasks)
            raise

        if pending:
            await self._cancel_all(pending)

        results: list[SourceResult] = []
        for extractor, task in zip(extractors, tasks):
            if task in pending or task.cancelled():
                result = SourceResult.failure(
                    extractor.source_id,
                    ExtractionTimeoutError(
                        url=extractor.source.url, timeout_ms=timeout * 1000
                    ),
                )
            elif task.exception() is not None:
                result = SourceResult.failure(extractor.source_id, task.exception())
            else:
                result = task.result()
            results.append(result)

        return results

    def _report_failures(self, results: Sequence[SourceResult]) -> None:
        try:
            for result in results:
                if not result.succeeded:
                    log.warning(
                        "Source excluded from total",
                        source=result.source_id.value,
                        error_type=result.error.kind,
                        error=result.error.message,
                    )
            self.tracker.record_cycle(results)
            log.debug("Watchdog state", **self.tracker.get_summary())
        except Exception as exc:
            log.error("Failure reporting raised", error=str(exc))

    async def run_cycle(
        self, extractors: Sequence[BaseExtractor]
    ) -> AggregateSnapshot | None:
        """Run one cycle and publish its snapshot if any source succeeded.

        Args:
            extractors: Extractors to run this cycle.

        Returns:
            The published snapshot, or None if the cache was left unchanged.
        """
        log.info("Aggregation cycle started", sources=len(extractors))

        results = await self.collect(extractors)
        self._report_failures(results)

        succeeded = [r for r in results if r.succeeded]
        if not succeeded:
            previous = self.cache.current_snapshot()
            log.error(
                "All sources failed - keeping previous snapshot",
                sources=len(results),
                previous_total=previous.total_count if previous else None,
            )
            return None

        snapshot = AggregateSnapshot.from_results(results)
        self.cache.publish(snapshot)

        log.info(
            "Aggregation cycle complete",
            total_count=snapshot.total_count,
            succeeded=len(succeeded),
            failed=len(results) - len(succeeded),
            computed_at=snapshot.computed_at.isoformat(),
        )
        return snapshot
