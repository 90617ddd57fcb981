"""Periodic, single-flight driver for aggregation cycles.

The first cycle runs as soon as the scheduler starts so the cache fills
quickly; later cycles follow every ``period_sec``, measured from the end
of the previous one. A cycle is never started while another is in flight.
"""

import asyncio
from typing import Sequence

from usercount.aggregator import Aggregator
from usercount.extractor import BaseExtractor
from usercount.logger import get_logger

log = get_logger(__name__)


class Scheduler:
    """Background task that keeps the snapshot cache fresh.

    Attributes:
        aggregator: Aggregator whose ``run_cycle`` is invoked.
        extractors: Extractors handed to every cycle.
        period_sec: Delay between the end of one cycle and the next start.
        _lock: Held for the duration of a cycle.
        _task: Background loop task while running.
    """

    def __init__(
        self,
        aggregator: Aggregator,
        extractors: Sequence[BaseExtractor],
        period_sec: float,
    ) -> None:
        if period_sec <= 0:
            raise ValueError(f"period_sec must be positive, got {period_sec}")

        self.aggregator = aggregator
        self.extractors = list(extractors)
        self.period_sec = period_sec
        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None
        self._cycles_run = 0

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    @property
    def cycles_run(self) -> int:
        return self._cycles_run

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> bool:
        """Run one cycle unless another is already in flight.

        Errors raised by the cycle are logged and contained.

        Returns:
            True if a cycle ran, False if the attempt was skipped.
        """
        if self._lock.locked():
            log.warning("Cycle already in flight - skipping trigger")
            return False

        async with self._lock:
            self._cycles_run += 1
            try:
                await self.aggregator.run_cycle(self.extractors)
            except Exception as exc:
                log.exception(
                    "Aggregation cycle raised",
                    cycle=self._cycles_run,
                    error=str(exc),
                )
        return True

    async def _loop(self) -> None:
        while True:
            await self.run_once()
            log.debug("Next cycle scheduled", in_seconds=self.period_sec)
            await asyncio.sleep(self.period_sec)

    def start(self) -> asyncio.Task:
        """Start the background loop; must be called inside a running loop."""
        if self.is_running:
            return self._task

        log.info(
            "Scheduler started",
            period_sec=self.period_sec,
            sources=[e.source_id.value for e in self.extractors],
        )
        self._task = asyncio.create_task(self._loop(), name="usercount-scheduler")
        return self._task

    async def stop(self) -> None:
        """Cancel the loop and wait for any in-flight cycle to unwind."""
        if self._task is None:
            return

        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            # Propagate if the caller of stop() is itself being cancelled
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
        log.info("Scheduler stopped", cycles_run=self._cycles_run)
