"""Scheduler Driver - periodic materializer trigger with overlap protection.

Invariants:
    - At most one materializer run in flight per driver
    - A trigger that arrives while a run is in flight is skipped (logged), never queued;
      manual runs (run_now) share the lock and raise MaterializationInProgressError
    - The loop survives any run failure; the next tick starts fresh
    - stop() cancels the loop and waits for it to exit

Design Decisions:
    - asyncio task owned by the FastAPI lifespan instead of a cron dependency:
      one process, one loop, cadence from settings
    - Lock.locked() check before acquiring: skip is decided without waiting
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable
from uuid import UUID

from rollcall.core.errors import ErrorContext, MaterializationInProgressError
from rollcall.services.materializer import MaterializationReport, Materializer

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SchedulerDriver:
    """Runs Materializer.run every interval_seconds in the background."""

    def __init__(
        self,
        materializer: Materializer,
        interval_seconds: float = 60,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.materializer = materializer
        self.interval_seconds = interval_seconds
        self.clock = clock
        self.last_report: MaterializationReport | None = None
        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(
        self, now: datetime | None = None, series_ids: list[UUID] | None = None,
    ) -> bool:
        """One materialization pass. False when skipped because a run is in flight."""
        if self._lock.locked():
            logger.warning("Materializer still running, skipping this tick")
            return False
        async with self._lock:
            self.last_report = await self.materializer.run(now or self.clock(), series_ids)
        return True

    async def run_now(self, series_ids: list[UUID] | None = None) -> MaterializationReport:
        """Manual pass under the same lock as the loop; refused while one is in flight."""
        if not await self.run_once(series_ids=series_ids):
            raise MaterializationInProgressError(
                ErrorContext(series_id=",".join(str(s) for s in series_ids or []) or None),
            )
        return self.last_report

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="rollcall-scheduler")
        logger.info(f"Scheduler started, interval {self.interval_seconds}s")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Scheduler stopped")

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Scheduler tick failed: {e}", exc_info=True)
            await asyncio.sleep(self.interval_seconds)
