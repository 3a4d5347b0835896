"""Background scheduler: periodic sync via APScheduler.

Wraps APScheduler's ``AsyncIOScheduler`` to run :class:`BackgroundSync`
on an interval trigger with jitter (default every 15 minutes, ±5).  When
a run asks for a retry, a one-off job is scheduled with its own
exponential backoff, capped at the regular interval.

APScheduler is imported lazily (only in :meth:`start`) so the module can
be imported without the dependency being loaded.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

from loguru import logger

from stepwatch.core.events import BACKGROUND_SYNC_COMPLETE, BACKGROUND_SYNC_RETRY, EventBus

from .background import BackgroundSync, WorkResult

JOB_ID = "stepwatch_background_sync"
RETRY_JOB_ID = f"{JOB_ID}_retry"


class BackgroundScheduler:
    """Run a :class:`BackgroundSync` periodically inside the event loop.

    Args:
        worker: The sync body to run.
        interval_minutes: Nominal cadence.
        flex_minutes: Jitter applied to each run, in minutes.
        retry_base_seconds: First retry delay after a ``RETRY`` result.
        event_bus: Optional bus for completion / retry events.
    """

    def __init__(
        self,
        worker: BackgroundSync,
        *,
        interval_minutes: float = 15,
        flex_minutes: float = 5,
        retry_base_seconds: float = 30,
        event_bus: EventBus | None = None,
    ):
        self._worker = worker
        self.interval_minutes = interval_minutes
        self.flex_minutes = flex_minutes
        self.retry_base_seconds = retry_base_seconds
        self._bus = event_bus
        self._scheduler: Any = None  # AsyncIOScheduler, lazily created
        self.retry_count = 0

    # ── Lifecycle ──────────────────────────────────────────────────

    def start(self) -> None:
        """Create the APScheduler instance, register the job and start.

        Must be called from a running asyncio event loop.
        """
        from apscheduler.schedulers.asyncio import AsyncIOScheduler
        from apscheduler.triggers.interval import IntervalTrigger

        self._scheduler = AsyncIOScheduler(timezone="UTC")
        trigger = IntervalTrigger(
            minutes=self.interval_minutes,
            jitter=int(self.flex_minutes * 60) or None,
            timezone="UTC",
        )
        self._scheduler.add_job(
            self.run_once,
            trigger=trigger,
            id=JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._scheduler.start()
        logger.info(f"Background sync scheduled: every {self.interval_minutes:g} minutes (±{self.flex_minutes:g})")

    def shutdown(self) -> None:
        """Stop the APScheduler instance."""
        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            logger.info("Background scheduler shut down")

    @property
    def apscheduler(self) -> Any:
        """The raw APScheduler instance, or ``None`` before :meth:`start`."""
        return self._scheduler

    # ── Job body ───────────────────────────────────────────────────

    async def run_once(self) -> WorkResult:
        """Run the worker off the event loop and apply the retry policy."""
        result = await asyncio.to_thread(self._worker.do_work)
        if result == WorkResult.RETRY:
            self.retry_count += 1
            delay = self.retry_delay(self.retry_count)
            logger.info(f"Background sync asked for retry #{self.retry_count} in {delay:g}s")
            self._schedule_retry(delay)
            await self._emit(BACKGROUND_SYNC_RETRY, {"retry_count": self.retry_count, "delay": delay})
        else:
            self.retry_count = 0
            await self._emit(BACKGROUND_SYNC_COMPLETE, {})
        return result

    def retry_delay(self, retry_count: int) -> float:
        """Seconds before retry number *retry_count* (1-based)."""
        cap = self.interval_minutes * 60
        exponent = min(max(retry_count - 1, 0), 32)
        return min(self.retry_base_seconds * (2**exponent), cap)

    def _schedule_retry(self, delay: float) -> None:
        if self._scheduler is None:
            return
        from apscheduler.triggers.date import DateTrigger

        run_date = datetime.now(UTC) + timedelta(seconds=delay)
        self._scheduler.add_job(
            self.run_once,
            trigger=DateTrigger(run_date=run_date),
            id=RETRY_JOB_ID,
            replace_existing=True,
        )

    async def _emit(self, name: str, payload: dict[str, Any]) -> None:
        if self._bus is not None:
            await self._bus.publish(name, source="background", **payload)
