"""Foreground polling controller.

Owns two cooperative asyncio tasks:

* the **clock** task ticks every ``clock_interval`` seconds, updates the
  displayed time and detects hour and day changes;
* the **data** task runs :meth:`StepService.refresh` every
  ``refresh_interval`` seconds, or after a backoff delay following a soft
  failure.

All state changes funnel through :class:`SnapshotStore`.  ``pause()`` bumps
a generation counter and cancels both tasks; a refresh that was already
in flight compares its generation before committing and is discarded if
it has gone stale.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from loguru import logger

from stepwatch.core.events import STEPS_DAY_ROLLOVER, STEPS_REFRESH_FAILED, STEPS_REFRESHED, EventBus
from stepwatch.health.history import HistoryStore
from stepwatch.health.models import RefreshOutcome, RefreshStatus
from stepwatch.health.service import StepService
from stepwatch.health.timebucket import day_index, format_timestamp, hour_index

from .backoff import Backoff
from .state import SnapshotStore

Clock = Callable[[], datetime]
"""Returns the current instant; injectable for tests."""


class ControllerPhase(StrEnum):
    IDLE = "idle"
    POLLING = "polling"
    SUCCESS = "success"
    SOFT_FAILURE = "soft_failure"
    UNAVAILABLE = "unavailable"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _retrieve_exception(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.debug(f"Step read raised: {task.exception()}")


class PollingController:
    """Drive periodic step refreshes into a :class:`SnapshotStore`.

    Args:
        service: Reconciling step service (owns source, preferred source and zone).
        store: Presentation state; a fresh one is created if omitted.
        clock_interval: Seconds between clock ticks.
        refresh_interval: Seconds between refreshes while healthy.
        backoff: Failure tracker; defaults to 1 s base, 60 s ceiling.
        clock: Callable returning "now" as an aware datetime.
        event_bus: Optional bus receiving refresh / rollover events.
    """

    def __init__(
        self,
        service: StepService,
        store: SnapshotStore | None = None,
        *,
        clock_interval: float = 1.0,
        refresh_interval: float = 5.0,
        backoff: Backoff | None = None,
        clock: Clock | None = None,
        event_bus: EventBus | None = None,
    ):
        self.service = service
        self.zone = service.zone
        self.store = store or SnapshotStore()
        self.clock_interval = clock_interval
        self.refresh_interval = refresh_interval
        self.backoff = backoff or Backoff()
        self.history = HistoryStore(service.zone)
        self.phase = ControllerPhase.IDLE
        self.last_outcome: RefreshOutcome | None = None

        self._clock = clock or _utcnow
        self._bus = event_bus
        self._generation = 0
        self._running = False
        self._last_hour: int | None = None
        self._tasks: set[asyncio.Task] = set()
        self._refresh_lock = asyncio.Lock()
        # Thread-backed read of the latest refresh; outlives task cancellation
        self._inflight: asyncio.Task | None = None

    # ── Lifecycle ──────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._running

    @property
    def generation(self) -> int:
        return self._generation

    def start(self) -> None:
        """Start both timers.  Must be called from a running event loop."""
        self.resume()

    def resume(self) -> None:
        """(Re)start both timers from scratch with a clean backoff state."""
        self._cancel_tasks()
        self._generation += 1
        self._running = True
        self.backoff.reset()
        generation = self._generation
        self._spawn(self._clock_loop(generation), "stepwatch-clock")
        self._spawn(self._data_loop(generation), "stepwatch-data")
        logger.info(f"Polling resumed (generation {generation})")

    def pause(self) -> None:
        """Cancel both timers and any in-flight refresh.  No-op when paused."""
        if not self._running:
            return
        self._running = False
        self._generation += 1
        self._cancel_tasks()
        self.phase = ControllerPhase.IDLE
        logger.info("Polling paused")

    async def stop(self) -> None:
        """Pause, then wait for the cancelled tasks and any abandoned read to finish."""
        tasks = list(self._tasks)
        self.pause()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self._drain_inflight()

    def permissions_granted(self) -> asyncio.Task | None:
        """Kick off one out-of-band refresh after a permission grant."""
        if not self._running:
            logger.debug("Permissions granted while paused; next resume will refresh")
            return None
        return self._spawn(self._refresh_once(self._generation), "stepwatch-permission-refresh")

    async def refresh_now(self) -> RefreshOutcome | None:
        """Run one refresh immediately and commit it (None if it went stale)."""
        return await self._refresh_once(self._generation)

    # ── Loops ──────────────────────────────────────────────────────

    async def _clock_loop(self, generation: int) -> None:
        while generation == self._generation:
            await self.tick()
            await asyncio.sleep(self.clock_interval)

    async def _data_loop(self, generation: int) -> None:
        while generation == self._generation:
            outcome = await self._refresh_once(generation)
            if outcome is None:
                return
            if outcome.status == RefreshStatus.SOFT_FAILURE:
                delay = self.backoff.delay_for(self.backoff.consecutive_errors)
                logger.info(
                    f"Refresh failed ({self.backoff.consecutive_errors} in a row): {outcome.reason}; "
                    f"retrying in {delay:g}s"
                )
            else:
                delay = self.refresh_interval
            await asyncio.sleep(delay)

    async def tick(self) -> None:
        """Clock tick: update the displayed time, handle hour and day changes."""
        now = self._clock()
        current_hour = hour_index(now, self.zone)
        changes: dict[str, Any] = {"current_date_time": format_timestamp(now, self.zone)}

        if self.history.observe(now):
            changes.update(hourly_steps=0, daily_steps=0, step_history=())
            await self._emit(STEPS_DAY_ROLLOVER, {"day": self.history.day})
        elif self._last_hour is not None and current_hour != self._last_hour:
            logger.debug(f"Hour changed {self._last_hour} -> {current_hour}")
            changes.update(
                hourly_steps=self.history.by_hour.get(current_hour, 0),
                step_history=self.history.rebuild(current_hour),
            )
        self._last_hour = current_hour
        self.store.update(**changes)

    # ── Refresh + commit ───────────────────────────────────────────

    async def _refresh_once(self, generation: int) -> RefreshOutcome | None:
        async with self._refresh_lock:
            await self._drain_inflight()
            if generation != self._generation:
                return None
            self.phase = ControllerPhase.POLLING
            now = self._clock()
            self._inflight = asyncio.ensure_future(asyncio.to_thread(self.service.refresh, now))
            self._inflight.add_done_callback(_retrieve_exception)
            outcome = await asyncio.shield(self._inflight)

            if generation != self._generation:
                logger.debug(f"Discarding stale refresh from generation {generation}")
                return None

            self.last_outcome = outcome
            await self._commit(outcome)
            return outcome

    async def _drain_inflight(self) -> None:
        """Wait for a read abandoned by pause() so one source never serves two refreshes."""
        inflight = self._inflight
        if inflight is None or inflight.done():
            return
        logger.debug("Waiting for an abandoned refresh to finish its read")
        try:
            await asyncio.shield(inflight)
        except Exception as e:
            logger.warning(f"Abandoned refresh failed: {e}")

    async def _commit(self, outcome: RefreshOutcome) -> None:
        caps = outcome.capabilities

        if outcome.status == RefreshStatus.SOFT_FAILURE:
            self.backoff.record_failure()
            self.phase = ControllerPhase.SOFT_FAILURE
            await self._emit(
                STEPS_REFRESH_FAILED,
                {"reason": outcome.reason, "consecutive_errors": self.backoff.consecutive_errors},
            )
            return

        flags = {
            "data_source_available": caps.available,
            "data_source_needs_update": caps.needs_update,
            "install_action_uri": caps.install_uri,
            "permissions_granted": caps.permissions_granted,
        }

        if outcome.status == RefreshStatus.UNAVAILABLE:
            self.backoff.record_success()
            self.phase = ControllerPhase.UNAVAILABLE
            self.store.update(**flags)
            return

        if self.history.day is not None and day_index(outcome.observed_at, self.zone) < self.history.day:
            # Read started before midnight but finished after the clock rolled over
            logger.debug("Dropping refresh for a day that has already ended")
            self.backoff.record_success()
            self.phase = ControllerPhase.SUCCESS
            return

        if self.history.observe(outcome.observed_at):
            await self._emit(STEPS_DAY_ROLLOVER, {"day": self.history.day})
        self.history.replace(outcome.by_hour)
        current_hour = hour_index(outcome.observed_at, self.zone)

        self.backoff.record_success()
        self.phase = ControllerPhase.SUCCESS
        self.store.update(
            hourly_steps=outcome.hourly_steps,
            daily_steps=outcome.daily_steps,
            step_history=self.history.rebuild(current_hour),
            **flags,
        )
        await self._emit(
            STEPS_REFRESHED,
            {"hourly_steps": outcome.hourly_steps, "daily_steps": outcome.daily_steps},
        )

    # ── Internal ───────────────────────────────────────────────────

    def _spawn(self, coro, name: str) -> asyncio.Task:  # type: ignore[no-untyped-def]
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error(f"Polling task {task.get_name()} crashed")

    def _cancel_tasks(self) -> None:
        for task in list(self._tasks):
            task.cancel()

    async def _emit(self, name: str, payload: dict[str, Any]) -> None:
        if self._bus is not None:
            await self._bus.publish(name, source="poller", **payload)
