"""Background sync: one isolated refresh cycle per trigger.

Runs independently of the foreground :class:`PollingController`: each
call builds its own :class:`StepService` around a freshly created source,
so no mutable state is shared with the foreground loop.  The caller (an
external scheduler) receives :class:`WorkResult` and owns any retry
policy.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, tzinfo
from enum import StrEnum

from loguru import logger

from stepwatch.health.models import RefreshOutcome, RefreshStatus
from stepwatch.health.service import StepService
from stepwatch.health.source import StepDataSource

SourceFactory = Callable[[], StepDataSource]


class WorkResult(StrEnum):
    SUCCESS = "success"
    RETRY = "retry"


class BackgroundSync:
    """Periodic-task body: fetch the current hour and day totals once.

    Args:
        source_factory: Builds a new data source per run.
        preferred_source: Authoritative source id.
        zone: Zone defining local hours and days.
        detail: Reconcile per-record detail instead of using aggregate totals.
    """

    def __init__(
        self,
        source_factory: SourceFactory,
        preferred_source: str,
        zone: tzinfo,
        *,
        detail: bool = False,
    ):
        self._source_factory = source_factory
        self.preferred_source = preferred_source
        self.zone = zone
        self.detail = detail
        self.last_outcome: RefreshOutcome | None = None

    def do_work(self, now: datetime | None = None) -> WorkResult:
        logger.debug("Background sync started")
        now = now or datetime.now(UTC)
        try:
            service = StepService(self._source_factory(), self.preferred_source, self.zone)
            outcome = service.refresh(now, detail=self.detail)
        except Exception as e:
            logger.error(f"Error during background sync: {e}")
            return WorkResult.RETRY

        self.last_outcome = outcome
        if outcome.status == RefreshStatus.UNAVAILABLE:
            logger.warning("Step source unavailable or missing permissions, skipping sync")
            return WorkResult.SUCCESS
        if outcome.status == RefreshStatus.SOFT_FAILURE:
            logger.warning(f"Background sync failed: {outcome.reason}")
            return WorkResult.RETRY

        logger.info(f"Background sync complete - Hour: {outcome.hourly_steps}, Day: {outcome.daily_steps}")
        return WorkResult.SUCCESS
