"""
Step service: one data source, one preferred provider, one zone.

Both the foreground poller and the background sync drive this class.
Every read goes through :func:`~stepwatch.health.reconciler.reconcile`
(or the source's aggregate fast path), and :meth:`StepService.refresh`
folds any failure into a :class:`RefreshOutcome` instead of raising.
"""

from __future__ import annotations

from datetime import datetime, tzinfo

from loguru import logger

from .models import Capabilities, ReconcileResult, RefreshOutcome, RefreshStatus, SourceStatus, TimeWindow
from .reconciler import reconcile
from .source import StepDataSource
from .timebucket import day_window, hour_index, hour_window

_NO_CAPABILITIES = Capabilities(available=False, needs_update=False, permissions_granted=False)


class StepService:
    """Read and reconcile step data for hour and day windows.

    Args:
        source: Where records come from.
        preferred_source: Source id whose records are authoritative.
        zone: Zone that defines local hours and days.
    """

    def __init__(self, source: StepDataSource, preferred_source: str, zone: tzinfo):
        self.source = source
        self.preferred_source = preferred_source
        self.zone = zone
        self.last_capabilities: Capabilities = _NO_CAPABILITIES

    # ── Capability ─────────────────────────────────────────────────

    def capabilities(self) -> Capabilities:
        status = self.source.status()
        available = status == SourceStatus.AVAILABLE
        caps = Capabilities(
            available=available,
            needs_update=status == SourceStatus.UPDATE_REQUIRED,
            permissions_granted=available and self.source.has_permissions(),
            install_uri=self.source.install_uri(),
        )
        self.last_capabilities = caps
        return caps

    # ── Window reads ───────────────────────────────────────────────

    def reconcile_window(self, window: TimeWindow) -> ReconcileResult:
        """Drain every page of *window* and reconcile it."""
        return reconcile(self.source.read_window(window), self.preferred_source, self.zone)

    def steps_for_hour(self, hour_start: datetime) -> int:
        """Best-effort preferred-source total for the hour containing *hour_start*."""
        window = hour_window(hour_start, self.zone)
        result = self.reconcile_window(window)
        logger.debug(f"Hour {window.start:%Y-%m-%d %H:00}: {result.total} steps")
        return result.total

    def steps_for_day(self, day: datetime) -> int:
        """Best-effort preferred-source total for the local day containing *day*."""
        window = day_window(day, self.zone)
        result = self.reconcile_window(window)
        logger.debug(f"Day {window.start:%Y-%m-%d}: {result.total} steps")
        return result.total

    def hourly_steps_for_day(self, day: datetime) -> dict[int, int]:
        return self.reconcile_window(day_window(day, self.zone)).by_hour

    def aggregate_total(self, window: TimeWindow) -> int:
        """Preferred-source total without per-record detail.

        Uses the provider's own aggregation when it offers one, otherwise
        falls back to a full reconciliation.
        """
        if getattr(self.source, "supports_aggregate", False):
            return self.source.read_aggregate_total(window, source_id=self.preferred_source)
        return self.reconcile_window(window).total

    # ── Refresh cycle ──────────────────────────────────────────────

    def refresh(self, now: datetime, *, detail: bool = True) -> RefreshOutcome:
        """Run one refresh cycle for the day containing *now*.

        With ``detail`` the whole day is reconciled once and the current
        hour is read from the same hour map, so hour and day totals always
        agree.  Without it only the two aggregate totals are fetched.
        """
        try:
            caps = self.capabilities()
        except Exception as e:
            logger.warning(f"Capability check failed: {e}")
            return self._soft_failure(now, f"capability check failed: {e}")

        if not caps.available or not caps.permissions_granted:
            logger.info(f"Step source not usable (available={caps.available}, permissions={caps.permissions_granted})")
            return RefreshOutcome(status=RefreshStatus.UNAVAILABLE, observed_at=now, capabilities=caps)

        if not detail:
            return self._refresh_totals(now, caps)

        try:
            result = self.reconcile_window(day_window(now, self.zone))
        except Exception as e:
            logger.warning(f"Step read failed: {e}")
            return self._soft_failure(now, str(e))

        if not result.complete:
            return self._soft_failure(now, result.error or "incomplete read")

        hour = hour_index(now, self.zone)
        return RefreshOutcome(
            status=RefreshStatus.SUCCESS,
            observed_at=now,
            capabilities=caps,
            hourly_steps=result.by_hour.get(hour, 0),
            daily_steps=result.total,
            by_hour=dict(result.by_hour),
            by_source=dict(result.by_source),
        )

    def _refresh_totals(self, now: datetime, caps: Capabilities) -> RefreshOutcome:
        try:
            hourly = self.aggregate_total(hour_window(now, self.zone))
            daily = self.aggregate_total(day_window(now, self.zone))
        except Exception as e:
            logger.warning(f"Aggregate read failed: {e}")
            return self._soft_failure(now, str(e))
        return RefreshOutcome(
            status=RefreshStatus.SUCCESS,
            observed_at=now,
            capabilities=caps,
            hourly_steps=hourly,
            daily_steps=daily,
        )

    def _soft_failure(self, now: datetime, reason: str) -> RefreshOutcome:
        return RefreshOutcome(
            status=RefreshStatus.SOFT_FAILURE,
            observed_at=now,
            capabilities=self.last_capabilities,
            reason=reason,
        )
