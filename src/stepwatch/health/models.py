"""
Step data models.

Plain dataclasses shared by the data sources, the reconciler, the history
store and the poller.  Instants are timezone-aware ``datetime`` values;
hour and day arithmetic happens in :mod:`stepwatch.health.timebucket`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum

# ── Raw observations ─────────────────────────────────────────────────


@dataclass(frozen=True)
class StepRecord:
    """One step observation as reported by a data source.

    ``id`` is the identity: the same id seen twice is the same observation.
    """

    id: str
    source_id: str
    start_time: datetime
    end_time: datetime
    count: int


def as_utc(instant: datetime) -> datetime:
    # Same-tzinfo comparisons use wall time; UTC keeps DST folds ordered
    return instant.astimezone(UTC) if instant.tzinfo is not None else instant


@dataclass(frozen=True)
class TimeWindow:
    """Half-open interval ``[start, end)``."""

    start: datetime
    end: datetime

    def __contains__(self, instant: datetime) -> bool:
        return as_utc(self.start) <= as_utc(instant) < as_utc(self.end)

    @property
    def duration(self) -> timedelta:
        return as_utc(self.end) - as_utc(self.start)

    @property
    def hours(self) -> float:
        return self.duration.total_seconds() / 3600.0


@dataclass(frozen=True)
class StepPage:
    """One page of a paginated read; ``next_page_token`` is None on the last page."""

    records: list[StepRecord] = field(default_factory=list)
    next_page_token: str | None = None


# ── Derived values ───────────────────────────────────────────────────


@dataclass(frozen=True)
class HourlyBucket:
    hour: int
    steps: int


@dataclass(frozen=True)
class HourlyStepRecord:
    """One row of the day's history list."""

    hour: int
    steps: int
    label: str


@dataclass
class ReconcileResult:
    """Aggregate produced by :func:`~stepwatch.health.reconciler.reconcile`.

    ``complete`` is False when the record stream failed part way; the
    totals then cover only what was read before the failure.
    """

    total: int = 0
    by_hour: dict[int, int] = field(default_factory=dict)
    by_source: dict[str, int] = field(default_factory=dict)
    unique_records: int = 0
    duplicates: int = 0
    malformed: int = 0
    complete: bool = True
    error: str | None = None

    def buckets(self) -> list[HourlyBucket]:
        """Preferred-source hour buckets in hour order."""
        return [HourlyBucket(hour=h, steps=s) for h, s in sorted(self.by_hour.items())]


# ── Capability / refresh outcome ─────────────────────────────────────


class SourceStatus(StrEnum):
    """Platform capability of the underlying health-data provider."""

    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    UPDATE_REQUIRED = "update_required"


@dataclass(frozen=True)
class Capabilities:
    """The flags the UI needs to decide between data and remediation."""

    available: bool
    needs_update: bool
    permissions_granted: bool
    install_uri: str | None = None


class RefreshStatus(StrEnum):
    SUCCESS = "success"
    SOFT_FAILURE = "soft_failure"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class RefreshOutcome:
    """Result of one refresh cycle.

    Only ``SUCCESS`` outcomes carry data that may replace the visible state.
    """

    status: RefreshStatus
    observed_at: datetime
    capabilities: Capabilities
    hourly_steps: int = 0
    daily_steps: int = 0
    by_hour: dict[int, int] = field(default_factory=dict)
    by_source: dict[str, int] = field(default_factory=dict)
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == RefreshStatus.SUCCESS
