"""
Local-calendar time bucketing.

Every function takes the zone explicitly so results never depend on the
host clock.  Hour windows are exactly one hour of elapsed time; day windows
run from local midnight to the next local midnight, which makes them 23 or
25 hours long across a daylight-saving change.
"""

from __future__ import annotations

from datetime import UTC, datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo

from tzlocal import get_localzone

from .models import TimeWindow

_ONE_HOUR = timedelta(hours=1)


def resolve_zone(name: str | None) -> tzinfo:
    """Map a configured zone name to a tzinfo.

    ``None`` or ``"local"`` resolve to the host's IANA zone (``$TZ`` or the
    system setting), so local hours keep following daylight-saving changes.
    """
    if not name or name == "local":
        return get_localzone()
    return ZoneInfo(name)


def to_local(instant: datetime, zone: tzinfo) -> datetime:
    """Express *instant* as a wall-clock time in *zone*.

    Naive datetimes are taken to already be wall-clock times in *zone*.
    """
    if instant.tzinfo is None:
        return instant.replace(tzinfo=zone)
    return instant.astimezone(zone)


def _normalize(local: datetime, zone: tzinfo) -> datetime:
    # Round-trip through UTC so wall times inside a DST gap land on a real instant
    return local.astimezone(UTC).astimezone(zone)


def hour_window(instant: datetime, zone: tzinfo) -> TimeWindow:
    local = to_local(instant, zone)
    start = _normalize(local.replace(minute=0, second=0, microsecond=0), zone)
    end = (start.astimezone(UTC) + _ONE_HOUR).astimezone(zone)
    return TimeWindow(start=start, end=end)


def day_window(instant: datetime, zone: tzinfo) -> TimeWindow:
    local = to_local(instant, zone)
    start = _normalize(datetime.combine(local.date(), time(0), tzinfo=zone), zone)
    next_day = local.date() + timedelta(days=1)
    end = _normalize(datetime.combine(next_day, time(0), tzinfo=zone), zone)
    return TimeWindow(start=start, end=end)


def hour_index(instant: datetime, zone: tzinfo) -> int:
    """Local wall-clock hour, 0..23."""
    return to_local(instant, zone).hour


def day_index(instant: datetime, zone: tzinfo) -> int:
    """Ordinal of the local calendar date; only meaningful for change detection."""
    return to_local(instant, zone).date().toordinal()


def hour_label(hour: int) -> str:
    return f"{hour:02d}:00"


def format_timestamp(instant: datetime, zone: tzinfo) -> str:
    """``YYYY-MM-DD HH:mm:ss`` in the local zone."""
    return to_local(instant, zone).strftime("%Y-%m-%d %H:%M:%S")
