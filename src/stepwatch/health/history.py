"""
Day-scoped hourly step history.

Holds the current day's hour → steps map in memory.  Nothing is persisted:
the map is cleared the first time a new local calendar day is observed.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, tzinfo

from loguru import logger

from .models import HourlyStepRecord
from .timebucket import day_index, hour_label


def rebuild_history(by_hour: Mapping[int, int], current_hour: int) -> list[HourlyStepRecord]:
    """History rows for hours before *current_hour*, most recent first.

    Hours with no recorded steps are left out.
    """
    history: list[HourlyStepRecord] = []
    for hour in range(current_hour - 1, -1, -1):
        steps = by_hour.get(hour, 0)
        if steps > 0:
            history.append(HourlyStepRecord(hour=hour, steps=steps, label=hour_label(hour)))
    return history


class HistoryStore:
    """In-memory hour map for a single local calendar day."""

    def __init__(self, zone: tzinfo):
        self.zone = zone
        self._day: int | None = None
        self._by_hour: dict[int, int] = {}

    @property
    def day(self) -> int | None:
        return self._day

    @property
    def by_hour(self) -> dict[int, int]:
        return dict(self._by_hour)

    def observe(self, now: datetime) -> bool:
        """Record the current day; clear the hour map on rollover.

        Returns True when *now* falls on a different day than the last
        observation (the very first observation is not a rollover).
        """
        today = day_index(now, self.zone)
        if self._day is None:
            self._day = today
            return False
        if today == self._day:
            return False

        logger.info(f"Day rollover detected ({self._day} -> {today}); clearing {len(self._by_hour)} hourly entries")
        self._day = today
        self._by_hour.clear()
        return True

    def replace(self, by_hour: Mapping[int, int]) -> None:
        """Swap in a freshly reconciled hour map for the current day."""
        self._by_hour = {hour: steps for hour, steps in by_hour.items() if steps > 0}

    def rebuild(self, current_hour: int) -> list[HourlyStepRecord]:
        return rebuild_history(self._by_hour, current_hour)

    def clear(self) -> None:
        self._by_hour.clear()
