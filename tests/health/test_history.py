"""Tests for health.history: day-scoped hourly history."""

from datetime import UTC, datetime

from stepwatch.health.history import HistoryStore, rebuild_history


class TestRebuild:
    def test_descending_excludes_current_and_zero_hours(self):
        by_hour = {0: 15, 3: 0, 7: 200, 9: 300, 10: 42}
        rows = rebuild_history(by_hour, current_hour=10)
        assert [r.hour for r in rows] == [9, 7, 0]
        assert [r.label for r in rows] == ["09:00", "07:00", "00:00"]
        assert rows[0].steps == 300

    def test_midnight_has_no_history(self):
        assert rebuild_history({0: 50}, current_hour=0) == []

    def test_strictly_descending(self):
        by_hour = {h: h + 1 for h in range(24)}
        rows = rebuild_history(by_hour, current_hour=23)
        hours = [r.hour for r in rows]
        assert hours == sorted(hours, reverse=True)
        assert len(set(hours)) == len(hours)
        assert 23 not in hours


class TestHistoryStore:
    def test_first_observation_is_not_rollover(self):
        store = HistoryStore(UTC)
        assert store.observe(datetime(2025, 6, 3, 9, tzinfo=UTC)) is False

    def test_same_day_keeps_data(self):
        store = HistoryStore(UTC)
        store.observe(datetime(2025, 6, 3, 9, tzinfo=UTC))
        store.replace({8: 100})
        assert store.observe(datetime(2025, 6, 3, 22, tzinfo=UTC)) is False
        assert store.by_hour == {8: 100}

    def test_rollover_clears_before_new_data(self):
        store = HistoryStore(UTC)
        store.observe(datetime(2025, 6, 3, 23, 59, tzinfo=UTC))
        store.replace({22: 400, 23: 120})

        assert store.observe(datetime(2025, 6, 4, 0, 0, 1, tzinfo=UTC)) is True
        assert store.by_hour == {}
        assert store.rebuild(current_hour=5) == []

    def test_rollover_uses_local_day(self, berlin):
        store = HistoryStore(berlin)
        store.observe(datetime(2025, 6, 3, 21, 0, tzinfo=UTC))  # 23:00 Berlin
        store.replace({22: 10})
        assert store.observe(datetime(2025, 6, 3, 22, 30, tzinfo=UTC)) is True  # 00:30 Berlin

    def test_replace_drops_zero_hours(self):
        store = HistoryStore(UTC)
        store.replace({1: 0, 2: 5})
        assert store.by_hour == {2: 5}

    def test_by_hour_is_a_copy(self):
        store = HistoryStore(UTC)
        store.replace({2: 5})
        store.by_hour[3] = 9
        assert store.by_hour == {2: 5}
