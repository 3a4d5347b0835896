"""Tests for health.reconciler: dedup, source filtering, hour bucketing."""

import random
from datetime import UTC, datetime, timedelta

import pytest

from stepwatch.core.config import DEFAULT_PREFERRED_SOURCE as PREFERRED
from stepwatch.core.exceptions import DataSourceError
from stepwatch.health.models import StepRecord
from stepwatch.health.reconciler import reconcile

OTHER = "com.google.android.apps.fitness"
DAY = datetime(2025, 6, 3, tzinfo=UTC)


def _at(hour: int, minute: int = 0) -> datetime:
    return DAY.replace(hour=hour, minute=minute)


@pytest.fixture
def sample_records(record) -> list[StepRecord]:
    return [
        record("r1", PREFERRED, _at(7, 10), 120),
        record("r2", PREFERRED, _at(7, 40), 80),
        record("r3", OTHER, _at(7, 41), 75),
        record("r4", PREFERRED, _at(9, 5), 300),
        record("r5", OTHER, _at(12, 0), 44),
        record("r6", PREFERRED, _at(23, 58), 12, minutes=5),
    ]


@pytest.mark.smoke
class TestScenario:
    def test_duplicate_page_overlap(self, record):
        records = [
            record("a", "P", _at(9, 15), 50),
            record("a", "P", _at(9, 15), 50),
            StepRecord(id="b", source_id="Q", start_time=_at(9, 20), end_time=_at(9, 20), count=30),
        ]
        result = reconcile(records, "P", UTC)
        assert result.total == 50
        assert result.by_hour == {9: 50}
        assert result.by_source == {"P": 50, "Q": 30}
        assert result.duplicates == 1
        assert result.complete is True

    def test_empty_input(self):
        result = reconcile([], PREFERRED, UTC)
        assert result.total == 0
        assert result.by_hour == {}
        assert result.by_source == {}


class TestDeduplication:
    def test_repeating_records_changes_nothing(self, sample_records):
        records = sample_records
        baseline = reconcile(records, PREFERRED, UTC)

        rng = random.Random(7)
        repeated = list(records)
        for r in records:
            repeated.extend([r] * rng.randint(1, 4))
        rng.shuffle(repeated)

        again = reconcile(repeated, PREFERRED, UTC)
        assert again.total == baseline.total
        assert again.by_hour == baseline.by_hour
        assert again.by_source == baseline.by_source
        assert again.duplicates == len(repeated) - len(records)

    def test_first_occurrence_wins(self, record):
        records = [
            record("x", PREFERRED, _at(8), 10),
            record("x", PREFERRED, _at(8), 999),
        ]
        assert reconcile(records, PREFERRED, UTC).total == 10

    def test_same_id_different_source_is_one_observation(self, record):
        records = [
            record("x", OTHER, _at(8), 10),
            record("x", PREFERRED, _at(8), 10),
        ]
        result = reconcile(records, PREFERRED, UTC)
        assert result.total == 0
        assert result.by_source == {OTHER: 10}


class TestSourceFiltering:
    def test_total_matches_hour_sum_and_preferred_counts(self, sample_records):
        records = sample_records
        result = reconcile(records, PREFERRED, UTC)
        expected = sum(r.count for r in records if r.source_id == PREFERRED)
        assert result.total == expected == sum(result.by_hour.values())

    def test_other_sources_only_in_diagnostics(self, sample_records):
        result = reconcile(sample_records, PREFERRED, UTC)
        assert result.by_source[OTHER] == 75 + 44
        assert 12 not in result.by_hour

    def test_unknown_preferred_source_counts_nothing(self, sample_records):
        result = reconcile(sample_records, "nobody", UTC)
        assert result.total == 0
        assert result.by_hour == {}
        assert sum(result.by_source.values()) == sum(r.count for r in sample_records)


class TestHourBucketing:
    def test_buckets_by_start_hour(self, sample_records):
        result = reconcile(sample_records, PREFERRED, UTC)
        assert result.by_hour == {7: 200, 9: 300, 23: 12}

    def test_record_spanning_midnight_stays_in_start_hour(self, record):
        records = [record("late", PREFERRED, _at(23, 58), 40, minutes=5)]
        assert reconcile(records, PREFERRED, UTC).by_hour == {23: 40}

    def test_hours_follow_the_given_zone(self, berlin, record):
        records = [record("r", PREFERRED, datetime(2025, 6, 3, 7, 30, tzinfo=UTC), 5)]
        assert reconcile(records, PREFERRED, berlin).by_hour == {9: 5}

    def test_hour_indices_within_day(self, sample_records):
        result = reconcile(sample_records, PREFERRED, UTC)
        assert all(0 <= h <= 23 for h in result.by_hour)

    def test_buckets_sorted(self, sample_records):
        buckets = reconcile(sample_records, PREFERRED, UTC).buckets()
        assert [b.hour for b in buckets] == [7, 9, 23]


class TestPartialAggregate:
    def test_stream_failure_keeps_partial_work(self, record):
        def stream():
            yield record("a", PREFERRED, _at(8), 10)
            yield record("b", PREFERRED, _at(9), 20)
            raise DataSourceError("page 2 failed")

        result = reconcile(stream(), PREFERRED, UTC)
        assert result.complete is False
        assert "page 2 failed" in (result.error or "")
        assert result.total == 30
        assert result.by_hour == {8: 10, 9: 20}

    def test_malformed_records_are_dropped(self, record):
        records = [
            record("ok", PREFERRED, _at(8), 10),
            record("neg", PREFERRED, _at(8), -5),
            record("", PREFERRED, _at(8), 10),
            StepRecord(id="backwards", source_id=PREFERRED, start_time=_at(9), end_time=_at(8), count=3),
            "not a record",
        ]
        result = reconcile(records, PREFERRED, UTC)
        assert result.total == 10
        assert result.malformed == 4
        assert result.complete is True

    def test_mixed_naive_and_aware_is_malformed(self):
        bad = StepRecord(
            id="mixed",
            source_id=PREFERRED,
            start_time=datetime(2025, 6, 3, 8),
            end_time=_at(8) + timedelta(minutes=1),
            count=10,
        )
        result = reconcile([bad], PREFERRED, UTC)
        assert result.malformed == 1
        assert result.total == 0
