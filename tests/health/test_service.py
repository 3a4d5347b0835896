"""Tests for health.service: refresh cycle and window reads."""

from datetime import UTC, datetime, timedelta

import pytest

from stepwatch.core.config import DEFAULT_PREFERRED_SOURCE as PREFERRED
from stepwatch.health.models import RefreshStatus, SourceStatus, TimeWindow
from stepwatch.health.service import StepService

OTHER = "com.google.android.apps.fitness"
NOW = datetime(2025, 6, 3, 10, 20, tzinfo=UTC)


@pytest.fixture
def day_records(record):
    return [
        record("y", PREFERRED, datetime(2025, 6, 2, 23, 50, tzinfo=UTC), 999),  # yesterday
        record("a", PREFERRED, datetime(2025, 6, 3, 8, 5, tzinfo=UTC), 100),
        record("b", PREFERRED, datetime(2025, 6, 3, 9, 30, tzinfo=UTC), 250),
        record("b", PREFERRED, datetime(2025, 6, 3, 9, 30, tzinfo=UTC), 250),
        record("c", OTHER, datetime(2025, 6, 3, 9, 31, tzinfo=UTC), 70),
        record("d", PREFERRED, datetime(2025, 6, 3, 10, 2, tzinfo=UTC), 40),
        record("e", PREFERRED, datetime(2025, 6, 3, 10, 15, tzinfo=UTC), 35),
    ]


@pytest.fixture
def service(fake_source_cls, day_records):
    def _build(**kwargs) -> StepService:
        return StepService(fake_source_cls(day_records, **kwargs), PREFERRED, UTC)

    return _build


@pytest.mark.smoke
class TestRefresh:
    def test_success_reconciles_day_and_hour(self, service):
        outcome = service().refresh(NOW)
        assert outcome.status == RefreshStatus.SUCCESS
        assert outcome.daily_steps == 425
        assert outcome.hourly_steps == 75
        assert outcome.by_hour == {8: 100, 9: 250, 10: 75}
        assert outcome.by_source == {PREFERRED: 425, OTHER: 70}
        assert outcome.observed_at == NOW

    def test_hour_and_day_agree(self, service):
        outcome = service().refresh(NOW)
        assert sum(outcome.by_hour.values()) == outcome.daily_steps

    def test_page_failure_is_soft_failure(self, service):
        outcome = service(fail_on_page=2).refresh(NOW)
        assert outcome.status == RefreshStatus.SOFT_FAILURE
        assert "page 2 failed" in outcome.reason
        assert outcome.daily_steps == 0

    def test_unavailable_source(self, service):
        outcome = service(status=SourceStatus.UNAVAILABLE).refresh(NOW)
        assert outcome.status == RefreshStatus.UNAVAILABLE
        assert outcome.capabilities.available is False
        assert outcome.capabilities.install_uri is not None

    def test_update_required(self, service):
        caps = service(status=SourceStatus.UPDATE_REQUIRED).refresh(NOW).capabilities
        assert caps.needs_update is True
        assert caps.available is False

    def test_missing_permissions(self, service):
        outcome = service(permissions=False).refresh(NOW)
        assert outcome.status == RefreshStatus.UNAVAILABLE
        assert outcome.capabilities.permissions_granted is False
        assert outcome.capabilities.available is True

    def test_capability_check_error_is_soft_failure(self, fake_source_cls):
        class BrokenStatus(fake_source_cls):
            def status(self):
                raise RuntimeError("binder died")

        service = StepService(BrokenStatus(), PREFERRED, UTC)
        outcome = service.refresh(NOW)
        assert outcome.status == RefreshStatus.SOFT_FAILURE
        assert "binder died" in outcome.reason

    def test_totals_mode_without_aggregate_support_reconciles(self, service):
        outcome = service().refresh(NOW, detail=False)
        assert outcome.ok
        assert outcome.hourly_steps == 75
        assert outcome.daily_steps == 425
        assert outcome.by_hour == {}


class TestWindowReads:
    def test_steps_for_hour(self, service):
        assert service().steps_for_hour(datetime(2025, 6, 3, 9, 0, tzinfo=UTC)) == 250

    def test_steps_for_day(self, service):
        assert service().steps_for_day(NOW) == 425

    def test_hourly_steps_for_day(self, service):
        assert service().hourly_steps_for_day(NOW) == {8: 100, 9: 250, 10: 75}

    def test_best_effort_total_on_failure(self, service):
        # First page (a, b) read before page 2 fails
        assert service(fail_on_page=2).steps_for_day(NOW) == 350

    def test_aggregate_fast_path(self, fake_source_cls, day_records):
        class Aggregating(fake_source_cls):
            supports_aggregate = True

            def read_aggregate_total(self, window, source_id=None):
                self.aggregate_calls = getattr(self, "aggregate_calls", 0) + 1
                return 1234

        source = Aggregating(day_records)
        service = StepService(source, PREFERRED, UTC)
        window = TimeWindow(start=NOW, end=NOW + timedelta(hours=1))
        assert service.aggregate_total(window) == 1234
        assert source.aggregate_calls == 1
        assert source.stats["pages"] == 0
