"""Shared test fixtures for stepwatch."""

import os
import tempfile
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from stepwatch.core.exceptions import DataSourceError
from stepwatch.health.models import SourceStatus, StepPage, StepRecord, TimeWindow
from stepwatch.health.source import BaseStepSource


class FakeStepSource(BaseStepSource):
    """In-memory source with paging and failure injection.

    ``fail_on_page`` raises on that 1-based page of every read;
    ``fail_reads`` makes the next N reads fail on their first page.
    """

    name = "fake"

    def __init__(
        self,
        records=None,
        *,
        page_size: int = 2,
        status: SourceStatus = SourceStatus.AVAILABLE,
        permissions: bool = True,
        fail_on_page: int | None = None,
        fail_reads: int = 0,
        **config,
    ):
        super().__init__(**config)
        self.records = list(records or [])
        self.page_size = page_size
        self._status = status
        self._permissions = permissions
        self.fail_on_page = fail_on_page
        self.fail_reads = fail_reads
        self.reads = 0
        self.install_url = "market://details?id=com.google.android.apps.healthdata"

    def read_page(self, window: TimeWindow, page_token=None) -> StepPage:
        offset = int(page_token or 0)
        page_num = offset // self.page_size + 1
        if page_num == 1:
            self.reads += 1
            if self.fail_reads > 0:
                self.fail_reads -= 1
                raise DataSourceError("provider hiccup")
        if self.fail_on_page == page_num:
            raise DataSourceError(f"page {page_num} failed")
        matching = [r for r in self.records if r.start_time in window]
        page = matching[offset : offset + self.page_size]
        next_offset = offset + self.page_size
        return StepPage(records=page, next_page_token=str(next_offset) if next_offset < len(matching) else None)

    def status(self) -> SourceStatus:
        return self._status

    def has_permissions(self) -> bool:
        return self._permissions


def make_record(record_id: str, source: str, start: datetime, count: int, minutes: int = 1) -> StepRecord:
    return StepRecord(
        id=record_id,
        source_id=source,
        start_time=start,
        end_time=start + timedelta(minutes=minutes),
        count=count,
    )


@pytest.fixture
def tmp_dir():
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as d:
        yield d


@pytest.fixture
def utc():
    return UTC


@pytest.fixture
def berlin():
    return ZoneInfo("Europe/Berlin")


@pytest.fixture
def fake_source_cls():
    return FakeStepSource


@pytest.fixture
def record():
    return make_record


@pytest.fixture
def tmp_config_file(tmp_dir):
    """Create a temporary YAML config file."""
    import yaml

    config_data = {
        "paths": {"data_dir": os.path.join(tmp_dir, "data")},
        "steps": {"preferred_source": "iPhone", "timezone": "UTC"},
        "polling": {"refresh_interval": 2.0},
        "background": {"enabled": False},
    }
    config_path = os.path.join(tmp_dir, "config.yaml")
    with open(config_path, "w") as f:
        yaml.dump(config_data, f)
    return config_path
