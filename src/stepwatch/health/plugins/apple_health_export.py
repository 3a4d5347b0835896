"""Apple Health export step source (HealthKit-compatible import path).

Reads ``HKQuantityTypeIdentifierStepCount`` records from an Apple Health
XML export (``export.xml``).  Exports carry no record ids, so one is
derived from the record's attributes: byte-identical rows (which exports
do contain when several devices sync the same sample) collapse to a
single id and are counted once by the reconciler.
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from pathlib import Path
from typing import Any
from xml.etree import ElementTree as ET

from loguru import logger

from stepwatch.core.exceptions import DataSourceError, SourceUnavailableError
from stepwatch.health.models import SourceStatus, StepPage, StepRecord, TimeWindow
from stepwatch.health.source import BaseStepSource

STEP_RECORD_TYPE = "HKQuantityTypeIdentifierStepCount"


class AppleHealthStepSource(BaseStepSource):
    """Serve step records from an Apple Health export XML file, page by page."""

    name = "apple_health_export"
    supports_aggregate = True
    install_url = "https://support.apple.com/guide/iphone/share-your-health-data-iph5ede58c3d/ios"

    def __init__(self, export_path: str, page_size: int = 500, **config: Any):
        super().__init__(export_path=export_path, page_size=page_size, **config)
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self.export_path = Path(export_path).expanduser()
        self.page_size = page_size
        self._parsed: tuple[float, list[StepRecord]] | None = None  # (mtime, records)

    def status(self) -> SourceStatus:
        if self.export_path.is_file():
            return SourceStatus.AVAILABLE
        return SourceStatus.UNAVAILABLE

    def has_permissions(self) -> bool:
        try:
            with self.export_path.open("rb"):
                return True
        except OSError:
            return False

    def get_config_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "export_path": {
                    "type": "string",
                    "description": "Path to Apple Health export.xml file",
                },
                "page_size": {
                    "type": "integer",
                    "description": "Records per page",
                },
            },
            "required": ["export_path"],
        }

    def read_page(self, window: TimeWindow, page_token: str | None = None) -> StepPage:
        records = self._records_in(window)
        offset = self._parse_token(page_token)
        page = records[offset : offset + self.page_size]
        next_offset = offset + self.page_size
        next_token = str(next_offset) if next_offset < len(records) else None
        return StepPage(records=page, next_page_token=next_token)

    def read_aggregate_total(self, window: TimeWindow, source_id: str | None = None) -> int:
        """Sum of the step rows in *window*; identical rows are counted once."""
        unique = {r.id: r for r in self._records_in(window) if source_id is None or r.source_id == source_id}
        return sum(max(r.count, 0) for r in unique.values())

    # ── helpers ──────────────────────────────────────────────────────

    def _records_in(self, window: TimeWindow) -> list[StepRecord]:
        """Records starting inside *window*, in file order."""
        return [r for r in self._all_records() if r.start_time in window]

    def _all_records(self) -> list[StepRecord]:
        """Parse the export once per modification time."""
        try:
            mtime = self.export_path.stat().st_mtime
        except OSError as e:
            raise SourceUnavailableError(f"Apple Health export not found: {self.export_path}") from e
        if self._parsed is not None and self._parsed[0] == mtime:
            return self._parsed[1]

        try:
            root = ET.parse(self.export_path).getroot()
        except ET.ParseError as e:
            raise DataSourceError(f"Invalid Apple Health export {self.export_path}: {e}") from e

        records = []
        for rec in root.iter("Record"):
            if rec.attrib.get("type") != STEP_RECORD_TYPE:
                continue
            record = self._to_record(rec.attrib)
            if record is not None:
                records.append(record)
        logger.debug(f"Parsed {len(records)} step rows from {self.export_path}")
        self._parsed = (mtime, records)
        return records

    def _to_record(self, attrib: dict[str, str]) -> StepRecord | None:
        start = self._parse_health_datetime(attrib.get("startDate", ""))
        end = self._parse_health_datetime(attrib.get("endDate", ""))
        if start is None or end is None or start.tzinfo is None or end.tzinfo is None:
            logger.debug(f"Skipping step row without usable timestamps: {attrib}")
            return None
        try:
            count = round(float(attrib.get("value", "")))
        except (ValueError, OverflowError):
            logger.debug(f"Skipping step row with non-numeric value: {attrib}")
            return None

        source_id = attrib.get("sourceName") or attrib.get("sourceBundleId") or "unknown"
        key = "|".join(
            attrib.get(k, "") for k in ("type", "sourceName", "sourceVersion", "device", "startDate", "endDate", "value")
        )
        record_id = hashlib.sha1(key.encode("utf-8")).hexdigest()
        return StepRecord(id=record_id, source_id=source_id, start_time=start, end_time=end, count=count)

    @staticmethod
    def _parse_token(page_token: str | None) -> int:
        if page_token is None:
            return 0
        try:
            offset = int(page_token)
        except ValueError as e:
            raise DataSourceError(f"Malformed page token: {page_token!r}") from e
        if offset < 0:
            raise DataSourceError(f"Malformed page token: {page_token!r}")
        return offset

    @staticmethod
    def _parse_health_datetime(value: str) -> datetime | None:
        if not value:
            return None
        formats = [
            "%Y-%m-%d %H:%M:%S %z",
            "%Y-%m-%dT%H:%M:%S%z",
        ]
        for fmt in formats:
            try:
                return datetime.strptime(value, fmt)
            except ValueError:
                continue
        return None
