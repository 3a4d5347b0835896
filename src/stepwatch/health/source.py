"""
StepDataSource protocol and base class.

Any health-data provider (Health Connect, an Apple Health export, a test
fake, …) implements this interface so the reconciler and the poller can
treat them uniformly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Any, Protocol, runtime_checkable

from loguru import logger

from stepwatch.core.exceptions import DataSourceError

from .models import SourceStatus, StepPage, StepRecord, TimeWindow

# Guard against a provider that keeps handing back continuation tokens
MAX_PAGES = 10_000


@runtime_checkable
class StepDataSource(Protocol):
    """Protocol that every step data source must satisfy."""

    name: str
    supports_aggregate: bool

    def read_window(self, window: TimeWindow) -> Iterator[StepRecord]:
        """Lazily yield every record in *window*, across all pages."""
        ...

    def read_aggregate_total(self, window: TimeWindow, source_id: str | None = None) -> int:
        """Return a provider-computed step total for *window*, optionally for one source."""
        ...

    def status(self) -> SourceStatus:
        """Report whether the provider is installed and current."""
        ...

    def has_permissions(self) -> bool:
        """Check that read access has been granted."""
        ...

    def install_uri(self) -> str | None:
        """Remediation link when the provider is missing or outdated."""
        ...


class BaseStepSource(ABC):
    """Optional ABC providing shared plumbing for step sources.

    Subclasses implement :meth:`read_page`; pagination, stats and the
    capability defaults come for free.
    """

    name: str = "base"
    supports_aggregate: bool = False
    install_url: str | None = None

    def __init__(self, **config: Any):
        self.config = config
        self.stats: dict[str, int] = {"pages": 0, "records": 0, "errors": 0}

    @abstractmethod
    def read_page(self, window: TimeWindow, page_token: str | None = None) -> StepPage:
        """Read one page of records overlapping *window*."""

    def read_window(self, window: TimeWindow) -> Iterator[StepRecord]:
        """Drain every page of *window*, following the continuation token."""
        token: str | None = None
        seen_tokens: set[str] = set()
        for page_num in range(1, MAX_PAGES + 1):
            try:
                page = self.read_page(window, token)
            except Exception:
                self.stats["errors"] += 1
                raise
            self.stats["pages"] += 1
            self.stats["records"] += len(page.records)
            logger.debug(f"{self.name}: page {page_num}: {len(page.records)} records")
            yield from page.records

            token = page.next_page_token
            if token is None:
                return
            if token in seen_tokens:
                self.stats["errors"] += 1
                raise DataSourceError(f"{self.name}: page token {token!r} repeated")
            seen_tokens.add(token)
        self.stats["errors"] += 1
        raise DataSourceError(f"{self.name}: more than {MAX_PAGES} pages for {window}")

    def read_aggregate_total(self, window: TimeWindow, source_id: str | None = None) -> int:
        raise NotImplementedError(f"{self.name} does not provide aggregate totals")

    def status(self) -> SourceStatus:
        return SourceStatus.AVAILABLE

    def has_permissions(self) -> bool:
        return True

    def install_uri(self) -> str | None:
        """Return ``install_url`` unless the provider is already available."""
        if self.status() == SourceStatus.AVAILABLE:
            return None
        return self.install_url

    def get_config_schema(self) -> dict[str, Any]:
        """Override to advertise required config keys."""
        return {}
