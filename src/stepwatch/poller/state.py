"""Presentation state: the snapshot the UI binds to.

The snapshot is immutable; :class:`SnapshotStore` replaces it in a single
assignment so readers never see a half-applied update, and notifies
subscribers in the order updates were produced.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import asdict, dataclass, field, replace
from typing import Any

from loguru import logger

from stepwatch.health.models import HourlyStepRecord

Subscriber = Callable[["StepSnapshot"], None]


@dataclass(frozen=True)
class StepSnapshot:
    """Everything the UI renders, in one value."""

    current_date_time: str = ""
    hourly_steps: int = 0
    daily_steps: int = 0
    data_source_available: bool = False
    data_source_needs_update: bool = False
    install_action_uri: str | None = None
    permissions_granted: bool = False
    step_history: tuple[HourlyStepRecord, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["step_history"] = [asdict(r) for r in self.step_history]
        return data


class SnapshotStore:
    """Holds the current :class:`StepSnapshot` and fans out changes."""

    def __init__(self, initial: StepSnapshot | None = None):
        self._snapshot = initial or StepSnapshot()
        self._subscribers: list[Subscriber] = []
        self.version = 0

    @property
    def snapshot(self) -> StepSnapshot:
        return self._snapshot

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback*; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def update(self, **changes: Any) -> StepSnapshot:
        """Replace the snapshot with a copy carrying *changes*."""
        if "step_history" in changes:
            changes["step_history"] = tuple(changes["step_history"])
        new = replace(self._snapshot, **changes)
        if new == self._snapshot:
            return new
        self._snapshot = new
        self.version += 1
        for callback in list(self._subscribers):
            try:
                callback(new)
            except Exception as exc:
                logger.warning(f"Snapshot subscriber failed: {exc}")
        return new
