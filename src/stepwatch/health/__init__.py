"""
Step data: models, time bucketing, reconciliation, sources and history.

Core module (stdlib + loguru only).  Concrete sources live in
``stepwatch.health.plugins`` and are discovered through the
``stepwatch.step_sources`` entry-point group.
"""

from .history import HistoryStore, rebuild_history
from .models import (
    Capabilities,
    HourlyBucket,
    HourlyStepRecord,
    ReconcileResult,
    RefreshOutcome,
    RefreshStatus,
    SourceStatus,
    StepPage,
    StepRecord,
    TimeWindow,
)
from .reconciler import reconcile
from .registry import StepSourceRegistry
from .service import StepService
from .source import BaseStepSource, StepDataSource
from .timebucket import day_index, day_window, hour_index, hour_window

__all__ = [
    "BaseStepSource",
    "Capabilities",
    "HistoryStore",
    "HourlyBucket",
    "HourlyStepRecord",
    "ReconcileResult",
    "RefreshOutcome",
    "RefreshStatus",
    "SourceStatus",
    "StepDataSource",
    "StepPage",
    "StepRecord",
    "StepService",
    "StepSourceRegistry",
    "TimeWindow",
    "day_index",
    "day_window",
    "hour_index",
    "hour_window",
    "rebuild_history",
    "reconcile",
]
