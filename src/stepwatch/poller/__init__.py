"""Foreground polling, background sync and the presentation snapshot."""

from .backoff import Backoff, BackoffConfig, PollState
from .background import BackgroundSync, WorkResult
from .controller import ControllerPhase, PollingController
from .scheduler import BackgroundScheduler
from .state import SnapshotStore, StepSnapshot

__all__ = [
    "Backoff",
    "BackoffConfig",
    "BackgroundScheduler",
    "BackgroundSync",
    "ControllerPhase",
    "PollState",
    "PollingController",
    "SnapshotStore",
    "StepSnapshot",
    "WorkResult",
]
