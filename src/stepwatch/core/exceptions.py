"""
stepwatch exception hierarchy.

All stepwatch exceptions inherit from StepwatchError, making it easy for
consumers to catch library-level errors while still distinguishing
specific failure modes.
"""


class StepwatchError(Exception):
    """Base exception class for all stepwatch errors."""


class ConfigurationError(StepwatchError):
    """Raised for configuration errors (missing keys, invalid values)."""


class DataSourceError(StepwatchError):
    """Raised by a step data source when a read fails (transient)."""


class PermissionDeniedError(DataSourceError):
    """Raised when read permission is missing or revoked mid-read."""


class SourceUnavailableError(DataSourceError):
    """Raised when the underlying health-data provider is not installed or reachable."""
