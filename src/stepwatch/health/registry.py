"""
Step-source plugin registry.

Discovers sources at runtime via ``importlib.metadata`` entry points
(group: ``stepwatch.step_sources``).  Third-party packages can register
sources in their own ``pyproject.toml``:

    [project.entry-points."stepwatch.step_sources"]
    my_provider = "my_package.source:MySource"
"""

from importlib.metadata import entry_points
from typing import Any

from loguru import logger

from .source import StepDataSource

ENTRY_POINT_GROUP = "stepwatch.step_sources"

_REQUIRED_METHODS = ("read_window", "read_aggregate_total", "status", "has_permissions", "install_uri")


def _looks_like_source(cls: Any) -> bool:
    # issubclass() is not supported for protocols with data members
    return isinstance(cls, type) and all(callable(getattr(cls, m, None)) for m in _REQUIRED_METHODS)


class StepSourceRegistry:
    """Discover and manage step data source plugins."""

    def __init__(self):
        self._sources: dict[str, type] = {}

    def discover(self) -> dict[str, type]:
        """Scan entry points and return {name: source_class}."""
        eps = entry_points(group=ENTRY_POINT_GROUP)
        for ep in eps:
            try:
                cls = ep.load()
            except Exception as e:
                logger.warning(f"Failed to load step source '{ep.name}': {e}")
                continue
            if _looks_like_source(cls):
                self._sources[ep.name] = cls
                logger.debug(f"Discovered step source: {ep.name}")
            else:
                logger.warning(f"Entry point '{ep.name}' does not implement StepDataSource, skipping")

        return dict(self._sources)

    def register(self, name: str, source_class: type) -> None:
        """Manually register a source (useful for testing)."""
        self._sources[name] = source_class

    def get(self, name: str) -> type | None:
        return self._sources.get(name)

    def list_names(self) -> list[str]:
        return list(self._sources.keys())

    def create(self, name: str, **config: Any) -> StepDataSource:
        """Instantiate a source by name with the given config."""
        cls = self._sources.get(name)
        if cls is None:
            raise KeyError(f"No step source registered as '{name}'. Available: {self.list_names()}")
        return cls(**config)


def default_registry() -> StepSourceRegistry:
    """Registry pre-loaded with the bundled sources plus any discovered plugins."""
    from .plugins.apple_health_export import AppleHealthStepSource

    registry = StepSourceRegistry()
    registry.register(AppleHealthStepSource.name, AppleHealthStepSource)
    registry.discover()
    return registry
