"""Shared setup logic for CLI commands."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

if TYPE_CHECKING:
    from stepwatch.core.config import Config
    from stepwatch.core.config_schema import StepwatchConfig
    from stepwatch.health.source import StepDataSource

config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Config file (default: $STEPWATCH_CONFIG or ~/.stepwatch/config.yaml).",
)
export_option = click.option(
    "--export",
    "export_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Apple Health export.xml to read steps from.",
)


def load_config(config_path: str | None = None) -> Config:
    """Load config from *config_path*, falling back to the usual locations."""
    from stepwatch.core.config import Config, find_config_file

    return Config(config_file=find_config_file(config_path))


def load_settings(config_path: str | None, export_path: str | None) -> StepwatchConfig:
    """Validate config, apply ``--export`` and configure logging."""
    from stepwatch.core.exceptions import ConfigurationError
    from stepwatch.core.utils.logging import setup_logging

    config = load_config(config_path)
    if export_path:
        config.set("source.options.export_path", export_path)
    try:
        settings = config.validated()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    log_file = config.log_file_path()
    if log_file:
        config.ensure_directories()
    setup_logging(level=settings.logging.level, log_file=log_file)
    return settings


def create_source(settings: StepwatchConfig) -> StepDataSource:
    """Instantiate the configured step source plugin."""
    from stepwatch.health.registry import default_registry

    registry = default_registry()
    try:
        return registry.create(settings.source.name, **settings.source.options)
    except KeyError as e:
        raise click.ClickException(str(e.args[0])) from e
    except TypeError as e:
        raise click.ClickException(f"Bad options for source '{settings.source.name}': {e}") from e
