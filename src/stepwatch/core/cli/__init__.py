"""stepwatch CLI: entry point for watch, sync and history commands."""

import click

from stepwatch import __version__


@click.group()
@click.version_option(version=__version__, package_name="stepwatch")
def main() -> None:
    """stepwatch: hourly and daily step counts from your health data."""


# Register subcommands
from .history_cmd import history
from .sync_cmd import sync
from .watch_cmd import watch

main.add_command(watch)
main.add_command(sync)
main.add_command(history)
