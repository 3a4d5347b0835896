"""stepwatch sync: one background sync cycle."""

from __future__ import annotations

import sys

import click

from .common import config_option, export_option

EXIT_RETRY = 75  # EX_TEMPFAIL


@click.command()
@config_option
@export_option
@click.option("--detail/--totals", default=False, help="Reconcile every record instead of using aggregate totals.")
def sync(config_path: str | None, export_path: str | None, detail: bool) -> None:
    """Run one background sync; exits 75 when the scheduler should retry."""
    from stepwatch.core.cli.common import create_source, load_settings
    from stepwatch.health.timebucket import resolve_zone
    from stepwatch.poller.background import BackgroundSync, WorkResult

    settings = load_settings(config_path, export_path)
    # Plugin config errors exit 1 here; only read failures exit 75
    source = create_source(settings)
    worker = BackgroundSync(
        lambda: source,
        settings.steps.preferred_source,
        resolve_zone(settings.steps.timezone),
        detail=detail,
    )
    result = worker.do_work()
    outcome = worker.last_outcome

    if result == WorkResult.RETRY:
        reason = outcome.reason if outcome else "source error"
        click.echo(f"retry: {reason}")
        sys.exit(EXIT_RETRY)

    if outcome is not None and outcome.ok:
        click.echo(f"success: hour={outcome.hourly_steps} day={outcome.daily_steps}")
    else:
        click.echo("success: step source unavailable, nothing to sync")
