"""stepwatch history: one refresh, printed as a table."""

from __future__ import annotations

import asyncio

import click

from .common import config_option, export_option


@click.command()
@config_option
@export_option
@click.option("--json", "as_json", is_flag=True, help="Print the snapshot as JSON.")
def history(config_path: str | None, export_path: str | None, as_json: bool) -> None:
    """Show today's totals, the hourly history and per-source totals."""
    from stepwatch.core.cli.common import create_source, load_settings
    from stepwatch.health.service import StepService
    from stepwatch.health.timebucket import resolve_zone
    from stepwatch.poller.controller import PollingController

    settings = load_settings(config_path, export_path)
    zone = resolve_zone(settings.steps.timezone)
    controller = PollingController(StepService(create_source(settings), settings.steps.preferred_source, zone))

    async def _once():  # type: ignore[no-untyped-def]
        await controller.tick()
        return await controller.refresh_now()

    outcome = asyncio.run(_once())
    snapshot = controller.store.snapshot

    if outcome is None:
        raise click.ClickException("Could not read steps: refresh was discarded")
    if not outcome.ok:
        reason = outcome.reason or outcome.status.value
        raise click.ClickException(f"Could not read steps: {reason}")

    if as_json:
        import json

        payload = snapshot.to_dict()
        payload["by_source"] = outcome.by_source
        click.echo(json.dumps(payload, indent=2))
        return

    click.echo(snapshot.current_date_time)
    click.echo(f"This hour: {snapshot.hourly_steps}")
    click.echo(f"Today:     {snapshot.daily_steps}")
    if snapshot.step_history:
        click.echo("\nEarlier today:")
        for row in snapshot.step_history:
            click.echo(f"  {row.label}  {row.steps:>6}")
    click.echo("\nBy source:")
    for source, steps in sorted(outcome.by_source.items()):
        marker = "COUNTED" if source == settings.steps.preferred_source else "IGNORED"
        click.echo(f"  {source}: {steps} [{marker}]")
