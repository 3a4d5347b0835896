"""stepwatch watch: live foreground polling."""

from __future__ import annotations

import asyncio

import click

from .common import config_option, export_option


@click.command()
@config_option
@export_option
@click.option("--duration", type=float, default=None, help="Stop after this many seconds (default: run until Ctrl+C).")
def watch(config_path: str | None, export_path: str | None, duration: float | None) -> None:
    """Poll the step source and print every change."""
    from stepwatch.core.cli.common import create_source, load_settings

    settings = load_settings(config_path, export_path)
    source = create_source(settings)

    click.echo("Watching steps. Press Ctrl+C to stop.\n")
    try:
        asyncio.run(_watch(settings, source, duration))
    except KeyboardInterrupt:
        click.echo("\nStopped.")


async def _watch(settings, source, duration: float | None) -> None:  # type: ignore[no-untyped-def]
    """Wire the controller (and optional background scheduler) and run."""
    from stepwatch.core.events import BACKGROUND_SYNC_RETRY, STEPS_DAY_ROLLOVER, EventBus
    from stepwatch.health.registry import default_registry
    from stepwatch.health.service import StepService
    from stepwatch.health.timebucket import resolve_zone
    from stepwatch.poller.backoff import Backoff, BackoffConfig
    from stepwatch.poller.background import BackgroundSync
    from stepwatch.poller.controller import PollingController
    from stepwatch.poller.scheduler import BackgroundScheduler

    bus = EventBus()
    bus.on(STEPS_DAY_ROLLOVER, lambda e: click.echo("-- new day --"))
    bus.on(
        BACKGROUND_SYNC_RETRY,
        lambda e: click.echo(f"background sync failed, retry #{e.payload['retry_count']} in {e.payload['delay']:g}s"),
    )

    zone = resolve_zone(settings.steps.timezone)
    service = StepService(source, settings.steps.preferred_source, zone)
    controller = PollingController(
        service,
        clock_interval=settings.polling.clock_interval,
        refresh_interval=settings.polling.refresh_interval,
        backoff=Backoff(BackoffConfig(settings.polling.backoff_base, settings.polling.backoff_max)),
        event_bus=bus,
    )

    shown: list[tuple] = []

    def _print(snapshot) -> None:  # type: ignore[no-untyped-def]
        # Clock ticks change only the timestamp; print when the counts or flags move
        key = _display_key(snapshot)
        if controller.last_outcome is not None and (not shown or shown[-1] != key):
            shown[:] = [key]
            click.echo(render_line(snapshot))

    controller.store.subscribe(_print)

    scheduler = None
    if settings.background.enabled:
        # The background job gets its own source instance each run
        registry = default_registry()
        worker = BackgroundSync(
            lambda: registry.create(settings.source.name, **settings.source.options),
            settings.steps.preferred_source,
            zone,
        )
        scheduler = BackgroundScheduler(
            worker,
            interval_minutes=settings.background.interval_minutes,
            flex_minutes=settings.background.flex_minutes,
            retry_base_seconds=settings.background.retry_base_seconds,
            event_bus=bus,
        )
        scheduler.start()

    controller.start()
    try:
        if duration is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(duration)
    finally:
        await controller.stop()
        if scheduler:
            scheduler.shutdown()


def _display_key(snapshot) -> tuple:  # type: ignore[no-untyped-def]
    return (
        snapshot.hourly_steps,
        snapshot.daily_steps,
        snapshot.data_source_available,
        snapshot.data_source_needs_update,
        snapshot.permissions_granted,
    )


def render_line(snapshot) -> str:  # type: ignore[no-untyped-def]
    if not snapshot.data_source_available:
        hint = f" ({snapshot.install_action_uri})" if snapshot.install_action_uri else ""
        state = "needs update" if snapshot.data_source_needs_update else "unavailable"
        return f"{snapshot.current_date_time}  step source {state}{hint}"
    if not snapshot.permissions_granted:
        return f"{snapshot.current_date_time}  waiting for permission to read steps"
    return f"{snapshot.current_date_time}  hour: {snapshot.hourly_steps:>6}  today: {snapshot.daily_steps:>6}"
