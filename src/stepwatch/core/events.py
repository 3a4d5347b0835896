"""In-process notifications about step refreshes and background syncs.

The polling controller and the background scheduler publish here; the CLI
(or any embedding application) subscribes to print or forward them.

Usage::

    from stepwatch.core.events import STEPS_REFRESHED, EventBus

    bus = EventBus()
    unsubscribe = bus.on(STEPS_REFRESHED, lambda e: print(e.payload["daily_steps"]))
    await bus.publish(STEPS_REFRESHED, source="poller", hourly_steps=12, daily_steps=340)
"""

from __future__ import annotations

import inspect
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from loguru import logger

STEPS_REFRESHED = "steps.refreshed"
STEPS_REFRESH_FAILED = "steps.refresh_failed"
STEPS_DAY_ROLLOVER = "steps.day_rollover"
BACKGROUND_SYNC_COMPLETE = "background.sync_complete"
BACKGROUND_SYNC_RETRY = "background.sync_retry"

WILDCARD = "*"

Hook = Callable[["Event"], None] | Callable[["Event"], Awaitable[None]]


@dataclass(frozen=True)
class Event:
    name: str
    payload: dict[str, Any] = field(default_factory=dict)
    source: str = ""
    emitted_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class EventBus:
    """Publish/subscribe with sync or async hooks.

    Hooks run one after another in subscription order, specific hooks before
    wildcard ones.  A failing hook is logged and does not stop the rest.
    """

    def __init__(self) -> None:
        self._hooks: dict[str, list[Hook]] = defaultdict(list)

    def on(self, event_name: str, hook: Hook) -> Callable[[], None]:
        """Subscribe *hook* to *event_name*; returns a function that unsubscribes it."""
        self._hooks[event_name].append(hook)
        return lambda: self.off(event_name, hook)

    def on_all(self, hook: Hook) -> Callable[[], None]:
        return self.on(WILDCARD, hook)

    def off(self, event_name: str, hook: Hook) -> None:
        hooks = self._hooks.get(event_name, [])
        if hook in hooks:
            hooks.remove(hook)

    def subscribers(self, event_name: str) -> int:
        return len(self._hooks.get(event_name, [])) + len(self._hooks.get(WILDCARD, []))

    async def emit(self, event: Event) -> None:
        hooks = [*self._hooks.get(event.name, []), *self._hooks.get(WILDCARD, [])]
        for hook in hooks:
            try:
                result = hook(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.warning(f"Hook for {event.name} failed: {exc}")

    async def publish(self, event_name: str, *, source: str = "", **payload: Any) -> Event:
        """Build an :class:`Event` from keyword arguments and emit it."""
        event = Event(name=event_name, payload=payload, source=source)
        await self.emit(event)
        return event
