"""Domain event dispatch."""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Awaitable, Callable, DefaultDict, Mapping

EventPayload = Mapping[str, Any]
EventListener = Callable[[EventPayload], Awaitable[None]]

SESSION_COMMITTED = "session.committed"
BONUS_GRANTED = "bonus.granted"
BONUS_REVOKED = "bonus.revoked"
RANK_CHANGED = "rank.changed"
ACCOUNT_RESET = "account.reset"
LIMIT_WARNING = "limit.warning"


class EventBus:
    """Simple async pub-sub the host glue subscribes to for notifications."""

    def __init__(self) -> None:
        self._listeners: DefaultDict[str, list[EventListener]] = defaultdict(list)

    def subscribe(self, event_name: str, listener: EventListener) -> None:
        self._listeners[event_name].append(listener)

    async def publish(self, event_name: str, payload: EventPayload) -> None:
        for listener in list(self._listeners.get(event_name, ())):
            await listener(payload)
