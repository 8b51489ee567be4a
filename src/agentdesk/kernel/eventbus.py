"""In-process event bus for decoupled UI listeners."""

from __future__ import annotations

from collections import defaultdict
from typing import DefaultDict, List

from agentdesk.kernel.types import EventHandler, UIEvent


class EventBus:
    """Simple pub-sub keyed by the event ``type`` field."""

    def __init__(self) -> None:
        self._subscribers: DefaultDict[str, List[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        self._subscribers[event_type].append(handler)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        handlers = self._subscribers.get(event_type)
        if not handlers or handler not in handlers:
            return
        handlers.remove(handler)

    def publish(self, event: UIEvent) -> None:
        event_type = str(event.get("type") or "")
        handlers = list(self._subscribers.get(event_type, []))
        handlers += list(self._subscribers.get("*", []))
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                # Listeners never break the publishing flow.
                continue
