"""UI surface contracts and in-process implementations."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

from agentdesk.kernel.eventbus import EventBus
from agentdesk.kernel.types import UIEvent


class UISurface(Protocol):
    """Receives every event destined for the operator."""

    def is_destroyed(self) -> bool:
        ...

    def send(self, event: UIEvent) -> None:
        ...


class PreviewSurface(Protocol):
    """Companion view that can show streamed file content."""

    def current_url(self) -> str:
        ...

    async def navigate(self, url: str) -> None:
        """Load ``url`` and return once loading has finished."""
        ...

    def send_file_update(self, kind: str, content: str, file_name: str) -> None:
        ...


PreviewProvider = Callable[[], Optional[PreviewSurface]]


class BusSurface:
    """UI surface that publishes events on an in-process EventBus."""

    def __init__(self, event_bus: EventBus) -> None:
        self._event_bus = event_bus
        self._destroyed = False

    def is_destroyed(self) -> bool:
        return self._destroyed

    def destroy(self) -> None:
        self._destroyed = True

    def send(self, event: UIEvent) -> None:
        if self._destroyed:
            return
        self._event_bus.publish(dict(event))


@dataclass(frozen=True)
class FileUpdate:
    kind: str
    content: str
    file_name: str


class PreviewBuffer:
    """Headless preview surface keeping the latest file updates in memory."""

    def __init__(self, url: str = "about:blank", load_delay: float = 0.0) -> None:
        self._url = url
        self._load_delay = max(0.0, float(load_delay))
        self.updates: List[FileUpdate] = []
        self.navigations: List[str] = []

    def current_url(self) -> str:
        return self._url

    async def navigate(self, url: str) -> None:
        self.navigations.append(url)
        await asyncio.sleep(self._load_delay)
        self._url = url

    def send_file_update(self, kind: str, content: str, file_name: str) -> None:
        self.updates.append(FileUpdate(kind=kind, content=content, file_name=file_name))

    @property
    def latest(self) -> Optional[FileUpdate]:
        if not self.updates:
            return None
        return self.updates[-1]
