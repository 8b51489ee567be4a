"""Forwards engine stream events to the UI and mirrors file writes to preview."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, Optional

from agentdesk.kernel.debug_log import DebugLogWriter
from agentdesk.kernel.types import UIEvent
from agentdesk.stream.events import FILE_WRITE_TOOL, HUMAN_INTERACT_TOOL, TOOL_STREAMING, TOOL_USE
from agentdesk.stream.partial_json import parse_partial_object
from agentdesk.ui.surface import PreviewProvider, UISurface

PREVIEW_MARKER = "file-view"
PREVIEW_KIND = "code"
DEFAULT_FILE_NAME = "file.txt"

ToolIdSink = Callable[[str, str], None]


class StreamDispatcher:
    """Delivers one task's events in emission order.

    Plain forwarding happens synchronously inside ``dispatch``; only the
    preview side channel can suspend, and it is serialized per task so a
    slow navigation for one task never holds back another task's events.
    """

    def __init__(
        self,
        surface: UISurface,
        *,
        preview_provider: Optional[PreviewProvider] = None,
        preview_url: str = "http://localhost:5173/file-view",
        tool_id_sink: Optional[ToolIdSink] = None,
        debug_log: Optional[DebugLogWriter] = None,
    ) -> None:
        self._surface = surface
        self._preview_provider = preview_provider
        self._preview_url = preview_url
        self._tool_id_sink = tool_id_sink
        self._debug_log = debug_log or DebugLogWriter.disabled()
        self._task_locks: Dict[str, asyncio.Lock] = {}

    async def dispatch(self, task_id: Optional[str], event: UIEvent) -> None:
        if self._surface is None or self._surface.is_destroyed():
            return

        event_type = str(event.get("type") or "")
        tool_name = str(event.get("toolName") or "")
        key = str(task_id or event.get("taskId") or "")
        if event_type == TOOL_USE and tool_name == HUMAN_INTERACT_TOOL and event.get("toolId"):
            if self._tool_id_sink is not None:
                self._tool_id_sink(key, str(event.get("toolId")))

        self._surface.send(event)

        if event_type != TOOL_STREAMING or tool_name != FILE_WRITE_TOOL:
            return

        args = parse_partial_object(str(event.get("paramsText") or ""))
        if args is None or not args.get("content"):
            return

        lock = self._task_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._task_locks[key] = lock
        async with lock:
            await self._deliver_preview(key, args)

    @property
    def preview_url(self) -> str:
        return self._preview_url

    def set_preview_url(self, url: str) -> None:
        self._preview_url = str(url or "").strip() or self._preview_url

    def forget(self, task_id: str) -> None:
        lock = self._task_locks.get(task_id)
        if lock is not None and not lock.locked():
            self._task_locks.pop(task_id, None)

    async def _deliver_preview(self, task_id: str, args: Dict[str, Any]) -> None:
        view = self._preview_provider() if self._preview_provider is not None else None
        if view is None:
            return
        file_name = str(args.get("fileName") or args.get("path") or DEFAULT_FILE_NAME)
        content = str(args.get("content"))
        try:
            if PREVIEW_MARKER not in (view.current_url() or ""):
                await view.navigate(self._preview_url)
            view.send_file_update(PREVIEW_KIND, content, file_name)
        except Exception as exc:
            self._debug_log.write_entry(
                level="warn",
                component="stream",
                kind="preview_failed",
                task_id=task_id,
                message="file preview delivery failed",
                data={"error": str(exc), "file_name": file_name},
            )
