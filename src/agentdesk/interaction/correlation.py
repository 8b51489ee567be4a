"""Bidirectional tool id <-> request id index."""

from __future__ import annotations

from typing import Dict, Optional


class ToolCorrelationIndex:
    """Keeps ``tool_id -> request_id`` and its inverse in lockstep.

    Every change goes through ``bind``/``unbind_*``/``clear`` so a tool id
    maps to at most one live request id and vice versa.
    """

    def __init__(self) -> None:
        self._tool_to_request: Dict[str, str] = {}
        self._request_to_tool: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._tool_to_request)

    def bind(self, tool_id: str, request_id: str) -> None:
        tool_id = str(tool_id or "").strip()
        request_id = str(request_id or "").strip()
        if not tool_id or not request_id:
            return
        self.unbind_tool(tool_id)
        self.unbind_request(request_id)
        self._tool_to_request[tool_id] = request_id
        self._request_to_tool[request_id] = tool_id

    def request_for(self, tool_id: str) -> Optional[str]:
        return self._tool_to_request.get(str(tool_id or "").strip())

    def tool_for(self, request_id: str) -> Optional[str]:
        return self._request_to_tool.get(str(request_id or "").strip())

    def unbind_tool(self, tool_id: str) -> Optional[str]:
        request_id = self._tool_to_request.pop(str(tool_id or "").strip(), None)
        if request_id is not None:
            self._request_to_tool.pop(request_id, None)
        return request_id

    def unbind_request(self, request_id: str) -> Optional[str]:
        tool_id = self._request_to_tool.pop(str(request_id or "").strip(), None)
        if tool_id is not None:
            self._tool_to_request.pop(tool_id, None)
        return tool_id

    def clear(self) -> None:
        self._tool_to_request.clear()
        self._request_to_tool.clear()
