"""Human-in-the-loop interaction broker.

Parks engine-side flows on a future until the operator answers, the owning
task is aborted, or the whole broker is swept (abort-all, config reload,
shutdown). Responses may address a request by its broker-minted request id
or by the tool id the engine streamed just before asking.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping, Optional, Union
from urllib.parse import urlparse

from agentdesk.engine.types import AgentContext
from agentdesk.interaction.correlation import ToolCorrelationIndex
from agentdesk.interaction.types import (
    HumanResponse,
    InteractionAbortedError,
    InteractionCancelledError,
    InteractionError,
    InteractionKind,
    InteractionPayload,
    InteractionSnapshot,
    PendingInteractionRequest,
    SurfaceUnavailableError,
)
from agentdesk.kernel.debug_log import DebugLogWriter
from agentdesk.kernel.types import EventSink, UIEvent, new_id, now_ms
from agentdesk.stream.events import HUMAN_INTERACTION, interaction_result_event
from agentdesk.ui.surface import PreviewProvider, UISurface

TASK_ABORTED_MESSAGE = "Task aborted during human interaction"
SURFACE_DESTROYED_MESSAGE = "UI surface destroyed"
DEFAULT_CANCEL_MESSAGE = "Human interaction cancelled"


class InteractionBroker:
    """Owns every outstanding human-interaction request."""

    def __init__(
        self,
        surface: UISurface,
        *,
        preview_provider: Optional[PreviewProvider] = None,
        debug_log: Optional[DebugLogWriter] = None,
        event_sink: Optional[EventSink] = None,
    ) -> None:
        self._surface = surface
        self._preview_provider = preview_provider
        self._debug_log = debug_log or DebugLogWriter.disabled()
        self._event_sink = event_sink
        self._pending: Dict[str, PendingInteractionRequest] = {}
        self._correlation = ToolCorrelationIndex()
        self._staged_tool_ids: Dict[str, str] = {}

    @property
    def correlation(self) -> ToolCorrelationIndex:
        return self._correlation

    def staged_tool_id(self, task_id: str) -> Optional[str]:
        return self._staged_tool_ids.get(str(task_id or ""))

    def stage_tool_id(self, task_id: str, tool_id: str) -> None:
        """Remember the tool id a task streamed right before asking for input."""

        key = str(task_id or "")
        normalized = str(tool_id or "").strip()
        if normalized:
            self._staged_tool_ids[key] = normalized
        else:
            self._staged_tool_ids.pop(key, None)

    def clear_staged(self, task_id: str) -> None:
        self._staged_tool_ids.pop(str(task_id or ""), None)

    def pending_count(self) -> int:
        return len(self._pending)

    def has_pending(self) -> bool:
        return bool(self._pending)

    def snapshot(self) -> List[InteractionSnapshot]:
        return [
            InteractionSnapshot(
                request_id=pending.request_id,
                task_id=pending.task_id,
                agent_name=pending.agent_name,
                kind=pending.kind,
                created_at_ms=pending.created_at_ms,
                tool_id=self._correlation.tool_for(pending.request_id) or "",
            )
            for pending in self._pending.values()
        ]

    async def request_human_interaction(
        self,
        agent_context: Optional[AgentContext],
        payload: InteractionPayload,
    ) -> Any:
        request_id = new_id("hreq")
        task_context = agent_context.context if agent_context is not None else None
        task_id = task_context.task_id if task_context is not None else ""
        agent_name = agent_context.agent_name if agent_context is not None else ""
        tool_id = self._staged_tool_ids.pop(task_id, None)

        if self._surface_unavailable():
            self._log(
                "warn",
                "rejected",
                "interaction rejected: UI surface unavailable",
                task_id=task_id,
                request_id=request_id,
                data={"kind": payload.kind.value},
            )
            raise SurfaceUnavailableError(SURFACE_DESTROYED_MESSAGE)

        future: "asyncio.Future[Any]" = asyncio.get_running_loop().create_future()
        pending = PendingInteractionRequest(
            request_id=request_id,
            task_id=task_id,
            agent_name=agent_name,
            kind=payload.kind,
            created_at_ms=now_ms(),
            future=future,
        )
        self._pending[request_id] = pending
        if tool_id:
            self._correlation.bind(tool_id, request_id)

        signal = task_context.controller.signal if task_context is not None else None

        def _on_abort(reason: str) -> None:
            self._abort_pending(request_id, reason)

        if signal is not None:
            signal.add_listener(_on_abort)

        try:
            if not future.done():
                self._surface.send(self._request_event(pending, payload))
                self._emit(
                    "interaction.requested",
                    {
                        "request_id": request_id,
                        "task_id": task_id,
                        "agent_name": agent_name,
                        "kind": payload.kind.value,
                        "tool_id": tool_id or "",
                    },
                )
            return await future
        finally:
            if signal is not None:
                signal.remove_listener(_on_abort)
            if self._pending.get(request_id) is pending:
                # The waiting coroutine itself went away (e.g. cancelled).
                self._discard(request_id)

    def handle_human_response(self, response: Union[HumanResponse, Mapping[str, Any]]) -> bool:
        answer = HumanResponse.coerce(response)
        identifier = answer.request_id

        actual_request_id = identifier
        pending = self._pending.get(identifier) if identifier else None
        if pending is None and identifier:
            mapped = self._correlation.request_for(identifier)
            if mapped:
                pending = self._pending.get(mapped)
                actual_request_id = mapped

        if pending is None:
            self._log(
                "debug",
                "correlation_miss",
                "no pending interaction for response",
                request_id=identifier,
                data={"success": answer.success},
            )
            return False

        self._discard(actual_request_id)

        if answer.success:
            pending.resolve(answer.result)
            if not self._surface_unavailable():
                self._surface.send(interaction_result_event(identifier, answer.result))
            self._emit(
                "interaction.resolved",
                {"request_id": actual_request_id, "task_id": pending.task_id, "addressed_as": identifier},
            )
        else:
            pending.reject(InteractionCancelledError(answer.error or DEFAULT_CANCEL_MESSAGE))
            self._emit(
                "interaction.rejected",
                {
                    "request_id": actual_request_id,
                    "task_id": pending.task_id,
                    "reason": answer.error or DEFAULT_CANCEL_MESSAGE,
                },
            )
        return True

    def reject_all_human_requests(self, error: BaseException) -> None:
        pending_items = list(self._pending.values())
        self._pending.clear()
        self._correlation.clear()
        self._staged_tool_ids.clear()
        if not pending_items:
            return
        for pending in pending_items:
            pending.reject(error)
        self._log(
            "info",
            "reject_all",
            "rejected all pending interactions",
            data={"count": len(pending_items), "error": str(error)},
        )
        self._emit("interaction.rejected_all", {"count": len(pending_items), "reason": str(error)})

    def destroy(self) -> None:
        self.reject_all_human_requests(InteractionError("Interaction broker destroyed"))

    async def confirm(self, agent_context: Optional[AgentContext], prompt: str) -> bool:
        result = await self.request_human_interaction(
            agent_context,
            InteractionPayload(kind=InteractionKind.CONFIRM, prompt=prompt),
        )
        return bool(result)

    async def input(self, agent_context: Optional[AgentContext], prompt: str) -> str:
        result = await self.request_human_interaction(
            agent_context,
            InteractionPayload(kind=InteractionKind.INPUT, prompt=prompt),
        )
        return "" if result is None else str(result)

    async def select(
        self,
        agent_context: Optional[AgentContext],
        prompt: str,
        options: List[str],
        multiple: bool = False,
    ) -> List[str]:
        result = await self.request_human_interaction(
            agent_context,
            InteractionPayload(
                kind=InteractionKind.SELECT,
                prompt=prompt,
                options=list(options or []),
                multiple=bool(multiple),
            ),
        )
        return list(result) if isinstance(result, list) else []

    async def request_help(
        self,
        agent_context: Optional[AgentContext],
        help_type: str,
        prompt: str,
    ) -> bool:
        result = await self.request_human_interaction(
            agent_context,
            InteractionPayload(
                kind=InteractionKind.REQUEST_HELP,
                prompt=prompt,
                help_type=str(help_type or ""),
                help_context=self._help_context(),
            ),
        )
        return bool(result)

    def _help_context(self) -> Optional[Dict[str, str]]:
        if self._preview_provider is None:
            return None
        try:
            view = self._preview_provider()
            url = view.current_url() if view is not None else ""
        except Exception:
            return None
        if not url or not url.startswith("http"):
            return None
        host = urlparse(url).hostname or ""
        return {"siteName": host, "actionUrl": url}

    def _abort_pending(self, request_id: str, reason: str) -> None:
        pending = self._pending.get(request_id)
        if pending is None:
            return
        self._discard(request_id)
        pending.reject(InteractionAbortedError(TASK_ABORTED_MESSAGE))
        self._emit(
            "interaction.aborted",
            {"request_id": request_id, "task_id": pending.task_id, "reason": reason},
        )

    def _discard(self, request_id: str) -> None:
        self._pending.pop(request_id, None)
        self._correlation.unbind_request(request_id)

    def _surface_unavailable(self) -> bool:
        return self._surface is None or self._surface.is_destroyed()

    @staticmethod
    def _request_event(pending: PendingInteractionRequest, payload: InteractionPayload) -> UIEvent:
        event: UIEvent = {
            "type": HUMAN_INTERACTION,
            "requestId": pending.request_id,
            "taskId": pending.task_id,
            "agentName": pending.agent_name,
            "kind": payload.kind.value,
            "prompt": payload.prompt,
            "timestamp": pending.created_at_ms,
        }
        if payload.kind == InteractionKind.SELECT:
            event["options"] = list(payload.options)
            event["multiple"] = payload.multiple
        if payload.kind == InteractionKind.REQUEST_HELP:
            event["helpType"] = payload.help_type
            if payload.help_context:
                event["helpContext"] = dict(payload.help_context)
        return event

    def _log(
        self,
        level: str,
        kind: str,
        message: str,
        *,
        task_id: Optional[str] = None,
        request_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._debug_log.write_entry(
            level=level,
            component="interaction",
            kind=kind,
            task_id=task_id,
            request_id=request_id,
            message=message,
            data=data,
        )

    def _emit(self, event_type: str, payload: Dict[str, Any]) -> None:
        self._debug_log.write_entry(
            level="info",
            component="interaction",
            kind="lifecycle",
            event_type=event_type,
            task_id=payload.get("task_id"),
            request_id=payload.get("request_id"),
            message=event_type,
            data=dict(payload),
        )
        if self._event_sink is None:
            return
        try:
            self._event_sink(event_type, dict(payload))
        except Exception:
            return
