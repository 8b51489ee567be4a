"""Command surface consumed by the UI boundary."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from agentdesk.interaction.types import HumanResponse
from agentdesk.service.context import OrchestrationContext
from agentdesk.stream.events import task_aborted_event

CloseConfirm = Callable[[], Awaitable[bool]]

WINDOW_CLOSING_REASON = "window-closing"


class CommandSurface:
    """Request/response commands; none of them raises across the boundary."""

    def __init__(self, context: OrchestrationContext) -> None:
        self._context = context

    @property
    def context(self) -> OrchestrationContext:
        return self._context

    async def run(self, message: str) -> Dict[str, Any]:
        text = str(message or "").strip()
        if not text:
            return {"status": "error", "detail": "message is required"}
        result = await self._context.executor.run(text)
        return _status(result)

    async def modify(self, task_id: str, message: str) -> Dict[str, Any]:
        result = await self._context.executor.modify(str(task_id or ""), str(message or ""))
        return _status(result)

    async def execute(self, task_id: str) -> Dict[str, Any]:
        result = await self._context.executor.execute(str(task_id or ""))
        return _status(result)

    async def cancel_task(self, task_id: str) -> Dict[str, Any]:
        return await self._context.executor.cancel_task(str(task_id or ""))

    async def human_response(self, response: Mapping[str, Any]) -> bool:
        return self._context.broker.handle_human_response(HumanResponse.coerce(response))

    async def get_task_context(self, task_id: str) -> Optional[Dict[str, Any]]:
        return self._context.executor.get_task_context(str(task_id or ""))

    async def restore_task(
        self,
        workflow: Mapping[str, Any],
        context_params: Optional[Mapping[str, Any]] = None,
        plan_request: Any = None,
        plan_result: Any = None,
    ) -> Dict[str, Any]:
        if not isinstance(workflow, Mapping):
            return {"success": False}
        task_id = await self._context.executor.restore_task(
            dict(workflow),
            dict(context_params or {}),
            plan_request,
            plan_result,
        )
        if task_id is None:
            return {"success": False}
        return {"success": True, "taskId": task_id}

    async def request_close(self, confirm: CloseConfirm) -> bool:
        """Shutdown guard: returns whether the window may close."""

        executor = self._context.executor
        if not executor.has_running_task():
            return True
        if not await confirm():
            return False

        task_ids = executor.known_task_ids()
        await executor.abort_all_tasks(WINDOW_CLOSING_REASON)
        surface = self._context.surface
        if surface is not None and not surface.is_destroyed():
            for task_id in task_ids:
                surface.send(task_aborted_event(task_id, WINDOW_CLOSING_REASON))
        return True


def _status(result: Any) -> Dict[str, Any]:
    if result is None:
        return {"status": "error", "detail": "task failed"}
    if not result.success and result.error:
        return {"status": "ok", "detail": str(result.error)}
    return {"status": "ok"}
