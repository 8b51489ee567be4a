"""Deterministic local engine backend for demos and integration tests."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Optional

from agentdesk.engine.types import (
    AGENT_KIND_FILE,
    STOP_REASON_ABORT,
    STOP_REASON_DONE,
    STOP_REASON_ERROR,
    AbortController,
    AgentContext,
    EngineSpec,
    TaskContext,
    TaskResult,
)
from agentdesk.kernel.types import UIEvent, new_id, now_ms
from agentdesk.stream.events import (
    FILE_WRITE_TOOL,
    HUMAN_INTERACT_TOOL,
    TEXT,
    TOOL_RESULT,
    TOOL_STREAMING,
    TOOL_USE,
    WORKFLOW,
)

CONFIRM_KEYWORDS = ("confirm", "确认")
ECHO_AGENT_NAME = "Echo"
ECHO_FILE_NAME = "echo.txt"


class EchoEngine:
    """Echoes the task prompt back through the stream.

    Prompts mentioning a confirm keyword ask the operator first; when a file
    agent is configured the reply is also streamed as a ``file_write`` call.
    """

    def __init__(self, spec: EngineSpec, step_delay: float = 0.0) -> None:
        self.spec = spec
        self._step_delay = max(0.0, float(step_delay))
        self._tasks: Dict[str, TaskContext] = {}

    def get_task(self, task_id: str) -> Optional[TaskContext]:
        return self._tasks.get(task_id)

    def get_all_task_ids(self) -> List[str]:
        return list(self._tasks.keys())

    async def init_context(
        self,
        workflow: Dict[str, Any],
        context_params: Optional[Dict[str, Any]] = None,
    ) -> TaskContext:
        task_id = str((workflow or {}).get("taskId") or "").strip()
        if not task_id:
            raise ValueError("workflow.taskId is required")
        context = TaskContext(
            task_id=task_id,
            workflow=dict(workflow),
            variables=dict(context_params or {}),
        )
        self._tasks[task_id] = context
        return context

    async def run(self, message: str, task_id: str) -> TaskResult:
        workflow = {
            "taskId": task_id,
            "name": str(message or "")[:40],
            "prompt": str(message or ""),
            "agents": [{"name": ECHO_AGENT_NAME, "task": str(message or "")}],
            "modifications": [],
        }
        await self.init_context(workflow)
        return await self.execute(task_id)

    async def modify(self, task_id: str, message: str) -> None:
        context = self._require(task_id)
        context.workflow.setdefault("modifications", []).append(str(message or ""))
        context.workflow["prompt"] = str(message or "")

    async def execute(self, task_id: str) -> TaskResult:
        context = self._require(task_id)
        if context.controller.signal.aborted:
            context.controller = AbortController()
        agent_context = AgentContext(context=context, agent_name=ECHO_AGENT_NAME)
        prompt = str(context.workflow.get("prompt") or "")

        await self._emit(task_id, {"type": WORKFLOW, "workflow": dict(context.workflow)})
        if self._aborted(context):
            return self._abort_result(context)

        if any(keyword in prompt.lower() for keyword in CONFIRM_KEYWORDS):
            tool_id = new_id("tool")
            await self._emit(task_id, {"type": TOOL_USE, "toolName": HUMAN_INTERACT_TOOL, "toolId": tool_id})
            try:
                approved = await self.spec.callback.on_human_confirm(agent_context, "Proceed with: {0}?".format(prompt))
            except Exception as exc:
                await self._emit(
                    task_id,
                    {"type": TOOL_RESULT, "toolName": HUMAN_INTERACT_TOOL, "toolId": tool_id, "error": str(exc)},
                )
                if self._aborted(context):
                    return self._abort_result(context)
                return TaskResult(task_id=task_id, success=False, stop_reason=STOP_REASON_ERROR, error=str(exc))
            await self._emit(
                task_id,
                {"type": TOOL_RESULT, "toolName": HUMAN_INTERACT_TOOL, "toolId": tool_id, "result": approved},
            )
            if not approved:
                return TaskResult(task_id=task_id, success=True, stop_reason=STOP_REASON_DONE, result="declined")

        if self._has_file_agent():
            await self._stream_file(task_id, prompt)
            if self._aborted(context):
                return self._abort_result(context)

        await self._emit(task_id, {"type": TEXT, "text": prompt, "streamDone": True})
        return TaskResult(task_id=task_id, success=True, stop_reason=STOP_REASON_DONE, result=prompt)

    async def abort_task(self, task_id: str, reason: str) -> bool:
        context = self._tasks.get(task_id)
        if context is None:
            return False
        return context.controller.abort(reason)

    async def _stream_file(self, task_id: str, content: str) -> None:
        tool_id = new_id("tool")
        params_text = json.dumps({"fileName": ECHO_FILE_NAME, "content": content}, ensure_ascii=False)
        await self._emit(task_id, {"type": TOOL_USE, "toolName": FILE_WRITE_TOOL, "toolId": tool_id})
        step = max(1, len(params_text) // 3)
        for end in range(step, len(params_text) + step, step):
            await self._emit(
                task_id,
                {
                    "type": TOOL_STREAMING,
                    "toolName": FILE_WRITE_TOOL,
                    "toolId": tool_id,
                    "paramsText": params_text[:end],
                },
            )
        await self._emit(
            task_id,
            {"type": TOOL_RESULT, "toolName": FILE_WRITE_TOOL, "toolId": tool_id, "result": ECHO_FILE_NAME},
        )

    async def _emit(self, task_id: str, event: UIEvent) -> None:
        if self._step_delay:
            await asyncio.sleep(self._step_delay)
        payload = dict(event)
        payload.setdefault("taskId", task_id)
        payload.setdefault("agentName", ECHO_AGENT_NAME)
        payload.setdefault("timestamp", now_ms())
        await self.spec.callback.on_message(payload)

    def _has_file_agent(self) -> bool:
        return any(agent.kind == AGENT_KIND_FILE for agent in self.spec.agents)

    def _require(self, task_id: str) -> TaskContext:
        context = self._tasks.get(task_id)
        if context is None:
            raise KeyError("unknown task: {0}".format(task_id))
        return context

    @staticmethod
    def _aborted(context: TaskContext) -> bool:
        return context.controller.signal.aborted

    @staticmethod
    def _abort_result(context: TaskContext) -> TaskResult:
        return TaskResult(
            task_id=context.task_id,
            success=False,
            stop_reason=STOP_REASON_ABORT,
            error=context.controller.signal.reason,
        )


def build_echo_engine(spec: EngineSpec) -> EchoEngine:
    return EchoEngine(spec)
