"""Fakes shared by the orchestration tests."""

from __future__ import annotations

import asyncio

from agentdesk.engine.types import STOP_REASON_ABORT, STOP_REASON_ERROR, AgentContext, TaskContext, TaskResult
from agentdesk.interaction.types import InteractionError


class FakeSurface:
    def __init__(self) -> None:
        self.events = []
        self.destroyed = False

    def is_destroyed(self) -> bool:
        return self.destroyed

    def send(self, event) -> None:
        self.events.append(dict(event))

    def of_type(self, event_type):
        return [event for event in self.events if event.get("type") == event_type]


class ScriptedEngine:
    """Stages a human_interact tool id, then blocks on a confirmation."""

    def __init__(self, spec, tool_id: str = "abc", stubborn: bool = False) -> None:
        self.spec = spec
        self.tool_id = tool_id
        self.stubborn = stubborn
        self.tasks = {}
        self.errors = []
        self.aborts = []

    async def run(self, message, task_id):
        self.tasks[task_id] = TaskContext(task_id=task_id, workflow={"taskId": task_id, "prompt": message})
        return await self.execute(task_id)

    async def modify(self, task_id, message):
        self.tasks[task_id].workflow["prompt"] = message

    async def execute(self, task_id):
        context = self.tasks[task_id]
        if self.stubborn:
            await asyncio.Event().wait()
        await self.spec.callback.on_message(
            {"type": "tool_use", "toolName": "human_interact", "toolId": self.tool_id, "taskId": task_id}
        )
        try:
            approved = await self.spec.callback.on_human_confirm(
                AgentContext(context=context, agent_name="Browser"),
                "do {0}?".format(context.workflow["prompt"]),
            )
        except InteractionError as exc:
            self.errors.append(exc)
            stop_reason = STOP_REASON_ABORT if context.controller.signal.aborted else STOP_REASON_ERROR
            return TaskResult(task_id=task_id, success=False, stop_reason=stop_reason, error=str(exc))
        return TaskResult(task_id=task_id, success=True, result=str(approved))

    async def abort_task(self, task_id, reason):
        self.aborts.append((task_id, reason))
        context = self.tasks.get(task_id)
        if context is None:
            return False
        return context.controller.abort(reason)

    def get_task(self, task_id):
        return self.tasks.get(task_id)

    def get_all_task_ids(self):
        return list(self.tasks.keys())

    async def init_context(self, workflow, context_params=None):
        context = TaskContext(task_id=workflow["taskId"], workflow=dict(workflow), variables=dict(context_params or {}))
        self.tasks[context.task_id] = context
        return context


class FailingEngine(ScriptedEngine):
    async def execute(self, task_id):
        raise RuntimeError("engine exploded")


def build_with(engines, engine_cls=ScriptedEngine, **kwargs):
    def _build(spec):
        engine = engine_cls(spec, **kwargs)
        engines.append(engine)
        return engine

    return _build


async def wait_for(predicate) -> None:
    for _ in range(500):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")
