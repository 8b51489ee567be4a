"""Contracts at the boundary with the opaque agent execution engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

from agentdesk.config import LLMConfig
from agentdesk.kernel.types import UIEvent

AbortListener = Callable[[str], None]

AGENT_KIND_BROWSER = "browser"
AGENT_KIND_FILE = "file"

STOP_REASON_DONE = "done"
STOP_REASON_ABORT = "abort"
STOP_REASON_ERROR = "error"


class AbortSignal:
    """Fires its listeners once, in registration order, when aborted."""

    def __init__(self) -> None:
        self._aborted = False
        self._reason = ""
        self._listeners: List[AbortListener] = []

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def reason(self) -> str:
        return self._reason

    def add_listener(self, listener: AbortListener) -> None:
        if self._aborted:
            listener(self._reason)
            return
        self._listeners.append(listener)

    def remove_listener(self, listener: AbortListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _fire(self, reason: str) -> bool:
        if self._aborted:
            return False
        self._aborted = True
        self._reason = reason
        listeners = list(self._listeners)
        self._listeners.clear()
        for listener in listeners:
            try:
                listener(reason)
            except Exception:
                continue
        return True


class AbortController:
    def __init__(self) -> None:
        self.signal = AbortSignal()

    def abort(self, reason: str = "abort") -> bool:
        return self.signal._fire(str(reason or "abort"))


@dataclass
class TaskContext:
    """Engine-side state of one task."""

    task_id: str
    workflow: Dict[str, Any] = field(default_factory=dict)
    variables: Dict[str, Any] = field(default_factory=dict)
    controller: AbortController = field(default_factory=AbortController)
    plan_request: Any = None
    plan_result: Optional[str] = None


@dataclass
class AgentContext:
    context: TaskContext
    agent_name: str = ""


@dataclass
class TaskResult:
    task_id: str
    success: bool
    stop_reason: str = STOP_REASON_DONE
    result: str = ""
    error: Optional[str] = None


@dataclass
class AgentSpec:
    name: str
    kind: str
    work_dir: Optional[Path] = None
    custom_prompt: str = ""


class EngineCallback(Protocol):
    async def on_message(self, message: UIEvent) -> None:
        ...

    async def on_human_confirm(self, agent_context: AgentContext, prompt: str) -> bool:
        ...

    async def on_human_input(self, agent_context: AgentContext, prompt: str) -> str:
        ...

    async def on_human_select(
        self,
        agent_context: AgentContext,
        prompt: str,
        options: List[str],
        multiple: bool = False,
    ) -> List[str]:
        ...

    async def on_human_help(self, agent_context: AgentContext, help_type: str, prompt: str) -> bool:
        ...


@dataclass
class EngineSpec:
    """Everything needed to build one engine instance."""

    llms: Optional[LLMConfig]
    agents: List[AgentSpec]
    callback: EngineCallback
    stream_first_timeout_ms: int
    stream_token_timeout_ms: int
    max_retry_num: int


class Engine(Protocol):
    async def run(self, message: str, task_id: str) -> TaskResult:
        ...

    async def modify(self, task_id: str, message: str) -> None:
        ...

    async def execute(self, task_id: str) -> TaskResult:
        ...

    async def abort_task(self, task_id: str, reason: str) -> bool:
        ...

    def get_task(self, task_id: str) -> Optional[TaskContext]:
        ...

    def get_all_task_ids(self) -> List[str]:
        ...

    async def init_context(
        self,
        workflow: Dict[str, Any],
        context_params: Optional[Dict[str, Any]] = None,
    ) -> TaskContext:
        ...


EngineBuilder = Callable[[EngineSpec], Engine]
