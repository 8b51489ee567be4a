"""Event types exchanged with the UI surface."""

from __future__ import annotations

from typing import Any, Optional

from agentdesk.kernel.types import UIEvent, now_ms

TOOL_USE = "tool_use"
TOOL_STREAMING = "tool_streaming"
TOOL_RESULT = "tool_result"
TEXT = "text"
WORKFLOW = "workflow"
AGENT_RESULT = "agent_result"
HUMAN_INTERACTION = "human_interaction"
HUMAN_INTERACTION_RESULT = "human_interaction_result"
ERROR = "error"
CONFIG_RELOADED = "config_reloaded"
TASK_ABORTED_BY_SYSTEM = "task_aborted_by_system"

HUMAN_INTERACT_TOOL = "human_interact"
FILE_WRITE_TOOL = "file_write"


def error_event(message: str, detail: Optional[str] = None, task_id: Optional[str] = None) -> UIEvent:
    return {
        "type": ERROR,
        "error": message,
        "detail": detail or message,
        "taskId": task_id,
        "timestamp": now_ms(),
    }


def interaction_result_event(request_id: str, result: Any) -> UIEvent:
    return {
        "type": HUMAN_INTERACTION_RESULT,
        "requestId": request_id,
        "result": result,
        "timestamp": now_ms(),
    }


def config_reloaded_event(model: Optional[str], provider: Optional[str]) -> UIEvent:
    return {
        "type": CONFIG_RELOADED,
        "model": model,
        "provider": provider,
        "timestamp": now_ms(),
    }


def task_aborted_event(task_id: str, reason: str) -> UIEvent:
    return {
        "type": TASK_ABORTED_BY_SYSTEM,
        "taskId": task_id,
        "reason": reason,
        "timestamp": now_ms(),
    }
