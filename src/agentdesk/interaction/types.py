"""Typed interaction contracts shared by the broker, engine callbacks and UI."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union


class InteractionKind(str, Enum):
    """What the engine is asking the operator for."""

    CONFIRM = "confirm"
    INPUT = "input"
    SELECT = "select"
    REQUEST_HELP = "request_help"


HELP_REQUEST_LOGIN = "request_login"
HELP_REQUEST_ASSISTANCE = "request_assistance"


class InteractionError(RuntimeError):
    """Base error delivered to an engine-side interaction wait."""


class InteractionAbortedError(InteractionError):
    """The owning task was aborted while the interaction was pending."""


class SurfaceUnavailableError(InteractionError):
    """The UI surface was gone when the interaction was requested."""


class InteractionCancelledError(InteractionError):
    """The operator declined or cancelled the interaction."""


@dataclass(frozen=True)
class InteractionPayload:
    kind: InteractionKind
    prompt: str
    options: List[str] = field(default_factory=list)
    multiple: bool = False
    help_type: str = ""
    help_context: Optional[Dict[str, str]] = None


@dataclass
class PendingInteractionRequest:
    """One parked engine-side flow waiting for an operator decision."""

    request_id: str
    task_id: str
    agent_name: str
    kind: InteractionKind
    created_at_ms: int
    future: "asyncio.Future[Any]"

    @property
    def settled(self) -> bool:
        return self.future.done()

    def resolve(self, value: Any) -> bool:
        if self.future.done():
            return False
        self.future.set_result(value)
        return True

    def reject(self, error: BaseException) -> bool:
        if self.future.done():
            return False
        self.future.set_exception(error)
        return True


@dataclass(frozen=True)
class HumanResponse:
    """Operator answer addressed by request id or by the staged tool id."""

    request_id: str
    success: bool
    result: Any = None
    error: Optional[str] = None

    @classmethod
    def coerce(cls, raw: Union["HumanResponse", Mapping[str, Any]]) -> "HumanResponse":
        if isinstance(raw, HumanResponse):
            return raw
        if not isinstance(raw, Mapping):
            return cls(request_id="", success=False, error="invalid response")
        request_id = raw.get("requestId")
        if request_id is None:
            request_id = raw.get("request_id")
        error = raw.get("error")
        return cls(
            request_id=str(request_id or "").strip(),
            success=bool(raw.get("success")),
            result=raw.get("result"),
            error=str(error) if error else None,
        )


@dataclass(frozen=True)
class InteractionSnapshot:
    """Read-only pending interaction view for diagnostics."""

    request_id: str
    task_id: str
    agent_name: str
    kind: InteractionKind
    created_at_ms: int
    tool_id: str = ""
