"""Human-in-the-loop interaction primitives."""

from .types import (
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
from .correlation import ToolCorrelationIndex
from .broker import InteractionBroker

__all__ = [
    "HumanResponse",
    "InteractionAbortedError",
    "InteractionBroker",
    "InteractionCancelledError",
    "InteractionError",
    "InteractionKind",
    "InteractionPayload",
    "InteractionSnapshot",
    "PendingInteractionRequest",
    "SurfaceUnavailableError",
    "ToolCorrelationIndex",
]
