"""Opaque agent engine boundary."""

from .types import (
    AbortController,
    AbortSignal,
    AgentContext,
    AgentSpec,
    Engine,
    EngineBuilder,
    EngineCallback,
    EngineSpec,
    TaskContext,
    TaskResult,
)
from .factory import EngineFactory
from .echo import EchoEngine, build_echo_engine

__all__ = [
    "AbortController",
    "AbortSignal",
    "AgentContext",
    "AgentSpec",
    "EchoEngine",
    "Engine",
    "EngineBuilder",
    "EngineCallback",
    "EngineFactory",
    "EngineSpec",
    "TaskContext",
    "TaskResult",
    "build_echo_engine",
]
