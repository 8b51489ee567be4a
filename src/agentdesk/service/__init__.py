"""Service layer: orchestration context, command surface and config binding."""

from .context import OrchestrationContext, build_context, build_debug_log
from .commands import CommandSurface
from .config_binder import ConfigBinder
from .diagnostics import doctor_report

__all__ = [
    "CommandSurface",
    "ConfigBinder",
    "OrchestrationContext",
    "build_context",
    "build_debug_log",
    "doctor_report",
]
