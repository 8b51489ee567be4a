"""Explicit orchestration context wiring every core component together."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from agentdesk.config import Settings, load_settings
from agentdesk.engine.echo import build_echo_engine
from agentdesk.engine.factory import EngineFactory
from agentdesk.engine.types import EngineBuilder
from agentdesk.interaction.broker import InteractionBroker
from agentdesk.kernel.debug_log import DebugLogWriter
from agentdesk.kernel.eventbus import EventBus
from agentdesk.kernel.types import EventSink
from agentdesk.stream.dispatcher import StreamDispatcher
from agentdesk.task.executor import TaskExecutor
from agentdesk.ui.surface import BusSurface, PreviewProvider, UISurface


@dataclass
class OrchestrationContext:
    """Everything one UI window needs to drive tasks."""

    settings: Settings
    debug_log: DebugLogWriter
    event_bus: EventBus
    surface: UISurface
    preview_provider: Optional[PreviewProvider]
    broker: InteractionBroker
    dispatcher: StreamDispatcher
    factory: EngineFactory
    executor: TaskExecutor

    def close(self) -> None:
        self.executor.destroy()
        destroy = getattr(self.surface, "destroy", None)
        if callable(destroy):
            destroy()


def build_debug_log(settings: Settings) -> DebugLogWriter:
    project = settings.project
    return DebugLogWriter(
        logs_dir=settings.logs_dir,
        enabled=project.logs_enabled,
        log_format=project.logs_format,
        max_file_bytes=project.logs_max_file_bytes,
        max_files=project.logs_max_files,
        redaction=project.logs_redaction,
        min_level=project.logs_level,
    )


def build_context(
    settings: Settings,
    surface: Optional[UISurface] = None,
    *,
    event_bus: Optional[EventBus] = None,
    preview_provider: Optional[PreviewProvider] = None,
    engine_builder: Optional[EngineBuilder] = None,
    debug_log: Optional[DebugLogWriter] = None,
    event_sink: Optional[EventSink] = None,
    settle_timeout: float = 5.0,
) -> OrchestrationContext:
    """Build an orchestration context.

    Without an explicit surface, UI events are published on ``event_bus``
    (a fresh one by default), and every published event is mirrored into the
    debug log.
    """

    log_writer = debug_log or build_debug_log(settings)
    bus = event_bus or EventBus()
    bus.subscribe("*", log_writer.write_event)
    ui_surface = surface if surface is not None else BusSurface(bus)

    broker = InteractionBroker(
        ui_surface,
        preview_provider=preview_provider,
        debug_log=log_writer,
        event_sink=event_sink,
    )
    dispatcher = StreamDispatcher(
        ui_surface,
        preview_provider=preview_provider,
        preview_url=settings.preview_url,
        tool_id_sink=broker.stage_tool_id,
        debug_log=log_writer,
    )
    factory = EngineFactory(engine_builder or build_echo_engine, preview_provider=preview_provider)
    project_root = settings.project_root
    executor = TaskExecutor(
        settings,
        factory,
        broker,
        dispatcher,
        ui_surface,
        settings_loader=lambda: load_settings(project_root),
        debug_log=log_writer,
        event_sink=event_sink,
        settle_timeout=settle_timeout,
    )
    log_writer.write_entry(
        level="info",
        component="service",
        kind="context_ready",
        message="orchestration context ready",
        data={
            "project_root": str(project_root),
            "workspace_base_dir": str(executor.workspace.base_dir),
            "provider": factory.llms.provider if factory.llms is not None else "",
            "model": factory.llms.model if factory.llms is not None else "",
        },
    )
    return OrchestrationContext(
        settings=settings,
        debug_log=log_writer,
        event_bus=bus,
        surface=ui_surface,
        preview_provider=preview_provider,
        broker=broker,
        dispatcher=dispatcher,
        factory=factory,
        executor=executor,
    )
