from __future__ import annotations

import pytest

from agentdesk.config import AgentToggle, ProjectConfig, Settings
from agentdesk.engine.factory import EngineFactory
from agentdesk.engine.types import AGENT_KIND_BROWSER, AGENT_KIND_FILE, AbortController
from agentdesk.ui.surface import PreviewBuffer


class RecordingBuilder:
    def __init__(self) -> None:
        self.specs = []

    def __call__(self, spec):
        self.specs.append(spec)
        return object()


def _settings(tmp_path, **overrides) -> Settings:
    return Settings(
        project_root=tmp_path,
        config_root=tmp_path / ".agentdesk_config",
        project=ProjectConfig(**overrides),
    )


def test_abort_fires_listeners_once_in_order():
    controller = AbortController()
    calls = []

    def _broken(reason):
        calls.append(("broken", reason))
        raise RuntimeError("listener failure")

    controller.signal.add_listener(lambda reason: calls.append(("first", reason)))
    controller.signal.add_listener(_broken)
    controller.signal.add_listener(lambda reason: calls.append(("third", reason)))

    assert controller.abort("cancel") is True
    assert controller.abort("again") is False
    assert calls == [("first", "cancel"), ("broken", "cancel"), ("third", "cancel")]
    assert controller.signal.aborted is True
    assert controller.signal.reason == "cancel"


def test_late_listener_fires_immediately_and_removed_listener_never_fires():
    controller = AbortController()
    calls = []

    def _removed(reason):
        calls.append("removed")

    controller.signal.add_listener(_removed)
    controller.signal.remove_listener(_removed)
    controller.abort()
    controller.signal.add_listener(lambda reason: calls.append("late:" + reason))

    assert calls == ["late:abort"]


def test_default_engine_has_shared_browser_agent_and_timeouts_in_ms(tmp_path):
    builder = RecordingBuilder()
    factory = EngineFactory(builder)
    factory.configure(_settings(tmp_path))

    callback = object()
    factory.build_default(callback)
    factory.build_default(callback)

    first, second = builder.specs
    assert [agent.kind for agent in first.agents] == [AGENT_KIND_BROWSER]
    assert first.agents[0] is second.agents[0]
    assert first.callback is callback
    assert first.stream_first_timeout_ms == 60000
    assert first.stream_token_timeout_ms == 180000
    assert first.max_retry_num == 3
    assert first.llms.model == "echo-1"
    assert factory.generation == 1


def test_new_generation_rebuilds_browser_agent(tmp_path):
    builder = RecordingBuilder()
    factory = EngineFactory(builder)
    factory.configure(_settings(tmp_path))
    factory.build_default(None)
    factory.configure(_settings(tmp_path, request_timeout=5))
    factory.build_default(None)

    first, second = builder.specs
    assert first.agents[0] is not second.agents[0]
    assert second.stream_first_timeout_ms == 5000
    assert factory.generation == 2


def test_task_engine_gets_file_agent_only_with_preview(tmp_path):
    builder = RecordingBuilder()
    preview = PreviewBuffer()
    with_preview = EngineFactory(builder, preview_provider=lambda: preview)
    with_preview.configure(_settings(tmp_path))
    with_preview.build_for_task(tmp_path / "task_1", None)

    without_preview = EngineFactory(builder, preview_provider=lambda: None)
    without_preview.configure(_settings(tmp_path))
    without_preview.build_for_task(tmp_path / "task_2", None)

    spec_with, spec_without = builder.specs
    assert [agent.kind for agent in spec_with.agents] == [AGENT_KIND_BROWSER, AGENT_KIND_FILE]
    assert spec_with.agents[1].work_dir == tmp_path / "task_1"
    assert [agent.kind for agent in spec_without.agents] == [AGENT_KIND_BROWSER]


def test_disabled_agents_are_left_out(tmp_path):
    builder = RecordingBuilder()
    factory = EngineFactory(builder, preview_provider=lambda: PreviewBuffer())
    factory.configure(
        _settings(
            tmp_path,
            browser_agent=AgentToggle(enabled=False),
            file_agent=AgentToggle(enabled=False),
        )
    )
    factory.build_for_task(tmp_path / "task_1", None)

    assert builder.specs[0].agents == []


def test_unconfigured_factory_refuses_to_build():
    factory = EngineFactory(RecordingBuilder())
    with pytest.raises(RuntimeError):
        factory.build_default(None)
