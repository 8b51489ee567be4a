"""Engine instance factory driven by the effective configuration."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from agentdesk.config import LLMConfig, Settings, resolve_llm_config
from agentdesk.engine.types import (
    AGENT_KIND_BROWSER,
    AGENT_KIND_FILE,
    AgentSpec,
    Engine,
    EngineBuilder,
    EngineCallback,
    EngineSpec,
)
from agentdesk.ui.surface import PreviewProvider

BROWSER_AGENT_NAME = "Browser"
FILE_AGENT_NAME = "File"


class EngineFactory:
    """Builds engine specs from settings and hands them to a backend builder.

    ``configure`` starts a new configuration generation: the browser agent
    spec is created once per generation and shared by every engine built
    from it, while file agents are bound to one task workspace each.
    """

    def __init__(self, builder: EngineBuilder, *, preview_provider: Optional[PreviewProvider] = None) -> None:
        self._builder = builder
        self._preview_provider = preview_provider
        self._settings: Optional[Settings] = None
        self._llms: Optional[LLMConfig] = None
        self._browser_agent: Optional[AgentSpec] = None
        self._generation = 0

    @property
    def llms(self) -> Optional[LLMConfig]:
        return self._llms

    @property
    def generation(self) -> int:
        return self._generation

    def configure(self, settings: Settings) -> None:
        project = settings.project
        self._settings = settings
        self._llms = resolve_llm_config(project)
        if project.browser_agent.enabled:
            self._browser_agent = AgentSpec(
                name=BROWSER_AGENT_NAME,
                kind=AGENT_KIND_BROWSER,
                custom_prompt=project.browser_agent.custom_prompt,
            )
        else:
            self._browser_agent = None
        self._generation += 1

    def build_default(self, callback: EngineCallback) -> Engine:
        return self._builder(self._spec(self._shared_agents(), callback))

    def build_for_task(self, work_dir: Path, callback: EngineCallback) -> Engine:
        agents = self._shared_agents()
        settings = self._require_settings()
        file_agent = settings.project.file_agent
        if file_agent.enabled and self._preview_available():
            agents.append(
                AgentSpec(
                    name=FILE_AGENT_NAME,
                    kind=AGENT_KIND_FILE,
                    work_dir=Path(work_dir),
                    custom_prompt=file_agent.custom_prompt,
                )
            )
        return self._builder(self._spec(agents, callback))

    def _shared_agents(self) -> List[AgentSpec]:
        if self._browser_agent is None:
            return []
        return [self._browser_agent]

    def _preview_available(self) -> bool:
        if self._preview_provider is None:
            return False
        return self._preview_provider() is not None

    def _spec(self, agents: List[AgentSpec], callback: EngineCallback) -> EngineSpec:
        project = self._require_settings().project
        return EngineSpec(
            llms=self._llms,
            agents=agents,
            callback=callback,
            stream_first_timeout_ms=int(project.request_timeout) * 1000,
            stream_token_timeout_ms=int(project.stream_timeout) * 1000,
            max_retry_num=int(project.retry_attempts),
        )

    def _require_settings(self) -> Settings:
        if self._settings is None:
            raise RuntimeError("engine factory is not configured")
        return self._settings
