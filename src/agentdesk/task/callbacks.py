"""Engine callback surface backed by the stream dispatcher and broker."""

from __future__ import annotations

from typing import List

from agentdesk.engine.types import AgentContext
from agentdesk.interaction.broker import InteractionBroker
from agentdesk.kernel.types import UIEvent
from agentdesk.stream.dispatcher import StreamDispatcher


class OrchestratorCallback:
    """Handed to every engine instance the executor builds."""

    def __init__(self, dispatcher: StreamDispatcher, broker: InteractionBroker) -> None:
        self._dispatcher = dispatcher
        self._broker = broker

    async def on_message(self, message: UIEvent) -> None:
        await self._dispatcher.dispatch(message.get("taskId"), message)

    async def on_human_confirm(self, agent_context: AgentContext, prompt: str) -> bool:
        return await self._broker.confirm(agent_context, prompt)

    async def on_human_input(self, agent_context: AgentContext, prompt: str) -> str:
        return await self._broker.input(agent_context, prompt)

    async def on_human_select(
        self,
        agent_context: AgentContext,
        prompt: str,
        options: List[str],
        multiple: bool = False,
    ) -> List[str]:
        return await self._broker.select(agent_context, prompt, options, multiple)

    async def on_human_help(self, agent_context: AgentContext, help_type: str, prompt: str) -> bool:
        return await self._broker.request_help(agent_context, help_type, prompt)
