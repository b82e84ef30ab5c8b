"""OpenAI-compatible token source.

Works against any endpoint that speaks the chat completions API (OpenAI,
vLLM, LM Studio, ...). Each agent may carry its own credential and endpoint,
so clients are cached per (base_url, api_key) pair.
"""

from __future__ import annotations

from typing import AsyncIterator, Dict, Tuple

from openai import AsyncOpenAI

from agentgate.ai.prompts import build_system_prompt
from agentgate.configuration.ai_settings import AISettings
from agentgate.datatypes.agent_datatypes import AgentProfile
from agentgate.datatypes.stream_datatypes import STREAM_END, TokenEvent
from agentgate.util.logger import get_logger

logger = get_logger("openai_source")


class OpenAIClientPool:
    """Lazily created ``AsyncOpenAI`` clients keyed by endpoint and credential."""

    def __init__(self, ai_settings: AISettings) -> None:
        self.ai_settings = ai_settings
        self._clients: Dict[Tuple[str | None, str | None], AsyncOpenAI] = {}

    def client_for(self, agent: AgentProfile | None = None) -> AsyncOpenAI:
        base_url = (agent.base_url if agent else None) or self.ai_settings.base_url
        api_key = (agent.api_key if agent else None) or self.ai_settings.api_key
        key = (base_url, api_key)
        client = self._clients.get(key)
        if client is None:
            client = AsyncOpenAI(api_key=api_key, base_url=base_url)
            self._clients[key] = client
            logger.info("[OPENAI] Created client for base_url=%s", base_url or "default")
        return client

    def model_for(self, agent: AgentProfile | None = None) -> str:
        return (agent.model if agent else None) or self.ai_settings.model_name

    async def close(self) -> None:
        for client in self._clients.values():
            try:
                await client.close()
            except Exception as exc:
                logger.warning("[OPENAI] Failed to close client: %s", exc)
        self._clients.clear()


class OpenAITokenSource:
    """Streams chat completion deltas as :class:`TokenEvent` items."""

    def __init__(self, pool: OpenAIClientPool) -> None:
        self.pool = pool

    async def stream(
        self,
        prompt: str,
        agent: AgentProfile,
        instructions: str | None = None,
    ) -> AsyncIterator[object]:
        client = self.pool.client_for(agent)
        response = await client.chat.completions.create(
            model=self.pool.model_for(agent),
            messages=[
                {"role": "system", "content": build_system_prompt(agent, instructions)},
                {"role": "user", "content": prompt},
            ],
            temperature=self.pool.ai_settings.temperature,
            stream=True,
        )

        async for chunk in response:
            # Usage and keep-alive chunks carry no choices; the aggregator skips them
            if not chunk.choices:
                yield chunk
                continue
            choice = chunk.choices[0]
            token = choice.delta.content if choice.delta else None
            finished = choice.finish_reason is not None
            if token or finished:
                yield TokenEvent(token=token or "", completed=finished)

        yield STREAM_END
