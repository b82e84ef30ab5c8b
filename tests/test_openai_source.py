"""Tests for the OpenAI-backed token source, summarizer and prompt helpers."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from agentgate.ai.openai_source import OpenAIClientPool, OpenAITokenSource
from agentgate.ai.prompts import (
    CHAT_MODE_INSTRUCTIONS,
    MODERATION_INSTRUCTIONS,
    build_system_prompt,
    chat_type_prefix,
)
from agentgate.ai.stream_aggregator import StreamAggregator
from agentgate.configuration.ai_settings import AISettings
from agentgate.datatypes.agent_datatypes import AgentProfile
from agentgate.datatypes.conversation import Message, Role
from agentgate.datatypes.stream_datatypes import STREAM_END, GenerationStatus, TokenEvent
from agentgate.memory.summarizer import OpenAISummarizer, format_transcript


def chunk(content=None, finish_reason=None):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content), finish_reason=finish_reason)])


class _Stream:
    def __init__(self, chunks):
        self._chunks = list(chunks)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._chunks:
            raise StopAsyncIteration
        return self._chunks.pop(0)


def make_pool(create_result, settings=None):
    pool = OpenAIClientPool(AISettings(settings or {"api_key": "sk-test", "model_name": "base-model"}))
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=create_result)
    pool.client_for = MagicMock(return_value=client)
    return pool, client


class TestOpenAITokenSource:
    @pytest.mark.asyncio
    async def test_stream_yields_tokens_then_end_marker(self, agent):
        empty = SimpleNamespace(choices=[])
        stream = _Stream([
            chunk("Hel"),
            empty,
            chunk("lo"),
            chunk(None, "stop"),
        ])
        pool, client = make_pool(stream)

        events = [event async for event in OpenAITokenSource(pool).stream("hi", agent)]

        assert events == [TokenEvent("Hel"), empty, TokenEvent("lo"), TokenEvent("", completed=True), STREAM_END]
        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["model"] == "test-model"
        assert kwargs["messages"][1] == {"role": "user", "content": "hi"}
        assert CHAT_MODE_INSTRUCTIONS in kwargs["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_aggregator_skips_chunks_without_choices(self, agent):
        stream = _Stream([chunk("Hi"), SimpleNamespace(choices=[]), chunk(" there"), chunk(None, "stop")])
        pool, _ = make_pool(stream)

        outcome = await StreamAggregator(OpenAITokenSource(pool)).generate("hi", agent, 5)

        assert outcome.status is GenerationStatus.COMPLETED
        assert outcome.text == "Hi there"

    @pytest.mark.asyncio
    async def test_moderation_instructions_replace_chat_mode(self, agent):
        pool, client = make_pool(_Stream([]))

        [event async for event in OpenAITokenSource(pool).stream("x", agent, MODERATION_INSTRUCTIONS)]

        system = client.chat.completions.create.await_args.kwargs["messages"][0]["content"]
        assert MODERATION_INSTRUCTIONS in system
        assert CHAT_MODE_INSTRUCTIONS not in system


class TestOpenAIClientPool:
    @pytest.mark.asyncio
    async def test_clients_are_cached_per_credential(self):
        pool = OpenAIClientPool(AISettings({"api_key": "sk-global", "model_name": "base-model"}))
        default = AgentProfile(agent_id="a", name="A")
        custom = AgentProfile(agent_id="b", name="B", api_key="sk-b", model="b-model")

        assert pool.client_for(default) is pool.client_for()
        assert pool.client_for(custom) is not pool.client_for(default)
        assert pool.model_for(default) == "base-model"
        assert pool.model_for(custom) == "b-model"

        await pool.close()


class TestOpenAISummarizer:
    @pytest.mark.asyncio
    async def test_returns_model_text(self):
        response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="  A short synopsis. "))])
        pool, client = make_pool(response)
        messages = [Message(Role.USER, "hi", 1.0), Message(Role.ASSISTANT, "hello", 2.0)]

        assert await OpenAISummarizer(pool).summarize(messages) == "A short synopsis."
        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["messages"][1]["content"] == "User: hi\nAssistant: hello"
        assert kwargs["max_tokens"] == 150
        assert kwargs["model"] == "base-model"

    @pytest.mark.asyncio
    async def test_empty_output_raises(self):
        response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=""))])
        pool, _ = make_pool(response)
        with pytest.raises(ValueError):
            await OpenAISummarizer(pool).summarize([Message(Role.USER, "hi", 1.0)])


def test_system_prompt_sections():
    agent = AgentProfile(agent_id="a", name="Ada", description="Helps with math.", instructions="Be brief.")
    prompt = build_system_prompt(agent)
    assert prompt.startswith("You are Ada.")
    assert "Description: Helps with math." in prompt
    assert "Instructions: Be brief." in prompt
    assert prompt.endswith(CHAT_MODE_INSTRUCTIONS)


def test_chat_type_prefix_and_transcript():
    assert chat_type_prefix("group") == "[This message is from a group]"
    assert format_transcript([Message(Role.SYSTEM, "x", 0.0)]) == "System: x"
