"""
Summarizers that condense old conversation messages.

:class:`OpenAISummarizer` asks the model for a short third-person synopsis and
raises on failure or empty output. :func:`extractive_summary` is the
deterministic fallback used by the memory manager when that happens.
"""

from __future__ import annotations

from typing import List, Protocol, Sequence

from agentgate.ai.openai_source import OpenAIClientPool
from agentgate.datatypes.conversation import Message, Role
from agentgate.util.logger import get_logger

logger = get_logger("summarizer")

SUMMARY_SYSTEM_PROMPT = (
    "You condense chat transcripts. Summarize the conversation in 2-3 sentences, "
    "written in the third person, keeping the key topics, questions, facts and decisions. "
    "Do not add commentary."
)

EXCERPT_CHARS = 50
EXCERPT_COUNT = 3
EMPTY_SUMMARY = "Conversation details not available."


class Summarizer(Protocol):
    async def summarize(self, messages: Sequence[Message]) -> str: ...


def format_transcript(messages: Sequence[Message]) -> str:
    return "\n".join(f"{m.role.label}: {m.content}" for m in messages)


def extractive_summary(messages: Sequence[Message]) -> str:
    """Build a summary from short excerpts of the latest user and assistant turns."""
    user = [m.content[:EXCERPT_CHARS] for m in messages if m.role is Role.USER][-EXCERPT_COUNT:]
    assistant = [m.content[:EXCERPT_CHARS] for m in messages if m.role is Role.ASSISTANT][-EXCERPT_COUNT:]

    parts: List[str] = []
    if user:
        parts.append(f"User discussed: {'; '.join(user)}...")
    if assistant:
        parts.append(f"Assistant provided: {'; '.join(assistant)}...")
    return " ".join(parts) or EMPTY_SUMMARY


class OpenAISummarizer:
    def __init__(
        self,
        pool: OpenAIClientPool,
        *,
        model: str | None = None,
        timeout: float | None = None,
        max_tokens: int | None = None,
    ) -> None:
        settings = pool.ai_settings
        self.pool = pool
        self.model = model or settings.summarizer_model
        self.timeout = settings.summarizer_timeout if timeout is None else timeout
        self.max_tokens = settings.summarizer_max_tokens if max_tokens is None else max_tokens

    async def summarize(self, messages: Sequence[Message]) -> str:
        """Return a model-written synopsis of ``messages``.

        Raises:
            ValueError: If the model returned no text.
            openai.OpenAIError: On transport or API failures.
        """
        client = self.pool.client_for()
        response = await client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
                {"role": "user", "content": format_transcript(messages)},
            ],
            max_tokens=self.max_tokens,
            temperature=0.3,
            timeout=self.timeout,
        )
        text = (response.choices[0].message.content or "").strip() if response.choices else ""
        if not text:
            raise ValueError("summarizer returned an empty response")
        logger.debug("[SUMMARIZER] Condensed %d messages into %d chars", len(messages), len(text))
        return text
