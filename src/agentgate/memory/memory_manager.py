"""
Bounded per-conversation memory.

Each conversation keeps a raw message window and a cumulative summary. Once
the window grows past the trigger count, a background task hands the oldest
messages to the summarizer, appends the result to the summary and drops those
messages, keeping only the most recent ones raw.

Context strings for generation calls are built newest-first under a character
budget of four characters per token and never split a message, except for the
single most recent message when nothing else fits.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, List, Set

from agentgate.datatypes.conversation import Conversation, ConversationKey, Message, Role
from agentgate.errors import PersistenceError
from agentgate.memory.summarizer import Summarizer, extractive_summary
from agentgate.storage.repositories import ConversationRepo
from agentgate.util.keyed_lock import KeyedLock
from agentgate.util.logger import get_logger

logger = get_logger("memory_manager")

CHARS_PER_TOKEN = 4
ELLIPSIS = "..."
CONTEXT_HEADER = "Previous conversation:\n\n"
SUMMARY_LABEL = "Summary of earlier conversation: "


def estimate_tokens(text: str) -> int:
    return -(-len(text) // CHARS_PER_TOKEN)


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: max(limit - len(ELLIPSIS), 0)] + ELLIPSIS


def _format_message(message: Message) -> str:
    return f"{message.role.label}: {message.content}\n\n"


class MemoryManager:
    """Owner of conversation windows and summaries.

    Parameters
    ----------
    repo:
        Conversation persistence.
    summarizer:
        Model-backed summarizer; None always uses the extractive fallback.
    trigger_count:
        Summarize once the raw window holds more than this many messages.
    keep_count:
        Raw messages kept after a summarization round.
    default_token_budget:
        Budget used by :meth:`build_context` when none is given.
    clock:
        Wall-clock source for message timestamps.
    """

    def __init__(
        self,
        repo: ConversationRepo,
        summarizer: Summarizer | None = None,
        *,
        trigger_count: int = 30,
        keep_count: int = 5,
        default_token_budget: int = 2000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.repo = repo
        self.summarizer = summarizer
        self.trigger_count = trigger_count
        self.keep_count = keep_count
        self.default_token_budget = default_token_budget
        self.clock = clock
        self._locks = KeyedLock()
        self._tasks: Set[asyncio.Task[bool]] = set()
        self._summarizing: Set[ConversationKey] = set()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def record_message(self, key: ConversationKey, role: Role, content: str | None) -> bool:
        """Append a message to the conversation.

        Empty content and an exact repeat of the previous message from the same
        role are ignored. Returns True when the message was stored.
        """
        text = (content or "").strip()
        if not text:
            return False

        async with self._locks.hold(key):
            try:
                conversation = await self.repo.load(key)
                last = conversation.messages[-1] if conversation.messages else None
                if last is not None and last.role is role and last.content == text:
                    logger.debug("[MEMORY] Skipping repeated %s message for %s", role, key)
                    return False

                now = self.clock()
                conversation.messages.append(Message(role=role, content=text, timestamp=now))
                conversation.last_active = now
                await self.repo.save(conversation)
            except PersistenceError as exc:
                logger.error("[MEMORY] Failed to record message for %s: %s", key, exc)
                return False

            if len(conversation.messages) > self.trigger_count:
                self._schedule_summary(key)
        return True

    def _schedule_summary(self, key: ConversationKey) -> None:
        if key in self._summarizing:
            return
        self._summarizing.add(key)
        task = asyncio.create_task(self._run_summary(key), name=f"agentgate-summarize-{key.doc_key}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_summary(self, key: ConversationKey) -> bool:
        try:
            return await self.summarize(key)
        except Exception:
            logger.exception("[MEMORY] Background summarization crashed for %s", key)
            return False
        finally:
            self._summarizing.discard(key)

    async def summarize(self, key: ConversationKey) -> bool:
        """Condense all but the most recent ``keep_count`` messages into the summary.

        The summarizer call runs outside the key's lock so new messages can be
        recorded meanwhile; only the snapshotted messages are removed afterwards.
        Returns True when a round was applied.
        """
        async with self._locks.hold(key):
            try:
                conversation = await self.repo.load(key)
            except PersistenceError as exc:
                logger.error("[MEMORY] Cannot load %s for summarization: %s", key, exc)
                return False
            if len(conversation.messages) <= self.keep_count:
                return False
            cut = len(conversation.messages) - self.keep_count
            batch = list(conversation.messages[:cut])

        text = await self._condense(key, batch)

        async with self._locks.hold(key):
            try:
                conversation = await self.repo.load(key)
                if conversation.messages[: len(batch)] != batch:
                    logger.warning("[MEMORY] Conversation %s changed during summarization; discarding round", key)
                    return False

                entry = f"{len(batch)} earlier messages summarized: {text}"
                conversation.summary = f"{conversation.summary}\n\n{entry}" if conversation.summary else entry
                conversation.messages = conversation.messages[len(batch):]
                await self.repo.save(conversation)
            except PersistenceError as exc:
                logger.error("[MEMORY] Failed to store summary for %s: %s", key, exc)
                return False

        logger.info("[MEMORY] Summarized %d messages for %s (%d kept)", len(batch), key, len(conversation.messages))
        return True

    async def _condense(self, key: ConversationKey, batch: List[Message]) -> str:
        if self.summarizer is not None:
            try:
                text = (await self.summarizer.summarize(batch) or "").strip()
                if text:
                    return text
                logger.warning("[MEMORY] Summarizer returned nothing for %s; using extractive summary", key)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("[MEMORY] Summarizer failed for %s (%s); using extractive summary", key, exc)
        return extractive_summary(batch)

    async def clear(self, key: ConversationKey) -> None:
        """Empty the message window and reset the summary."""
        async with self._locks.hold(key):
            try:
                conversation = await self.repo.load(key)
                conversation.messages = []
                conversation.summary = ""
                conversation.last_active = self.clock()
                await self.repo.save(conversation)
            except PersistenceError as exc:
                logger.error("[MEMORY] Failed to clear %s: %s", key, exc)
                return
        logger.info("[MEMORY] Cleared conversation %s", key)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _load_for_read(self, key: ConversationKey) -> Conversation | None:
        try:
            return await self.repo.load(key)
        except PersistenceError as exc:
            logger.error("[MEMORY] Failed to load %s: %s", key, exc)
            return None

    async def build_context(self, key: ConversationKey, max_token_budget: int | None = None) -> str:
        """Return the summary plus as many recent messages as fit the token budget.

        Returns an empty string for an unknown or empty conversation.
        """
        budget = self.default_token_budget if max_token_budget is None else max_token_budget
        conversation = await self._load_for_read(key)
        if conversation is None or (not conversation.messages and not conversation.summary):
            return ""

        available = budget * CHARS_PER_TOKEN - len(CONTEXT_HEADER)
        if available <= len(ELLIPSIS):
            return ""

        summary_part = ""
        if conversation.summary:
            summary_part = f"{SUMMARY_LABEL}{conversation.summary}\n\n"
            if len(summary_part) > available:
                summary_part = _truncate(summary_part.rstrip(), available)
            available -= len(summary_part)

        selected: List[str] = []
        for message in reversed(conversation.messages):
            block = _format_message(message)
            if len(block) > available:
                break
            selected.append(block)
            available -= len(block)

        if not selected and not summary_part:
            selected.append(_truncate(_format_message(conversation.messages[-1]).rstrip(), available))

        return (CONTEXT_HEADER + summary_part + "".join(reversed(selected))).rstrip()

    async def get_history(self, key: ConversationKey, limit: int = 20) -> List[Message]:
        """Most recent messages, preceded by a system message carrying the summary."""
        conversation = await self._load_for_read(key)
        if conversation is None:
            return []

        history = conversation.messages[-limit:] if limit > 0 else []
        if conversation.summary:
            summary = Message(role=Role.SYSTEM, content=f"{SUMMARY_LABEL}{conversation.summary}", timestamp=conversation.last_active)
            return [summary, *history]
        return list(history)

    async def drain(self) -> None:
        """Wait for background summarization tasks to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
