"""
Typed repositories over a :class:`~agentgate.storage.document_store.DocumentStore`.

Documents that cannot be decoded raise :class:`~agentgate.errors.PersistenceError`
just like a failing store, so callers handle one error type.
"""

from __future__ import annotations

from dataclasses import dataclass

from agentgate.datatypes.conversation import Conversation, ConversationKey
from agentgate.datatypes.warning_datatypes import WarningRecord
from agentgate.errors import PersistenceError
from agentgate.storage.document_store import DocumentStore
from agentgate.util.keyed_lock import KeyedLock
from agentgate.util.logger import get_logger

logger = get_logger("repositories")


class ConversationRepo:
    COLLECTION = "conversations"

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def load(self, key: ConversationKey) -> Conversation:
        """Return the stored conversation, or a fresh empty one if none exists."""
        doc = await self.store.find_one(self.COLLECTION, key.doc_key)
        if doc is None:
            return Conversation(key=key)
        try:
            return Conversation.from_document(key, doc)
        except (KeyError, TypeError, ValueError) as exc:
            raise PersistenceError(f"corrupt conversation document {key.doc_key}: {exc}") from exc

    async def save(self, conversation: Conversation) -> None:
        await self.store.upsert(self.COLLECTION, conversation.key.doc_key, conversation.to_document())


class WarningRepo:
    COLLECTION = "warnings"

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def load(self, participant_id: str, chat_id: str) -> WarningRecord:
        record = WarningRecord(participant_id=participant_id, chat_id=chat_id)
        doc = await self.store.find_one(self.COLLECTION, record.doc_key)
        if doc is None:
            return record
        try:
            return WarningRecord.from_document(participant_id, chat_id, doc)
        except (KeyError, TypeError, ValueError) as exc:
            raise PersistenceError(f"corrupt warning document {record.doc_key}: {exc}") from exc

    async def save(self, record: WarningRecord) -> None:
        await self.store.upsert(self.COLLECTION, record.doc_key, record.to_document())


@dataclass(slots=True)
class AgentMetrics:
    prompt_served: int = 0
    average_response_time: float = 0.0


class AgentMetricsRepo:
    """Per-agent counters: prompts served and moving-average response time."""

    COLLECTION = "agent_metrics"

    def __init__(self, store: DocumentStore) -> None:
        self.store = store
        self._locks = KeyedLock()

    async def record_response(self, agent_id: str, response_time: float) -> AgentMetrics:
        async with self._locks.hold(agent_id):
            served = int(await self.store.atomic_increment(self.COLLECTION, agent_id, "prompt_served", 1))
            doc = await self.store.find_one(self.COLLECTION, agent_id) or {}
            previous = float(doc.get("average_response_time") or 0.0)
            average = previous + (response_time - previous) / max(served, 1)
            await self.store.upsert(self.COLLECTION, agent_id, {"average_response_time": average})
        return AgentMetrics(prompt_served=served, average_response_time=average)

    async def get(self, agent_id: str) -> AgentMetrics:
        doc = await self.store.find_one(self.COLLECTION, agent_id) or {}
        return AgentMetrics(
            prompt_served=int(doc.get("prompt_served") or 0),
            average_response_time=float(doc.get("average_response_time") or 0.0),
        )
