"""Tests for the document stores and the repositories built on them."""

import asyncio

import pytest

from agentgate.datatypes.conversation import Conversation, ConversationKey, Message, Role
from agentgate.datatypes.warning_datatypes import WarningEvent, WarningRecord
from agentgate.errors import PersistenceError
from agentgate.storage.db_connection import ConnectionManager
from agentgate.storage.db_schema import SchemaManager
from agentgate.storage.document_store import InMemoryDocumentStore, SQLiteDocumentStore
from agentgate.storage.repositories import AgentMetricsRepo, ConversationRepo, WarningRepo


async def open_sqlite_store():
    connections = ConnectionManager()
    await connections.open(":memory:")
    await SchemaManager.initialize_schema(connections.connection)
    return SQLiteDocumentStore(connections), connections


async def exercise_store(store) -> None:
    assert await store.find_one("things", "a") is None

    doc = await store.upsert("things", "a", {"name": "first", "tags": ["x"]})
    assert doc == {"name": "first", "tags": ["x"]}

    doc = await store.upsert("things", "a", {"count": 2})
    assert doc == {"name": "first", "tags": ["x"], "count": 2}
    assert await store.find_one("things", "a") == doc

    assert await store.find_one("other", "a") is None

    assert await store.atomic_increment("things", "a", "count") == 3
    assert await store.atomic_increment("things", "b", "hits", 5) == 5
    assert await store.find_one("things", "b") == {"hits": 5}

    with pytest.raises(PersistenceError):
        await store.atomic_increment("things", "a", "bad field; DROP")


class TestSQLiteDocumentStore:
    @pytest.mark.asyncio
    async def test_store_semantics(self):
        store, connections = await open_sqlite_store()
        try:
            await exercise_store(store)
        finally:
            await connections.close()

    @pytest.mark.asyncio
    async def test_closed_connection_raises_persistence_error(self):
        store, connections = await open_sqlite_store()
        await connections.close()
        with pytest.raises(PersistenceError):
            await store.find_one("things", "a")
        with pytest.raises(PersistenceError):
            await store.upsert("things", "a", {"x": 1})

    @pytest.mark.asyncio
    async def test_schema_initialization_is_idempotent(self):
        store, connections = await open_sqlite_store()
        try:
            await SchemaManager.initialize_schema(connections.connection)
            await store.upsert("things", "a", {"x": 1})
            assert await store.find_one("things", "a") == {"x": 1}
        finally:
            await connections.close()


class TestInMemoryDocumentStore:
    @pytest.mark.asyncio
    async def test_store_semantics(self):
        await exercise_store(InMemoryDocumentStore())

    @pytest.mark.asyncio
    async def test_documents_are_copied(self):
        store = InMemoryDocumentStore()
        patch = {"items": [1]}
        await store.upsert("c", "k", patch)
        patch["items"].append(2)

        found = await store.find_one("c", "k")
        found["items"].append(3)
        assert await store.find_one("c", "k") == {"items": [1]}


class TestRepositories:
    @pytest.mark.asyncio
    async def test_conversation_round_trip(self):
        repo = ConversationRepo(InMemoryDocumentStore())
        key = ConversationKey("u", "c", "a")
        assert (await repo.load(key)).messages == []

        conversation = Conversation(
            key=key,
            messages=[Message(Role.USER, "hi", 1.0), Message(Role.ASSISTANT, "hello", 2.0)],
            summary="earlier",
            last_active=2.0,
        )
        await repo.save(conversation)
        assert await repo.load(key) == conversation

    @pytest.mark.asyncio
    async def test_warning_record_round_trip_on_sqlite(self):
        store, connections = await open_sqlite_store()
        try:
            repo = WarningRepo(store)
            record = WarningRecord(
                participant_id="u",
                chat_id="c",
                warnings=[WarningEvent("spam", 10.0, "gate")],
                last_warning_date=10.0,
                username="bob",
            )
            await repo.save(record)
            assert await repo.load("u", "c") == record
            assert (await repo.load("u", "other")).warning_count == 0
        finally:
            await connections.close()

    @pytest.mark.asyncio
    async def test_corrupt_warning_document_raises(self):
        store = InMemoryDocumentStore()
        await store.upsert(WarningRepo.COLLECTION, "u:c", {"warnings": [{"nope": 1}]})
        with pytest.raises(PersistenceError):
            await WarningRepo(store).load("u", "c")

    @pytest.mark.asyncio
    async def test_agent_metrics_moving_average(self):
        metrics = AgentMetricsRepo(InMemoryDocumentStore())

        await metrics.record_response("gate", 2.0)
        result = await metrics.record_response("gate", 4.0)

        assert result.prompt_served == 2
        assert result.average_response_time == pytest.approx(3.0)
        assert await metrics.get("gate") == result
        assert (await metrics.get("unknown")).prompt_served == 0

    @pytest.mark.asyncio
    async def test_concurrent_metrics_updates_are_not_lost(self):
        class YieldingStore(InMemoryDocumentStore):
            async def find_one(self, collection, key):
                await asyncio.sleep(0)
                return await super().find_one(collection, key)

        metrics = AgentMetricsRepo(YieldingStore())

        await asyncio.gather(*(metrics.record_response("gate", t) for t in (2.0, 4.0, 6.0)))

        result = await metrics.get("gate")
        assert result.prompt_served == 3
        assert result.average_response_time == pytest.approx(4.0)
