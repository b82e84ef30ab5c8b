"""
Document store abstraction and its two implementations.

The gateway core only needs three operations on keyed JSON documents:
``find_one``, ``upsert`` (shallow merge of top-level fields) and
``atomic_increment``. Failures surface as
:class:`~agentgate.errors.PersistenceError`.
"""

from __future__ import annotations

import copy
import json
import re
from typing import Any, Dict, Protocol

from agentgate.errors import PersistenceError
from agentgate.storage.db_connection import ConnectionManager
from agentgate.util.logger import get_logger

logger = get_logger("document_store")

_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class DocumentStore(Protocol):
    async def find_one(self, collection: str, key: str) -> Dict[str, Any] | None: ...

    async def upsert(self, collection: str, key: str, patch: Dict[str, Any]) -> Dict[str, Any]: ...

    async def atomic_increment(self, collection: str, key: str, field: str, amount: float = 1) -> float: ...


def _check_field(field: str) -> None:
    if not _FIELD_NAME.match(field):
        raise PersistenceError(f"invalid field name {field!r}")


class SQLiteDocumentStore:
    """JSON documents in the ``documents`` table, one row per (collection, key)."""

    def __init__(self, connections: ConnectionManager) -> None:
        self.connections = connections

    async def find_one(self, collection: str, key: str) -> Dict[str, Any] | None:
        try:
            async with self.connections.read() as conn:
                cursor = await conn.execute(
                    "SELECT body FROM documents WHERE collection = ? AND doc_key = ?",
                    (collection, key),
                )
                row = await cursor.fetchone()
                await cursor.close()
            return json.loads(row["body"]) if row else None
        except Exception as exc:
            raise PersistenceError(f"find_one {collection}/{key} failed: {exc}") from exc

    async def upsert(self, collection: str, key: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with self.connections.transaction() as conn:
                cursor = await conn.execute(
                    "SELECT body FROM documents WHERE collection = ? AND doc_key = ?",
                    (collection, key),
                )
                row = await cursor.fetchone()
                await cursor.close()

                document = json.loads(row["body"]) if row else {}
                document.update(patch)
                await conn.execute(
                    """
                    INSERT INTO documents (collection, doc_key, body)
                    VALUES (?, ?, ?)
                    ON CONFLICT(collection, doc_key) DO UPDATE SET
                        body = excluded.body
                    """,
                    (collection, key, json.dumps(document)),
                )
            return document
        except Exception as exc:
            raise PersistenceError(f"upsert {collection}/{key} failed: {exc}") from exc

    async def atomic_increment(self, collection: str, key: str, field: str, amount: float = 1) -> float:
        _check_field(field)
        path = f"$.{field}"
        try:
            async with self.connections.transaction() as conn:
                await conn.execute(
                    """
                    INSERT INTO documents (collection, doc_key, body)
                    VALUES (?, ?, json_object(?, ?))
                    ON CONFLICT(collection, doc_key) DO UPDATE SET
                        body = json_set(body, ?, COALESCE(json_extract(body, ?), 0) + ?)
                    """,
                    (collection, key, field, amount, path, path, amount),
                )
                cursor = await conn.execute(
                    "SELECT json_extract(body, ?) AS value FROM documents WHERE collection = ? AND doc_key = ?",
                    (path, collection, key),
                )
                row = await cursor.fetchone()
                await cursor.close()
            return row["value"]
        except PersistenceError:
            raise
        except Exception as exc:
            raise PersistenceError(f"atomic_increment {collection}/{key}.{field} failed: {exc}") from exc


class InMemoryDocumentStore:
    """Process-local store with the same semantics; documents are deep-copied in and out."""

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    async def find_one(self, collection: str, key: str) -> Dict[str, Any] | None:
        document = self._collections.get(collection, {}).get(key)
        return copy.deepcopy(document) if document is not None else None

    async def upsert(self, collection: str, key: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        documents = self._collections.setdefault(collection, {})
        document = documents.setdefault(key, {})
        document.update(copy.deepcopy(patch))
        return copy.deepcopy(document)

    async def atomic_increment(self, collection: str, key: str, field: str, amount: float = 1) -> float:
        _check_field(field)
        document = self._collections.setdefault(collection, {}).setdefault(key, {})
        document[field] = document.get(field, 0) + amount
        return document[field]
