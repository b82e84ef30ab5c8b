"""
Database schema initialization.

Every collection lives in one ``documents`` table holding JSON bodies keyed by
(collection, doc_key).
"""

import aiosqlite
from agentgate.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 1


class SchemaManager:
    """Creates the tables, indexes and triggers used by the document store."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        await SchemaManager._create_tables(db)
        await SchemaManager._create_indexes(db)
        await SchemaManager._create_triggers(db)
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
        await db.commit()
        logger.info("[SCHEMA] Database schema initialized (version %d)", SCHEMA_VERSION)

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        await db.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                collection TEXT NOT NULL,
                doc_key TEXT NOT NULL,
                body TEXT NOT NULL DEFAULT '{}',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (collection, doc_key)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    @staticmethod
    async def _create_indexes(db: aiosqlite.Connection) -> None:
        await db.execute("CREATE INDEX IF NOT EXISTS idx_documents_updated ON documents(collection, updated_at DESC)")

    @staticmethod
    async def _create_triggers(db: aiosqlite.Connection) -> None:
        await db.execute("""
            CREATE TRIGGER IF NOT EXISTS update_documents_timestamp
            AFTER UPDATE OF body ON documents
            FOR EACH ROW
            BEGIN
                UPDATE documents SET updated_at = CURRENT_TIMESTAMP
                WHERE collection = NEW.collection AND doc_key = NEW.doc_key;
            END
        """)
