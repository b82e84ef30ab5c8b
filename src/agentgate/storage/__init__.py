"""
Persistence for the gateway.

- **db_connection.py**: single long-lived aiosqlite connection with WAL pragmas
  and a write semaphore.
- **db_schema.py**: creation of the ``documents`` table.
- **document_store.py**: the ``DocumentStore`` protocol with SQLite and
  in-memory implementations.
- **repositories.py**: typed load/save for conversations, warning records and
  agent metrics on top of a document store.
"""
