"""Database adapters package.

Provides the ``DatabaseClient`` Protocol and the async SQLAlchemy-backed
adapters for SQLite (``aiosqlite``) and PostgreSQL (``asyncpg``).

Usage:
    from schema_bridge.adapters import DatabaseClient, AsyncPostgresAdapter
    from schema_bridge.adapters import AsyncSQLiteAdapter
"""

from schema_bridge.adapters.base import AsyncEngineAdapter, DatabaseClient, quote_identifier
from schema_bridge.adapters.postgres import AsyncPostgresAdapter
from schema_bridge.adapters.sqlite import AsyncSQLiteAdapter

__all__ = [
    "DatabaseClient",
    "AsyncEngineAdapter",
    "AsyncPostgresAdapter",
    "AsyncSQLiteAdapter",
    "quote_identifier",
]
