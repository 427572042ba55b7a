"""Async SQLite database adapter.

Provides ``AsyncSQLiteAdapter``, an implementation of the ``DatabaseClient``
protocol using SQLAlchemy's async engine with the ``aiosqlite`` driver.

Usage:
    from schema_bridge.adapters.sqlite import AsyncSQLiteAdapter

    adapter = AsyncSQLiteAdapter("sqlite:///./app.db", foreign_keys=True)
    rows = await adapter.fetch("SELECT name FROM sqlite_master")
    await adapter.close()
"""

from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine

from schema_bridge.adapters.base import AsyncEngineAdapter


def normalize_sqlite_url(database: str) -> str:
    """Normalize a SQLite URL or bare file path to ``sqlite+aiosqlite://``.

    Example:
        normalize_sqlite_url("app.db")            # 'sqlite+aiosqlite:///app.db'
        normalize_sqlite_url("sqlite:///app.db")  # 'sqlite+aiosqlite:///app.db'
    """
    if database.startswith("sqlite+aiosqlite://"):
        return database
    if database.startswith("sqlite://"):
        return "sqlite+aiosqlite://" + database[len("sqlite://"):]
    return f"sqlite+aiosqlite:///{database}"


class AsyncSQLiteAdapter(AsyncEngineAdapter):
    """Async SQLite implementation of the ``DatabaseClient`` protocol.

    Args:
        database: ``sqlite://`` URL or a path to the database file.
        foreign_keys: Turn on ``PRAGMA foreign_keys`` for every new
            connection.  SQLite leaves enforcement off by default.
        **engine_kwargs: Additional keyword arguments forwarded to
            ``create_async_engine``.
    """

    dialect = "sqlite"

    def __init__(
        self,
        database: str,
        foreign_keys: bool = False,
        **engine_kwargs: Any,
    ) -> None:
        engine = create_async_engine(normalize_sqlite_url(database), **engine_kwargs)

        if foreign_keys:

            @event.listens_for(engine.sync_engine, "connect")
            def _enable_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        super().__init__(engine)
