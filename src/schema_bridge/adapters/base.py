"""Database client protocol definition.

Defines the ``DatabaseClient`` Protocol that every connection adapter
implements, plus ``AsyncEngineAdapter``, the shared SQLAlchemy async-engine
implementation used by the SQLite and PostgreSQL adapters.

All methods are ``async def`` -- the library is async-first.  Introspectors,
the data migrator and the sync applier only ever talk to a database through
this seam.

Usage:
    from schema_bridge.adapters.base import DatabaseClient

    async def do_work(client: DatabaseClient) -> None:
        rows = await client.fetch("SELECT id, name FROM users")
        await client.insert_many("users", [{"id": 1, "name": "Alice"}])
        await client.execute("CREATE INDEX idx_name ON users (name)")
        await client.close()
"""

from typing import Protocol

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine


def quote_identifier(name: str) -> str:
    """Quote an identifier with double quotes (valid for SQLite and PostgreSQL)."""
    return '"' + name.replace('"', '""') + '"'


class DatabaseClient(Protocol):
    """Database client interface that all adapters must implement.

    All methods are async -- callers must ``await`` every operation.
    """

    dialect: str

    async def fetch(self, sql: str, params: dict | None = None) -> list[dict]:
        """Run a query and return its rows.

        Args:
            sql: SQL text with ``:name`` style parameters.
            params: Optional dict of named parameters.

        Returns:
            List of dicts, one per row.  Empty list if no rows.

        Example:
            rows = await client.fetch(
                "SELECT * FROM users WHERE id > :after ORDER BY id LIMIT 100",
                {"after": 0},
            )
        """
        ...

    async def execute(self, sql: str, params: dict | None = None) -> None:
        """Execute a raw SQL statement (DDL or other non-query operations).

        Not all adapters support DDL -- those that don't should raise
        ``NotImplementedError``.

        Args:
            sql: Raw SQL statement to execute.
            params: Optional dict of named parameters for the SQL statement.

        Raises:
            NotImplementedError: If the adapter does not support DDL.

        Example:
            await client.execute(
                "ALTER TABLE users ADD COLUMN email VARCHAR(255)"
            )
        """
        ...

    async def insert_many(self, table: str, rows: list[dict]) -> int:
        """Insert a batch of rows into a table in one transaction.

        Args:
            table: Table name (unquoted).
            rows: Row dicts.  Every dict must carry the same keys.

        Returns:
            Number of rows inserted.

        Raises:
            Exception: On constraint violation; the whole batch is rolled back.
        """
        ...

    async def close(self) -> None:
        """Close database connection and clean up resources."""
        ...


class AsyncEngineAdapter:
    """``DatabaseClient`` implementation on top of a SQLAlchemy ``AsyncEngine``.

    Subclasses build the engine for their driver and set ``dialect``.
    Reads use ``engine.connect()``; writes use ``engine.begin()`` for
    automatic commit on success and rollback on error.
    """

    dialect: str = ""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def fetch(self, sql: str, params: dict | None = None) -> list[dict]:
        """Run a query and return rows as dicts."""
        async with self._engine.connect() as conn:
            result = await conn.execute(text(sql), params or {})
            col_names = list(result.keys())
            return [dict(zip(col_names, row)) for row in result.fetchall()]

    async def execute(self, sql: str, params: dict | None = None) -> None:
        """Execute a raw SQL statement inside its own transaction."""
        async with self._engine.begin() as conn:
            await conn.execute(text(sql), params or {})

    async def insert_many(self, table: str, rows: list[dict]) -> int:
        """Insert rows with a single executemany call."""
        if not rows:
            return 0

        columns = list(rows[0].keys())
        # Positional bind names keep odd column names out of the parameter syntax
        placeholders = ", ".join(f":p{i}" for i in range(len(columns)))
        column_list = ", ".join(quote_identifier(c) for c in columns)
        query = text(
            f"INSERT INTO {quote_identifier(table)} ({column_list}) VALUES ({placeholders})"
        )
        params = [
            {f"p{i}": row.get(col) for i, col in enumerate(columns)} for row in rows
        ]

        async with self._engine.begin() as conn:
            await conn.execute(query, params)
        return len(rows)

    async def close(self) -> None:
        """Close the async engine and dispose of the connection pool."""
        if self._engine:
            await self._engine.dispose()

    async def test_connection(self) -> bool:
        """Test database connection health with ``SELECT 1``.

        Raises:
            Exception: If the database connection fails.
        """
        async with self._engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            return result.scalar() == 1
