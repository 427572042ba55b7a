"""Introspector capability interface.

Every dialect implements ``SchemaIntrospector``.  It is the single seam the
discovery core depends on: discovery components receive an introspector and
never see connections or SQL.

Usage:
    from schema_bridge.dialects.base import SchemaIntrospector

    async def count_rows(introspector: SchemaIntrospector) -> dict[str, int]:
        entries = await introspector.list_tables()
        return {e.name: await introspector.get_row_count(e.name) for e in entries}
"""

from typing import Protocol

from pydantic import BaseModel, ConfigDict

from schema_bridge.schema.models import ColumnInfo, ForeignKeyInfo, IndexInfo


class TableEntry(BaseModel):
    """A catalog entry as listed by an introspector.

    ``table_type`` keeps the engine's own spelling (``table``/``view`` for
    SQLite, ``BASE TABLE``/``VIEW`` for PostgreSQL).  ``is_view`` is set when
    the engine reports it explicitly.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    schema_name: str | None = None
    table_type: str | None = None
    is_view: bool | None = None


class SchemaIntrospector(Protocol):
    """Catalog access for one database engine.

    All methods are async.  Column types returned by ``get_columns`` are
    already canonical for the engine (see ``schema.types.canonical_type``).
    """

    async def list_tables(self) -> list[TableEntry]:
        """List user tables and views, excluding engine internals."""
        ...

    async def get_columns(self, table: str) -> list[ColumnInfo]:
        """Return the table's columns in ordinal order."""
        ...

    async def get_primary_key(self, table: str) -> list[str]:
        """Return primary key column names in key order."""
        ...

    async def get_indexes(self, table: str) -> list[IndexInfo]:
        """Return the table's indexes, excluding the primary key index."""
        ...

    async def get_foreign_keys(self, table: str) -> list[ForeignKeyInfo]:
        """Return one record per (local column, referenced column) pair."""
        ...

    async def get_row_count(self, table: str) -> int:
        """Return the exact number of rows in the table."""
        ...

    async def get_view_definition(self, view: str) -> str | None:
        """Return the view's SQL text, or ``None`` if it does not exist."""
        ...
