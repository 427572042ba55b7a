"""PostgreSQL schema introspection via information_schema and pg_catalog.

This module queries the live database to extract schema information:
- Tables and views, per schema (default ``public``)
- Columns, normalized data types, nullability, defaults, identity columns
- Primary key columns in key order
- Indexes (name, ordered columns, uniqueness), excluding the primary key index
- Foreign keys, one record per column pair, with referential actions
- View definitions

Queries run through a ``DatabaseClient`` (SQLAlchemy + asyncpg).
"""

from schema_bridge.adapters.base import DatabaseClient, quote_identifier
from schema_bridge.dialects.base import TableEntry
from schema_bridge.schema.models import ColumnInfo, Dialect, ForeignKeyInfo, IndexInfo
from schema_bridge.schema.types import canonical_type

# Tables to exclude from introspection (extension/system tables)
EXCLUDED_TABLES_DEFAULT = frozenset({
    "schema_migrations",
    "pg_stat_statements",
    "spatial_ref_sys",
})

# pg_constraint.confdeltype / confupdtype codes
_FK_ACTIONS = {
    "a": "NO ACTION",
    "r": "RESTRICT",
    "c": "CASCADE",
    "n": "SET NULL",
    "d": "SET DEFAULT",
}


class PostgresIntrospector:
    """Introspects a PostgreSQL schema through a ``DatabaseClient``.

    Usage:
        introspector = PostgresIntrospector(AsyncPostgresAdapter(url))
        entries = await introspector.list_tables()
        fks = await introspector.get_foreign_keys("orders")
    """

    def __init__(
        self,
        client: DatabaseClient,
        schema_name: str = "public",
        excluded_tables: set[str] | frozenset[str] | None = None,
    ) -> None:
        self._client = client
        self._schema_name = schema_name
        self._excluded_tables = (
            EXCLUDED_TABLES_DEFAULT if excluded_tables is None else frozenset(excluded_tables)
        )

    async def list_tables(self) -> list[TableEntry]:
        """Get all tables and views in the schema."""
        rows = await self._client.fetch(
            """
            SELECT table_name, table_type
            FROM information_schema.tables
            WHERE table_schema = :schema
              AND table_type IN ('BASE TABLE', 'VIEW')
            ORDER BY table_name
            """,
            {"schema": self._schema_name},
        )
        return [
            TableEntry(
                name=row["table_name"],
                schema_name=self._schema_name,
                table_type=row["table_type"],
                is_view=row["table_type"] == "VIEW",
            )
            for row in rows
            if row["table_name"] not in self._excluded_tables
        ]

    async def get_columns(self, table: str) -> list[ColumnInfo]:
        """Get columns for a table."""
        rows = await self._client.fetch(
            """
            SELECT
                c.column_name,
                c.column_default,
                c.is_nullable,
                c.data_type,
                c.udt_name,
                c.character_maximum_length,
                c.numeric_precision,
                c.numeric_scale,
                COALESCE(c.is_identity, 'NO') AS is_identity,
                e.data_type AS element_type
            FROM information_schema.columns c
            LEFT JOIN information_schema.element_types e
                ON e.object_catalog = c.table_catalog
                AND e.object_schema = c.table_schema
                AND e.object_name = c.table_name
                AND e.object_type = 'TABLE'
                AND e.collection_type_identifier = c.dtd_identifier
            WHERE c.table_schema = :schema
              AND c.table_name = :table
            ORDER BY c.ordinal_position
            """,
            {"schema": self._schema_name, "table": table},
        )
        primary_key = set(await self.get_primary_key(table))

        columns: list[ColumnInfo] = []
        for row in rows:
            default = row["column_default"]
            is_numeric = row["data_type"] == "numeric"
            columns.append(
                ColumnInfo(
                    name=row["column_name"],
                    type=self._normalize_data_type(row),
                    nullable=row["is_nullable"] == "YES",
                    default=default,
                    is_primary_key=row["column_name"] in primary_key,
                    is_auto_increment=(
                        row["is_identity"] == "YES"
                        or (default is not None and "nextval(" in default)
                    ),
                    max_length=row["character_maximum_length"],
                    precision=row["numeric_precision"] if is_numeric else None,
                    scale=row["numeric_scale"] if is_numeric else None,
                )
            )
        return columns

    async def get_primary_key(self, table: str) -> list[str]:
        """Primary key columns in key order."""
        rows = await self._client.fetch(
            """
            SELECT kcu.column_name
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
                ON tc.constraint_name = kcu.constraint_name
                AND tc.table_schema = kcu.table_schema
                AND tc.table_name = kcu.table_name
            WHERE tc.constraint_type = 'PRIMARY KEY'
              AND tc.table_schema = :schema
              AND tc.table_name = :table
            ORDER BY kcu.ordinal_position
            """,
            {"schema": self._schema_name, "table": table},
        )
        return [row["column_name"] for row in rows]

    def _normalize_data_type(self, row: dict) -> str:
        """Build the canonical type for an ``information_schema.columns`` row.

        Arrays become ``<element>[]``, user-defined types use their
        ``udt_name``, and lengths or numeric precision are appended.
        """
        data_type = row["data_type"]
        if data_type == "ARRAY":
            element = row.get("element_type")
            if not element:
                udt_name = row.get("udt_name") or ""
                element = udt_name[1:] if udt_name.startswith("_") else udt_name
            return canonical_type(element, Dialect.POSTGRES) + "[]"
        if data_type == "USER-DEFINED":
            return (row.get("udt_name") or data_type).lower()

        base = canonical_type(data_type, Dialect.POSTGRES)
        if base in ("varchar", "char") and row.get("character_maximum_length"):
            return f"{base}({row['character_maximum_length']})"
        if base == "numeric" and row.get("numeric_precision") is not None:
            scale = row.get("numeric_scale") or 0
            return f"numeric({row['numeric_precision']},{scale})"
        return base

    async def get_indexes(self, table: str) -> list[IndexInfo]:
        """Get indexes for a table (excluding primary key)."""
        rows = await self._client.fetch(
            """
            SELECT
                i.relname AS index_name,
                array_agg(a.attname ORDER BY x.ordinality) AS columns,
                ix.indisunique AS is_unique
            FROM pg_index ix
            JOIN pg_class t ON t.oid = ix.indrelid
            JOIN pg_class i ON i.oid = ix.indexrelid
            JOIN pg_namespace n ON n.oid = t.relnamespace
            JOIN LATERAL unnest(ix.indkey) WITH ORDINALITY AS x(attnum, ordinality) ON TRUE
            JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = x.attnum
            WHERE n.nspname = :schema
              AND t.relname = :table
              AND NOT ix.indisprimary
            GROUP BY i.relname, ix.indisunique
            ORDER BY i.relname
            """,
            {"schema": self._schema_name, "table": table},
        )
        return [
            IndexInfo(name=row["index_name"], columns=list(row["columns"]), unique=row["is_unique"])
            for row in rows
        ]

    async def get_foreign_keys(self, table: str) -> list[ForeignKeyInfo]:
        """Get foreign keys, pairing local and referenced columns by position."""
        rows = await self._client.fetch(
            """
            SELECT
                c.conname AS constraint_name,
                a.attname AS column_name,
                rt.relname AS foreign_table_name,
                ra.attname AS foreign_column_name,
                c.confdeltype AS on_delete,
                c.confupdtype AS on_update
            FROM pg_constraint c
            JOIN pg_class t ON t.oid = c.conrelid
            JOIN pg_namespace n ON n.oid = t.relnamespace
            JOIN pg_class rt ON rt.oid = c.confrelid
            JOIN LATERAL unnest(c.conkey, c.confkey)
                WITH ORDINALITY AS k(attnum, refattnum, ordinality) ON TRUE
            JOIN pg_attribute a ON a.attrelid = c.conrelid AND a.attnum = k.attnum
            JOIN pg_attribute ra ON ra.attrelid = c.confrelid AND ra.attnum = k.refattnum
            WHERE c.contype = 'f'
              AND n.nspname = :schema
              AND t.relname = :table
            ORDER BY c.conname, k.ordinality
            """,
            {"schema": self._schema_name, "table": table},
        )
        return [
            ForeignKeyInfo(
                name=row["constraint_name"],
                column=row["column_name"],
                referenced_table=row["foreign_table_name"],
                referenced_column=row["foreign_column_name"],
                on_delete=_FK_ACTIONS.get(row["on_delete"], "NO ACTION"),
                on_update=_FK_ACTIONS.get(row["on_update"], "NO ACTION"),
            )
            for row in rows
        ]

    async def get_row_count(self, table: str) -> int:
        rows = await self._client.fetch(
            f"SELECT COUNT(*) AS count FROM "
            f"{quote_identifier(self._schema_name)}.{quote_identifier(table)}"
        )
        return int(rows[0]["count"]) if rows else 0

    async def get_view_definition(self, view: str) -> str | None:
        rows = await self._client.fetch(
            """
            SELECT view_definition
            FROM information_schema.views
            WHERE table_schema = :schema
              AND table_name = :view
            """,
            {"schema": self._schema_name, "view": view},
        )
        return rows[0]["view_definition"] if rows else None
