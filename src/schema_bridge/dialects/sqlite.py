"""SQLite schema introspection via sqlite_master and PRAGMA functions.

This module queries a live SQLite database to extract:
- Tables and views (``sqlite_master``)
- Columns, types, nullability, defaults, primary key order (``pragma_table_info``)
- Indexes and their column order (``pragma_index_list`` / ``pragma_index_info``)
- Foreign keys (``pragma_foreign_key_list``)

It also provides the SQLite-only enhancers used by the discovery
coordinator: ``SQLiteIndexAnalyzer`` and ``SQLiteConstraintAnalyzer``.

The table-valued PRAGMA functions are used so table names can be bound as
parameters instead of being spliced into SQL.
"""

import re

from schema_bridge.adapters.base import DatabaseClient, quote_identifier
from schema_bridge.dialects.base import TableEntry
from schema_bridge.schema.models import ColumnInfo, Dialect, ForeignKeyInfo, IndexInfo, TableInfo
from schema_bridge.schema.types import canonical_type, split_type


class SQLiteIntrospector:
    """Introspects a SQLite database through a ``DatabaseClient``.

    Usage:
        introspector = SQLiteIntrospector(AsyncSQLiteAdapter("app.db"))
        entries = await introspector.list_tables()
        columns = await introspector.get_columns("users")
    """

    def __init__(
        self,
        client: DatabaseClient,
        excluded_tables: set[str] | frozenset[str] | None = None,
    ) -> None:
        self._client = client
        self._excluded_tables = frozenset(excluded_tables or ())

    async def list_tables(self) -> list[TableEntry]:
        """List tables and views, skipping ``sqlite_%`` internals."""
        rows = await self._client.fetch(
            """
            SELECT name, type
            FROM sqlite_master
            WHERE type IN ('table', 'view')
              AND substr(name, 1, 7) != 'sqlite_'
            ORDER BY name
            """
        )
        return [
            TableEntry(name=row["name"], table_type=row["type"], is_view=row["type"] == "view")
            for row in rows
            if row["name"] not in self._excluded_tables
        ]

    async def get_columns(self, table: str) -> list[ColumnInfo]:
        """Get columns for a table with canonical types and auto-increment flags."""
        rows = await self._client.fetch(
            "SELECT cid, name, type, \"notnull\", dflt_value, pk "
            "FROM pragma_table_info(:table) ORDER BY cid",
            {"table": table},
        )
        create_sql = await self._get_create_sql(table)
        auto_column = detect_auto_increment(create_sql, rows)

        columns: list[ColumnInfo] = []
        for row in rows:
            declared = row["type"] or ""
            _, params, _ = split_type(declared)
            precision, scale, max_length = _type_parameters(declared, params)
            columns.append(
                ColumnInfo(
                    name=row["name"],
                    type=canonical_type(declared, Dialect.SQLITE),
                    nullable=not row["notnull"] and not row["pk"],
                    default=row["dflt_value"],
                    is_primary_key=row["pk"] > 0,
                    is_auto_increment=row["name"] == auto_column,
                    max_length=max_length,
                    precision=precision,
                    scale=scale,
                )
            )
        return columns

    async def get_primary_key(self, table: str) -> list[str]:
        """Primary key columns in key order."""
        rows = await self._client.fetch(
            "SELECT name FROM pragma_table_info(:table) WHERE pk > 0 ORDER BY pk",
            {"table": table},
        )
        return [row["name"] for row in rows]

    async def get_indexes(self, table: str) -> list[IndexInfo]:
        """Get indexes for a table, excluding the primary key index."""
        index_rows = await self._client.fetch(
            "SELECT name, \"unique\", origin FROM pragma_index_list(:table) ORDER BY name",
            {"table": table},
        )
        indexes: list[IndexInfo] = []
        for index_row in index_rows:
            if index_row["origin"] == "pk":
                continue
            column_rows = await self._client.fetch(
                "SELECT seqno, name FROM pragma_index_info(:index) ORDER BY seqno",
                {"index": index_row["name"]},
            )
            indexes.append(
                IndexInfo(
                    name=index_row["name"],
                    # Expression index parts have no column name
                    columns=[r["name"] for r in column_rows if r["name"] is not None],
                    unique=bool(index_row["unique"]),
                )
            )
        return indexes

    async def get_foreign_keys(self, table: str) -> list[ForeignKeyInfo]:
        """Get foreign keys, one record per column pair."""
        rows = await self._client.fetch(
            "SELECT id, seq, \"table\", \"from\", \"to\", on_update, on_delete "
            "FROM pragma_foreign_key_list(:table) ORDER BY id, seq",
            {"table": table},
        )
        # One name per constraint: pragma rows sharing an id are one composite key
        from_columns: dict[int, list[str]] = {}
        for row in rows:
            from_columns.setdefault(row["id"], []).append(row["from"])

        foreign_keys: list[ForeignKeyInfo] = []
        for row in rows:
            referenced_column = row["to"]
            if referenced_column is None:
                # REFERENCES parent without a column list targets the parent's primary key
                parent_pk = await self.get_primary_key(row["table"])
                referenced_column = parent_pk[row["seq"]] if row["seq"] < len(parent_pk) else "rowid"
            foreign_keys.append(
                ForeignKeyInfo(
                    name=f"fk_{table}_{'_'.join(from_columns[row['id']])}",
                    column=row["from"],
                    referenced_table=row["table"],
                    referenced_column=referenced_column,
                    on_delete=(row["on_delete"] or "NO ACTION").upper(),
                    on_update=(row["on_update"] or "NO ACTION").upper(),
                )
            )
        return foreign_keys

    async def get_row_count(self, table: str) -> int:
        rows = await self._client.fetch(
            f"SELECT COUNT(*) AS count FROM {quote_identifier(table)}"
        )
        return int(rows[0]["count"]) if rows else 0

    async def get_view_definition(self, view: str) -> str | None:
        rows = await self._client.fetch(
            "SELECT sql FROM sqlite_master WHERE type = 'view' AND name = :name",
            {"name": view},
        )
        return rows[0]["sql"] if rows else None

    async def _get_create_sql(self, table: str) -> str | None:
        rows = await self._client.fetch(
            "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = :name",
            {"name": table},
        )
        return rows[0]["sql"] if rows else None


def _type_parameters(
    declared: str, params: list[int]
) -> tuple[int | None, int | None, int | None]:
    """Return (precision, scale, max_length) from a declared type's parameters."""
    if not params:
        return None, None, None
    affinity_upper = declared.upper()
    if any(token in affinity_upper for token in ("CHAR", "CLOB", "TEXT")):
        return None, None, params[0]
    precision = params[0]
    scale = params[1] if len(params) > 1 else None
    return precision, scale, None


def detect_auto_increment(create_sql: str | None, columns: list[dict]) -> str | None:
    """Find the column SQLite assigns automatically, if any.

    Checks, in order: an explicit ``AUTOINCREMENT`` column, then a sole
    ``INTEGER PRIMARY KEY`` column (an alias for the rowid).

    Args:
        create_sql: The table's ``CREATE TABLE`` statement.
        columns: ``pragma_table_info`` rows.

    Returns:
        The column name, or ``None``.
    """
    if create_sql:
        match = re.search(
            r"[\"`\[]?(\w+)[\"`\]]?\s+INTEGER\s+PRIMARY\s+KEY(?:\s+(?:ASC|DESC))?\s+AUTOINCREMENT",
            create_sql,
            re.IGNORECASE,
        )
        if match:
            return match.group(1)

    pk_columns = [c for c in columns if c["pk"] > 0]
    if len(pk_columns) == 1 and (pk_columns[0]["type"] or "").strip().upper() == "INTEGER":
        return pk_columns[0]["name"]
    return None


# ============================================================================
# Enhancers
# ============================================================================


def parse_check_constraints(create_sql: str | None) -> list[str]:
    """Extract CHECK expressions from a ``CREATE TABLE`` statement.

    Parentheses are matched, so nested calls inside a CHECK survive.

    Example:
        parse_check_constraints("CREATE TABLE t (n INT CHECK (n > abs(-1)))")
        # ['n > abs(-1)']
    """
    if not create_sql:
        return []

    checks: list[str] = []
    for match in re.finditer(r"\bCHECK\s*\(", create_sql, re.IGNORECASE):
        start = match.end()
        depth = 1
        position = start
        while position < len(create_sql) and depth:
            char = create_sql[position]
            if char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
            position += 1
        if depth == 0:
            checks.append(create_sql[start:position - 1].strip())
    return checks


class SQLiteConstraintAnalyzer:
    """Constraint facts SQLite keeps outside the PRAGMA column output."""

    async def foreign_keys_enabled(self, client: DatabaseClient) -> bool:
        """Whether the connection enforces foreign keys (``PRAGMA foreign_keys``)."""
        rows = await client.fetch("PRAGMA foreign_keys")
        if not rows:
            return False
        return bool(next(iter(rows[0].values())))

    async def get_check_constraints(self, client: DatabaseClient, table: str) -> list[str]:
        rows = await client.fetch(
            "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = :name",
            {"name": table},
        )
        return parse_check_constraints(rows[0]["sql"] if rows else None)


class SQLiteIndexAnalyzer:
    """Index diagnostics and maintenance for SQLite."""

    def analyze_index_efficiency(self, table: TableInfo) -> list[str]:
        """Return human-readable index recommendations for a table.

        Flags indexes without columns, indexes duplicating another index's
        column list, non-unique indexes that are a leading prefix of another
        index, and foreign key columns no index starts with.
        """
        recommendations: list[str] = []

        for index in table.indexes:
            if not index.columns:
                recommendations.append(f"Invalid index found: {index.name} (no columns)")

        # Duplicate column combinations
        groups: dict[tuple[str, ...], list[str]] = {}
        for index in table.indexes:
            if index.columns:
                groups.setdefault(tuple(index.columns), []).append(index.name)
        for columns, names in groups.items():
            if len(names) > 1:
                recommendations.append(
                    f"Redundant indexes on {table.name} ({', '.join(columns)}): {', '.join(names)}"
                )

        # Prefix redundancy
        for index in table.indexes:
            if index.unique or not index.columns:
                continue
            for other in table.indexes:
                if (
                    other.name != index.name
                    and len(other.columns) > len(index.columns)
                    and other.columns[: len(index.columns)] == index.columns
                ):
                    recommendations.append(
                        f"Index {index.name} on {table.name} is a prefix of {other.name}"
                    )
                    break

        # Unindexed foreign keys
        leading = {index.columns[0] for index in table.indexes if index.columns}
        if table.primary_key:
            leading.add(table.primary_key[0])
        for fk in table.foreign_keys:
            if fk.column not in leading:
                recommendations.append(
                    f"Foreign key column {table.name}.{fk.column} has no index"
                )

        return recommendations

    async def optimize(self, client: DatabaseClient) -> None:
        """Run ``PRAGMA optimize`` so SQLite refreshes its planner statistics."""
        await client.execute("PRAGMA optimize")
