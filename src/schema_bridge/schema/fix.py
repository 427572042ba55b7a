"""Schema sync -- turn a schema comparison into DDL and apply it.

Builds CREATE TABLE, ALTER TABLE ADD COLUMN and CREATE INDEX statements for
the target engine from a ``SchemaComparisonResult``, and applies them via
the ``DatabaseClient.execute()`` Protocol method.

Removals and type changes are never generated as DDL; they appear in the
plan as ``-- WARNING`` comment lines for manual review.

Usage:
    from schema_bridge.schema.comparator import compare_schemas
    from schema_bridge.schema.fix import apply_sync_plan, generate_sync_plan

    comparison = compare_schemas(source, target, "sqlite", "postgres")
    plan = generate_sync_plan(comparison, source)
    print("\\n".join(plan.statements))
    result = await apply_sync_plan(target_client, plan)
"""

import logging
from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from schema_bridge.adapters.base import DatabaseClient, quote_identifier
from schema_bridge.schema.comparator import DifferenceType, SchemaComparisonResult
from schema_bridge.schema.models import (
    ColumnInfo,
    Dialect,
    ForeignKeyInfo,
    IndexInfo,
    SchemaInfo,
    TableInfo,
)
from schema_bridge.schema.types import canonical_type, map_default, map_type

logger = logging.getLogger(__name__)

_SERIAL_TYPES = {
    "int": "SERIAL",
    "bigint": "BIGSERIAL",
    "smallint": "SMALLSERIAL",
    "serial": "SERIAL",
    "bigserial": "BIGSERIAL",
    "smallserial": "SMALLSERIAL",
}


# ------------------------------------------------------------------
# Plan data classes
# ------------------------------------------------------------------


@dataclass
class TableCreate:
    """A table to be created on the target.

    Example:
        TableCreate(table="users", sql='CREATE TABLE "users" (...);').to_sql()
    """

    table: str
    sql: str
    foreign_keys: int = 0  # inline FOREIGN KEY clauses

    def to_sql(self) -> str:
        return self.sql


@dataclass
class ColumnAdd:
    """A column to be added via ALTER TABLE."""

    table: str
    column: str
    sql: str

    def to_sql(self) -> str:
        return self.sql


@dataclass
class IndexCreate:
    """An index to be created once its table exists."""

    table: str
    index: str
    sql: str

    def to_sql(self) -> str:
        return self.sql


@dataclass
class ConstraintAdd:
    """A foreign key added after table creation.

    Needed on PostgreSQL when a table references one created after it.
    """

    table: str
    constraint: str
    sql: str

    def to_sql(self) -> str:
        return self.sql


@dataclass
class SyncPlan:
    """Ordered DDL for bringing a target schema in line with a source.

    Attributes:
        tables: Tables to create, in ``create_order``.
        constraints: Foreign keys added after all tables exist.
        columns: Columns to add to existing tables.
        indexes: Indexes to create, after their tables.
        warnings: ``-- WARNING`` comment lines for changes needing manual action.
        create_order: Forward topological order of new tables
            (parent tables before child tables).
        type_warnings: Unmapped-type warnings raised while building DDL.
    """

    tables: list[TableCreate] = field(default_factory=list)
    constraints: list[ConstraintAdd] = field(default_factory=list)
    columns: list[ColumnAdd] = field(default_factory=list)
    indexes: list[IndexCreate] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    create_order: list[str] = field(default_factory=list)
    type_warnings: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        """True if there is any executable DDL."""
        return bool(self.tables or self.constraints or self.columns or self.indexes)

    @property
    def statements(self) -> list[str]:
        """All statements in execution order, warnings last."""
        return (
            [t.to_sql() for t in self.tables]
            + [c.to_sql() for c in self.constraints]
            + [c.to_sql() for c in self.columns]
            + [i.to_sql() for i in self.indexes]
            + list(self.warnings)
        )


class SyncResult(BaseModel):
    """Result of applying a sync plan.

    Attributes:
        success: True if every executed statement succeeded.
        applied_statements: Number of statements executed successfully.
        tables_created: Tables created.
        columns_added: Columns added via ALTER TABLE.
        indexes_created: Indexes created.
        constraints_added: Foreign keys created, inline or added afterwards.
        errors: ``"<sql>: <error>"`` for each failed statement.
    """

    success: bool = True
    applied_statements: int = 0
    tables_created: int = 0
    columns_added: int = 0
    indexes_created: int = 0
    constraints_added: int = 0
    errors: list[str] = Field(default_factory=list)


# ------------------------------------------------------------------
# Ordering
# ------------------------------------------------------------------


def foreign_key_dependencies(tables: list[TableInfo]) -> dict[str, set[str]]:
    """Map each table to the other tables its foreign keys reference."""
    return {
        t.name: {fk.referenced_table for fk in t.foreign_keys if fk.referenced_table != t.name}
        for t in tables
    }


def _topological_sort(dependencies: dict[str, set[str]], tables: list[str]) -> list[str]:
    """Topological sort of tables based on FK dependencies.

    Returns tables in forward order: parent tables first, child tables last.
    Cycles are broken at the first table revisited.
    """
    relevant = {t: dependencies.get(t, set()) & set(tables) for t in tables}

    sorted_tables: list[str] = []
    visited: set[str] = set()
    visiting: set[str] = set()

    def visit(table: str) -> None:
        if table in visited or table in visiting:
            return
        visiting.add(table)
        for dep in sorted(relevant.get(table, set())):
            visit(dep)
        visiting.discard(table)
        visited.add(table)
        sorted_tables.append(table)

    for table in tables:
        visit(table)

    return sorted_tables


def table_creation_order(tables: list[TableInfo]) -> list[str]:
    """Table names ordered parents first; reverse it for safe drops."""
    return _topological_sort(foreign_key_dependencies(tables), [t.name for t in tables])


def dependency_levels(tables: list[TableInfo]) -> list[list[str]]:
    """Group tables into levels where each level only references earlier ones.

    Tables caught in a reference cycle are placed together in a final level.
    """
    names = [t.name for t in tables]
    remaining = {
        name: deps & set(names) for name, deps in foreign_key_dependencies(tables).items()
    }
    done: set[str] = set()
    levels: list[list[str]] = []

    while remaining:
        level = [name for name in names if name in remaining and remaining[name] <= done]
        if not level:
            level = [name for name in names if name in remaining]
        levels.append(level)
        for name in level:
            done.add(name)
            del remaining[name]

    return levels


# ------------------------------------------------------------------
# DDL builders
# ------------------------------------------------------------------


def _is_inline_autoincrement(table: TableInfo, column: ColumnInfo, target: Dialect) -> bool:
    return (
        target is Dialect.SQLITE
        and column.is_auto_increment
        and table.primary_key == [column.name]
    )


def build_column_definition(
    column: ColumnInfo,
    source_dialect: Dialect | str,
    target_dialect: Dialect | str,
    warnings: list[str] | None = None,
    overrides: dict[str, str] | None = None,
) -> str:
    """Column definition (name, type, NOT NULL, DEFAULT) for the target engine.

    Auto-increment integer columns become SERIAL types on PostgreSQL; their
    sequence-backed defaults are dropped.
    """
    target = Dialect.parse(target_dialect)
    column_type = map_type(column.type, source_dialect, target, warnings, overrides)

    serial = None
    if target is Dialect.POSTGRES and column.is_auto_increment:
        serial = _SERIAL_TYPES.get(canonical_type(column_type, Dialect.POSTGRES))

    parts = [quote_identifier(column.name), serial or column_type]
    if not column.nullable:
        parts.append("NOT NULL")
    if serial is None:
        default = map_default(column.default, source_dialect, target, column_type)
        if default is not None:
            parts.append(f"DEFAULT {default}")
    return " ".join(parts)


def build_foreign_key_sql(foreign_keys: list[ForeignKeyInfo]) -> str:
    """FOREIGN KEY clause for one constraint (all pairs sharing a name)."""
    first = foreign_keys[0]
    columns = ", ".join(quote_identifier(fk.column) for fk in foreign_keys)
    referenced = ", ".join(quote_identifier(fk.referenced_column) for fk in foreign_keys)
    sql = (
        f"FOREIGN KEY ({columns}) REFERENCES "
        f"{quote_identifier(first.referenced_table)} ({referenced})"
    )
    if first.on_delete and first.on_delete.upper() != "NO ACTION":
        sql += f" ON DELETE {first.on_delete.upper()}"
    if first.on_update and first.on_update.upper() != "NO ACTION":
        sql += f" ON UPDATE {first.on_update.upper()}"
    return sql


def group_foreign_keys(table: TableInfo) -> dict[str, list[ForeignKeyInfo]]:
    """Group column pairs into constraints by name, preserving order."""
    groups: dict[str, list[ForeignKeyInfo]] = {}
    for fk in table.foreign_keys:
        groups.setdefault(fk.name, []).append(fk)
    return groups


def build_create_table_sql(
    table: TableInfo,
    source_dialect: Dialect | str,
    target_dialect: Dialect | str,
    warnings: list[str] | None = None,
    overrides: dict[str, str] | None = None,
    skip_foreign_keys: set[str] | None = None,
) -> str:
    """Generate CREATE TABLE for ``table`` on the target engine.

    Args:
        table: Source table description.
        source_dialect: Engine the description came from.
        target_dialect: Engine to generate DDL for.
        warnings: Optional list collecting unmapped-type warnings.
        overrides: Custom type mappings.
        skip_foreign_keys: Constraint names to leave out (added later).

    Example:
        build_create_table_sql(users, "postgres", "sqlite")
        # 'CREATE TABLE "users" (\\n  "id" INTEGER PRIMARY KEY AUTOINCREMENT, ...\\n);'
    """
    target = Dialect.parse(target_dialect)
    skip = skip_foreign_keys or set()
    lines: list[str] = []
    inline_pk = False

    for column in table.columns:
        if _is_inline_autoincrement(table, column, target):
            lines.append(f"{quote_identifier(column.name)} INTEGER PRIMARY KEY AUTOINCREMENT")
            inline_pk = True
        else:
            lines.append(
                build_column_definition(column, source_dialect, target, warnings, overrides)
            )

    if table.primary_key and not inline_pk:
        columns = ", ".join(quote_identifier(c) for c in table.primary_key)
        lines.append(f"PRIMARY KEY ({columns})")

    for name, foreign_keys in group_foreign_keys(table).items():
        if name not in skip:
            lines.append(build_foreign_key_sql(foreign_keys))

    if Dialect.parse(source_dialect) is target:
        for check in table.check_constraints:
            lines.append(f"CHECK ({check})")
    elif table.check_constraints and warnings is not None:
        warnings.append(
            f"{len(table.check_constraints)} CHECK constraint(s) on '{table.name}' "
            f"not carried across engines"
        )

    body = ",\n  ".join(lines)
    return f"CREATE TABLE {quote_identifier(table.name)} (\n  {body}\n);"


def build_add_column_sql(
    table: str,
    column: ColumnInfo,
    source_dialect: Dialect | str,
    target_dialect: Dialect | str,
    warnings: list[str] | None = None,
    overrides: dict[str, str] | None = None,
) -> str:
    """Generate ALTER TABLE ADD COLUMN.

    NOT NULL is dropped when there is no default, since existing rows
    would violate it.
    """
    definition = build_column_definition(
        column.model_copy(update={"is_auto_increment": False}),
        source_dialect,
        target_dialect,
        warnings,
        overrides,
    )
    if " NOT NULL" in definition and " DEFAULT " not in definition:
        definition = definition.replace(" NOT NULL", "")
    return f"ALTER TABLE {quote_identifier(table)} ADD COLUMN {definition};"


def build_create_index_sql(table: str, index: IndexInfo) -> str:
    """Generate CREATE [UNIQUE] INDEX.

    Example:
        build_create_index_sql("users", IndexInfo(name="idx_email", columns=["email"], unique=True))
        # 'CREATE UNIQUE INDEX "idx_email" ON "users" ("email");'
    """
    unique = "UNIQUE " if index.unique else ""
    columns = ", ".join(quote_identifier(c) for c in index.columns)
    return f"CREATE {unique}INDEX {quote_identifier(index.name)} ON {quote_identifier(table)} ({columns});"


def build_drop_table_sql(table: str, target_dialect: Dialect | str) -> str:
    """DROP TABLE IF EXISTS, cascading on PostgreSQL."""
    cascade = " CASCADE" if Dialect.parse(target_dialect) is Dialect.POSTGRES else ""
    return f"DROP TABLE IF EXISTS {quote_identifier(table)}{cascade};"


def _portable_index(table: str, index: IndexInfo) -> IndexInfo | None:
    # SQLite names the indexes behind UNIQUE constraints sqlite_autoindex_*
    if not index.columns:
        return None
    if index.name.startswith("sqlite_"):
        if not index.unique:
            return None
        return index.model_copy(update={"name": f"uq_{table}_{'_'.join(index.columns)}"})
    return index


def _portable_indexes(table: TableInfo) -> list[IndexInfo]:
    """Indexes worth recreating, one per (columns, unique) shape."""
    indexes: list[IndexInfo] = []
    seen: set[tuple] = set()
    for index in sorted(table.indexes, key=lambda i: i.name.startswith("sqlite_")):
        portable = _portable_index(table.name, index)
        if portable is None:
            continue
        shape = (tuple(portable.columns), portable.unique)
        if shape not in seen:
            seen.add(shape)
            indexes.append(portable)
    return indexes


# ------------------------------------------------------------------
# Plan generation
# ------------------------------------------------------------------


def generate_sync_plan(
    comparison: SchemaComparisonResult,
    source_schema: SchemaInfo,
    overrides: dict[str, str] | None = None,
) -> SyncPlan:
    """Generate DDL that brings the target in line with the source.

    Pure sync logic -- no I/O.  New tables are created parents first; on
    PostgreSQL a foreign key to a table created later is split out into an
    ``ALTER TABLE ... ADD CONSTRAINT`` run after all creates.

    Args:
        comparison: Result of ``compare_schemas(source, target, ...)``.
        source_schema: The source snapshot the comparison was made from.
        overrides: Custom type mappings.

    Returns:
        ``SyncPlan``; its ``statements`` property lists every line in order.
    """
    source = comparison.source_dialect
    target = comparison.target_dialect
    plan = SyncPlan()

    added = [
        source_schema.get_table(d.table)
        for d in comparison.by_type(DifferenceType.TABLE_ADDED)
    ]
    added = [t for t in added if t is not None]
    added_map = {t.name: t for t in added}

    plan.create_order = table_creation_order(added)

    created: set[str] = set()
    for name in plan.create_order:
        table = added_map[name]
        deferred: dict[str, list[ForeignKeyInfo]] = {}
        if target is Dialect.POSTGRES:
            for constraint, foreign_keys in group_foreign_keys(table).items():
                referenced = foreign_keys[0].referenced_table
                if referenced != name and referenced in added_map and referenced not in created:
                    deferred[constraint] = foreign_keys

        sql = build_create_table_sql(
            table, source, target, plan.type_warnings, overrides, set(deferred)
        )
        inline = len(group_foreign_keys(table)) - len(deferred)
        plan.tables.append(TableCreate(table=name, sql=sql, foreign_keys=inline))
        created.add(name)

        for constraint, foreign_keys in deferred.items():
            plan.constraints.append(
                ConstraintAdd(
                    table=name,
                    constraint=constraint,
                    sql=(
                        f"ALTER TABLE {quote_identifier(name)} ADD CONSTRAINT "
                        f"{quote_identifier(constraint)} {build_foreign_key_sql(foreign_keys)};"
                    ),
                )
            )

        for index in _portable_indexes(table):
            plan.indexes.append(
                IndexCreate(table=name, index=index.name, sql=build_create_index_sql(name, index))
            )

    for difference in comparison.differences:
        if difference.type is DifferenceType.COLUMN_ADDED and isinstance(difference.source, ColumnInfo):
            plan.columns.append(
                ColumnAdd(
                    table=difference.table,
                    column=difference.source.name,
                    sql=build_add_column_sql(
                        difference.table, difference.source, source, target,
                        plan.type_warnings, overrides,
                    ),
                )
            )
        elif difference.type is DifferenceType.INDEX_ADDED and isinstance(difference.source, IndexInfo):
            index = _portable_index(difference.table, difference.source)
            if index is not None:
                plan.indexes.append(
                    IndexCreate(
                        table=difference.table,
                        index=index.name,
                        sql=build_create_index_sql(difference.table, index),
                    )
                )
        elif difference.type is DifferenceType.TABLE_REMOVED:
            plan.warnings.append(
                f"-- WARNING: Table '{difference.table}' should be dropped (manual action required)"
            )
        elif difference.type is DifferenceType.COLUMN_REMOVED:
            plan.warnings.append(
                f"-- WARNING: Column '{difference.table}.{difference.column}' "
                f"should be dropped (manual action required)"
            )
        elif difference.type is DifferenceType.COLUMN_MODIFIED:
            plan.warnings.append(f"-- WARNING: {difference.table}: {difference.message} (manual action required)")
        elif difference.type is DifferenceType.INDEX_REMOVED:
            plan.warnings.append(f"-- WARNING: {difference.table}: {difference.message} (manual action required)")

    logger.debug(
        f"Sync plan: {len(plan.tables)} tables, {len(plan.columns)} columns, "
        f"{len(plan.indexes)} indexes, {len(plan.warnings)} warnings"
    )
    return plan


# ------------------------------------------------------------------
# Plan application
# ------------------------------------------------------------------


async def apply_sync_plan(
    adapter: DatabaseClient,
    plan: SyncPlan,
    force: bool = False,
) -> SyncResult:
    """Apply a sync plan to the target database.

    Executes DDL statements via the ``adapter.execute()`` Protocol method,
    in plan order.  Comment lines are skipped.

    Args:
        adapter: Database adapter implementing ``DatabaseClient`` Protocol.
        plan: Plan from ``generate_sync_plan()``.
        force: Keep going after a failed statement instead of stopping.

    Returns:
        ``SyncResult`` with counts and per-statement errors.

    Raises:
        RuntimeError: If the adapter does not support DDL operations
            (raises ``NotImplementedError`` on ``execute()``).
    """
    result = SyncResult()

    steps = (
        [("tables_created", t) for t in plan.tables]
        + [("constraints_added", c) for c in plan.constraints]
        + [("columns_added", c) for c in plan.columns]
        + [("indexes_created", i) for i in plan.indexes]
    )

    for counter, step in steps:
        sql = step.to_sql()
        try:
            await adapter.execute(sql)
        except NotImplementedError:
            raise RuntimeError("DDL operations not supported for this adapter type")
        except Exception as e:
            logger.warning(f"Sync statement failed: {e}")
            result.errors.append(f"{sql}: {e}")
            if not force:
                break
            continue
        result.applied_statements += 1
        setattr(result, counter, getattr(result, counter) + 1)
        if isinstance(step, TableCreate):
            result.constraints_added += step.foreign_keys

    result.success = not result.errors
    return result
