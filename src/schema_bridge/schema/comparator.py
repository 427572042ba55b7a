"""Schema comparison.

Two entry points, both pure logic with no I/O:

- ``diff_schemas`` reports structural drift between two snapshots of the
  same database (used by the watcher).
- ``compare_schemas`` compares a source database against a target on a
  possibly different engine, mapping types before comparing them (used by
  schema sync and migration).

Usage:
    from schema_bridge.schema.comparator import compare_schemas, diff_schemas

    changes = diff_schemas(previous, current)
    result = compare_schemas(sqlite_schema, pg_schema, "sqlite", "postgres")
    if not result.compatible:
        for difference in result.differences:
            print(difference.message)
"""

from enum import Enum

from pydantic import BaseModel, Field

from schema_bridge.schema.models import (
    ColumnInfo,
    Dialect,
    IndexInfo,
    SchemaChange,
    SchemaChangeKind,
    SchemaInfo,
    TableInfo,
)
from schema_bridge.schema.types import types_compatible


# ============================================================================
# Snapshot Drift
# ============================================================================


def _column_shape(column: ColumnInfo) -> dict:
    return {
        "type": column.type,
        "nullable": column.nullable,
        "is_primary_key": column.is_primary_key,
    }


def diff_schemas(old: SchemaInfo | None, new: SchemaInfo) -> list[SchemaChange]:
    """List structural changes from ``old`` to ``new``.

    With no previous snapshot every table in ``new`` is reported as added.
    Columns count as modified when their type, nullability or primary key
    flag changes.

    Examples:
        >>> diff_schemas(None, SchemaInfo(tables=[TableInfo(name="users")]))[0].kind
        <SchemaChangeKind.TABLE_ADDED: 'table_added'>
    """
    old_tables = {t.name: t for t in old.tables} if old is not None else {}
    new_tables = {t.name: t for t in new.tables}
    changes: list[SchemaChange] = []

    for name, table in new_tables.items():
        if name not in old_tables:
            changes.append(
                SchemaChange(
                    kind=SchemaChangeKind.TABLE_ADDED,
                    table=name,
                    details={"columns": len(table.columns)},
                )
            )

    for name in old_tables:
        if name not in new_tables:
            changes.append(SchemaChange(kind=SchemaChangeKind.TABLE_REMOVED, table=name))

    for name, new_table in new_tables.items():
        old_table = old_tables.get(name)
        if old_table is None:
            continue

        old_columns = {c.name: c for c in old_table.columns}
        new_columns = {c.name: c for c in new_table.columns}

        for column_name, column in new_columns.items():
            previous = old_columns.get(column_name)
            if previous is None:
                changes.append(
                    SchemaChange(
                        kind=SchemaChangeKind.COLUMN_ADDED,
                        table=name,
                        column=column_name,
                        details={"type": column.type},
                    )
                )
            elif _column_shape(previous) != _column_shape(column):
                changes.append(
                    SchemaChange(
                        kind=SchemaChangeKind.COLUMN_MODIFIED,
                        table=name,
                        column=column_name,
                        details={"old": _column_shape(previous), "new": _column_shape(column)},
                    )
                )

        for column_name in old_columns:
            if column_name not in new_columns:
                changes.append(
                    SchemaChange(
                        kind=SchemaChangeKind.COLUMN_REMOVED,
                        table=name,
                        column=column_name,
                    )
                )

    return changes


# ============================================================================
# Cross-engine Comparison
# ============================================================================


class DifferenceType(str, Enum):
    TABLE_ADDED = "table_added"
    TABLE_REMOVED = "table_removed"
    COLUMN_ADDED = "column_added"
    COLUMN_REMOVED = "column_removed"
    COLUMN_MODIFIED = "column_modified"
    INDEX_ADDED = "index_added"
    INDEX_REMOVED = "index_removed"


class SchemaDifference(BaseModel):
    """One way the target differs from the source.

    ``source`` and ``target`` hold the object on each side, where it exists.
    """

    type: DifferenceType
    table: str
    column: str | None = None
    message: str = ""
    source: TableInfo | ColumnInfo | IndexInfo | None = None
    target: TableInfo | ColumnInfo | IndexInfo | None = None


class ComparisonSummary(BaseModel):
    tables_added: int = 0
    tables_removed: int = 0
    tables_modified: int = 0
    total_differences: int = 0


class SchemaComparisonResult(BaseModel):
    """Outcome of ``compare_schemas``.

    Attributes:
        differences: Every difference found, source tables first.
        compatible: True when there are no differences at all.
        summary: Counts per category.
    """

    source_dialect: Dialect
    target_dialect: Dialect
    differences: list[SchemaDifference] = Field(default_factory=list)
    compatible: bool = True
    summary: ComparisonSummary = Field(default_factory=ComparisonSummary)

    def by_type(self, difference_type: DifferenceType) -> list[SchemaDifference]:
        return [d for d in self.differences if d.type is difference_type]


_TABLE_MODIFYING = {
    DifferenceType.COLUMN_ADDED,
    DifferenceType.COLUMN_REMOVED,
    DifferenceType.COLUMN_MODIFIED,
    DifferenceType.INDEX_ADDED,
    DifferenceType.INDEX_REMOVED,
}


def compare_schemas(
    source: SchemaInfo,
    target: SchemaInfo,
    source_dialect: Dialect | str,
    target_dialect: Dialect | str,
    type_overrides: dict[str, str] | None = None,
) -> SchemaComparisonResult:
    """Compare a source schema against a target schema across engines.

    Column types are compared with ``types_compatible``; nullability is only
    compared once the types agree, so a column yields at most one
    ``column_modified`` difference.

    Args:
        source: Snapshot of the database being copied from.
        target: Snapshot of the database being copied to.
        source_dialect: Engine of ``source``.
        target_dialect: Engine of ``target``.
        type_overrides: Custom type mappings, as in ``MigrationOptions.type_mappings``.

    Returns:
        ``SchemaComparisonResult`` with differences and summary counts.
    """
    source_dialect = Dialect.parse(source_dialect)
    target_dialect = Dialect.parse(target_dialect)
    target_tables = {t.name: t for t in target.tables}
    source_names = set(source.table_names)
    differences: list[SchemaDifference] = []

    for source_table in source.tables:
        target_table = target_tables.get(source_table.name)
        if target_table is None:
            differences.append(
                SchemaDifference(
                    type=DifferenceType.TABLE_ADDED,
                    table=source_table.name,
                    message=f"Table '{source_table.name}' needs to be created",
                    source=source_table,
                )
            )
            continue

        differences.extend(
            _compare_columns(source_table, target_table, source_dialect, target_dialect, type_overrides)
        )
        differences.extend(_compare_indexes(source_table, target_table))

    for target_table in target.tables:
        if target_table.name not in source_names:
            differences.append(
                SchemaDifference(
                    type=DifferenceType.TABLE_REMOVED,
                    table=target_table.name,
                    message=f"Table '{target_table.name}' exists in target but not in source",
                    target=target_table,
                )
            )

    summary = ComparisonSummary(
        tables_added=sum(1 for d in differences if d.type is DifferenceType.TABLE_ADDED),
        tables_removed=sum(1 for d in differences if d.type is DifferenceType.TABLE_REMOVED),
        tables_modified=len({d.table for d in differences if d.type in _TABLE_MODIFYING}),
        total_differences=len(differences),
    )

    return SchemaComparisonResult(
        source_dialect=source_dialect,
        target_dialect=target_dialect,
        differences=differences,
        compatible=not differences,
        summary=summary,
    )


def _compare_columns(
    source_table: TableInfo,
    target_table: TableInfo,
    source_dialect: Dialect,
    target_dialect: Dialect,
    type_overrides: dict[str, str] | None,
) -> list[SchemaDifference]:
    differences: list[SchemaDifference] = []
    target_columns = {c.name: c for c in target_table.columns}
    source_names = set(source_table.column_names)

    for column in source_table.columns:
        target_column = target_columns.get(column.name)
        if target_column is None:
            differences.append(
                SchemaDifference(
                    type=DifferenceType.COLUMN_ADDED,
                    table=source_table.name,
                    column=column.name,
                    message=f"Column '{column.name}' needs to be added",
                    source=column,
                )
            )
        elif not types_compatible(
            column.type, target_column.type, source_dialect, target_dialect, type_overrides
        ):
            differences.append(
                SchemaDifference(
                    type=DifferenceType.COLUMN_MODIFIED,
                    table=source_table.name,
                    column=column.name,
                    message=(
                        f"Column '{column.name}' type mismatch: source has "
                        f"'{column.type}', target has '{target_column.type}'"
                    ),
                    source=column,
                    target=target_column,
                )
            )
        elif column.nullable != target_column.nullable:
            differences.append(
                SchemaDifference(
                    type=DifferenceType.COLUMN_MODIFIED,
                    table=source_table.name,
                    column=column.name,
                    message=f"Column '{column.name}' nullability differs",
                    source=column,
                    target=target_column,
                )
            )

    for target_column in target_table.columns:
        if target_column.name not in source_names:
            differences.append(
                SchemaDifference(
                    type=DifferenceType.COLUMN_REMOVED,
                    table=source_table.name,
                    column=target_column.name,
                    message=f"Column '{target_column.name}' exists in target but not in source",
                    target=target_column,
                )
            )

    return differences


def _index_signature(index: IndexInfo) -> tuple:
    return tuple(index.columns), index.unique


def _compare_indexes(source_table: TableInfo, target_table: TableInfo) -> list[SchemaDifference]:
    """Indexes match by name, or by column list and uniqueness when renamed.

    Engine-generated names (SQLite's ``sqlite_autoindex_*``) never survive a
    migration, so a same-shape index under another name counts as present.
    """
    differences: list[SchemaDifference] = []
    source_names = {i.name for i in source_table.indexes}
    target_names = {i.name for i in target_table.indexes}
    source_shapes = {_index_signature(i) for i in source_table.indexes}
    target_shapes = {_index_signature(i) for i in target_table.indexes}

    for index in source_table.indexes:
        if index.name not in target_names and _index_signature(index) not in target_shapes:
            differences.append(
                SchemaDifference(
                    type=DifferenceType.INDEX_ADDED,
                    table=source_table.name,
                    message=f"Index '{index.name}' needs to be created",
                    source=index,
                )
            )

    for index in target_table.indexes:
        if index.name not in source_names and _index_signature(index) not in source_shapes:
            differences.append(
                SchemaDifference(
                    type=DifferenceType.INDEX_REMOVED,
                    table=source_table.name,
                    message=f"Index '{index.name}' exists in target but not in source",
                    target=index,
                )
            )

    return differences
