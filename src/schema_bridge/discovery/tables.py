"""Table metadata discovery.

Turns an introspector's catalog output into ``TableInfo`` records.  Tables
are processed concurrently, and within one table the column, index and
foreign key lookups run concurrently too.

Failure policy:
- An index or foreign key lookup that fails leaves that facet empty; the
  table is still returned.
- Anything else failing for a table (including its column lookup) drops the
  table from the result with a logged warning.
"""

import asyncio
import logging
from collections import Counter
from collections.abc import Iterable

from schema_bridge.dialects.base import SchemaIntrospector, TableEntry
from schema_bridge.schema.models import TableInfo, TableStatistics, ValidationReport

logger = logging.getLogger(__name__)


def is_view_entry(entry: TableEntry) -> bool:
    """Classify a catalog entry as a view using whatever signal the engine gave."""
    if entry.is_view:
        return True
    return (entry.table_type or "").strip().lower() in ("view", "v")


class TableMetadataDiscovery:
    """Discovers tables through a ``SchemaIntrospector``."""

    async def discover_tables(
        self,
        introspector: SchemaIntrospector,
        exclude_tables: Iterable[str] = (),
    ) -> list[TableInfo]:
        """Discover every non-view table the introspector lists.

        Args:
            introspector: Dialect introspector to read the catalog through.
            exclude_tables: Table names to skip.

        Returns:
            ``TableInfo`` list in the introspector's listing order, minus
            tables whose processing failed.
        """
        excluded = set(exclude_tables)
        entries = [
            e for e in await introspector.list_tables()
            if not is_view_entry(e) and e.name not in excluded
        ]

        results = await asyncio.gather(
            *(self._discover_table(introspector, entry) for entry in entries),
            return_exceptions=True,
        )

        tables: list[TableInfo] = []
        for entry, result in zip(entries, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.warning(f"Failed to process table {entry.name}: {result}")
                continue
            tables.append(result)

        logger.debug(f"Discovered {len(tables)} of {len(entries)} tables")
        return tables

    async def _discover_table(
        self, introspector: SchemaIntrospector, entry: TableEntry
    ) -> TableInfo:
        columns, primary_key, indexes, foreign_keys = await asyncio.gather(
            introspector.get_columns(entry.name),
            self._facet(introspector.get_primary_key(entry.name), entry.name, "primary key"),
            self._facet(introspector.get_indexes(entry.name), entry.name, "indexes"),
            self._facet(introspector.get_foreign_keys(entry.name), entry.name, "foreign keys"),
        )
        column_names = {c.name for c in columns}
        if not primary_key or not set(primary_key) <= column_names:
            primary_key = [c.name for c in columns if c.is_primary_key]
        return TableInfo(
            name=entry.name,
            schema_name=entry.schema_name,
            columns=columns,
            primary_key=primary_key,
            indexes=indexes,
            foreign_keys=foreign_keys,
        )

    @staticmethod
    async def _facet(lookup, table: str, facet: str) -> list:
        try:
            return await lookup
        except Exception as e:
            logger.warning(f"Failed to get {facet} for table {table}: {e}")
            return []

    def get_table_statistics(self, tables: list[TableInfo]) -> TableStatistics:
        """Aggregate column, index and key counts over a set of tables."""
        total_columns = sum(len(t.columns) for t in tables)
        return TableStatistics(
            total_tables=len(tables),
            total_columns=total_columns,
            total_indexes=sum(len(t.indexes) for t in tables),
            total_foreign_keys=sum(len(t.foreign_keys) for t in tables),
            tables_with_primary_key=sum(1 for t in tables if t.primary_key),
            average_columns_per_table=total_columns / len(tables) if tables else 0.0,
        )

    def validate_table_structure(self, table: TableInfo) -> ValidationReport:
        """Check a table's internal consistency.

        Verifies the table is named, has columns, has unique column names,
        and that primary key and index columns exist.
        """
        issues: list[str] = []

        if not table.name:
            issues.append("Table name is required")
        if not table.columns:
            issues.append(f"Table '{table.name}' has no columns")

        counts = Counter(table.column_names)
        for name, count in counts.items():
            if count > 1:
                issues.append(f"Table '{table.name}' has duplicate column '{name}'")

        known = set(counts)
        for column in table.primary_key:
            if column not in known:
                issues.append(
                    f"Primary key column '{column}' not found in table '{table.name}'"
                )
        for index in table.indexes:
            for column in index.columns:
                if column not in known:
                    issues.append(
                        f"Index '{index.name}' on table '{table.name}' "
                        f"references non-existent column '{column}'"
                    )

        return ValidationReport.from_issues(issues)
