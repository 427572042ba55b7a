"""Row copying between two databases.

``DataMigrator`` reads a source table in batches, converts each value for
the target engine and inserts the batch on the target.

Pagination:
- Sequential runs use keyset pagination on a single-column primary key
  (or a single-column unique index over a NOT NULL column) and fall back
  to ``LIMIT/OFFSET`` otherwise.
- Parallel runs split each table into disjoint ``LIMIT/OFFSET`` ranges.
  Every batch of every table acquires one shared
  ``asyncio.Semaphore(parallel_workers)``, so the worker limit holds
  across tables as well as within one.

Usage:
    from schema_bridge.migration.data import DataMigrator

    migrator = DataMigrator(source, target, "sqlite", "postgres", options)
    results = await migrator.migrate_tables(source_schema.tables, target_schema.tables)
    check = await migrator.verify_table("users")
"""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from schema_bridge.adapters.base import DatabaseClient, quote_identifier
from schema_bridge.config.models import MigrationOptions
from schema_bridge.discovery.factory import DiscoveryFactory
from schema_bridge.migration.models import (
    DataMigrationProgress,
    MigrationIssue,
    RowCountVerification,
    TableMigrationResult,
)
from schema_bridge.schema.fix import dependency_levels
from schema_bridge.schema.models import Dialect, TableInfo
from schema_bridge.schema.types import get_value_transformation

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[DataMigrationProgress], None]


def keyset_column(table: TableInfo) -> str | None:
    """Column usable for keyset pagination, if the table has one."""
    if len(table.primary_key) == 1:
        return table.primary_key[0]
    for index in table.indexes:
        if index.unique and len(index.columns) == 1:
            column = table.get_column(index.columns[0])
            if column is not None and not column.nullable:
                return column.name
    return None


class _Progress:
    """Row counter and ETA for one table."""

    def __init__(self, table: str, total: int, callback: ProgressCallback | None) -> None:
        self.table = table
        self.total = total
        self.current = 0
        self.started = time.monotonic()
        self.callback = callback

    def advance(self, rows: int) -> None:
        self.current += rows
        if self.callback is None:
            return

        elapsed = time.monotonic() - self.started
        remaining = None
        if self.current and elapsed > 0:
            rate = self.current / elapsed
            remaining = max(0, self.total - self.current) / rate

        percentage = min(100.0, self.current / self.total * 100) if self.total else 100.0
        self.callback(
            DataMigrationProgress(
                table=self.table,
                current=self.current,
                total=self.total,
                percentage=percentage,
                estimated_time_remaining=remaining,
            )
        )


class DataMigrator:
    """Copies table data from a source client to a target client.

    Args:
        source_client: Client rows are read from.
        target_client: Client rows are written to.
        source_dialect: Engine of the source.
        target_dialect: Engine of the target.
        options: Batch size, parallelism and error policy.
    """

    def __init__(
        self,
        source_client: DatabaseClient,
        target_client: DatabaseClient,
        source_dialect: Dialect | str,
        target_dialect: Dialect | str,
        options: MigrationOptions | None = None,
    ) -> None:
        self.source_client = source_client
        self.target_client = target_client
        self.source_dialect = Dialect.parse(source_dialect)
        self.target_dialect = Dialect.parse(target_dialect)
        self.options = options or MigrationOptions()
        self._semaphore = asyncio.Semaphore(self.options.parallel_workers)
        self.source_introspector = DiscoveryFactory(self.source_dialect).create_introspector(
            source_client
        )
        self.target_introspector = DiscoveryFactory(self.target_dialect).create_introspector(
            target_client
        )

    # ------------------------------------------------------------------
    # Row reading
    # ------------------------------------------------------------------

    def _transformations(
        self, source_table: TableInfo, target_table: TableInfo
    ) -> dict[str, Callable[[Any], Any] | None]:
        """Per-column converters for columns present on both sides."""
        converters: dict[str, Callable[[Any], Any] | None] = {}
        for column in source_table.columns:
            target_column = target_table.get_column(column.name)
            if target_column is None:
                continue
            converters[column.name] = get_value_transformation(
                column.type, target_column.type, self.source_dialect, self.target_dialect
            )
        return converters

    def _fallback_order(self, table: TableInfo) -> str:
        if table.primary_key:
            return ", ".join(quote_identifier(c) for c in table.primary_key)
        # Physical row order; stable while the source is not being written
        return "rowid" if self.source_dialect is Dialect.SQLITE else "ctid"

    def _select(self, table: TableInfo, columns: list[str]) -> str:
        column_list = ", ".join(quote_identifier(c) for c in columns)
        return f"SELECT {column_list} FROM {quote_identifier(table.name)}"

    @staticmethod
    def _convert(rows: list[dict], converters: dict[str, Callable[[Any], Any] | None]) -> list[dict]:
        converted = []
        for row in rows:
            new_row = {}
            for name, value in row.items():
                convert = converters.get(name)
                new_row[name] = convert(value) if convert is not None else value
            converted.append(new_row)
        return converted

    async def _copy(self, table: str, rows: list[dict], converters: dict) -> int:
        if not rows:
            return 0
        if self.options.dry_run:
            return len(rows)
        return await self.target_client.insert_many(table, self._convert(rows, converters))

    # ------------------------------------------------------------------
    # Table migration
    # ------------------------------------------------------------------

    async def migrate_table(
        self,
        source_table: TableInfo,
        target_table: TableInfo,
        progress_callback: ProgressCallback | None = None,
    ) -> TableMigrationResult:
        """Copy every row of ``source_table`` into ``target_table``.

        Only columns present on both sides are copied.  A failed batch stops
        the table; the error is recorded as fatal unless
        ``continue_on_error`` is set.  Never raises for database errors.
        """
        started = time.monotonic()
        result = TableMigrationResult(table=source_table.name)
        converters = self._transformations(source_table, target_table)
        columns = [c for c in source_table.column_names if c in converters]

        if not columns:
            result.errors.append(
                MigrationIssue(
                    table=source_table.name,
                    message="No columns in common between source and target table",
                    fatal=not self.options.continue_on_error,
                )
            )
            return result

        progress = _Progress(source_table.name, 0, progress_callback)
        try:
            progress.total = await self.source_introspector.get_row_count(source_table.name)
            if progress.total:
                key = keyset_column(source_table)
                if key is not None and await self._has_null_keys(source_table, key):
                    key = None
                if self.options.parallel or key is None or key not in columns:
                    await self._copy_by_offset(source_table, target_table.name, columns, converters, progress)
                else:
                    await self._copy_by_keyset(source_table, target_table.name, columns, key, converters, progress)
            result.rows_migrated = progress.current
        except Exception as e:
            logger.warning(f"Data migration failed for table {source_table.name}: {e}")
            result.errors.append(
                MigrationIssue(
                    table=source_table.name,
                    message=f"Failed to migrate data for table {source_table.name}",
                    error=str(e),
                    fatal=not self.options.continue_on_error,
                )
            )
            result.rows_migrated = progress.current

        result.duration = time.monotonic() - started
        logger.debug(
            f"{source_table.name}: {result.rows_migrated} rows in {result.duration:.2f}s"
        )
        return result

    async def _has_null_keys(self, table: TableInfo, key: str) -> bool:
        # SQLite allows NULL in primary keys that are not INTEGER PRIMARY KEY
        if self.source_dialect is not Dialect.SQLITE:
            return False
        rows = await self.source_client.fetch(
            f"SELECT 1 AS found FROM {quote_identifier(table.name)} "
            f"WHERE {quote_identifier(key)} IS NULL LIMIT 1"
        )
        return bool(rows)

    async def _copy_by_keyset(
        self,
        table: TableInfo,
        target: str,
        columns: list[str],
        key: str,
        converters: dict,
        progress: _Progress,
    ) -> None:
        quoted_key = quote_identifier(key)
        base = self._select(table, columns)
        last: Any = None
        first = True

        while True:
            if first:
                sql = f"{base} ORDER BY {quoted_key} LIMIT :limit"
                params = {"limit": self.options.batch_size}
            else:
                sql = f"{base} WHERE {quoted_key} > :last ORDER BY {quoted_key} LIMIT :limit"
                params = {"last": last, "limit": self.options.batch_size}

            async with self._semaphore:
                rows = await self.source_client.fetch(sql, params)
                if not rows:
                    return
                progress.advance(await self._copy(target, rows, converters))

            last = rows[-1][key]
            first = False
            if len(rows) < self.options.batch_size:
                return

    async def _copy_by_offset(
        self,
        table: TableInfo,
        target: str,
        columns: list[str],
        converters: dict,
        progress: _Progress,
    ) -> None:
        sql = (
            f"{self._select(table, columns)} ORDER BY {self._fallback_order(table)} "
            f"LIMIT :limit OFFSET :offset"
        )
        batch_size = self.options.batch_size

        async def copy_range(offset: int) -> int:
            async with self._semaphore:
                rows = await self.source_client.fetch(sql, {"limit": batch_size, "offset": offset})
                copied = await self._copy(target, rows, converters)
            progress.advance(copied)
            return len(rows)

        if not self.options.parallel:
            offset = 0
            while True:
                fetched = await copy_range(offset)
                if fetched < batch_size:
                    return
                offset += batch_size

        offsets = list(range(0, progress.total, batch_size))
        outcomes = await asyncio.gather(
            *(copy_range(offset) for offset in offsets), return_exceptions=True
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

    async def migrate_tables(
        self,
        source_tables: list[TableInfo],
        target_tables: list[TableInfo],
        progress_callback: ProgressCallback | None = None,
    ) -> list[TableMigrationResult]:
        """Copy every source table that also exists on the target.

        Tables run in foreign key dependency levels, parents first.  With
        ``parallel`` the tables of one level run concurrently.  A fatal
        table failure stops all later levels.
        """
        target_map = {t.name: t for t in target_tables}
        source_map = {t.name: t for t in source_tables if t.name in target_map}
        results: list[TableMigrationResult] = []

        for level in dependency_levels(list(source_map.values())):
            pairs = [(source_map[name], target_map[name]) for name in level]
            if self.options.parallel:
                level_results = await asyncio.gather(
                    *(self.migrate_table(s, t, progress_callback) for s, t in pairs)
                )
            else:
                level_results = []
                for source_table, target_table in pairs:
                    table_result = await self.migrate_table(source_table, target_table, progress_callback)
                    level_results.append(table_result)
                    if table_result.fatal:
                        break

            results.extend(level_results)
            if any(r.fatal for r in level_results):
                logger.error("Stopping data migration after a fatal table error")
                break

        return results

    # ------------------------------------------------------------------
    # Verification and cleanup
    # ------------------------------------------------------------------

    async def verify_table(self, table: str, target_table: str | None = None) -> RowCountVerification:
        """Compare row counts on both sides."""
        source_count, target_count = await asyncio.gather(
            self.source_introspector.get_row_count(table),
            self.target_introspector.get_row_count(target_table or table),
        )
        return RowCountVerification(
            table=table,
            match=source_count == target_count,
            source_count=source_count,
            target_count=target_count,
            difference=abs(source_count - target_count),
        )

    async def truncate_table(self, table: str) -> None:
        """Remove every row from a target table, resetting its auto-increment counter."""
        quoted = quote_identifier(table)
        if self.target_dialect is Dialect.POSTGRES:
            await self.target_client.execute(f"TRUNCATE TABLE {quoted} RESTART IDENTITY CASCADE")
            return

        await self.target_client.execute(f"DELETE FROM {quoted}")
        sequence = await self.target_client.fetch(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'sqlite_sequence'"
        )
        if sequence:
            await self.target_client.execute(
                "DELETE FROM sqlite_sequence WHERE name = :name", {"name": table}
            )
