"""Migration manager -- schema and data migration between two databases.

``MigrationManager.migrate()`` runs four phases against a source and a
target database:

1. Discover both schemas and apply the include/exclude filters.
2. Schema: optionally drop the selected target tables, then create missing
   tables, their indexes and foreign keys.  Failed creates become warnings.
3. Data: copy rows table by table (see ``DataMigrator``).
4. Verify: compare row counts; mismatches become warnings.

``migrate()`` never raises; everything is reported on ``MigrationResult``.

Usage:
    from schema_bridge.config import load_migration_config
    from schema_bridge.migration.manager import MigrationManager

    manager = MigrationManager(load_migration_config())
    result = await manager.migrate()
    print(result.format_report())
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from schema_bridge.adapters.base import DatabaseClient
from schema_bridge.config.models import DiscoveryOptions, MigrationConfig
from schema_bridge.discovery.coordinator import SchemaDiscoveryCoordinator
from schema_bridge.factory import create_adapter
from schema_bridge.migration.data import DataMigrator
from schema_bridge.migration.models import (
    DataMigrationProgress,
    MigrationIssue,
    MigrationResult,
    SchemaSyncResult,
    TableMigrationResult,
)
from schema_bridge.schema.comparator import SchemaComparisonResult, compare_schemas
from schema_bridge.schema.fix import (
    SyncPlan,
    apply_sync_plan,
    build_drop_table_sql,
    generate_sync_plan,
    table_creation_order,
)
from schema_bridge.schema.models import SchemaInfo, TableInfo

logger = logging.getLogger(__name__)


class MigrationManager:
    """Coordinates schema and data migration from ``config.source`` to ``config.target``.

    Clients passed in are used as-is and left open.  When a client is not
    passed in, each operation creates its own from the config and closes it
    when the operation ends.

    Args:
        config: Source, target and migration options.
        source_client: Optional pre-built client for the source.
        target_client: Optional pre-built client for the target.
    """

    def __init__(
        self,
        config: MigrationConfig,
        source_client: DatabaseClient | None = None,
        target_client: DatabaseClient | None = None,
    ) -> None:
        self.config = config
        self.options = config.options
        self.source_dialect = config.source.dialect
        self.target_dialect = config.target.dialect
        self._source_client = source_client
        self._target_client = target_client
        discovery = DiscoveryOptions(include_views=False)
        self._source_coordinator = SchemaDiscoveryCoordinator(self.source_dialect, discovery)
        self._target_coordinator = SchemaDiscoveryCoordinator(self.target_dialect, discovery)

    @asynccontextmanager
    async def _clients(self) -> AsyncIterator[tuple[DatabaseClient, DatabaseClient]]:
        created: list[DatabaseClient] = []
        try:
            source = self._source_client
            if source is None:
                source = create_adapter(self.config.source)
                created.append(source)
            target = self._target_client
            if target is None:
                target = create_adapter(self.config.target)
                created.append(target)
            yield source, target
        finally:
            for client in created:
                await client.close()

    # ------------------------------------------------------------------
    # Discovery helpers
    # ------------------------------------------------------------------

    async def _discover(self, source: DatabaseClient, target: DatabaseClient) -> tuple[SchemaInfo, SchemaInfo]:
        source_schema = await self._source_coordinator.discover_schema(source)
        target_schema = await self._target_coordinator.discover_schema(target)
        return source_schema, target_schema

    def _select(self, schema: SchemaInfo) -> SchemaInfo:
        return SchemaInfo(tables=[t for t in schema.tables if self.options.selects(t.name)])

    def _compare(self, source: SchemaInfo, target: SchemaInfo) -> SchemaComparisonResult:
        return compare_schemas(
            source,
            target,
            self.source_dialect,
            self.target_dialect,
            self.options.type_mappings,
        )

    # ------------------------------------------------------------------
    # migrate()
    # ------------------------------------------------------------------

    async def migrate(self) -> MigrationResult:
        """Run the full migration and report the outcome.

        Returns:
            ``MigrationResult``; ``success`` is False if any fatal error
            was recorded.
        """
        started = time.monotonic()
        result = MigrationResult(dry_run=self.options.dry_run)

        try:
            async with self._clients() as (source, target):
                logger.info(
                    f"Starting migration {self.source_dialect.value} -> {self.target_dialect.value}"
                    f"{' (dry run)' if self.options.dry_run else ''}"
                )

                source_schema, target_schema = await self._discover(source, target)
                selected = self._select(source_schema)
                logger.info(
                    f"Source: {len(source_schema.tables)} tables, "
                    f"target: {len(target_schema.tables)} tables, "
                    f"selected: {len(selected.tables)}"
                )

                if not self.options.data_only:
                    await self._migrate_schema(target, selected, target_schema, result)
                    if not self.options.dry_run:
                        target_schema = await self._target_coordinator.discover_schema(target)

                if not self.options.schema_only:
                    migrator = DataMigrator(
                        source, target, self.source_dialect, self.target_dialect, self.options
                    )
                    processed = await self._migrate_data(
                        migrator, selected.tables, target_schema.tables, result
                    )
                    if self.options.verify and not self.options.dry_run:
                        await self._verify(migrator, processed, result)
        except Exception as e:
            logger.error(f"Migration failed: {e}")
            result.errors.append(MigrationIssue(message="Migration failed", error=str(e), fatal=True))

        result.success = not result.fatal_errors
        result.duration = time.monotonic() - started
        logger.info(
            f"Migration {'completed' if result.success else 'failed'} in {result.duration:.2f}s: "
            f"{result.tables_processed} tables, {result.rows_migrated} rows, "
            f"{len(result.errors)} errors, {len(result.warnings)} warnings"
        )
        return result

    async def _migrate_schema(
        self,
        target: DatabaseClient,
        selected: SchemaInfo,
        target_schema: SchemaInfo,
        result: MigrationResult,
    ) -> None:
        if self.options.drop_tables:
            selected_names = set(selected.table_names)
            doomed = [t for t in target_schema.tables if t.name in selected_names]
            dropped: set[str] = set()
            for name in reversed(table_creation_order(doomed)):
                sql = build_drop_table_sql(name, self.target_dialect)
                result.sql_statements.append(sql)
                if self.options.dry_run:
                    dropped.add(name)
                    continue
                try:
                    await target.execute(sql)
                    dropped.add(name)
                    logger.debug(f"Dropped table {name}")
                except Exception as e:
                    result.warnings.append(f"Failed to drop table {name}: {e}")
            target_schema = SchemaInfo(
                tables=[t for t in target_schema.tables if t.name not in dropped]
            )

        comparison = self._compare(selected, target_schema)
        full_plan = generate_sync_plan(comparison, selected, self.options.type_mappings)
        result.warnings.extend(full_plan.type_warnings)

        # Only new tables are created; existing tables are left as they are
        new_tables = set(full_plan.create_order)
        plan = SyncPlan(
            tables=full_plan.tables,
            constraints=full_plan.constraints,
            indexes=[i for i in full_plan.indexes if i.table in new_tables],
            create_order=full_plan.create_order,
        )
        result.sql_statements.extend(plan.statements)

        if self.options.dry_run:
            result.summary.schema_changes = len(plan.tables)
            result.summary.indexes_created = len(plan.indexes)
            result.summary.constraints_applied = (
                sum(t.foreign_keys for t in plan.tables) + len(plan.constraints)
            )
            return

        applied = await apply_sync_plan(target, plan, force=True)
        result.summary.schema_changes = applied.tables_created
        result.summary.indexes_created = applied.indexes_created
        result.summary.constraints_applied = applied.constraints_added
        for error in applied.errors:
            result.warnings.append(f"Schema statement failed: {error}")
        logger.info(
            f"Schema: created {applied.tables_created} tables, "
            f"{applied.indexes_created} indexes, {applied.constraints_added} foreign keys"
        )

    def _log_progress(self, progress: DataMigrationProgress) -> None:
        logger.debug(
            f"{progress.table}: {progress.current}/{progress.total} ({progress.percentage:.1f}%)"
        )

    async def _migrate_data(
        self,
        migrator: DataMigrator,
        tables: list[TableInfo],
        target_tables: list[TableInfo],
        result: MigrationResult,
    ) -> list[TableMigrationResult]:
        target_names = {t.name for t in target_tables}

        if self.options.dry_run:
            # Tables the schema phase would create count as present
            for table in tables:
                rows = await migrator.source_introspector.get_row_count(table.name)
                result.rows_migrated += rows
                result.tables_processed += 1
            result.summary.data_changes = result.rows_migrated
            return []

        for table in tables:
            if table.name not in target_names:
                result.warnings.append(f"Table {table.name} does not exist on the target; skipped")

        table_results = await migrator.migrate_tables(tables, target_tables, self._log_progress)

        for table_result in table_results:
            result.errors.extend(table_result.errors)
            if table_result.errors and not table_result.fatal:
                result.warnings.append(
                    f"Table {table_result.table} skipped after {len(table_result.errors)} error(s)"
                )
            logger.info(
                f"{table_result.table}: {table_result.rows_migrated} rows "
                f"({table_result.duration:.2f}s)"
            )

        result.tables_processed = len(table_results)
        result.rows_migrated = sum(r.rows_migrated for r in table_results)
        result.summary.data_changes = result.rows_migrated
        return table_results

    async def _verify(
        self,
        migrator: DataMigrator,
        processed: list[TableMigrationResult],
        result: MigrationResult,
    ) -> None:
        for table_result in processed:
            try:
                verification = await migrator.verify_table(table_result.table)
            except Exception as e:
                result.warnings.append(f"Failed to verify table {table_result.table}: {e}")
                continue

            result.verification.append(verification)
            if not verification.match:
                message = (
                    f"Table {verification.table}: row count mismatch "
                    f"(source: {verification.source_count}, target: {verification.target_count})"
                )
                logger.warning(message)
                result.warnings.append(message)

    # ------------------------------------------------------------------
    # Comparison and sync
    # ------------------------------------------------------------------

    async def compare_schemas(self) -> SchemaComparisonResult:
        """Compare the selected source tables against the target schema."""
        async with self._clients() as (source, target):
            source_schema, target_schema = await self._discover(source, target)

        comparison = self._compare(self._select(source_schema), target_schema)
        logger.info(
            f"Differences: {comparison.summary.total_differences} "
            f"(added {comparison.summary.tables_added}, "
            f"removed {comparison.summary.tables_removed}, "
            f"modified {comparison.summary.tables_modified})"
        )
        return comparison

    async def sync_schema(
        self,
        apply: bool = False,
        generate_sql: bool = True,
        force: bool = False,
    ) -> SchemaSyncResult:
        """Bring the target schema in line with the source.

        Args:
            apply: Execute the generated DDL on the target.
            generate_sql: Return (and log) the generated statements.
            force: Keep applying after a failed statement.

        Raises:
            RuntimeError: If the target adapter does not support DDL.
        """
        async with self._clients() as (source, target):
            source_schema, target_schema = await self._discover(source, target)
            selected = self._select(source_schema)
            comparison = self._compare(selected, target_schema)

            if comparison.compatible:
                logger.info("Schemas are already in sync")
                return SchemaSyncResult(success=True)

            plan = generate_sync_plan(comparison, selected, self.options.type_mappings)
            statements = plan.statements
            logger.info(f"Generated {len(statements)} sync statements")
            if generate_sql:
                for statement in statements:
                    logger.info(statement)

            sync_result = SchemaSyncResult(
                success=True,
                sql_statements=statements if generate_sql else [],
            )
            if not apply:
                return sync_result

            applied = await apply_sync_plan(target, plan, force=force)

        sync_result.success = applied.success
        sync_result.applied_changes = applied.applied_statements
        sync_result.errors = applied.errors
        for error in applied.errors:
            logger.error(f"Sync failed: {error}")
        return sync_result
