"""Full-schema discovery for one database.

``SchemaDiscoveryCoordinator`` wires the dialect's services together and
produces a ``SchemaInfo`` snapshot in one call.  It holds no connection:
each call receives the client to read through.

Usage:
    from schema_bridge.discovery.coordinator import SchemaDiscoveryCoordinator

    coordinator = SchemaDiscoveryCoordinator("sqlite")
    schema = await coordinator.discover_schema(client)
    report = coordinator.validate_schema(schema)
    if not report.valid:
        print(report.format_report())
"""

import asyncio
import logging

from schema_bridge.adapters.base import DatabaseClient
from schema_bridge.config.models import DiscoveryOptions
from schema_bridge.dialects.sqlite import SQLiteConstraintAnalyzer
from schema_bridge.discovery.factory import DialectCapabilities, DiscoveryFactory
from schema_bridge.discovery.tables import TableMetadataDiscovery
from schema_bridge.discovery.views import ViewDiscovery
from schema_bridge.schema.models import Dialect, SchemaInfo, TableInfo, ValidationReport

logger = logging.getLogger(__name__)


class SchemaDiscoveryCoordinator:
    """Runs table, relationship and view discovery for a single dialect.

    Args:
        dialect: Dialect identifier.
        options: Discovery options; defaults include views and exclude nothing.

    Raises:
        UnsupportedDialectError: If the dialect is not supported.
    """

    def __init__(self, dialect: Dialect | str, options: DiscoveryOptions | None = None) -> None:
        self.options = options or DiscoveryOptions()
        self.factory = DiscoveryFactory(dialect, self.options.junction_extra_column_limit)
        self._tables = TableMetadataDiscovery()
        self._views = ViewDiscovery()

    @property
    def dialect(self) -> Dialect:
        return self.factory.dialect

    def get_capabilities(self) -> DialectCapabilities:
        return self.factory.capabilities

    async def discover_schema(self, client: DatabaseClient) -> SchemaInfo:
        """Discover tables, relationships and views through ``client``.

        Raises:
            Exception: Whatever the catalog listing raises; per-table and
                per-facet failures are logged and skipped instead.
        """
        services = self.factory.create_services(client)

        tables = await services.tables.discover_tables(
            services.introspector, self.options.exclude_tables
        )

        if services.constraint_analyzer is not None:
            tables = await self._with_check_constraints(client, services.constraint_analyzer, tables)
            await self._check_foreign_keys_enabled(client, services.constraint_analyzer)

        relationships = services.relationships.discover_relationships(tables)

        views = []
        if self.options.include_views and self.get_capabilities().supports_views:
            views = await services.views.discover_views(
                services.introspector, self.options.exclude_tables
            )

        logger.info(
            f"Discovered {len(tables)} tables, {len(relationships)} relationships, "
            f"{len(views)} views ({self.dialect.value})"
        )
        return SchemaInfo(tables=tables, relationships=relationships, views=views)

    async def _with_check_constraints(
        self, client: DatabaseClient, analyzer: SQLiteConstraintAnalyzer, tables: list[TableInfo]
    ) -> list[TableInfo]:
        async def enrich(table: TableInfo) -> TableInfo:
            try:
                checks = await analyzer.get_check_constraints(client, table.name)
            except Exception as e:
                logger.warning(f"Failed to get check constraints for table {table.name}: {e}")
                checks = []
            return table.model_copy(update={"check_constraints": checks})

        return list(await asyncio.gather(*(enrich(t) for t in tables)))

    async def _check_foreign_keys_enabled(
        self, client: DatabaseClient, analyzer: SQLiteConstraintAnalyzer
    ) -> None:
        try:
            enabled = await analyzer.foreign_keys_enabled(client)
        except Exception as e:
            logger.warning(f"Failed to read foreign key enforcement setting: {e}")
            return
        if not enabled:
            logger.warning("Foreign key enforcement is disabled for this SQLite connection")

    def get_recommendations(self, schema: SchemaInfo) -> list[str]:
        """Human-readable suggestions for improving the discovered schema."""
        recommendations: list[str] = []

        for table in schema.tables:
            if not table.primary_key:
                recommendations.append(f"Table {table.name} has no primary key")

        analyzer = self.factory.create_index_analyzer()
        if analyzer is not None:
            for table in schema.tables:
                recommendations.extend(analyzer.analyze_index_efficiency(table))

        for cycle in self.factory.relationships.detect_circular_references(schema.tables):
            recommendations.append(f"Circular foreign key reference: {cycle}")

        return recommendations

    def validate_schema(self, schema: SchemaInfo) -> ValidationReport:
        """Validate table structure, foreign keys and views in one report."""
        report = ValidationReport()
        for table in schema.tables:
            report = report.merge(self._tables.validate_table_structure(table))

        report = report.merge(self.factory.relationships.validate_relationships(schema.tables))

        for view in schema.views:
            report = report.merge(self._views.validate_view(view))
        dependencies = self._views.analyze_view_dependencies(schema.views, schema.tables)
        missing = [
            f"View '{name}' references unknown table '{ref}'"
            for name, refs in dependencies.items()
            for ref in refs["missing"]
        ]
        return report.merge(ValidationReport.from_issues(missing))

    async def finalize(self, client: DatabaseClient) -> None:
        """Run the dialect's optimization step; a no-op for PostgreSQL."""
        analyzer = self.factory.create_index_analyzer()
        if analyzer is None:
            return
        await analyzer.optimize(client)
        logger.debug(f"Ran optimization for {self.dialect.value}")
