"""Dialect dispatch for the discovery layer.

``DiscoveryFactory`` resolves a dialect identifier once, at construction,
and hands out freshly built service bundles.  Unsupported dialects raise
``UnsupportedDialectError`` before any discovery work starts.  There are no
module-level singletons: every bundle owns its instances.

Usage:
    from schema_bridge.discovery.factory import DiscoveryFactory, get_capabilities

    factory = DiscoveryFactory("postgresql")
    services = factory.create_services(client)
    tables = await services.tables.discover_tables(services.introspector)

    if get_capabilities("sqlite").supports_views:
        ...
"""

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict

from schema_bridge.adapters.base import DatabaseClient
from schema_bridge.dialects.base import SchemaIntrospector
from schema_bridge.dialects.postgres import PostgresIntrospector
from schema_bridge.dialects.sqlite import (
    SQLiteConstraintAnalyzer,
    SQLiteIndexAnalyzer,
    SQLiteIntrospector,
)
from schema_bridge.discovery.relationships import RelationshipDiscovery
from schema_bridge.discovery.tables import TableMetadataDiscovery
from schema_bridge.discovery.views import ViewDiscovery
from schema_bridge.schema.models import Dialect, UnsupportedDialectError


class DialectCapabilities(BaseModel):
    """What a dialect's catalog can tell us."""

    model_config = ConfigDict(frozen=True)

    supports_views: bool = True
    supports_indexes: bool = True
    supports_constraints: bool = True
    supports_foreign_keys: bool = True
    supports_check_constraints: bool = True
    supports_deferred_constraints: bool = True


CAPABILITIES: dict[Dialect, DialectCapabilities] = {
    Dialect.SQLITE: DialectCapabilities(supports_deferred_constraints=False),
    Dialect.POSTGRES: DialectCapabilities(),
}


def get_capabilities(dialect: Dialect | str) -> DialectCapabilities:
    """Look up the static capability table for a dialect.

    Raises:
        UnsupportedDialectError: If the dialect is not supported.
    """
    return CAPABILITIES[Dialect.parse(dialect)]


@dataclass
class DiscoveryServices:
    """Services for one dialect, bound to one client.

    ``index_analyzer`` and ``constraint_analyzer`` are ``None`` for dialects
    whose catalog needs no enhancement.
    """

    dialect: Dialect
    introspector: SchemaIntrospector
    tables: TableMetadataDiscovery
    views: ViewDiscovery
    relationships: RelationshipDiscovery
    index_analyzer: SQLiteIndexAnalyzer | None = None
    constraint_analyzer: SQLiteConstraintAnalyzer | None = None


class DiscoveryFactory:
    """Builds discovery services for a single dialect.

    Args:
        dialect: Dialect identifier (``sqlite``, ``postgres``, ``postgresql``, ...).
        junction_extra_column_limit: Forwarded to ``RelationshipDiscovery``.

    Raises:
        UnsupportedDialectError: If the dialect is not supported.
    """

    def __init__(self, dialect: Dialect | str, junction_extra_column_limit: int = 2) -> None:
        self.dialect = Dialect.parse(dialect)
        self.capabilities = CAPABILITIES[self.dialect]
        self._relationships = RelationshipDiscovery(junction_extra_column_limit)

    @property
    def relationships(self) -> RelationshipDiscovery:
        """The relationship engine, shared across all bundles from this factory."""
        return self._relationships

    def create_introspector(self, client: DatabaseClient) -> SchemaIntrospector:
        if self.dialect is Dialect.SQLITE:
            return SQLiteIntrospector(client)
        if self.dialect is Dialect.POSTGRES:
            return PostgresIntrospector(client)
        raise UnsupportedDialectError(f"Unsupported dialect: {self.dialect}")

    def create_index_analyzer(self) -> SQLiteIndexAnalyzer | None:
        return SQLiteIndexAnalyzer() if self.dialect is Dialect.SQLITE else None

    def create_constraint_analyzer(self) -> SQLiteConstraintAnalyzer | None:
        return SQLiteConstraintAnalyzer() if self.dialect is Dialect.SQLITE else None

    def create_services(self, client: DatabaseClient) -> DiscoveryServices:
        """Build a service bundle bound to ``client``."""
        return DiscoveryServices(
            dialect=self.dialect,
            introspector=self.create_introspector(client),
            tables=TableMetadataDiscovery(),
            views=ViewDiscovery(),
            relationships=self._relationships,
            index_analyzer=self.create_index_analyzer(),
            constraint_analyzer=self.create_constraint_analyzer(),
        )
