"""Schema discovery: tables, views and inferred relationships.

Usage:
    from schema_bridge.discovery import SchemaDiscoveryCoordinator

    schema = await SchemaDiscoveryCoordinator("sqlite").discover_schema(client)
"""

from schema_bridge.discovery.coordinator import SchemaDiscoveryCoordinator
from schema_bridge.discovery.factory import (
    DialectCapabilities,
    DiscoveryFactory,
    DiscoveryServices,
    get_capabilities,
)
from schema_bridge.discovery.relationships import RelationshipDiscovery
from schema_bridge.discovery.tables import TableMetadataDiscovery
from schema_bridge.discovery.views import ViewDiscovery, extract_table_references

__all__ = [
    "SchemaDiscoveryCoordinator",
    "DialectCapabilities",
    "DiscoveryFactory",
    "DiscoveryServices",
    "get_capabilities",
    "RelationshipDiscovery",
    "TableMetadataDiscovery",
    "ViewDiscovery",
    "extract_table_references",
]
