"""schema-bridge: async schema discovery, drift watching and SQLite/PostgreSQL migration.

Discovers tables, views, indexes and foreign keys, infers relationships
(including many-to-many through junction tables), watches a live database
for structural changes, and moves schema and data between SQLite and
PostgreSQL.

Usage:
    from schema_bridge import SchemaDiscoveryCoordinator, get_adapter
    from schema_bridge import SchemaWatcher, WatchOptions
    from schema_bridge import MigrationManager, load_migration_config
"""

__version__ = "0.1.0"

# Adapters
from schema_bridge.adapters.base import DatabaseClient
from schema_bridge.adapters.postgres import AsyncPostgresAdapter
from schema_bridge.adapters.sqlite import AsyncSQLiteAdapter

# Config
from schema_bridge.config.loader import load_db_config, load_migration_config
from schema_bridge.config.models import (
    ConnectionConfig,
    DatabaseConfig,
    DatabaseProfile,
    DiscoveryOptions,
    MigrationConfig,
    MigrationOptions,
    WatchOptions,
)

# Factory
from schema_bridge.factory import ProfileNotFoundError, create_adapter, get_adapter, resolve_url

# Schema model
from schema_bridge.schema.models import (
    Dialect,
    SchemaChange,
    SchemaInfo,
    UnsupportedDialectError,
    ValidationReport,
)

# Discovery
from schema_bridge.discovery.coordinator import SchemaDiscoveryCoordinator
from schema_bridge.discovery.factory import DiscoveryFactory, get_capabilities

# Comparison and watching
from schema_bridge.schema.comparator import compare_schemas, diff_schemas
from schema_bridge.schema.watcher import SchemaWatcher, WatcherState, compute_schema_hash

# Migration
from schema_bridge.migration.manager import MigrationManager
from schema_bridge.migration.models import MigrationResult

__all__ = [
    # Adapters
    "DatabaseClient",
    "AsyncPostgresAdapter",
    "AsyncSQLiteAdapter",
    # Config
    "load_db_config",
    "load_migration_config",
    "ConnectionConfig",
    "DatabaseConfig",
    "DatabaseProfile",
    "DiscoveryOptions",
    "MigrationConfig",
    "MigrationOptions",
    "WatchOptions",
    # Factory
    "get_adapter",
    "create_adapter",
    "resolve_url",
    "ProfileNotFoundError",
    # Schema model
    "Dialect",
    "SchemaChange",
    "SchemaInfo",
    "UnsupportedDialectError",
    "ValidationReport",
    # Discovery
    "SchemaDiscoveryCoordinator",
    "DiscoveryFactory",
    "get_capabilities",
    # Comparison and watching
    "compare_schemas",
    "diff_schemas",
    "SchemaWatcher",
    "WatcherState",
    "compute_schema_hash",
    # Migration
    "MigrationManager",
    "MigrationResult",
]
