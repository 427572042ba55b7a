"""Configuration management: profiles, TOML loading, and option models.

Usage:
    >>> from schema_bridge.config import load_db_config, load_migration_config
    >>> from schema_bridge.config import MigrationConfig, MigrationOptions, WatchOptions
"""

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

__all__ = [
    "load_db_config",
    "load_migration_config",
    "ConnectionConfig",
    "DatabaseConfig",
    "DatabaseProfile",
    "DiscoveryOptions",
    "MigrationConfig",
    "MigrationOptions",
    "WatchOptions",
]
