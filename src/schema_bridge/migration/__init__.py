"""Schema and data migration between SQLite and PostgreSQL.

Usage:
    from schema_bridge.migration import MigrationManager, DataMigrator
"""

from schema_bridge.migration.data import DataMigrator
from schema_bridge.migration.manager import MigrationManager
from schema_bridge.migration.models import (
    DataMigrationProgress,
    MigrationIssue,
    MigrationResult,
    MigrationSummary,
    RowCountVerification,
    SchemaSyncResult,
    TableMigrationResult,
)

__all__ = [
    "DataMigrator",
    "MigrationManager",
    "DataMigrationProgress",
    "MigrationIssue",
    "MigrationResult",
    "MigrationSummary",
    "RowCountVerification",
    "SchemaSyncResult",
    "TableMigrationResult",
]
