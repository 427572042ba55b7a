"""Canonical schema model, type mapping, comparison and sync.

Provides the snapshot models (``SchemaInfo`` and friends), cross-engine type
mapping, snapshot diffing (``diff_schemas``), cross-engine comparison
(``compare_schemas``) and DDL generation (``generate_sync_plan``,
``apply_sync_plan``).  The watcher lives in ``schema_bridge.schema.watcher``.

Usage:
    from schema_bridge.schema import SchemaInfo, compare_schemas, diff_schemas
    from schema_bridge.schema import generate_sync_plan, apply_sync_plan
"""

from schema_bridge.schema.comparator import (
    SchemaComparisonResult,
    SchemaDifference,
    compare_schemas,
    diff_schemas,
)
from schema_bridge.schema.fix import SyncPlan, SyncResult, apply_sync_plan, generate_sync_plan
from schema_bridge.schema.models import (
    ColumnInfo,
    Dialect,
    ForeignKeyInfo,
    IndexInfo,
    RelationshipInfo,
    RelationshipKind,
    SchemaChange,
    SchemaChangeKind,
    SchemaInfo,
    TableInfo,
    UnsupportedDialectError,
    ValidationReport,
    ViewInfo,
)
from schema_bridge.schema.types import map_type, types_compatible

__all__ = [
    "ColumnInfo",
    "Dialect",
    "ForeignKeyInfo",
    "IndexInfo",
    "RelationshipInfo",
    "RelationshipKind",
    "SchemaChange",
    "SchemaChangeKind",
    "SchemaInfo",
    "TableInfo",
    "UnsupportedDialectError",
    "ValidationReport",
    "ViewInfo",
    "compare_schemas",
    "diff_schemas",
    "SchemaComparisonResult",
    "SchemaDifference",
    "generate_sync_plan",
    "apply_sync_plan",
    "SyncPlan",
    "SyncResult",
    "map_type",
    "types_compatible",
]
