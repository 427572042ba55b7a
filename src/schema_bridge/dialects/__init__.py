"""Dialect introspectors and dialect-specific enhancers.

Usage:
    from schema_bridge.dialects import SQLiteIntrospector, PostgresIntrospector
"""

from schema_bridge.dialects.base import SchemaIntrospector, TableEntry
from schema_bridge.dialects.postgres import PostgresIntrospector
from schema_bridge.dialects.sqlite import (
    SQLiteConstraintAnalyzer,
    SQLiteIndexAnalyzer,
    SQLiteIntrospector,
)

__all__ = [
    "SchemaIntrospector",
    "TableEntry",
    "SQLiteIntrospector",
    "PostgresIntrospector",
    "SQLiteIndexAnalyzer",
    "SQLiteConstraintAnalyzer",
]
