"""View discovery.

Classifies catalog entries as views, fetches their definitions concurrently
and extracts the tables each view reads from.

Usage:
    from schema_bridge.discovery.views import ViewDiscovery, extract_table_references

    views = await ViewDiscovery().discover_views(introspector)
    extract_table_references('SELECT * FROM "public"."users" u JOIN orders o ON ...')
    # ['users', 'orders']
"""

import asyncio
import logging
import re
from collections.abc import Iterable

from schema_bridge.dialects.base import SchemaIntrospector, TableEntry
from schema_bridge.discovery.tables import is_view_entry
from schema_bridge.schema.models import TableInfo, ValidationReport, ViewInfo

logger = logging.getLogger(__name__)

_IDENTIFIER = r'(?:"[^"]+"|[a-zA-Z_][a-zA-Z0-9_$]*)'
_TABLE_REFERENCE = re.compile(
    rf"\b(?:FROM|JOIN)\s+({_IDENTIFIER}(?:\s*\.\s*{_IDENTIFIER})?)",
    re.IGNORECASE,
)

_DESTRUCTIVE_PATTERNS = [
    (re.compile(r"\bDROP\s+TABLE\b", re.IGNORECASE), "DROP TABLE"),
    (re.compile(r"\bDELETE\s+FROM\b", re.IGNORECASE), "DELETE FROM"),
    (re.compile(r"\bUPDATE\b.+\bSET\b", re.IGNORECASE | re.DOTALL), "UPDATE ... SET"),
    (re.compile(r"\bINSERT\s+INTO\b", re.IGNORECASE), "INSERT INTO"),
    (re.compile(r"\bTRUNCATE\b", re.IGNORECASE), "TRUNCATE"),
    (re.compile(r"\bALTER\s+TABLE\b", re.IGNORECASE), "ALTER TABLE"),
]


def extract_table_references(sql: str | None) -> list[str]:
    """Return the tables a SQL body reads from, in first-seen order.

    Schema-qualified names keep only the table part; quoted identifiers
    are unquoted; duplicates are dropped.
    """
    if not sql:
        return []

    references: list[str] = []
    for match in _TABLE_REFERENCE.finditer(sql):
        last_part = re.split(r"\s*\.\s*", match.group(1))[-1]
        name = last_part.strip('"')
        if name and name not in references:
            references.append(name)
    return references


class ViewDiscovery:
    """Discovers views through a ``SchemaIntrospector``."""

    async def discover_views(
        self,
        introspector: SchemaIntrospector,
        exclude_views: Iterable[str] = (),
    ) -> list[ViewInfo]:
        """Discover every view the introspector lists.

        A view whose definition cannot be read is dropped with a warning.
        """
        excluded = set(exclude_views)
        entries = [
            e for e in await introspector.list_tables()
            if is_view_entry(e) and e.name not in excluded
        ]

        results = await asyncio.gather(
            *(self._discover_view(introspector, entry) for entry in entries),
            return_exceptions=True,
        )

        views: list[ViewInfo] = []
        for entry, result in zip(entries, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.warning(f"Failed to process view {entry.name}: {result}")
                continue
            views.append(result)
        return views

    async def _discover_view(
        self, introspector: SchemaIntrospector, entry: TableEntry
    ) -> ViewInfo:
        definition = await introspector.get_view_definition(entry.name) or ""
        return ViewInfo(
            name=entry.name,
            schema_name=entry.schema_name,
            definition=definition,
            referenced_tables=extract_table_references(definition),
        )

    def validate_view(self, view: ViewInfo) -> ValidationReport:
        """Check a view is named, has a body, and reads without writing."""
        issues: list[str] = []
        if not view.name:
            issues.append("View name is required")
        if not view.definition.strip():
            issues.append(f"View '{view.name}' has no definition")

        for pattern, label in _DESTRUCTIVE_PATTERNS:
            if pattern.search(view.definition):
                issues.append(f"View '{view.name}' contains potentially dangerous SQL: {label}")

        return ValidationReport.from_issues(issues)

    def analyze_view_dependencies(
        self, views: list[ViewInfo], tables: list[TableInfo]
    ) -> dict[str, dict[str, list[str]]]:
        """Split each view's references into known and missing relations.

        Views may read from other views, so both count as known.

        Returns:
            ``{view_name: {"tables": [...], "missing": [...]}}``
        """
        known = {t.name for t in tables} | {v.name for v in views}
        dependencies: dict[str, dict[str, list[str]]] = {}
        for view in views:
            dependencies[view.name] = {
                "tables": [r for r in view.referenced_tables if r in known],
                "missing": [r for r in view.referenced_tables if r not in known],
            }
        return dependencies
