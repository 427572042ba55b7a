"""Relationship inference from foreign keys.

Derives one-to-many, many-to-one and many-to-many relationships from the
foreign keys of discovered tables, detects reference cycles and validates
that every foreign key points at something that exists.

Usage:
    from schema_bridge.discovery.relationships import RelationshipDiscovery

    engine = RelationshipDiscovery()
    relationships = engine.discover_relationships(tables)
    report = engine.validate_relationships(tables)
    cycles = engine.detect_circular_references(tables)
"""

import logging
from collections import Counter

from schema_bridge.discovery.naming import (
    pluralize,
    relationship_name,
    reverse_relationship_name,
    to_camel_case,
)
from schema_bridge.schema.models import (
    RelationshipInfo,
    RelationshipKind,
    RelationshipPatterns,
    TableInfo,
    ValidationReport,
)

logger = logging.getLogger(__name__)


class RelationshipDiscovery:
    """Infers relationships between tables.

    Holds no state besides its configuration, so one instance can serve
    concurrent discovery passes.

    Args:
        junction_extra_column_limit: How many columns that are neither
            primary key nor foreign key a table may carry and still count
            as a pure many-to-many junction (e.g. ``created_at``).
    """

    def __init__(self, junction_extra_column_limit: int = 2) -> None:
        self.junction_extra_column_limit = junction_extra_column_limit

    def discover_relationships(self, tables: list[TableInfo]) -> list[RelationshipInfo]:
        """Build the full relationship list for a set of tables.

        Every foreign key yields a forward and a reverse relationship.
        Junction tables additionally yield a many-to-many pair between the
        two tables they link.  Foreign keys to tables outside ``tables`` are
        skipped.
        """
        table_map = {t.name: t for t in tables}
        relationships: list[RelationshipInfo] = []

        for table in tables:
            parent_counts = Counter(fk.referenced_table for fk in table.foreign_keys)

            for fk in table.foreign_keys:
                referenced = table_map.get(fk.referenced_table)
                if referenced is None:
                    logger.debug(
                        f"Skipping {table.name}.{fk.column}: "
                        f"table '{fk.referenced_table}' not discovered"
                    )
                    continue

                kind = (
                    RelationshipKind.MANY_TO_ONE
                    if fk.referenced_column in referenced.primary_key
                    else RelationshipKind.ONE_TO_MANY
                )
                relationships.append(
                    RelationshipInfo(
                        name=relationship_name(fk.column),
                        kind=kind,
                        from_table=table.name,
                        from_column=fk.column,
                        to_table=referenced.name,
                        to_column=fk.referenced_column,
                    )
                )

                # Several keys to one parent would otherwise share a reverse name
                qualifier = fk.column if parent_counts[fk.referenced_table] > 1 else None
                relationships.append(
                    RelationshipInfo(
                        name=reverse_relationship_name(table.name, qualifier),
                        kind=kind.inverse,
                        from_table=referenced.name,
                        from_column=fk.referenced_column,
                        to_table=table.name,
                        to_column=fk.column,
                    )
                )

            if self.is_junction_table(table):
                relationships.extend(self._many_to_many(table, table_map))

        return relationships

    def is_junction_table(self, table: TableInfo) -> bool:
        """Whether a table only exists to link two other tables.

        True when the table has exactly two foreign keys and at most
        ``junction_extra_column_limit`` columns outside its keys.
        """
        if len(table.foreign_keys) != 2:
            return False

        key_columns = {fk.column for fk in table.foreign_keys} | set(table.primary_key)
        extra_columns = [c for c in table.columns if c.name not in key_columns]
        return len(extra_columns) <= self.junction_extra_column_limit

    def _many_to_many(
        self, junction: TableInfo, table_map: dict[str, TableInfo]
    ) -> list[RelationshipInfo]:
        first, second = junction.foreign_keys
        if first.referenced_table == second.referenced_table:
            return []
        if first.referenced_table not in table_map or second.referenced_table not in table_map:
            return []

        return [
            RelationshipInfo(
                name=pluralize(to_camel_case(second.referenced_table)),
                kind=RelationshipKind.MANY_TO_MANY,
                from_table=first.referenced_table,
                from_column=first.referenced_column,
                to_table=second.referenced_table,
                to_column=second.referenced_column,
                through_table=junction.name,
                through_from_column=first.column,
                through_to_column=second.column,
            ),
            RelationshipInfo(
                name=pluralize(to_camel_case(first.referenced_table)),
                kind=RelationshipKind.MANY_TO_MANY,
                from_table=second.referenced_table,
                from_column=second.referenced_column,
                to_table=first.referenced_table,
                to_column=first.referenced_column,
                through_table=junction.name,
                through_from_column=second.column,
                through_to_column=first.column,
            ),
        ]

    def detect_circular_references(self, tables: list[TableInfo]) -> list[str]:
        """Report every back-edge of the foreign key graph as a cycle path.

        Depth-first traversal with an explicit stack, so deep graphs do not
        hit the recursion limit.  Cycles are diagnostics only.

        Returns:
            Paths such as ``"a -> b -> a"`` or ``"node -> node"``.
        """
        graph = {t.name: [fk.referenced_table for fk in t.foreign_keys] for t in tables}
        cycles: list[str] = []
        visited: set[str] = set()

        for root in graph:
            if root in visited:
                continue

            visited.add(root)
            path = [root]
            on_path = {root}
            stack = [iter(graph[root])]

            while stack:
                neighbor = next(stack[-1], None)
                if neighbor is None:
                    stack.pop()
                    on_path.discard(path.pop())
                    continue
                if neighbor in on_path:
                    start = path.index(neighbor)
                    cycles.append(" -> ".join(path[start:] + [neighbor]))
                elif neighbor not in visited:
                    visited.add(neighbor)
                    path.append(neighbor)
                    on_path.add(neighbor)
                    stack.append(iter(graph.get(neighbor, [])))

        return cycles

    def analyze_relationship_patterns(self, tables: list[TableInfo]) -> RelationshipPatterns:
        """Group relationships by pattern and list reference cycles."""
        relationships = self.discover_relationships(tables)
        return RelationshipPatterns(
            one_to_many=[r for r in relationships if r.kind is RelationshipKind.ONE_TO_MANY],
            many_to_many=[r for r in relationships if r.kind is RelationshipKind.MANY_TO_MANY],
            self_referencing=[
                r
                for r in relationships
                if r.from_table == r.to_table and r.kind is not RelationshipKind.MANY_TO_MANY
            ],
            circular_references=self.detect_circular_references(tables),
        )

    def validate_relationships(self, tables: list[TableInfo]) -> ValidationReport:
        """Check every foreign key against the discovered tables.

        Collects all problems instead of stopping at the first one.
        """
        table_map = {t.name: t for t in tables}
        issues: list[str] = []

        for table in tables:
            for fk in table.foreign_keys:
                referenced = table_map.get(fk.referenced_table)
                if referenced is None:
                    issues.append(
                        f"Foreign key '{fk.name}' in table '{table.name}' "
                        f"references non-existent table '{fk.referenced_table}'"
                    )
                elif referenced.get_column(fk.referenced_column) is None:
                    issues.append(
                        f"Foreign key '{fk.name}' in table '{table.name}' "
                        f"references non-existent column '{fk.referenced_column}' "
                        f"in table '{fk.referenced_table}'"
                    )

                if table.get_column(fk.column) is None:
                    issues.append(
                        f"Foreign key '{fk.name}' in table '{table.name}' "
                        f"references non-existent column '{fk.column}'"
                    )

        return ValidationReport.from_issues(issues)
