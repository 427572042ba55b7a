"""Pydantic models for the canonical schema snapshot and drift reports."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class UnsupportedDialectError(ValueError):
    """Raised when a dialect identifier does not name a supported engine."""


class Dialect(str, Enum):
    """Supported database engines."""

    SQLITE = "sqlite"
    POSTGRES = "postgres"

    @classmethod
    def parse(cls, value: "str | Dialect") -> "Dialect":
        """Resolve a dialect identifier, accepting common aliases.

        Raises:
            UnsupportedDialectError: If the identifier is not recognised.
        """
        if isinstance(value, Dialect):
            return value
        key = str(value).strip().lower()
        aliases = {
            "sqlite": cls.SQLITE,
            "sqlite3": cls.SQLITE,
            "postgres": cls.POSTGRES,
            "postgresql": cls.POSTGRES,
            "pg": cls.POSTGRES,
        }
        if key not in aliases:
            raise UnsupportedDialectError(f"Unsupported dialect: {value}")
        return aliases[key]


# ============================================================================
# Snapshot Models
# ============================================================================


class ColumnInfo(BaseModel):
    """A column with its canonical type."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: str
    nullable: bool = True
    default: str | None = None
    is_primary_key: bool = False
    is_auto_increment: bool = False
    max_length: int | None = None
    precision: int | None = None
    scale: int | None = None


class IndexInfo(BaseModel):
    """An index over an ordered list of columns."""

    model_config = ConfigDict(frozen=True)

    name: str
    columns: list[str] = Field(default_factory=list)
    unique: bool = False


class ForeignKeyInfo(BaseModel):
    """A single-column foreign key reference."""

    model_config = ConfigDict(frozen=True)

    name: str
    column: str
    referenced_table: str
    referenced_column: str
    on_delete: str = "NO ACTION"
    on_update: str = "NO ACTION"


class TableInfo(BaseModel):
    """A table with its columns, keys and indexes."""

    model_config = ConfigDict(frozen=True)

    name: str
    schema_name: str | None = None
    columns: list[ColumnInfo] = Field(default_factory=list)
    primary_key: list[str] = Field(default_factory=list)
    indexes: list[IndexInfo] = Field(default_factory=list)
    foreign_keys: list[ForeignKeyInfo] = Field(default_factory=list)
    check_constraints: list[str] = Field(default_factory=list)

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def get_column(self, name: str) -> ColumnInfo | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None


class ViewInfo(BaseModel):
    """A view with the tables its definition reads from."""

    model_config = ConfigDict(frozen=True)

    name: str
    schema_name: str | None = None
    definition: str = ""
    referenced_tables: list[str] = Field(default_factory=list)


class RelationshipKind(str, Enum):
    ONE_TO_MANY = "one-to-many"
    MANY_TO_ONE = "many-to-one"
    MANY_TO_MANY = "many-to-many"

    @property
    def inverse(self) -> "RelationshipKind":
        if self is RelationshipKind.ONE_TO_MANY:
            return RelationshipKind.MANY_TO_ONE
        if self is RelationshipKind.MANY_TO_ONE:
            return RelationshipKind.ONE_TO_MANY
        return self


class RelationshipInfo(BaseModel):
    """A relationship between two tables inferred from foreign keys.

    ``through_*`` fields are only set for many-to-many relationships and
    name the junction table and its two linking columns.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    kind: RelationshipKind
    from_table: str
    from_column: str
    to_table: str
    to_column: str
    through_table: str | None = None
    through_from_column: str | None = None
    through_to_column: str | None = None


class SchemaInfo(BaseModel):
    """Immutable snapshot produced by one discovery pass."""

    model_config = ConfigDict(frozen=True)

    tables: list[TableInfo] = Field(default_factory=list)
    relationships: list[RelationshipInfo] = Field(default_factory=list)
    views: list[ViewInfo] = Field(default_factory=list)

    def get_table(self, name: str) -> TableInfo | None:
        for table in self.tables:
            if table.name == name:
                return table
        return None

    @property
    def table_names(self) -> list[str]:
        return [t.name for t in self.tables]


# ============================================================================
# Drift Models
# ============================================================================


class SchemaChangeKind(str, Enum):
    TABLE_ADDED = "table_added"
    TABLE_REMOVED = "table_removed"
    COLUMN_ADDED = "column_added"
    COLUMN_REMOVED = "column_removed"
    COLUMN_MODIFIED = "column_modified"


class SchemaChange(BaseModel):
    """One structural change between two snapshots."""

    model_config = ConfigDict(frozen=True)

    kind: SchemaChangeKind
    table: str
    column: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Analysis Result Models
# ============================================================================


class ValidationReport(BaseModel):
    """Issues found while validating discovered structures."""

    valid: bool = True
    issues: list[str] = Field(default_factory=list)

    @classmethod
    def from_issues(cls, issues: list[str]) -> "ValidationReport":
        return cls(valid=not issues, issues=issues)

    def merge(self, other: "ValidationReport") -> "ValidationReport":
        return ValidationReport.from_issues(self.issues + other.issues)

    def format_report(self) -> str:
        """Format validation result as human-readable report."""
        if self.valid:
            return "Schema valid"

        lines = [f"Schema validation found {len(self.issues)} issue(s):"]
        for issue in self.issues:
            lines.append(f"  - {issue}")
        return "\n".join(lines)


class RelationshipPatterns(BaseModel):
    """Relationship breakdown used for schema diagnostics."""

    one_to_many: list[RelationshipInfo] = Field(default_factory=list)
    many_to_many: list[RelationshipInfo] = Field(default_factory=list)
    self_referencing: list[RelationshipInfo] = Field(default_factory=list)
    circular_references: list[str] = Field(default_factory=list)


class TableStatistics(BaseModel):
    """Aggregate counts over a set of discovered tables."""

    total_tables: int = 0
    total_columns: int = 0
    total_indexes: int = 0
    total_foreign_keys: int = 0
    tables_with_primary_key: int = 0
    average_columns_per_table: float = 0.0
