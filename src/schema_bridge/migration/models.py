"""Pydantic models for migration results, progress and verification."""

from pydantic import BaseModel, ConfigDict, Field


class MigrationIssue(BaseModel):
    """An error recorded during migration.

    ``fatal`` issues make the overall migration unsuccessful; non-fatal
    ones were tolerated (``continue_on_error``).
    """

    table: str | None = None
    column: str | None = None
    message: str
    error: str | None = None
    fatal: bool = False


class DataMigrationProgress(BaseModel):
    """Progress report for one table, sent after every batch.

    ``estimated_time_remaining`` is in seconds.
    """

    model_config = ConfigDict(frozen=True)

    table: str
    current: int
    total: int
    percentage: float
    estimated_time_remaining: float | None = None


class RowCountVerification(BaseModel):
    """Source and target row counts for one table."""

    model_config = ConfigDict(frozen=True)

    table: str
    match: bool
    source_count: int
    target_count: int
    difference: int


class TableMigrationResult(BaseModel):
    """Outcome of copying one table's rows."""

    table: str
    rows_migrated: int = 0
    duration: float = 0.0
    errors: list[MigrationIssue] = Field(default_factory=list)

    @property
    def failed(self) -> bool:
        return bool(self.errors)

    @property
    def fatal(self) -> bool:
        return any(e.fatal for e in self.errors)


class MigrationSummary(BaseModel):
    schema_changes: int = 0
    data_changes: int = 0
    indexes_created: int = 0
    constraints_applied: int = 0


class MigrationResult(BaseModel):
    """Result of ``MigrationManager.migrate()``.

    Attributes:
        success: True if no fatal error was recorded.
        duration: Wall time in seconds.
        tables_processed: Tables whose data phase ran.
        rows_migrated: Rows written (or that would be written, for dry runs).
        errors: Recorded errors; see ``MigrationIssue.fatal``.
        warnings: Recoverable problems (failed creates, count mismatches).
        summary: Counts per phase.
        sql_statements: DDL executed, or planned for dry runs.
        verification: Row count checks, one per migrated table.
        dry_run: True if nothing was written.
    """

    success: bool = False
    duration: float = 0.0
    tables_processed: int = 0
    rows_migrated: int = 0
    errors: list[MigrationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    summary: MigrationSummary = Field(default_factory=MigrationSummary)
    sql_statements: list[str] = Field(default_factory=list)
    verification: list[RowCountVerification] = Field(default_factory=list)
    dry_run: bool = False

    @property
    def fatal_errors(self) -> list[MigrationIssue]:
        return [e for e in self.errors if e.fatal]

    def format_report(self) -> str:
        """Format the result as a human-readable report."""
        status = "succeeded" if self.success else "failed"
        lines = [
            f"Migration {status}{' (dry run)' if self.dry_run else ''} in {self.duration:.2f}s",
            f"  Tables: {self.tables_processed}",
            f"  Rows: {self.rows_migrated}",
            f"  Tables created: {self.summary.schema_changes}",
            f"  Indexes created: {self.summary.indexes_created}",
        ]
        for issue in self.errors:
            where = f"{issue.table}: " if issue.table else ""
            lines.append(f"  ERROR {where}{issue.message}")
        for warning in self.warnings:
            lines.append(f"  WARNING {warning}")
        return "\n".join(lines)


class SchemaSyncResult(BaseModel):
    """Result of ``MigrationManager.sync_schema()``."""

    success: bool = True
    applied_changes: int = 0
    sql_statements: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
