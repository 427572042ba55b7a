"""Pydantic models for connection profiles, discovery, watching and migration."""

from typing import Any
from urllib.parse import quote

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from schema_bridge.schema.models import Dialect


# ============================================================================
# Profile Models (db.toml)
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from db.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    dialect: Dialect = Field(
        default=Dialect.POSTGRES,
        validation_alias=AliasChoices("dialect", "provider"),
    )

    @field_validator("dialect", mode="before")
    @classmethod
    def _parse_dialect(cls, value: Any) -> Dialect:
        return Dialect.parse(value)


# ============================================================================
# Option Models
# ============================================================================


class DiscoveryOptions(BaseModel):
    """Options for one discovery pass."""

    model_config = ConfigDict(frozen=True)

    include_views: bool = True
    exclude_tables: list[str] = Field(default_factory=list)
    junction_extra_column_limit: int = Field(default=2, ge=0)


class WatchOptions(BaseModel):
    """Schema watcher settings.

    ``poll_interval`` and ``max_backoff`` are in seconds.
    """

    model_config = ConfigDict(frozen=True)

    poll_interval: float = Field(default=5.0, gt=0)
    ignore_views: bool = True
    ignored_tables: list[str] = Field(default_factory=list)
    enabled: bool = True
    max_retries: int = Field(default=10, ge=1)
    max_backoff: float = Field(default=30.0, gt=0)


class ConnectionConfig(BaseModel):
    """One side of a migration: a dialect plus connection parameters.

    Either ``url`` or the discrete parameters may be given; ``to_url()``
    assembles a URL from the parameters when ``url`` is missing.
    """

    model_config = ConfigDict(frozen=True)

    dialect: Dialect
    url: str | None = None
    database: str | None = None
    host: str = "localhost"
    port: int | None = None
    username: str | None = None
    password: str | None = None
    ssl: bool = False

    @field_validator("dialect", mode="before")
    @classmethod
    def _parse_dialect(cls, value: Any) -> Dialect:
        return Dialect.parse(value)

    @model_validator(mode="after")
    def _require_target(self) -> "ConnectionConfig":
        if not self.url and not self.database:
            raise ValueError("Connection needs either 'url' or 'database'")
        return self

    def to_url(self) -> str:
        """Connection URL for this side."""
        if self.url:
            return self.url
        if self.dialect is Dialect.SQLITE:
            return f"sqlite:///{self.database}"

        credentials = ""
        if self.username:
            credentials = quote(self.username, safe="")
            if self.password:
                credentials += ":" + quote(self.password, safe="")
            credentials += "@"
        port = f":{self.port}" if self.port else ""
        url = f"postgresql://{credentials}{self.host}{port}/{self.database}"
        if self.ssl:
            url += "?ssl=require"
        return url


class MigrationOptions(BaseModel):
    """Switches for one ``migrate()`` run."""

    model_config = ConfigDict(frozen=True)

    schema_only: bool = False
    data_only: bool = False
    batch_size: int = Field(default=1000, gt=0)
    parallel: bool = False
    parallel_workers: int = Field(default=4, ge=1)
    drop_tables: bool = False
    continue_on_error: bool = False
    include_tables: list[str] = Field(default_factory=list)
    exclude_tables: list[str] = Field(default_factory=list)
    dry_run: bool = False
    verify: bool = True
    type_mappings: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_phases(self) -> "MigrationOptions":
        if self.schema_only and self.data_only:
            raise ValueError("schema_only and data_only are mutually exclusive")
        return self

    def selects(self, table: str) -> bool:
        """Whether the include/exclude filters keep ``table``."""
        if self.include_tables and table not in self.include_tables:
            return False
        return table not in self.exclude_tables


class MigrationConfig(BaseModel):
    """Immutable description of a migration between two databases."""

    model_config = ConfigDict(frozen=True)

    source: ConnectionConfig
    target: ConnectionConfig
    options: MigrationOptions = Field(default_factory=MigrationOptions)


# ============================================================================
# File Config
# ============================================================================


class DatabaseConfig(BaseModel):
    """Complete configuration from db.toml."""

    profiles: dict[str, DatabaseProfile]
    migration: dict[str, Any] = Field(default_factory=dict)
    watch: WatchOptions = Field(default_factory=WatchOptions)
    discovery: DiscoveryOptions = Field(default_factory=DiscoveryOptions)
