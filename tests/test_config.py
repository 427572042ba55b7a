"""Tests for db.toml loading, option models and the adapter factory."""

import os
import textwrap
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from schema_bridge.adapters.postgres import normalize_postgres_url
from schema_bridge.adapters.sqlite import AsyncSQLiteAdapter, normalize_sqlite_url
from schema_bridge.config.loader import load_db_config, load_migration_config
from schema_bridge.config.models import (
    ConnectionConfig,
    DatabaseProfile,
    MigrationOptions,
    WatchOptions,
)
from schema_bridge.factory import (
    ProfileNotFoundError,
    dialect_from_url,
    get_adapter,
    resolve_url,
)
from schema_bridge.schema.models import Dialect, UnsupportedDialectError

DB_TOML = textwrap.dedent(
    """
    [profiles.local]
    url = "sqlite:///./app.db"
    dialect = "sqlite"

    [profiles.prod]
    url = "postgresql://app:[YOUR-PASSWORD]@db:5432/app"
    provider = "postgresql"
    db_password = "p@ss word"

    [migration]
    source = "local"
    target = "prod"
    batch_size = 500
    exclude_tables = ["audit_log"]

    [watch]
    poll_interval = 2.5
    ignored_tables = ["sessions"]

    [discovery]
    include_views = false
    """
)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "db.toml"
    path.write_text(DB_TOML)
    return path


ENV_CLEAN = {
    k: v for k, v in os.environ.items()
    if k not in ("SCHEMA_BRIDGE_PROFILE", "SCHEMA_BRIDGE_DATABASE_URL")
}


# ------------------------------------------------------------------
# Loading
# ------------------------------------------------------------------


class TestLoadDbConfig:
    """load_db_config() as a standalone TOML loader."""

    def test_profiles(self, config_file: Path) -> None:
        config = load_db_config(config_file)
        assert set(config.profiles) == {"local", "prod"}
        assert config.profiles["local"].dialect is Dialect.SQLITE
        assert config.profiles["prod"].dialect is Dialect.POSTGRES

    def test_watch_and_discovery_sections(self, config_file: Path) -> None:
        config = load_db_config(config_file)
        assert config.watch.poll_interval == 2.5
        assert config.watch.ignored_tables == ["sessions"]
        assert config.discovery.include_views is False

    def test_missing_sections_use_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "db.toml"
        path.write_text('[profiles.x]\nurl = "sqlite:///x.db"\ndialect = "sqlite"\n')
        config = load_db_config(path)
        assert config.watch == WatchOptions()
        assert config.migration == {}

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="profiles"):
            load_db_config(tmp_path / "nope.toml")

    def test_default_path_is_cwd(self, config_file: Path, monkeypatch) -> None:
        monkeypatch.chdir(config_file.parent)
        assert "local" in load_db_config().profiles

    def test_unsupported_dialect_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "db.toml"
        path.write_text('[profiles.x]\nurl = "mysql://x"\ndialect = "mysql"\n')
        with pytest.raises((ValidationError, UnsupportedDialectError)):
            load_db_config(path)


class TestLoadMigrationConfig:
    """[migration] section resolution."""

    def test_profiles_resolved(self, config_file: Path) -> None:
        config = load_migration_config(config_file)
        assert config.source.dialect is Dialect.SQLITE
        assert config.source.url == "sqlite:///./app.db"
        assert config.target.dialect is Dialect.POSTGRES
        assert config.target.url == "postgresql://app:p%40ss%20word@db:5432/app"
        assert config.options.batch_size == 500
        assert config.options.exclude_tables == ["audit_log"]

    def test_inline_connection(self, tmp_path: Path) -> None:
        path = tmp_path / "db.toml"
        path.write_text(
            textwrap.dedent(
                """
                [profiles]

                [migration]
                source = { dialect = "sqlite", database = "src.db" }
                schema_only = true

                [migration.target]
                dialect = "postgres"
                database = "app"
                host = "db"
                port = 5432
                username = "app"
                password = "secret"
                ssl = true
                """
            )
        )
        config = load_migration_config(path)
        assert config.source.to_url() == "sqlite:///src.db"
        assert config.target.to_url() == "postgresql://app:secret@db:5432/app?ssl=require"
        assert config.options.schema_only

    def test_missing_target(self, tmp_path: Path) -> None:
        path = tmp_path / "db.toml"
        path.write_text('[profiles]\n\n[migration]\nsource = "a"\n')
        with pytest.raises(ValueError, match="source"):
            load_migration_config(path)

    def test_unknown_profile(self, config_file: Path) -> None:
        text = DB_TOML.replace('target = "prod"', 'target = "staging"')
        config_file.write_text(text)
        with pytest.raises(ProfileNotFoundError, match="staging"):
            load_migration_config(config_file)


# ------------------------------------------------------------------
# Option models
# ------------------------------------------------------------------


class TestOptionModels:
    """Validation rules on option models."""

    def test_migration_defaults(self) -> None:
        options = MigrationOptions()
        assert options.batch_size == 1000
        assert options.parallel_workers == 4
        assert options.verify is True
        assert options.dry_run is False

    def test_schema_only_and_data_only_exclusive(self) -> None:
        with pytest.raises(ValidationError, match="mutually exclusive"):
            MigrationOptions(schema_only=True, data_only=True)

    @pytest.mark.parametrize("field, value", [("batch_size", 0), ("parallel_workers", 0)])
    def test_positive_sizes(self, field: str, value: int) -> None:
        with pytest.raises(ValidationError):
            MigrationOptions(**{field: value})

    def test_options_are_frozen(self) -> None:
        options = MigrationOptions()
        with pytest.raises(ValidationError):
            options.batch_size = 5

    def test_table_filters(self) -> None:
        options = MigrationOptions(include_tables=["a", "b"], exclude_tables=["b"])
        assert options.selects("a")
        assert not options.selects("b")
        assert not options.selects("c")
        assert MigrationOptions().selects("anything")

    def test_watch_interval_positive(self) -> None:
        with pytest.raises(ValidationError):
            WatchOptions(poll_interval=0)

    def test_connection_needs_url_or_database(self) -> None:
        with pytest.raises(ValidationError, match="url"):
            ConnectionConfig(dialect="postgres")

    def test_connection_url_wins(self) -> None:
        connection = ConnectionConfig(dialect="pg", url="postgresql://x/y", database="z")
        assert connection.to_url() == "postgresql://x/y"

    def test_connection_without_credentials(self) -> None:
        connection = ConnectionConfig(dialect="postgres", database="app")
        assert connection.to_url() == "postgresql://localhost/app"


# ------------------------------------------------------------------
# Factory
# ------------------------------------------------------------------


class TestResolveUrl:
    """Password placeholder substitution."""

    def test_password_substitution(self) -> None:
        profile = DatabaseProfile(url="postgresql://u:[YOUR-PASSWORD]@h/db", db_password="secret")
        assert resolve_url(profile) == "postgresql://u:secret@h/db"

    def test_no_password_no_change(self) -> None:
        profile = DatabaseProfile(url="postgresql://u:[YOUR-PASSWORD]@h/db")
        assert resolve_url(profile) == "postgresql://u:[YOUR-PASSWORD]@h/db"

    def test_url_encoding(self) -> None:
        profile = DatabaseProfile(url="postgresql://u:[YOUR-PASSWORD]@h/db", db_password="a/b#c")
        assert resolve_url(profile) == "postgresql://u:a%2Fb%23c@h/db"


class TestUrlHelpers:
    """URL scheme normalization and dialect inference."""

    def test_dialect_from_url(self) -> None:
        assert dialect_from_url("sqlite:///x.db") is Dialect.SQLITE
        assert dialect_from_url("sqlite+aiosqlite:///x.db") is Dialect.SQLITE
        assert dialect_from_url("postgres://h/db") is Dialect.POSTGRES
        assert dialect_from_url("postgresql+asyncpg://h/db") is Dialect.POSTGRES
        assert dialect_from_url("./local.db") is Dialect.SQLITE

    def test_dialect_from_unsupported_url(self) -> None:
        with pytest.raises(UnsupportedDialectError):
            dialect_from_url("mysql://h/db")

    def test_normalize_postgres_url(self) -> None:
        assert normalize_postgres_url("postgres://h/db") == "postgresql+asyncpg://h/db"
        assert normalize_postgres_url("postgresql://h/db") == "postgresql+asyncpg://h/db"
        assert normalize_postgres_url("postgresql+asyncpg://h/db") == "postgresql+asyncpg://h/db"

    def test_normalize_sqlite_url(self) -> None:
        assert normalize_sqlite_url("app.db") == "sqlite+aiosqlite:///app.db"
        assert normalize_sqlite_url("sqlite:///app.db") == "sqlite+aiosqlite:///app.db"


class TestGetAdapter:
    """Adapter resolution order."""

    def test_database_url_argument(self, tmp_path: Path) -> None:
        with patch.dict(os.environ, ENV_CLEAN, clear=True):
            adapter = get_adapter(database_url=f"sqlite:///{tmp_path / 'a.db'}")
        assert isinstance(adapter, AsyncSQLiteAdapter)

    def test_profile_argument(self, config_file: Path) -> None:
        with patch.dict(os.environ, ENV_CLEAN, clear=True), \
             patch("schema_bridge.factory.AsyncPostgresAdapter") as postgres:
            get_adapter("prod", config_path=config_file)
        postgres.assert_called_once_with(
            database_url="postgresql://app:p%40ss%20word@db:5432/app"
        )

    def test_profile_from_env(self, config_file: Path) -> None:
        env = {**ENV_CLEAN, "SCHEMA_BRIDGE_PROFILE": "local"}
        with patch.dict(os.environ, env, clear=True):
            adapter = get_adapter(config_path=config_file)
        assert isinstance(adapter, AsyncSQLiteAdapter)

    def test_url_from_env(self, tmp_path: Path) -> None:
        env = {**ENV_CLEAN, "SCHEMA_BRIDGE_DATABASE_URL": str(tmp_path / "env.db")}
        with patch.dict(os.environ, env, clear=True):
            adapter = get_adapter()
        assert isinstance(adapter, AsyncSQLiteAdapter)

    def test_unknown_profile(self, config_file: Path) -> None:
        with patch.dict(os.environ, ENV_CLEAN, clear=True):
            with pytest.raises(ProfileNotFoundError, match="Available profiles: local, prod"):
                get_adapter("staging", config_path=config_file)

    def test_raises_when_nothing_configured(self) -> None:
        with patch.dict(os.environ, ENV_CLEAN, clear=True):
            with pytest.raises(ProfileNotFoundError, match="No database configuration found"):
                get_adapter()
