"""Configuration loading from db.toml."""

import tomllib
from pathlib import Path
from typing import Any

from schema_bridge.config.models import (
    ConnectionConfig,
    DatabaseConfig,
    DatabaseProfile,
    DiscoveryOptions,
    MigrationConfig,
    MigrationOptions,
    WatchOptions,
)


def _read_toml(config_path: Path | None) -> dict[str, Any]:
    if config_path is None:
        config_path = Path.cwd() / "db.toml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(
            f"Database config not found: {config_path}\n"
            f"Create a db.toml with at least one [profiles.<name>] section."
        )

    with open(config_path, "rb") as f:
        return tomllib.load(f)


def load_db_config(config_path: Path | None = None) -> DatabaseConfig:
    """Load database configuration from TOML file.

    Args:
        config_path: Path to db.toml (default: ./db.toml)

    Returns:
        DatabaseConfig with all profiles

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid
    """
    data = _read_toml(config_path)

    # Parse profiles
    profiles = {}
    for name, profile_data in data.get("profiles", {}).items():
        profiles[name] = DatabaseProfile(**profile_data)

    return DatabaseConfig(
        profiles=profiles,
        migration=data.get("migration", {}),
        watch=WatchOptions(**data.get("watch", {})),
        discovery=DiscoveryOptions(**data.get("discovery", {})),
    )


def _connection_for(config: DatabaseConfig, side: str, value: Any) -> ConnectionConfig:
    from schema_bridge.factory import ProfileNotFoundError, resolve_url

    if isinstance(value, dict):
        return ConnectionConfig(**value)

    if value not in config.profiles:
        raise ProfileNotFoundError(
            f"Migration {side} profile '{value}' not found in db.toml.\n"
            f"Available profiles: {', '.join(config.profiles.keys())}"
        )
    profile = config.profiles[value]
    return ConnectionConfig(dialect=profile.dialect, url=resolve_url(profile))


def load_migration_config(config_path: Path | None = None) -> MigrationConfig:
    """Build a MigrationConfig from the [migration] section of db.toml.

    ``source`` and ``target`` name profiles, or are inline tables with
    ``ConnectionConfig`` fields.  Every other key is a ``MigrationOptions``
    field.

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If the [migration] section is missing or invalid
        ProfileNotFoundError: If source or target names an unknown profile
    """
    config = load_db_config(config_path)
    section = dict(config.migration)

    if "source" not in section or "target" not in section:
        raise ValueError("db.toml [migration] section needs both 'source' and 'target'")

    source = _connection_for(config, "source", section.pop("source"))
    target = _connection_for(config, "target", section.pop("target"))

    return MigrationConfig(
        source=source,
        target=target,
        options=MigrationOptions(**section),
    )
