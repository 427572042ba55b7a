"""Database client factory.

Supports two configuration modes:
1. Profile mode (db.toml): named profiles, selected by argument or the
   SCHEMA_BRIDGE_PROFILE env var
2. Direct mode: a connection URL, passed in or read from SCHEMA_BRIDGE_DATABASE_URL

Usage:
    from schema_bridge.factory import get_adapter

    client = get_adapter("local")
    client = get_adapter(database_url="sqlite:///./app.db")
"""

import logging
import os
from pathlib import Path
from urllib.parse import quote

from schema_bridge.adapters.base import DatabaseClient
from schema_bridge.adapters.postgres import AsyncPostgresAdapter
from schema_bridge.adapters.sqlite import AsyncSQLiteAdapter
from schema_bridge.config.loader import load_db_config
from schema_bridge.config.models import ConnectionConfig, DatabaseProfile
from schema_bridge.schema.models import Dialect

logger = logging.getLogger(__name__)


class ProfileNotFoundError(Exception):
    """Raised when no database profile is configured or the name is unknown."""

    pass


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Args:
        profile: Database profile from config

    Returns:
        Connection URL with password substituted
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


def dialect_from_url(database_url: str) -> Dialect:
    """Infer the dialect from a URL scheme; bare paths are SQLite files.

    Raises:
        UnsupportedDialectError: If the scheme names another engine.
    """
    if "://" not in database_url:
        return Dialect.SQLITE
    scheme = database_url.split("://", 1)[0].split("+", 1)[0]
    return Dialect.parse(scheme)


def create_adapter(connection: ConnectionConfig, foreign_keys: bool = False) -> DatabaseClient:
    """Build a new client for one side of a migration.

    Args:
        connection: Dialect and connection parameters.
        foreign_keys: SQLite only; enforce foreign keys on every connection.
    """
    url = connection.to_url()
    if connection.dialect is Dialect.SQLITE:
        return AsyncSQLiteAdapter(url, foreign_keys=foreign_keys)
    return AsyncPostgresAdapter(database_url=url)


def get_adapter(
    profile_name: str | None = None,
    database_url: str | None = None,
    config_path: Path | None = None,
) -> DatabaseClient:
    """Get database adapter based on configuration.

    Resolution order:
    1. ``database_url`` argument
    2. ``profile_name`` argument, then SCHEMA_BRIDGE_PROFILE, looked up in db.toml
    3. SCHEMA_BRIDGE_DATABASE_URL env var

    Each call returns a new client; the caller owns it and must close it.

    Raises:
        ProfileNotFoundError: If no database configuration is found or the
            profile is not in db.toml
    """
    if database_url:
        return create_adapter(
            ConnectionConfig(dialect=dialect_from_url(database_url), url=database_url)
        )

    profile_name = profile_name or os.environ.get("SCHEMA_BRIDGE_PROFILE")
    if profile_name:
        config = load_db_config(config_path)
        if profile_name not in config.profiles:
            raise ProfileNotFoundError(
                f"Profile '{profile_name}' not found in db.toml.\n"
                f"Available profiles: {', '.join(config.profiles.keys())}"
            )
        profile = config.profiles[profile_name]
        logger.debug(f"Using profile '{profile_name}' ({profile.dialect.value})")
        return create_adapter(ConnectionConfig(dialect=profile.dialect, url=resolve_url(profile)))

    env_url = os.environ.get("SCHEMA_BRIDGE_DATABASE_URL")
    if env_url:
        return create_adapter(ConnectionConfig(dialect=dialect_from_url(env_url), url=env_url))

    raise ProfileNotFoundError(
        "No database configuration found.\n"
        "Either:\n"
        "  1. Pass a profile name from db.toml (or set SCHEMA_BRIDGE_PROFILE)\n"
        "  2. Pass database_url (or set SCHEMA_BRIDGE_DATABASE_URL)"
    )
