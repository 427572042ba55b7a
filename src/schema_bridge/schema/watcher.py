"""Schema change watcher.

Polls a database through a ``SchemaDiscoveryCoordinator`` and reports
structural drift to registered callbacks.  Each poll hashes a canonical
serialization of the snapshot; only a changed hash triggers a diff.

Usage:
    from schema_bridge.schema.watcher import SchemaWatcher

    watcher = SchemaWatcher(coordinator, client, WatchOptions(poll_interval=2.0))
    watcher.on_schema_change(lambda changes: print(changes))
    await watcher.start_watching()
    ...
    watcher.stop_watching()
"""

import asyncio
import hashlib
import inspect
import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from enum import Enum

from schema_bridge.adapters.base import DatabaseClient
from schema_bridge.config.models import WatchOptions
from schema_bridge.discovery.coordinator import SchemaDiscoveryCoordinator
from schema_bridge.schema.comparator import diff_schemas
from schema_bridge.schema.models import SchemaChange, SchemaInfo, TableInfo

logger = logging.getLogger(__name__)

SchemaChangeCallback = Callable[[list[SchemaChange]], Awaitable[None] | None]

# Stored when the first snapshot could not be taken
SENTINEL_HASH = "0"


class WatcherState(str, Enum):
    STOPPED = "stopped"
    WATCHING = "watching"


def _table_payload(table: TableInfo) -> dict:
    return {
        "name": table.name,
        "columns": [
            {
                "name": c.name,
                "type": c.type,
                "nullable": c.nullable,
                "primary_key": c.is_primary_key,
                "default": c.default,
            }
            for c in table.columns
        ],
        "primary_key": sorted(table.primary_key),
        "foreign_keys": sorted(
            [fk.column, fk.referenced_table, fk.referenced_column, fk.on_delete, fk.on_update]
            for fk in table.foreign_keys
        ),
        "indexes": sorted([i.name, list(i.columns), i.unique] for i in table.indexes),
    }


def compute_schema_hash(
    schema: SchemaInfo,
    ignored_tables: Iterable[str] = (),
    ignore_views: bool = True,
) -> str:
    """SHA-256 of a canonical, order-independent JSON rendering of ``schema``.

    Tables are sorted by name and relationships by source table then name,
    so two discovery passes over the same database hash identically.

    Examples:
        >>> compute_schema_hash(SchemaInfo()) == compute_schema_hash(SchemaInfo())
        True
    """
    ignored = set(ignored_tables)
    tables = sorted((t for t in schema.tables if t.name not in ignored), key=lambda t: t.name)
    relationships = sorted(
        (
            r for r in schema.relationships
            if r.from_table not in ignored and r.to_table not in ignored
        ),
        key=lambda r: (r.from_table, r.name),
    )

    payload: dict = {
        "tables": [_table_payload(t) for t in tables],
        "relationships": [
            [r.from_table, r.name, r.kind.value, r.from_column, r.to_table, r.to_column,
             r.through_table]
            for r in relationships
        ],
    }
    if not ignore_views:
        payload["views"] = sorted([v.name, v.definition] for v in schema.views)

    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class SchemaWatcher:
    """Polls one database for structural changes.

    The watcher owns its poll task.  ``stop_watching()`` is synchronous:
    once it returns no further tick runs and no callback fires.

    Args:
        coordinator: Discovery coordinator for the database's dialect.
        client: Connection the coordinator reads through.
        options: Poll interval, retry limits and exclusions.
    """

    def __init__(
        self,
        coordinator: SchemaDiscoveryCoordinator,
        client: DatabaseClient,
        options: WatchOptions | None = None,
    ) -> None:
        self.coordinator = coordinator
        self.client = client
        self._options = options or WatchOptions()
        self._state = WatcherState.STOPPED
        self._callbacks: list[SchemaChangeCallback] = []
        self._task: asyncio.Task | None = None
        self._lock = asyncio.Lock()
        self._current_schema: SchemaInfo | None = None
        self._current_hash: str | None = None
        self._last_error: Exception | None = None

    @property
    def options(self) -> WatchOptions:
        return self._options

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def is_watching(self) -> bool:
        return self._state is WatcherState.WATCHING

    @property
    def current_schema(self) -> SchemaInfo | None:
        return self._current_schema

    @property
    def current_hash(self) -> str | None:
        return self._current_hash

    @property
    def last_error(self) -> Exception | None:
        """The error that made the watcher stop, if it stopped fatally."""
        return self._last_error

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def on_schema_change(self, callback: SchemaChangeCallback) -> None:
        """Register a callback; sync and async callables are both accepted."""
        self._callbacks.append(callback)

    def remove_schema_change_callback(self, callback: SchemaChangeCallback) -> bool:
        """Unregister a callback.  Returns False if it was not registered."""
        try:
            self._callbacks.remove(callback)
        except ValueError:
            return False
        return True

    async def _notify(self, changes: list[SchemaChange]) -> None:
        for callback in list(self._callbacks):
            try:
                result = callback(changes)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Schema change callback failed: {e}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start_watching(self, options: WatchOptions | None = None) -> None:
        """Take the initial snapshot and start the poll task.

        If the first snapshot fails the sentinel hash is stored instead, so
        the first successful poll is diffed against an empty prior state.
        """
        if options is not None:
            self._options = options

        if self.is_watching:
            logger.warning("Schema watcher is already running")
            return
        if not self._options.enabled:
            logger.warning("Schema watching is disabled in options")
            return

        self._last_error = None
        try:
            schema = self._scope(await self.coordinator.discover_schema(self.client))
            self._current_schema = schema
            self._current_hash = self._hash(schema)
        except Exception as e:
            logger.warning(f"Initial schema snapshot failed, starting without one: {e}")
            self._current_schema = None
            self._current_hash = SENTINEL_HASH

        self._state = WatcherState.WATCHING
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(f"Schema watcher started (interval {self._options.poll_interval}s)")

    def stop_watching(self) -> None:
        """Cancel the poll task and discard all callbacks."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self._callbacks.clear()
        if self._state is WatcherState.WATCHING:
            logger.info("Schema watcher stopped")
        self._state = WatcherState.STOPPED

    async def _poll_loop(self) -> None:
        failures = 0
        delay = self._options.poll_interval

        while self.is_watching:
            await asyncio.sleep(delay)
            try:
                await self.check_for_changes()
            except Exception as e:
                failures += 1
                if failures >= self._options.max_retries:
                    await self._stop_fatally(e)
                    return
                delay = min(self._options.max_backoff, self._options.poll_interval * 2**failures)
                logger.warning(
                    f"Schema check failed ({failures}/{self._options.max_retries}), "
                    f"retrying in {delay}s: {e}"
                )
                continue

            failures = 0
            delay = self._options.poll_interval

    async def _stop_fatally(self, error: Exception) -> None:
        logger.error(f"Schema watcher giving up after {self._options.max_retries} failures: {error}")
        try:
            await self.coordinator.finalize(self.client)
        except Exception as e:
            logger.warning(f"Final optimization before stopping failed: {e}")
        self._last_error = error
        self._state = WatcherState.STOPPED
        self._task = None

    # ------------------------------------------------------------------
    # Checking
    # ------------------------------------------------------------------

    def _scope(self, schema: SchemaInfo) -> SchemaInfo:
        ignored = set(self._options.ignored_tables)
        return schema.model_copy(
            update={
                "tables": [t for t in schema.tables if t.name not in ignored],
                "relationships": [
                    r for r in schema.relationships
                    if r.from_table not in ignored and r.to_table not in ignored
                ],
                "views": [] if self._options.ignore_views else list(schema.views),
            }
        )

    def _hash(self, schema: SchemaInfo) -> str:
        return compute_schema_hash(
            schema, self._options.ignored_tables, self._options.ignore_views
        )

    async def check_for_changes(self) -> list[SchemaChange]:
        """Run one discovery pass and report changes since the last one.

        Passes never overlap.  Callbacks fire only when at least one change
        is found; the stored snapshot and hash advance either way.

        Raises:
            Exception: Whatever discovery raises.
        """
        async with self._lock:
            schema = self._scope(await self.coordinator.discover_schema(self.client))
            new_hash = self._hash(schema)

            if new_hash == self._current_hash:
                return []

            changes = diff_schemas(self._current_schema, schema)
            self._current_schema = schema
            self._current_hash = new_hash

            if changes:
                logger.info(f"Detected {len(changes)} schema change(s)")
                await self._notify(changes)
            return changes
