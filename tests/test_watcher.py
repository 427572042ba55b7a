"""Tests for the schema change watcher.

The coordinator is mocked, so every discovery pass returns whatever
snapshot the test queues up next.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from schema_bridge.config.models import WatchOptions
from schema_bridge.schema.models import (
    ColumnInfo,
    ForeignKeyInfo,
    SchemaChangeKind,
    SchemaInfo,
    TableInfo,
    ViewInfo,
)
from schema_bridge.schema.watcher import (
    SENTINEL_HASH,
    SchemaWatcher,
    WatcherState,
    compute_schema_hash,
)


def _table(name: str, *columns: str) -> TableInfo:
    return TableInfo(
        name=name,
        columns=[ColumnInfo(name="id", type="integer", nullable=False, is_primary_key=True)]
        + [ColumnInfo(name=c, type="text") for c in columns],
        primary_key=["id"],
    )


USERS = _table("users", "email")
ORDERS = _table("orders", "total")


def _coordinator(*snapshots) -> MagicMock:
    coordinator = MagicMock()
    coordinator.discover_schema = AsyncMock(side_effect=list(snapshots))
    coordinator.finalize = AsyncMock()
    return coordinator


# Long enough that the background loop never ticks during a test
IDLE = WatchOptions(poll_interval=3600)


# ------------------------------------------------------------------
# Hashing
# ------------------------------------------------------------------


class TestComputeSchemaHash:
    """Canonical, order-independent schema hashing."""

    def test_same_content_same_hash(self) -> None:
        assert compute_schema_hash(SchemaInfo(tables=[USERS])) == compute_schema_hash(
            SchemaInfo(tables=[USERS])
        )

    def test_table_order_ignored(self) -> None:
        first = SchemaInfo(tables=[USERS, ORDERS])
        second = SchemaInfo(tables=[ORDERS, USERS])
        assert compute_schema_hash(first) == compute_schema_hash(second)

    def test_column_change_changes_hash(self) -> None:
        changed = _table("users", "email", "name")
        assert compute_schema_hash(SchemaInfo(tables=[USERS])) != compute_schema_hash(
            SchemaInfo(tables=[changed])
        )

    def test_foreign_key_change_changes_hash(self) -> None:
        with_fk = USERS.model_copy(
            update={
                "foreign_keys": [
                    ForeignKeyInfo(name="fk", column="email", referenced_table="orders",
                                   referenced_column="id")
                ]
            }
        )
        assert compute_schema_hash(SchemaInfo(tables=[USERS])) != compute_schema_hash(
            SchemaInfo(tables=[with_fk])
        )

    def test_ignored_tables_excluded(self) -> None:
        base = SchemaInfo(tables=[USERS])
        extended = SchemaInfo(tables=[USERS, _table("sessions")])
        assert compute_schema_hash(base, ["sessions"]) == compute_schema_hash(extended, ["sessions"])

    def test_views_ignored_by_default(self) -> None:
        base = SchemaInfo(tables=[USERS])
        with_view = SchemaInfo(tables=[USERS], views=[ViewInfo(name="v", definition="SELECT 1")])
        assert compute_schema_hash(base) == compute_schema_hash(with_view)
        assert compute_schema_hash(base, ignore_views=False) != compute_schema_hash(
            with_view, ignore_views=False
        )

    def test_hex_digest(self) -> None:
        digest = compute_schema_hash(SchemaInfo())
        assert len(digest) == 64
        assert digest != SENTINEL_HASH


# ------------------------------------------------------------------
# Change detection
# ------------------------------------------------------------------


class TestCheckForChanges:
    """Polling passes and callback notification."""

    async def test_new_table_fires_one_callback(self) -> None:
        coordinator = _coordinator(SchemaInfo(tables=[USERS]), SchemaInfo(tables=[USERS, ORDERS]))
        watcher = SchemaWatcher(coordinator, MagicMock(), IDLE)
        received: list = []
        watcher.on_schema_change(received.append)

        await watcher.start_watching()
        try:
            changes = await watcher.check_for_changes()
        finally:
            watcher.stop_watching()

        assert len(received) == 1
        assert received[0] == changes
        assert len(changes) == 1
        assert changes[0].kind is SchemaChangeKind.TABLE_ADDED
        assert changes[0].table == "orders"

    async def test_unchanged_schema_no_callback(self) -> None:
        coordinator = _coordinator(SchemaInfo(tables=[USERS]), SchemaInfo(tables=[USERS]))
        watcher = SchemaWatcher(coordinator, MagicMock(), IDLE)
        callback = MagicMock()
        watcher.on_schema_change(callback)

        await watcher.start_watching()
        try:
            assert await watcher.check_for_changes() == []
        finally:
            watcher.stop_watching()
        callback.assert_not_called()

    async def test_async_callback_awaited(self) -> None:
        coordinator = _coordinator(SchemaInfo(), SchemaInfo(tables=[USERS]))
        watcher = SchemaWatcher(coordinator, MagicMock(), IDLE)
        callback = AsyncMock()
        watcher.on_schema_change(callback)

        await watcher.start_watching()
        try:
            await watcher.check_for_changes()
        finally:
            watcher.stop_watching()
        callback.assert_awaited_once()

    async def test_failing_callback_does_not_block_others(self) -> None:
        coordinator = _coordinator(SchemaInfo(), SchemaInfo(tables=[USERS]))
        watcher = SchemaWatcher(coordinator, MagicMock(), IDLE)
        second = MagicMock()
        watcher.on_schema_change(MagicMock(side_effect=ValueError("boom")))
        watcher.on_schema_change(second)

        await watcher.start_watching()
        try:
            await watcher.check_for_changes()
        finally:
            watcher.stop_watching()
        second.assert_called_once()

    async def test_ignored_table_changes_not_reported(self) -> None:
        options = WatchOptions(poll_interval=3600, ignored_tables=["orders"])
        coordinator = _coordinator(SchemaInfo(tables=[USERS]), SchemaInfo(tables=[USERS, ORDERS]))
        watcher = SchemaWatcher(coordinator, MagicMock(), options)

        await watcher.start_watching()
        try:
            assert await watcher.check_for_changes() == []
        finally:
            watcher.stop_watching()
        assert watcher.current_schema.table_names == ["users"]

    async def test_failed_initial_snapshot_stores_sentinel(self) -> None:
        coordinator = _coordinator(ConnectionError("down"), SchemaInfo(tables=[USERS]))
        watcher = SchemaWatcher(coordinator, MagicMock(), IDLE)

        await watcher.start_watching()
        try:
            assert watcher.current_hash == SENTINEL_HASH
            assert watcher.is_watching
            changes = await watcher.check_for_changes()
        finally:
            watcher.stop_watching()

        assert [(c.kind, c.table) for c in changes] == [(SchemaChangeKind.TABLE_ADDED, "users")]

    async def test_discovery_error_propagates(self) -> None:
        coordinator = _coordinator(SchemaInfo(), RuntimeError("lost connection"))
        watcher = SchemaWatcher(coordinator, MagicMock(), IDLE)

        await watcher.start_watching()
        try:
            with pytest.raises(RuntimeError, match="lost connection"):
                await watcher.check_for_changes()
        finally:
            watcher.stop_watching()


# ------------------------------------------------------------------
# Lifecycle
# ------------------------------------------------------------------


class TestWatcherLifecycle:
    """Start, stop, polling and fatal stops."""

    async def test_stop_clears_callbacks(self) -> None:
        watcher = SchemaWatcher(_coordinator(SchemaInfo()), MagicMock(), IDLE)
        watcher.on_schema_change(MagicMock())

        await watcher.start_watching()
        assert watcher.state is WatcherState.WATCHING
        watcher.stop_watching()

        assert watcher.state is WatcherState.STOPPED
        assert not watcher.remove_schema_change_callback(print)
        assert watcher._callbacks == []

    async def test_remove_callback(self) -> None:
        watcher = SchemaWatcher(_coordinator(), MagicMock(), IDLE)
        callback = MagicMock()
        watcher.on_schema_change(callback)
        assert watcher.remove_schema_change_callback(callback)
        assert not watcher.remove_schema_change_callback(callback)

    async def test_disabled_watcher_does_not_start(self) -> None:
        coordinator = _coordinator()
        watcher = SchemaWatcher(coordinator, MagicMock(), WatchOptions(enabled=False))
        await watcher.start_watching()
        assert watcher.state is WatcherState.STOPPED
        coordinator.discover_schema.assert_not_called()

    async def test_second_start_is_noop(self) -> None:
        coordinator = _coordinator(SchemaInfo())
        watcher = SchemaWatcher(coordinator, MagicMock(), IDLE)
        await watcher.start_watching()
        try:
            await watcher.start_watching()
        finally:
            watcher.stop_watching()
        assert coordinator.discover_schema.await_count == 1

    async def test_poll_loop_notifies(self) -> None:
        coordinator = MagicMock()
        snapshots = [SchemaInfo(tables=[USERS]), SchemaInfo(tables=[USERS, ORDERS])]
        coordinator.discover_schema = AsyncMock(
            side_effect=lambda client: snapshots[0] if len(snapshots) == 1 else snapshots.pop(0)
        )
        watcher = SchemaWatcher(coordinator, MagicMock(), WatchOptions(poll_interval=0.01))
        notified = asyncio.Event()
        received: list = []

        def on_change(changes) -> None:
            received.append(changes)
            notified.set()

        watcher.on_schema_change(on_change)
        await watcher.start_watching()
        try:
            await asyncio.wait_for(notified.wait(), timeout=2)
            await asyncio.sleep(0.05)
        finally:
            watcher.stop_watching()

        assert len(received) == 1
        assert received[0][0].table == "orders"

    async def test_gives_up_after_max_retries(self) -> None:
        coordinator = MagicMock()
        coordinator.discover_schema = AsyncMock(side_effect=RuntimeError("unreachable"))
        coordinator.finalize = AsyncMock()
        options = WatchOptions(poll_interval=0.01, max_retries=3, max_backoff=0.02)
        watcher = SchemaWatcher(coordinator, MagicMock(), options)
        callback = MagicMock()
        watcher.on_schema_change(callback)

        await watcher.start_watching()
        task = watcher._task
        await asyncio.wait_for(task, timeout=2)

        assert watcher.state is WatcherState.STOPPED
        assert isinstance(watcher.last_error, RuntimeError)
        # Initial snapshot plus three failed polls
        assert coordinator.discover_schema.await_count == 4
        coordinator.finalize.assert_awaited_once()
        callback.assert_not_called()

    async def test_stop_cancels_pending_tick(self) -> None:
        coordinator = _coordinator(SchemaInfo())
        watcher = SchemaWatcher(coordinator, MagicMock(), WatchOptions(poll_interval=0.05))
        await watcher.start_watching()
        task = watcher._task
        watcher.stop_watching()

        await asyncio.sleep(0.1)
        assert task.cancelled()
        assert coordinator.discover_schema.await_count == 1
