"""
Unit tests for core.pg_store module.

Tests:
- initialize() / close() drive the pool and create the schema
- Record queries map rows to ContentRecord
- Insert vs update selection in upsert_record()
- Status-tag parsing for clear_expired_origins() and delete_state()
- Bridge state JSON encoding
"""

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from nostrbridge.core.pg_store import SCHEMA, PostgresStore
from nostrbridge.models import RecordType, SyncStatus
from nostrbridge.models.constants import RecordSource
from nostrbridge.models.state import StateKey
from tests.conftest import make_record


def _row(**overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": 1,
        "record_type": "note",
        "title": "A note",
        "content": "Local content",
        "published_at": 10,
        "modified_at": 20,
        "slug": "",
        "tags": ["nostr"],
        "url": None,
        "image": None,
        "summary": None,
        "source": "local",
        "sync_enabled": True,
        "sync_status": None,
        "remote_event_id": None,
        "remote_identifier": None,
        "synced_at": None,
        "origin_until": None,
    }
    row.update(overrides)
    return row


@pytest.fixture
def pool() -> MagicMock:
    pool = MagicMock()
    pool.connect = AsyncMock()
    pool.close = AsyncMock()
    pool.fetch = AsyncMock(return_value=[])
    pool.fetchrow = AsyncMock(return_value=None)
    pool.execute = AsyncMock(return_value="OK")
    return pool


@pytest.fixture
def pg_store(pool: MagicMock) -> PostgresStore:
    return PostgresStore(pool)


class TestLifecycle:
    """Store lifecycle."""

    async def test_context_manager(self, pool: MagicMock, pg_store: PostgresStore) -> None:
        """Entering connects and creates the schema; leaving closes the pool."""
        async with pg_store:
            pool.connect.assert_awaited_once()
            pool.execute.assert_awaited_once_with(SCHEMA)
        pool.close.assert_awaited_once()

    def test_pool_property(self, pool: MagicMock, pg_store: PostgresStore) -> None:
        """The pool is exposed."""
        assert pg_store.pool is pool


class TestRecordQueries:
    """Record reads and writes."""

    async def test_get_record_maps_row(self, pool: MagicMock, pg_store: PostgresStore) -> None:
        """Rows become ContentRecord instances."""
        pool.fetchrow.return_value = _row(sync_status="synced", source="nostr")
        record = await pg_store.get_record(1)
        assert record is not None
        assert record.record_id == 1
        assert record.tags == ("nostr",)
        assert record.sync_status is SyncStatus.SYNCED
        assert record.source is RecordSource.NOSTR

    async def test_get_missing(self, pg_store: PostgresStore) -> None:
        """A missing row is None."""
        assert await pg_store.get_record(1) is None

    async def test_lookup_by_identifier_passes_type(
        self, pool: MagicMock, pg_store: PostgresStore
    ) -> None:
        """The record type is passed by value."""
        await pg_store.get_record_by_identifier(RecordType.ARTICLE, "post")
        assert pool.fetchrow.await_args.args[1:] == ("article", "post")

    async def test_insert(self, pool: MagicMock, pg_store: PostgresStore) -> None:
        """Records without an id are inserted."""
        pool.fetchrow.return_value = _row(id=7)
        stored = await pg_store.upsert_record(make_record())
        assert stored.record_id == 7
        assert "INSERT INTO content_record" in pool.fetchrow.await_args.args[0]

    async def test_update(self, pool: MagicMock, pg_store: PostgresStore) -> None:
        """Records with an id are updated in place."""
        pool.fetchrow.return_value = _row(id=3)
        await pg_store.upsert_record(make_record(record_id=3))
        args = pool.fetchrow.await_args.args
        assert "UPDATE content_record" in args[0]
        assert args[1] == 3

    async def test_update_unknown(self, pg_store: PostgresStore) -> None:
        """Updating a missing record raises KeyError."""
        with pytest.raises(KeyError):
            await pg_store.upsert_record(make_record(record_id=3))

    async def test_list_records_filters(self, pool: MagicMock, pg_store: PostgresStore) -> None:
        """Filters are passed as nullable parameters."""
        pool.fetch.return_value = [_row(), _row(id=2)]
        records = await pg_store.list_records(status=SyncStatus.PENDING)
        assert [r.record_id for r in records] == [1, 2]
        assert pool.fetch.await_args.args[1:] == ("pending", None)

    async def test_clear_expired_origins(self, pool: MagicMock, pg_store: PostgresStore) -> None:
        """The updated row count is parsed from the status tag."""
        pool.execute.return_value = "UPDATE 4"
        assert await pg_store.clear_expired_origins(100) == 4


class TestStateQueries:
    """Bridge state reads and writes."""

    async def test_set_state_encodes_json(self, pool: MagicMock, pg_store: PostgresStore) -> None:
        """Values are JSON encoded before the upsert."""
        await pg_store.set_state(StateKey.RELAYS, ["wss://nos.lol"], updated_at=5)
        assert pool.execute.await_args.args[1:] == ("relays", '["wss://nos.lol"]', 5)

    async def test_get_state(self, pool: MagicMock, pg_store: PostgresStore) -> None:
        """Stored JSON text is decoded."""
        pool.fetchrow.return_value = {"key": "last_sync", "value": "1700000000", "updated_at": 1}
        assert await pg_store.get_checkpoint() == 1700000000

    async def test_get_state_missing(self, pg_store: PostgresStore) -> None:
        """A missing key is None."""
        assert await pg_store.get_state(StateKey.PUBLIC_KEY) is None

    async def test_delete_state(self, pool: MagicMock, pg_store: PostgresStore) -> None:
        """The DELETE status tag tells whether a row existed."""
        pool.execute.return_value = "DELETE 1"
        assert await pg_store.delete_state(StateKey.PUBLIC_KEY) is True
        pool.execute.return_value = "DELETE 0"
        assert await pg_store.delete_state(StateKey.PUBLIC_KEY) is False
