"""
PostgreSQL-backed [ContentStore][nostrbridge.core.store.ContentStore].

Records live in ``content_record`` and process-wide values in
``bridge_state``. [initialize()][nostrbridge.core.pg_store.PostgresStore.initialize]
connects the pool and creates both tables if they are missing.

Examples:
    ```python
    store = PostgresStore(Pool.from_yaml("config/database.yaml"))
    async with store:
        record = await store.get_record_by_remote_id(event_id)
    ```
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from nostrbridge.models.constants import RecordSource, RecordType, SyncStatus
from nostrbridge.models.record import ContentRecord
from nostrbridge.models.state import BridgeState, BridgeStateDbParams, StateKey

from .logger import Logger
from .store import ContentStore


if TYPE_CHECKING:
    import asyncpg

    from .pool import Pool


SCHEMA = """
CREATE TABLE IF NOT EXISTS content_record (
    id                BIGSERIAL PRIMARY KEY,
    record_type       TEXT     NOT NULL,
    title             TEXT     NOT NULL,
    content           TEXT     NOT NULL,
    published_at      BIGINT   NOT NULL,
    modified_at       BIGINT   NOT NULL,
    slug              TEXT     NOT NULL DEFAULT '',
    tags              TEXT[]   NOT NULL DEFAULT '{}',
    url               TEXT,
    image             TEXT,
    summary           TEXT,
    source            TEXT     NOT NULL DEFAULT 'local',
    sync_enabled      BOOLEAN  NOT NULL DEFAULT TRUE,
    sync_status       TEXT,
    remote_event_id   TEXT,
    remote_identifier TEXT,
    synced_at         BIGINT,
    origin_until      BIGINT
);
CREATE INDEX IF NOT EXISTS content_record_remote_event_id_idx
    ON content_record (remote_event_id);
CREATE INDEX IF NOT EXISTS content_record_remote_identifier_idx
    ON content_record (record_type, remote_identifier);

CREATE TABLE IF NOT EXISTS bridge_state (
    key        TEXT   PRIMARY KEY,
    value      JSONB  NOT NULL,
    updated_at BIGINT NOT NULL
);
"""

_COLUMNS = (
    "record_type, title, content, published_at, modified_at, slug, tags, url, image, "
    "summary, source, sync_enabled, sync_status, remote_event_id, remote_identifier, "
    "synced_at, origin_until"
)

_INSERT = f"""
INSERT INTO content_record ({_COLUMNS})
VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17)
RETURNING *
"""

_UPDATE = """
UPDATE content_record SET
    record_type = $2, title = $3, content = $4, published_at = $5, modified_at = $6,
    slug = $7, tags = $8, url = $9, image = $10, summary = $11, source = $12,
    sync_enabled = $13, sync_status = $14, remote_event_id = $15,
    remote_identifier = $16, synced_at = $17, origin_until = $18
WHERE id = $1
RETURNING *
"""


def _record_params(record: ContentRecord) -> tuple[Any, ...]:
    return (
        record.record_type.value,
        record.title,
        record.content,
        record.published_at,
        record.modified_at,
        record.slug,
        list(record.tags),
        record.url,
        record.image,
        record.summary,
        record.source.value,
        record.sync_enabled,
        record.sync_status.value if record.sync_status is not None else None,
        record.remote_event_id,
        record.remote_identifier,
        record.synced_at,
        record.origin_until,
    )


def _row_to_record(row: asyncpg.Record | dict[str, Any]) -> ContentRecord:
    return ContentRecord(
        record_id=row["id"],
        record_type=RecordType(row["record_type"]),
        title=row["title"],
        content=row["content"],
        published_at=row["published_at"],
        modified_at=row["modified_at"],
        slug=row["slug"],
        tags=tuple(row["tags"] or ()),
        url=row["url"],
        image=row["image"],
        summary=row["summary"],
        source=RecordSource(row["source"]),
        sync_enabled=row["sync_enabled"],
        sync_status=SyncStatus(row["sync_status"]) if row["sync_status"] else None,
        remote_event_id=row["remote_event_id"],
        remote_identifier=row["remote_identifier"],
        synced_at=row["synced_at"],
        origin_until=row["origin_until"],
    )


class PostgresStore(ContentStore):
    """[ContentStore][nostrbridge.core.store.ContentStore] on top of a
    [Pool][nostrbridge.core.pool.Pool].

    The store owns the pool lifecycle: ``initialize()`` connects it and
    ``close()`` closes it.
    """

    def __init__(self, pool: Pool, *, logger: Logger | None = None) -> None:
        self._pool = pool
        self._logger = logger or Logger("store")

    @property
    def pool(self) -> Pool:
        return self._pool

    async def initialize(self) -> None:
        await self._pool.connect()
        await self._pool.execute(SCHEMA)
        self._logger.debug("schema_ready")

    async def close(self) -> None:
        await self._pool.close()

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    async def get_record(self, record_id: int) -> ContentRecord | None:
        row = await self._pool.fetchrow("SELECT * FROM content_record WHERE id = $1", record_id)
        return _row_to_record(row) if row else None

    async def get_record_by_remote_id(self, event_id: str) -> ContentRecord | None:
        row = await self._pool.fetchrow(
            "SELECT * FROM content_record WHERE remote_event_id = $1 ORDER BY id LIMIT 1",
            event_id,
        )
        return _row_to_record(row) if row else None

    async def get_record_by_identifier(
        self, record_type: RecordType, identifier: str
    ) -> ContentRecord | None:
        row = await self._pool.fetchrow(
            "SELECT * FROM content_record "
            "WHERE record_type = $1 AND remote_identifier = $2 ORDER BY id LIMIT 1",
            RecordType(record_type).value,
            identifier,
        )
        return _row_to_record(row) if row else None

    async def upsert_record(self, record: ContentRecord) -> ContentRecord:
        params = _record_params(record)
        if record.record_id is None:
            row = await self._pool.fetchrow(_INSERT, *params)
        else:
            row = await self._pool.fetchrow(_UPDATE, record.record_id, *params)
            if row is None:
                raise KeyError(f"unknown record: {record.record_id}")
        assert row is not None  # noqa: S101  # INSERT ... RETURNING always yields a row
        return _row_to_record(row)

    async def list_records(
        self,
        *,
        status: SyncStatus | None = None,
        source: RecordSource | None = None,
    ) -> list[ContentRecord]:
        rows = await self._pool.fetch(
            "SELECT * FROM content_record "
            "WHERE ($1::TEXT IS NULL OR sync_status = $1) "
            "AND ($2::TEXT IS NULL OR source = $2) "
            "ORDER BY id",
            status.value if status is not None else None,
            source.value if source is not None else None,
        )
        return [_row_to_record(row) for row in rows]

    async def clear_expired_origins(self, now: int) -> int:
        status = await self._pool.execute(
            "UPDATE content_record SET origin_until = NULL "
            "WHERE origin_until IS NOT NULL AND origin_until <= $1",
            now,
        )
        return int(status.rsplit(" ", 1)[-1])

    # -------------------------------------------------------------------------
    # Bridge state
    # -------------------------------------------------------------------------

    async def get_state(self, key: StateKey) -> BridgeState | None:
        row = await self._pool.fetchrow(
            "SELECT key, value::TEXT AS value, updated_at FROM bridge_state WHERE key = $1",
            StateKey(key).value,
        )
        if row is None:
            return None
        return BridgeState.from_db_params(
            BridgeStateDbParams(key=row["key"], value=row["value"], updated_at=row["updated_at"])
        )

    async def set_state(
        self, key: StateKey, value: Any, updated_at: int | None = None
    ) -> BridgeState:
        state = BridgeState(
            key=key,
            value=value,
            updated_at=int(time.time()) if updated_at is None else updated_at,
        )
        await self._pool.execute(
            "INSERT INTO bridge_state (key, value, updated_at) VALUES ($1, $2, $3) "
            "ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, "
            "updated_at = EXCLUDED.updated_at",
            *state.to_db_params(),
        )
        return state

    async def delete_state(self, key: StateKey) -> bool:
        status = await self._pool.execute(
            "DELETE FROM bridge_state WHERE key = $1", StateKey(key).value
        )
        return status.endswith(" 1")
