"""
Content store interface and the in-memory implementation.

The sync engine never talks to the host platform directly; it reads and
writes [ContentRecord][nostrbridge.models.record.ContentRecord] and
[BridgeState][nostrbridge.models.state.BridgeState] rows through
[ContentStore][nostrbridge.core.store.ContentStore].

Two implementations ship with the package:

* [MemoryStore][nostrbridge.core.store.MemoryStore]: process-local dicts,
  used by tests and the CLI ``--memory`` mode.
* [PostgresStore][nostrbridge.core.pg_store.PostgresStore]: asyncpg-backed
  persistence.
"""

from __future__ import annotations

import asyncio
import dataclasses
import time
from abc import ABC, abstractmethod
from types import TracebackType
from typing import Any, Self

from nostrbridge.models.constants import RecordSource, RecordType, SyncStatus
from nostrbridge.models.record import ContentRecord
from nostrbridge.models.state import BridgeState, StateKey


class ContentStore(ABC):
    """Async persistence boundary for content records and bridge state.

    Record lookups return ``None`` when nothing matches; updates of an
    unknown record raise ``KeyError``.
    """

    async def initialize(self) -> None:  # noqa: B027
        """Prepare the backing storage (create tables, open pools)."""

    async def close(self) -> None:  # noqa: B027
        """Release resources held by the store."""

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_record(self, record_id: int) -> ContentRecord | None: ...

    @abstractmethod
    async def get_record_by_remote_id(self, event_id: str) -> ContentRecord | None:
        """Return the record last published or materialized as *event_id*."""

    @abstractmethod
    async def get_record_by_identifier(
        self, record_type: RecordType, identifier: str
    ) -> ContentRecord | None:
        """Return the record whose remote ``d`` identifier is *identifier*."""

    @abstractmethod
    async def upsert_record(self, record: ContentRecord) -> ContentRecord:
        """Insert (``record_id is None``) or replace a record.

        Returns:
            The stored record, with ``record_id`` assigned on insert.
        """

    @abstractmethod
    async def list_records(
        self,
        *,
        status: SyncStatus | None = None,
        source: RecordSource | None = None,
    ) -> list[ContentRecord]:
        """Return records ordered by id, optionally filtered."""

    async def mark_status(
        self,
        record_id: int,
        status: SyncStatus,
        *,
        synced_at: int | None = None,
        remote_event_id: str | None = None,
        remote_identifier: str | None = None,
    ) -> ContentRecord:
        """Set a record's sync status and, when given, its sync metadata.

        Raises:
            KeyError: If the record does not exist.
        """
        record = await self.get_record(record_id)
        if record is None:
            raise KeyError(f"unknown record: {record_id}")
        changes: dict[str, Any] = {"sync_status": status}
        if synced_at is not None:
            changes["synced_at"] = synced_at
        if remote_event_id is not None:
            changes["remote_event_id"] = remote_event_id
        if remote_identifier is not None:
            changes["remote_identifier"] = remote_identifier
        return await self.upsert_record(dataclasses.replace(record, **changes))

    @abstractmethod
    async def clear_expired_origins(self, now: int) -> int:
        """Clear origin flags that expired at or before *now*.

        Returns:
            Number of records updated.
        """

    # -------------------------------------------------------------------------
    # Bridge state
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_state(self, key: StateKey) -> BridgeState | None: ...

    @abstractmethod
    async def set_state(
        self, key: StateKey, value: Any, updated_at: int | None = None
    ) -> BridgeState: ...

    @abstractmethod
    async def delete_state(self, key: StateKey) -> bool:
        """Remove a state row. Returns True if it existed."""

    async def get_checkpoint(self) -> int | None:
        """Return the inbound sync checkpoint, or None before the first sync."""
        state = await self.get_state(StateKey.LAST_SYNC)
        if state is None or state.value is None:
            return None
        return int(state.value)

    async def set_checkpoint(self, timestamp: int) -> None:
        await self.set_state(StateKey.LAST_SYNC, int(timestamp))

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> Self:
        await self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


class MemoryStore(ContentStore):
    """In-process [ContentStore][nostrbridge.core.store.ContentStore].

    Nothing survives the process. Mutations are serialized with an
    ``asyncio.Lock`` so concurrent tasks see consistent ids.
    """

    def __init__(self) -> None:
        self._records: dict[int, ContentRecord] = {}
        self._state: dict[StateKey, BridgeState] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def get_record(self, record_id: int) -> ContentRecord | None:
        return self._records.get(record_id)

    async def get_record_by_remote_id(self, event_id: str) -> ContentRecord | None:
        for record in self._records.values():
            if record.remote_event_id == event_id:
                return record
        return None

    async def get_record_by_identifier(
        self, record_type: RecordType, identifier: str
    ) -> ContentRecord | None:
        for record in self._records.values():
            if record.record_type == record_type and record.remote_identifier == identifier:
                return record
        return None

    async def upsert_record(self, record: ContentRecord) -> ContentRecord:
        async with self._lock:
            if record.record_id is None:
                record = dataclasses.replace(record, record_id=self._next_id)
                self._next_id += 1
            elif record.record_id not in self._records:
                self._next_id = max(self._next_id, record.record_id + 1)
            self._records[record.record_id] = record  # type: ignore[index]
            return record

    async def list_records(
        self,
        *,
        status: SyncStatus | None = None,
        source: RecordSource | None = None,
    ) -> list[ContentRecord]:
        return [
            record
            for _, record in sorted(self._records.items())
            if (status is None or record.sync_status == status)
            and (source is None or record.source == source)
        ]

    async def clear_expired_origins(self, now: int) -> int:
        async with self._lock:
            cleared = 0
            for record_id, record in self._records.items():
                if record.origin_until is not None and record.origin_until <= now:
                    self._records[record_id] = dataclasses.replace(record, origin_until=None)
                    cleared += 1
            return cleared

    async def get_state(self, key: StateKey) -> BridgeState | None:
        return self._state.get(StateKey(key))

    async def set_state(
        self, key: StateKey, value: Any, updated_at: int | None = None
    ) -> BridgeState:
        state = BridgeState(
            key=key,
            value=value,
            updated_at=int(time.time()) if updated_at is None else updated_at,
        )
        self._state[state.key] = state
        return state

    async def delete_state(self, key: StateKey) -> bool:
        return self._state.pop(StateKey(key), None) is not None
