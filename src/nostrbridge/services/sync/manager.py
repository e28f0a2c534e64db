"""
Sync reconciliation engine.

[SyncManager][nostrbridge.services.sync.SyncManager] moves content in both
directions:

Outbound (driven by the external signer):

1. [on_local_save()][nostrbridge.services.sync.SyncManager.on_local_save]
   marks an edited record ``pending`` unless sync is disabled for it or its
   origin flag is active.
2. [build_unsigned_event()][nostrbridge.services.sync.SyncManager.build_unsigned_event]
   hands the signer an event template.
3. [publish()][nostrbridge.services.sync.SyncManager.publish] sends the
   signed event to every relay and marks the record ``synced`` if any relay
   accepted it, ``failed`` otherwise.

Inbound ([sync_from_nostr()][nostrbridge.services.sync.SyncManager.sync_from_nostr]):
query every relay since the checkpoint, deduplicate by event id, drop events
whose id does not match the digest of their content, then create or update
records with last-writer-wins on ``created_at`` versus the local
``modified_at`` (ties keep the local version). Records written from an
inbound event carry a time-boxed origin flag so the outbound side does not
publish them straight back.

Note:
    The engine is not internally locked. Callers must serialize
    ``sync_from_nostr`` runs;
    [Poller][nostrbridge.services.poller.Poller] does so with a
    single-flight lock.

See Also:
    [ContentMapper][nostrbridge.services.mapper.ContentMapper]: Converts
        between records and events.
    [RelayClient][nostrbridge.utils.protocol.RelayClient]: Relay I/O.
"""

from __future__ import annotations

import dataclasses
import time
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any

from nostrbridge.core.exceptions import (
    ConfigurationError,
    MappingError,
    ValidationError,
)
from nostrbridge.core.logger import Logger
from nostrbridge.models.constants import EventKind, RecordSource, RecordType, SyncStatus
from nostrbridge.models.event import REQUIRED_FIELDS, Event, UnsignedEvent, validate_signed
from nostrbridge.models.filter import Filter
from nostrbridge.models.record import ContentFields, ContentRecord
from nostrbridge.models.state import StateKey
from nostrbridge.utils.keys import verify_signature

from .configs import SyncConfig
from .utils import (
    EventOutcome,
    PublishOutcome,
    SyncResult,
    SyncStats,
    compute_checkpoint,
    dedupe_events,
)


if TYPE_CHECKING:
    from nostrbridge.core.store import ContentStore
    from nostrbridge.models.relay import Relay
    from nostrbridge.services.mapper import ContentMapper
    from nostrbridge.utils.protocol import RelayClient


class SyncManager:
    """Reconciles local content records with events on Nostr relays.

    Args:
        store: Persistence for records, checkpoint and settings.
        client: Relay client used for publishing and querying.
        mapper: Record/event conversion.
        config: Filter and reconciliation settings.
        logger: Structured logger; defaults to one named ``sync``.
        clock: Returns the current Unix time; ``time.time`` by default.
    """

    def __init__(
        self,
        store: ContentStore,
        client: RelayClient,
        mapper: ContentMapper,
        config: SyncConfig | None = None,
        *,
        logger: Logger | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._store = store
        self._client = client
        self._mapper = mapper
        self._config = config or SyncConfig()
        self._logger = logger or Logger("sync")
        self._clock = clock or time.time

    @property
    def config(self) -> SyncConfig:
        return self._config

    def _now(self) -> int:
        return int(self._clock())

    async def _require_record(self, record_id: int) -> ContentRecord:
        record = await self._store.get_record(record_id)
        if record is None:
            raise KeyError(f"unknown record: {record_id}")
        return record

    # -------------------------------------------------------------------------
    # Outbound
    # -------------------------------------------------------------------------

    def should_sync(self, record: ContentRecord, now: int | None = None) -> bool:
        """Whether a local edit of *record* should be published."""
        current = self._now() if now is None else now
        return record.sync_enabled and not record.origin_active(current)

    async def sync_enabled_default(self) -> bool:
        """The stored default for new records, falling back to configuration."""
        state = await self._store.get_state(StateKey.SYNC_ENABLED_DEFAULT)
        if state is not None and isinstance(state.value, bool):
            return state.value
        return self._config.sync_enabled_default

    async def enable_sync_by_default(self, record: ContentRecord) -> ContentRecord:
        """Store a new local record with ``sync_enabled`` set to the default."""
        enabled = await self.sync_enabled_default()
        return await self._store.upsert_record(
            dataclasses.replace(record, sync_enabled=enabled, source=RecordSource.LOCAL)
        )

    async def on_local_save(self, record_id: int) -> SyncStatus | None:
        """React to a local save of *record_id*.

        Returns:
            ``SyncStatus.PENDING`` when the record now awaits signing, or
            None when it was left alone.

        Raises:
            KeyError: If the record does not exist.
        """
        record = await self._require_record(record_id)
        if not record.sync_enabled:
            self._logger.debug("save_ignored", record_id=record_id, reason="sync_disabled")
            return None
        if record.origin_active(self._now()):
            self._logger.debug("save_ignored", record_id=record_id, reason="inbound_origin")
            return None
        await self._store.mark_status(record_id, SyncStatus.PENDING)
        self._logger.info("record_pending", record_id=record_id)
        return SyncStatus.PENDING

    async def build_unsigned_event(self, record_id: int) -> UnsignedEvent:
        """Build the event the signer should sign for *record_id*.

        Raises:
            KeyError: If the record does not exist.
            MappingError: If the record has no publishable content; the
                record is marked ``error``.
        """
        record = await self._require_record(record_id)
        try:
            return self._mapper.build_outbound_event(record)
        except MappingError as e:
            await self._store.mark_status(record_id, SyncStatus.ERROR)
            self._logger.warning("outbound_mapping_failed", record_id=record_id, error=str(e))
            raise

    async def publish(
        self,
        record_id: int,
        signed_event: Event | Mapping[str, Any],
        relays: Iterable[Relay | str],
    ) -> PublishOutcome:
        """Publish a signed event for *record_id* to every relay.

        Raises:
            ValidationError: If the event lacks a required field. No relay
                is contacted.
            KeyError: If the record does not exist.
        """
        if not validate_signed(signed_event):
            present = signed_event if isinstance(signed_event, Mapping) else {}
            missing = [name for name in REQUIRED_FIELDS if present.get(name) is None]
            raise ValidationError(f"signed event is missing fields: {', '.join(missing)}")
        try:
            event = (
                signed_event if isinstance(signed_event, Event) else Event.from_dict(signed_event)
            )
        except (TypeError, ValueError) as e:
            raise ValidationError(f"invalid signed event: {e}") from e
        await self._require_record(record_id)

        results = await self._client.publish_to_all(relays, event)
        if any(result.accepted for result in results.values()):
            status = SyncStatus.SYNCED
            await self._store.mark_status(
                record_id,
                status,
                synced_at=self._now(),
                remote_event_id=event.id,
                remote_identifier=event.identifier,
            )
        else:
            status = SyncStatus.FAILED
            await self._store.mark_status(record_id, status)

        self._logger.info(
            "record_published",
            record_id=record_id,
            event_id=event.id,
            status=status,
            accepted=sum(1 for result in results.values() if result.accepted),
            relays=len(results),
        )
        return PublishOutcome(record_id=record_id, event_id=event.id, status=status, results=results)

    # -------------------------------------------------------------------------
    # Inbound
    # -------------------------------------------------------------------------

    async def sync_from_nostr(
        self,
        public_key: str | None,
        relays: Iterable[Relay | str],
        *,
        full_resync: bool = False,
    ) -> SyncResult:
        """Pull events authored by *public_key* and reconcile them.

        An empty relay list returns an empty result without touching the
        checkpoint, and so does an incremental sync no relay answered.
        Errors while handling one event are counted and never abort the
        batch.

        Raises:
            ConfigurationError: If no public key is configured.
        """
        if not public_key:
            raise ConfigurationError("no public key configured")

        relays = list(relays)
        if not relays:
            self._logger.warning("sync_skipped", reason="no_relays")
            return SyncResult(checkpoint=await self._store.get_checkpoint())

        previous = await self._store.get_checkpoint()
        since = None if full_resync else previous
        nostr_filter = Filter(
            kinds=tuple(self._config.kinds),
            authors=(public_key,),
            since=since,
            limit=self._config.limit,
        )

        started_at = self._now()
        self._logger.info(
            "sync_started", relays=len(relays), since=since, full_resync=full_resync
        )
        responses = await self._client.query_each(relays, nostr_filter)
        answered = [url for url, found in responses.items() if found is not None]
        events = dedupe_events(event for found in responses.values() if found for event in found)

        result = SyncResult(total=len(events), checkpoint=previous)
        for raw in events:
            result.record(await self._process_event(raw, public_key))

        checkpoint = compute_checkpoint(
            events, full_resync=full_resync, started_at=started_at, answered=bool(answered)
        )
        if checkpoint is not None:
            await self._store.set_checkpoint(checkpoint)
            result.checkpoint = checkpoint

        self._logger.info(
            "sync_completed",
            total=result.total,
            processed=result.processed,
            skipped=result.skipped,
            failed=result.failed,
            answered=len(answered),
            checkpoint=result.checkpoint,
        )
        return result

    async def _process_event(self, raw: dict[str, Any], public_key: str) -> EventOutcome:
        event_id = raw.get("id")
        try:
            return await self._reconcile(raw, public_key)
        except ValidationError as e:
            self._logger.debug("event_skipped", event_id=event_id, reason="invalid", error=str(e))
            return EventOutcome.SKIPPED
        except MappingError as e:
            self._logger.warning("event_mapping_failed", event_id=event_id, error=str(e))
            return EventOutcome.FAILED
        except Exception as e:  # Intentionally broad: one bad event must not abort the batch
            self._logger.error(
                "event_processing_failed",
                event_id=event_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return EventOutcome.FAILED

    async def _reconcile(self, raw: dict[str, Any], public_key: str) -> EventOutcome:
        if not validate_signed(raw):
            raise ValidationError("event is missing required fields")
        try:
            event = Event.from_dict(raw)
        except (TypeError, ValueError) as e:
            raise ValidationError(str(e)) from e

        if not event.id_matches():
            return self._skip(event, "id_mismatch")
        if event.kind not in self._config.kinds:
            return self._skip(event, "unsupported_kind", kind=event.kind)
        if event.is_reply:
            return self._skip(event, "reply")
        if event.pubkey.lower() != public_key.lower():
            return self._skip(event, "foreign_author")
        if self._config.verify_signatures and not verify_signature(event):
            return self._skip(event, "bad_signature")

        record = await self._find_record(event)
        now = self._now()

        if record is None:
            fields = await self._mapper.map_inbound_event(event)
            created = await self._store.upsert_record(self._new_record(event, fields, now))
            self._logger.info("record_created", record_id=created.record_id, event_id=event.id)
            return EventOutcome.PROCESSED

        if event.created_at <= record.modified_at:
            return self._skip(
                event,
                "local_not_older",
                record_id=record.record_id,
                modified_at=record.modified_at,
            )

        fields = await self._mapper.map_inbound_event(event)
        await self._store.upsert_record(self._updated_record(record, event, fields, now))
        self._logger.info("record_updated", record_id=record.record_id, event_id=event.id)
        return EventOutcome.PROCESSED

    def _skip(self, event: Event, reason: str, **fields: Any) -> EventOutcome:
        self._logger.debug("event_skipped", event_id=event.id, reason=reason, **fields)
        return EventOutcome.SKIPPED

    async def _find_record(self, event: Event) -> ContentRecord | None:
        record = await self._store.get_record_by_remote_id(event.id)
        if record is not None:
            return record
        identifier = event.identifier
        if event.kind == EventKind.ARTICLE and identifier:
            return await self._store.get_record_by_identifier(
                RecordType.from_kind(event.kind), identifier
            )
        return None

    def _new_record(self, event: Event, fields: ContentFields, now: int) -> ContentRecord:
        return ContentRecord(
            record_type=fields.record_type,
            title=fields.title,
            content=fields.content,
            published_at=fields.published_at,
            modified_at=event.created_at,
            slug=fields.identifier or "",
            tags=fields.tags,
            image=fields.image,
            summary=fields.summary,
            source=RecordSource.NOSTR,
            sync_enabled=True,
            sync_status=SyncStatus.SYNCED,
            remote_event_id=event.id,
            remote_identifier=fields.identifier,
            synced_at=now,
            origin_until=now + self._config.origin_grace,
        )

    def _updated_record(
        self, record: ContentRecord, event: Event, fields: ContentFields, now: int
    ) -> ContentRecord:
        return dataclasses.replace(
            record,
            title=fields.title,
            content=fields.content,
            published_at=fields.published_at,
            modified_at=event.created_at,
            tags=fields.tags,
            image=fields.image or record.image,
            summary=fields.summary or record.summary,
            sync_status=SyncStatus.SYNCED,
            remote_event_id=event.id,
            remote_identifier=fields.identifier or record.remote_identifier,
            synced_at=now,
            origin_until=now + self._config.origin_grace,
        )

    # -------------------------------------------------------------------------
    # Origin flags and reporting
    # -------------------------------------------------------------------------

    async def release_origin_flags(self) -> int:
        """Clear origin flags whose grace window has passed."""
        cleared = await self._store.clear_expired_origins(self._now())
        if cleared:
            self._logger.debug("origin_flags_released", count=cleared)
        return cleared

    async def clear_origin_flag(self, record_id: int) -> ContentRecord:
        """Clear the origin flag of one record immediately."""
        record = await self._require_record(record_id)
        if record.origin_until is None:
            return record
        return await self._store.upsert_record(dataclasses.replace(record, origin_until=None))

    async def pending_records(self) -> list[ContentRecord]:
        return await self._store.list_records(status=SyncStatus.PENDING)

    async def get_stats(self) -> SyncStats:
        records = await self._store.list_records()
        return SyncStats(
            total_synced=sum(1 for r in records if r.sync_status is SyncStatus.SYNCED),
            sync_enabled=sum(1 for r in records if r.sync_enabled),
            sync_failed=sum(
                1 for r in records if r.sync_status in (SyncStatus.FAILED, SyncStatus.ERROR)
            ),
            pending=sum(1 for r in records if r.sync_status is SyncStatus.PENDING),
            last_sync=await self._store.get_checkpoint(),
        )
