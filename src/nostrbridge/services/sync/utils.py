"""Result types and pure helpers for the sync engine."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from nostrbridge.models.constants import SyncStatus


if TYPE_CHECKING:
    from nostrbridge.utils.protocol import PublishResult


class EventOutcome(StrEnum):
    """What reconciliation did with one inbound event."""

    PROCESSED = "processed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True)
class SyncResult:
    """Aggregate counts of one inbound sync.

    Attributes:
        processed: Events that created or updated a record.
        skipped: Events ignored (invalid, unsupported kind, reply, stale).
        failed: Events whose mapping or storage raised.
        total: Unique events returned by the relays.
        checkpoint: Checkpoint in effect after the sync.
    """

    processed: int = 0
    skipped: int = 0
    failed: int = 0
    total: int = 0
    checkpoint: int | None = None

    def record(self, outcome: EventOutcome) -> None:
        if outcome is EventOutcome.PROCESSED:
            self.processed += 1
        elif outcome is EventOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1


@dataclass(frozen=True, slots=True)
class PublishOutcome:
    """Result of publishing a signed event for one record."""

    record_id: int
    event_id: str
    status: SyncStatus
    results: Mapping[str, PublishResult] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        """True when at least one relay accepted the event."""
        return self.status is SyncStatus.SYNCED

    @property
    def accepted_by(self) -> list[str]:
        return [relay for relay, result in self.results.items() if result.accepted]


@dataclass(frozen=True, slots=True)
class SyncStats:
    """Counts over all local records, plus the current checkpoint."""

    total_synced: int
    sync_enabled: int
    sync_failed: int
    pending: int
    last_sync: int | None


def dedupe_events(events: Iterable[Any]) -> list[dict[str, Any]]:
    """Keep the first event seen for each id, dropping entries without one."""
    unique: dict[str, dict[str, Any]] = {}
    for event in events:
        if not isinstance(event, dict):
            continue
        event_id = event.get("id")
        if not isinstance(event_id, str) or not event_id:
            continue
        unique.setdefault(event_id, event)
    return list(unique.values())


def compute_checkpoint(
    events: Iterable[Mapping[str, Any]],
    *,
    full_resync: bool,
    started_at: int,
    answered: bool = True,
) -> int | None:
    """Return the next checkpoint, or None to leave it unchanged.

    Incremental syncs advance to *started_at*, the moment the query was
    issued, as long as at least one relay *answered*, even with no events.
    A full resync uses the oldest ``created_at`` minus one second so a later
    incremental sync still sees events sharing that second, and leaves the
    checkpoint alone when it found nothing.
    """
    timestamps = [
        event["created_at"]
        for event in events
        if isinstance(event.get("created_at"), int) and not isinstance(event["created_at"], bool)
    ]
    if full_resync:
        return max(min(timestamps) - 1, 0) if timestamps else None
    if not answered:
        return None
    return started_at
