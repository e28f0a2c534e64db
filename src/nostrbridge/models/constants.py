"""Shared constants for the models layer.

Defines enumerations and other constants that are used across multiple
model modules. Placing them here avoids circular dependencies between
the models and utils layers.

See Also:
    [nostrbridge.models.record][]: Uses
        [SyncStatus][nostrbridge.models.constants.SyncStatus] and
        [RecordType][nostrbridge.models.constants.RecordType].
    [nostrbridge.services.sync][]: Filters inbound events by
        [EventKind][nostrbridge.models.constants.EventKind].
"""

from __future__ import annotations

from enum import IntEnum, StrEnum


class EventKind(IntEnum):
    """Nostr event kinds known to the bridge.

    Only ``NOTE`` and ``ARTICLE`` are built or materialized. ``PROFILE`` is
    queried when resolving NIP-19 profile references, and ``DELETION`` is
    listed so that log output names it; the sync engine skips it like any
    other unhandled kind.

    Attributes:
        PROFILE: Kind 0, user metadata (NIP-01).
        NOTE: Kind 1, short text note (NIP-01).
        DELETION: Kind 5, event deletion request (NIP-09).
        ARTICLE: Kind 30023, long-form content (NIP-23). Addressable by its
            ``d`` tag.
    """

    PROFILE = 0
    NOTE = 1
    DELETION = 5
    ARTICLE = 30023


SYNCED_KINDS: frozenset[int] = frozenset({EventKind.NOTE, EventKind.ARTICLE})


class RecordType(StrEnum):
    """Local content record type. Each maps to exactly one event kind."""

    NOTE = "note"
    ARTICLE = "article"

    @property
    def kind(self) -> EventKind:
        """The event kind used to publish records of this type."""
        return EventKind.NOTE if self is RecordType.NOTE else EventKind.ARTICLE

    @classmethod
    def from_kind(cls, kind: int) -> RecordType:
        """Return the record type for an event kind.

        Raises:
            ValueError: If *kind* is neither a note nor an article.
        """
        if kind == EventKind.NOTE:
            return cls.NOTE
        if kind == EventKind.ARTICLE:
            return cls.ARTICLE
        raise ValueError(f"unsupported event kind: {kind}")


class SyncStatus(StrEnum):
    """Sync status of a local content record.

    Attributes:
        PENDING: Local change waiting for the external signer.
        SYNCED: Published to (or materialized from) at least one relay.
        FAILED: Every relay rejected the last publish.
        ERROR: The last publish attempt could not be completed.
    """

    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"
    ERROR = "error"


class RecordSource(StrEnum):
    """Where a content record was first created."""

    LOCAL = "local"
    NOSTR = "nostr"


class ServiceName(StrEnum):
    """Canonical service identifiers used in logging and metrics."""

    POLLER = "poller"


DEFAULT_RELAYS: tuple[str, ...] = (
    "wss://relay.damus.io",
    "wss://relay.snort.social",
    "wss://nos.lol",
)
