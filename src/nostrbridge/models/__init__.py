"""Pure frozen dataclasses with zero I/O for events, relays, and content.

The models layer is the foundation of the diamond DAG. It has no
dependencies on any other nostrbridge package. Every model uses
``@dataclass(frozen=True, slots=True)`` and validates in ``__post_init__``,
raising ``ValueError`` or ``TypeError``; callers in the services layer turn
those into [ValidationError][nostrbridge.core.exceptions.ValidationError]
where an error must cross a component boundary.

Attributes:
    Event: Signed Nostr event, built from wire JSON with ``from_dict``.
    UnsignedEvent: Event template handed to the external signer.
    Filter: ``REQ`` subscription filter.
    Relay: Validated ``ws://``/``wss://`` relay URL.
    ContentRecord: Local note or article with sync metadata.
    ContentFields: Content extracted from an inbound event.
    BridgeState: Persisted process-wide value (identity, relays, checkpoint).

See Also:
    [nostrbridge.models.event][]: Event models and id computation.
    [nostrbridge.models.constants][]: Shared enumerations.
"""

from .constants import (
    DEFAULT_RELAYS,
    SYNCED_KINDS,
    EventKind,
    RecordSource,
    RecordType,
    ServiceName,
    SyncStatus,
)
from .event import REQUIRED_FIELDS, Event, UnsignedEvent, compute_id, validate_signed
from .filter import Filter
from .record import ContentFields, ContentRecord
from .relay import Relay
from .state import BridgeState, BridgeStateDbParams, StateKey


__all__ = [
    "DEFAULT_RELAYS",
    "REQUIRED_FIELDS",
    "SYNCED_KINDS",
    "BridgeState",
    "BridgeStateDbParams",
    "ContentFields",
    "ContentRecord",
    "Event",
    "EventKind",
    "Filter",
    "RecordSource",
    "RecordType",
    "Relay",
    "ServiceName",
    "StateKey",
    "SyncStatus",
    "UnsignedEvent",
    "compute_id",
    "validate_signed",
]
