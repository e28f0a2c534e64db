"""
Nostr event models and canonical id computation.

Two shapes of event travel through the bridge:

* [UnsignedEvent][nostrbridge.models.event.UnsignedEvent] is what the
  content mapper builds and hands to the external signer. It never carries
  ``id`` or ``sig``.
* [Event][nostrbridge.models.event.Event] is a signed event, either returned
  by the signer or received from a relay. It carries all seven NIP-01 fields.

Both are frozen dataclasses validated in ``__post_init__``; invalid instances
never escape the constructor. Wire dictionaries are converted with
[Event.from_dict()][nostrbridge.models.event.Event.from_dict], which raises
``ValueError`` or ``TypeError`` on malformed input.

See Also:
    [nostrbridge.utils.protocol][]: Sends and receives these events as JSON.
    [nostrbridge.services.sync][]: Validates inbound events before
        reconciling them with local records.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from ._validation import (
    freeze_tags,
    validate_int,
    validate_str_no_null,
    validate_str_not_empty,
    validate_timestamp,
)


REQUIRED_FIELDS: tuple[str, ...] = ("id", "pubkey", "created_at", "kind", "content", "sig")

Tags = tuple[tuple[str, ...], ...]


def serialize_for_id(
    pubkey: str,
    created_at: int,
    kind: int,
    tags: Any,
    content: str,
) -> str:
    """Return the compact JSON array hashed to produce an event id.

    The array is ``[pubkey, created_at, kind, tags, content]`` encoded with
    no whitespace and without ASCII escaping, so the byte sequence matches
    what other Nostr clients hash.
    """
    return json.dumps(
        [pubkey, created_at, kind, [list(tag) for tag in tags], content],
        separators=(",", ":"),
        ensure_ascii=False,
    )


def compute_id(event: Mapping[str, Any] | UnsignedEvent | Event) -> str:
    """Compute the SHA-256 hex digest identifying *event*.

    Accepts a wire mapping, an [UnsignedEvent][nostrbridge.models.event.UnsignedEvent]
    (which must have a ``pubkey``), or an [Event][nostrbridge.models.event.Event].

    Raises:
        ValueError: If the public key is missing.
    """
    if isinstance(event, Mapping):
        pubkey = event.get("pubkey")
        created_at = event.get("created_at")
        kind = event.get("kind")
        tags = event.get("tags") or []
        content = event.get("content", "")
    else:
        pubkey = event.pubkey
        created_at = event.created_at
        kind = event.kind
        tags = event.tags
        content = event.content
    if not pubkey:
        raise ValueError("cannot compute an event id without a pubkey")
    serialized = serialize_for_id(pubkey, created_at, kind, tags, content)  # type: ignore[arg-type]
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def validate_signed(event: Mapping[str, Any] | Event | Any) -> bool:
    """Return True if *event* carries every field a signed event needs.

    Checks presence only (``id``, ``pubkey``, ``created_at``, ``kind``,
    ``content``, ``sig``). Signature verification is a separate, optional
    step in [nostrbridge.utils.keys][].
    """
    if isinstance(event, Event):
        return True
    if not isinstance(event, Mapping):
        return False
    return all(event.get(name) is not None for name in REQUIRED_FIELDS)


@dataclass(frozen=True, slots=True)
class UnsignedEvent:
    """An event template ready for the external signer.

    Attributes:
        kind: Event kind.
        content: Event content.
        tags: Tag list, each tag a tuple of strings.
        created_at: Unix timestamp.
        pubkey: Author public key, attached by
            [Identity.prepare_for_signing()][nostrbridge.services.identity.Identity.prepare_for_signing]
            when known; the signer fills it in otherwise.
    """

    kind: int
    content: str
    tags: Tags = ()
    created_at: int = 0
    pubkey: str | None = None

    def __post_init__(self) -> None:
        validate_int(self.kind, "kind")
        validate_str_no_null(self.content, "content")
        validate_timestamp(self.created_at, "created_at")
        object.__setattr__(self, "tags", freeze_tags(self.tags))
        if self.pubkey is not None:
            validate_str_not_empty(self.pubkey, "pubkey")

    def with_pubkey(self, pubkey: str) -> UnsignedEvent:
        """Return a copy with the author public key set."""
        return UnsignedEvent(
            kind=self.kind,
            content=self.content,
            tags=self.tags,
            created_at=self.created_at,
            pubkey=pubkey,
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON object handed to the signer (no ``id``, no ``sig``)."""
        data: dict[str, Any] = {
            "kind": self.kind,
            "content": self.content,
            "tags": [list(tag) for tag in self.tags],
            "created_at": self.created_at,
        }
        if self.pubkey is not None:
            data["pubkey"] = self.pubkey
        return data


@dataclass(frozen=True, slots=True)
class Event:
    """Immutable signed Nostr event.

    Attributes:
        id: Event id as produced by the signer.
        pubkey: Author public key.
        created_at: Unix timestamp chosen by the author.
        kind: Event kind.
        tags: Tag list, each tag a tuple of strings.
        content: Event content.
        sig: Opaque signature, forwarded unchanged.

    Raises:
        TypeError: If a field has the wrong type.
        ValueError: If a required string is empty or a timestamp is negative.

    Examples:
        ```python
        event = Event.from_dict(message[2])
        event.first_tag("title")   # 'My article' or None
        event.is_reply             # True when an ``e`` tag is present
        ```
    """

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: Tags
    content: str
    sig: str

    def __post_init__(self) -> None:
        validate_str_not_empty(self.id, "id")
        validate_str_not_empty(self.pubkey, "pubkey")
        validate_timestamp(self.created_at, "created_at")
        validate_int(self.kind, "kind")
        if not 0 <= self.kind <= 65535:
            raise ValueError(f"kind out of range: {self.kind}")
        validate_str_no_null(self.content, "content")
        validate_str_not_empty(self.sig, "sig")
        object.__setattr__(self, "tags", freeze_tags(self.tags))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Event:
        """Build an event from its wire JSON object.

        ``tags`` defaults to an empty list when absent. Unknown keys are
        ignored.

        Raises:
            TypeError: If *data* is not a mapping or a field has the wrong type.
            ValueError: If a required field is missing or invalid.
        """
        if not isinstance(data, Mapping):
            raise TypeError(f"event must be a mapping, got {type(data).__name__}")
        missing = [name for name in REQUIRED_FIELDS if data.get(name) is None]
        if missing:
            raise ValueError(f"event is missing required fields: {', '.join(missing)}")
        return cls(
            id=data["id"],
            pubkey=data["pubkey"],
            created_at=data["created_at"],
            kind=data["kind"],
            tags=data.get("tags") or (),
            content=data["content"],
            sig=data["sig"],
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the wire JSON object for this event."""
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    def tag_values(self, name: str) -> list[str]:
        """Return the first value of every tag named *name*, in order."""
        return [tag[1] for tag in self.tags if tag[0] == name and len(tag) > 1]

    def first_tag(self, name: str) -> str | None:
        """Return the first value of the first tag named *name*, or None."""
        values = self.tag_values(name)
        return values[0] if values else None

    @property
    def is_reply(self) -> bool:
        """Whether the event references another event through an ``e`` tag."""
        return any(tag[0] == "e" for tag in self.tags)

    @property
    def identifier(self) -> str | None:
        """The ``d`` tag value, the stable identifier of addressable events."""
        return self.first_tag("d")

    def computed_id(self) -> str:
        """Return the id recomputed from this event's content."""
        return compute_id(self)

    def id_matches(self) -> bool:
        """Whether ``id`` equals the digest recomputed from the event content."""
        return self.id == self.computed_id()
