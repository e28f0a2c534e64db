"""
Subscription filter sent with ``REQ`` messages (NIP-01).

[Filter][nostrbridge.models.filter.Filter] holds the optional keys a relay
understands and renders them with
[to_dict()][nostrbridge.models.filter.Filter.to_dict]. Tag filters are
stored by bare tag name and rendered as ``#<name>`` keys.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ._validation import (
    freeze_str_tuple,
    validate_int,
    validate_optional_timestamp,
    validate_str_not_empty,
)


@dataclass(frozen=True, slots=True)
class Filter:
    """Immutable Nostr subscription filter.

    Attributes:
        ids: Event ids to match.
        kinds: Event kinds to match.
        authors: Author public keys to match.
        since: Lower bound on ``created_at`` (inclusive).
        until: Upper bound on ``created_at`` (inclusive).
        limit: Maximum number of stored events the relay should return.
        tags: Tag filters keyed by tag name without the ``#`` prefix.

    Examples:
        ```python
        Filter(kinds=(1, 30023), authors=(pubkey,), limit=500).to_dict()
        # {'kinds': [1, 30023], 'authors': ['...'], 'limit': 500}

        Filter(tags={"t": ("nostr",)}).to_dict()
        # {'#t': ['nostr']}
        ```
    """

    ids: tuple[str, ...] = ()
    kinds: tuple[int, ...] = ()
    authors: tuple[str, ...] = ()
    since: int | None = None
    until: int | None = None
    limit: int | None = None
    tags: Mapping[str, tuple[str, ...]] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "ids", freeze_str_tuple(self.ids, "ids"))
        object.__setattr__(self, "authors", freeze_str_tuple(self.authors, "authors"))
        kinds = tuple(self.kinds)
        for kind in kinds:
            validate_int(kind, "kinds")
            if not 0 <= kind <= 65535:
                raise ValueError(f"kind out of range: {kind}")
        object.__setattr__(self, "kinds", kinds)
        validate_optional_timestamp(self.since, "since")
        validate_optional_timestamp(self.until, "until")
        if self.since is not None and self.until is not None and self.since > self.until:
            raise ValueError(f"since ({self.since}) must be <= until ({self.until})")
        if self.limit is not None:
            validate_int(self.limit, "limit")
            if self.limit < 1:
                raise ValueError("limit must be positive")
        tags: dict[str, tuple[str, ...]] = {}
        for name, values in dict(self.tags).items():
            validate_str_not_empty(name, "tag name")
            tags[name.removeprefix("#")] = freeze_str_tuple(values, f"#{name}")
        object.__setattr__(self, "tags", tags)

    def to_dict(self) -> dict[str, Any]:
        """Return the wire filter object, omitting unset keys."""
        data: dict[str, Any] = {}
        if self.ids:
            data["ids"] = list(self.ids)
        if self.kinds:
            data["kinds"] = [int(kind) for kind in self.kinds]
        if self.authors:
            data["authors"] = list(self.authors)
        if self.since is not None:
            data["since"] = self.since
        if self.until is not None:
            data["until"] = self.until
        if self.limit is not None:
            data["limit"] = self.limit
        for name, values in self.tags.items():
            data[f"#{name}"] = list(values)
        return data
