"""
Local content records and the fields mapped from inbound events.

A [ContentRecord][nostrbridge.models.record.ContentRecord] is the bridge's
view of one note or article in the host content store, together with its
sync metadata. Records are immutable; updates go through
``dataclasses.replace`` and are written back with
[ContentStore.upsert_record()][nostrbridge.core.store.ContentStore.upsert_record].

[ContentFields][nostrbridge.models.record.ContentFields] is what the
[ContentMapper][nostrbridge.services.mapper.ContentMapper] extracts from an
inbound event before the sync engine merges it into a record.
"""

from __future__ import annotations

from dataclasses import dataclass

from ._validation import (
    freeze_str_tuple,
    validate_instance,
    validate_optional_timestamp,
    validate_str_no_null,
    validate_timestamp,
)
from .constants import RecordSource, RecordType, SyncStatus


@dataclass(frozen=True, slots=True)
class ContentRecord:
    """A note or article stored locally, plus its sync metadata.

    Attributes:
        record_type: Note or article.
        title: Display title.
        content: Body in display form (HTML for articles, text for notes).
        published_at: Unix timestamp of first publication.
        modified_at: Unix timestamp of the last local modification. Compared
            against inbound ``created_at`` for last-writer-wins.
        record_id: Store-assigned id, ``None`` until first upsert.
        slug: Stable slug, used as the article ``d`` tag.
        tags: Hashtags and categories.
        url: Canonical URL of the content on the host platform.
        image: Cover image URL.
        summary: Short description (article ``summary`` tag).
        source: Where the record was first created.
        sync_enabled: Whether local edits are published.
        sync_status: Current sync status, ``None`` if never synced.
        remote_event_id: Id of the last event published or materialized.
        remote_identifier: ``d`` tag of the last article event.
        synced_at: Unix timestamp of the last successful sync.
        origin_until: While ``now < origin_until`` the record counts as
            inbound-originated and is not re-published.
    """

    record_type: RecordType
    title: str
    content: str
    published_at: int
    modified_at: int
    record_id: int | None = None
    slug: str = ""
    tags: tuple[str, ...] = ()
    url: str | None = None
    image: str | None = None
    summary: str | None = None
    source: RecordSource = RecordSource.LOCAL
    sync_enabled: bool = True
    sync_status: SyncStatus | None = None
    remote_event_id: str | None = None
    remote_identifier: str | None = None
    synced_at: int | None = None
    origin_until: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "record_type", RecordType(self.record_type))
        object.__setattr__(self, "source", RecordSource(self.source))
        if self.sync_status is not None:
            object.__setattr__(self, "sync_status", SyncStatus(self.sync_status))
        validate_str_no_null(self.title, "title")
        validate_str_no_null(self.content, "content")
        validate_str_no_null(self.slug, "slug")
        validate_timestamp(self.published_at, "published_at")
        validate_timestamp(self.modified_at, "modified_at")
        validate_optional_timestamp(self.synced_at, "synced_at")
        validate_optional_timestamp(self.origin_until, "origin_until")
        validate_instance(self.sync_enabled, bool, "sync_enabled")
        object.__setattr__(self, "tags", freeze_str_tuple(self.tags, "tags"))

    def origin_active(self, now: int) -> bool:
        """Whether the inbound-origin flag is set and unexpired at *now*."""
        return self.origin_until is not None and now < self.origin_until


@dataclass(frozen=True, slots=True)
class ContentFields:
    """Content extracted from an inbound event.

    Attributes:
        record_type: Note or article, derived from the event kind.
        title: Non-empty display title.
        content: Non-empty body in display form.
        published_at: Publication timestamp (``published_at`` tag for
            articles, ``created_at`` otherwise).
        tags: Values of the event's ``t`` tags.
        identifier: ``d`` tag of an article event.
        image: ``image`` tag of an article event.
        summary: ``summary`` tag of an article event.
    """

    record_type: RecordType
    title: str
    content: str
    published_at: int
    tags: tuple[str, ...] = ()
    identifier: str | None = None
    image: str | None = None
    summary: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "record_type", RecordType(self.record_type))
        validate_str_no_null(self.title, "title")
        validate_str_no_null(self.content, "content")
        if not self.title.strip():
            raise ValueError("title must not be empty")
        if not self.content.strip():
            raise ValueError("content must not be empty")
        validate_timestamp(self.published_at, "published_at")
        object.__setattr__(self, "tags", freeze_str_tuple(self.tags, "tags"))
