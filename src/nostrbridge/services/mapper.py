"""
Conversion between local content records and Nostr events.

Outbound, [build_outbound_event()][nostrbridge.services.mapper.ContentMapper.build_outbound_event]
turns a [ContentRecord][nostrbridge.models.record.ContentRecord] into an
[UnsignedEvent][nostrbridge.models.event.UnsignedEvent]:

* notes become kind 1 with markup stripped and one ``t`` tag per hashtag;
* articles become kind 30023 (NIP-23) with a Markdown body and ``d``,
  ``title``, ``published_at``, ``url``, ``t`` and ``image`` tags.

Inbound, [map_inbound_event()][nostrbridge.services.mapper.ContentMapper.map_inbound_event]
extracts [ContentFields][nostrbridge.models.record.ContentFields] from a
signed event. Empty titles or bodies are a
[MappingError][nostrbridge.core.exceptions.MappingError], never an empty
record.
"""

from __future__ import annotations

import datetime
import re

from nostrbridge.core.exceptions import MappingError
from nostrbridge.models.constants import EventKind, RecordType
from nostrbridge.models.event import Event, UnsignedEvent
from nostrbridge.models.record import ContentFields, ContentRecord
from nostrbridge.utils.markup import html_to_markdown, markdown_to_html, strip_markup
from nostrbridge.utils.nip19 import ProfileResolver


TITLE_MAX_LENGTH = 50
DEFAULT_TITLE = "Note"

_HEADING_PREFIX_RE = re.compile(r"^\s*#{1,6}\s+")


def extract_title(text: str, placeholder: str = DEFAULT_TITLE) -> str:
    """Return a display title from the first non-empty line of *text*.

    Markup is stripped first. Lines longer than 50 characters are cut to 47
    characters plus ``...``; *placeholder* is used when nothing is left.
    """
    for line in strip_markup(text).splitlines():
        line = _HEADING_PREFIX_RE.sub("", line).strip()
        if line:
            if len(line) > TITLE_MAX_LENGTH:
                return line[: TITLE_MAX_LENGTH - 3].rstrip() + "..."
            return line
    return placeholder


def _parse_published_at(value: str | None, fallback: int) -> int:
    if not value:
        return fallback
    value = value.strip()
    if value.isdigit():
        return int(value)
    try:
        parsed = datetime.datetime.fromisoformat(value)
    except ValueError:
        return fallback
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.UTC)
    return max(int(parsed.timestamp()), 0)


class ContentMapper:
    """Maps records to unsigned events and inbound events to content fields.

    Args:
        resolver: Optional [ProfileResolver][nostrbridge.utils.nip19.ProfileResolver]
            used to turn ``nprofile`` references in articles into named links.
    """

    def __init__(self, resolver: ProfileResolver | None = None) -> None:
        self._resolver = resolver

    # -------------------------------------------------------------------------
    # Outbound
    # -------------------------------------------------------------------------

    def build_outbound_event(self, record: ContentRecord) -> UnsignedEvent:
        """Build the unsigned event for *record*.

        Raises:
            MappingError: If the converted body is empty.
        """
        if record.record_type is RecordType.NOTE:
            return self._build_note(record)
        return self._build_article(record)

    def _build_note(self, record: ContentRecord) -> UnsignedEvent:
        content = strip_markup(record.content)
        if not content:
            raise MappingError(f"note {record.record_id} has no content")
        return UnsignedEvent(
            kind=EventKind.NOTE,
            content=content,
            tags=tuple(("t", tag) for tag in record.tags),
            created_at=record.published_at,
        )

    def _build_article(self, record: ContentRecord) -> UnsignedEvent:
        content = html_to_markdown(record.content)
        if not content:
            raise MappingError(f"article {record.record_id} has no content")

        identifier = record.slug or record.remote_identifier or str(record.record_id or "")
        if not identifier:
            raise MappingError("article has neither a slug nor a record id")

        tags: list[tuple[str, ...]] = [
            ("d", identifier),
            ("title", record.title),
            ("published_at", str(record.published_at)),
        ]
        if record.url:
            tags.append(("url", record.url))
        tags.extend(("t", tag) for tag in record.tags)
        if record.image:
            tags.append(("image", record.image))
        if record.summary:
            tags.append(("summary", record.summary))

        return UnsignedEvent(
            kind=EventKind.ARTICLE,
            content=content,
            tags=tuple(tags),
            created_at=record.modified_at,
        )

    # -------------------------------------------------------------------------
    # Inbound
    # -------------------------------------------------------------------------

    async def map_inbound_event(self, event: Event) -> ContentFields:
        """Extract the fields of a local record from *event*.

        Raises:
            MappingError: For kinds other than 1 and 30023, or when the
                title or body would be empty.
        """
        if event.kind == EventKind.NOTE:
            return self._map_note(event)
        if event.kind == EventKind.ARTICLE:
            return await self._map_article(event)
        raise MappingError(f"unsupported event kind: {event.kind}")

    def _map_note(self, event: Event) -> ContentFields:
        content = strip_markup(event.content)
        if not content:
            raise MappingError(f"event {event.id} has no content")
        return self._fields(
            event,
            record_type=RecordType.NOTE,
            title=extract_title(content),
            content=content,
            published_at=event.created_at,
        )

    async def _map_article(self, event: Event) -> ContentFields:
        body = event.content.strip()
        if not body:
            raise MappingError(f"event {event.id} has no content")

        title = (event.first_tag("title") or "").strip() or extract_title(body)
        if self._resolver is not None:
            body = await self._resolver.resolve_references(body)
        content = markdown_to_html(body)

        return self._fields(
            event,
            record_type=RecordType.ARTICLE,
            title=title,
            content=content,
            published_at=_parse_published_at(event.first_tag("published_at"), event.created_at),
            identifier=event.identifier,
            image=event.first_tag("image"),
            summary=event.first_tag("summary"),
        )

    @staticmethod
    def _fields(event: Event, **fields: object) -> ContentFields:
        try:
            return ContentFields(tags=tuple(event.tag_values("t")), **fields)  # type: ignore[arg-type]
        except (TypeError, ValueError) as e:
            raise MappingError(f"event {event.id}: {e}") from e
