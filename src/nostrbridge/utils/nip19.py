"""NIP-19 bech32 entities and profile-name resolution.

Long-form articles reference people as ``nostr:nprofile1...``. Before an
inbound article is rendered, [ProfileResolver][nostrbridge.utils.nip19.ProfileResolver]
replaces each reference with a Markdown link to ``njump.me`` labelled with the
profile's name, looked up from kind 0 metadata on the configured relays.

Note:
    ``bech32.bech32_decode`` rejects strings longer than 90 characters, which
    an ``nprofile`` carrying relay hints exceeds, so decoding verifies the
    checksum with the library's lower-level helpers instead.
"""

from __future__ import annotations

import json
import re
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import bech32

from nostrbridge.core.logger import Logger
from nostrbridge.models.constants import EventKind
from nostrbridge.models.filter import Filter


if TYPE_CHECKING:
    from .protocol import RelayClient


NPROFILE_RE = re.compile(
    r"\b(?:nostr:)?(nprofile1[qpzry9x8gf2tvdw0s3jn54khce6mua7l]{58,})\b", re.IGNORECASE
)
PROFILE_URL = "https://njump.me/{}"

FOUND_TTL = 24 * 60 * 60
MISSING_TTL = 60 * 60


@dataclass(frozen=True, slots=True)
class ProfilePointer:
    """Decoded ``nprofile``: a public key plus optional relay hints."""

    pubkey: str
    relays: tuple[str, ...] = ()


def _decode(value: str) -> tuple[str, bytes]:
    value = value.strip()
    if value.lower() != value and value.upper() != value:
        raise ValueError("mixed-case bech32 string")
    value = value.lower()
    pos = value.rfind("1")
    if pos < 1 or pos + 7 > len(value):
        raise ValueError("malformed bech32 string")
    hrp = value[:pos]
    try:
        data = [bech32.CHARSET.index(char) for char in value[pos + 1 :]]
    except ValueError as e:
        raise ValueError("invalid bech32 character") from e
    if not bech32.bech32_verify_checksum(hrp, data):
        raise ValueError("bad bech32 checksum")
    decoded = bech32.convertbits(data[:-6], 5, 8, pad=False)
    if decoded is None:
        raise ValueError("invalid bech32 padding")
    return hrp, bytes(decoded)


def _encode(hrp: str, payload: bytes) -> str:
    return bech32.bech32_encode(hrp, bech32.convertbits(payload, 8, 5))


def decode_nprofile(value: str) -> ProfilePointer:
    """Decode ``nprofile1...`` (optionally ``nostr:``-prefixed).

    TLV type 0 is the 32-byte public key, type 1 a relay URL; other types
    are ignored.

    Raises:
        ValueError: If the string is not a valid ``nprofile``.
    """
    hrp, data = _decode(value.strip().removeprefix("nostr:"))
    if hrp != "nprofile":
        raise ValueError(f"expected nprofile, got {hrp}")

    pubkey: str | None = None
    relays: list[str] = []
    while data:
        if len(data) < 2:
            raise ValueError("truncated TLV entry")
        tlv_type, length = data[0], data[1]
        field = data[2 : 2 + length]
        if len(field) != length:
            raise ValueError("truncated TLV value")
        if tlv_type == 0:
            if length != 32:
                raise ValueError(f"public key must be 32 bytes, got {length}")
            if pubkey is None:
                pubkey = field.hex()
        elif tlv_type == 1:
            relays.append(field.decode("utf-8"))
        data = data[2 + length :]

    if pubkey is None:
        raise ValueError("nprofile carries no public key")
    return ProfilePointer(pubkey=pubkey, relays=tuple(relays))


def encode_nprofile(pubkey: str, relays: Iterable[str] = ()) -> str:
    """Encode a public key and relay hints as ``nprofile1...``."""
    key = bytes.fromhex(pubkey)
    if len(key) != 32:
        raise ValueError("public key must be 32 bytes")
    payload = bytes([0, 32]) + key
    for relay in relays:
        raw = relay.encode("utf-8")
        payload += bytes([1, len(raw)]) + raw
    return _encode("nprofile", payload)


def encode_npub(pubkey: str) -> str:
    key = bytes.fromhex(pubkey)
    if len(key) != 32:
        raise ValueError("public key must be 32 bytes")
    return _encode("npub", key)


def render_profile_link(nprofile: str, name: str | None) -> str:
    """Return the Markdown link that replaces an ``nprofile`` reference."""
    if name:
        label = "@" + re.sub(r"[\[\]\n]", "", name)
    else:
        label = nprofile[:20] + "..."
    return f"[{label}]({PROFILE_URL.format(nprofile)})"


def _profile_name(events: Sequence[dict[str, Any]]) -> str | None:
    candidates = [
        event
        for event in events
        if isinstance(event, dict) and isinstance(event.get("content"), str)
    ]
    if not candidates:
        return None
    latest = max(candidates, key=lambda event: event.get("created_at") or 0)
    try:
        metadata = json.loads(latest["content"])
    except ValueError:
        return None
    if not isinstance(metadata, dict):
        return None
    for key in ("name", "display_name"):
        value = metadata.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


class ProfileResolver:
    """Resolves ``nprofile`` references to profile names, with caching.

    Names found are cached for 24 hours, misses for 1 hour.

    Args:
        client: Relay client used for kind 0 queries.
        relays: Relays queried in addition to the pointer's own hints.
        clock: Returns the current time in seconds.
    """

    def __init__(
        self,
        client: RelayClient,
        relays: Sequence[str],
        *,
        clock: Callable[[], float] = time.time,
        logger: Logger | None = None,
    ) -> None:
        self._client = client
        self._relays = tuple(relays)
        self._clock = clock
        self._logger = logger or Logger("profile_resolver")
        self._cache: dict[str, tuple[str | None, float]] = {}

    async def username(self, nprofile: str) -> str | None:
        """Return the profile name behind *nprofile*, or None if unknown."""
        now = self._clock()
        cached = self._cache.get(nprofile)
        if cached is not None and cached[1] > now:
            return cached[0]

        try:
            pointer = decode_nprofile(nprofile)
        except ValueError as e:
            self._logger.debug("nprofile_invalid", nprofile=nprofile, error=str(e))
            self._cache[nprofile] = (None, now + MISSING_TTL)
            return None

        relays = list(dict.fromkeys((*pointer.relays, *self._relays)))
        events = await self._client.query_all(
            relays,
            Filter(kinds=(EventKind.PROFILE,), authors=(pointer.pubkey,), limit=1),
        )
        name = _profile_name(events)
        self._cache[nprofile] = (name, now + (FOUND_TTL if name else MISSING_TTL))
        self._logger.debug("profile_resolved", pubkey=pointer.pubkey, found=name is not None)
        return name

    async def resolve_references(self, text: str) -> str:
        """Replace every ``nprofile`` reference in *text* with a profile link."""
        references = list(dict.fromkeys(m.group(1) for m in NPROFILE_RE.finditer(text)))
        if not references:
            return text
        names = {nprofile: await self.username(nprofile) for nprofile in references}
        return NPROFILE_RE.sub(
            lambda m: render_profile_link(m.group(1), names.get(m.group(1))), text
        )
