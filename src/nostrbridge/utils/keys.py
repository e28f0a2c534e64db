"""Public key validation and optional signature verification.

The bridge never holds a private key: events are signed by an external
signer and only forwarded here. [verify_signature()][nostrbridge.utils.keys.verify_signature]
is an opt-in check on inbound events (``SyncConfig.verify_signatures``)
delegated to ``nostr_sdk``.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any

from nostr_sdk import Event as SdkEvent
from nostr_sdk import NostrSdkError

from nostrbridge.models.event import Event


_PUBLIC_KEY_RE = re.compile(r"[0-9a-fA-F]{64}")


def is_valid_public_key(value: Any) -> bool:
    """Return True if *value* is a 64-character hex public key."""
    return isinstance(value, str) and _PUBLIC_KEY_RE.fullmatch(value) is not None


def verify_signature(event: Event | Mapping[str, Any]) -> bool:
    """Return True if *event*'s id and Schnorr signature are valid.

    Any parse or verification failure inside ``nostr_sdk`` yields False.
    """
    payload = event.to_dict() if isinstance(event, Event) else dict(event)
    try:
        return bool(SdkEvent.from_json(json.dumps(payload)).verify())
    except (NostrSdkError, ValueError, TypeError):
        return False
