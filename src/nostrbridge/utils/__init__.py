"""Relay networking, text conversion, and Nostr encoding utilities.

The utils layer sits between [nostrbridge.core][] and
[nostrbridge.services][]: it uses core exceptions, logging and metrics, and
the models, but knows nothing about content stores or services.

Attributes:
    transport: Minimal RFC 6455 WebSocket client over asyncio streams.
    protocol: Nostr relay client (``EVENT``/``REQ``/``CLOSE``) with
        concurrent multi-relay fan-out.
    markup: HTML/Markdown/plain-text conversions for event content.
    nip19: ``nprofile``/``npub`` bech32 encoding and profile-name resolution.
    keys: Public key validation and optional signature verification.

Examples:
    ```python
    from nostrbridge.utils.protocol import ClientConfig, RelayClient
    from nostrbridge.utils.markup import markdown_to_html
    ```
"""

from .keys import is_valid_public_key, verify_signature
from .markup import html_to_markdown, markdown_to_html, strip_markup
from .nip19 import (
    ProfilePointer,
    ProfileResolver,
    decode_nprofile,
    encode_nprofile,
    encode_npub,
    render_profile_link,
)
from .protocol import ClientConfig, PublishResult, RelayClient, RelayTransport
from .transport import WebSocketTransport


__all__ = [
    "ClientConfig",
    "ProfilePointer",
    "ProfileResolver",
    "PublishResult",
    "RelayClient",
    "RelayTransport",
    "WebSocketTransport",
    "decode_nprofile",
    "encode_nprofile",
    "encode_npub",
    "html_to_markdown",
    "is_valid_public_key",
    "markdown_to_html",
    "render_profile_link",
    "strip_markup",
    "verify_signature",
]
