"""
Validated Nostr relay URL.

Parses, normalizes, and validates WebSocket relay URLs (``ws://`` or
``wss://``) using RFC 3986 rules. The parsed components are what the
[WebSocketTransport][nostrbridge.utils.transport.WebSocketTransport] needs
to open a connection: host, effective port, TLS flag, and the request
resource for the HTTP Upgrade line.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

from rfc3986 import uri_reference
from rfc3986.exceptions import UnpermittedComponentError, ValidationError
from rfc3986.validators import Validator


@dataclass(frozen=True, slots=True)
class Relay:
    """Immutable representation of a Nostr relay endpoint.

    Validates and normalizes a WebSocket URL on construction. Both schemes
    are accepted as given; plain ``ws://`` is common for relays on a local
    network or behind a TLS-terminating proxy.

    Attributes:
        url: Fully normalized URL including scheme.
        scheme: URL scheme (``ws`` or ``wss``).
        host: Hostname or IP address (brackets stripped for IPv6).
        port: Explicit port number, or ``None`` when using the default.
        path: URL path component, or ``None``.

    Raises:
        ValueError: If the URL is malformed, uses an unsupported scheme,
            carries a query string or fragment, or contains null bytes.

    Examples:
        ```python
        relay = Relay("wss://relay.damus.io/")
        relay.url             # 'wss://relay.damus.io'
        relay.effective_port  # 443
        relay.resource        # '/'
        ```
    """

    raw_url: str = field(repr=False)

    url: str = field(init=False)
    scheme: str = field(init=False)
    host: str = field(init=False)
    port: int | None = field(init=False)
    path: str | None = field(init=False)

    _PORT_WS: ClassVar[int] = 80
    _PORT_WSS: ClassVar[int] = 443

    def __post_init__(self) -> None:
        if not isinstance(self.raw_url, str):
            raise TypeError(f"relay url must be a str, got {type(self.raw_url).__name__}")
        if "\x00" in self.raw_url:
            raise ValueError("Relay URL contains null bytes")

        parsed = self._parse(self.raw_url)

        object.__setattr__(self, "url", parsed["url"])
        object.__setattr__(self, "scheme", parsed["scheme"])
        object.__setattr__(self, "host", parsed["host"])
        object.__setattr__(self, "port", parsed["port"])
        object.__setattr__(self, "path", parsed["path"])

    @staticmethod
    def _parse(raw: str) -> dict[str, Any]:
        """Parse and normalize a raw relay URL string.

        Collapses duplicate slashes, strips a trailing slash, lowercases
        scheme and host, and omits the port when it is the scheme default.
        """
        uri = uri_reference(raw.strip()).normalize()

        validator = (
            Validator()
            .require_presence_of("scheme", "host")
            .allow_schemes("ws", "wss")
            .check_validity_of("scheme", "host", "port", "path")
        )

        try:
            validator.validate(uri)
        except UnpermittedComponentError:
            raise ValueError("Invalid scheme: must be ws or wss") from None
        except ValidationError as e:
            raise ValueError(f"Invalid URL: {e}") from None

        if uri.query:
            raise ValueError(f"Relay URL must not contain a query string: ?{uri.query}")
        if uri.fragment:
            raise ValueError(f"Relay URL must not contain a fragment: #{uri.fragment}")

        scheme = uri.scheme
        host = uri.host.strip("[]")
        if not host:
            raise ValueError("Relay URL has an empty host")
        port = int(uri.port) if uri.port else None

        path = uri.path or ""
        while "//" in path:
            path = path.replace("//", "/")
        path = path.rstrip("/") or None

        default_port = Relay._PORT_WSS if scheme == "wss" else Relay._PORT_WS
        if port == default_port:
            port = None

        formatted_host = f"[{host}]" if ":" in host else host
        netloc = f"{formatted_host}:{port}" if port else formatted_host

        return {
            "url": f"{scheme}://{netloc}{path or ''}",
            "scheme": scheme,
            "host": host,
            "port": port,
            "path": path,
        }

    @property
    def is_secure(self) -> bool:
        """Whether the relay is reached over TLS."""
        return self.scheme == "wss"

    @property
    def effective_port(self) -> int:
        """The TCP port to connect to, applying the scheme default."""
        if self.port is not None:
            return self.port
        return self._PORT_WSS if self.is_secure else self._PORT_WS

    @property
    def resource(self) -> str:
        """The request target for the HTTP Upgrade line."""
        return self.path or "/"

    @property
    def host_header(self) -> str:
        """The ``Host`` header value, including a non-default port."""
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{host}:{self.port}" if self.port else host

    def __str__(self) -> str:
        return self.url
