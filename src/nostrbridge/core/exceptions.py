"""nostrbridge exception hierarchy.

Provides typed exceptions for every error category so callers can tell
per-relay and per-event failures (degrade to skip/absent) from
configuration failures (propagate to the caller), while letting
``CancelledError`` pass through untouched.

Exception hierarchy:

```text
NostrBridgeError (base -- never raised directly)
├── ConfigurationError      -- no identity, bad YAML, invalid settings
├── DatabaseError           -- pool/store failures
│   ├── ConnectionPoolError -- transient: pool exhausted, network blip
│   └── QueryError          -- permanent: bad SQL, constraint violation
├── TransportError          -- WebSocket failures, recoverable per relay
│   ├── ConnectError        -- TCP/TLS connect or Upgrade handshake failed
│   ├── SendError           -- frame could not be written
│   └── ReceiveError        -- stream broke or stalled mid-frame
├── ProtocolError           -- malformed frame or message shape
├── ValidationError         -- event missing fields, wrong kind, reply
└── MappingError            -- empty title/content after conversion
```

See Also:
    [WebSocketTransport][nostrbridge.utils.transport.WebSocketTransport]:
        Raises the [TransportError][nostrbridge.core.exceptions.TransportError]
        family.
    [SyncManager][nostrbridge.services.sync.SyncManager]: Catches
        [ValidationError][nostrbridge.core.exceptions.ValidationError] and
        [MappingError][nostrbridge.core.exceptions.MappingError] per event and
        raises [ConfigurationError][nostrbridge.core.exceptions.ConfigurationError]
        when no identity is configured.
"""

from __future__ import annotations


class NostrBridgeError(Exception):
    """Base exception for all nostrbridge errors.

    Never raised directly -- always use a specific subclass.
    """


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(NostrBridgeError):
    """Invalid or missing configuration (identity, YAML, env vars, CLI flags).

    Fatal for the operation that hit it and never retried automatically.
    """


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


class DatabaseError(NostrBridgeError):
    """Base for all database-related errors."""


class ConnectionPoolError(DatabaseError):
    """Transient database error: pool exhausted, connection refused, network blip.

    Callers may retry after a backoff.
    """


class QueryError(DatabaseError):
    """Permanent database error: bad SQL, constraint violation, data integrity.

    Callers should NOT retry -- the query itself is wrong.
    """


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


class TransportError(NostrBridgeError):
    """Base for WebSocket transport failures.

    Recoverable per relay: multi-relay operations record the failure for
    the affected relay and continue with the others.
    """


class ConnectError(TransportError):
    """TCP/TLS connection or HTTP Upgrade handshake failed."""


class SendError(TransportError):
    """A frame could not be written to the socket."""


class ReceiveError(TransportError):
    """The stream closed or stalled in the middle of a frame."""


# ---------------------------------------------------------------------------
# Protocol and content
# ---------------------------------------------------------------------------


class ProtocolError(NostrBridgeError):
    """Malformed WebSocket frame or unexpected Nostr message shape.

    Treated as "no usable message": polling loops skip it and keep reading
    until their deadline.
    """


class ValidationError(NostrBridgeError):
    """An event failed validation (missing fields, wrong kind, reply tag).

    Causes the single event to be skipped, never the batch.
    """


class MappingError(NostrBridgeError):
    """Content conversion produced an empty title or body.

    The event is rejected, logged, and skipped.
    """
