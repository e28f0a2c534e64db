r"""nostrbridge -- Two-way content bridge between a publishing platform and Nostr.

Local notes and articles are published to Nostr relays as kind 1 and kind
30023 events, and content authored elsewhere under the same identity is
pulled back into the local store. Conflicts resolve by last writer wins.

Imports flow strictly downward:

```text
              services         Sync engine, mapping, identity, poller
             /        \
          core        utils    Store, pool, logging, metrics / transport, markup
             \        /
              models           Pure dataclasses and enums (zero I/O)
```

Attributes:
    models: Events, filters, relays, content records, bridge state.
    core: Content stores, connection pool, base service, exceptions,
        logging, metrics.
    utils: WebSocket transport, relay client, markup conversion, NIP-19.
    services: Sync manager, content mapper, identity, poller.

Note:
    For lightweight usage, import directly from subpackages::

        from nostrbridge.models import Event
        from nostrbridge.core import MemoryStore

    Top-level imports (``from nostrbridge import Event``) use lazy loading
    and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("nostrbridge")

__all__ = [
    "BaseService",
    "ContentMapper",
    "ContentRecord",
    "ContentStore",
    "Event",
    "Filter",
    "Identity",
    "Logger",
    "MemoryStore",
    "Poller",
    "PollerConfig",
    "PostgresStore",
    "RecordType",
    "Relay",
    "RelayClient",
    "SyncManager",
    "SyncResult",
    "SyncStatus",
    "UnsignedEvent",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "BaseService": ("nostrbridge.core", "BaseService"),
    "ContentStore": ("nostrbridge.core", "ContentStore"),
    "Logger": ("nostrbridge.core", "Logger"),
    "MemoryStore": ("nostrbridge.core", "MemoryStore"),
    "PostgresStore": ("nostrbridge.core", "PostgresStore"),
    "ContentRecord": ("nostrbridge.models", "ContentRecord"),
    "Event": ("nostrbridge.models", "Event"),
    "Filter": ("nostrbridge.models", "Filter"),
    "RecordType": ("nostrbridge.models", "RecordType"),
    "Relay": ("nostrbridge.models", "Relay"),
    "SyncStatus": ("nostrbridge.models", "SyncStatus"),
    "UnsignedEvent": ("nostrbridge.models", "UnsignedEvent"),
    "RelayClient": ("nostrbridge.utils", "RelayClient"),
    "ContentMapper": ("nostrbridge.services", "ContentMapper"),
    "Identity": ("nostrbridge.services", "Identity"),
    "Poller": ("nostrbridge.services", "Poller"),
    "PollerConfig": ("nostrbridge.services", "PollerConfig"),
    "SyncManager": ("nostrbridge.services", "SyncManager"),
    "SyncResult": ("nostrbridge.services", "SyncResult"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'nostrbridge' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
