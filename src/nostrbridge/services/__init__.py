"""Sync engine, content mapping, identity, and the scheduled poller.

Services are the top layer, depending on [nostrbridge.core][],
[nostrbridge.utils][] and [nostrbridge.models][].

```text
host save -> SyncManager.on_local_save -> signer -> SyncManager.publish
Poller.run -> SyncManager.sync_from_nostr -> ContentMapper -> ContentStore
```

Attributes:
    SyncManager: Outbound publishing and inbound reconciliation with
        last-writer-wins conflict resolution.
    ContentMapper: Record to event and event to content conversion.
    Identity: The deployment's public key and relay list.
    Poller: [BaseService][nostrbridge.core.base_service.BaseService] running
        the inbound sync on an interval.

Examples:
    ```python
    from nostrbridge.core import MemoryStore
    from nostrbridge.services import ContentMapper, SyncManager
    from nostrbridge.utils import RelayClient

    manager = SyncManager(MemoryStore(), RelayClient(), ContentMapper())
    result = await manager.sync_from_nostr(pubkey, ["wss://nos.lol"])
    ```
"""

from .identity import ConnectionStatus, Identity, IdentityConfig
from .mapper import ContentMapper, extract_title
from .poller import Poller, PollerConfig
from .sync import (
    EventOutcome,
    PublishOutcome,
    SyncConfig,
    SyncManager,
    SyncResult,
    SyncStats,
)


__all__ = [
    "ConnectionStatus",
    "ContentMapper",
    "EventOutcome",
    "Identity",
    "IdentityConfig",
    "Poller",
    "PollerConfig",
    "PublishOutcome",
    "SyncConfig",
    "SyncManager",
    "SyncResult",
    "SyncStats",
    "extract_title",
]
