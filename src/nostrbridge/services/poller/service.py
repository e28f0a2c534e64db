"""Poller service for nostrbridge.

Runs the inbound half of the sync on a schedule: every cycle reads the
deployment identity, calls
[SyncManager.sync_from_nostr()][nostrbridge.services.sync.SyncManager.sync_from_nostr]
and then releases expired origin flags.

Cycles are single-flight: a cycle that starts while another is still
running is skipped rather than queued, so two syncs never race on the
checkpoint.

See Also:
    [PollerConfig][nostrbridge.services.poller.PollerConfig]:
        Configuration model for this service.
    [BaseService][nostrbridge.core.base_service.BaseService]: Abstract base
        class providing ``run()`` and ``run_forever()`` lifecycle.

Examples:
    ```python
    from nostrbridge.core import MemoryStore
    from nostrbridge.services import Poller

    store = MemoryStore()
    poller = Poller.from_yaml("config/nostrbridge.yaml", store=store)

    async with store:
        async with poller:
            await poller.run_forever()
    ```
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, ClassVar

from nostrbridge.core.base_service import BaseService
from nostrbridge.models.constants import ServiceName
from nostrbridge.services.identity import Identity
from nostrbridge.services.mapper import ContentMapper
from nostrbridge.services.sync import SyncManager, SyncResult
from nostrbridge.utils.nip19 import ProfileResolver
from nostrbridge.utils.protocol import RelayClient

from .configs import PollerConfig


if TYPE_CHECKING:
    from nostrbridge.core.logger import Logger
    from nostrbridge.core.store import ContentStore


class Poller(BaseService[PollerConfig]):
    """Scheduled inbound sync.

    Args:
        store: Content store shared with the host platform.
        config: Service configuration.
        logger: Structured logger.
        client: Relay client; built from ``config.client`` when omitted.
    """

    SERVICE_NAME: ClassVar[ServiceName] = ServiceName.POLLER
    CONFIG_CLASS: ClassVar[type[PollerConfig]] = PollerConfig

    def __init__(
        self,
        store: ContentStore,
        config: PollerConfig | None = None,
        *,
        logger: Logger | None = None,
        client: RelayClient | None = None,
    ) -> None:
        super().__init__(store, config, logger=logger)
        self._client = client or RelayClient(self._config.client)
        self._identity = Identity(store, self._config.identity)
        resolver = (
            ProfileResolver(self._client, self._config.identity.default_relays)
            if self._config.resolve_profiles
            else None
        )
        self._sync = SyncManager(
            store,
            self._client,
            ContentMapper(resolver),
            self._config.sync,
            logger=self._logger.bind(component="sync"),
        )
        self._lock = asyncio.Lock()
        self._full_resync_pending = self._config.full_resync_on_start
        self.last_result: SyncResult | None = None

    @property
    def client(self) -> RelayClient:
        return self._client

    @property
    def identity(self) -> Identity:
        return self._identity

    @property
    def sync(self) -> SyncManager:
        return self._sync

    async def run(self) -> None:
        """Execute one inbound sync, unless one is already running."""
        if self._lock.locked():
            self._logger.warning("cycle_skipped", reason="sync_in_progress")
            self.inc_counter("cycles_skipped")
            return
        async with self._lock:
            await self._poll()

    async def _poll(self) -> None:
        public_key = await self._identity.get_public_key()
        relays = await self._identity.get_relays()
        full_resync = self._full_resync_pending

        self._logger.info(
            "cycle_started", relays=len(relays), full_resync=full_resync
        )
        result = await self._sync.sync_from_nostr(public_key, relays, full_resync=full_resync)
        self._full_resync_pending = False
        released = await self._sync.release_origin_flags()
        self.last_result = result

        self.set_gauge("events_total", result.total)
        self.set_gauge("relays", len(relays))
        if result.checkpoint is not None:
            self.set_gauge("checkpoint", result.checkpoint)
        self.inc_counter("events_processed", result.processed)
        self.inc_counter("events_skipped", result.skipped)
        self.inc_counter("events_failed", result.failed)
        self.inc_counter("origin_flags_released", released)

        self._logger.info(
            "poll_completed",
            processed=result.processed,
            skipped=result.skipped,
            failed=result.failed,
            total=result.total,
            released=released,
        )

    def request_full_resync(self) -> None:
        """Ignore the checkpoint on the next cycle."""
        self._full_resync_pending = True
