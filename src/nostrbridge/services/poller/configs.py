"""Poller service configuration models.

See Also:
    [Poller][nostrbridge.services.poller.Poller]: The service class that
        consumes these configurations.
    [BaseServiceConfig][nostrbridge.core.base_service.BaseServiceConfig]:
        Base class providing ``interval``, ``max_consecutive_failures``,
        and ``metrics`` fields.
"""

from __future__ import annotations

from pydantic import Field

from nostrbridge.core.base_service import BaseServiceConfig
from nostrbridge.services.identity import IdentityConfig
from nostrbridge.services.sync.configs import SyncConfig
from nostrbridge.utils.protocol import ClientConfig


class PollerConfig(BaseServiceConfig):
    """Poller service configuration.

    Example YAML::

        interval: 300
        client:
          query_timeout: 30
          verify_tls: true
        sync:
          origin_grace: 60
        identity:
          default_relays: ["wss://nos.lol"]
    """

    client: ClientConfig = Field(default_factory=ClientConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    identity: IdentityConfig = Field(default_factory=IdentityConfig)
    full_resync_on_start: bool = Field(
        default=False, description="Ignore the checkpoint on the first cycle"
    )
    resolve_profiles: bool = Field(
        default=True, description="Replace nprofile references in articles with profile names"
    )
