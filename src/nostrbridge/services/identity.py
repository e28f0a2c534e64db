"""
Deployment-wide Nostr identity and relay list.

Exactly one public key represents the whole deployment. It is stored in
[BridgeState][nostrbridge.models.state.BridgeState] next to the configured
relay list; the private key never reaches the bridge.

The relay list resolves in order: the stored list, then
``IdentityConfig.default_relays``, then
[DEFAULT_RELAYS][nostrbridge.models.constants.DEFAULT_RELAYS].
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, field_validator

from nostrbridge.core.exceptions import ValidationError
from nostrbridge.core.logger import Logger
from nostrbridge.models.constants import DEFAULT_RELAYS
from nostrbridge.models.event import UnsignedEvent
from nostrbridge.models.relay import Relay
from nostrbridge.models.state import StateKey
from nostrbridge.utils.keys import is_valid_public_key
from nostrbridge.utils.nip19 import encode_npub


if TYPE_CHECKING:
    from nostrbridge.core.store import ContentStore
    from nostrbridge.utils.protocol import RelayClient


class IdentityConfig(BaseModel):
    """Fallback relays used until a relay list is saved."""

    default_relays: list[str] = Field(
        default_factory=lambda: list(DEFAULT_RELAYS),
        description="Relays used when none are stored",
    )

    @field_validator("default_relays")
    @classmethod
    def _validate_relays(cls, value: list[str]) -> list[str]:
        return [Relay(url).url for url in value]


@dataclass(frozen=True, slots=True)
class ConnectionStatus:
    """Snapshot of the identity and relay configuration.

    ``reachable`` maps relay URL to the result of a connection probe and is
    empty unless a probe was requested.
    """

    connected: bool
    public_key: str | None
    npub: str | None
    relays: tuple[str, ...]
    reachable: Mapping[str, bool] = field(default_factory=dict)


class Identity:
    """Reads and writes the deployment's public key and relay list."""

    def __init__(
        self,
        store: ContentStore,
        config: IdentityConfig | None = None,
        *,
        logger: Logger | None = None,
    ) -> None:
        self._store = store
        self._config = config or IdentityConfig()
        self._logger = logger or Logger("identity")

    # -------------------------------------------------------------------------
    # Public key
    # -------------------------------------------------------------------------

    async def get_public_key(self) -> str | None:
        state = await self._store.get_state(StateKey.PUBLIC_KEY)
        if state is None or not isinstance(state.value, str) or not state.value:
            return None
        return state.value

    async def save_public_key(self, public_key: str) -> str:
        """Store *public_key* (64 hex characters) as the deployment identity.

        Raises:
            ValidationError: If the key is not 64 hex characters.
        """
        candidate = public_key.strip() if isinstance(public_key, str) else public_key
        if not is_valid_public_key(candidate):
            raise ValidationError(f"invalid public key: {public_key!r}")
        normalized = candidate.lower()
        await self._store.set_state(StateKey.PUBLIC_KEY, normalized)
        self._logger.info("public_key_saved", public_key=normalized)
        return normalized

    async def disconnect(self) -> bool:
        """Forget the stored public key. Returns True if one was stored."""
        removed = await self._store.delete_state(StateKey.PUBLIC_KEY)
        if removed:
            self._logger.info("public_key_removed")
        return removed

    async def is_connected(self) -> bool:
        return await self.get_public_key() is not None

    # -------------------------------------------------------------------------
    # Relays
    # -------------------------------------------------------------------------

    async def get_relays(self) -> list[str]:
        state = await self._store.get_state(StateKey.RELAYS)
        if state is not None:
            stored = [url for url in state.plain_value or [] if isinstance(url, str)]
            if stored:
                return stored
        if self._config.default_relays:
            return list(self._config.default_relays)
        return list(DEFAULT_RELAYS)

    async def save_relays(self, urls: Iterable[str]) -> list[str]:
        """Validate, normalize and store *urls*.

        An empty list removes the stored relays so the defaults apply again.

        Raises:
            ValidationError: If any entry is not a valid relay URL.
        """
        relays: list[str] = []
        for url in urls:
            try:
                relays.append(Relay(url).url)
            except (TypeError, ValueError) as e:
                raise ValidationError(f"invalid relay url {url!r}: {e}") from e
        relays = list(dict.fromkeys(relays))

        if not relays:
            await self._store.delete_state(StateKey.RELAYS)
            self._logger.info("relays_reset")
            return await self.get_relays()

        await self._store.set_state(StateKey.RELAYS, relays)
        self._logger.info("relays_saved", count=len(relays))
        return relays

    # -------------------------------------------------------------------------
    # Status and signing
    # -------------------------------------------------------------------------

    async def connection_status(
        self, client: RelayClient | None = None, *, probe: bool = False
    ) -> ConnectionStatus:
        """Return the identity and relays, optionally probing each relay."""
        public_key = await self.get_public_key()
        relays = tuple(await self.get_relays())

        reachable: dict[str, bool] = {}
        if probe and client is not None:
            async with asyncio.TaskGroup() as tg:
                tasks = {url: tg.create_task(client.test_connection(url)) for url in relays}
            reachable = {url: task.result() for url, task in tasks.items()}

        return ConnectionStatus(
            connected=public_key is not None,
            public_key=public_key,
            npub=encode_npub(public_key) if public_key else None,
            relays=relays,
            reachable=reachable,
        )

    async def prepare_for_signing(self, unsigned: UnsignedEvent) -> UnsignedEvent:
        """Attach the deployment public key to an event bound for the signer."""
        public_key = await self.get_public_key()
        if public_key is None:
            return unsigned
        return unsigned.with_pubkey(public_key)
