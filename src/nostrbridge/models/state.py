"""Bridge state types for persistence.

Pure data containers for the small set of process-wide values the bridge
keeps next to its content records: the configured identity, the relay list,
the inbound sync checkpoint, and the default sync preference.

All validation happens in ``__post_init__`` so invalid instances never
escape the constructor. The database parameter container uses ``NamedTuple``
and is cached in ``__post_init__``.

See Also:
    [nostrbridge.core.store][]: Stores that persist
        [BridgeState][nostrbridge.models.state.BridgeState] rows.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, NamedTuple

from ._validation import validate_timestamp


class StateKey(StrEnum):
    """Keys of the ``bridge_state`` table.

    Attributes:
        PUBLIC_KEY: Hex public key of the single deployment identity.
        RELAYS: List of relay URLs configured for the deployment.
        LAST_SYNC: Inbound sync checkpoint (Unix timestamp).
        SYNC_ENABLED_DEFAULT: Whether new local records sync by default.
    """

    PUBLIC_KEY = "public_key"
    RELAYS = "relays"
    LAST_SYNC = "last_sync"
    SYNC_ENABLED_DEFAULT = "sync_enabled_default"


class BridgeStateDbParams(NamedTuple):
    """Positional parameters for the ``bridge_state`` upsert.

    ``value`` is pre-serialized JSON so asyncpg's JSONB codec passes it
    through unchanged.
    """

    key: str
    value: str
    updated_at: int


@dataclass(frozen=True, slots=True)
class BridgeState:
    """A single row in the ``bridge_state`` table.

    Attributes:
        key: One of [StateKey][nostrbridge.models.state.StateKey].
        value: JSON-compatible value (string, number, bool or list).
        updated_at: Unix timestamp of the last write.

    Examples:
        ```python
        state = BridgeState(StateKey.LAST_SYNC, 1700000000, updated_at=1700000001)
        state.to_db_params()
        # BridgeStateDbParams(key='last_sync', value='1700000000', updated_at=1700000001)
        ```
    """

    key: StateKey
    value: Any
    updated_at: int
    _db_params: BridgeStateDbParams | None = field(
        default=None, init=False, repr=False, compare=False, hash=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "key", StateKey(self.key))
        validate_timestamp(self.updated_at, "updated_at")
        if isinstance(self.value, list):
            object.__setattr__(self, "value", tuple(self.value))
        try:
            encoded = json.dumps(self._plain(self.value))
        except (TypeError, ValueError) as e:
            raise ValueError(f"state value for {self.key} is not JSON serializable: {e}") from e
        if "\\u0000" in encoded:
            raise ValueError(f"state value for {self.key} contains null bytes")
        object.__setattr__(
            self,
            "_db_params",
            BridgeStateDbParams(key=self.key.value, value=encoded, updated_at=self.updated_at),
        )

    @staticmethod
    def _plain(value: Any) -> Any:
        if isinstance(value, tuple):
            return list(value)
        return value

    @property
    def plain_value(self) -> Any:
        """The value with tuples turned back into lists."""
        return self._plain(self.value)

    def to_db_params(self) -> BridgeStateDbParams:
        """Return cached database parameters."""
        assert self._db_params is not None  # noqa: S101  # Always set in __post_init__
        return self._db_params

    @classmethod
    def from_db_params(cls, params: BridgeStateDbParams) -> BridgeState:
        """Reconstruct a ``BridgeState`` from database parameters."""
        value = params.value
        if isinstance(value, str):
            value = json.loads(value)
        return cls(key=StateKey(params.key), value=value, updated_at=params.updated_at)
