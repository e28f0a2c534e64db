"""
Unit tests for models.state module.

Tests:
- StateKey values
- BridgeState validation and JSON encoding
- to_db_params() / from_db_params()
"""

import pytest

from nostrbridge.models.state import BridgeState, BridgeStateDbParams, StateKey


class TestBridgeState:
    """BridgeState construction."""

    def test_key_coerced(self) -> None:
        """String keys are coerced to StateKey."""
        state = BridgeState("last_sync", 10, updated_at=11)  # type: ignore[arg-type]
        assert state.key is StateKey.LAST_SYNC

    def test_unknown_key(self) -> None:
        """Unknown keys are rejected."""
        with pytest.raises(ValueError):
            BridgeState("bogus", 1, updated_at=0)  # type: ignore[arg-type]

    def test_list_value_frozen(self) -> None:
        """List values are stored as tuples and exposed as lists."""
        state = BridgeState(StateKey.RELAYS, ["wss://nos.lol"], updated_at=0)
        assert state.value == ("wss://nos.lol",)
        assert state.plain_value == ["wss://nos.lol"]

    def test_not_serializable(self) -> None:
        """Values must be JSON serializable."""
        with pytest.raises(ValueError, match="JSON"):
            BridgeState(StateKey.PUBLIC_KEY, object(), updated_at=0)

    def test_null_byte(self) -> None:
        """Null bytes are rejected."""
        with pytest.raises(ValueError, match="null"):
            BridgeState(StateKey.PUBLIC_KEY, "a\x00", updated_at=0)

    def test_negative_updated_at(self) -> None:
        """updated_at must be non-negative."""
        with pytest.raises(ValueError):
            BridgeState(StateKey.LAST_SYNC, 1, updated_at=-1)


class TestDbParams:
    """Database parameter conversion."""

    def test_to_db_params(self) -> None:
        """The value is pre-encoded as JSON."""
        state = BridgeState(StateKey.LAST_SYNC, 1700000000, updated_at=1700000001)
        assert state.to_db_params() == BridgeStateDbParams(
            key="last_sync", value="1700000000", updated_at=1700000001
        )

    def test_from_db_params_decodes_json(self) -> None:
        """A JSON string value is decoded."""
        params = BridgeStateDbParams(key="relays", value='["wss://nos.lol"]', updated_at=5)
        state = BridgeState.from_db_params(params)
        assert state.key is StateKey.RELAYS
        assert state.plain_value == ["wss://nos.lol"]

    def test_from_db_params_decoded_value(self) -> None:
        """An already-decoded value is used as is."""
        params = BridgeStateDbParams(key="sync_enabled_default", value=False, updated_at=5)  # type: ignore[arg-type]
        assert BridgeState.from_db_params(params).value is False
