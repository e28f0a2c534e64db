"""
Unit tests for utils.keys module.

Tests:
- is_valid_public_key()
- verify_signature() delegation to nostr_sdk
"""

from unittest.mock import MagicMock, patch

import pytest

from nostrbridge.models.event import Event
from nostrbridge.utils.keys import is_valid_public_key, verify_signature
from tests.conftest import PUBKEY, make_event


class TestIsValidPublicKey:
    """is_valid_public_key()."""

    def test_valid(self) -> None:
        """64 hex characters are accepted in either case."""
        assert is_valid_public_key(PUBKEY) is True
        assert is_valid_public_key(PUBKEY.upper()) is True

    @pytest.mark.parametrize(
        "value",
        ["", PUBKEY[:-1], PUBKEY + "0", "g" * 64, " " + PUBKEY[1:], None, 123],
    )
    def test_invalid(self, value: object) -> None:
        """Wrong length, non-hex characters and non-strings are rejected."""
        assert is_valid_public_key(value) is False


class TestVerifySignature:
    """verify_signature()."""

    def test_valid(self) -> None:
        """The SDK's verdict is returned."""
        with patch("nostrbridge.utils.keys.SdkEvent") as sdk_event:
            sdk_event.from_json.return_value.verify.return_value = True
            assert verify_signature(make_event()) is True

    def test_invalid(self) -> None:
        """A failed verification is False."""
        with patch("nostrbridge.utils.keys.SdkEvent") as sdk_event:
            sdk_event.from_json.return_value.verify.return_value = False
            assert verify_signature(make_event()) is False

    def test_parse_error(self) -> None:
        """Parse failures inside the SDK are False, not raised."""
        with patch("nostrbridge.utils.keys.SdkEvent") as sdk_event:
            sdk_event.from_json.side_effect = ValueError("bad json")
            assert verify_signature(make_event()) is False

    def test_accepts_event_instance(self) -> None:
        """Event instances are serialized to their wire form."""
        event = Event.from_dict(make_event(tags=[["t", "x"]]))
        parsed = MagicMock()
        parsed.verify.return_value = True
        with patch("nostrbridge.utils.keys.SdkEvent") as sdk_event:
            sdk_event.from_json.return_value = parsed
            assert verify_signature(event) is True
        payload = sdk_event.from_json.call_args.args[0]
        assert '"tags": [["t", "x"]]' in payload
