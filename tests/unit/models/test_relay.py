"""
Unit tests for models.relay module.

Tests:
- URL normalization (scheme, host, port, path)
- Rejection of unsupported schemes, queries and fragments
- Connection helpers (effective_port, resource, host_header)
"""

import pytest

from nostrbridge.models.relay import Relay


class TestRelayNormalization:
    """Relay URL normalization."""

    def test_trailing_slash_stripped(self) -> None:
        """A bare trailing slash is removed."""
        assert Relay("wss://relay.damus.io/").url == "wss://relay.damus.io"

    def test_scheme_and_host_lowercased(self) -> None:
        """Scheme and host are lowercased."""
        relay = Relay("WSS://Relay.Damus.IO")
        assert relay.url == "wss://relay.damus.io"
        assert relay.host == "relay.damus.io"

    def test_default_port_dropped(self) -> None:
        """The scheme default port is omitted."""
        assert Relay("wss://nos.lol:443").url == "wss://nos.lol"
        assert Relay("ws://nos.lol:80").port is None

    def test_custom_port_kept(self) -> None:
        """A non-default port is kept."""
        relay = Relay("ws://localhost:7777")
        assert relay.url == "ws://localhost:7777"
        assert relay.port == 7777

    def test_path_kept(self) -> None:
        """Paths survive with duplicate slashes collapsed."""
        relay = Relay("wss://example.com//nostr//")
        assert relay.path == "/nostr"
        assert relay.url == "wss://example.com/nostr"

    def test_whitespace_stripped(self) -> None:
        """Surrounding whitespace is ignored."""
        assert Relay("  wss://nos.lol  ").url == "wss://nos.lol"

    def test_str(self) -> None:
        """str() is the normalized URL."""
        assert str(Relay("wss://nos.lol/")) == "wss://nos.lol"

    def test_equality_by_normalized_fields(self) -> None:
        """Relays built from equivalent URLs compare equal on their URL."""
        assert Relay("wss://nos.lol/").url == Relay("WSS://nos.lol").url


class TestRelayRejection:
    """Relay URL rejection."""

    @pytest.mark.parametrize("url", ["https://nos.lol", "nos.lol", "ftp://nos.lol"])
    def test_bad_scheme(self, url: str) -> None:
        """Only ws and wss are accepted."""
        with pytest.raises(ValueError):
            Relay(url)

    def test_query_rejected(self) -> None:
        """Query strings are rejected."""
        with pytest.raises(ValueError, match="query"):
            Relay("wss://nos.lol/?x=1")

    def test_fragment_rejected(self) -> None:
        """Fragments are rejected."""
        with pytest.raises(ValueError, match="fragment"):
            Relay("wss://nos.lol/#top")

    def test_null_byte(self) -> None:
        """Null bytes are rejected."""
        with pytest.raises(ValueError):
            Relay("wss://nos\x00.lol")

    def test_not_a_string(self) -> None:
        """Non-string input raises TypeError."""
        with pytest.raises(TypeError):
            Relay(42)  # type: ignore[arg-type]


class TestRelayConnectionHelpers:
    """Relay connection helpers."""

    def test_secure(self) -> None:
        """wss relays are secure and default to 443."""
        relay = Relay("wss://nos.lol")
        assert relay.is_secure is True
        assert relay.effective_port == 443

    def test_plain(self) -> None:
        """ws relays are plain and default to 80."""
        relay = Relay("ws://nos.lol")
        assert relay.is_secure is False
        assert relay.effective_port == 80

    def test_resource(self) -> None:
        """The request target is the path, or / when there is none."""
        assert Relay("wss://nos.lol").resource == "/"
        assert Relay("wss://example.com/nostr").resource == "/nostr"

    def test_host_header(self) -> None:
        """The Host header includes a non-default port."""
        assert Relay("wss://nos.lol").host_header == "nos.lol"
        assert Relay("ws://localhost:7777").host_header == "localhost:7777"
