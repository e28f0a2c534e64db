"""
Unit tests for the nostrbridge CLI (__main__ module).

Tests:
- Argument parsing
- identity / relays / status / publish commands against an in-memory store
- Configuration loading and invalid configuration
- run_poller() one-shot and continuous modes
"""

import json
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from nostrbridge.__main__ import build_parser, main, run_poller
from nostrbridge.core.store import MemoryStore
from nostrbridge.models.constants import DEFAULT_RELAYS
from nostrbridge.services.poller import Poller
from tests.conftest import PUBKEY, make_event


@pytest.fixture
def missing_config(tmp_path: Path) -> list[str]:
    """Global options pointing at an absent config file with a memory store."""
    return ["--memory", "--config", str(tmp_path / "missing.yaml")]


def read_output(capsys: pytest.CaptureFixture[str]) -> dict[str, Any]:
    return json.loads(capsys.readouterr().out)


# =============================================================================
# Parser
# =============================================================================


class TestParser:
    """build_parser()."""

    def test_poll(self) -> None:
        """poll accepts --once and --full-resync."""
        args = build_parser().parse_args(["poll", "--once", "--full-resync"])
        assert (args.command, args.once, args.full_resync) == ("poll", True, True)
        assert args.memory is False
        assert args.log_level == "INFO"

    def test_publish(self) -> None:
        """publish takes an integer record id and a file path."""
        args = build_parser().parse_args(["publish", "7", "event.json"])
        assert args.record_id == 7
        assert args.event_file == Path("event.json")

    def test_relays_set_without_urls(self) -> None:
        """relays set accepts an empty list."""
        assert build_parser().parse_args(["relays", "set"]).urls == []

    def test_command_required(self) -> None:
        """A command must be given."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_invalid_log_level(self) -> None:
        """Unknown log levels are rejected."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--log-level", "TRACE", "status"])


# =============================================================================
# Commands
# =============================================================================


class TestIdentityCommand:
    """identity set / clear."""

    async def test_set_valid(self, missing_config: list[str]) -> None:
        """A valid key is accepted."""
        assert await main([*missing_config, "identity", "set", PUBKEY]) == 0

    async def test_set_invalid(self, missing_config: list[str]) -> None:
        """An invalid key fails."""
        assert await main([*missing_config, "identity", "set", "nope"]) == 1

    async def test_clear(self, missing_config: list[str]) -> None:
        """Clearing without a stored key still succeeds."""
        assert await main([*missing_config, "identity", "clear"]) == 0


class TestRelaysCommand:
    """relays set."""

    async def test_set(
        self, missing_config: list[str], capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Saved relays are printed normalized."""
        code = await main([*missing_config, "relays", "set", "wss://Nos.lol/", "wss://relay.one.com"])
        assert code == 0
        assert read_output(capsys) == {"relays": ["wss://nos.lol", "wss://relay.one.com"]}

    async def test_reset(
        self, missing_config: list[str], capsys: pytest.CaptureFixture[str]
    ) -> None:
        """No URLs restores the defaults."""
        assert await main([*missing_config, "relays", "set"]) == 0
        assert read_output(capsys) == {"relays": list(DEFAULT_RELAYS)}

    async def test_invalid(self, missing_config: list[str]) -> None:
        """An invalid URL fails."""
        assert await main([*missing_config, "relays", "set", "http://nope.com"]) == 1


class TestStatusCommand:
    """status."""

    async def test_status(
        self, missing_config: list[str], capsys: pytest.CaptureFixture[str]
    ) -> None:
        """A fresh store reports no identity and zero counts."""
        assert await main([*missing_config, "status"]) == 0
        output = read_output(capsys)
        assert output["connected"] is False
        assert output["npub"] is None
        assert output["relays"] == list(DEFAULT_RELAYS)
        assert output["reachable"] == {}
        assert output["sync_enabled_default"] is True
        assert output["stats"]["pending"] == 0
        assert output["stats"]["last_sync"] is None


class TestPublishCommand:
    """publish."""

    async def test_unknown_record(self, missing_config: list[str], tmp_path: Path) -> None:
        """Publishing for a missing record fails before contacting relays."""
        event_file = tmp_path / "event.json"
        event_file.write_text(json.dumps(make_event()))
        assert await main([*missing_config, "publish", "1", str(event_file)]) == 1

    async def test_missing_file(self, missing_config: list[str], tmp_path: Path) -> None:
        """An unreadable event file fails."""
        assert await main([*missing_config, "publish", "1", str(tmp_path / "nope.json")]) == 1

    async def test_invalid_json(self, missing_config: list[str], tmp_path: Path) -> None:
        """A file that is not JSON fails."""
        event_file = tmp_path / "event.json"
        event_file.write_text("{not json")
        assert await main([*missing_config, "publish", "1", str(event_file)]) == 1

    async def test_unsigned_event(self, missing_config: list[str], tmp_path: Path) -> None:
        """An event without a signature fails validation."""
        event = make_event()
        del event["sig"]
        event_file = tmp_path / "event.json"
        event_file.write_text(json.dumps(event))
        assert await main([*missing_config, "publish", "1", str(event_file)]) == 1


class TestPollCommand:
    """poll."""

    async def test_once_without_identity(self, missing_config: list[str]) -> None:
        """A one-shot poll without an identity fails."""
        assert await main([*missing_config, "poll", "--once"]) == 1


# =============================================================================
# Configuration
# =============================================================================


class TestConfiguration:
    """Config file handling."""

    async def test_poller_section_used(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """The poller section configures default relays."""
        config = tmp_path / "nostrbridge.yaml"
        config.write_text("poller:\n  identity:\n    default_relays:\n      - wss://nos.lol\n")
        assert await main(["--memory", "--config", str(config), "relays", "set"]) == 0
        assert read_output(capsys) == {"relays": ["wss://nos.lol"]}

    async def test_invalid_poller_section(self, tmp_path: Path) -> None:
        """Invalid settings exit with status 1."""
        config = tmp_path / "nostrbridge.yaml"
        config.write_text("poller:\n  interval: 5\n")
        assert await main(["--memory", "--config", str(config), "status"]) == 1

    async def test_database_password_required(
        self, missing_config: list[str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Without --memory the database password must be set."""
        monkeypatch.delenv("NOSTRBRIDGE_DB_PASSWORD", raising=False)
        args = [arg for arg in missing_config if arg != "--memory"]
        assert await main([*args, "status"]) == 1


# =============================================================================
# run_poller()
# =============================================================================


def connected_poller(store: MemoryStore) -> Poller:
    client = MagicMock()
    client.query_each = AsyncMock(return_value={"wss://relay-a.test": []})
    return Poller(store, client=client)


class TestRunPoller:
    """run_poller()."""

    async def test_once_success(self, store: MemoryStore) -> None:
        """One successful cycle exits 0."""
        poller = connected_poller(store)
        await poller.identity.save_public_key(PUBKEY)
        assert await run_poller(poller, once=True) == 0

    async def test_continuous(self, store: MemoryStore) -> None:
        """Continuous mode runs until run_forever returns."""
        poller = connected_poller(store)
        with patch.object(poller, "run_forever", AsyncMock()) as run_forever:
            assert await run_poller(poller, once=False) == 0
        run_forever.assert_awaited_once()

    async def test_continuous_failure(self, store: MemoryStore) -> None:
        """An error escaping run_forever exits 1."""
        poller = connected_poller(store)
        with patch.object(poller, "run_forever", AsyncMock(side_effect=RuntimeError("boom"))):
            assert await run_poller(poller, once=False) == 1
