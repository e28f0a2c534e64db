"""
Pytest configuration and shared fixtures for nostrbridge tests.

Provides:
- In-memory store fixtures
- Sample record and event builders
- A scripted relay transport for driving the relay client without sockets
"""

import asyncio
import json
import logging
from collections.abc import Iterable
from typing import Any

import pytest

from nostrbridge.core.store import MemoryStore
from nostrbridge.models import ContentRecord, Relay, RecordType, compute_id
from nostrbridge.models.constants import RecordSource


PUBKEY = "79be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
OTHER_PUBKEY = "c6047f9441ed7d6d3045406e95c07cd85c778e4b8cef3ca7abac09b95c709ee5"
SIG = "f" * 128


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


# ============================================================================
# Store Fixtures
# ============================================================================


@pytest.fixture
def store() -> MemoryStore:
    """An empty in-memory content store."""
    return MemoryStore()


@pytest.fixture
def db_password(monkeypatch: pytest.MonkeyPatch) -> str:
    """Export the database password expected by DatabaseConfig."""
    monkeypatch.setenv("NOSTRBRIDGE_DB_PASSWORD", "test_password")
    return "test_password"


# ============================================================================
# Sample Data Builders
# ============================================================================


def make_event(
    event_id: str | None = None,
    pubkey: str = PUBKEY,
    created_at: int = 1700000000,
    kind: int = 1,
    tags: list[list[str]] | None = None,
    content: str = "Hello from Nostr",
    sig: str = SIG,
) -> dict[str, Any]:
    """Build a signed event wire object.

    Without *event_id* the id is the digest of the other fields.
    """
    event: dict[str, Any] = {
        "pubkey": pubkey,
        "created_at": created_at,
        "kind": kind,
        "tags": tags if tags is not None else [],
        "content": content,
        "sig": sig,
    }
    event["id"] = event_id if event_id is not None else compute_id(event)
    return event


def make_record(**overrides: Any) -> ContentRecord:
    """Build a local note record with sensible defaults."""
    fields: dict[str, Any] = {
        "record_type": RecordType.NOTE,
        "title": "A note",
        "content": "Local content",
        "published_at": 1700000000,
        "modified_at": 1700000000,
        "source": RecordSource.LOCAL,
    }
    fields.update(overrides)
    return ContentRecord(**fields)


# ============================================================================
# Scripted Transport
# ============================================================================


class ScriptedTransport:
    """In-memory stand-in for a relay WebSocket.

    ``script`` is a list of inbound frames. Each entry is either a list
    (encoded as JSON), a raw string, or ``None`` (the connection closes).
    A callable entry receives the frames sent so far and returns one of
    the above, so a reply can echo a subscription id. Once the script runs
    out the connection closes, unless ``hang`` is set, in which case every
    further receive times out.
    """

    def __init__(self, script: Iterable[Any] = (), *, hang: bool = False) -> None:
        self.script = list(script)
        self.hang = hang
        self.sent: list[list[Any]] = []
        self.closed = False

    @property
    def is_closed(self) -> bool:
        return self.closed

    async def send(self, text: str) -> None:
        self.sent.append(json.loads(text))

    async def receive(self, timeout: float | None = None) -> str | None:  # noqa: ASYNC109
        if self.closed:
            return None
        if not self.script:
            if self.hang:
                await asyncio.sleep(timeout or 0)
                return None
            self.closed = True
            return None
        item = self.script.pop(0)
        if callable(item):
            item = item(self.sent)
        if item is None:
            self.closed = True
            return None
        return item if isinstance(item, str) else json.dumps(item)

    async def close(self) -> None:
        self.closed = True


def reply_with_subscription(*frames: Any) -> list[Any]:
    """Script entries that echo the subscription id of the last ``REQ``.

    Each frame is a list whose second element is replaced by the id.
    """

    def bind(frame: list[Any]) -> Any:
        def reply(sent: list[list[Any]]) -> list[Any]:
            sub_id = next(msg[1] for msg in reversed(sent) if msg[0] == "REQ")
            return [frame[0], sub_id, *frame[2:]]

        return reply

    return [bind(frame) for frame in frames]


class ScriptedConnector:
    """Connector returning a prepared transport per relay URL."""

    def __init__(self, transports: dict[str, Any]) -> None:
        self.transports = transports
        self.calls: list[str] = []

    async def __call__(self, relay: Relay) -> Any:
        self.calls.append(relay.url)
        transport = self.transports[relay.url]
        if isinstance(transport, BaseException):
            raise transport
        return transport
