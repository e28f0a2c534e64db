"""Nostr relay protocol client.

Speaks NIP-01 over one [WebSocketTransport][nostrbridge.utils.transport.WebSocketTransport]
per operation:

* [publish()][nostrbridge.utils.protocol.RelayClient.publish] sends
  ``["EVENT", event]`` and waits for the matching ``OK`` (or a ``NOTICE``);
* [query()][nostrbridge.utils.protocol.RelayClient.query] sends
  ``["REQ", sub_id, filter]``, collects ``EVENT`` messages for that
  subscription until ``EOSE``/``CLOSED`` or the deadline, then sends
  ``["CLOSE", sub_id]``.

Multi-relay variants fan out concurrently under ``asyncio.TaskGroup`` with a
semaphore bounding parallel connections. A failing relay is logged and
recorded; it never aborts the others.
[query_each()][nostrbridge.utils.protocol.RelayClient.query_each] keeps
results per relay so callers can tell a failed relay (None) from one that
answered with nothing.

Waiting is a polling loop: ``receive()`` is called with short slices
(``poll_interval``) until the operation deadline, so silence from a relay
costs one slice and never raises.

See Also:
    [nostrbridge.utils.transport][]: The WebSocket transport used here.
    [nostrbridge.services.sync.SyncManager][]: Deduplicates and reconciles
        the events returned by
        [query_all()][nostrbridge.utils.protocol.RelayClient.query_all].

Examples:
    ```python
    client = RelayClient(ClientConfig())
    results = await client.publish_to_all(["wss://nos.lol"], signed_event)
    events = await client.query_all(relays, Filter(kinds=(1,), authors=(pubkey,)))
    ```
"""

from __future__ import annotations

import asyncio
import json
import secrets
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import BaseModel, Field

from nostrbridge.core.exceptions import ConnectError, NostrBridgeError, ProtocolError, TransportError
from nostrbridge.core.logger import Logger
from nostrbridge.core.metrics import RELAY_OPERATIONS
from nostrbridge.models.event import Event, UnsignedEvent
from nostrbridge.models.filter import Filter
from nostrbridge.models.relay import Relay

from .transport import DEFAULT_MAX_SIZE, WebSocketTransport


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ClientConfig(BaseModel):
    """Timeouts and limits for relay operations."""

    connect_timeout: float = Field(
        default=10.0, gt=0, description="Seconds allowed for TCP/TLS connect and handshake"
    )
    publish_timeout: float = Field(
        default=10.0, gt=0, description="Seconds to wait for OK after sending EVENT"
    )
    query_timeout: float = Field(
        default=30.0, gt=0, description="Seconds to wait for EOSE after sending REQ"
    )
    poll_interval: float = Field(
        default=0.1, gt=0, le=5.0, description="Receive slice while polling for messages"
    )
    verify_tls: bool = Field(default=True, description="Verify relay TLS certificates")
    max_concurrency: int = Field(
        default=10, ge=1, le=100, description="Relays contacted in parallel during fan-out"
    )
    max_message_size: int = Field(
        default=DEFAULT_MAX_SIZE, ge=1024, description="Largest accepted relay message in bytes"
    )


# ---------------------------------------------------------------------------
# Results and transport interface
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PublishResult:
    """Outcome of publishing one event to one relay.

    ``reason`` carries the relay's ``OK`` message or ``NOTICE`` text, or a
    local description such as ``"timeout"``.
    """

    relay: str
    accepted: bool
    reason: str | None = None


class RelayTransport(Protocol):
    """The subset of [WebSocketTransport][nostrbridge.utils.transport.WebSocketTransport] the client uses."""

    @property
    def is_closed(self) -> bool: ...

    async def send(self, text: str) -> None: ...

    async def receive(self, timeout: float) -> str | None: ...  # noqa: ASYNC109

    async def close(self) -> None: ...


Connector = Callable[[Relay], Awaitable[RelayTransport]]


def encode_message(*parts: Any) -> str:
    """Encode a client message as compact JSON."""
    return json.dumps(list(parts), separators=(",", ":"), ensure_ascii=False)


def parse_message(raw: str) -> list[Any] | None:
    """Decode a relay message; return None unless it is a JSON array led by a string."""
    try:
        message = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(message, list) or not message or not isinstance(message[0], str):
        return None
    return message


def new_subscription_id() -> str:
    return f"sub_{secrets.token_hex(8)}"


def _as_relay(relay: Relay | str) -> Relay:
    if isinstance(relay, Relay):
        return relay
    try:
        return Relay(relay)
    except (TypeError, ValueError) as e:
        raise ConnectError(f"invalid relay url {relay!r}: {e}") from e


def _event_payload(event: Event | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(event, Event):
        return event.to_dict()
    if isinstance(event, UnsignedEvent):
        raise TypeError("cannot publish an unsigned event")
    return dict(event)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class RelayClient:
    """Publishes events to and queries events from Nostr relays.

    Args:
        config: Timeouts, TLS policy and fan-out limits.
        connector: Coroutine returning an open transport for a relay.
            Defaults to [WebSocketTransport.connect()][nostrbridge.utils.transport.WebSocketTransport.connect]
            with the configured timeout and TLS policy.
        logger: Structured logger; defaults to one named ``relay_client``.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        connector: Connector | None = None,
        logger: Logger | None = None,
    ) -> None:
        self._config = config or ClientConfig()
        self._connector: Connector = connector or self._open_transport
        self._logger = logger or Logger("relay_client")

    @property
    def config(self) -> ClientConfig:
        return self._config

    async def _open_transport(self, relay: Relay) -> RelayTransport:
        return await WebSocketTransport.connect(
            relay,
            timeout=self._config.connect_timeout,
            verify_tls=self._config.verify_tls,
            max_size=self._config.max_message_size,
        )

    async def _next_message(
        self, transport: RelayTransport, remaining: float, relay: Relay
    ) -> list[Any] | None:
        try:
            raw = await transport.receive(min(self._config.poll_interval, remaining))
        except ProtocolError as e:
            self._logger.debug("unusable_frame", relay=relay.url, error=str(e))
            return None
        if raw is None:
            return None
        message = parse_message(raw)
        if message is None:
            self._logger.debug("malformed_message", relay=relay.url, raw=raw)
        return message

    # -------------------------------------------------------------------------
    # Single relay
    # -------------------------------------------------------------------------

    async def publish(
        self,
        relay: Relay | str,
        event: Event | Mapping[str, Any],
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> PublishResult:
        """Send ``["EVENT", event]`` and wait for the relay's verdict.

        The first ``OK`` whose event id matches, or the first ``NOTICE``,
        ends the wait. When neither arrives before the deadline the result
        is ``accepted=False`` with reason ``"timeout"``. The transport is
        closed on every exit path.

        Raises:
            TransportError: If the relay cannot be reached or the send fails.
        """
        relay = _as_relay(relay)
        payload = _event_payload(event)
        event_id = payload.get("id")
        deadline_s = self._config.publish_timeout if timeout is None else timeout

        transport = await self._connector(relay)
        try:
            await transport.send(encode_message("EVENT", payload))

            loop = asyncio.get_running_loop()
            deadline = loop.time() + deadline_s
            while (remaining := deadline - loop.time()) > 0:
                message = await self._next_message(transport, remaining, relay)
                if message is None:
                    if transport.is_closed:
                        return self._publish_outcome(relay, False, "connection closed")
                    continue
                kind = message[0]
                if kind == "OK" and len(message) >= 3 and message[1] == event_id:
                    reason = message[3] if len(message) > 3 and isinstance(message[3], str) else None
                    return self._publish_outcome(relay, message[2] is True, reason)
                if kind == "NOTICE":
                    notice = message[1] if len(message) > 1 and isinstance(message[1], str) else None
                    return self._publish_outcome(relay, False, notice)

            return self._publish_outcome(relay, False, "timeout")
        finally:
            await transport.close()

    def _publish_outcome(self, relay: Relay, accepted: bool, reason: str | None) -> PublishResult:
        RELAY_OPERATIONS.labels(
            operation="publish", outcome="accepted" if accepted else "rejected"
        ).inc()
        self._logger.debug("publish_result", relay=relay.url, accepted=accepted, reason=reason)
        return PublishResult(relay=relay.url, accepted=accepted, reason=reason)

    async def query(
        self,
        relay: Relay | str,
        filter: Filter | Mapping[str, Any],  # noqa: A002
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> list[dict[str, Any]]:
        """Collect the events a relay returns for *filter*.

        Only ``EVENT`` messages for this call's subscription id are kept.
        Collection ends on ``EOSE`` or ``CLOSED`` for the subscription, or at
        the deadline (events received so far are returned). ``CLOSE`` is sent
        before the transport is closed, however the loop ended.

        Raises:
            TransportError: If the relay cannot be reached or ``REQ`` cannot
                be sent.
        """
        relay = _as_relay(relay)
        filter_dict = filter.to_dict() if isinstance(filter, Filter) else dict(filter)
        deadline_s = self._config.query_timeout if timeout is None else timeout
        sub_id = new_subscription_id()
        events: list[dict[str, Any]] = []

        transport = await self._connector(relay)
        try:
            await transport.send(encode_message("REQ", sub_id, filter_dict))

            loop = asyncio.get_running_loop()
            deadline = loop.time() + deadline_s
            while (remaining := deadline - loop.time()) > 0:
                message = await self._next_message(transport, remaining, relay)
                if message is None:
                    if transport.is_closed:
                        break
                    continue
                kind = message[0]
                if kind == "EVENT" and len(message) >= 3 and message[1] == sub_id:
                    if isinstance(message[2], dict):
                        events.append(message[2])
                elif kind == "EOSE" and len(message) >= 2 and message[1] == sub_id:
                    break
                elif kind == "CLOSED" and len(message) >= 2 and message[1] == sub_id:
                    self._logger.info(
                        "subscription_closed",
                        relay=relay.url,
                        reason=message[2] if len(message) > 2 else None,
                    )
                    break
                elif kind == "NOTICE":
                    self._logger.info(
                        "relay_notice",
                        relay=relay.url,
                        notice=message[1] if len(message) > 1 else None,
                    )
            else:
                self._logger.debug("query_timeout", relay=relay.url, events=len(events))
        finally:
            if not transport.is_closed:
                try:
                    await transport.send(encode_message("CLOSE", sub_id))
                except TransportError as e:
                    self._logger.debug("close_send_failed", relay=relay.url, error=str(e))
            await transport.close()

        RELAY_OPERATIONS.labels(operation="query", outcome="success").inc()
        self._logger.debug("query_completed", relay=relay.url, events=len(events))
        return events

    async def test_connection(self, relay: Relay | str) -> bool:
        """Return True if a transport to *relay* can be opened."""
        try:
            transport = await self._connector(_as_relay(relay))
        except (NostrBridgeError, OSError, TimeoutError) as e:
            self._logger.info("relay_unreachable", relay=str(relay), error=str(e))
            return False
        await transport.close()
        return True

    # -------------------------------------------------------------------------
    # Fan-out
    # -------------------------------------------------------------------------

    async def publish_to_all(
        self,
        relays: Iterable[Relay | str],
        event: Event | Mapping[str, Any],
    ) -> dict[str, PublishResult]:
        """Publish *event* to every relay concurrently.

        Returns:
            One [PublishResult][nostrbridge.utils.protocol.PublishResult] per
            relay, keyed by the relay as given. A relay that fails with a
            transport or protocol error gets ``accepted=False``.
        """
        urls = list(dict.fromkeys(str(relay) for relay in relays))
        if not urls:
            return {}

        semaphore = asyncio.Semaphore(self._config.max_concurrency)

        async def _bounded(url: str) -> PublishResult:
            async with semaphore:
                try:
                    return await self.publish(url, event)
                except (NostrBridgeError, OSError, TimeoutError) as e:
                    RELAY_OPERATIONS.labels(operation="publish", outcome="error").inc()
                    self._logger.warning(
                        "publish_failed", relay=url, error=str(e), error_type=type(e).__name__
                    )
                    return PublishResult(relay=url, accepted=False, reason=str(e))

        async with asyncio.TaskGroup() as tg:
            tasks = {url: tg.create_task(_bounded(url)) for url in urls}

        results = {url: task.result() for url, task in tasks.items()}
        self._logger.info(
            "publish_completed",
            relays=len(results),
            accepted=sum(1 for result in results.values() if result.accepted),
        )
        return results

    async def query_each(
        self,
        relays: Iterable[Relay | str],
        filter: Filter | Mapping[str, Any],  # noqa: A002
    ) -> dict[str, list[dict[str, Any]] | None]:
        """Query every relay concurrently, keeping results per relay.

        Returns:
            The events from each relay, keyed by the relay as given, in
            relay order. A relay that fails with a transport or protocol
            error maps to None, which tells it apart from a relay that
            answered with nothing. An empty relay list returns ``{}``
            without opening any connection.
        """
        urls = list(dict.fromkeys(str(relay) for relay in relays))
        if not urls:
            return {}

        semaphore = asyncio.Semaphore(self._config.max_concurrency)

        async def _bounded(url: str) -> list[dict[str, Any]] | None:
            async with semaphore:
                try:
                    return await self.query(url, filter)
                except (NostrBridgeError, OSError, TimeoutError) as e:
                    RELAY_OPERATIONS.labels(operation="query", outcome="error").inc()
                    self._logger.warning(
                        "query_failed", relay=url, error=str(e), error_type=type(e).__name__
                    )
                    return None

        async with asyncio.TaskGroup() as tg:
            tasks = {url: tg.create_task(_bounded(url)) for url in urls}

        results = {url: task.result() for url, task in tasks.items()}
        self._logger.info(
            "query_each_completed",
            relays=len(results),
            answered=sum(1 for found in results.values() if found is not None),
            events=sum(len(found) for found in results.values() if found),
        )
        return results

    async def query_all(
        self,
        relays: Iterable[Relay | str],
        filter: Filter | Mapping[str, Any],  # noqa: A002
    ) -> list[dict[str, Any]]:
        """Query every relay concurrently and concatenate the results.

        Results keep relay order and are not deduplicated. A relay that
        fails contributes nothing. An empty relay list returns ``[]``
        without opening any connection.
        """
        results = await self.query_each(relays, filter)
        return [event for found in results.values() if found for event in found]

    async def get_events_by_kind(
        self, relays: Iterable[Relay | str], kind: int, limit: int | None = None
    ) -> list[dict[str, Any]]:
        return await self.query_all(relays, Filter(kinds=(kind,), limit=limit))

    async def get_events_by_author(
        self, relays: Iterable[Relay | str], pubkey: str, limit: int | None = None
    ) -> list[dict[str, Any]]:
        return await self.query_all(relays, Filter(authors=(pubkey,), limit=limit))

    async def get_events_by_tag(
        self,
        relays: Iterable[Relay | str],
        name: str,
        value: str,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Query events carrying tag ``[name, value]`` (a ``#<name>`` filter)."""
        return await self.query_all(relays, Filter(tags={name: (value,)}, limit=limit))
