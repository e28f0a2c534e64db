"""Minimal WebSocket client transport for Nostr relays.

Implements the subset of RFC 6455 a Nostr client needs, directly on top of
``asyncio`` streams:

* opening handshake (HTTP/1.1 ``Upgrade`` with a random
  ``Sec-WebSocket-Key``; the response status must be ``101``);
* masked, unfragmented text frames for sending, with 7/16/64-bit length
  encoding;
* frame parsing for receiving, including unmasking, fragmented message
  reassembly, ping/pong, and close frames.

A [WebSocketTransport][nostrbridge.utils.transport.WebSocketTransport] is
opened per operation and closed when it finishes; no connection outlives a
publish or a query.

Note:
    ``receive()`` treats silence as normal: a header read that times out, or
    that hits end-of-stream before two bytes arrive, returns ``None`` rather
    than raising. Reads after a header has started are bounded by the
    connection's I/O timeout, and a stall there is a
    [ReceiveError][nostrbridge.core.exceptions.ReceiveError] because the
    stream can no longer be parsed.

    TLS certificates are verified unless ``verify_tls=False`` is passed, which
    accepts relays with self-signed or expired certificates.

Examples:
    ```python
    async with await WebSocketTransport.connect("wss://nos.lol", timeout=10) as ws:
        await ws.send('["REQ","sub_1",{"limit":1}]')
        message = await ws.receive(timeout=0.1)
    ```
"""

from __future__ import annotations

import asyncio
import base64
import contextlib
import hashlib
import secrets
import ssl
import struct
from types import TracebackType
from typing import Self

from nostrbridge.core.exceptions import ConnectError, ProtocolError, ReceiveError, SendError
from nostrbridge.models.relay import Relay


OPCODE_CONTINUATION = 0x0
OPCODE_TEXT = 0x1
OPCODE_BINARY = 0x2
OPCODE_CLOSE = 0x8
OPCODE_PING = 0x9
OPCODE_PONG = 0xA

DEFAULT_TIMEOUT = 10.0
DEFAULT_MAX_SIZE = 16 * 1024 * 1024

_WS_GUID = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"
_DATA_OPCODES = frozenset({OPCODE_TEXT, OPCODE_BINARY})


# ---------------------------------------------------------------------------
# Framing helpers
# ---------------------------------------------------------------------------


def compute_accept(key: str) -> str:
    """Return the ``Sec-WebSocket-Accept`` value a server must send for *key*."""
    digest = hashlib.sha1((key + _WS_GUID).encode("ascii")).digest()  # noqa: S324
    return base64.b64encode(digest).decode("ascii")


def apply_mask(data: bytes, mask: bytes) -> bytes:
    """XOR *data* with the repeating 4-byte *mask* (masking and unmasking)."""
    if not data:
        return b""
    repeated = (mask * (len(data) // 4 + 1))[: len(data)]
    value = int.from_bytes(data, "big") ^ int.from_bytes(repeated, "big")
    return value.to_bytes(len(data), "big")


def encode_frame(
    payload: bytes,
    *,
    opcode: int = OPCODE_TEXT,
    mask: bytes | None = None,
) -> bytes:
    """Encode one client frame with FIN set.

    Client frames are always masked; a fresh random mask is drawn unless one
    is supplied.
    """
    if mask is None:
        mask = secrets.token_bytes(4)
    if len(mask) != 4:
        raise ValueError("mask must be 4 bytes")
    first = 0x80 | opcode
    length = len(payload)
    if length < 126:
        header = struct.pack("!BB", first, 0x80 | length)
    elif length < 1 << 16:
        header = struct.pack("!BBH", first, 0x80 | 126, length)
    else:
        header = struct.pack("!BBQ", first, 0x80 | 127, length)
    return header + mask + apply_mask(payload, mask)


def build_handshake(relay: Relay, key: str) -> bytes:
    """Return the HTTP Upgrade request for *relay*."""
    lines = [
        f"GET {relay.resource} HTTP/1.1",
        f"Host: {relay.host_header}",
        "Upgrade: websocket",
        "Connection: Upgrade",
        f"Sec-WebSocket-Key: {key}",
        "Sec-WebSocket-Version: 13",
        "User-Agent: nostrbridge",
        "",
        "",
    ]
    return "\r\n".join(lines).encode("utf-8")


def parse_handshake_response(raw: bytes, key: str) -> dict[str, str]:
    """Validate the server's handshake response and return its headers.

    Raises:
        ConnectError: If the status is not ``101`` or the accept digest is wrong.
    """
    status_line, *header_lines = raw.decode("latin-1").split("\r\n")
    parts = status_line.split(" ", 2)
    if len(parts) < 2 or parts[1] != "101":
        raise ConnectError(f"unexpected handshake response: {status_line!r}")

    headers: dict[str, str] = {}
    for line in header_lines:
        name, sep, value = line.partition(":")
        if sep:
            headers[name.strip().lower()] = value.strip()

    accept = headers.get("sec-websocket-accept")
    if accept is not None and accept != compute_accept(key):
        raise ConnectError("Sec-WebSocket-Accept does not match the request key")
    return headers


def create_ssl_context(*, verify: bool = True) -> ssl.SSLContext:
    """Return a client TLS context, optionally without certificate checks."""
    context = ssl.create_default_context()
    if not verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


class WebSocketTransport:
    """One client WebSocket connection to a relay.

    Use [connect()][nostrbridge.utils.transport.WebSocketTransport.connect]
    to open it. The constructor takes already-open streams, which is how
    tests drive it with an ``asyncio.StreamReader``.

    Args:
        reader: Stream positioned after the handshake.
        writer: Stream writer for the same connection.
        url: Relay URL, for error messages.
        io_timeout: Bound on reads inside a frame, writes, and the handshake.
        max_size: Largest accepted message (after reassembly), in bytes.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        url: str = "",
        io_timeout: float = DEFAULT_TIMEOUT,
        max_size: int = DEFAULT_MAX_SIZE,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._url = url
        self._io_timeout = io_timeout
        self._max_size = max_size
        self._closed = False
        self._fragments: list[bytes] = []
        self._fragment_opcode: int | None = None
        self._fragment_size = 0

    @classmethod
    async def connect(
        cls,
        relay: Relay | str,
        *,
        timeout: float = DEFAULT_TIMEOUT,  # noqa: ASYNC109
        verify_tls: bool = True,
        max_size: int = DEFAULT_MAX_SIZE,
    ) -> WebSocketTransport:
        """Open a TCP (``ws``) or TLS (``wss``) connection and perform the handshake.

        Raises:
            ConnectError: On an invalid URL, socket or TLS failure, timeout,
                or a handshake response other than ``101``.
        """
        if not isinstance(relay, Relay):
            try:
                relay = Relay(relay)
            except (TypeError, ValueError) as e:
                raise ConnectError(f"invalid relay url {relay!r}: {e}") from e

        ssl_context = create_ssl_context(verify=verify_tls) if relay.is_secure else None
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(
                    relay.host,
                    relay.effective_port,
                    ssl=ssl_context,
                    server_hostname=relay.host if ssl_context else None,
                ),
                timeout=timeout,
            )
        except TimeoutError as e:
            raise ConnectError(f"timed out connecting to {relay.url}") from e
        except (OSError, ssl.SSLError) as e:
            raise ConnectError(f"cannot connect to {relay.url}: {e}") from e

        transport = cls(reader, writer, url=relay.url, io_timeout=timeout, max_size=max_size)
        try:
            await transport._handshake(relay)
        except BaseException:
            await transport.close()
            raise
        return transport

    async def _handshake(self, relay: Relay) -> None:
        key = base64.b64encode(secrets.token_bytes(16)).decode("ascii")
        try:
            self._writer.write(build_handshake(relay, key))
            await asyncio.wait_for(self._writer.drain(), timeout=self._io_timeout)
            raw = await asyncio.wait_for(
                self._reader.readuntil(b"\r\n\r\n"), timeout=self._io_timeout
            )
        except TimeoutError as e:
            raise ConnectError(f"handshake with {relay.url} timed out") from e
        except (asyncio.IncompleteReadError, asyncio.LimitOverrunError, OSError) as e:
            raise ConnectError(f"handshake with {relay.url} failed: {e}") from e
        parse_handshake_response(raw, key)

    @property
    def url(self) -> str:
        return self._url

    @property
    def is_closed(self) -> bool:
        return self._closed

    # -------------------------------------------------------------------------
    # Send
    # -------------------------------------------------------------------------

    async def send(self, text: str) -> None:
        """Send *text* as one masked text frame.

        Raises:
            SendError: If the transport is closed or the write fails.
        """
        await self._write_frame(text.encode("utf-8"), OPCODE_TEXT)

    async def _write_frame(self, payload: bytes, opcode: int) -> None:
        if self._closed:
            raise SendError(f"connection to {self._url} is closed")
        try:
            self._writer.write(encode_frame(payload, opcode=opcode))
            await asyncio.wait_for(self._writer.drain(), timeout=self._io_timeout)
        except (OSError, TimeoutError) as e:
            await self.close()
            raise SendError(f"write to {self._url} failed: {e!r}") from e

    # -------------------------------------------------------------------------
    # Receive
    # -------------------------------------------------------------------------

    async def receive(self, timeout: float) -> str | None:  # noqa: ASYNC109
        """Return the next text message, or ``None`` if none is available.

        ``None`` is returned when the header read times out, when the stream
        ends before a full header, after a close frame, and after handling a
        ping or pong that is not part of a data message.

        Raises:
            ReceiveError: If the stream stalls or ends in the middle of a
                frame, or a message exceeds ``max_size``.
            ProtocolError: If a complete frame is not usable (invalid UTF-8,
                unknown opcode, reserved bits, out-of-order continuation).
        """
        if self._closed:
            return None
        try:
            header = await asyncio.wait_for(self._reader.readexactly(2), timeout=timeout)
        except TimeoutError:
            return None
        except asyncio.IncompleteReadError:
            await self.close()
            return None
        except OSError as e:
            await self.close()
            raise ReceiveError(f"read from {self._url} failed: {e!r}") from e
        return await self._read_message(header)

    async def _read_message(self, header: bytes) -> str | None:
        while True:
            fin, opcode, payload = await self._read_frame(header)

            if opcode >= OPCODE_CLOSE:
                await self._handle_control(opcode, payload)
                if self._closed or self._fragment_opcode is None:
                    return None
            elif opcode == OPCODE_CONTINUATION:
                if self._fragment_opcode is None:
                    raise ProtocolError("continuation frame without a message in progress")
                self._add_fragment(payload)
                if fin:
                    return self._finish_message()
            elif opcode in _DATA_OPCODES:
                if self._fragment_opcode is not None:
                    self._reset_fragments()
                    raise ProtocolError("data frame interrupted a fragmented message")
                if fin:
                    return self._decode(payload)
                self._fragment_opcode = opcode
                self._add_fragment(payload)
            else:
                raise ProtocolError(f"unknown opcode 0x{opcode:x}")

            header = await self._read_exactly(2)

    async def _read_frame(self, header: bytes) -> tuple[bool, int, bytes]:
        first, second = header[0], header[1]
        fin = bool(first & 0x80)
        reserved = first & 0x70
        opcode = first & 0x0F
        masked = bool(second & 0x80)
        length = second & 0x7F

        if length == 126:
            (length,) = struct.unpack("!H", await self._read_exactly(2))
        elif length == 127:
            (length,) = struct.unpack("!Q", await self._read_exactly(8))

        if length > self._max_size:
            await self.close()
            raise ReceiveError(f"frame of {length} bytes from {self._url} exceeds {self._max_size}")

        mask = await self._read_exactly(4) if masked else b""
        payload = await self._read_exactly(length) if length else b""
        if masked:
            payload = apply_mask(payload, mask)
        if reserved:
            raise ProtocolError(f"reserved bits set in frame header: 0x{first:02x}")
        return fin, opcode, payload

    async def _read_exactly(self, n: int) -> bytes:
        try:
            return await asyncio.wait_for(self._reader.readexactly(n), timeout=self._io_timeout)
        except TimeoutError as e:
            await self.close()
            raise ReceiveError(f"read from {self._url} stalled mid-frame") from e
        except asyncio.IncompleteReadError as e:
            await self.close()
            raise ReceiveError(f"connection to {self._url} closed mid-frame") from e
        except OSError as e:
            await self.close()
            raise ReceiveError(f"read from {self._url} failed: {e!r}") from e

    async def _handle_control(self, opcode: int, payload: bytes) -> None:
        if opcode == OPCODE_CLOSE:
            await self.close()
        elif opcode == OPCODE_PING:
            await self._write_frame(payload, OPCODE_PONG)
        elif opcode != OPCODE_PONG:
            raise ProtocolError(f"unknown control opcode 0x{opcode:x}")

    def _add_fragment(self, payload: bytes) -> None:
        self._fragment_size += len(payload)
        if self._fragment_size > self._max_size:
            self._reset_fragments()
            raise ReceiveError(f"fragmented message from {self._url} exceeds {self._max_size}")
        self._fragments.append(payload)

    def _finish_message(self) -> str:
        payload = b"".join(self._fragments)
        self._reset_fragments()
        return self._decode(payload)

    def _reset_fragments(self) -> None:
        self._fragments = []
        self._fragment_opcode = None
        self._fragment_size = 0

    @staticmethod
    def _decode(payload: bytes) -> str:
        try:
            return payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolError(f"message is not valid UTF-8: {e}") from e

    # -------------------------------------------------------------------------
    # Close
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Release the socket without a closing handshake. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._reset_fragments()
        self._writer.close()
        with contextlib.suppress(OSError, ssl.SSLError, TimeoutError):
            await asyncio.wait_for(self._writer.wait_closed(), timeout=1.0)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
