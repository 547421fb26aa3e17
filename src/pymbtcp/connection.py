"""Byte-stream connections used by the Modbus TCP client.

The client only depends on :class:`ByteStreamConnection`: something that can
send bytes and yields received chunks until the peer closes. Establishing the
TCP connection is kept outside the client so tests (and callers with their
own transport) can hand it any object with this shape.

Usage:
    connection = await open_connection("192.168.1.50", 502)
    client = ModbusTcpClient(connection, unit_id=1)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from .constants import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_CONNECTION_RETRIES,
    DEFAULT_PORT,
    RECV_BUFFER_SIZE,
)
from .exceptions import TransportConnectionError, TransportError

_LOGGER = logging.getLogger(__name__)


@runtime_checkable
class ByteStreamConnection(Protocol):
    """Duplex byte stream handed to :class:`~pymbtcp.client.ModbusTcpClient`."""

    async def send(self, data: bytes) -> None:
        """Write ``data`` to the peer."""
        ...

    def receive(self) -> AsyncIterator[bytes]:
        """Yield received chunks until the stream closes or fails."""
        ...

    async def close(self) -> None:
        """Release the connection."""
        ...


class StreamConnection:
    """:class:`ByteStreamConnection` over an asyncio reader/writer pair."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        peer: str = "",
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._peer = peer
        self._closed = False

    @property
    def peer(self) -> str:
        """Get the ``host:port`` this connection was opened to."""
        return self._peer

    @property
    def is_closed(self) -> bool:
        """Check whether close() has been called."""
        return self._closed

    async def send(self, data: bytes) -> None:
        """Write and drain.

        Raises:
            TransportError: If the connection is closed or the write fails
        """
        if self._closed:
            raise TransportError("Connection is closed")
        try:
            self._writer.write(data)
            await self._writer.drain()
        except OSError as err:
            _LOGGER.error("Socket error sending to %s: %s", self._peer, err)
            raise TransportError(f"Socket error: {err}") from err

    async def receive(self) -> AsyncIterator[bytes]:
        """Yield chunks as they arrive; stops at EOF.

        Raises:
            TransportError: If reading from the socket fails
        """
        while True:
            try:
                chunk = await self._reader.read(RECV_BUFFER_SIZE)
            except OSError as err:
                _LOGGER.error("Socket error receiving from %s: %s", self._peer, err)
                raise TransportError(f"Socket error: {err}") from err
            if not chunk:
                _LOGGER.debug("Connection to %s closed by peer", self._peer)
                return
            yield chunk

    async def close(self) -> None:
        """Close the writer.

        Uses a timeout on wait_closed() so a stuck socket cannot hang the
        caller.
        """
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        try:
            await asyncio.wait_for(self._writer.wait_closed(), timeout=5.0)
        except TimeoutError:
            _LOGGER.warning("Timeout waiting for connection close to %s", self._peer)
        except OSError as err:
            # Peer already reset the connection; nothing left to release.
            _LOGGER.debug("Error closing connection to %s: %s", self._peer, err)
        _LOGGER.debug("Connection to %s closed", self._peer)


async def open_connection(
    host: str,
    port: int = DEFAULT_PORT,
    *,
    timeout: float = DEFAULT_CONNECT_TIMEOUT,
    retries: int = DEFAULT_CONNECTION_RETRIES,
) -> StreamConnection:
    """Open a TCP connection to a Modbus device with retry and backoff.

    Field devices often accept only a handful of connections and may not
    have released a previous one yet, so failed attempts are retried with
    exponential backoff (1s, 2s, 4s, ...).

    Args:
        host: IP address or hostname of the device
        port: TCP port (default 502)
        timeout: Timeout per connection attempt in seconds
        retries: Total number of connection attempts

    Returns:
        Connected StreamConnection

    Raises:
        TransportConnectionError: If all connection attempts fail
    """
    peer = f"{host}:{port}"
    last_error: Exception | None = None
    retry_delay = 1.0

    for attempt in range(max(retries, 1)):
        if attempt > 0:
            _LOGGER.info(
                "Connection retry %d/%d to %s (waiting %.1fs)...",
                attempt,
                retries - 1,
                peer,
                retry_delay,
            )
            await asyncio.sleep(retry_delay)
            retry_delay *= 2

        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=timeout,
            )
        except TimeoutError as err:
            last_error = err
            _LOGGER.warning(
                "Timeout connecting to %s (attempt %d/%d)",
                peer,
                attempt + 1,
                retries,
            )
        except OSError as err:
            last_error = err
            _LOGGER.warning(
                "Connection failed to %s: %s (attempt %d/%d)",
                peer,
                err,
                attempt + 1,
                retries,
            )
        else:
            _LOGGER.info(
                "Connected to %s%s",
                peer,
                f" after {attempt} retries" if attempt > 0 else "",
            )
            return StreamConnection(reader, writer, peer=peer)

    if isinstance(last_error, TimeoutError):
        raise TransportConnectionError(
            f"Timeout connecting to {peer} after {retries} attempts"
        ) from last_error
    raise TransportConnectionError(
        f"Failed to connect to {peer} after {retries} attempts: {last_error}. "
        "Verify: (1) IP address is correct, (2) port is not blocked, "
        "(3) Modbus TCP is enabled on the device."
    ) from last_error


__all__ = ["ByteStreamConnection", "StreamConnection", "open_connection"]
