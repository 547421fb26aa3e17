"""Modbus TCP transaction client.

:class:`ModbusTcpClient` owns one :class:`~pymbtcp.connection.ByteStreamConnection`
and drives at most one request at a time through
``send -> await frame -> decode -> resolve``.

IMPORTANT: Single Outstanding Request
-------------------------------------
Only one request may be in flight. A second call made while the first is
still awaiting its response fails immediately with :class:`BusyError`; it
is not queued and does not disturb the in-flight request. Callers that
share a client must serialize their own calls (or retry on ``BusyError``).

Example:
    connection = await open_connection("192.168.1.50")
    async with ModbusTcpClient(connection, unit_id=1, timeout=2.0) as client:
        values = await client.read_holding_registers(0, 10)
        await client.write_holding_registers(100, [1, 2, 3])
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import struct
from collections.abc import Sequence
from enum import Enum
from types import TracebackType

from .connection import ByteStreamConnection
from .constants import DEFAULT_TIMEOUT, DEFAULT_UNIT_ID, MAX_TRANSACTION_ID, MAX_UNIT_ID
from .exceptions import (
    BusyError,
    ConnectionClosedError,
    InvalidParametersError,
    MalformedFrameError,
    ModbusError,
    TransportError,
    TransportTimeoutError,
)
from .framing import (
    FrameBuffer,
    decode_read_response,
    decode_write_response,
    encode_read_request,
    encode_write_request,
)

_LOGGER = logging.getLogger(__name__)


class ClientState(str, Enum):
    """Transaction state of a :class:`ModbusTcpClient`."""

    # No request outstanding
    IDLE = "idle"

    # Request sent, response bytes pending
    AWAITING_RESPONSE = "awaiting_response"

    # Connection torn down (terminal)
    CLOSED = "closed"


class ModbusTcpClient:
    """Modbus TCP master for a single device connection.

    The client reads the connection continuously in a background task and
    reassembles frames with :class:`~pymbtcp.framing.FrameBuffer`. Exactly
    one frame is handed to each outstanding request; bytes that arrive while
    no request is outstanding are kept for the next one.

    Every transaction resolves exactly once with one of: decoded result,
    protocol/device error, transport error, timeout, or closure.
    """

    def __init__(
        self,
        connection: ByteStreamConnection,
        *,
        unit_id: int = DEFAULT_UNIT_ID,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the client.

        Args:
            connection: Established byte-stream connection, owned by the
                client from here on
            unit_id: Modbus unit/slave id (default 1)
            timeout: Seconds to wait for a complete response

        Raises:
            InvalidParametersError: If unit_id or timeout is out of range
        """
        if not 0 <= unit_id <= MAX_UNIT_ID:
            raise InvalidParametersError(f"unit_id must be in 0..{MAX_UNIT_ID}, got {unit_id}")
        if timeout <= 0:
            raise InvalidParametersError(f"timeout must be positive, got {timeout}")

        self._connection = connection
        self._unit_id = unit_id
        self._timeout = timeout
        self._state = ClientState.IDLE
        self._transaction_id = 0
        self._buffer = FrameBuffer()
        self._pending: asyncio.Future[bytes] | None = None
        self._receive_task: asyncio.Task[None] | None = None
        self._receive_error: TransportError | None = None

    async def __aenter__(self) -> ModbusTcpClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> ClientState:
        """Get the current transaction state."""
        return self._state

    @property
    def unit_id(self) -> int:
        """Get the Modbus unit/slave id."""
        return self._unit_id

    @property
    def timeout(self) -> float:
        """Get the response timeout in seconds."""
        return self._timeout

    @property
    def is_closed(self) -> bool:
        """Check whether the client has been closed."""
        return self._state is ClientState.CLOSED

    @property
    def last_transaction_id(self) -> int:
        """Get the id of the most recently submitted request (0 before any)."""
        return self._transaction_id

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def read_holding_registers(self, start_address: int, count: int) -> list[int]:
        """Read holding registers (FC 0x03).

        Args:
            start_address: First register address
            count: Number of registers to read (1-125)

        Returns:
            Register values in address order

        Raises:
            InvalidParametersError: If address/count are out of bounds
            BusyError: If another request is outstanding
            ConnectionClosedError: If the client is or becomes closed
            TransportError: If the connection fails
            TransportTimeoutError: If no response arrives in time
            MalformedFrameError: If the response is truncated or corrupt
            ProtocolError: If the response does not match the request
            DeviceExceptionError: If the device rejects the request
        """
        self._check_ready()
        transaction_id = self._next_transaction_id()
        request = encode_read_request(transaction_id, self._unit_id, start_address, count)

        frame = await self._execute(transaction_id, request)
        return decode_read_response(frame, count, transaction_id=transaction_id)

    async def write_holding_registers(self, start_address: int, values: Sequence[int]) -> bool:
        """Write holding registers (FC 0x10).

        Args:
            start_address: First register address
            values: Values to write (1-123 registers)

        Returns:
            True once the device has echoed the address and count

        Raises:
            Same as :meth:`read_holding_registers`. A ``ProtocolError``
            means the write is unconfirmed, not that it failed on the device.
        """
        self._check_ready()
        transaction_id = self._next_transaction_id()
        request = encode_write_request(transaction_id, self._unit_id, start_address, values)

        frame = await self._execute(transaction_id, request)
        return decode_write_response(
            frame, start_address, len(values), transaction_id=transaction_id
        )

    async def close(self) -> None:
        """Close the client and its connection.

        An outstanding request is resolved with ConnectionClosedError.
        Calling close() more than once is a no-op.
        """
        if self._state is ClientState.CLOSED:
            return

        self._state = ClientState.CLOSED
        self._fail_pending(ConnectionClosedError("Client closed while awaiting response"))

        if self._receive_task is not None:
            self._receive_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._receive_task
            self._receive_task = None

        self._buffer.clear()
        await self._connection.close()
        _LOGGER.info("Modbus client closed (unit %s)", self._unit_id)

    # ------------------------------------------------------------------
    # Transaction handling
    # ------------------------------------------------------------------

    def _check_ready(self) -> None:
        if self._state is ClientState.CLOSED:
            raise ConnectionClosedError("Client is closed")
        if self._state is ClientState.AWAITING_RESPONSE:
            raise BusyError(
                f"Transaction {self._transaction_id} is still awaiting its response"
            )
        if self._receive_error is not None:
            raise TransportError(
                f"Connection is no longer usable: {self._receive_error}"
            ) from self._receive_error

    def _next_transaction_id(self) -> int:
        """Return the id for the next request (1, 2, ... 65535, 0, 1, ...)."""
        return (self._transaction_id + 1) & MAX_TRANSACTION_ID

    async def _execute(self, transaction_id: int, request: bytes) -> bytes:
        """Send ``request`` and wait for exactly one response frame.

        Sending and waiting share one deadline.
        """
        self._start_receiving()

        future: asyncio.Future[bytes] = asyncio.get_running_loop().create_future()
        self._transaction_id = transaction_id
        self._pending = future
        self._state = ClientState.AWAITING_RESPONSE

        try:
            try:
                async with asyncio.timeout(self._timeout):
                    await self._send(transaction_id, request)

                    # Surplus bytes from an earlier read may already hold a full frame
                    self._dispatch()

                    return await future
            except TimeoutError as err:
                self._buffer.clear()
                _LOGGER.error(
                    "Timeout waiting for response to transaction %d", transaction_id
                )
                raise TransportTimeoutError(
                    f"No response to transaction {transaction_id} within {self._timeout}s"
                ) from err
            except asyncio.CancelledError:
                self._buffer.clear()
                raise
        finally:
            if not future.done():
                future.cancel()
            if self._pending is future:
                self._pending = None
            if self._state is ClientState.AWAITING_RESPONSE:
                self._state = ClientState.IDLE

    async def _send(self, transaction_id: int, request: bytes) -> None:
        _LOGGER.debug("Sending transaction %d: %s", transaction_id, request.hex())
        try:
            await self._connection.send(request)
        except OSError as err:
            _LOGGER.error("Failed to send transaction %d: %s", transaction_id, err)
            raise TransportError(f"Failed to send request: {err}") from err

    def _is_stale(self, frame: bytes) -> bool:
        """Check whether ``frame`` answers a request older than the pending one.

        Ids are compared modulo 2**16; anything up to half the id space
        behind the pending id counts as older.
        """
        (frame_id,) = struct.unpack_from(">H", frame)
        age = (self._transaction_id - frame_id) & MAX_TRANSACTION_ID
        return 0 < age <= MAX_TRANSACTION_ID // 2

    def _dispatch(self) -> None:
        """Hand one complete buffered frame to the outstanding request.

        Late replies to earlier (timed-out) transactions are dropped.
        """
        future = self._pending
        if future is None or future.done():
            return

        while True:
            try:
                frame = self._buffer.next_frame()
            except MalformedFrameError as err:
                _LOGGER.warning("Discarding unframeable data: %s", err)
                self._buffer.clear()
                future.set_exception(err)
                return

            if frame is None:
                return
            if self._is_stale(frame):
                _LOGGER.warning(
                    "Dropping late response for earlier transaction: %s",
                    frame.hex()[:100],
                )
                continue

            _LOGGER.debug("Received frame: %s", frame.hex()[:100])
            future.set_result(frame)
            return

    def _fail_pending(self, err: ModbusError) -> None:
        future = self._pending
        if future is not None and not future.done():
            future.set_exception(err)

    # ------------------------------------------------------------------
    # Receive task
    # ------------------------------------------------------------------

    def _start_receiving(self) -> None:
        if self._receive_task is None:
            self._receive_task = asyncio.get_running_loop().create_task(self._receive_loop())

    async def _receive_loop(self) -> None:
        """Feed received chunks into the frame buffer until the stream ends."""
        error: TransportError
        try:
            async for chunk in self._connection.receive():
                _LOGGER.debug("Received %d bytes", len(chunk))
                self._buffer.feed(chunk)
                self._dispatch()
        except TransportError as err:
            error = err
        except OSError as err:
            error = TransportError(f"Socket error: {err}")
            error.__cause__ = err
        else:
            error = TransportError("Connection closed by peer")

        self._receive_error = error
        if self._state is not ClientState.CLOSED:
            _LOGGER.error("Modbus connection lost: %s", error)
        self._fail_pending(error)


__all__ = ["ClientState", "ModbusTcpClient"]
