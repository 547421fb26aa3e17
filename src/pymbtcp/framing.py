"""Modbus TCP frame codec.

Pure functions that build MBAP-framed requests and validate raw responses
against the request that produced them, plus :class:`FrameBuffer` for
reassembling frames from a byte stream.

Frame layout (all multi-byte fields big-endian):
- Bytes 0-1: Transaction id
- Bytes 2-3: Protocol id (always 0x0000)
- Bytes 4-5: Length (bytes that follow: unit id + PDU)
- Byte 6: Unit id
- Byte 7: Function code (high bit set on exception responses)
- Bytes 8+: Function data

Decoders check ``len(buffer)`` before every indexed access; a short read or
a corrupted device response raises :class:`MalformedFrameError` instead of
indexing out of bounds.
"""

from __future__ import annotations

import logging
import struct
from collections.abc import Sequence
from dataclasses import dataclass

from .constants import (
    EXCEPTION_FLAG,
    EXCEPTION_RESPONSE_SIZE,
    FUNC_READ_HOLDING_REGISTERS,
    FUNC_WRITE_MULTIPLE_REGISTERS,
    MAX_MBAP_LENGTH,
    MAX_READ_REGISTERS,
    MAX_REGISTER_ADDRESS,
    MAX_REGISTER_VALUE,
    MAX_TRANSACTION_ID,
    MAX_UNIT_ID,
    MAX_WRITE_REGISTERS,
    MBAP_HEADER_SIZE,
    MBAP_PREFIX_SIZE,
    MIN_MBAP_LENGTH,
    MODBUS_PROTOCOL_ID,
    READ_RESPONSE_OVERHEAD,
    WRITE_RESPONSE_SIZE,
)
from .exceptions import (
    DeviceExceptionError,
    InvalidParametersError,
    MalformedFrameError,
    ProtocolError,
)

_LOGGER = logging.getLogger(__name__)

_MBAP_STRUCT = struct.Struct(">HHHB")


@dataclass(frozen=True)
class MBAPHeader:
    """Modbus Application Protocol header."""

    transaction_id: int
    protocol_id: int
    length: int
    unit_id: int

    @property
    def frame_size(self) -> int:
        """Total size of the frame this header announces."""
        return MBAP_PREFIX_SIZE + self.length

    def pack(self) -> bytes:
        """Serialize the header to its 7-byte wire form."""
        return _MBAP_STRUCT.pack(self.transaction_id, self.protocol_id, self.length, self.unit_id)

    @classmethod
    def unpack(cls, buffer: bytes) -> MBAPHeader:
        """Parse the header at the start of ``buffer``.

        Raises:
            MalformedFrameError: If fewer than 7 bytes are available
        """
        if len(buffer) < MBAP_HEADER_SIZE:
            raise MalformedFrameError(
                f"Frame too short for MBAP header: {len(buffer)} bytes"
            )
        return cls(*_MBAP_STRUCT.unpack_from(buffer))


def _check_range(name: str, value: int, low: int, high: int) -> None:
    if not low <= value <= high:
        raise InvalidParametersError(f"{name} must be in {low}..{high}, got {value}")


def _check_common(transaction_id: int, unit_id: int, start_address: int) -> None:
    _check_range("transaction_id", transaction_id, 0, MAX_TRANSACTION_ID)
    _check_range("unit_id", unit_id, 0, MAX_UNIT_ID)
    _check_range("start_address", start_address, 0, MAX_REGISTER_ADDRESS)


def _check_span(start_address: int, count: int) -> None:
    if start_address + count > MAX_REGISTER_ADDRESS + 1:
        raise InvalidParametersError(
            f"Register range {start_address}+{count} exceeds address space"
        )


def _frame(transaction_id: int, unit_id: int, pdu: bytes) -> bytes:
    # Length covers the unit id plus the PDU, so it is only known once the
    # PDU has been assembled.
    header = MBAPHeader(
        transaction_id=transaction_id,
        protocol_id=MODBUS_PROTOCOL_ID,
        length=1 + len(pdu),
        unit_id=unit_id,
    )
    return header.pack() + pdu


def encode_read_request(
    transaction_id: int,
    unit_id: int,
    start_address: int,
    count: int,
) -> bytes:
    """Build a Read Holding Registers (0x03) request frame.

    Args:
        transaction_id: 16-bit id echoed back by the device
        unit_id: Device/slave address
        start_address: First register to read
        count: Number of registers (1-125)

    Returns:
        Complete 12-byte request frame

    Raises:
        InvalidParametersError: If any field is outside protocol bounds
    """
    _check_common(transaction_id, unit_id, start_address)
    _check_range("count", count, 1, MAX_READ_REGISTERS)
    _check_span(start_address, count)

    pdu = struct.pack(">BHH", FUNC_READ_HOLDING_REGISTERS, start_address, count)
    return _frame(transaction_id, unit_id, pdu)


def encode_write_request(
    transaction_id: int,
    unit_id: int,
    start_address: int,
    values: Sequence[int],
) -> bytes:
    """Build a Write Multiple Registers (0x10) request frame.

    Args:
        transaction_id: 16-bit id echoed back by the device
        unit_id: Device/slave address
        start_address: First register to write
        values: Register values (1-123 values, each 0-65535)

    Returns:
        Complete request frame (13 + 2 * len(values) bytes)

    Raises:
        InvalidParametersError: If any field is outside protocol bounds
    """
    _check_common(transaction_id, unit_id, start_address)
    count = len(values)
    _check_range("number of values", count, 1, MAX_WRITE_REGISTERS)
    _check_span(start_address, count)
    for offset, value in enumerate(values):
        _check_range(f"values[{offset}]", value, 0, MAX_REGISTER_VALUE)

    pdu = struct.pack(
        f">BHHB{count}H",
        FUNC_WRITE_MULTIPLE_REGISTERS,
        start_address,
        count,
        count * 2,
        *values,
    )
    return _frame(transaction_id, unit_id, pdu)


def _check_response_function(
    buffer: bytes,
    function_code: int,
    transaction_id: int | None,
) -> None:
    """Validate the header and function code shared by every response.

    Raises:
        MalformedFrameError: Frame too short or not a Modbus frame
        ProtocolError: Transaction id or function code mismatch
        DeviceExceptionError: Device returned an exception response
    """
    if len(buffer) < MBAP_HEADER_SIZE + 1:
        raise MalformedFrameError(f"Response too short: {len(buffer)} bytes")

    header = MBAPHeader.unpack(buffer)
    if header.protocol_id != MODBUS_PROTOCOL_ID:
        raise MalformedFrameError(f"Unexpected protocol id 0x{header.protocol_id:04x}")

    if transaction_id is not None and header.transaction_id != transaction_id:
        raise ProtocolError(
            f"Transaction id mismatch: expected {transaction_id}, "
            f"got {header.transaction_id}"
        )

    response_func = buffer[MBAP_HEADER_SIZE]
    if response_func & EXCEPTION_FLAG:
        if len(buffer) < EXCEPTION_RESPONSE_SIZE:
            raise MalformedFrameError("Exception response is missing its exception code")
        raise DeviceExceptionError(
            response_func & ~EXCEPTION_FLAG, buffer[MBAP_HEADER_SIZE + 1]
        )

    if response_func != function_code:
        raise ProtocolError(
            f"Function code mismatch: expected 0x{function_code:02x}, "
            f"got 0x{response_func:02x}"
        )


def decode_read_response(
    buffer: bytes,
    expected_count: int,
    *,
    transaction_id: int | None = None,
) -> list[int]:
    """Decode a Read Holding Registers response.

    Args:
        buffer: Raw response frame
        expected_count: Register count of the original request
        transaction_id: When given, the echoed transaction id must match

    Returns:
        Register values in request order

    Raises:
        MalformedFrameError: If the frame is truncated or not Modbus
        ProtocolError: If the response does not match the request
        DeviceExceptionError: If the device returned an exception
    """
    _check_response_function(buffer, FUNC_READ_HOLDING_REGISTERS, transaction_id)

    expected_bytes = expected_count * 2
    if len(buffer) < READ_RESPONSE_OVERHEAD + expected_bytes:
        raise MalformedFrameError(
            f"Response truncated: expected {READ_RESPONSE_OVERHEAD + expected_bytes} "
            f"bytes, got {len(buffer)}"
        )

    byte_count = buffer[READ_RESPONSE_OVERHEAD - 1]
    if byte_count != expected_bytes:
        raise ProtocolError(
            f"Byte count mismatch: expected {expected_bytes}, got {byte_count}"
        )

    return list(struct.unpack_from(f">{expected_count}H", buffer, READ_RESPONSE_OVERHEAD))


def decode_write_response(
    buffer: bytes,
    request_address: int,
    request_count: int,
    *,
    transaction_id: int | None = None,
) -> bool:
    """Decode a Write Multiple Registers response.

    The device confirms a write by echoing the start address and register
    count. Anything else leaves the write unconfirmed.

    Args:
        buffer: Raw response frame
        request_address: Start address of the original request
        request_count: Register count of the original request
        transaction_id: When given, the echoed transaction id must match

    Returns:
        True when the device confirmed the write

    Raises:
        MalformedFrameError: If the frame is truncated or not Modbus
        ProtocolError: If the echo does not match the request
        DeviceExceptionError: If the device returned an exception
    """
    _check_response_function(buffer, FUNC_WRITE_MULTIPLE_REGISTERS, transaction_id)

    if len(buffer) < WRITE_RESPONSE_SIZE:
        raise MalformedFrameError(
            f"Response truncated: expected {WRITE_RESPONSE_SIZE} bytes, got {len(buffer)}"
        )

    address, count = struct.unpack_from(">HH", buffer, MBAP_HEADER_SIZE + 1)
    if address != request_address:
        raise ProtocolError(
            f"Write unconfirmed: echoed address {address}, expected {request_address}"
        )
    if count != request_count:
        raise ProtocolError(
            f"Write unconfirmed: echoed count {count}, expected {request_count}"
        )
    return True


def peek_frame_size(buffer: bytes | bytearray) -> int | None:
    """Return the size of the frame at the start of ``buffer``.

    Returns None until the 6-byte prefix holding the length field is
    available.
    """
    if len(buffer) < MBAP_PREFIX_SIZE:
        return None
    (length,) = struct.unpack_from(">H", buffer, 4)
    return MBAP_PREFIX_SIZE + length


class FrameBuffer:
    """Accumulates stream bytes and splits them into MBAP frames.

    The transport delivers an arbitrary byte stream: a frame may arrive in
    several chunks and one chunk may hold more than one frame. Each call to
    :meth:`next_frame` returns at most one frame and keeps the rest.
    """

    def __init__(self) -> None:
        self._data = bytearray()

    def __len__(self) -> int:
        return len(self._data)

    def feed(self, data: bytes) -> None:
        """Append received bytes."""
        self._data.extend(data)

    def clear(self) -> None:
        """Discard everything buffered."""
        if self._data:
            _LOGGER.debug(
                "Discarding %d buffered bytes: %s",
                len(self._data),
                self._data.hex()[:100],
            )
        self._data.clear()

    def next_frame(self) -> bytes | None:
        """Pop one complete frame, or return None if it has not fully arrived.

        Raises:
            MalformedFrameError: If the declared length cannot belong to a
                Modbus frame (the stream is out of sync)
        """
        frame_size = peek_frame_size(self._data)
        if frame_size is None:
            return None

        length = frame_size - MBAP_PREFIX_SIZE
        if not MIN_MBAP_LENGTH <= length <= MAX_MBAP_LENGTH:
            raise MalformedFrameError(f"Invalid MBAP length field: {length}")

        if len(self._data) < frame_size:
            return None

        frame = bytes(self._data[:frame_size])
        del self._data[:frame_size]
        if self._data:
            _LOGGER.debug("Keeping %d surplus bytes after frame", len(self._data))
        return frame


__all__ = [
    "FrameBuffer",
    "MBAPHeader",
    "decode_read_response",
    "decode_write_response",
    "encode_read_request",
    "encode_write_request",
    "peek_frame_size",
]
