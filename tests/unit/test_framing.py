"""Unit tests for the Modbus TCP frame codec."""

from __future__ import annotations

import struct

import pytest
from frames import exception_response, read_response, write_response

from pymbtcp.exceptions import (
    DeviceExceptionError,
    InvalidParametersError,
    MalformedFrameError,
    ProtocolError,
)
from pymbtcp.framing import (
    FrameBuffer,
    MBAPHeader,
    decode_read_response,
    decode_write_response,
    encode_read_request,
    encode_write_request,
    peek_frame_size,
)


class TestMBAPHeader:
    """Tests for MBAP header packing."""

    def test_pack(self) -> None:
        """Test header serializes big-endian."""
        header = MBAPHeader(transaction_id=0x1234, protocol_id=0, length=6, unit_id=0x11)
        assert header.pack() == bytes.fromhex("12340000000611")

    def test_unpack(self) -> None:
        """Test header parses from the start of a frame."""
        header = MBAPHeader.unpack(bytes.fromhex("00010000000701030400"))

        assert header.transaction_id == 1
        assert header.protocol_id == 0
        assert header.length == 7
        assert header.unit_id == 1
        assert header.frame_size == 13

    def test_unpack_too_short(self) -> None:
        """Test unpacking fewer than 7 bytes fails."""
        with pytest.raises(MalformedFrameError):
            MBAPHeader.unpack(b"\x00\x01\x00\x00\x00\x06")


class TestEncodeReadRequest:
    """Tests for Read Holding Registers request encoding."""

    def test_known_frame(self) -> None:
        """Test read of 2 registers at 0 with transaction 1, unit 1."""
        frame = encode_read_request(0x0001, 1, 0x0000, 2)
        assert frame == bytes.fromhex("000100000006010300000002")

    def test_fields_big_endian(self) -> None:
        """Test address and count are encoded big-endian."""
        frame = encode_read_request(0xABCD, 0x11, 0x1234, 125)

        assert frame[0:2] == b"\xab\xcd"
        assert frame[6] == 0x11
        assert frame[8:10] == b"\x12\x34"
        assert frame[10:12] == b"\x00\x7d"

    @pytest.mark.parametrize("count", [0, 126, 1000])
    def test_count_out_of_range(self, count: int) -> None:
        """Test count outside 1..125 is rejected."""
        with pytest.raises(InvalidParametersError, match="count"):
            encode_read_request(1, 1, 0, count)

    def test_range_past_address_space(self) -> None:
        """Test a read running past register 65535 is rejected."""
        with pytest.raises(InvalidParametersError, match="address space"):
            encode_read_request(1, 1, 0xFFFF, 2)

    def test_last_register(self) -> None:
        """Test reading the very last register is allowed."""
        frame = encode_read_request(1, 1, 0xFFFF, 1)
        assert frame[8:12] == b"\xff\xff\x00\x01"

    @pytest.mark.parametrize(
        ("transaction_id", "unit_id", "address"),
        [(-1, 1, 0), (0x10000, 1, 0), (1, 256, 0), (1, -1, 0), (1, 1, 0x10000)],
    )
    def test_header_fields_out_of_range(
        self, transaction_id: int, unit_id: int, address: int
    ) -> None:
        """Test out-of-range header fields are rejected."""
        with pytest.raises(InvalidParametersError):
            encode_read_request(transaction_id, unit_id, address, 1)


class TestEncodeWriteRequest:
    """Tests for Write Multiple Registers request encoding."""

    def test_known_frame(self) -> None:
        """Test write of 0x00FF to register 0x0010."""
        frame = encode_write_request(0x0001, 1, 0x0010, [0x00FF])
        assert frame == bytes.fromhex("00010000000901100010000102" "00ff")

    @pytest.mark.parametrize("count", [1, 10, 123])
    def test_length_field(self, count: int) -> None:
        """Test length field equals 7 + 2n and matches the frame."""
        frame = encode_write_request(1, 1, 0, list(range(count)))
        length = struct.unpack_from(">H", frame, 4)[0]

        assert length == 7 + 2 * count
        assert len(frame) == 6 + length
        assert frame[12] == 2 * count

    def test_values_big_endian(self) -> None:
        """Test register values follow the byte count big-endian."""
        frame = encode_write_request(1, 1, 0, [0x1234, 0xFFFF, 0])
        assert frame[13:] == bytes.fromhex("1234ffff0000")

    def test_empty_values(self) -> None:
        """Test writing no registers is rejected."""
        with pytest.raises(InvalidParametersError):
            encode_write_request(1, 1, 0, [])

    def test_too_many_values(self) -> None:
        """Test writing more than 123 registers is rejected."""
        with pytest.raises(InvalidParametersError):
            encode_write_request(1, 1, 0, [0] * 124)

    @pytest.mark.parametrize("value", [-1, 0x10000])
    def test_value_out_of_range(self, value: int) -> None:
        """Test values that do not fit in 16 bits are rejected."""
        with pytest.raises(InvalidParametersError, match=r"values\[1\]"):
            encode_write_request(1, 1, 0, [0, value])


class TestDecodeReadResponse:
    """Tests for Read Holding Registers response decoding."""

    def test_known_frame(self) -> None:
        """Test decoding two registers 10 and 20."""
        frame = bytes.fromhex("00010000000701030400" "0a0014")
        assert decode_read_response(frame, 2) == [10, 20]

    @pytest.mark.parametrize("count", [1, 2, 64, 125])
    def test_values_in_order(self, count: int) -> None:
        """Test decoded values come back in wire order."""
        values = [(i * 257) & 0xFFFF for i in range(count)]
        assert decode_read_response(read_response(7, values), count) == values

    def test_matching_transaction_id(self) -> None:
        """Test decoding with the expected transaction id."""
        frame = read_response(42, [1])
        assert decode_read_response(frame, 1, transaction_id=42) == [1]

    def test_transaction_id_mismatch(self) -> None:
        """Test a response for another transaction is rejected."""
        frame = read_response(41, [1])
        with pytest.raises(ProtocolError, match="Transaction id mismatch"):
            decode_read_response(frame, 1, transaction_id=42)

    @pytest.mark.parametrize("size", [0, 1, 7, 9, 12])
    def test_truncated(self, size: int) -> None:
        """Test any prefix of a valid response is malformed."""
        frame = read_response(1, [10, 20])
        with pytest.raises(MalformedFrameError):
            decode_read_response(frame[:size], 2)

    def test_shorter_than_expected_count(self) -> None:
        """Test a complete frame with fewer registers than requested."""
        frame = read_response(1, [10])
        with pytest.raises(MalformedFrameError):
            decode_read_response(frame, 2)

    def test_wrong_byte_count(self) -> None:
        """Test a byte count that disagrees with the request."""
        frame = bytearray(read_response(1, [10, 20, 30]))
        frame[8] = 4
        with pytest.raises(ProtocolError, match="Byte count"):
            decode_read_response(bytes(frame), 3)

    def test_wrong_function_code(self) -> None:
        """Test a response for another function is rejected."""
        frame = bytearray(read_response(1, [10]))
        frame[7] = 0x04
        with pytest.raises(ProtocolError, match="Function code mismatch"):
            decode_read_response(bytes(frame), 1)

    def test_nonzero_protocol_id(self) -> None:
        """Test a non-Modbus protocol id is malformed."""
        frame = bytearray(read_response(1, [10]))
        frame[3] = 0x01
        with pytest.raises(MalformedFrameError, match="protocol id"):
            decode_read_response(bytes(frame), 1)

    def test_device_exception(self) -> None:
        """Test an exception response surfaces the device's code."""
        frame = exception_response(1, 0x03, 0x02)

        with pytest.raises(DeviceExceptionError) as exc_info:
            decode_read_response(frame, 10)

        assert exc_info.value.function_code == 0x03
        assert exc_info.value.exception_code == 0x02
        assert exc_info.value.description == "Illegal data address"

    def test_device_exception_for_other_function(self) -> None:
        """Test any function code with the high bit set is a device exception."""
        frame = exception_response(1, 0x10, 0x04)

        with pytest.raises(DeviceExceptionError) as exc_info:
            decode_read_response(frame, 1)

        assert exc_info.value.function_code == 0x10
        assert exc_info.value.exception_code == 0x04

    def test_device_exception_without_code(self) -> None:
        """Test an exception response cut before its code is malformed."""
        frame = exception_response(1, 0x03, 0x02)[:8]
        with pytest.raises(MalformedFrameError):
            decode_read_response(frame, 1)


class TestDecodeWriteResponse:
    """Tests for Write Multiple Registers response decoding."""

    def test_confirmed(self) -> None:
        """Test an exact echo confirms the write."""
        frame = bytes.fromhex("000100000006011000100001")
        assert decode_write_response(frame, 0x0010, 1) is True

    def test_count_mismatch(self) -> None:
        """Test an echo with a different count leaves the write unconfirmed."""
        frame = write_response(1, 0x0010, 2)
        with pytest.raises(ProtocolError, match="echoed count"):
            decode_write_response(frame, 0x0010, 1)

    def test_address_mismatch(self) -> None:
        """Test an echo with a different address leaves the write unconfirmed."""
        frame = write_response(1, 0x0011, 1)
        with pytest.raises(ProtocolError, match="echoed address"):
            decode_write_response(frame, 0x0010, 1)

    def test_truncated(self) -> None:
        """Test a response shorter than 12 bytes is malformed."""
        frame = write_response(1, 0x0010, 1)[:11]
        with pytest.raises(MalformedFrameError):
            decode_write_response(frame, 0x0010, 1)

    def test_read_response_rejected(self) -> None:
        """Test a read response cannot confirm a write."""
        frame = read_response(1, [0x0010, 0x0001])
        with pytest.raises(ProtocolError):
            decode_write_response(frame, 0x0010, 1)

    def test_device_exception(self) -> None:
        """Test an exception response to a write."""
        frame = exception_response(1, 0x10, 0x04)

        with pytest.raises(DeviceExceptionError) as exc_info:
            decode_write_response(frame, 0x0010, 1)

        assert exc_info.value.function_code == 0x10
        assert exc_info.value.exception_code == 0x04

    def test_transaction_id_mismatch(self) -> None:
        """Test a stale write echo is rejected."""
        frame = write_response(3, 0x0010, 1)
        with pytest.raises(ProtocolError):
            decode_write_response(frame, 0x0010, 1, transaction_id=4)


class TestPeekFrameSize:
    """Tests for reading the declared frame size."""

    def test_needs_six_bytes(self) -> None:
        """Test size is unknown until the length field has arrived."""
        assert peek_frame_size(b"\x00\x01\x00\x00\x00") is None

    def test_size_from_length(self) -> None:
        """Test size is the 6-byte prefix plus the length field."""
        assert peek_frame_size(b"\x00\x01\x00\x00\x00\x07") == 13


class TestFrameBuffer:
    """Tests for reassembling frames from a byte stream."""

    def test_empty(self) -> None:
        """Test an empty buffer yields nothing."""
        buffer = FrameBuffer()
        assert buffer.next_frame() is None
        assert len(buffer) == 0

    def test_fragmented_frame(self) -> None:
        """Test a frame delivered one byte at a time."""
        frame = read_response(1, [10, 20])
        buffer = FrameBuffer()

        for byte in frame[:-1]:
            buffer.feed(bytes([byte]))
            assert buffer.next_frame() is None

        buffer.feed(frame[-1:])
        assert buffer.next_frame() == frame
        assert len(buffer) == 0

    def test_coalesced_frames(self) -> None:
        """Test two frames in one chunk come out one at a time."""
        first = read_response(1, [10])
        second = write_response(2, 0x0010, 1)
        buffer = FrameBuffer()
        buffer.feed(first + second + b"\x00\x03")

        assert buffer.next_frame() == first
        assert buffer.next_frame() == second
        assert buffer.next_frame() is None
        assert len(buffer) == 2

    def test_invalid_length_field(self) -> None:
        """Test a length that no Modbus frame can have."""
        buffer = FrameBuffer()
        buffer.feed(b"\x00\x01\x00\x00\x00\x00")
        with pytest.raises(MalformedFrameError, match="length"):
            buffer.next_frame()

    def test_oversized_length_field(self) -> None:
        """Test a length beyond the largest PDU."""
        buffer = FrameBuffer()
        buffer.feed(b"\x00\x01\x00\x00\x01\x00")
        with pytest.raises(MalformedFrameError):
            buffer.next_frame()

    def test_clear(self) -> None:
        """Test clear() drops partial data."""
        buffer = FrameBuffer()
        buffer.feed(b"\x00\x01\x00")
        buffer.clear()
        assert len(buffer) == 0
