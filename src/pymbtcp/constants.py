"""Modbus TCP protocol constants.

Function codes, MBAP header layout, per-request register limits and the
device exception codes defined by the Modbus Application Protocol
specification (V1.1b3).
"""

from __future__ import annotations

# MBAP header: transaction id (2) + protocol id (2) + length (2) + unit id (1)
MBAP_HEADER_SIZE = 7
# Bytes that precede the data counted by the length field
MBAP_PREFIX_SIZE = 6
MODBUS_PROTOCOL_ID = 0x0000

# Length field bounds: unit id + function code at minimum, unit id + 253-byte
# PDU at most
MIN_MBAP_LENGTH = 2
MAX_MBAP_LENGTH = 254

# Function codes
FUNC_READ_HOLDING_REGISTERS = 0x03
FUNC_WRITE_MULTIPLE_REGISTERS = 0x10
EXCEPTION_FLAG = 0x80

# Register limits per request. The byte-count field is a single octet
# (count * 2), so reads top out at 125 and writes at 123 registers.
MAX_READ_REGISTERS = 125
MAX_WRITE_REGISTERS = 123
MAX_REGISTER_ADDRESS = 0xFFFF
MAX_REGISTER_VALUE = 0xFFFF
MAX_TRANSACTION_ID = 0xFFFF
MAX_UNIT_ID = 0xFF

# Fixed response sizes
READ_RESPONSE_OVERHEAD = 9  # MBAP header + function code + byte count
WRITE_RESPONSE_SIZE = 12  # MBAP header + function code + address + count
EXCEPTION_RESPONSE_SIZE = 9  # MBAP header + function code + exception code

# Connection defaults
DEFAULT_PORT = 502
DEFAULT_UNIT_ID = 1
DEFAULT_TIMEOUT = 5.0
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_CONNECTION_RETRIES = 3
RECV_BUFFER_SIZE = 4096

# Device exception codes
EXCEPTION_ILLEGAL_FUNCTION = 0x01
EXCEPTION_ILLEGAL_ADDRESS = 0x02
EXCEPTION_ILLEGAL_VALUE = 0x03
EXCEPTION_DEVICE_FAILURE = 0x04
EXCEPTION_ACKNOWLEDGE = 0x05
EXCEPTION_DEVICE_BUSY = 0x06
EXCEPTION_MEMORY_PARITY_ERROR = 0x08
EXCEPTION_GATEWAY_PATH_UNAVAILABLE = 0x0A
EXCEPTION_GATEWAY_TARGET_FAILED = 0x0B

EXCEPTION_DESCRIPTIONS: dict[int, str] = {
    EXCEPTION_ILLEGAL_FUNCTION: "Illegal function",
    EXCEPTION_ILLEGAL_ADDRESS: "Illegal data address",
    EXCEPTION_ILLEGAL_VALUE: "Illegal data value",
    EXCEPTION_DEVICE_FAILURE: "Server device failure",
    EXCEPTION_ACKNOWLEDGE: "Acknowledge",
    EXCEPTION_DEVICE_BUSY: "Server device busy",
    EXCEPTION_MEMORY_PARITY_ERROR: "Memory parity error",
    EXCEPTION_GATEWAY_PATH_UNAVAILABLE: "Gateway path unavailable",
    EXCEPTION_GATEWAY_TARGET_FAILED: "Gateway target device failed to respond",
}
