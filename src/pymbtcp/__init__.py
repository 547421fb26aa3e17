"""Asyncio Modbus TCP master for reading and writing holding registers.

Usage:
    from pymbtcp import ClientConfig, create_client

    async with await create_client(ClientConfig(host="192.168.1.50")) as client:
        values = await client.read_holding_registers(0, 10)
        await client.write_holding_registers(100, [1, 2, 3])

    Bring your own connection (anything implementing ByteStreamConnection):
        from pymbtcp import ModbusTcpClient

        client = ModbusTcpClient(connection, unit_id=1, timeout=2.0)
"""

from __future__ import annotations

from .client import ClientState, ModbusTcpClient
from .config import ClientConfig
from .connection import ByteStreamConnection, StreamConnection, open_connection
from .exceptions import (
    BusyError,
    ConnectionClosedError,
    DeviceExceptionError,
    InvalidParametersError,
    MalformedFrameError,
    ModbusError,
    ProtocolError,
    TransportConnectionError,
    TransportError,
    TransportTimeoutError,
)
from .factory import create_client
from .framing import (
    FrameBuffer,
    MBAPHeader,
    decode_read_response,
    decode_write_response,
    encode_read_request,
    encode_write_request,
)

__version__ = "0.1.0"
__all__ = [
    # Client
    "ModbusTcpClient",
    "ClientState",
    "ClientConfig",
    "create_client",
    # Connection
    "ByteStreamConnection",
    "StreamConnection",
    "open_connection",
    # Frame codec
    "MBAPHeader",
    "FrameBuffer",
    "encode_read_request",
    "encode_write_request",
    "decode_read_response",
    "decode_write_response",
    # Exceptions
    "ModbusError",
    "InvalidParametersError",
    "BusyError",
    "TransportError",
    "TransportConnectionError",
    "TransportTimeoutError",
    "ConnectionClosedError",
    "MalformedFrameError",
    "ProtocolError",
    "DeviceExceptionError",
]
