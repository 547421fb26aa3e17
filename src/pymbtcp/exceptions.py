"""Exceptions raised by pymbtcp.

Every error derives from :class:`ModbusError` so callers can use a single
``except ModbusError`` around any client operation. None of these are
retried inside the library; retry policy belongs to the caller.
"""

from __future__ import annotations

from .constants import EXCEPTION_DESCRIPTIONS


class ModbusError(Exception):
    """Base exception for all pymbtcp errors."""

    pass


class InvalidParametersError(ModbusError):
    """Address, count or values are outside protocol bounds.

    Raised before any bytes are written to the connection.
    """

    pass


class BusyError(ModbusError):
    """A request is already awaiting its response."""

    pass


class TransportError(ModbusError):
    """The underlying connection failed to send or receive."""

    pass


class TransportConnectionError(TransportError):
    """Failed to connect to the device."""

    pass


class TransportTimeoutError(ModbusError):
    """No complete response arrived within the configured timeout."""

    pass


class ConnectionClosedError(ModbusError):
    """The client was closed, cancelling any outstanding request."""

    pass


class MalformedFrameError(ModbusError):
    """Received bytes are too short or inconsistent to be a Modbus frame."""

    pass


class ProtocolError(ModbusError):
    """Frame is well formed but does not answer the outstanding request.

    Covers a mismatched transaction id, function code, byte count or
    write echo. A write that fails with this error is unconfirmed.
    """

    pass


class DeviceExceptionError(ModbusError):
    """The device answered with a Modbus exception response."""

    def __init__(self, function_code: int, exception_code: int) -> None:
        """Initialize with the rejected function and the device's exception code.

        Args:
            function_code: Function code of the request (high bit cleared)
            exception_code: Exception code reported by the device
        """
        self.function_code = function_code
        self.exception_code = exception_code
        self.description = EXCEPTION_DESCRIPTIONS.get(exception_code, "Unknown exception")
        super().__init__(
            f"Device exception 0x{exception_code:02x} ({self.description}) "
            f"for function 0x{function_code:02x}"
        )


__all__ = [
    "BusyError",
    "ConnectionClosedError",
    "DeviceExceptionError",
    "InvalidParametersError",
    "MalformedFrameError",
    "ModbusError",
    "ProtocolError",
    "TransportConnectionError",
    "TransportError",
    "TransportTimeoutError",
]
