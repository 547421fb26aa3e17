"""Client configuration.

This module provides the ClientConfig dataclass for describing one Modbus
TCP device connection, with validation and serialization to/from plain
dictionaries and environment variables.

Example:
    config = ClientConfig(host="192.168.1.50", unit_id=3, timeout=2.0)
    config.validate()

    # Serialize to dict for storage
    data = config.to_dict()

    # Restore from dict
    restored = ClientConfig.from_dict(data)
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any

from .constants import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_CONNECTION_RETRIES,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT,
    DEFAULT_UNIT_ID,
    MAX_UNIT_ID,
)


@dataclass
class ClientConfig:
    """Configuration for a single Modbus TCP device connection.

    Attributes:
        host: IP address or hostname of the device
        port: TCP port (default 502)
        unit_id: Modbus unit/slave id (default 1)
        timeout: Response timeout in seconds
        connect_timeout: Timeout per connection attempt in seconds
        connection_retries: Number of connection attempts
    """

    host: str
    port: int = DEFAULT_PORT
    unit_id: int = DEFAULT_UNIT_ID
    timeout: float = DEFAULT_TIMEOUT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    connection_retries: int = DEFAULT_CONNECTION_RETRIES

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If configuration is invalid
        """
        if not self.host:
            raise ValueError("host is required")
        if not 1 <= self.port <= 65535:
            raise ValueError(f"port must be in 1..65535, got {self.port}")
        if not 0 <= self.unit_id <= MAX_UNIT_ID:
            raise ValueError(f"unit_id must be in 0..{MAX_UNIT_ID}, got {self.unit_id}")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.connect_timeout <= 0:
            raise ValueError("connect_timeout must be positive")
        if self.connection_retries < 1:
            raise ValueError("connection_retries must be at least 1")

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to a JSON-serializable dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ClientConfig:
        """Create configuration from a dictionary produced by to_dict()."""
        return cls(
            host=data.get("host", ""),
            port=int(data.get("port", DEFAULT_PORT)),
            unit_id=int(data.get("unit_id", DEFAULT_UNIT_ID)),
            timeout=float(data.get("timeout", DEFAULT_TIMEOUT)),
            connect_timeout=float(data.get("connect_timeout", DEFAULT_CONNECT_TIMEOUT)),
            connection_retries=int(
                data.get("connection_retries", DEFAULT_CONNECTION_RETRIES)
            ),
        )

    @classmethod
    def from_env(cls, prefix: str = "MODBUS_") -> ClientConfig:
        """Create configuration from environment variables.

        Reads ``{prefix}HOST``, ``{prefix}PORT``, ``{prefix}UNIT_ID``,
        ``{prefix}TIMEOUT``, ``{prefix}CONNECT_TIMEOUT`` and
        ``{prefix}CONNECTION_RETRIES``; unset variables keep their defaults.

        Raises:
            ValueError: If a numeric variable cannot be parsed
        """
        data: dict[str, str] = {}
        for field in (
            "host",
            "port",
            "unit_id",
            "timeout",
            "connect_timeout",
            "connection_retries",
        ):
            value = os.getenv(f"{prefix}{field.upper()}")
            if value:
                data[field] = value
        return cls.from_dict(data)


__all__ = ["ClientConfig"]
