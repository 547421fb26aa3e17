"""Factory for connected Modbus TCP clients.

Example:
    config = ClientConfig(host="192.168.1.50", unit_id=1)
    async with await create_client(config) as client:
        values = await client.read_holding_registers(0, 4)
"""

from __future__ import annotations

import logging

from .client import ModbusTcpClient
from .config import ClientConfig
from .connection import open_connection

_LOGGER = logging.getLogger(__name__)


async def create_client(config: ClientConfig) -> ModbusTcpClient:
    """Validate ``config``, open the connection and build a client.

    Args:
        config: Device connection settings

    Returns:
        ModbusTcpClient owning the new connection

    Raises:
        ValueError: If the configuration is invalid
        TransportConnectionError: If the device cannot be reached
    """
    config.validate()

    connection = await open_connection(
        config.host,
        config.port,
        timeout=config.connect_timeout,
        retries=config.connection_retries,
    )
    _LOGGER.debug(
        "Creating Modbus client for %s:%s (unit %s, timeout %.1fs)",
        config.host,
        config.port,
        config.unit_id,
        config.timeout,
    )
    return ModbusTcpClient(connection, unit_id=config.unit_id, timeout=config.timeout)


__all__ = ["create_client"]
