#!/usr/bin/env python3
"""Modbus TCP diagnostic tool for pymbtcp.

Reads or writes holding registers on a Modbus TCP device through
pymbtcp's client, optionally cross-checking reads against the pymodbus
reference client to spot framing or decoding differences.

Connection defaults come from the environment (``MODBUS_HOST``,
``MODBUS_PORT``, ``MODBUS_UNIT_ID``, ``MODBUS_TIMEOUT``), loaded from a
``.env`` file when present. Command line options override them.

Usage:
    pymbtcp-diag --host 192.168.1.50 read 0 10
    pymbtcp-diag --host 192.168.1.50 read 0 10 --cross-check
    pymbtcp-diag --host 192.168.1.50 write 100 1 0x00FF 42
    pymbtcp-diag --help
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv

from pymbtcp import __version__
from pymbtcp.config import ClientConfig
from pymbtcp.exceptions import ModbusError, TransportConnectionError
from pymbtcp.factory import create_client

_LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_MISMATCH = 2


def parse_register_value(text: str) -> int:
    """Parse a register value given in decimal or 0x-prefixed hex."""
    try:
        value = int(text, 0)
    except ValueError as err:
        raise argparse.ArgumentTypeError(f"invalid register value: {text!r}") from err
    if not 0 <= value <= 0xFFFF:
        raise argparse.ArgumentTypeError(f"register value out of range: {text!r}")
    return value


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="pymbtcp-diag",
        description="Read and write Modbus TCP holding registers for diagnostics.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  pymbtcp-diag --host 192.168.1.50 read 0 10
      Read holding registers 0-9

  pymbtcp-diag --host 192.168.1.50 read 0 10 --cross-check
      Read the same range with pymodbus and report differences

  pymbtcp-diag --host 192.168.1.50 --unit-id 3 write 100 1 0x00FF
      Write two registers starting at 100 on unit 3
""",
    )

    conn_group = parser.add_argument_group("Connection Options")
    conn_group.add_argument(
        "--host",
        "-H",
        help="Device IP address (default: $MODBUS_HOST)",
    )
    conn_group.add_argument(
        "--port",
        "-p",
        type=int,
        help="TCP port (default: $MODBUS_PORT or 502)",
    )
    conn_group.add_argument(
        "--unit-id",
        "-u",
        type=int,
        help="Modbus unit id (default: $MODBUS_UNIT_ID or 1)",
    )
    conn_group.add_argument(
        "--timeout",
        "-t",
        type=float,
        help="Response timeout in seconds (default: $MODBUS_TIMEOUT or 5.0)",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log frame traffic",
    )
    parser.add_argument(
        "--version",
        "-V",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    read_parser = subparsers.add_parser("read", help="Read holding registers")
    read_parser.add_argument("start", type=parse_register_value, help="Start address")
    read_parser.add_argument("count", type=int, help="Number of registers (1-125)")
    read_parser.add_argument(
        "--cross-check",
        action="store_true",
        help="Also read with pymodbus and compare the results",
    )

    write_parser = subparsers.add_parser("write", help="Write holding registers")
    write_parser.add_argument("start", type=parse_register_value, help="Start address")
    write_parser.add_argument(
        "values",
        type=parse_register_value,
        nargs="+",
        help="Register values (decimal or 0x hex, 1-123 values)",
    )

    return parser


def build_config(args: argparse.Namespace) -> ClientConfig:
    """Merge environment defaults with command line overrides.

    Raises:
        ValueError: If the resulting configuration is invalid
    """
    config = ClientConfig.from_env()
    if args.host:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.unit_id is not None:
        config.unit_id = args.unit_id
    if args.timeout is not None:
        config.timeout = args.timeout
    config.validate()
    return config


def format_registers(start: int, values: list[int]) -> list[str]:
    """Format registers as ``address  decimal  hex`` rows."""
    return [
        f"  {start + offset:5d}  {value:5d}  0x{value:04X}"
        for offset, value in enumerate(values)
    ]


def compare_registers(
    start: int,
    ours: list[int],
    reference: list[int],
) -> list[tuple[int, int | None, int | None]]:
    """List ``(address, ours, reference)`` for every differing register."""
    mismatches: list[tuple[int, int | None, int | None]] = []
    for offset in range(max(len(ours), len(reference))):
        mine = ours[offset] if offset < len(ours) else None
        theirs = reference[offset] if offset < len(reference) else None
        if mine != theirs:
            mismatches.append((start + offset, mine, theirs))
    return mismatches


async def read_reference_registers(config: ClientConfig, start: int, count: int) -> list[int]:
    """Read holding registers with pymodbus' AsyncModbusTcpClient.

    Raises:
        TransportConnectionError: If pymodbus cannot connect
        ModbusError: If pymodbus reports an error response
    """
    from pymodbus.client import AsyncModbusTcpClient
    from pymodbus.exceptions import ModbusException

    client = AsyncModbusTcpClient(host=config.host, port=config.port, timeout=config.timeout)
    try:
        connected = await client.connect()
        if not connected:
            raise TransportConnectionError(
                f"pymodbus failed to connect to {config.host}:{config.port}"
            )
        try:
            result = await client.read_holding_registers(
                address=start,
                count=count,
                device_id=config.unit_id,
            )
        except ModbusException as err:
            raise ModbusError(f"pymodbus read failed at address {start}: {err}") from err
        if result.isError():
            raise ModbusError(f"pymodbus read error at address {start}: {result}")
        return list(result.registers)
    finally:
        client.close()


async def run_read(args: argparse.Namespace, config: ClientConfig) -> int:
    """Read registers, print them and optionally cross-check."""
    async with await create_client(config) as client:
        values = await client.read_holding_registers(args.start, args.count)

    print(f"Holding registers {args.start}-{args.start + len(values) - 1} "
          f"from {config.host}:{config.port} (unit {config.unit_id}):")
    for line in format_registers(args.start, values):
        print(line)

    if not args.cross_check:
        return EXIT_OK

    reference = await read_reference_registers(config, args.start, args.count)
    mismatches = compare_registers(args.start, values, reference)
    if not mismatches:
        print("✓ pymodbus cross-check: all registers match")
        return EXIT_OK

    print(f"⚠ pymodbus cross-check: {len(mismatches)} mismatches")
    for address, mine, theirs in mismatches:
        print(f"  {address:5d}  pymbtcp={mine}  pymodbus={theirs}")
    return EXIT_MISMATCH


async def run_write(args: argparse.Namespace, config: ClientConfig) -> int:
    """Write registers and report the device's confirmation."""
    async with await create_client(config) as client:
        await client.write_holding_registers(args.start, args.values)

    print(f"✓ Wrote {len(args.values)} registers at {args.start} "
          f"on {config.host}:{config.port} (unit {config.unit_id})")
    return EXIT_OK


async def run(args: argparse.Namespace) -> int:
    """Dispatch the selected subcommand."""
    try:
        config = build_config(args)
    except ValueError as err:
        print(f"✗ Invalid configuration: {err}", file=sys.stderr)
        return EXIT_ERROR

    try:
        if args.command == "read":
            return await run_read(args, config)
        return await run_write(args, config)
    except ModbusError as err:
        _LOGGER.debug("Command %s failed", args.command, exc_info=True)
        print(f"✗ {args.command} failed: {err}", file=sys.stderr)
        return EXIT_ERROR


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    load_dotenv()
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nCancelled.")
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
