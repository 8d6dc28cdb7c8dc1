#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Firmware upload tool for the SmartCoaster bootloader via USB CDC.

Usage:
    python coaster_upload.py firmware.bin
    python coaster_upload.py firmware.bin --port /dev/ttyACM0 --image-version 1.2.0
    python coaster_upload.py firmware.bin --log-level DEBUG
    python coaster_upload.py --list-ports

Requirements:
    pip install pyserial cbor2
"""

import argparse
import sys
from pathlib import Path

try:
    import serial
except ImportError:
    print("Error: pyserial not installed. Run: pip install pyserial")
    sys.exit(1)

from coaster_protocol import SerialTransport, VersionNumber, ascon_hash256, list_ports
from coaster_protocol.errors import TransportError, UploadError
from coaster_protocol.log import DEFAULT_LOG_LEVEL, LOG_LEVELS, configure_logging
from coaster_protocol.session import Progress
from coaster_protocol.transport import DEFAULT_BAUDRATE, DEFAULT_TIMEOUT


def cmd_list_ports():
    """List available serial ports."""
    ports = list_ports()
    if not ports:
        print("No serial ports found!")
        return
    print("Available serial ports:")
    for port in ports:
        print(f"  - {port}")


def cmd_upload(transport: SerialTransport, firmware_path: Path, version: VersionNumber) -> bool:
    """Upload firmware to the device."""
    firmware = firmware_path.read_bytes()
    if not firmware:
        print(f"Error: Firmware file is empty: {firmware_path}")
        return False
    digest = ascon_hash256(firmware)

    print(f"Firmware: {firmware_path} ({len(firmware)} bytes)")
    print(f"Hash:     {digest.hex()}")
    print(f"Version:  {version}")
    print()

    def progress(p: Progress):
        total = p.max_chunks + 1
        done = p.current_chunk + 1
        pct = done * 100 // total
        print(f"\rUploading: {pct:3d}% ({done}/{total} chunks)", end="", flush=True)

    print("Initiating contact with device...")
    try:
        transport.upload_firmware(firmware, version, progress)
    except UploadError as e:
        print(f"\nFAILED: {e}")
        return False

    print("\rUploading: 100% - Complete!                ")
    print()
    print("Firmware transfer completed - please wait for device to load firmware and boot")
    return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Firmware upload tool for the SmartCoaster bootloader"
    )
    parser.add_argument(
        "firmware",
        nargs="?",
        type=Path,
        help="Firmware binary file"
    )
    parser.add_argument(
        "--port", "-p",
        help="Serial port (default: first available port)"
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default=DEFAULT_LOG_LEVEL,
        choices=list(LOG_LEVELS),
        help=f"Log level (default {DEFAULT_LOG_LEVEL})"
    )
    parser.add_argument(
        "--image-version", "-v",
        type=VersionNumber.parse,
        default=VersionNumber(),
        help="Firmware version announced to the device, MAJOR.MINOR.PATCH"
    )
    parser.add_argument(
        "--baudrate", "-b",
        type=int,
        default=DEFAULT_BAUDRATE,
        help=f"Baud rate (default {DEFAULT_BAUDRATE})"
    )
    parser.add_argument(
        "--timeout", "-t",
        type=float,
        default=DEFAULT_TIMEOUT,
        help=f"Read timeout in seconds (default {DEFAULT_TIMEOUT})"
    )
    parser.add_argument(
        "--list-ports",
        action="store_true",
        help="List available serial ports and exit"
    )
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.log_level)

    if args.list_ports:
        cmd_list_ports()
        return

    if args.firmware is None:
        parser.error("the following arguments are required: firmware")

    if not args.firmware.exists():
        print(f"Error: File not found: {args.firmware}")
        sys.exit(1)

    port = args.port
    if port is None:
        ports = list_ports()
        if not ports:
            print("Error: No serial ports found!")
            sys.exit(1)
        port = ports[0]

    print("Starting SmartCoaster Firmware Loader")
    try:
        transport = SerialTransport(port, args.baudrate, args.timeout)
    except serial.SerialException as e:
        print(f"Error opening {port}: {e}")
        sys.exit(1)
    print(f"Connected to {port}")

    try:
        ok = cmd_upload(transport, args.firmware, args.image_version)
    except TransportError as e:
        print(f"\nError: {e}")
        sys.exit(1)
    finally:
        transport.close()

    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
