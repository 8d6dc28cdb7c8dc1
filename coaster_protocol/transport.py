# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Serial transport for the coaster bootloader.

Drives a HostSession over a blocking serial port (USB CDC or UART).
Stalls are detected here, by the read timeout, not by the session.
"""

import logging
import time
from pathlib import Path
from typing import Callable, List, Optional

import serial
import serial.tools.list_ports

from .errors import SessionError, TimeoutError, UploadError
from .log import TRACE
from .messages import CHUNK_SIZE, GoodbyeReason, VersionNumber
from .session import HostSession, HostState, Progress

logger = logging.getLogger(__name__)

DEFAULT_BAUDRATE = 115200
DEFAULT_TIMEOUT = 5.0
SETTLE_DELAY = 0.1
MAX_READ_SIZE = 1024

ProgressCallback = Callable[[Progress], None]


def list_ports() -> List[str]:
    """Return the device names of the available serial ports."""
    return [port.device for port in serial.tools.list_ports.comports()]


class SerialTransport:
    """
    Serial transport for the coaster bootloader.

    Can be used as a context manager:
        with SerialTransport("/dev/ttyACM0") as t:
            t.upload_firmware(firmware)
    """

    def __init__(
        self,
        port: str,
        baudrate: int = DEFAULT_BAUDRATE,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Open a connection to the bootloader.

        Args:
            port: Serial port path (e.g., "/dev/ttyACM0")
            baudrate: Baud rate (default 115200)
            timeout: Read timeout in seconds (default 5.0)
        """
        self._ser = serial.Serial(port, baudrate, timeout=timeout)
        time.sleep(SETTLE_DELAY)  # Let the device settle
        logger.debug("Opened %s at %d baud, timeout %.1fs", port, baudrate, timeout)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def close(self):
        """Close the serial connection."""
        if self._ser and self._ser.is_open:
            self._ser.close()

    @property
    def port(self) -> str:
        """Return the serial port name."""
        return self._ser.port

    def _send(self, data: bytes):
        """Send raw bytes."""
        logger.log(TRACE, "Sending %d bytes", len(data))
        self._ser.write(data)
        self._ser.flush()

    def _receive(self) -> bytes:
        """Receive whatever is available (at least one byte)."""
        waiting = self._ser.in_waiting
        data = self._ser.read(min(max(waiting, 1), MAX_READ_SIZE))
        if not data:
            raise TimeoutError("Timeout waiting for data from device")
        logger.log(TRACE, "Received %d bytes", len(data))
        return data

    def run_session(
        self,
        session: HostSession,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> HostSession:
        """
        Drive a session until the device says Goodbye.

        Args:
            session: Session to run (started here if still in START)
            progress_callback: Optional callback(Progress), called when progress changes

        Returns:
            The finished session

        Raises:
            TimeoutError: If the device stops answering
            SessionError: If the exchange fails
        """
        if session.state is HostState.START:
            session.feed()

        last_progress = None
        while not session.is_done():
            frame = session.take_outgoing()
            if frame is not None:
                self._send(frame)

            session.feed(self._receive())

            if progress_callback and session.chunk_size:
                progress = session.progress()
                if progress != last_progress:
                    progress_callback(progress)
                    last_progress = progress

        return session

    def upload_firmware(
        self,
        firmware: bytes,
        version: VersionNumber = VersionNumber(),
        progress_callback: Optional[ProgressCallback] = None,
        payload_size: int = CHUNK_SIZE,
    ) -> HostSession:
        """
        Upload firmware to the bootloader.

        Args:
            firmware: Firmware binary data
            version: Firmware version announced to the device
            progress_callback: Optional callback(Progress)
            payload_size: Padded chunk length the device expects

        Returns:
            The finished session

        Raises:
            UploadError: If the transfer fails or the device rejects the image
            TimeoutError: If the device stops answering
        """
        session = HostSession(firmware, version=version, payload_size=payload_size)
        try:
            self.run_session(session, progress_callback)
        except SessionError as e:
            raise UploadError(f"Upload failed: {e}", e) from e

        if session.goodbye_reason == GoodbyeReason.DOWNLOAD_HASH_MISMATCH:
            raise UploadError("Device rejected image: hash mismatch")
        return session

    def upload_firmware_file(
        self,
        path: Path,
        version: VersionNumber = VersionNumber(),
        progress_callback: Optional[ProgressCallback] = None,
    ) -> bytes:
        """
        Upload firmware from a file.

        Returns:
            Ascon-Hash256 of the uploaded firmware

        Raises:
            UploadError: If upload fails
            FileNotFoundError: If firmware file not found
        """
        firmware = Path(path).read_bytes()
        session = self.upload_firmware(firmware, version, progress_callback)
        return session.image_hash
