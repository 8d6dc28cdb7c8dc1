# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Push/pull firmware loader for hosts that own their own event loop.

The caller pushes whatever bytes arrive from the device and pulls at
most one frame to send back, e.g. from a Web Serial callback or a GUI
timer:

    loader = FirmwareLoader(firmware)
    loader.init_session()
    while not loader.is_session_ended():
        frame = loader.get_bytes_to_send()
        if frame:
            port.write(frame)
        loader.handle_incoming_bytes(port.read())
"""

import logging
from typing import Optional

from .errors import SessionNotInitialized
from .messages import CHUNK_SIZE, VersionNumber
from .session import RX_BUFFER_SIZE, HostSession, Progress

logger = logging.getLogger(__name__)


class FirmwareLoader:
    """
    Owns a firmware image and the HostSession currently transferring it.

    init_session() always starts a fresh session, which is how a failed
    transfer is retried from the beginning.
    """

    def __init__(
        self,
        firmware: bytes,
        version: VersionNumber = VersionNumber(),
        rx_capacity: int = RX_BUFFER_SIZE,
        payload_size: int = CHUNK_SIZE,
    ):
        self._firmware = bytes(firmware)
        self._version = version
        self._rx_capacity = rx_capacity
        self._payload_size = payload_size
        self._session: Optional[HostSession] = None

    @property
    def firmware_size(self) -> int:
        return len(self._firmware)

    @property
    def session(self) -> Optional[HostSession]:
        return self._session

    def init_session(self) -> None:
        """Create a new session and queue its Hello."""
        self._session = HostSession(
            self._firmware,
            version=self._version,
            rx_capacity=self._rx_capacity,
            payload_size=self._payload_size,
        )
        self._session.feed()
        logger.debug("Session initialized for %d byte image", len(self._firmware))

    def handle_incoming_bytes(self, incoming: bytes) -> None:
        """Process bytes from the device. Session errors propagate."""
        self._require_session().feed(incoming)

    def get_bytes_to_send(self) -> Optional[bytes]:
        return self._require_session().take_outgoing()

    def get_progress(self) -> Progress:
        return self._require_session().progress()

    def is_session_ended(self) -> bool:
        if self._session is None:
            return False
        return self._session.is_done()

    def _require_session(self) -> HostSession:
        if self._session is None:
            raise SessionNotInitialized()
        return self._session
