# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Host-side firmware download session.

HostSession is a synchronous, non-blocking state machine. A transport
adapter pushes received bytes in with feed() and pulls at most one frame
to send with take_outgoing():

    session = HostSession(firmware)
    session.feed()                      # queues Hello
    while not session.is_done():
        frame = session.take_outgoing()
        if frame:
            link.write(frame)
        session.feed(link.read())

States::

    START -> WAITING_HELLO_RESP -> WAITING_READY_TO_DOWNLOAD_RESP
          -> CHUNK_TRANSFER (ChunkReq/ChunkResp loop) -> DONE (Goodbye)

Any SessionError is terminal: the session records it and rejects all
further input with SessionEnded.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .ascon import ascon_hash256
from .chunking import max_chunk_index, read_chunk
from .errors import (
    BufferTooSmall,
    FrameError,
    FramingError,
    IncorrectDeviceMode,
    InvalidChunkSize,
    RxBufferNotEnoughSpace,
    SessionEnded,
    SessionError,
    TransmitSlotOccupied,
    UnexpectedMessage,
)
from .framing import decode_frame, encode_frame
from .log import TRACE
from .messages import (
    CHUNK_SIZE,
    U32_MAX,
    ChunkReq,
    ChunkResp,
    Goodbye,
    GoodbyeReason,
    Hello,
    HelloResp,
    Message,
    MessageFamily,
    ReadyToDownload,
    ReadyToDownloadResponse,
    SystemMode,
    VersionNumber,
)

logger = logging.getLogger(__name__)

RX_BUFFER_SIZE = 4096


class HostState(Enum):
    START = "start"
    WAITING_HELLO_RESP = "waiting_hello_resp"
    WAITING_READY_TO_DOWNLOAD_RESP = "waiting_ready_to_download_resp"
    CHUNK_TRANSFER = "chunk_transfer"
    DONE = "done"

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Progress:
    """Download progress. max_chunks is the index of the last chunk."""
    current_chunk: int = 0
    max_chunks: int = 0


class HostSession:
    """
    Host role of the firmware download exchange.

    Args:
        firmware: Complete firmware image (kept read-only for the session)
        version: Version announced in ReadyToDownload
        rx_capacity: Receive buffer capacity in bytes (also bounds frames sent)
        payload_size: Padded length of every chunk; must match the device
    """

    def __init__(
        self,
        firmware: bytes,
        version: VersionNumber = VersionNumber(),
        rx_capacity: int = RX_BUFFER_SIZE,
        payload_size: int = CHUNK_SIZE,
    ):
        if not firmware:
            raise ValueError("Firmware image is empty")
        if len(firmware) > U32_MAX:
            raise ValueError(f"Firmware image too large: {len(firmware)} bytes")

        self._firmware = bytes(firmware)
        self._version = version
        self._rx_capacity = rx_capacity
        self._payload_size = payload_size

        self._state = HostState.START
        self._rx = bytearray()
        self._tx: Optional[bytes] = None
        self._chunk_size = 0
        self._current_chunk = 0
        self._max_chunks = 0
        self._image_hash: Optional[bytes] = None
        self._goodbye_reason: Optional[GoodbyeReason] = None
        self._error: Optional[SessionError] = None

        self._handlers = {
            HostState.WAITING_HELLO_RESP: self._on_waiting_hello_resp,
            HostState.WAITING_READY_TO_DOWNLOAD_RESP: self._on_waiting_ready_to_download_resp,
            HostState.CHUNK_TRANSFER: self._on_chunk_transfer,
        }

    @property
    def state(self) -> HostState:
        return self._state

    @property
    def firmware_size(self) -> int:
        return len(self._firmware)

    @property
    def chunk_size(self) -> int:
        """Negotiated chunk size (0 until ReadyToDownloadResponse)."""
        return self._chunk_size

    @property
    def image_hash(self) -> Optional[bytes]:
        """Ascon-Hash256 announced to the device, once computed."""
        return self._image_hash

    @property
    def goodbye_reason(self) -> Optional[GoodbyeReason]:
        return self._goodbye_reason

    @property
    def error(self) -> Optional[SessionError]:
        """The fatal error that ended the session, if any."""
        return self._error

    @property
    def buffered(self) -> int:
        """Number of received bytes not yet decoded."""
        return len(self._rx)

    def is_done(self) -> bool:
        """True once the device said Goodbye."""
        return self._state is HostState.DONE

    def progress(self) -> Progress:
        return Progress(current_chunk=self._current_chunk, max_chunks=self._max_chunks)

    def has_outgoing(self) -> bool:
        return self._tx is not None

    def take_outgoing(self) -> Optional[bytes]:
        """Return the pending frame, if any, and clear the transmit slot."""
        frame, self._tx = self._tx, None
        if frame is None:
            logger.log(TRACE, "Nothing to send")
        else:
            logger.log(TRACE, "Returning %d bytes to send", len(frame))
        return frame

    def feed(self, data: bytes = b"") -> None:
        """
        Push received bytes into the session and process complete frames.

        Call with no data to start the session (queues Hello).

        Raises:
            SessionEnded: If the session already finished or failed
            SessionError: Any other protocol failure; the session is then ended
        """
        if self._state is HostState.DONE or self._error is not None:
            raise SessionEnded()

        try:
            self._feed(bytes(data))
        except SessionError as e:
            self._error = e
            logger.error("Session failed in state %s: %s", self._state, e)
            raise

    def _feed(self, data: bytes) -> None:
        if len(self._rx) + len(data) > self._rx_capacity:
            raise RxBufferNotEnoughSpace(len(self._rx), len(data), self._rx_capacity)

        logger.log(TRACE, "Called with %d new bytes, %d bytes in buffer", len(data), len(self._rx))
        self._rx.extend(data)

        if self._state is HostState.START:
            self._queue(Hello())
            self._set_state(HostState.WAITING_HELLO_RESP)

        while self._rx and self._state is not HostState.DONE:
            try:
                consumed, message = decode_frame(self._rx, self._expected_family())
            except BufferTooSmall as e:
                logger.log(TRACE, "Need %d bytes to decode, have %d", e.expected_len, len(self._rx))
                return
            except FrameError as e:
                raise FramingError(e) from e

            del self._rx[:consumed]
            logger.log(TRACE, "Consumed %d bytes from rx buffer: %r", consumed, message)
            self._handlers[self._state](message)

        if self._rx:
            logger.debug("Discarding %d bytes received after Goodbye", len(self._rx))
            self._rx.clear()

    def _expected_family(self) -> MessageFamily:
        if self._state is HostState.WAITING_HELLO_RESP:
            return MessageFamily.GENERAL
        return MessageFamily.BOOTLOADER

    def _set_state(self, state: HostState) -> None:
        logger.debug("Session state: %s -> %s", self._state, state)
        self._state = state

    def _queue(self, message: Message) -> None:
        if self._tx is not None:
            raise TransmitSlotOccupied(
                f"Cannot queue {type(message).__name__}: previous frame not taken"
            )
        try:
            self._tx = encode_frame(message, max_size=self._rx_capacity)
        except FrameError as e:
            raise FramingError(e) from e

    def _on_waiting_hello_resp(self, message: Message) -> None:
        if not isinstance(message, HelloResp):
            raise UnexpectedMessage(message, self._state)

        logger.info("Device answered: mode %s, version %s", message.mode, message.version)
        if message.mode != SystemMode.BOOTLOADER:
            raise IncorrectDeviceMode(message.mode)

        logger.log(TRACE, "Calculating Ascon-Hash256 of %d bytes", len(self._firmware))
        self._image_hash = ascon_hash256(self._firmware)
        self._queue(ReadyToDownload(
            image_size_bytes=len(self._firmware),
            version=self._version,
            hash=self._image_hash,
        ))
        self._set_state(HostState.WAITING_READY_TO_DOWNLOAD_RESP)

    def _on_waiting_ready_to_download_resp(self, message: Message) -> None:
        if not isinstance(message, ReadyToDownloadResponse):
            raise UnexpectedMessage(message, self._state)

        chunk_size = message.desired_chunk_size
        if not 0 < chunk_size <= self._payload_size:
            raise InvalidChunkSize(chunk_size, self._payload_size)

        self._chunk_size = chunk_size
        self._max_chunks = max_chunk_index(len(self._firmware), chunk_size)
        self._tx = None
        logger.info(
            "Device ready: chunk size %d, last chunk index %d", chunk_size, self._max_chunks
        )
        self._set_state(HostState.CHUNK_TRANSFER)

    def _on_chunk_transfer(self, message: Message) -> None:
        if isinstance(message, ChunkReq):
            n = message.chunk_number
            chunk = read_chunk(self._firmware, n, self._chunk_size, self._payload_size)
            self._queue(ChunkResp.build(n, chunk))
            self._current_chunk = n
            logger.log(TRACE, "Queued ChunkResp for chunk %d", n)
        elif isinstance(message, Goodbye):
            self._tx = None
            self._goodbye_reason = message.reason
            logger.info("Device said goodbye: %s", message.reason)
            self._set_state(HostState.DONE)
        else:
            raise UnexpectedMessage(message, self._state)
