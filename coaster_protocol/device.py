# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Device-side (bootloader) firmware download session.

The mirror image of HostSession. The device answers Hello, accepts the
image announced in ReadyToDownload, then pulls chunks 0..max_chunks in
order. Each chunk's CRC is checked before the unpadded data is written
to the image sink; a bad or out-of-order chunk is simply requested
again. Once the last chunk is in, the Ascon-Hash256 of the received
image is compared with the announced one:

    match    -> sink.mark_updated(), Goodbye(INSTALLING_NEW_FIRMWARE)
    mismatch -> sink.discard(),      Goodbye(DOWNLOAD_HASH_MISMATCH)

Messages that do not fit the current state are logged and ignored, as
the bootloader must tolerate a noisy host. Framing errors and buffer
overruns are fatal.
"""

import logging
from abc import ABC, abstractmethod
from collections import deque
from enum import Enum
from typing import Deque, Optional

from .ascon import AsconHash256
from .chunking import chunk_offset, max_chunk_index, valid_chunk_length
from .errors import (
    BufferTooSmall,
    ChunkRetriesExceeded,
    FrameError,
    FramingError,
    ImageTooLarge,
    InvalidImageSize,
    RxBufferNotEnoughSpace,
    SessionEnded,
    SessionError,
)
from .framing import decode_frame, encode_frame
from .log import TRACE
from .messages import (
    CHUNK_SIZE,
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
from .session import RX_BUFFER_SIZE, Progress

logger = logging.getLogger(__name__)

BOOTLOADER_VERSION = VersionNumber(0, 0, 0)
DEFAULT_MAX_RETRIES = 5


class DeviceState(Enum):
    WAITING_HELLO = "waiting_hello"
    WAITING_READY_TO_DOWNLOAD = "waiting_ready_to_download"
    WAITING_CHUNK = "waiting_chunk"
    DONE = "done"

    def __str__(self) -> str:
        return self.name


class ImageSink(ABC):
    """Destination for a downloaded image (e.g. the DFU flash partition)."""

    @property
    @abstractmethod
    def capacity(self) -> int:
        """Largest image the sink can hold, in bytes."""

    @abstractmethod
    def write(self, offset: int, data: bytes) -> None:
        """Write verified image data at offset."""

    @abstractmethod
    def mark_updated(self) -> None:
        """The image verified; activate it on next boot."""

    @abstractmethod
    def discard(self) -> None:
        """The image failed verification; keep the existing firmware."""


class MemoryImageSink(ImageSink):
    """Image sink backed by a bytearray, erased to 0xFF like flash."""

    def __init__(self, capacity: int):
        self._buffer = bytearray(b"\xff" * capacity)
        self._written = 0
        self.updated = False
        self.discarded = False

    @property
    def capacity(self) -> int:
        return len(self._buffer)

    def write(self, offset: int, data: bytes) -> None:
        end = offset + len(data)
        if offset < 0 or end > len(self._buffer):
            raise ValueError(f"Write of {len(data)} bytes at {offset} exceeds capacity")
        self._buffer[offset:end] = data
        self._written = max(self._written, end)

    def mark_updated(self) -> None:
        self.updated = True

    def discard(self) -> None:
        self._buffer[:] = b"\xff" * len(self._buffer)
        self._written = 0
        self.discarded = True

    @property
    def image(self) -> bytes:
        """Bytes written so far, up to the highest written offset."""
        return bytes(self._buffer[:self._written])


class DeviceSession:
    """
    Bootloader role of the firmware download exchange.

    Args:
        sink: Where verified image data is written
        version: Bootloader version reported in HelloResp
        chunk_size: Chunk size requested in ReadyToDownloadResponse
        payload_size: Padded length of every chunk; must match the host
        rx_capacity: Receive buffer capacity in bytes
        max_retries: Consecutive bad chunks tolerated before giving up
    """

    def __init__(
        self,
        sink: ImageSink,
        version: VersionNumber = BOOTLOADER_VERSION,
        chunk_size: int = CHUNK_SIZE,
        payload_size: int = CHUNK_SIZE,
        rx_capacity: int = RX_BUFFER_SIZE,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        if not 0 < chunk_size <= payload_size:
            raise ValueError(f"Chunk size must be 1..{payload_size}, got {chunk_size}")

        self._sink = sink
        self._version = version
        self._chunk_size = chunk_size
        self._payload_size = payload_size
        self._rx_capacity = rx_capacity
        self._max_retries = max_retries

        self._state = DeviceState.WAITING_HELLO
        self._rx = bytearray()
        self._outbox: Deque[bytes] = deque()
        self._error: Optional[SessionError] = None

        self._image_size = 0
        self._expected_hash = b""
        self._image_version: Optional[VersionNumber] = None
        self._hasher: Optional[AsconHash256] = None
        self._next_chunk = 0
        self._max_chunks = 0
        self._retries = 0
        self._image_verified: Optional[bool] = None

        self._handlers = {
            DeviceState.WAITING_HELLO: self._on_waiting_hello,
            DeviceState.WAITING_READY_TO_DOWNLOAD: self._on_waiting_ready_to_download,
            DeviceState.WAITING_CHUNK: self._on_waiting_chunk,
        }

    @property
    def state(self) -> DeviceState:
        return self._state

    @property
    def error(self) -> Optional[SessionError]:
        return self._error

    @property
    def image_size(self) -> int:
        return self._image_size

    @property
    def image_version(self) -> Optional[VersionNumber]:
        """Version announced by the host, once known."""
        return self._image_version

    @property
    def image_verified(self) -> Optional[bool]:
        """Result of the whole-image hash check (None until finished)."""
        return self._image_verified

    def is_done(self) -> bool:
        return self._state is DeviceState.DONE

    def progress(self) -> Progress:
        """Last accepted chunk index (0 before any) and the last index overall."""
        return Progress(current_chunk=max(self._next_chunk - 1, 0), max_chunks=self._max_chunks)

    def has_outgoing(self) -> bool:
        return bool(self._outbox)

    def take_outgoing(self) -> Optional[bytes]:
        """Pop the oldest pending frame, if any."""
        if not self._outbox:
            return None
        return self._outbox.popleft()

    def feed(self, data: bytes = b"") -> None:
        """
        Push received bytes into the session and process complete frames.

        Raises:
            SessionEnded: If the session already finished or failed
            SessionError: Any other fatal failure; the session is then ended
        """
        if self._state is DeviceState.DONE or self._error is not None:
            raise SessionEnded()

        try:
            self._feed(bytes(data))
        except SessionError as e:
            self._error = e
            logger.error("Download failed in state %s: %s", self._state, e)
            raise

    def _feed(self, data: bytes) -> None:
        if len(self._rx) + len(data) > self._rx_capacity:
            raise RxBufferNotEnoughSpace(len(self._rx), len(data), self._rx_capacity)
        self._rx.extend(data)

        while self._rx and self._state is not DeviceState.DONE:
            family = (
                MessageFamily.GENERAL
                if self._state is DeviceState.WAITING_HELLO
                else MessageFamily.BOOTLOADER
            )
            try:
                consumed, message = decode_frame(self._rx, family)
            except BufferTooSmall as e:
                logger.log(TRACE, "Need %d bytes to decode, have %d", e.expected_len, len(self._rx))
                return
            except FrameError as e:
                raise FramingError(e) from e

            del self._rx[:consumed]
            logger.log(TRACE, "Received %r", message)
            self._handlers[self._state](message)

        if self._rx:
            logger.debug("Discarding %d bytes received after download finished", len(self._rx))
            self._rx.clear()

    def _set_state(self, state: DeviceState) -> None:
        logger.debug("Download state: %s -> %s", self._state, state)
        self._state = state

    def _send(self, message: Message) -> None:
        try:
            self._outbox.append(encode_frame(message))
        except FrameError as e:
            raise FramingError(e) from e

    def _ignore(self, message: Message) -> None:
        logger.warning("Ignoring %s in state %s", type(message).__name__, self._state)

    def _on_waiting_hello(self, message: Message) -> None:
        if not isinstance(message, Hello):
            self._ignore(message)
            return
        self._send(HelloResp(mode=SystemMode.BOOTLOADER, version=self._version))
        self._set_state(DeviceState.WAITING_READY_TO_DOWNLOAD)

    def _on_waiting_ready_to_download(self, message: Message) -> None:
        if not isinstance(message, ReadyToDownload):
            self._ignore(message)
            return

        size = message.image_size_bytes
        if size == 0:
            raise InvalidImageSize("Announced image size is 0")
        if size > self._sink.capacity:
            raise ImageTooLarge(size, self._sink.capacity)

        self._image_size = size
        self._image_version = message.version
        self._expected_hash = bytes(message.hash)
        self._hasher = AsconHash256()
        self._next_chunk = 0
        self._max_chunks = max_chunk_index(size, self._chunk_size)
        logger.info(
            "Image %s: %d bytes, hash %s", message.version, size, self._expected_hash.hex()
        )

        self._send(ReadyToDownloadResponse(desired_chunk_size=self._chunk_size))
        self._send(ChunkReq(chunk_number=0))
        self._set_state(DeviceState.WAITING_CHUNK)

    def _on_waiting_chunk(self, message: Message) -> None:
        if not isinstance(message, ChunkResp):
            self._ignore(message)
            return

        n = self._next_chunk
        if message.chunk_number != n:
            logger.warning("Got chunk number %d but expected %d", message.chunk_number, n)
            self._request_again()
            return
        if len(message.chunk_data) != self._payload_size:
            logger.warning(
                "Chunk %d has %d bytes, expected %d", n, len(message.chunk_data), self._payload_size
            )
            self._request_again()
            return
        if not message.is_crc_ok():
            logger.warning("CRC failed on chunk %d", n)
            self._request_again()
            return

        logger.log(TRACE, "Chunk %d CRC OK", n)
        length = valid_chunk_length(self._image_size, n, self._chunk_size)
        data = message.chunk_data[:length]
        self._sink.write(chunk_offset(n, self._chunk_size), data)
        self._hasher.update(data)
        self._retries = 0
        self._next_chunk = n + 1

        if chunk_offset(self._next_chunk, self._chunk_size) >= self._image_size:
            self._finish()
        else:
            self._send(ChunkReq(chunk_number=self._next_chunk))

    def _request_again(self) -> None:
        self._retries += 1
        if self._retries > self._max_retries:
            raise ChunkRetriesExceeded(self._next_chunk, self._retries)
        self._send(ChunkReq(chunk_number=self._next_chunk))

    def _finish(self) -> None:
        received_hash = self._hasher.digest()
        if received_hash == self._expected_hash:
            logger.info("Image hash matches - will swap to new firmware version")
            self._sink.mark_updated()
            self._image_verified = True
            reason = GoodbyeReason.INSTALLING_NEW_FIRMWARE
        else:
            logger.error(
                "Image hash does not match (got %s) - keeping existing firmware",
                received_hash.hex(),
            )
            self._sink.discard()
            self._image_verified = False
            reason = GoodbyeReason.DOWNLOAD_HASH_MISMATCH

        self._send(Goodbye(reason=reason))
        self._set_state(DeviceState.DONE)
