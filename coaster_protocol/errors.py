# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Exception hierarchy for the coaster firmware-update protocol.

    CoasterProtocolError
    ├── FrameError            (frame codec)
    │   ├── BufferTooSmall    - more bytes needed, retry later
    │   ├── EncodingError
    │   └── DecodingError
    ├── SessionError          (session engines, always terminal)
    └── TransportError        (serial / asyncio / loader adapters)

Only BufferTooSmall is a continuation signal. Every SessionError ends
the session that raised it; a new session is needed to try again.
"""

from typing import Any, Optional


class CoasterProtocolError(Exception):
    """Base exception for all protocol errors."""
    pass


# Framing

class FrameError(CoasterProtocolError):
    """Base exception for frame codec errors."""
    pass


class BufferTooSmall(FrameError):
    """
    Buffer does not hold (or cannot hold) a complete frame.

    Attributes:
        expected_len: Total number of bytes the frame needs, including
            the 2-byte length prefix
    """

    def __init__(self, expected_len: int):
        super().__init__(f"Buffer too small, {expected_len} bytes needed")
        self.expected_len = expected_len


class EncodingError(FrameError):
    """Message could not be encoded."""
    pass


class DecodingError(FrameError):
    """Complete frame whose payload does not match any known message."""
    pass


# Session

class SessionError(CoasterProtocolError):
    """Base exception for session errors. All are fatal to the session."""
    pass


class FramingError(SessionError):
    """Wraps a fatal frame codec error."""

    def __init__(self, cause: FrameError):
        super().__init__(f"Framing error: {cause}")
        self.cause = cause


class RxBufferNotEnoughSpace(SessionError):
    """Incoming bytes do not fit in the receive buffer."""

    def __init__(self, buffered: int, incoming: int, capacity: int):
        super().__init__(
            f"RX buffer not enough space: {buffered} buffered + "
            f"{incoming} incoming > {capacity}"
        )
        self.buffered = buffered
        self.incoming = incoming
        self.capacity = capacity


class UnexpectedMessage(SessionError):
    """Peer sent a message that is not valid in the current state."""

    def __init__(self, message: Any, state: Any = None):
        super().__init__(f"Unexpected message {type(message).__name__} in state {state}")
        self.message = message
        self.state = state


class IncorrectDeviceMode(SessionError):
    """Device answered Hello but is not running the bootloader."""

    def __init__(self, mode: Any):
        super().__init__(f"Incorrect device mode: {mode}")
        self.mode = mode


class SessionEnded(SessionError):
    """Session already finished (or failed); it accepts no more input."""

    def __init__(self, message: str = "Session ended"):
        super().__init__(message)


class ChunkRequestOutOfBounds(SessionError):
    """Requested chunk starts past the end of the firmware image."""

    def __init__(self, chunk_number: int, offset: int, image_size: int):
        super().__init__(
            f"Chunk request out of bounds: chunk {chunk_number} at offset "
            f"{offset} >= image size {image_size}"
        )
        self.chunk_number = chunk_number
        self.offset = offset
        self.image_size = image_size


class TransmitSlotOccupied(SessionError):
    """A new frame was produced before the previous one was taken."""
    pass


class InvalidChunkSize(SessionError):
    """Negotiated chunk size is zero or larger than the chunk payload."""

    def __init__(self, chunk_size: int, payload_size: int):
        super().__init__(
            f"Invalid chunk size {chunk_size} (must be 1..{payload_size})"
        )
        self.chunk_size = chunk_size
        self.payload_size = payload_size


class InvalidImageSize(SessionError):
    """Announced image size is zero."""
    pass


class ImageTooLarge(SessionError):
    """Announced image does not fit in the image sink."""

    def __init__(self, image_size: int, capacity: int):
        super().__init__(f"Image of {image_size} bytes exceeds capacity {capacity}")
        self.image_size = image_size
        self.capacity = capacity


class ChunkRetriesExceeded(SessionError):
    """The same chunk failed verification too many times in a row."""

    def __init__(self, chunk_number: int, retries: int):
        super().__init__(f"Chunk {chunk_number} failed {retries} times")
        self.chunk_number = chunk_number
        self.retries = retries


# Transport

class TransportError(CoasterProtocolError):
    """Base exception for transport errors."""
    pass


class TimeoutError(TransportError):
    """Timeout waiting for data from the peer."""
    pass


class UploadError(TransportError):
    """Error during firmware upload."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause


class SessionNotInitialized(TransportError):
    """Loader used before init_session()."""

    def __init__(self):
        super().__init__("Session not initialized")
