# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Coaster firmware-update protocol - Python library.

This package implements the firmware download protocol spoken by the
SmartCoaster bootloader over USB CDC: length-prefixed CBOR frames, a
chunk loop with per-chunk CRC-32 and a whole-image Ascon-Hash256.

Example usage:
    from coaster_protocol import SerialTransport, VersionNumber

    with SerialTransport("/dev/ttyACM0") as transport:
        transport.upload_firmware(
            firmware=open("firmware.bin", "rb").read(),
            version=VersionNumber(1, 2, 0),
            progress_callback=lambda p: print(f"{p.current_chunk}/{p.max_chunks}"),
        )

The session engines (HostSession, DeviceSession) do no I/O and can be
driven from any loop; FirmwareLoader wraps HostSession for push/pull use.
"""

from .ascon import AsconHash256, ascon_hash256
from .chunking import max_chunk_index, read_chunk, valid_chunk_length, verify_chunk
from .crc32 import crc32, crc32_bytes
from .device import DeviceSession, DeviceState, ImageSink, MemoryImageSink
from .endpoint import serve_device
from .errors import (
    BufferTooSmall,
    ChunkRequestOutOfBounds,
    ChunkRetriesExceeded,
    CoasterProtocolError,
    DecodingError,
    EncodingError,
    FrameError,
    FramingError,
    ImageTooLarge,
    IncorrectDeviceMode,
    InvalidChunkSize,
    InvalidImageSize,
    RxBufferNotEnoughSpace,
    SessionEnded,
    SessionError,
    SessionNotInitialized,
    TimeoutError,
    TransmitSlotOccupied,
    TransportError,
    UnexpectedMessage,
    UploadError,
)
from .framing import decode_frame, encode_frame
from .loader import FirmwareLoader
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
from .session import HostSession, HostState, Progress
from .transport import SerialTransport, list_ports

__version__ = "0.1.0"

__all__ = [
    # Integrity
    "crc32",
    "crc32_bytes",
    "AsconHash256",
    "ascon_hash256",
    # Messages
    "CHUNK_SIZE",
    "Message",
    "MessageFamily",
    "SystemMode",
    "GoodbyeReason",
    "VersionNumber",
    "Hello",
    "HelloResp",
    "ReadyToDownload",
    "ReadyToDownloadResponse",
    "ChunkReq",
    "ChunkResp",
    "Goodbye",
    # Framing
    "encode_frame",
    "decode_frame",
    # Chunking
    "read_chunk",
    "verify_chunk",
    "max_chunk_index",
    "valid_chunk_length",
    # Sessions
    "HostSession",
    "HostState",
    "Progress",
    "DeviceSession",
    "DeviceState",
    "ImageSink",
    "MemoryImageSink",
    # Adapters
    "FirmwareLoader",
    "SerialTransport",
    "list_ports",
    "serve_device",
    # Errors
    "CoasterProtocolError",
    "FrameError",
    "BufferTooSmall",
    "EncodingError",
    "DecodingError",
    "SessionError",
    "FramingError",
    "RxBufferNotEnoughSpace",
    "UnexpectedMessage",
    "IncorrectDeviceMode",
    "SessionEnded",
    "ChunkRequestOutOfBounds",
    "TransmitSlotOccupied",
    "InvalidChunkSize",
    "InvalidImageSize",
    "ImageTooLarge",
    "ChunkRetriesExceeded",
    "TransportError",
    "TimeoutError",
    "UploadError",
    "SessionNotInitialized",
]
