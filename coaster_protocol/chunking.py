# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Chunked image transfer helpers.

Chunk n covers image bytes [n * chunk_size, n * chunk_size + chunk_size).
Every chunk travels as a buffer of exactly `payload_size` bytes, the
tail zero-padded, and its CRC-32 is computed over the padded buffer.
"""

from .crc32 import crc32_bytes
from .errors import ChunkRequestOutOfBounds
from .messages import CHUNK_SIZE


def chunk_offset(chunk_number: int, chunk_size: int) -> int:
    """Byte offset of a chunk within the image."""
    return chunk_number * chunk_size


def max_chunk_index(image_size: int, chunk_size: int) -> int:
    """
    Index of the last chunk, (image_size - 1) // chunk_size.

    This is the last valid zero-based index, not the number of chunks.
    """
    if image_size <= 0:
        raise ValueError("Image size must be positive")
    if chunk_size <= 0:
        raise ValueError("Chunk size must be positive")
    return (image_size - 1) // chunk_size


def valid_chunk_length(image_size: int, chunk_number: int, chunk_size: int) -> int:
    """Number of real (unpadded) image bytes in a chunk; 0 past the end."""
    offset = chunk_offset(chunk_number, chunk_size)
    return max(0, min(chunk_size, image_size - offset))


def read_chunk(
    firmware: bytes,
    chunk_number: int,
    chunk_size: int,
    payload_size: int = CHUNK_SIZE,
) -> bytes:
    """
    Read one zero-padded chunk from the image.

    Args:
        firmware: Complete image bytes
        chunk_number: Zero-based chunk index
        chunk_size: Negotiated chunk size (at most payload_size)
        payload_size: Length of the padded chunk buffer

    Returns:
        Exactly payload_size bytes

    Raises:
        ChunkRequestOutOfBounds: If the chunk starts at or past the image end
    """
    offset = chunk_offset(chunk_number, chunk_size)
    if offset >= len(firmware):
        raise ChunkRequestOutOfBounds(chunk_number, offset, len(firmware))

    available = min(chunk_size, len(firmware) - offset)
    chunk = bytearray(payload_size)
    chunk[:available] = firmware[offset:offset + available]
    return bytes(chunk)


def chunk_crc(padded_chunk: bytes) -> bytes:
    """CRC-32/ISO-HDLC over the full padded chunk, as 4 little-endian bytes."""
    return crc32_bytes(padded_chunk)


def verify_chunk(padded_chunk: bytes, crc: bytes) -> bool:
    """Check a received chunk against its CRC."""
    return chunk_crc(padded_chunk) == bytes(crc)
