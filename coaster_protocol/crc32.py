# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
CRC-32/ISO-HDLC (Ethernet) checksum.

Each ChunkResp carries this checksum over its full, zero-padded chunk
buffer, serialized as 4 little-endian bytes.
"""

# Reflected form of polynomial 0x04C11DB7
POLYNOMIAL = 0xEDB88320

_CRC32_TABLE = []


def _init_table():
    """Initialize the CRC-32 lookup table."""
    del _CRC32_TABLE[:]
    for i in range(256):
        crc = i
        for _ in range(8):
            if crc & 1:
                crc = (crc >> 1) ^ POLYNOMIAL
            else:
                crc >>= 1
        _CRC32_TABLE.append(crc)


_init_table()


def crc32(data: bytes, value: int = 0) -> int:
    """
    Compute CRC-32/ISO-HDLC checksum.

    Args:
        data: Bytes to compute checksum for
        value: Running checksum from a previous call, for incremental use

    Returns:
        32-bit CRC value
    """
    crc = value ^ 0xFFFFFFFF
    for byte in data:
        crc = _CRC32_TABLE[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc ^ 0xFFFFFFFF


def crc32_bytes(data: bytes) -> bytes:
    """Compute CRC-32 and return it in wire form (4 bytes, little-endian)."""
    return crc32(data).to_bytes(4, "little")
