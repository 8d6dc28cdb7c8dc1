# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Coaster protocol message definitions.

Messages belong to one of two families, each with its own tag space:

    General:    0=Hello, 1=HelloResp
    Bootloader: 0=ReadyToDownload, 1=ReadyToDownloadResponse,
                2=ChunkReq, 3=ChunkResp, 4=Goodbye

On the wire a message is the CBOR array ``[tag, {key: value, ...}]``.
Struct fields are keyed by small integers, nested structs are maps keyed
the same way, enums are unsigned integers and byte arrays are CBOR byte
strings. Unknown keys are ignored when decoding.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, ClassVar, Dict, FrozenSet, Optional, Type

from .crc32 import crc32_bytes
from .errors import DecodingError, EncodingError

# Fixed payload length of every ChunkResp (the last chunk is zero-padded)
CHUNK_SIZE = 1024

HASH_SIZE = 32
CRC_SIZE = 4

U16_MAX = 0xFFFF
U32_MAX = 0xFFFFFFFF


class MessageFamily(IntEnum):
    """Message families. Not on the wire; selects the tag table."""
    GENERAL = 0
    BOOTLOADER = 1

    def __str__(self) -> str:
        return self.name


class SystemMode(IntEnum):
    """Firmware role that answered a Hello."""
    BOOTLOADER = 0
    APPLICATION = 1

    def __str__(self) -> str:
        return self.name


class GoodbyeReason(IntEnum):
    """Why the bootloader is ending the session."""
    INSTALLING_NEW_FIRMWARE = 0
    DOWNLOAD_HASH_MISMATCH = 1

    def __str__(self) -> str:
        return self.name


# Field validation helpers. `error` is EncodingError on the way out and
# DecodingError on the way in.

def _check_uint(value: Any, maximum: int, name: str, error=EncodingError) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise error(f"{name}: expected unsigned integer, got {type(value).__name__}")
    if not 0 <= value <= maximum:
        raise error(f"{name}: {value} out of range 0..{maximum}")
    return value


def _check_bytes(value: Any, size: Optional[int], name: str, error=EncodingError) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        data = bytes(value)
    elif isinstance(value, (list, tuple)):
        # Arrays of small integers are accepted as an alternative encoding
        try:
            data = bytes(value)
        except (TypeError, ValueError):
            raise error(f"{name}: array is not a byte sequence")
    else:
        raise error(f"{name}: expected bytes, got {type(value).__name__}")
    if size is not None and len(data) != size:
        raise error(f"{name}: expected {size} bytes, got {len(data)}")
    return data


def _check_enum(value: Any, enum_type, name: str, error=DecodingError):
    _check_uint(value, U32_MAX, name, error)
    try:
        return enum_type(value)
    except ValueError:
        raise error(f"{name}: unknown {enum_type.__name__} value {value}")


def _field(fields: Any, key: int, name: str) -> Any:
    if not isinstance(fields, dict):
        raise DecodingError(f"expected field map, got {type(fields).__name__}")
    try:
        return fields[key]
    except KeyError:
        raise DecodingError(f"missing field {key} ({name})")


@dataclass(frozen=True)
class VersionNumber:
    """Semantic version triple."""
    major: int = 0
    minor: int = 0
    patch: int = 0

    @classmethod
    def parse(cls, text: str) -> "VersionNumber":
        """
        Parse "MAJOR.MINOR.PATCH" (missing parts default to 0).

        Raises:
            ValueError: If text is not a valid u16 version triple
        """
        parts = text.strip().split(".")
        if not 1 <= len(parts) <= 3:
            raise ValueError(f"Invalid version: {text!r}")
        numbers = [int(part) for part in parts] + [0] * (3 - len(parts))
        for number in numbers:
            if not 0 <= number <= U16_MAX:
                raise ValueError(f"Invalid version: {text!r}")
        return cls(*numbers)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    def to_cbor(self) -> Dict[int, int]:
        return {
            0: _check_uint(self.major, U16_MAX, "version.major"),
            1: _check_uint(self.minor, U16_MAX, "version.minor"),
            2: _check_uint(self.patch, U16_MAX, "version.patch"),
        }

    @classmethod
    def from_cbor(cls, obj: Any) -> "VersionNumber":
        return cls(
            major=_check_uint(_field(obj, 0, "major"), U16_MAX, "version.major", DecodingError),
            minor=_check_uint(_field(obj, 1, "minor"), U16_MAX, "version.minor", DecodingError),
            patch=_check_uint(_field(obj, 2, "patch"), U16_MAX, "version.patch", DecodingError),
        )


class Message:
    """Base class for all protocol messages."""

    FAMILY: ClassVar[MessageFamily]
    TAG: ClassVar[int]
    FIELD_KEYS: ClassVar[FrozenSet[int]] = frozenset()

    def fields(self) -> Dict[int, Any]:
        """Return the CBOR field map. Raises EncodingError on invalid values."""
        return {}

    @classmethod
    def from_fields(cls, fields: Any) -> "Message":
        """Build a message from a decoded field map. Raises DecodingError."""
        raise NotImplementedError

    @classmethod
    def has_only_known_fields(cls, fields: Any) -> bool:
        """True if every key in the field map belongs to this message."""
        return isinstance(fields, dict) and set(fields) <= cls.FIELD_KEYS

    def to_cbor(self) -> list:
        return [self.TAG, self.fields()]


_REGISTRY: Dict[MessageFamily, Dict[int, Type[Message]]] = {
    MessageFamily.GENERAL: {},
    MessageFamily.BOOTLOADER: {},
}


def _register(cls):
    _REGISTRY[cls.FAMILY][cls.TAG] = cls
    return cls


def message_class(family: MessageFamily, tag: int) -> Optional[Type[Message]]:
    """Look up the message class for a tag within a family."""
    return _REGISTRY[family].get(tag)


# General messages

@_register
@dataclass(frozen=True)
class Hello(Message):
    """Opening message from the host."""
    FAMILY: ClassVar[MessageFamily] = MessageFamily.GENERAL
    TAG: ClassVar[int] = 0
    FIELD_KEYS: ClassVar[FrozenSet[int]] = frozenset()

    @classmethod
    def from_fields(cls, fields: Any) -> "Hello":
        if not isinstance(fields, dict):
            raise DecodingError("Hello: expected field map")
        return cls()


@_register
@dataclass(frozen=True)
class HelloResp(Message):
    """Device answer to Hello."""
    mode: SystemMode
    version: VersionNumber = VersionNumber()
    FAMILY: ClassVar[MessageFamily] = MessageFamily.GENERAL
    TAG: ClassVar[int] = 1
    FIELD_KEYS: ClassVar[FrozenSet[int]] = frozenset({0, 1})

    def fields(self) -> Dict[int, Any]:
        return {
            0: _check_uint(int(self.mode), 1, "mode"),
            1: self.version.to_cbor(),
        }

    @classmethod
    def from_fields(cls, fields: Any) -> "HelloResp":
        return cls(
            mode=_check_enum(_field(fields, 0, "mode"), SystemMode, "mode"),
            version=VersionNumber.from_cbor(_field(fields, 1, "version")),
        )


# Bootloader messages

@_register
@dataclass(frozen=True)
class ReadyToDownload(Message):
    """Host announces an image: size, version and Ascon-Hash256 digest."""
    image_size_bytes: int
    version: VersionNumber
    hash: bytes
    FAMILY: ClassVar[MessageFamily] = MessageFamily.BOOTLOADER
    TAG: ClassVar[int] = 0
    FIELD_KEYS: ClassVar[FrozenSet[int]] = frozenset({0, 1, 2})

    def fields(self) -> Dict[int, Any]:
        return {
            0: _check_uint(self.image_size_bytes, U32_MAX, "image_size_bytes"),
            1: self.version.to_cbor(),
            2: _check_bytes(self.hash, HASH_SIZE, "hash"),
        }

    @classmethod
    def from_fields(cls, fields: Any) -> "ReadyToDownload":
        return cls(
            image_size_bytes=_check_uint(
                _field(fields, 0, "image_size_bytes"), U32_MAX, "image_size_bytes", DecodingError
            ),
            version=VersionNumber.from_cbor(_field(fields, 1, "version")),
            hash=_check_bytes(_field(fields, 2, "hash"), HASH_SIZE, "hash", DecodingError),
        )


@_register
@dataclass(frozen=True)
class ReadyToDownloadResponse(Message):
    """Device accepts the image and states the chunk size it wants."""
    desired_chunk_size: int = CHUNK_SIZE
    FAMILY: ClassVar[MessageFamily] = MessageFamily.BOOTLOADER
    TAG: ClassVar[int] = 1
    FIELD_KEYS: ClassVar[FrozenSet[int]] = frozenset({0})

    def fields(self) -> Dict[int, Any]:
        return {0: _check_uint(self.desired_chunk_size, U32_MAX, "desired_chunk_size")}

    @classmethod
    def from_fields(cls, fields: Any) -> "ReadyToDownloadResponse":
        return cls(
            desired_chunk_size=_check_uint(
                _field(fields, 0, "desired_chunk_size"), U32_MAX, "desired_chunk_size", DecodingError
            ),
        )


@_register
@dataclass(frozen=True)
class ChunkReq(Message):
    """Device requests one chunk by zero-based index."""
    chunk_number: int
    FAMILY: ClassVar[MessageFamily] = MessageFamily.BOOTLOADER
    TAG: ClassVar[int] = 2
    FIELD_KEYS: ClassVar[FrozenSet[int]] = frozenset({0})

    def fields(self) -> Dict[int, Any]:
        return {0: _check_uint(self.chunk_number, U32_MAX, "chunk_number")}

    @classmethod
    def from_fields(cls, fields: Any) -> "ChunkReq":
        return cls(
            chunk_number=_check_uint(
                _field(fields, 0, "chunk_number"), U32_MAX, "chunk_number", DecodingError
            ),
        )


@_register
@dataclass(frozen=True)
class ChunkResp(Message):
    """One zero-padded chunk of the image with its CRC-32 (little-endian)."""
    chunk_number: int
    chunk_data: bytes
    crc32: bytes
    FAMILY: ClassVar[MessageFamily] = MessageFamily.BOOTLOADER
    TAG: ClassVar[int] = 3
    FIELD_KEYS: ClassVar[FrozenSet[int]] = frozenset({0, 1, 2})

    @classmethod
    def build(cls, chunk_number: int, chunk_data: bytes) -> "ChunkResp":
        """Create a ChunkResp, computing the CRC over chunk_data."""
        chunk_data = bytes(chunk_data)
        return cls(chunk_number=chunk_number, chunk_data=chunk_data, crc32=crc32_bytes(chunk_data))

    def is_crc_ok(self) -> bool:
        """Recompute the CRC over chunk_data and compare with crc32."""
        return crc32_bytes(self.chunk_data) == bytes(self.crc32)

    def fields(self) -> Dict[int, Any]:
        return {
            0: _check_uint(self.chunk_number, U32_MAX, "chunk_number"),
            1: _check_bytes(self.chunk_data, None, "chunk_data"),
            2: _check_bytes(self.crc32, CRC_SIZE, "crc32"),
        }

    @classmethod
    def from_fields(cls, fields: Any) -> "ChunkResp":
        return cls(
            chunk_number=_check_uint(
                _field(fields, 0, "chunk_number"), U32_MAX, "chunk_number", DecodingError
            ),
            chunk_data=_check_bytes(_field(fields, 1, "chunk_data"), None, "chunk_data", DecodingError),
            crc32=_check_bytes(_field(fields, 2, "crc32"), CRC_SIZE, "crc32", DecodingError),
        )

    def __repr__(self) -> str:
        return (
            f"ChunkResp(chunk_number={self.chunk_number}, "
            f"chunk_data=<{len(self.chunk_data)} bytes>, crc32={bytes(self.crc32).hex()})"
        )


@_register
@dataclass(frozen=True)
class Goodbye(Message):
    """Device ends the session."""
    reason: GoodbyeReason
    FAMILY: ClassVar[MessageFamily] = MessageFamily.BOOTLOADER
    TAG: ClassVar[int] = 4
    FIELD_KEYS: ClassVar[FrozenSet[int]] = frozenset({0})

    def fields(self) -> Dict[int, Any]:
        return {0: _check_uint(int(self.reason), U32_MAX, "reason")}

    @classmethod
    def from_fields(cls, fields: Any) -> "Goodbye":
        return cls(reason=_check_enum(_field(fields, 0, "reason"), GoodbyeReason, "reason"))
