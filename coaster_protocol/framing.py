# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Frame codec.

Frame layout::

    +-----------------+---------------------------------+
    | Length (u16 BE) | CBOR-encoded message            |
    | 2 bytes         | `Length` bytes                  |
    +-----------------+---------------------------------+

The length counts the payload only, not the prefix itself. Decoding a
partial frame raises BufferTooSmall with the total number of bytes the
frame needs; the caller keeps the bytes and retries once more arrive.
"""

from io import BytesIO
from typing import Optional, Tuple

import cbor2

from .errors import BufferTooSmall, DecodingError, EncodingError
from .messages import Message, MessageFamily, message_class

LENGTH_PREFIX_SIZE = 2
MAX_PAYLOAD_SIZE = 0xFFFF


def encode_message(message: Message) -> bytes:
    """
    Encode a message to its CBOR payload (no length prefix).

    Raises:
        EncodingError: If a field is out of range or CBOR encoding fails
    """
    try:
        return cbor2.dumps(message.to_cbor())
    except cbor2.CBOREncodeError as e:
        raise EncodingError(f"Failed to encode {type(message).__name__}: {e}") from e


def encode_frame(message: Message, max_size: Optional[int] = None) -> bytes:
    """
    Encode a message as a length-prefixed frame.

    Args:
        message: Message to encode
        max_size: Size of the destination buffer, if bounded

    Returns:
        Frame bytes: 2-byte big-endian payload length, then the payload

    Raises:
        BufferTooSmall: If the frame does not fit in max_size bytes
        EncodingError: If the message cannot be encoded
    """
    payload = encode_message(message)
    if len(payload) > MAX_PAYLOAD_SIZE:
        raise EncodingError(f"Payload of {len(payload)} bytes exceeds {MAX_PAYLOAD_SIZE}")

    total = LENGTH_PREFIX_SIZE + len(payload)
    if max_size is not None and total > max_size:
        raise BufferTooSmall(total)

    return len(payload).to_bytes(LENGTH_PREFIX_SIZE, "big") + payload


def decode_message(payload: bytes, family: Optional[MessageFamily] = None) -> Message:
    """
    Decode a CBOR payload into a message.

    The expected family's tag table is tried first, then the other one,
    so a well-formed message that arrives out of place still decodes.
    When a tag fits both families, the message whose schema covers every
    key in the field map wins.

    Raises:
        DecodingError: If the payload is not a known message
    """
    fp = BytesIO(payload)
    try:
        obj = cbor2.CBORDecoder(fp).decode()
    except (cbor2.CBORDecodeError, ValueError) as e:
        raise DecodingError(f"Invalid CBOR payload: {e}") from e
    if fp.tell() != len(payload):
        raise DecodingError(f"{len(payload) - fp.tell()} trailing bytes after CBOR payload")

    if not isinstance(obj, list) or len(obj) != 2:
        raise DecodingError("Expected [tag, fields] message envelope")

    tag, fields = obj
    if isinstance(tag, bool) or not isinstance(tag, int):
        raise DecodingError(f"Invalid message tag: {tag!r}")

    families = list(MessageFamily)
    if family is not None:
        families.remove(family)
        families.insert(0, family)

    decoded = []
    error = None
    for candidate in families:
        cls = message_class(candidate, tag)
        if cls is None:
            continue
        try:
            decoded.append((cls, cls.from_fields(fields)))
        except DecodingError as e:
            if error is None:
                error = e

    if not decoded:
        if error is not None:
            raise error
        raise DecodingError(f"Unknown message tag: {tag}")

    for cls, message in decoded:
        if cls.has_only_known_fields(fields):
            return message
    return decoded[0][1]


def decode_frame(data: bytes, family: Optional[MessageFamily] = None) -> Tuple[int, Message]:
    """
    Decode one frame from the start of data.

    Args:
        data: Buffered bytes, possibly holding a partial frame or several frames
        family: Message family the caller expects, tried first

    Returns:
        Tuple of (bytes consumed, decoded message)

    Raises:
        BufferTooSmall: If data does not yet hold a complete frame
        DecodingError: If the frame is complete but its payload is invalid
    """
    if len(data) < LENGTH_PREFIX_SIZE:
        raise BufferTooSmall(LENGTH_PREFIX_SIZE)

    payload_len = int.from_bytes(data[:LENGTH_PREFIX_SIZE], "big")
    total = LENGTH_PREFIX_SIZE + payload_len
    if len(data) < total:
        raise BufferTooSmall(total)

    return total, decode_message(bytes(data[LENGTH_PREFIX_SIZE:total]), family)
