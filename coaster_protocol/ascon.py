# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Ascon-Hash256 (NIST SP 800-232) implementation.

The host hashes the whole firmware image once and announces the digest
in ReadyToDownload; the bootloader hashes the unpadded chunk data as it
arrives and compares the two before activating the new image.

Usage:
    digest = ascon_hash256(firmware)

    hasher = AsconHash256()
    for block in blocks:
        hasher.update(block)
    digest = hasher.digest()
"""

_MASK = 0xFFFFFFFFFFFFFFFF

RATE = 8
ROUNDS = 12
DIGEST_SIZE = 32

# Algorithm id 2, a=b=12 rounds, 256-bit output, 8-byte rate (little-endian)
IV = 0x0000080100CC0002

_ROUND_CONSTANTS = [0xF0 - r * 0x10 + r * 0x01 for r in range(12)]


def _rotr(value: int, shift: int) -> int:
    return ((value >> shift) | (value << (64 - shift))) & _MASK


def _permutation(s: list, rounds: int = ROUNDS) -> None:
    """Apply the Ascon-p permutation to the 5-word state in place."""
    for r in range(12 - rounds, 12):
        # Constant addition
        s[2] ^= _ROUND_CONSTANTS[r]

        # Substitution layer
        s[0] ^= s[4]
        s[4] ^= s[3]
        s[2] ^= s[1]
        t = [(s[i] ^ _MASK) & s[(i + 1) % 5] for i in range(5)]
        for i in range(5):
            s[i] ^= t[(i + 1) % 5]
        s[1] ^= s[0]
        s[0] ^= s[4]
        s[3] ^= s[2]
        s[2] ^= _MASK

        # Linear diffusion layer
        s[0] ^= _rotr(s[0], 19) ^ _rotr(s[0], 28)
        s[1] ^= _rotr(s[1], 61) ^ _rotr(s[1], 39)
        s[2] ^= _rotr(s[2], 1) ^ _rotr(s[2], 6)
        s[3] ^= _rotr(s[3], 10) ^ _rotr(s[3], 17)
        s[4] ^= _rotr(s[4], 7) ^ _rotr(s[4], 41)


def _init_state() -> tuple:
    state = [IV, 0, 0, 0, 0]
    _permutation(state)
    return tuple(state)


_INITIAL_STATE = _init_state()


class AsconHash256:
    """
    Incremental Ascon-Hash256, with a hashlib-style interface.

    Args:
        data: Optional initial data to absorb
    """

    name = "ascon-hash256"
    digest_size = DIGEST_SIZE
    block_size = RATE

    def __init__(self, data: bytes = b""):
        self._state = list(_INITIAL_STATE)
        self._pending = b""
        if data:
            self.update(data)

    def update(self, data: bytes) -> None:
        """Absorb more message bytes."""
        buffered = self._pending + bytes(data)
        full = len(buffered) - len(buffered) % RATE
        state = self._state
        for offset in range(0, full, RATE):
            state[0] ^= int.from_bytes(buffered[offset:offset + RATE], "little")
            _permutation(state)
        self._pending = buffered[full:]

    def copy(self) -> "AsconHash256":
        """Return an independent copy of the current hashing state."""
        other = AsconHash256()
        other._state = list(self._state)
        other._pending = self._pending
        return other

    def digest(self) -> bytes:
        """
        Return the 32-byte digest of everything absorbed so far.

        The hasher itself is left untouched and may keep absorbing.
        """
        state = list(self._state)
        last_block = self._pending + b"\x01" + bytes(RATE - len(self._pending) - 1)
        state[0] ^= int.from_bytes(last_block, "little")
        _permutation(state)

        output = b""
        while True:
            output += state[0].to_bytes(RATE, "little")
            if len(output) >= DIGEST_SIZE:
                return output[:DIGEST_SIZE]
            _permutation(state)

    def hexdigest(self) -> str:
        return self.digest().hex()


def ascon_hash256(data: bytes) -> bytes:
    """
    Compute the Ascon-Hash256 digest of data.

    Args:
        data: Message bytes

    Returns:
        32-byte digest
    """
    return AsconHash256(data).digest()
