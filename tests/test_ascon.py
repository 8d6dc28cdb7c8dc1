# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""Tests for Ascon-Hash256."""

import pytest

from coaster_protocol.ascon import (
    AsconHash256,
    DIGEST_SIZE,
    IV,
    _ROUND_CONSTANTS,
    _rotr,
    ascon_hash256,
)


class TestConstants:
    """Tests for algorithm constants."""

    def test_round_constants(self):
        """Round constants run 0xF0, 0xE1, ... 0x4B."""
        assert _ROUND_CONSTANTS[0] == 0xF0
        assert _ROUND_CONSTANTS[1] == 0xE1
        assert _ROUND_CONSTANTS[11] == 0x4B
        assert len(_ROUND_CONSTANTS) == 12

    def test_iv(self):
        """Ascon-Hash256 IV from SP 800-232."""
        assert IV == 0x0000080100CC0002

    def test_rotr(self):
        """64-bit rotate right."""
        assert _rotr(1, 1) == 0x8000000000000000
        assert _rotr(0x8000000000000000, 63) == 1


class TestAsconHash256:
    """Tests for the hash function."""

    def test_empty_message(self):
        """Known answer for the empty message."""
        assert ascon_hash256(b"").hex() == (
            "0b3be5850f2f6b98caf29f8fdea89b64a1fa70aa249b8f839bd53baa304d92b2"
        )

    @pytest.mark.parametrize("length, expected", [
        (1, "0728621035af3ed2bca03bf6fde900f9456f5330e4b5ee23e7f6a1e70291bc80"),
        (2, "6115e7c9c4081c2797fc8fe1bc57a836afa1c5381e556dd583860ca2dfb48dd2"),
        (7, "3e4d273ba69b3b9c53216107e88b75cdbeedbcbf8faf0219c3928ab62b116577"),
        (8, "b88e497ae8e6fb641b87ef622eb8f2fca0ed95383f7ffebe167acf1099ba764f"),
        (9, "94269c30e0296e1ec86655041841823efa1927f520fd58c8e9bce6197878c1a6"),
        (16, "3158c1940a2fbadbd68ab661777859b94a689e4efc375911467addd641835c38"),
        (32, "bd9d3d60a66b53868eab2a5c74539a518a1f60f01eb176c60e43dee81680b33e"),
    ])
    def test_known_answers(self, length, expected):
        """Known answers for 00 01 02 ... messages around the 8-byte rate."""
        assert ascon_hash256(bytes(range(length))).hex() == expected

    def test_digest_size(self):
        """Digest is 32 bytes."""
        assert len(ascon_hash256(b"\x01\x02\x03\x04\x05")) == DIGEST_SIZE == 32

    def test_different_inputs(self):
        """Different messages give different digests."""
        assert ascon_hash256(b"\x00") != ascon_hash256(b"")
        assert ascon_hash256(b"\x00") != ascon_hash256(b"\x00\x00")
        assert ascon_hash256(bytes(8)) != ascon_hash256(bytes(7))

    def test_incremental_matches_one_shot(self):
        """Splitting the input at any point gives the same digest."""
        data = bytes(range(37))
        expected = ascon_hash256(data)
        for split in range(len(data) + 1):
            hasher = AsconHash256()
            hasher.update(data[:split])
            hasher.update(data[split:])
            assert hasher.digest() == expected, f"split at {split}"

    def test_digest_does_not_finalize(self):
        """digest() can be called repeatedly and absorbing can continue."""
        hasher = AsconHash256(b"abc")
        first = hasher.digest()
        assert hasher.digest() == first
        hasher.update(b"def")
        assert hasher.digest() == ascon_hash256(b"abcdef")

    def test_copy(self):
        """copy() gives an independent hasher."""
        hasher = AsconHash256(b"abc")
        other = hasher.copy()
        other.update(b"x")
        assert hasher.digest() == ascon_hash256(b"abc")
        assert other.digest() == ascon_hash256(b"abcx")

    def test_hexdigest(self):
        """hexdigest() is the hex of digest()."""
        hasher = AsconHash256(b"firmware")
        assert hasher.hexdigest() == hasher.digest().hex()
