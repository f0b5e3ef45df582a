"""
Unit tests for cryptographic primitives.

Tests cover:
1. Key generation
2. Hashing functions
3. Address derivation and encoding
"""

import pytest

from shieldpool.crypto import (
    generate_keypair,
    sha256,
    keccak256,
    address_from_public_key,
    address_to_field,
    bytes_to_hex,
    hex_to_bytes,
    is_valid_address,
    FIELD_PRIME,
    SECP256K1_ORDER,
)


class TestKeyGeneration:
    """Tests for key generation."""

    def test_keypair_generation_produces_valid_lengths(self):
        kp = generate_keypair()
        assert len(kp.private_key) == 32
        assert len(kp.public_key) == 64

    def test_private_key_in_range(self):
        kp = generate_keypair()
        assert 1 <= int.from_bytes(kp.private_key, "big") < SECP256K1_ORDER

    def test_keypair_address_format(self):
        """Address is 20 bytes; its hex form is 0x + 40 chars."""
        kp = generate_keypair()
        assert len(kp.address) == 20
        assert kp.address_hex.startswith("0x")
        assert is_valid_address(kp.address_hex)

    def test_keypairs_are_unique(self):
        kp1 = generate_keypair()
        kp2 = generate_keypair()
        assert kp1.private_key != kp2.private_key
        assert kp1.public_key != kp2.public_key


class TestHashing:
    """Tests for byte hashes."""

    def test_sha256_known_vector(self):
        assert sha256(b"").hex() == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"

    def test_keccak256_known_vector(self):
        """Keccak-256, not SHA3-256."""
        assert keccak256(b"").hex() == "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"

    def test_hash_lengths(self):
        assert len(sha256(b"x")) == 32
        assert len(keccak256(b"x")) == 32


class TestAddresses:
    """Tests for address derivation and encoding."""

    def test_address_from_public_key(self):
        kp = generate_keypair()
        assert address_from_public_key(kp.public_key) == keccak256(kp.public_key)[-20:]

    def test_address_from_bad_public_key(self):
        with pytest.raises(ValueError):
            address_from_public_key(b"\x01" * 33)

    def test_address_to_field(self):
        address = bytes(19) + b"\x2a"
        assert address_to_field(address) == 42

    def test_address_to_field_fits(self):
        assert address_to_field(b"\xff" * 20) < FIELD_PRIME

    def test_address_to_field_wrong_length(self):
        with pytest.raises(ValueError):
            address_to_field(b"\x01" * 32)

    def test_hex_roundtrip(self):
        data = b"\x00\x01\xfe\xff"
        assert bytes_to_hex(data) == "0x0001feff"
        assert hex_to_bytes("0x0001feff") == data
        assert hex_to_bytes("0001feff") == data

    @pytest.mark.parametrize("address,expected", [
        ("0x" + "ab" * 20, True),
        ("ab" * 21, False),
        ("0x" + "ab" * 19, False),
        ("0x" + "zz" * 20, False),
    ])
    def test_is_valid_address(self, address, expected):
        assert is_valid_address(address) is expected


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
