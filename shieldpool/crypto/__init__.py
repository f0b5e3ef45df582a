"""
Cryptographic primitives for the shielded pool.

This module provides:
- Hashing functions (SHA-256, Keccak-256, Poseidon)
- Key generation and recipient address derivation
- Field element encoding helpers

Design Notes:
-------------
Recipients are plain Ethereum-style addresses (last 20 bytes of the Keccak-256
of a secp256k1 public key). Inside a withdraw proof the address is bound as a
field element, so it is converted with address_to_field().

Poseidon is used for everything the circuit sees:
- Commitments and their SMT keys
- Nullifier hashes
- SMT leaf and internal-node hashes

SHA-256 is retained for non-circuit work (mock proof binding, benchmarks).
"""

import hashlib
import secrets
from dataclasses import dataclass

from Crypto.Hash import keccak
from py_ecc.secp256k1 import secp256k1


# =============================================================================
# Constants
# =============================================================================

# secp256k1 curve order (number of points on the curve)
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

ADDRESS_SIZE = 20


# =============================================================================
# Hashing
# =============================================================================


def sha256(data: bytes) -> bytes:
    """
    Compute SHA-256 hash.

    Used for: mock proof binding, content addressing.
    """
    return hashlib.sha256(data).digest()


def keccak256(data: bytes) -> bytes:
    """
    Compute Keccak-256 hash (Ethereum-style).

    Used for: address derivation.
    """
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


# =============================================================================
# Key Generation
# =============================================================================


@dataclass
class KeyPair:
    """
    An ECDSA keypair on secp256k1.

    Attributes:
        private_key: 32-byte secret key (integer in [1, order-1])
        public_key: 64-byte uncompressed public key (x || y coordinates)
    """
    private_key: bytes  # 32 bytes
    public_key: bytes   # 64 bytes (uncompressed, no 0x04 prefix)

    @property
    def address(self) -> bytes:
        """20-byte address derived from the public key."""
        return address_from_public_key(self.public_key)

    @property
    def address_hex(self) -> str:
        return bytes_to_hex(self.address)


def generate_keypair() -> KeyPair:
    """
    Generate a new random keypair.

    Uses cryptographically secure random number generator.
    """
    private_key_int = secrets.randbelow(SECP256K1_ORDER - 1) + 1
    private_key = private_key_int.to_bytes(32, byteorder="big")

    # P = k * G
    x, y = secp256k1.privtopub(private_key)
    public_key = x.to_bytes(32, byteorder="big") + y.to_bytes(32, byteorder="big")

    return KeyPair(private_key=private_key, public_key=public_key)


def address_from_public_key(public_key: bytes) -> bytes:
    """
    Derive address from public key (Ethereum-style).

    address = keccak256(public_key)[-20:]
    """
    if len(public_key) != 64:
        raise ValueError("Public key must be 64 bytes")
    return keccak256(public_key)[-ADDRESS_SIZE:]


def address_to_field(address: bytes) -> int:
    """Interpret a 20-byte address as a field element (always < FIELD_PRIME)."""
    if len(address) != ADDRESS_SIZE:
        raise ValueError(f"Address must be {ADDRESS_SIZE} bytes, got {len(address)}")
    return int.from_bytes(address, byteorder="big")


# =============================================================================
# Utility Functions
# =============================================================================


def bytes_to_hex(data: bytes) -> str:
    """Convert bytes to hex string with 0x prefix."""
    return "0x" + data.hex()


def hex_to_bytes(hex_str: str) -> bytes:
    """Convert hex string (with or without 0x prefix) to bytes."""
    if hex_str.startswith("0x") or hex_str.startswith("0X"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)


def is_valid_address(address: str) -> bool:
    """Check if string is a valid address format."""
    if not address.startswith("0x"):
        return False
    if len(address) != 42:  # 0x + 40 hex chars
        return False
    try:
        int(address, 16)
        return True
    except ValueError:
        return False


# =============================================================================
# Poseidon Hash (ZK-friendly)
# =============================================================================

from shieldpool.crypto.poseidon import (
    # Core hash functions
    poseidon_hash,
    poseidon1,
    poseidon2,
    poseidon3,
    poseidon_bytes,
    # Field element conversion
    int_to_bytes32,
    bytes32_to_int,
    field_to_hex,
    hex_to_field,
    FIELD_PRIME,
    FIELD_ELEMENT_SIZE,
    ZERO_HASH,
    # Pool-specific hash functions
    hash_commitment,
    hash_nullifier,
    hash_key,
    hash_leaf,
    hash_node,
)
