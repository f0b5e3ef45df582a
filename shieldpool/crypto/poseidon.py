"""
Poseidon Hash Function for the shielded pool.

This module provides ZK-friendly hashing using the Poseidon hash function,
which is optimized for arithmetic circuits (low constraint count in SNARKs).

Every hash in the pool goes through here:
- commitment = Poseidon(secret, nullifier)
- key        = Poseidon(commitment)
- nullifier hash = Poseidon(nullifier)
- SMT leaf   = Poseidon(key, value, 1)
- SMT node   = Poseidon(left, right)

References:
- Poseidon paper: https://eprint.iacr.org/2019/458
- circomlib implementation: https://github.com/iden3/circomlib

Parameters (BN254 / alt_bn128):
- Field: 21888242871839275222246405745257275088548364400416034343698204186575808495617
- t = arity + 1 (one capacity element), arity 1..3
- rounds_f=8 (full rounds)
- rounds_p=56/57/56 for t=2/3/4 (partial rounds)
- alpha=5 (S-box exponent)
"""

import hashlib
from typing import Dict, List, Sequence, Tuple

# BN254 scalar field prime
FIELD_PRIME = 21888242871839275222246405745257275088548364400416034343698204186575808495617

# Fixed width of every serialized field element
FIELD_ELEMENT_SIZE = 32

# Canonical empty-subtree hash. Serialized as 32 zero bytes, never shorter or longer.
ZERO_HASH = 0

ROUNDS_F = 8
ROUNDS_P = {2: 56, 3: 57, 4: 56}
MAX_INPUTS = 3


# =============================================================================
# Round Constants
# =============================================================================

def _generate_round_constants(t: int, rounds_f: int, rounds_p: int, seed: bytes = b"poseidon") -> List[int]:
    """
    Generate Poseidon round constants using a deterministic PRNG.

    The seed is extended with the state width so that every width gets
    an independent constant stream.
    """
    total_rounds = rounds_f + rounds_p

    h = hashlib.shake_256(seed + t.to_bytes(1, "big"))
    digest = h.digest(total_rounds * t * 32)

    constants = []
    for i in range(total_rounds * t):
        chunk = digest[i * 32:(i + 1) * 32]
        constants.append(int.from_bytes(chunk, byteorder="big") % FIELD_PRIME)

    return constants


def _generate_mds_matrix(t: int) -> List[List[int]]:
    """
    Generate MDS (Maximum Distance Separable) matrix for Poseidon.

    Uses a Cauchy matrix construction which is guaranteed to be MDS.
    """
    x = [(i + 1) % FIELD_PRIME for i in range(t)]
    y = [(t + i + 1) % FIELD_PRIME for i in range(t)]

    matrix = []
    for i in range(t):
        row = []
        for j in range(t):
            # M[i][j] = 1 / (x[i] + y[j]) mod p
            denom = (x[i] + y[j]) % FIELD_PRIME
            row.append(pow(denom, FIELD_PRIME - 2, FIELD_PRIME))
        matrix.append(row)

    return matrix


_CONSTANTS: Dict[int, Tuple[List[int], List[List[int]]]] = {}


def _get_constants(t: int) -> Tuple[List[int], List[List[int]]]:
    """Get or compute round constants and MDS matrix for width t."""
    if t not in _CONSTANTS:
        _CONSTANTS[t] = (
            _generate_round_constants(t=t, rounds_f=ROUNDS_F, rounds_p=ROUNDS_P[t]),
            _generate_mds_matrix(t),
        )
    return _CONSTANTS[t]


# =============================================================================
# Poseidon Core Implementation
# =============================================================================

def _sbox(x: int) -> int:
    """Apply S-box: x^5 mod p."""
    return pow(x, 5, FIELD_PRIME)


def _mds_multiply(state: List[int], matrix: List[List[int]]) -> List[int]:
    """Multiply state by MDS matrix."""
    return [
        sum(m * s for m, s in zip(row, state)) % FIELD_PRIME
        for row in matrix
    ]


def _add_round_constants(state: List[int], constants: List[int], round_idx: int) -> List[int]:
    """Add round constants to state."""
    offset = round_idx * len(state)
    return [(x + constants[offset + i]) % FIELD_PRIME for i, x in enumerate(state)]


def _full_round(state: List[int], constants: List[int], matrix: List[List[int]], round_idx: int) -> List[int]:
    """Execute a full round (S-box on all elements)."""
    state = _add_round_constants(state, constants, round_idx)
    state = [_sbox(x) for x in state]
    return _mds_multiply(state, matrix)


def _partial_round(state: List[int], constants: List[int], matrix: List[List[int]], round_idx: int) -> List[int]:
    """Execute a partial round (S-box on first element only)."""
    state = _add_round_constants(state, constants, round_idx)
    state[0] = _sbox(state[0])
    return _mds_multiply(state, matrix)


def poseidon_hash(inputs: Sequence[int], domain_sep: int = 0) -> int:
    """
    Compute Poseidon hash of inputs.

    The state width is len(inputs) + 1, so Poseidon(a) and Poseidon(a, 0)
    are different functions.

    Args:
        inputs: 1 to 3 field elements (integers < FIELD_PRIME)
        domain_sep: Optional domain separator placed in the capacity element

    Returns:
        Hash as a field element (integer)

    Raises:
        ValueError: If inputs are out of range or wrong count
    """
    if not 1 <= len(inputs) <= MAX_INPUTS:
        raise ValueError(f"Poseidon supports 1 to {MAX_INPUTS} inputs, got {len(inputs)}")

    for i, val in enumerate(inputs):
        if not (0 <= val < FIELD_PRIME):
            raise ValueError(f"Input {i} out of field range: {val}")

    t = len(inputs) + 1
    state = [domain_sep % FIELD_PRIME] + list(inputs)

    constants, matrix = _get_constants(t)
    half_f = ROUNDS_F // 2

    round_idx = 0
    for _ in range(half_f):
        state = _full_round(state, constants, matrix, round_idx)
        round_idx += 1

    for _ in range(ROUNDS_P[t]):
        state = _partial_round(state, constants, matrix, round_idx)
        round_idx += 1

    for _ in range(half_f):
        state = _full_round(state, constants, matrix, round_idx)
        round_idx += 1

    # Output is the second element (index 1)
    return state[1]


# =============================================================================
# Convenience Functions
# =============================================================================

def poseidon1(a: int, domain_sep: int = 0) -> int:
    """Hash one field element."""
    return poseidon_hash([a], domain_sep)


def poseidon2(a: int, b: int, domain_sep: int = 0) -> int:
    """Hash two field elements."""
    return poseidon_hash([a, b], domain_sep)


def poseidon3(a: int, b: int, c: int, domain_sep: int = 0) -> int:
    """Hash three field elements."""
    return poseidon_hash([a, b, c], domain_sep)


def poseidon_bytes(data: bytes, domain_sep: int = 0) -> int:
    """
    Hash arbitrary bytes using Poseidon.

    Splits data into 31-byte chunks (to fit in field) and hashes iteratively.
    """
    if not data:
        return poseidon1(0, domain_sep)

    h = domain_sep % FIELD_PRIME
    for i in range(0, len(data), 31):
        chunk = int.from_bytes(data[i:i + 31], byteorder="big")
        h = poseidon2(h, chunk)

    return h


def int_to_bytes32(val: int) -> bytes:
    """Convert field element to 32 bytes (big-endian, zero-padded)."""
    if not (0 <= val < FIELD_PRIME):
        raise ValueError(f"Value {val} is not a field element")
    return val.to_bytes(FIELD_ELEMENT_SIZE, byteorder="big")


def bytes32_to_int(data: bytes) -> int:
    """Convert 32 bytes to field element."""
    if len(data) != FIELD_ELEMENT_SIZE:
        raise ValueError(f"Expected {FIELD_ELEMENT_SIZE} bytes, got {len(data)}")
    val = int.from_bytes(data, byteorder="big")
    if val >= FIELD_PRIME:
        raise ValueError(f"Value {val} exceeds field prime")
    return val


def field_to_hex(val: int) -> str:
    """Render a field element as 0x-prefixed, 64-digit hex."""
    return "0x" + int_to_bytes32(val).hex()


def hex_to_field(hex_str: str) -> int:
    """Parse a 0x-prefixed 32-byte hex string into a field element."""
    if hex_str.startswith("0x") or hex_str.startswith("0X"):
        hex_str = hex_str[2:]
    return bytes32_to_int(bytes.fromhex(hex_str))


# =============================================================================
# Pool-Specific Hash Functions
# =============================================================================

def hash_commitment(secret: int, nullifier: int) -> int:
    """
    Compute a deposit commitment.

    commitment = Poseidon(secret, nullifier)
    """
    return poseidon2(secret, nullifier)


def hash_nullifier(nullifier: int) -> int:
    """
    Compute the nullifier hash revealed at spend time.

    nullifier_hash = Poseidon(nullifier)
    """
    return poseidon1(nullifier)


def hash_key(commitment: int) -> int:
    """
    Derive the SMT key a commitment is stored under.

    key = Poseidon(commitment)
    """
    return poseidon1(commitment)


def hash_leaf(key: int, value: int) -> int:
    """
    Hash an SMT leaf.

    leaf = Poseidon(key, value, 1); the trailing 1 keeps leaves apart from
    internal nodes.
    """
    return poseidon3(key, value, 1)


def hash_node(left: int, right: int) -> int:
    """Hash an SMT internal node: Poseidon(left, right)."""
    return poseidon2(left, right)
