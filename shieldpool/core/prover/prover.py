"""
Withdraw proofs - typed Groth16 payloads and the prover/verifier interface.

The pool never looks inside a proof. It hands the proof and the three public
signals (root, nullifier hash, recipient) to a Verifier and trusts the
answer. What a proof attests to is the withdraw relation:

    commitment    = Poseidon(secret, nullifier)
    key           = Poseidon(commitment)
    nullifierHash = Poseidon(nullifier)
    Leaf(key, commitment) is in the SMT with the given root

The recipient signal is bound but unconstrained, so a proof cannot be
replayed for another recipient (or, for transfers, another new commitment).

Two implementations exist:
1. Mock (MockProver / MockVerifier) - evaluates the relation in Python and
   produces curve points bound to the public signals under a shared setup key
2. snarkjs (SnarkJSProver / SnarkJSVerifier in snarkjs.py) - real Groth16
"""

import hashlib
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Tuple

from py_ecc.optimized_bn128 import G1, G2, curve_order, field_modulus, multiply, normalize

from shieldpool.crypto import (
    FIELD_PRIME,
    FIELD_ELEMENT_SIZE,
    sha256,
    hash_commitment,
    hash_key,
    hash_nullifier,
    int_to_bytes32,
    field_to_hex,
)
from shieldpool.core.errors import ProofGenerationError
from shieldpool.core.smt.tree import InclusionProof, TreeSnapshot
from shieldpool.utils.validation import parse_field_hex
from shieldpool.utils.logger import get_logger

if TYPE_CHECKING:
    from shieldpool.core.pool.note import Note

logger = get_logger("prover")


# =============================================================================
# Constants
# =============================================================================

# Groth16 points live in the BN254 base field, which is larger than the
# scalar field used for every other value
BASE_FIELD_MODULUS = field_modulus

PROOF_SIZE = 8 * FIELD_ELEMENT_SIZE

# Circuit flag: 0 proves inclusion
INCLUSION = 0


def _word_to_bytes(value: int) -> bytes:
    if not 0 <= value < BASE_FIELD_MODULUS:
        raise ValueError(f"Proof coordinate out of range: {value}")
    return value.to_bytes(FIELD_ELEMENT_SIZE, byteorder="big")


def _bytes_to_word(data: bytes) -> int:
    if len(data) != FIELD_ELEMENT_SIZE:
        raise ValueError(f"Expected {FIELD_ELEMENT_SIZE} bytes, got {len(data)}")
    value = int.from_bytes(data, byteorder="big")
    if value >= BASE_FIELD_MODULUS:
        raise ValueError(f"Proof coordinate {value} exceeds base field")
    return value


# =============================================================================
# Proof and Public Signals
# =============================================================================


@dataclass(frozen=True)
class Groth16Proof:
    """
    A Groth16 proof: G1 point a, G2 point b, G1 point c (affine coordinates).

    b is stored as ((x0, x1), (y0, y1)) for x = x0 + x1*u.
    """
    a: Tuple[int, int]
    b: Tuple[Tuple[int, int], Tuple[int, int]]
    c: Tuple[int, int]

    def words(self) -> List[int]:
        """The eight coordinates in encoding order."""
        return [
            self.a[0], self.a[1],
            self.b[0][0], self.b[0][1], self.b[1][0], self.b[1][1],
            self.c[0], self.c[1],
        ]

    def to_bytes(self) -> bytes:
        """Serialize as 8 big-endian 32-byte words."""
        return b"".join(_word_to_bytes(w) for w in self.words())

    @classmethod
    def from_bytes(cls, data: bytes) -> "Groth16Proof":
        """Deserialize, rejecting wrong-length payloads and out-of-range words."""
        if len(data) != PROOF_SIZE:
            raise ValueError(f"Proof must be {PROOF_SIZE} bytes, got {len(data)}")
        w = [
            _bytes_to_word(data[i:i + FIELD_ELEMENT_SIZE])
            for i in range(0, PROOF_SIZE, FIELD_ELEMENT_SIZE)
        ]
        return cls(a=(w[0], w[1]), b=((w[2], w[3]), (w[4], w[5])), c=(w[6], w[7]))

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {"proof": "0x" + self.to_bytes().hex()}

    @classmethod
    def from_dict(cls, data: dict) -> "Groth16Proof":
        """Create from dict."""
        payload = data["proof"]
        if payload.startswith("0x"):
            payload = payload[2:]
        return cls.from_bytes(bytes.fromhex(payload))

    def to_snarkjs(self) -> dict:
        """Render in the proof.json layout used by snarkjs."""
        return {
            "pi_a": [str(self.a[0]), str(self.a[1]), "1"],
            "pi_b": [
                [str(self.b[0][0]), str(self.b[0][1])],
                [str(self.b[1][0]), str(self.b[1][1])],
                ["1", "0"],
            ],
            "pi_c": [str(self.c[0]), str(self.c[1]), "1"],
            "protocol": "groth16",
            "curve": "bn128",
        }

    @classmethod
    def from_snarkjs(cls, data: dict) -> "Groth16Proof":
        """Parse a snarkjs proof.json document."""
        pi_a, pi_b, pi_c = data["pi_a"], data["pi_b"], data["pi_c"]
        return cls(
            a=(int(pi_a[0]), int(pi_a[1])),
            b=((int(pi_b[0][0]), int(pi_b[0][1])), (int(pi_b[1][0]), int(pi_b[1][1]))),
            c=(int(pi_c[0]), int(pi_c[1])),
        )


@dataclass(frozen=True)
class PublicSignals:
    """
    Public inputs of the withdraw circuit.

    recipient is the payout address as a field element for a withdraw, or the
    new commitment for a transfer.
    """
    root: int
    nullifier_hash: int
    recipient: int

    def __post_init__(self):
        for name in ("root", "nullifier_hash", "recipient"):
            value = getattr(self, name)
            if not isinstance(value, int) or not 0 <= value < FIELD_PRIME:
                raise ValueError(f"{name} must be a field element, got {value!r}")

    def as_list(self) -> List[int]:
        return [self.root, self.nullifier_hash, self.recipient]

    def to_snarkjs(self) -> List[str]:
        return [str(x) for x in self.as_list()]

    @classmethod
    def from_snarkjs(cls, data: List[str]) -> "PublicSignals":
        if len(data) != 3:
            raise ValueError(f"Expected 3 public signals, got {len(data)}")
        return cls(root=int(data[0]), nullifier_hash=int(data[1]), recipient=int(data[2]))

    def to_dict(self) -> dict:
        return {
            "root": field_to_hex(self.root),
            "nullifier_hash": field_to_hex(self.nullifier_hash),
            "recipient": field_to_hex(self.recipient),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PublicSignals":
        return cls(
            root=parse_field_hex(data["root"], "root"),
            nullifier_hash=parse_field_hex(data["nullifier_hash"], "nullifier_hash"),
            recipient=parse_field_hex(data["recipient"], "recipient"),
        )


# =============================================================================
# Witness
# =============================================================================


@dataclass
class WithdrawWitness:
    """
    Witness data for the withdraw circuit.

    Contains all values needed to generate the proof.
    """
    # Public inputs
    root: int
    nullifier_hash: int
    recipient: int

    # Private inputs
    secret: int
    nullifier: int
    siblings: List[int] = field(default_factory=list)
    aux_key: int = 0
    aux_value: int = 0
    aux_is_empty: int = 0
    is_exclusion: int = INCLUSION

    @classmethod
    def build(cls, snapshot: TreeSnapshot, note: "Note", recipient: int) -> "WithdrawWitness":
        """
        Assemble circuit inputs for spending note against snapshot's root.

        Raises:
            ProofGenerationError: If the note's commitment is not in the tree
        """
        proof = snapshot.get_proof(note.key)
        if not proof.existence:
            raise ProofGenerationError(
                f"Commitment {field_to_hex(note.commitment)} is not in tree {field_to_hex(snapshot.root)}"
            )

        return cls(
            root=snapshot.root,
            nullifier_hash=note.nullifier_hash,
            recipient=recipient,
            secret=note.secret,
            nullifier=note.nullifier,
            siblings=list(proof.siblings),
            aux_key=proof.aux_key,
            aux_value=proof.aux_value,
            aux_is_empty=int(proof.aux_is_empty),
            is_exclusion=INCLUSION,
        )

    @property
    def public_signals(self) -> PublicSignals:
        return PublicSignals(root=self.root, nullifier_hash=self.nullifier_hash, recipient=self.recipient)

    def check(self) -> Tuple[bool, str]:
        """
        Evaluate the withdraw relation.

        Returns:
            (is_valid, error_message)
        """
        if self.is_exclusion != INCLUSION:
            return False, "Only inclusion proofs are supported"
        if not 0 <= self.recipient < FIELD_PRIME:
            return False, "Recipient out of field range"

        try:
            commitment = hash_commitment(self.secret, self.nullifier)
            nullifier_hash = hash_nullifier(self.nullifier)
        except ValueError as e:
            return False, f"Invalid private input: {e}"

        if nullifier_hash != self.nullifier_hash:
            return False, "Nullifier hash does not match nullifier"

        inclusion = InclusionProof(
            root=self.root,
            siblings=tuple(self.siblings),
            existence=True,
            key=hash_key(commitment),
            value=commitment,
        )
        if inclusion.compute_root() != self.root:
            return False, "Commitment is not included under root"

        return True, ""

    def to_json(self) -> dict:
        """Convert to JSON format for snarkjs."""
        return {
            "root": str(self.root),
            "nullifierHash": str(self.nullifier_hash),
            "recipient": str(self.recipient),
            "secret": str(self.secret),
            "nullifier": str(self.nullifier),
            "siblings": [str(s) for s in self.siblings],
            "auxKey": str(self.aux_key),
            "auxValue": str(self.aux_value),
            "auxIsEmpty": str(self.aux_is_empty),
            "isExclusion": str(self.is_exclusion),
        }


# =============================================================================
# Interfaces
# =============================================================================


class Prover(ABC):
    """Produces withdraw proofs from witnesses."""

    @abstractmethod
    def generate_proof(self, witness: WithdrawWitness) -> Tuple[Groth16Proof, PublicSignals]:
        """
        Prove witness.

        Raises:
            ProofGenerationError: If the witness is invalid or proving fails
        """


class Verifier(ABC):
    """Checks a proof against public signals."""

    @abstractmethod
    def verify_proof(self, proof: Groth16Proof, signals: PublicSignals) -> Tuple[bool, str]:
        """
        Verify a proof.

        Returns:
            (is_valid, error_message)
        """


# =============================================================================
# Mock Prover (Simulated ZK)
# =============================================================================


@dataclass(frozen=True)
class MockSetup:
    """Shared secret standing in for a trusted setup."""
    key: bytes

    @classmethod
    def generate(cls) -> "MockSetup":
        return cls(key=secrets.token_bytes(32))

    def bind(self, signals: PublicSignals) -> Groth16Proof:
        """Derive the unique proof points for signals under this setup."""
        seed = sha256(self.key + b"".join(int_to_bytes32(s) for s in signals.as_list()))
        stream = hashlib.shake_256(seed).digest(96)
        s_a, s_b, s_c = (
            int.from_bytes(stream[i:i + 32], "big") % (curve_order - 1) + 1
            for i in (0, 32, 64)
        )

        a = normalize(multiply(G1, s_a))
        b = normalize(multiply(G2, s_b))
        c = normalize(multiply(G1, s_c))

        return Groth16Proof(
            a=(int(a[0]), int(a[1])),
            b=(tuple(int(x) for x in b[0].coeffs), tuple(int(y) for y in b[1].coeffs)),
            c=(int(c[0]), int(c[1])),
        )


class MockProver(Prover):
    """
    Simulated prover for development and testing.

    Refuses witnesses that do not satisfy the withdraw relation, so a proof
    only exists for a real note under a real root.
    """

    def __init__(self, setup: MockSetup):
        self.setup = setup
        self.proofs_generated = 0

    def generate_proof(self, witness: WithdrawWitness) -> Tuple[Groth16Proof, PublicSignals]:
        start_time = time.time()

        valid, error = witness.check()
        if not valid:
            raise ProofGenerationError(f"Invalid witness: {error}")

        signals = witness.public_signals
        proof = self.setup.bind(signals)

        self.proofs_generated += 1
        proving_time_ms = int((time.time() - start_time) * 1000)
        logger.info(f"Mock proof generated in {proving_time_ms}ms")

        return proof, signals


class MockVerifier(Verifier):
    """Accepts exactly the proofs its paired MockProver produces."""

    def __init__(self, setup: MockSetup):
        self.setup = setup

    def verify_proof(self, proof: Groth16Proof, signals: PublicSignals) -> Tuple[bool, str]:
        if not isinstance(proof, Groth16Proof):
            return False, "Malformed proof"
        if proof != self.setup.bind(signals):
            return False, "Proof does not match public signals"
        return True, ""


def mock_setup() -> Tuple[MockProver, MockVerifier]:
    """Create a prover/verifier pair sharing a fresh setup."""
    setup = MockSetup.generate()
    return MockProver(setup), MockVerifier(setup)
