"""
Unit tests for withdraw proofs.

Tests cover:
1. Groth16 proof and public signal encoding
2. Witness construction from a tree snapshot
3. Withdraw relation check
4. Mock prover / verifier binding
5. snarkjs wrappers without circuit files
"""

import pytest

from shieldpool.crypto import FIELD_PRIME, hash_nullifier
from shieldpool.core.errors import ProofGenerationError
from shieldpool.core.pool import Note
from shieldpool.core.prover import (
    Groth16Proof,
    PublicSignals,
    WithdrawWitness,
    MockSetup,
    MockProver,
    MockVerifier,
    SnarkJSProver,
    SnarkJSVerifier,
    mock_setup,
)
from shieldpool.core.smt import SparseMerkleTree

RECIPIENT = 0xABCDEF


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def notes():
    return [Note.generate() for _ in range(3)]


@pytest.fixture
def tree(notes):
    tree = SparseMerkleTree(height=32)
    for note in notes:
        tree.insert(note.key, note.commitment)
    return tree


@pytest.fixture
def witness(tree, notes):
    return WithdrawWitness.build(tree.snapshot(), notes[1], RECIPIENT)


@pytest.fixture
def proof_system():
    return mock_setup()


def sample_proof() -> Groth16Proof:
    return Groth16Proof(a=(1, 2), b=((3, 4), (5, 6)), c=(7, 8))


# =============================================================================
# Encoding
# =============================================================================


class TestGroth16Proof:
    """Proof payload encoding."""

    def test_bytes_roundtrip(self):
        proof = sample_proof()
        data = proof.to_bytes()
        assert len(data) == 256
        assert Groth16Proof.from_bytes(data) == proof

    def test_wrong_length_rejected(self):
        with pytest.raises(ValueError):
            Groth16Proof.from_bytes(bytes(255))

    def test_out_of_range_word_rejected(self):
        data = b"\xff" * 32 + bytes(224)
        with pytest.raises(ValueError):
            Groth16Proof.from_bytes(data)

    def test_dict_roundtrip(self):
        proof = sample_proof()
        assert Groth16Proof.from_dict(proof.to_dict()) == proof

    def test_snarkjs_roundtrip(self):
        proof = sample_proof()
        doc = proof.to_snarkjs()
        assert doc["protocol"] == "groth16"
        assert doc["pi_a"] == ["1", "2", "1"]
        assert Groth16Proof.from_snarkjs(doc) == proof


class TestPublicSignals:
    """Public input encoding."""

    def test_order(self):
        signals = PublicSignals(root=1, nullifier_hash=2, recipient=3)
        assert signals.as_list() == [1, 2, 3]
        assert signals.to_snarkjs() == ["1", "2", "3"]

    def test_roundtrips(self):
        signals = PublicSignals(root=11, nullifier_hash=22, recipient=33)
        assert PublicSignals.from_snarkjs(signals.to_snarkjs()) == signals
        assert PublicSignals.from_dict(signals.to_dict()) == signals

    def test_non_field_rejected(self):
        with pytest.raises(ValueError):
            PublicSignals(root=FIELD_PRIME, nullifier_hash=0, recipient=0)

    def test_wrong_count_rejected(self):
        with pytest.raises(ValueError):
            PublicSignals.from_snarkjs(["1", "2"])

    def test_from_dict_rejects_bad_hex(self):
        data = PublicSignals(root=11, nullifier_hash=22, recipient=33).to_dict()
        data["recipient"] = "0x21"
        with pytest.raises(ValueError):
            PublicSignals.from_dict(data)

        data["recipient"] = f"0x{FIELD_PRIME:064x}"
        with pytest.raises(ValueError):
            PublicSignals.from_dict(data)


# =============================================================================
# Witness
# =============================================================================


class TestWitness:
    """Witness construction and the withdraw relation."""

    def test_build(self, witness, tree, notes):
        assert witness.root == tree.root
        assert witness.nullifier_hash == notes[1].nullifier_hash
        assert witness.recipient == RECIPIENT
        assert len(witness.siblings) == 32
        assert witness.is_exclusion == 0
        assert witness.aux_is_empty == 0

    def test_valid_witness_checks(self, witness):
        assert witness.check() == (True, "")

    def test_wrong_nullifier_hash(self, witness):
        witness.nullifier_hash = hash_nullifier(witness.nullifier + 1)
        valid, error = witness.check()
        assert not valid
        assert "Nullifier" in error

    def test_wrong_root(self, witness):
        witness.root = (witness.root + 1) % FIELD_PRIME
        valid, _ = witness.check()
        assert not valid

    def test_wrong_secret(self, witness):
        witness.secret += 1
        valid, _ = witness.check()
        assert not valid

    def test_note_not_in_tree(self, tree):
        with pytest.raises(ProofGenerationError):
            WithdrawWitness.build(tree.snapshot(), Note.generate(), RECIPIENT)

    def test_historical_snapshot(self, tree, notes):
        old_root = tree.root
        tree.insert(Note.generate().key, 5)

        witness = WithdrawWitness.build(tree.snapshot(old_root), notes[0], RECIPIENT)
        assert witness.root == old_root
        assert witness.check()[0]

    def test_to_json(self, witness):
        data = witness.to_json()
        assert data["root"] == str(witness.root)
        assert data["nullifierHash"] == str(witness.nullifier_hash)
        assert data["recipient"] == str(RECIPIENT)
        assert len(data["siblings"]) == 32
        assert data["auxIsEmpty"] == "0"
        assert data["isExclusion"] == "0"
        assert all(isinstance(v, str) for v in data["siblings"])


# =============================================================================
# Mock Proof System
# =============================================================================


class TestMockProver:
    """Mock prover / verifier binding."""

    def test_generate_and_verify(self, proof_system, witness):
        prover, verifier = proof_system
        proof, signals = prover.generate_proof(witness)
        assert signals == witness.public_signals
        assert verifier.verify_proof(proof, signals) == (True, "")
        assert prover.proofs_generated == 1

    def test_proof_survives_encoding(self, proof_system, witness):
        prover, verifier = proof_system
        proof, signals = prover.generate_proof(witness)
        restored = Groth16Proof.from_bytes(proof.to_bytes())
        assert verifier.verify_proof(restored, signals)[0]

    def test_other_recipient_rejected(self, proof_system, witness):
        prover, verifier = proof_system
        proof, signals = prover.generate_proof(witness)
        swapped = PublicSignals(signals.root, signals.nullifier_hash, RECIPIENT + 1)
        valid, error = verifier.verify_proof(proof, swapped)
        assert not valid
        assert error

    def test_other_setup_rejected(self, proof_system, witness):
        prover, _ = proof_system
        proof, signals = prover.generate_proof(witness)
        other = MockVerifier(MockSetup.generate())
        assert not other.verify_proof(proof, signals)[0]

    def test_invalid_witness_refused(self, proof_system, witness):
        prover, _ = proof_system
        witness.secret += 1
        with pytest.raises(ProofGenerationError):
            prover.generate_proof(witness)
        assert prover.proofs_generated == 0

    def test_shared_setup(self, witness):
        setup = MockSetup.generate()
        proof, signals = MockProver(setup).generate_proof(witness)
        assert MockVerifier(setup).verify_proof(proof, signals)[0]


# =============================================================================
# snarkjs
# =============================================================================


class TestSnarkJS:
    """snarkjs wrappers report missing circuit files."""

    def test_prover_without_setup(self, tmp_path, witness):
        prover = SnarkJSProver(tmp_path)
        assert not prover.is_setup_complete()
        with pytest.raises(ProofGenerationError):
            prover.generate_proof(witness)

    def test_verifier_without_key(self, tmp_path):
        verifier = SnarkJSVerifier(tmp_path)
        valid, error = verifier.verify_proof(sample_proof(), PublicSignals(1, 2, 3))
        assert not valid
        assert "Verification key" in error

    def test_expected_paths(self, tmp_path):
        prover = SnarkJSProver(tmp_path, circuit_name="withdraw")
        assert prover.wasm_path == tmp_path / "withdraw_js" / "withdraw.wasm"
        assert prover.zkey_path == tmp_path / "withdraw.zkey"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
