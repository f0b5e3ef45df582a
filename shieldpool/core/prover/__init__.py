"""Withdraw proof generation and verification."""

from shieldpool.core.prover.prover import (
    Groth16Proof,
    PublicSignals,
    WithdrawWitness,
    Prover,
    Verifier,
    MockSetup,
    MockProver,
    MockVerifier,
    mock_setup,
)
from shieldpool.core.prover.snarkjs import SnarkJSProver, SnarkJSVerifier
