"""
Real Groth16 proving and verification through snarkjs.

Requires:
- Node.js installed
- snarkjs installed globally (npm install -g snarkjs)
- Compiled withdraw circuit files (<name>_js/<name>.wasm, <name>.zkey,
  verification_key.json) in circuit_dir
"""

import json
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Tuple

from shieldpool.core.errors import ProofGenerationError
from shieldpool.core.prover.prover import (
    Groth16Proof,
    PublicSignals,
    Prover,
    Verifier,
    WithdrawWitness,
)
from shieldpool.utils.logger import get_logger

logger = get_logger("prover.snarkjs")


class SnarkJSProver(Prover):
    """Groth16 prover using snarkjs via subprocess."""

    def __init__(self, circuit_dir: Path, circuit_name: str = "withdraw"):
        """
        Initialize snarkjs prover.

        Args:
            circuit_dir: Directory containing compiled circuit files
            circuit_name: Name of the circuit
        """
        self.circuit_dir = Path(circuit_dir)
        self.circuit_name = circuit_name

        # Expected file paths
        self.js_dir = self.circuit_dir / f"{circuit_name}_js"
        self.wasm_path = self.js_dir / f"{circuit_name}.wasm"
        self.zkey_path = self.circuit_dir / f"{circuit_name}.zkey"

        self.proofs_generated = 0

    def is_setup_complete(self) -> bool:
        """Check if circuit files exist."""
        return self.wasm_path.exists() and self.zkey_path.exists()

    def generate_proof(self, witness: WithdrawWitness) -> Tuple[Groth16Proof, PublicSignals]:
        if not self.is_setup_complete():
            raise ProofGenerationError("Circuit not compiled. Run setup first.")

        start_time = time.time()

        with tempfile.TemporaryDirectory() as work_dir:
            work = Path(work_dir)
            input_path = work / "input.json"
            witness_path = work / "witness.wtns"
            proof_path = work / "proof.json"
            public_path = work / "public.json"

            with open(input_path, "w") as f:
                json.dump(witness.to_json(), f)

            _run(
                [
                    "node",
                    str(self.js_dir / "generate_witness.js"),
                    str(self.wasm_path),
                    str(input_path),
                    str(witness_path),
                ],
                timeout=60,
                step="Witness generation",
            )
            _run(
                [
                    "snarkjs", "groth16", "prove",
                    str(self.zkey_path),
                    str(witness_path),
                    str(proof_path),
                    str(public_path),
                ],
                timeout=300,
                step="Proof generation",
            )

            with open(proof_path) as f:
                proof = Groth16Proof.from_snarkjs(json.load(f))
            with open(public_path) as f:
                signals = PublicSignals.from_snarkjs(json.load(f))

        if signals != witness.public_signals:
            raise ProofGenerationError("Circuit public signals differ from witness")

        self.proofs_generated += 1
        proving_time_ms = int((time.time() - start_time) * 1000)
        logger.info(f"Proof generated in {proving_time_ms}ms")

        return proof, signals


def _run(command: list, timeout: int, step: str) -> None:
    try:
        result = subprocess.run(command, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired as e:
        raise ProofGenerationError(f"{step} timed out") from e
    except FileNotFoundError as e:
        raise ProofGenerationError(f"{command[0]} not found") from e

    if result.returncode != 0:
        raise ProofGenerationError(f"{step} failed: {result.stderr}")


class SnarkJSVerifier(Verifier):
    """Groth16 verifier using `snarkjs groth16 verify`."""

    def __init__(self, circuit_dir: Path):
        self.circuit_dir = Path(circuit_dir)
        self.vkey_path = self.circuit_dir / "verification_key.json"

    def verify_proof(self, proof: Groth16Proof, signals: PublicSignals) -> Tuple[bool, str]:
        if not self.vkey_path.exists():
            return False, "Verification key not found"

        with tempfile.TemporaryDirectory() as work_dir:
            work = Path(work_dir)
            proof_path = work / "proof.json"
            public_path = work / "public.json"

            with open(proof_path, "w") as f:
                json.dump(proof.to_snarkjs(), f)
            with open(public_path, "w") as f:
                json.dump(signals.to_snarkjs(), f)

            try:
                result = subprocess.run(
                    [
                        "snarkjs", "groth16", "verify",
                        str(self.vkey_path),
                        str(public_path),
                        str(proof_path),
                    ],
                    capture_output=True,
                    text=True,
                    timeout=30,
                )
            except subprocess.TimeoutExpired:
                return False, "Verification timed out"
            except FileNotFoundError:
                return False, "snarkjs not found"

        if result.returncode == 0 and "OK" in result.stdout:
            logger.debug("Proof verification: VALID")
            return True, ""

        logger.warning(f"Proof verification: INVALID - {result.stdout}")
        return False, f"Verification failed: {result.stdout}"
