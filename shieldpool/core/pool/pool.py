"""
Commitment Pool - shielded deposits, withdrawals and transfers.

Conceptual Background:
---------------------
A pool holds fixed-denomination deposits behind hidden commitments:

1. **Deposit**: commitment = Poseidon(secret, nullifier) is inserted into the
   sparse Merkle tree under key Poseidon(commitment); the value is escrowed.
2. **Withdraw**: the owner proves in zero knowledge that some leaf under a
   recent root opens to (secret, nullifier), and reveals only
   Poseidon(nullifier). The pool pays the bound recipient.
3. **Transfer**: same proof, but the bound public input is a new commitment,
   which is inserted instead of paying out.

Double spends are stopped by the nullifier set; stale or forged roots by the
root history window of the tree.

Spend Processing:
----------------
1. Check root is in the history window, nullifier unspent
2. Verify the proof (outside the lock - it is the slow step)
3. Under the lock: re-check 1, then mark the nullifier and pay or re-commit
4. A failed payout removes the nullifier again before reporting failure
5. With storage attached, a leaf is written to disk before it enters the
   tree; a withdraw whose write fails is undone in memory
"""

import threading
from typing import Dict, Iterable, List, Optional, Set, Tuple

from shieldpool.crypto import address_to_field, bytes_to_hex, field_to_hex, hash_key
from shieldpool.core.config import PoolConfig, DEFAULT_DENOMINATION
from shieldpool.core.errors import (
    CommitmentAlreadyExists,
    InvalidDepositAmount,
    InvalidWithdrawProof,
    NullifierAlreadyExists,
    PayoutRejected,
    RootDoesNotExist,
    WithdrawFailed,
)
from shieldpool.core.pool.escrow import Escrow
from shieldpool.core.pool.note import Note
from shieldpool.core.prover.prover import Groth16Proof, PublicSignals, Verifier, WithdrawWitness
from shieldpool.core.smt.multiproof import MultiProof, compute_multiproof
from shieldpool.core.smt.tree import InclusionProof, SparseMerkleTree
from shieldpool.core.storage.storage_manager import StorageManager
from shieldpool.utils.validation import validate_address, validate_amount, validate_field_element
from shieldpool.utils.logger import get_logger

logger = get_logger("pool")


class CommitmentPool:
    """
    One denomination tier of the shielded pool.

    Attributes:
        denomination: The only accepted deposit value
        tree: Commitment SMT (also keeps the root history)
        commitments: Every commitment ever inserted
        nullifier_hashes: Spent nullifier hashes
        escrow: Locked value
    """

    def __init__(
        self,
        verifier: Verifier,
        denomination: int = DEFAULT_DENOMINATION,
        tree_height: int = 32,
        root_history_size: int = 100,
        escrow: Optional[Escrow] = None,
        storage_manager: Optional[StorageManager] = None,
    ):
        valid, error = validate_amount(denomination)
        if not valid:
            raise ValueError(f"Invalid denomination: {error}")

        self.verifier = verifier
        self.denomination = denomination
        self.pool_id = str(denomination)
        self.tree = SparseMerkleTree(height=tree_height, root_history_size=root_history_size)
        self.escrow = escrow if escrow is not None else Escrow()
        self.storage = storage_manager

        self.commitments: Set[int] = set()
        self.nullifier_hashes: Set[int] = set()

        self._lock = threading.RLock()

        if self.storage:
            self.storage.check_parameters(self.pool_id, tree_height, root_history_size)
            self._load_from_storage()

    @classmethod
    def from_config(
        cls,
        config: PoolConfig,
        verifier: Verifier,
        denomination: Optional[int] = None,
        storage_manager: Optional[StorageManager] = None,
    ) -> "CommitmentPool":
        return cls(
            verifier=verifier,
            denomination=denomination if denomination is not None else config.denominations[0],
            tree_height=config.tree_height,
            root_history_size=config.root_history_size,
            storage_manager=storage_manager,
        )

    # =========================================================================
    # State Access
    # =========================================================================

    @property
    def root(self) -> int:
        return self.tree.root

    def is_known_root(self, root: int) -> bool:
        return self.tree.root_history_contains(root)

    def is_spent(self, nullifier_hash: int) -> bool:
        return nullifier_hash in self.nullifier_hashes

    def has_commitment(self, commitment: int) -> bool:
        return commitment in self.commitments

    def get_proof(self, commitment: int, root: Optional[int] = None) -> InclusionProof:
        """Inclusion (or non-membership) proof for commitment's leaf."""
        return self.tree.get_proof(hash_key(commitment), root)

    def multiproof(self, commitments: Iterable[int], root: Optional[int] = None) -> MultiProof:
        """Single proof that all commitments are in the tree."""
        return compute_multiproof(self.tree, [hash_key(c) for c in commitments], root)

    # =========================================================================
    # Deposit
    # =========================================================================

    def deposit(self, commitment: int, paid_value: int) -> int:
        """
        Deposit one denomination under commitment.

        Args:
            commitment: Poseidon(secret, nullifier)
            paid_value: Value sent with the deposit

        Returns:
            The new root

        Raises:
            InvalidDepositAmount: If paid_value is not the denomination
            CommitmentAlreadyExists: If commitment was deposited before
        """
        _require_field(commitment, "commitment")
        if paid_value != self.denomination:
            raise InvalidDepositAmount(
                f"Deposit must be exactly {self.denomination}, got {paid_value}"
            )

        with self._lock:
            if commitment in self.commitments:
                raise CommitmentAlreadyExists(f"Commitment {field_to_hex(commitment)} already deposited")

            key = hash_key(commitment)
            self.tree.check_insert(key)
            index = self.tree.leaf_count

            # Disk first: nothing in memory changes if the write fails
            if self.storage:
                self.storage.persist_deposit(
                    self.pool_id, index, key, commitment, self.escrow.balance + paid_value
                )

            new_root = self._insert_commitment(commitment)
            self.escrow.lock(paid_value)

        logger.info(f"Deposit #{index} into pool {self.pool_id}: root={field_to_hex(new_root)[:12]}...")
        return new_root

    # =========================================================================
    # Withdraw / Transfer
    # =========================================================================

    def withdraw(self, nullifier_hash: int, recipient: bytes, root: int, proof: Groth16Proof) -> None:
        """
        Spend a note and pay one denomination to recipient.

        Raises:
            RootDoesNotExist: If root is outside the history window
            NullifierAlreadyExists: If the note was already spent
            InvalidWithdrawProof: If the proof does not verify for these inputs
            WithdrawFailed: If the payout fails; the note stays unspent
        """
        valid, error = validate_address(recipient)
        if not valid:
            raise ValueError(f"Invalid recipient: {error}")

        self._check_spend(root, nullifier_hash)
        self._verify(proof, PublicSignals(root, nullifier_hash, address_to_field(recipient)))

        with self._lock:
            # The window may have moved while the proof was being verified
            self._check_spend(root, nullifier_hash)

            self.nullifier_hashes.add(nullifier_hash)
            try:
                self.escrow.release(recipient, self.denomination)
            except PayoutRejected as e:
                self.nullifier_hashes.discard(nullifier_hash)
                logger.warning(f"Payout to {bytes_to_hex(recipient)} failed: {e}")
                raise WithdrawFailed(f"Payout to {bytes_to_hex(recipient)} failed") from e

            if self.storage:
                try:
                    self.storage.persist_withdraw(self.pool_id, nullifier_hash, self.escrow.balance)
                except Exception:
                    self.escrow.revert_release(recipient, self.denomination)
                    self.nullifier_hashes.discard(nullifier_hash)
                    logger.error(f"Could not record withdraw of {field_to_hex(nullifier_hash)[:12]}..., rolled back")
                    raise

        logger.info(f"Withdraw from pool {self.pool_id} to {bytes_to_hex(recipient)[:12]}...")

    def transfer(self, nullifier_hash: int, new_commitment: int, root: int, proof: Groth16Proof) -> int:
        """
        Spend a note into a new commitment without moving value.

        Returns:
            The new root

        Raises:
            RootDoesNotExist: If root is outside the history window
            NullifierAlreadyExists: If the note was already spent
            CommitmentAlreadyExists: If new_commitment is already in the pool
            InvalidWithdrawProof: If the proof does not bind new_commitment
        """
        _require_field(new_commitment, "new_commitment")

        self._check_spend(root, nullifier_hash)
        self._check_new_commitment(new_commitment)
        self._verify(proof, PublicSignals(root, nullifier_hash, new_commitment))

        with self._lock:
            self._check_spend(root, nullifier_hash)
            self._check_new_commitment(new_commitment)

            key = hash_key(new_commitment)
            self.tree.check_insert(key)
            index = self.tree.leaf_count

            if self.storage:
                self.storage.persist_transfer(self.pool_id, nullifier_hash, index, key, new_commitment)

            new_root = self._insert_commitment(new_commitment)
            self.nullifier_hashes.add(nullifier_hash)

        logger.info(f"Transfer in pool {self.pool_id}: new leaf #{index}")
        return new_root

    # =========================================================================
    # Witness Preparation
    # =========================================================================

    def prepare_withdraw(self, note: Note, recipient: bytes, root: Optional[int] = None) -> WithdrawWitness:
        """Circuit inputs for withdrawing note to recipient."""
        return WithdrawWitness.build(self.tree.snapshot(root), note, address_to_field(recipient))

    def prepare_transfer(self, note: Note, new_commitment: int, root: Optional[int] = None) -> WithdrawWitness:
        """Circuit inputs for re-committing note to new_commitment."""
        return WithdrawWitness.build(self.tree.snapshot(root), note, new_commitment)

    # =========================================================================
    # Internals
    # =========================================================================

    def _check_spend(self, root: int, nullifier_hash: int) -> None:
        if not self.tree.root_history_contains(root):
            raise RootDoesNotExist(f"Root {field_to_hex(root)} is not known")
        if nullifier_hash in self.nullifier_hashes:
            raise NullifierAlreadyExists(f"Nullifier {field_to_hex(nullifier_hash)} already spent")

    def _check_new_commitment(self, commitment: int) -> None:
        if commitment in self.commitments:
            raise CommitmentAlreadyExists(f"Commitment {field_to_hex(commitment)} already exists")

    def _verify(self, proof: Groth16Proof, signals: PublicSignals) -> None:
        valid, error = self.verifier.verify_proof(proof, signals)
        if not valid:
            raise InvalidWithdrawProof(f"Invalid withdraw proof: {error}")

    def _insert_commitment(self, commitment: int) -> int:
        new_root = self.tree.insert(hash_key(commitment), commitment)
        self.commitments.add(commitment)
        return new_root

    def _load_from_storage(self) -> None:
        """Replay persisted leaves and restore the spent set and balance."""
        for key, commitment in self.storage.load_leaves(self.pool_id):
            self.tree.insert(key, commitment)
            self.commitments.add(commitment)

        self.nullifier_hashes = set(self.storage.load_nullifiers(self.pool_id))

        balance = self.storage.load_balance(self.pool_id)
        if balance is not None:
            self.escrow.balance = balance

        logger.info(
            f"Loaded pool {self.pool_id}: {len(self.commitments)} leaves, "
            f"{len(self.nullifier_hashes)} nullifiers, root={field_to_hex(self.root)[:12]}..."
        )

    def __repr__(self) -> str:
        return f"CommitmentPool(denomination={self.denomination}, leaves={self.tree.leaf_count})"

    def stats(self) -> dict:
        """Get pool statistics."""
        return {
            "denomination": self.denomination,
            "leaves": self.tree.leaf_count,
            "spent": len(self.nullifier_hashes),
            "escrow_balance": self.escrow.balance,
            "root": field_to_hex(self.root),
            "tree_height": self.tree.height,
            "root_history": len(self.tree.root_history()),
        }


def _require_field(value: int, name: str) -> None:
    valid, error = validate_field_element(value, name)
    if not valid:
        raise ValueError(error)


# =============================================================================
# Denomination Tiers
# =============================================================================


class PoolSet:
    """One CommitmentPool per permitted denomination."""

    def __init__(
        self,
        verifier: Verifier,
        denominations: Tuple[int, ...] = (DEFAULT_DENOMINATION,),
        tree_height: int = 32,
        root_history_size: int = 100,
        storage_manager: Optional[StorageManager] = None,
    ):
        if not denominations:
            raise ValueError("At least one denomination is required")

        self.pools: Dict[int, CommitmentPool] = {
            d: CommitmentPool(
                verifier=verifier,
                denomination=d,
                tree_height=tree_height,
                root_history_size=root_history_size,
                storage_manager=storage_manager,
            )
            for d in denominations
        }

    @classmethod
    def from_config(
        cls,
        config: PoolConfig,
        verifier: Verifier,
        storage_manager: Optional[StorageManager] = None,
    ) -> "PoolSet":
        return cls(
            verifier=verifier,
            denominations=config.denominations,
            tree_height=config.tree_height,
            root_history_size=config.root_history_size,
            storage_manager=storage_manager,
        )

    @property
    def denominations(self) -> List[int]:
        return sorted(self.pools)

    def pool(self, denomination: int) -> CommitmentPool:
        """
        Get the tier for denomination.

        Raises:
            InvalidDepositAmount: If no tier has this denomination
        """
        try:
            return self.pools[denomination]
        except KeyError:
            raise InvalidDepositAmount(
                f"No pool for {denomination}; permitted: {self.denominations}"
            ) from None

    def deposit(self, commitment: int, paid_value: int) -> int:
        """Route a deposit to the tier matching paid_value."""
        return self.pool(paid_value).deposit(commitment, paid_value)

    def withdraw(self, denomination: int, nullifier_hash: int, recipient: bytes, root: int, proof: Groth16Proof) -> None:
        self.pool(denomination).withdraw(nullifier_hash, recipient, root, proof)

    def transfer(self, denomination: int, nullifier_hash: int, new_commitment: int, root: int, proof: Groth16Proof) -> int:
        return self.pool(denomination).transfer(nullifier_hash, new_commitment, root, proof)

    def stats(self) -> dict:
        return {str(d): self.pools[d].stats() for d in self.denominations}
