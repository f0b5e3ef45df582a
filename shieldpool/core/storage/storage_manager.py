from pathlib import Path
from typing import Optional, List, Tuple

from shieldpool.crypto import int_to_bytes32, bytes32_to_int
from shieldpool.core.storage.sqlite_adapter import SQLiteAdapter
from shieldpool.utils.logger import get_logger

logger = get_logger("storage.manager")


class StorageManager:
    """
    Manages persistent storage for the pools.

    Coordinates data persistence using SQLite adapter and converts between
    field elements and their fixed 32-byte encoding.
    Handles:
    - Leaves (replayed in order to rebuild each tree and its root history)
    - Spent nullifiers
    - Escrow balance and tree parameters
    """

    def __init__(self, data_dir: Path, db_name: str = "pool.db"):
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / db_name
        self.adapter = SQLiteAdapter(self.db_path)

        logger.info(f"StorageManager initialized at {self.db_path}")

    def close(self):
        self.adapter.close()

    # =========================================================================
    # Pool Parameters
    # =========================================================================

    def check_parameters(self, pool: str, tree_height: int, root_history_size: int):
        """
        Record tree parameters for a pool, or check them against the stored ones.

        Raises:
            ValueError: If the pool was created with a different geometry
        """
        for key, value in (("tree_height", tree_height), ("root_history_size", root_history_size)):
            stored = self.adapter.get_pool_meta(pool, key)
            if stored is None:
                self.adapter.set_pool_meta(pool, key, str(value))
            elif int(stored) != value:
                raise ValueError(f"Pool {pool} was stored with {key}={stored}, got {value}")

    def list_pools(self) -> List[str]:
        return self.adapter.get_pools()

    # =========================================================================
    # Pool State
    # =========================================================================

    def persist_deposit(self, pool: str, index: int, key: int, commitment: int, balance: int):
        """Persist a deposited leaf together with the new escrow balance."""
        self.adapter.persist_pool_update(
            pool,
            new_leaf=(index, int_to_bytes32(key), int_to_bytes32(commitment)),
            balance=balance,
        )

    def persist_withdraw(self, pool: str, nullifier_hash: int, balance: int):
        """Persist a spent nullifier together with the new escrow balance."""
        self.adapter.persist_pool_update(
            pool,
            new_nullifier=int_to_bytes32(nullifier_hash),
            balance=balance,
        )

    def persist_transfer(self, pool: str, nullifier_hash: int, index: int, key: int, commitment: int):
        """Persist a spent nullifier and the leaf it was re-committed to."""
        self.adapter.persist_pool_update(
            pool,
            new_leaf=(index, int_to_bytes32(key), int_to_bytes32(commitment)),
            new_nullifier=int_to_bytes32(nullifier_hash),
        )

    def load_leaves(self, pool: str) -> List[Tuple[int, int]]:
        """Load (key, commitment) pairs in insertion order."""
        return [
            (bytes32_to_int(key), bytes32_to_int(commitment))
            for key, commitment in self.adapter.get_leaves(pool)
        ]

    def load_nullifiers(self, pool: str) -> List[int]:
        return [bytes32_to_int(n) for n in self.adapter.get_all_nullifiers(pool)]

    def load_balance(self, pool: str) -> Optional[int]:
        value = self.adapter.get_pool_meta(pool, "escrow_balance")
        return int(value) if value is not None else None

    def is_nullifier_spent(self, pool: str, nullifier_hash: int) -> bool:
        return self.adapter.is_nullifier_spent(pool, int_to_bytes32(nullifier_hash))

    def get_leaf_count(self, pool: str) -> int:
        return self.adapter.get_leaf_count(pool)
