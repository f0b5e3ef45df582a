import sqlite3
import threading
from pathlib import Path
from typing import Optional, List, Tuple

from shieldpool.utils.logger import get_logger

logger = get_logger("storage.sqlite")


class SQLiteAdapter:
    """
    SQLite backend for persistent pool state.

    Stores, per pool (denomination tier):
    1. Leaves - commitments in insertion order (replayed to rebuild the SMT)
    2. Nullifiers - spent set
    3. Pool state - escrow balance and tree parameters
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn_local = threading.local()

        # Ensure directory exists
        if not db_path.parent.exists():
            db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create connection for current thread."""
        if not hasattr(self._conn_local, "conn"):
            self._conn_local.conn = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                check_same_thread=False
            )
            self._conn_local.conn.row_factory = sqlite3.Row
            # Enable WAL mode for better concurrency
            self._conn_local.conn.execute("PRAGMA journal_mode=WAL;")
            self._conn_local.conn.execute("PRAGMA synchronous=NORMAL;")
        return self._conn_local.conn

    def _init_schema(self):
        """Initialize database schema."""
        conn = self._get_conn()
        with conn:
            # 1. Tree leaves, in insertion order
            conn.execute("""
                CREATE TABLE IF NOT EXISTS leaves (
                    pool TEXT NOT NULL,
                    leaf_index INTEGER NOT NULL,
                    leaf_key BLOB NOT NULL,
                    commitment BLOB NOT NULL,
                    PRIMARY KEY (pool, leaf_index)
                )
            """)
            conn.execute("CREATE UNIQUE INDEX IF NOT EXISTS idx_leaves_commitment ON leaves(pool, commitment);")

            # 2. Nullifier Set (Spent notes)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS nullifiers (
                    pool TEXT NOT NULL,
                    nullifier_hash BLOB NOT NULL,
                    PRIMARY KEY (pool, nullifier_hash)
                )
            """)

            # 3. Pool State (Metadata)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS pool_state (
                    pool TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT,
                    PRIMARY KEY (pool, key)
                )
            """)

    def close(self):
        """Close the connection of the current thread."""
        if hasattr(self._conn_local, "conn"):
            self._conn_local.conn.close()
            del self._conn_local.conn

    # =========================================================================
    # Leaf Operations
    # =========================================================================

    def save_leaf(self, pool: str, index: int, leaf_key: bytes, commitment: bytes):
        """Save a new leaf at index."""
        conn = self._get_conn()
        with conn:
            conn.execute(
                "INSERT INTO leaves (pool, leaf_index, leaf_key, commitment) VALUES (?, ?, ?, ?)",
                (pool, index, leaf_key, commitment)
            )

    def get_leaves(self, pool: str) -> List[Tuple[bytes, bytes]]:
        """Get all (leaf_key, commitment) of a pool in insertion order."""
        conn = self._get_conn()
        cursor = conn.execute(
            "SELECT leaf_key, commitment FROM leaves WHERE pool = ? ORDER BY leaf_index ASC",
            (pool,)
        )
        return [(row['leaf_key'], row['commitment']) for row in cursor]

    def get_leaf_count(self, pool: str) -> int:
        conn = self._get_conn()
        cursor = conn.execute("SELECT COUNT(*) as cnt FROM leaves WHERE pool = ?", (pool,))
        return cursor.fetchone()['cnt']

    # =========================================================================
    # Nullifier Operations
    # =========================================================================

    def save_nullifier(self, pool: str, nullifier_hash: bytes):
        """Mark a nullifier as spent."""
        conn = self._get_conn()
        with conn:
            conn.execute(
                "INSERT OR IGNORE INTO nullifiers (pool, nullifier_hash) VALUES (?, ?)",
                (pool, nullifier_hash)
            )

    def is_nullifier_spent(self, pool: str, nullifier_hash: bytes) -> bool:
        """Check if nullifier is spent."""
        conn = self._get_conn()
        cursor = conn.execute(
            "SELECT 1 FROM nullifiers WHERE pool = ? AND nullifier_hash = ?",
            (pool, nullifier_hash)
        )
        return cursor.fetchone() is not None

    def get_all_nullifiers(self, pool: str) -> List[bytes]:
        """Get all spent nullifiers of a pool."""
        conn = self._get_conn()
        cursor = conn.execute("SELECT nullifier_hash FROM nullifiers WHERE pool = ?", (pool,))
        return [row['nullifier_hash'] for row in cursor]

    # =========================================================================
    # Pool State Operations
    # =========================================================================

    def set_pool_meta(self, pool: str, key: str, value: str):
        conn = self._get_conn()
        with conn:
            conn.execute(
                "INSERT OR REPLACE INTO pool_state (pool, key, value) VALUES (?, ?, ?)",
                (pool, key, value)
            )

    def get_pool_meta(self, pool: str, key: str) -> Optional[str]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT value FROM pool_state WHERE pool = ? AND key = ?", (pool, key))
        row = cursor.fetchone()
        return row['value'] if row else None

    def get_pools(self) -> List[str]:
        """Get ids of all pools with stored state."""
        conn = self._get_conn()
        cursor = conn.execute("SELECT DISTINCT pool FROM pool_state ORDER BY pool")
        return [row['pool'] for row in cursor]

    # =========================================================================
    # Atomic Updates
    # =========================================================================

    def persist_pool_update(
        self,
        pool: str,
        new_leaf: Optional[Tuple[int, bytes, bytes]] = None,
        new_nullifier: Optional[bytes] = None,
        balance: Optional[int] = None,
    ):
        """
        Atomically update pool state for one operation.

        Args:
            pool: Pool id
            new_leaf: (index, leaf_key, commitment) to add
            new_nullifier: Nullifier hash to mark spent
            balance: New escrow balance
        """
        conn = self._get_conn()
        with conn:
            if new_leaf is not None:
                index, leaf_key, commitment = new_leaf
                conn.execute(
                    "INSERT INTO leaves (pool, leaf_index, leaf_key, commitment) VALUES (?, ?, ?, ?)",
                    (pool, index, leaf_key, commitment)
                )

            if new_nullifier is not None:
                conn.execute(
                    "INSERT INTO nullifiers (pool, nullifier_hash) VALUES (?, ?)",
                    (pool, new_nullifier)
                )

            if balance is not None:
                conn.execute(
                    "INSERT OR REPLACE INTO pool_state (pool, key, value) VALUES (?, ?, ?)",
                    (pool, "escrow_balance", str(balance))
                )
