"""
Unit tests for pool storage.

Tests cover:
1. SQLite adapter tables (leaves, nullifiers, pool state)
2. Atomic multi-table updates
3. StorageManager field element encoding and parameter checks
"""

import sqlite3

import pytest

from shieldpool.core.storage import SQLiteAdapter, StorageManager
from shieldpool.crypto import FIELD_PRIME, int_to_bytes32


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def adapter(tmp_path):
    adapter = SQLiteAdapter(tmp_path / "nested" / "pool.db")
    yield adapter
    adapter.close()


@pytest.fixture
def storage(tmp_path):
    manager = StorageManager(tmp_path)
    yield manager
    manager.close()


# =============================================================================
# SQLite Adapter
# =============================================================================


class TestSQLiteAdapter:
    """Raw table access."""

    def test_creates_parent_directory(self, adapter, tmp_path):
        assert (tmp_path / "nested").is_dir()

    def test_leaves_in_index_order(self, adapter):
        adapter.save_leaf("a", 1, b"k1", b"c1")
        adapter.save_leaf("a", 0, b"k0", b"c0")
        adapter.save_leaf("b", 0, b"kb", b"cb")

        assert adapter.get_leaves("a") == [(b"k0", b"c0"), (b"k1", b"c1")]
        assert adapter.get_leaf_count("a") == 2
        assert adapter.get_leaf_count("b") == 1

    def test_duplicate_commitment_in_pool(self, adapter):
        adapter.save_leaf("a", 0, b"k0", b"c0")
        with pytest.raises(sqlite3.IntegrityError):
            adapter.save_leaf("a", 1, b"k1", b"c0")

        # Same commitment in another pool is a different leaf
        adapter.save_leaf("b", 0, b"k0", b"c0")

    def test_nullifiers_per_pool(self, adapter):
        adapter.save_nullifier("a", b"n1")
        adapter.save_nullifier("a", b"n1")

        assert adapter.is_nullifier_spent("a", b"n1")
        assert not adapter.is_nullifier_spent("b", b"n1")
        assert adapter.get_all_nullifiers("a") == [b"n1"]

    def test_pool_meta(self, adapter):
        assert adapter.get_pool_meta("a", "tree_height") is None
        adapter.set_pool_meta("a", "tree_height", "32")
        adapter.set_pool_meta("a", "tree_height", "20")
        adapter.set_pool_meta("b", "tree_height", "16")

        assert adapter.get_pool_meta("a", "tree_height") == "20"
        assert adapter.get_pools() == ["a", "b"]


class TestAtomicUpdate:
    """persist_pool_update writes all tables or none."""

    def test_all_parts_written(self, adapter):
        adapter.persist_pool_update("a", new_leaf=(0, b"k", b"c"), new_nullifier=b"n", balance=7)

        assert adapter.get_leaves("a") == [(b"k", b"c")]
        assert adapter.is_nullifier_spent("a", b"n")
        assert adapter.get_pool_meta("a", "escrow_balance") == "7"

    def test_failure_rolls_back(self, adapter):
        adapter.save_nullifier("a", b"n")

        with pytest.raises(sqlite3.IntegrityError):
            adapter.persist_pool_update("a", new_leaf=(0, b"k", b"c"), new_nullifier=b"n", balance=9)

        assert adapter.get_leaf_count("a") == 0
        assert adapter.get_pool_meta("a", "escrow_balance") is None


# =============================================================================
# Storage Manager
# =============================================================================


class TestStorageManager:
    """Field-element level persistence."""

    def test_db_path(self, storage, tmp_path):
        assert storage.db_path == tmp_path / "pool.db"
        assert storage.db_path.exists()

    def test_deposit_roundtrip(self, storage):
        storage.persist_deposit("100", 0, key=FIELD_PRIME - 1, commitment=5, balance=100)
        storage.persist_deposit("100", 1, key=3, commitment=6, balance=200)

        assert storage.load_leaves("100") == [(FIELD_PRIME - 1, 5), (3, 6)]
        assert storage.load_balance("100") == 200
        assert storage.get_leaf_count("100") == 2

    def test_leaves_stored_as_32_bytes(self, storage):
        storage.persist_deposit("100", 0, key=1, commitment=2, balance=100)
        assert storage.adapter.get_leaves("100") == [(int_to_bytes32(1), int_to_bytes32(2))]

    def test_withdraw(self, storage):
        storage.persist_deposit("100", 0, key=1, commitment=2, balance=100)
        storage.persist_withdraw("100", nullifier_hash=42, balance=0)

        assert storage.is_nullifier_spent("100", 42)
        assert storage.load_nullifiers("100") == [42]
        assert storage.load_balance("100") == 0

    def test_transfer_keeps_balance(self, storage):
        storage.persist_deposit("100", 0, key=1, commitment=2, balance=100)
        storage.persist_transfer("100", nullifier_hash=9, index=1, key=3, commitment=4)

        assert storage.load_leaves("100") == [(1, 2), (3, 4)]
        assert storage.load_nullifiers("100") == [9]
        assert storage.load_balance("100") == 100

    def test_unknown_pool_is_empty(self, storage):
        assert storage.load_leaves("5") == []
        assert storage.load_nullifiers("5") == []
        assert storage.load_balance("5") is None

    def test_parameters_recorded_once(self, storage):
        storage.check_parameters("100", tree_height=32, root_history_size=100)
        storage.check_parameters("100", tree_height=32, root_history_size=100)
        assert storage.list_pools() == ["100"]

    def test_parameter_mismatch(self, storage):
        storage.check_parameters("100", tree_height=32, root_history_size=100)
        with pytest.raises(ValueError):
            storage.check_parameters("100", tree_height=20, root_history_size=100)
        with pytest.raises(ValueError):
            storage.check_parameters("100", tree_height=32, root_history_size=10)

    def test_survives_reopen(self, tmp_path):
        first = StorageManager(tmp_path)
        first.persist_deposit("100", 0, key=1, commitment=2, balance=100)
        first.close()

        second = StorageManager(tmp_path)
        assert second.load_leaves("100") == [(1, 2)]
        second.close()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
