"""
Persistent Storage Module.

Provides SQLite-backed persistence for:
- Tree leaves (Commitments)
- Spent Nullifiers
- Pool Metadata (escrow balance, tree parameters)
"""

from shieldpool.core.storage.sqlite_adapter import SQLiteAdapter
from shieldpool.core.storage.storage_manager import StorageManager

__all__ = ["SQLiteAdapter", "StorageManager"]
