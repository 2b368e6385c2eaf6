"""
Persistent Storage Module.

Provides SQLite-backed persistence for:
- Accounts, auctions and bids
- Settlement cascade chains
- Reports, notifications and sessions
"""

from gavel.core.storage.sqlite_adapter import SQLiteAdapter
from gavel.core.storage.storage_manager import StorageManager

__all__ = ["SQLiteAdapter", "StorageManager"]
