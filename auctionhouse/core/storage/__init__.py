"""
Persistent Storage Module.

Provides SQLite-backed persistence for:
- Auction records
- Refund ledger and escrow totals
- Notification stream
- House metadata
"""

from auctionhouse.core.storage.sqlite_adapter import SQLiteAdapter
from auctionhouse.core.storage.storage_manager import StorageManager

__all__ = ["SQLiteAdapter", "StorageManager"]
