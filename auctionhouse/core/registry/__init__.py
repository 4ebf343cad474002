"""
Item Registry Module.

Owns auction records, id allocation and per-auction locks.
"""

from auctionhouse.core.registry.item_registry import (
    AuctionRecord,
    ItemRegistry,
)

__all__ = [
    "AuctionRecord",
    "ItemRegistry",
]
