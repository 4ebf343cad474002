"""
Auction Module.

This module provides the escrowed English auction:
- Bid admission and ranking
- Cancellation and finalization
- The AuctionHouse facade running each operation atomically
"""

from auctionhouse.core.auction.bidding import BidStateMachine, BidOutcome
from auctionhouse.core.auction.lifecycle import (
    LifecycleController,
    CancellationReceipt,
    FinalizationReceipt,
)
from auctionhouse.core.auction.house import AuctionHouse

__all__ = [
    # Bidding
    "BidStateMachine",
    "BidOutcome",
    # Lifecycle
    "LifecycleController",
    "CancellationReceipt",
    "FinalizationReceipt",
    # Facade
    "AuctionHouse",
]
