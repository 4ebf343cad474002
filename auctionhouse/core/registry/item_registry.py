"""
Item Registry - The root record store of the auction house.

This module provides:
- AuctionRecord, one per listing, never deleted
- Monotonic auction id allocation
- Per-auction mutual exclusion

Each record is an independently lockable unit: operations on one auction id
hold that id's lock for their whole duration, operations on different ids
never contend. The registry lock itself only guards the id counter and the
record/lock maps and is never held across a custody or storage call.
"""

import copy
import threading
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from typing import Dict, Iterator, List, Optional

from auctionhouse.core.collaborators import AssetRef
from auctionhouse.core.errors import AuctionNotFound
from auctionhouse.utils.logger import get_logger

logger = get_logger("registry")


# =============================================================================
# Data Structures
# =============================================================================


@dataclass
class AuctionRecord:
    """
    A single listing.

    Attributes:
        auction_id: Unique, monotonically assigned, immutable
        asset: Custodied asset
        seller: Listing principal; payee of proceeds
        custody_owner: Principal currently entitled to the asset
        end_time: Unix deadline; bidding allowed while now <= end_time
        floor_price: Minimum admissible bid (> 0)
        highest_bidder: Current leader, None before the first bid
        highest_bid: Current leading amount (0 when no leader)
        sold: Terminal flag set by cancellation
        ended: Terminal flag set by finalization
        created_at: Unix time of listing
    """
    auction_id: int
    asset: AssetRef
    seller: str
    custody_owner: str
    end_time: int
    floor_price: int
    highest_bidder: Optional[str] = None
    highest_bid: int = 0
    sold: bool = False
    ended: bool = False
    created_at: int = field(default_factory=lambda: int(time.time()))

    def is_open(self, now: int) -> bool:
        """Whether bidding is currently permitted."""
        return not self.sold and not self.ended and now <= self.end_time

    def copy(self) -> "AuctionRecord":
        return copy.copy(self)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["asset"] = self.asset.key
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "AuctionRecord":
        data = dict(data)
        data["asset"] = AssetRef.from_key(data["asset"])
        return cls(**data)


# =============================================================================
# Item Registry
# =============================================================================


class ItemRegistry:
    """
    Mapping from auction id to AuctionRecord.

    Records are only ever added; terminal state lives in the `sold`/`ended`
    flags.
    """

    def __init__(self, first_id: int = 1):
        self.records: Dict[int, AuctionRecord] = {}
        self.next_id = first_id

        self._locks: Dict[int, threading.RLock] = {}
        self._lock = threading.RLock()
        self._listing_lock = threading.Lock()

        logger.debug(f"ItemRegistry initialized, next id {first_id}")

    # =========================================================================
    # Registration
    # =========================================================================

    @contextmanager
    def reserve(self) -> Iterator[int]:
        """
        Hold the next auction id for one listing.

        Listings are serialized against each other so ids stay gapless, but
        the registry lock is not held, so lookups and operations on existing
        auctions proceed while a listing waits on custody or storage. The id
        is consumed only if `add()` is called inside the block.

            with registry.reserve() as auction_id:
                ...
                registry.add(record)
        """
        with self._listing_lock:
            yield self.next_id

    def add(self, record: AuctionRecord) -> None:
        """Store a newly listed record and advance the id counter."""
        with self._lock:
            self.records[record.auction_id] = record
            self._locks[record.auction_id] = threading.RLock()
            self.next_id = max(self.next_id, record.auction_id + 1)

        logger.info(f"Registered auction {record.auction_id} for asset {record.asset}")

    def restore(self, record: AuctionRecord) -> None:
        """Insert a record loaded from storage."""
        with self._lock:
            self.records[record.auction_id] = record
            self._locks.setdefault(record.auction_id, threading.RLock())
            self.next_id = max(self.next_id, record.auction_id + 1)

    # =========================================================================
    # Lookup
    # =========================================================================

    def get(self, auction_id: int) -> AuctionRecord:
        """Live record for `auction_id`; raises AuctionNotFound."""
        record = self.records.get(auction_id)
        if record is None:
            raise AuctionNotFound("no such auction", auction_id)
        return record

    def lock_for(self, auction_id: int) -> threading.RLock:
        """The mutual exclusion lock of one auction."""
        with self._lock:
            lock = self._locks.get(auction_id)
        if lock is None:
            raise AuctionNotFound("no such auction", auction_id)
        return lock

    def ids(self) -> List[int]:
        with self._lock:
            return sorted(self.records)

    def __iter__(self) -> Iterator[AuctionRecord]:
        for auction_id in self.ids():
            yield self.records[auction_id]

    def __len__(self) -> int:
        return len(self.records)

    # =========================================================================
    # Statistics
    # =========================================================================

    def stats(self, now: int) -> dict:
        """Get registry statistics."""
        records = list(self)
        return {
            "total_auctions": len(records),
            "open": sum(1 for r in records if r.is_open(now)),
            "cancelled": sum(1 for r in records if r.sold),
            "ended": sum(1 for r in records if r.ended),
            "next_id": self.next_id,
        }
