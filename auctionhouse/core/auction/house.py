"""
Auction House - The externally visible operations.

Every operation on an auction id runs as one atomic transaction:

1. Acquire the auction's lock (ItemRegistry.lock_for)
2. Snapshot the record and the auction's ledger slice
3. Apply the state machine (bidding / lifecycle / withdrawal)
4. Execute external transfers through a settlement journal
5. Persist record, ledger slice and the staged events in one storage
   transaction
6. Append the events to the notification stream

Any exception in steps 3-5 restores the snapshot and then unwinds the journal,
so no caller ever observes a half-applied bid, cancellation, finalization
or withdrawal. Calls on different auction ids proceed concurrently.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from auctionhouse.core.auction.bidding import BidStateMachine
from auctionhouse.core.auction.lifecycle import LifecycleController
from auctionhouse.core.collaborators import AssetRef, CustodyService, PaymentRail
from auctionhouse.core.config import HouseConfig
from auctionhouse.core.errors import AuctionError, InvalidInput, Unauthorized
from auctionhouse.core.escrow import (
    AuditReport,
    RefundLedger,
    settle_withdrawal,
    withdraw_eligibility,
)
from auctionhouse.core.events import AuctionEvent, EventKind, EventLog
from auctionhouse.core.registry import AuctionRecord, ItemRegistry
from auctionhouse.core.settlement import SettlementJournal
from auctionhouse.core.storage.storage_manager import StorageManager
from auctionhouse.crypto import normalize_address
from auctionhouse.utils.logger import get_logger
from auctionhouse.utils.validation import (
    validate_address,
    validate_amount,
    validate_auction_id,
    validate_duration,
    validate_price,
    validate_token_id,
)

logger = get_logger("house")


@dataclass
class _Transaction:
    """Working state of one in-flight operation."""
    record: AuctionRecord
    journal: SettlementJournal
    pending: List[Tuple[EventKind, Dict[str, Any]]] = field(default_factory=list)

    def emit(self, kind: EventKind, **data: Any) -> None:
        self.pending.append((kind, data))


class AuctionHouse:
    """
    Escrowed English auctions of unique assets.

    Attributes:
        registry: Auction records and per-auction locks
        ledger: Refund ledger and escrow totals
        events: Notification stream
    """

    def __init__(
        self,
        custody: CustodyService,
        rail: PaymentRail,
        config: Optional[HouseConfig] = None,
        storage_manager: Optional[StorageManager] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Initialize the auction house.

        Args:
            custody: Asset custody backend
            rail: Payment rail backend
            config: House configuration (defaults if None)
            storage_manager: Persistence manager. None = in-memory only.
            clock: Returns current unix time; defaults to time.time
        """
        self.config = config or HouseConfig()
        self.house_address = self.config.house_address
        self.custody = custody
        self.rail = rail
        self.clock = clock or (lambda: int(time.time()))

        self.registry = ItemRegistry()
        self.ledger = RefundLedger()
        self.bidding = BidStateMachine(self.ledger)
        self.lifecycle = LifecycleController(self.ledger, self.config)
        self.events = EventLog(clock=self.clock)

        self.storage_manager = storage_manager
        if storage_manager:
            self._load_from_storage()

    def now(self) -> int:
        return self.clock()

    # =========================================================================
    # Item Registry
    # =========================================================================

    def create_item(
        self,
        seller: str,
        asset: AssetRef,
        duration_days: int,
        floor_price: int,
    ) -> int:
        """
        List an asset. The seller must have approved the house beforehand.

        Returns:
            New auction id
        """
        seller = self._principal(seller, "seller")
        self._check(validate_address(asset.contract, "asset contract"))
        self._check(validate_token_id(asset.token_id))
        self._check(validate_duration(duration_days, self.config.min_duration_days))
        self._check(validate_price(floor_price))
        asset = asset.normalized()

        if not self.custody.approved_for(asset):
            logger.warning(f"create_item rejected: house not approved for {asset}")
            raise Unauthorized(f"house is not approved to transfer {asset.key}")

        now = self.now()

        with self.registry.reserve() as auction_id:
            record = AuctionRecord(
                auction_id=auction_id,
                asset=asset,
                seller=seller,
                custody_owner=self.house_address,
                end_time=now + duration_days * self.config.seconds_per_day,
                floor_price=floor_price,
                created_at=now,
            )
            created = (EventKind.ITEM_CREATED, dict(
                seller=seller,
                asset=asset.key,
                floor_price=floor_price,
                end_time=record.end_time,
            ))

            journal = SettlementJournal(self.custody, self.rail, auction_id)
            try:
                journal.transfer_in(asset, seller, self.house_address)
                with self.events.staged(auction_id, [created]) as events:
                    self._persist(record, next_auction_id=auction_id + 1, events=events)
                    self.registry.add(record)
            except Exception as e:
                journal.unwind()
                logger.error(f"create_item for {asset} failed: {e}")
                raise

        return auction_id

    # =========================================================================
    # Bid State Machine
    # =========================================================================

    def bid(self, auction_id: int, caller: str, amount: int) -> AuctionRecord:
        """First bid of `caller`, with `amount` attached."""
        caller = self._principal(caller, "bidder")
        self._check(validate_amount(amount))

        with self._transaction(auction_id, "bid") as txn:
            outcome = self.bidding.bid(txn.record, caller, amount, self.now())
            txn.emit(
                EventKind.BID_RAISED,
                bidder=caller,
                amount=outcome.amount,
                displaced_bidder=outcome.displaced_bidder,
                displaced_amount=outcome.displaced_amount,
            )
            return txn.record.copy()

    def increase_bid(self, auction_id: int, caller: str, added_amount: int) -> AuctionRecord:
        """Raise a previously outbid bid with `added_amount` attached."""
        caller = self._principal(caller, "bidder")
        self._check(validate_amount(added_amount, "added_amount"))

        with self._transaction(auction_id, "increase_bid") as txn:
            outcome = self.bidding.increase_bid(txn.record, caller, added_amount, self.now())
            txn.emit(
                EventKind.BID_RAISED,
                bidder=caller,
                amount=outcome.amount,
                displaced_bidder=outcome.displaced_bidder,
                displaced_amount=outcome.displaced_amount,
            )
            return txn.record.copy()

    # =========================================================================
    # Escrow Ledger
    # =========================================================================

    def withdraw_eligibility(self, auction_id: int, principal: str) -> bool:
        """Whether `principal` could withdraw right now (read-only)."""
        principal = self._principal(principal, "principal")
        self._check(validate_auction_id(auction_id))
        with self.registry.lock_for(auction_id):
            record = self.registry.get(auction_id)
            return withdraw_eligibility(self.ledger, auction_id, record.highest_bidder, principal)

    def withdraw(self, auction_id: int, caller: str) -> bool:
        """
        Claim outbid funds.

        Returns:
            True if funds moved, False if nothing was owed
        """
        caller = self._principal(caller, "caller")

        with self._transaction(auction_id, "withdraw") as txn:
            amount = settle_withdrawal(self.ledger, txn.record, caller, txn.journal)
            if amount:
                txn.emit(EventKind.FUNDS_WITHDRAWN, principal=caller, amount=amount)
            return amount > 0

    def ledger_balance(self, auction_id: int, principal: str) -> int:
        principal = self._principal(principal, "principal")
        self._check(validate_auction_id(auction_id))
        with self.registry.lock_for(auction_id):
            return self.ledger.balance_of(auction_id, principal)

    def audit(self, auction_id: int) -> AuditReport:
        """Escrow conservation check for one auction."""
        self._check(validate_auction_id(auction_id))
        with self.registry.lock_for(auction_id):
            record = self.registry.get(auction_id)
            return self.ledger.audit(auction_id, record.highest_bid)

    # =========================================================================
    # Lifecycle Controller
    # =========================================================================

    def cancel_auction(self, auction_id: int, caller: str, fee: int) -> AuctionRecord:
        """Seller cancels before expiry with exactly the cancellation fee attached."""
        caller = self._principal(caller, "caller")
        self._check(validate_amount(fee, "fee"))

        with self._transaction(auction_id, "cancel_auction") as txn:
            receipt = self.lifecycle.cancel(txn.record, caller, fee, self.now(), txn.journal)
            txn.emit(
                EventKind.AUCTION_CANCELLED,
                seller=receipt.seller,
                fee=receipt.fee,
                refunded_bidder=receipt.refunded_bidder,
                refunded_amount=receipt.refunded_amount,
            )
            return txn.record.copy()

    def auction_end(self, auction_id: int, caller: str) -> AuctionRecord:
        """Seller finalizes: collects the highest bid and takes the asset."""
        caller = self._principal(caller, "caller")

        with self._transaction(auction_id, "auction_end") as txn:
            receipt = self.lifecycle.finalize(txn.record, caller, txn.journal)
            # Bidder/bid fields are reported as recorded after the reset
            txn.emit(
                EventKind.AUCTION_ENDED,
                highest_bidder=txn.record.highest_bidder,
                highest_bid=txn.record.highest_bid,
                payee=receipt.payee,
                proceeds=receipt.proceeds,
                last_bidder=receipt.last_bidder,
            )
            return txn.record.copy()

    # =========================================================================
    # Queries
    # =========================================================================

    def get_auction(self, auction_id: int) -> AuctionRecord:
        """Copy of the current record."""
        self._check(validate_auction_id(auction_id))
        with self.registry.lock_for(auction_id):
            return self.registry.get(auction_id).copy()

    def list_auctions(self) -> List[AuctionRecord]:
        return [self.get_auction(auction_id) for auction_id in self.registry.ids()]

    def events_for(self, auction_id: int) -> List[AuctionEvent]:
        return self.events.for_auction(auction_id)

    def stats(self) -> dict:
        stats = self.registry.stats(self.now())
        stats["events"] = len(self.events)
        stats["escrow_held"] = sum(self.ledger.totals_for(i).held for i in self.registry.ids())
        return stats

    # =========================================================================
    # Transactions
    # =========================================================================

    @contextmanager
    def _transaction(self, auction_id: int, operation: str) -> Iterator[_Transaction]:
        self._check(validate_auction_id(auction_id))

        with self.registry.lock_for(auction_id):
            record = self.registry.get(auction_id)
            saved_record = record.copy()
            saved_slice = self.ledger.snapshot(auction_id)
            txn = _Transaction(
                record=record,
                journal=SettlementJournal(self.custody, self.rail, auction_id),
            )

            try:
                yield txn
                with self.events.staged(auction_id, txn.pending) as events:
                    self._persist(record, events=events)
            except Exception as e:
                self.registry.restore(saved_record)
                self.ledger.restore(saved_slice)
                txn.journal.unwind()
                if isinstance(e, AuctionError):
                    log = logger.error if e.kind == "payment_failed" else logger.warning
                    log(f"{operation} rejected: {e}")
                else:
                    logger.error(f"{operation} on auction {auction_id} rolled back: {e}")
                raise

    # =========================================================================
    # Persistence
    # =========================================================================

    def _persist(
        self,
        record: AuctionRecord,
        next_auction_id: Optional[int] = None,
        events: Sequence[AuctionEvent] = (),
    ) -> None:
        if not self.storage_manager:
            return
        totals = self.ledger.totals_for(record.auction_id)
        self.storage_manager.persist_auction_update(
            record.to_dict(),
            self.ledger.entries_for(record.auction_id),
            totals.deposited,
            totals.paid_out,
            next_auction_id=next_auction_id,
            events=events,
        )

    def _load_from_storage(self) -> None:
        records, refunds, totals = self.storage_manager.load_house_state()
        for data in records:
            self.registry.restore(AuctionRecord.from_dict(data))
        self.ledger.load(refunds, totals)

        next_id = self.storage_manager.get_next_auction_id()
        if next_id is not None:
            self.registry.next_id = max(self.registry.next_id, next_id)

        self.events.load([
            AuctionEvent.model_validate_json(raw)
            for raw in self.storage_manager.load_events()
        ])

        logger.info(
            f"Loaded {len(records)} auctions, {len(refunds)} ledger entries, "
            f"{len(self.events)} events from storage"
        )

    # =========================================================================
    # Input Helpers
    # =========================================================================

    @staticmethod
    def _check(result: Tuple[bool, str]) -> None:
        is_valid, error = result
        if not is_valid:
            raise InvalidInput(error)

    def _principal(self, value: Any, name: str) -> str:
        self._check(validate_address(value, name))
        return normalize_address(value)
