"""
Bid State Machine - Admission, ranking and superseding of bids.

An English auction with escrowed bids:
1. A first-time bidder calls `bid` with funds attached.
2. The leader's funds move into the refund ledger when it is outbid.
3. A superseded bidder may re-enter with `increase_bid`, topping up the
   balance it already has in the ledger instead of withdrawing it first.

The leader itself cannot top up: `increase_bid` requires a ledger balance
and excludes the current highest bidder.

All checks run before any mutation, so a rejected call leaves the record
and the ledger untouched.
"""

from dataclasses import dataclass
from typing import Optional

from auctionhouse.core.errors import (
    AuctionClosed,
    BidTooLow,
    NotEligible,
    Unauthorized,
)
from auctionhouse.core.escrow.refund_ledger import RefundLedger
from auctionhouse.core.registry.item_registry import AuctionRecord
from auctionhouse.utils.logger import get_logger

logger = get_logger("bidding")


@dataclass
class BidOutcome:
    """What a successful bid changed."""
    auction_id: int
    bidder: str
    amount: int                   # New highest bid
    deposited: int                # Funds attached to this call
    displaced_bidder: Optional[str] = None
    displaced_amount: int = 0


class BidStateMachine:
    """Applies bids to one auction record and the refund ledger."""

    def __init__(self, ledger: RefundLedger):
        self.ledger = ledger

    # =========================================================================
    # Bid
    # =========================================================================

    def bid(self, record: AuctionRecord, caller: str, amount: int, now: int) -> BidOutcome:
        """
        First bid of a principal on an auction.

        Args:
            record: Live auction record (mutated on success)
            caller: Bidding principal
            amount: Funds attached
            now: Current unix time

        Returns:
            BidOutcome
        """
        auction_id = record.auction_id

        if caller == record.seller:
            raise Unauthorized("seller cannot bid on own auction", auction_id)
        self._check_not_terminal(record)
        if caller == record.highest_bidder:
            raise NotEligible("already the highest bidder", auction_id)
        if self.ledger.balance_of(auction_id, caller) > 0:
            raise NotEligible("outbid funds pending, use increase_bid", auction_id)
        if now > record.end_time:
            raise AuctionClosed("auction expired", auction_id)
        if amount < record.floor_price:
            raise BidTooLow(f"bid {amount} below floor price {record.floor_price}", auction_id)
        if amount <= record.highest_bid:
            raise BidTooLow(f"bid {amount} does not exceed highest bid {record.highest_bid}", auction_id)

        outcome = self._supersede(record, caller, amount)
        outcome.deposited = amount
        self.ledger.record_deposit(auction_id, amount)

        logger.info(f"Auction {auction_id}: {caller} bid {amount}")
        return outcome

    # =========================================================================
    # Increase Bid
    # =========================================================================

    def increase_bid(self, record: AuctionRecord, caller: str, added_amount: int, now: int) -> BidOutcome:
        """
        Re-enter a superseded bidder with its ledger balance plus new funds.

        Args:
            record: Live auction record (mutated on success)
            caller: Previously outbid principal
            added_amount: Additional funds attached
            now: Current unix time

        Returns:
            BidOutcome
        """
        auction_id = record.auction_id

        self._check_not_terminal(record)
        if caller == record.highest_bidder:
            raise NotEligible("highest bidder cannot increase own bid", auction_id)
        balance = self.ledger.balance_of(auction_id, caller)
        if balance == 0:
            raise NotEligible("no outbid funds to increase", auction_id)
        if now > record.end_time:
            raise AuctionClosed("auction expired", auction_id)

        total = added_amount + balance
        if total <= record.highest_bid:
            raise BidTooLow(f"bid {total} does not exceed highest bid {record.highest_bid}", auction_id)
        if total < record.floor_price:
            raise BidTooLow(f"bid {total} below floor price {record.floor_price}", auction_id)

        # Zero the caller's entry before the leader is displaced into the ledger
        self.ledger.clear(auction_id, caller)
        outcome = self._supersede(record, caller, total)
        outcome.deposited = added_amount
        self.ledger.record_deposit(auction_id, added_amount)

        logger.info(f"Auction {auction_id}: {caller} increased bid to {total} (+{added_amount})")
        return outcome

    # =========================================================================
    # Helpers
    # =========================================================================

    def _check_not_terminal(self, record: AuctionRecord) -> None:
        if record.sold:
            raise AuctionClosed("auction already sold", record.auction_id)
        if record.ended:
            raise AuctionClosed("auction already ended", record.auction_id)

    def _supersede(self, record: AuctionRecord, caller: str, amount: int) -> BidOutcome:
        outcome = BidOutcome(
            auction_id=record.auction_id,
            bidder=caller,
            amount=amount,
            deposited=0,
        )
        if record.highest_bidder is not None:
            self.ledger.credit(record.auction_id, record.highest_bidder, record.highest_bid)
            outcome.displaced_bidder = record.highest_bidder
            outcome.displaced_amount = record.highest_bid

        record.highest_bidder = caller
        record.highest_bid = amount
        return outcome
