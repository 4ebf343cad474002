"""
Lifecycle Controller - Cancellation and finalization.

Per-auction state machine:

    Created -> Open -> {Cancelled | Ended}

Open is re-entrant for bids while now <= end_time. Cancellation sets `sold`,
finalization sets `ended`; either flag is terminal for bidding, and both
block the other lifecycle operation.

Settlement:
-----------
Both transitions move funds and the asset through the settlement journal.
State is mutated first, external transfers last; the enclosing transaction
restores the record and ledger and unwinds the journal when any transfer
fails.
"""

from dataclasses import dataclass
from typing import Optional

from auctionhouse.core.config import HouseConfig
from auctionhouse.core.errors import (
    AlreadyFinalized,
    AuctionClosed,
    InvalidInput,
    Unauthorized,
)
from auctionhouse.core.escrow.refund_ledger import RefundLedger
from auctionhouse.core.registry.item_registry import AuctionRecord
from auctionhouse.core.settlement import SettlementJournal
from auctionhouse.utils.logger import get_logger

logger = get_logger("lifecycle")


@dataclass
class CancellationReceipt:
    auction_id: int
    seller: str
    fee: int
    refunded_bidder: Optional[str]
    refunded_amount: int


@dataclass
class FinalizationReceipt:
    auction_id: int
    payee: str              # Seller recorded before reassignment
    proceeds: int           # Highest bid paid to the payee
    last_bidder: Optional[str]


class LifecycleController:
    """Drives an auction into a terminal state."""

    def __init__(self, ledger: RefundLedger, config: HouseConfig):
        self.ledger = ledger
        self.config = config

    # =========================================================================
    # Cancellation
    # =========================================================================

    def cancel(
        self,
        record: AuctionRecord,
        caller: str,
        fee: int,
        now: int,
        journal: SettlementJournal,
    ) -> CancellationReceipt:
        """
        Seller cancels before expiry, paying the fixed fee.

        The leading bid moves to the refund ledger, claimable via withdraw.
        """
        auction_id = record.auction_id

        if record.ended:
            raise AlreadyFinalized("auction already finalized", auction_id)
        if caller != record.seller:
            raise Unauthorized("only the seller can cancel", auction_id)
        if record.sold:
            raise AuctionClosed("auction already sold", auction_id)
        if now >= record.end_time:
            raise AuctionClosed("auction expired", auction_id)
        if fee != self.config.cancellation_fee:
            raise InvalidInput(
                f"cancellation requires exactly {self.config.cancellation_fee}, got {fee}",
                auction_id,
            )

        refunded_bidder = record.highest_bidder
        refunded_amount = record.highest_bid

        record.end_time = 0
        record.custody_owner = caller
        if refunded_bidder is not None:
            self.ledger.credit(auction_id, refunded_bidder, refunded_amount)
        record.highest_bidder = None
        record.highest_bid = 0
        record.sold = True

        journal.pay(self.config.platform_operator, fee)
        journal.transfer_out(record.asset, self.config.house_address, caller)

        logger.info(f"Auction {auction_id} cancelled by seller {caller}")
        return CancellationReceipt(
            auction_id=auction_id,
            seller=caller,
            fee=fee,
            refunded_bidder=refunded_bidder,
            refunded_amount=refunded_amount,
        )

    # =========================================================================
    # Finalization
    # =========================================================================

    def finalize(
        self,
        record: AuctionRecord,
        caller: str,
        journal: SettlementJournal,
    ) -> FinalizationReceipt:
        """
        Seller ends the auction and collects the highest bid.

        The asset goes to the finalizing caller, not to the highest bidder,
        and no deadline is enforced.
        """
        auction_id = record.auction_id

        if record.ended:
            raise AlreadyFinalized("auction already finalized", auction_id)
        if caller != record.seller:
            raise Unauthorized("only the seller can end the auction", auction_id)
        if record.sold:
            raise AuctionClosed("auction was cancelled", auction_id)

        payee = record.seller
        proceeds = record.highest_bid
        last_bidder = record.highest_bidder

        record.ended = True
        record.seller = caller
        record.custody_owner = caller
        record.highest_bid = 0
        record.highest_bidder = None

        if proceeds:
            self.ledger.record_payout(auction_id, proceeds)
        journal.pay(payee, proceeds)
        journal.transfer_out(record.asset, self.config.house_address, caller)

        logger.info(f"Auction {auction_id} ended: {proceeds} paid to {payee}")
        return FinalizationReceipt(
            auction_id=auction_id,
            payee=payee,
            proceeds=proceeds,
            last_bidder=last_bidder,
        )
