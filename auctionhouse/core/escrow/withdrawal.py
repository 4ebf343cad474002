"""
Withdrawal - paying superseded bidders out of escrow.

The entry is zeroed before the payment is requested, so a re-entrant
caller observes a zero balance. If the rail refuses the payment the
enclosing transaction restores the ledger slice (see AuctionHouse).
"""

from auctionhouse.core.errors import NotEligible
from auctionhouse.core.escrow.refund_ledger import RefundLedger
from auctionhouse.core.registry.item_registry import AuctionRecord
from auctionhouse.core.settlement import SettlementJournal
from auctionhouse.utils.logger import get_logger

logger = get_logger("escrow.withdrawal")


def settle_withdrawal(
    ledger: RefundLedger,
    record: AuctionRecord,
    principal: str,
    journal: SettlementJournal,
) -> int:
    """
    Pay a principal's refundable balance.

    Args:
        ledger: Refund ledger
        record: Auction the funds were escrowed for
        principal: Caller claiming the funds
        journal: Settlement journal of the enclosing transaction

    Returns:
        Amount paid; 0 when nothing was owed (no-op)

    Raises:
        NotEligible: principal is the current highest bidder
        PaymentFailed: payment rail refused
    """
    if principal == record.highest_bidder:
        raise NotEligible("highest bidder cannot withdraw", record.auction_id)

    amount = ledger.clear(record.auction_id, principal)
    if amount == 0:
        return 0

    ledger.record_payout(record.auction_id, amount)
    journal.pay(principal, amount)

    logger.info(f"Auction {record.auction_id}: {principal} withdrew {amount}")
    return amount
