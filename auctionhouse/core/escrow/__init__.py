"""Escrow ledger: refundable balances, escrow accounting and withdrawal"""
from auctionhouse.core.escrow.refund_ledger import (
    RefundLedger,
    EscrowTotals,
    LedgerSlice,
    AuditReport,
    withdraw_eligibility,
)
from auctionhouse.core.escrow.withdrawal import settle_withdrawal

__all__ = [
    "RefundLedger",
    "EscrowTotals",
    "LedgerSlice",
    "AuditReport",
    "withdraw_eligibility",
    "settle_withdrawal",
]
