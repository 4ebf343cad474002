"""
Refund Ledger - Escrowed funds owed to superseded bidders.

Conceptual Background:
---------------------
Every bid arrives with its funds attached. While a bid leads, its funds sit
in the auction record (`highest_bid`). When it is superseded, or when the
seller cancels, those funds move into this ledger under
(auction_id, principal) and stay claimable through `withdraw` no matter
what later happens to the record.

Escrow accounting:
-----------------
Per auction the ledger also keeps the running totals of funds deposited
into escrow and paid out of it, which gives the conservation invariant

    sum(entries for auction) + highest_bid == deposited - paid_out

checked by `audit()`.
"""

import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from auctionhouse.utils.logger import get_logger

logger = get_logger("escrow")


# =============================================================================
# Data Structures
# =============================================================================


@dataclass
class EscrowTotals:
    """Lifetime escrow flows of one auction."""
    deposited: int = 0
    paid_out: int = 0

    @property
    def held(self) -> int:
        return self.deposited - self.paid_out


@dataclass
class LedgerSlice:
    """Snapshot of one auction's ledger state (for rollback)."""
    auction_id: int
    entries: Dict[str, int]
    totals: EscrowTotals


@dataclass
class AuditReport:
    """Result of the escrow conservation check for one auction."""
    auction_id: int
    ledger_total: int
    highest_bid: int
    deposited: int
    paid_out: int

    @property
    def held(self) -> int:
        return self.deposited - self.paid_out

    @property
    def is_balanced(self) -> bool:
        return self.ledger_total + self.highest_bid == self.held


# =============================================================================
# Refund Ledger
# =============================================================================


class RefundLedger:
    """
    Mapping (auction_id, principal) -> refundable balance.

    Callers serialize per auction id (see ItemRegistry.lock_for); the
    internal lock only protects the shared dictionaries.
    """

    def __init__(self):
        self.entries: Dict[Tuple[int, str], int] = {}
        self.totals: Dict[int, EscrowTotals] = {}
        self._lock = threading.Lock()

    # =========================================================================
    # Queries
    # =========================================================================

    def balance_of(self, auction_id: int, principal: str) -> int:
        return self.entries.get((auction_id, principal), 0)

    def entries_for(self, auction_id: int) -> Dict[str, int]:
        """Non-zero entries of one auction."""
        with self._lock:
            return {
                principal: amount
                for (aid, principal), amount in self.entries.items()
                if aid == auction_id and amount > 0
            }

    def total_owed(self, auction_id: int) -> int:
        return sum(self.entries_for(auction_id).values())

    def totals_for(self, auction_id: int) -> EscrowTotals:
        with self._lock:
            totals = self.totals.get(auction_id)
            return EscrowTotals(totals.deposited, totals.paid_out) if totals else EscrowTotals()

    # =========================================================================
    # Mutations
    # =========================================================================

    def credit(self, auction_id: int, principal: str, amount: int) -> int:
        """
        Add a superseded amount to a principal's entry.

        Returns:
            New balance
        """
        if amount < 0:
            raise ValueError(f"credit amount must be >= 0, got {amount}")
        with self._lock:
            key = (auction_id, principal)
            balance = self.entries.get(key, 0) + amount
            self.entries[key] = balance
        logger.debug(f"Auction {auction_id}: credited {amount} to {principal} (balance {balance})")
        return balance

    def clear(self, auction_id: int, principal: str) -> int:
        """
        Zero a principal's entry.

        Returns:
            The amount that was owed
        """
        with self._lock:
            return self.entries.pop((auction_id, principal), 0)

    def record_deposit(self, auction_id: int, amount: int) -> None:
        with self._lock:
            self.totals.setdefault(auction_id, EscrowTotals()).deposited += amount

    def record_payout(self, auction_id: int, amount: int) -> None:
        with self._lock:
            totals = self.totals.setdefault(auction_id, EscrowTotals())
            if amount > totals.held:
                raise ValueError(
                    f"auction {auction_id}: payout {amount} exceeds escrow held {totals.held}"
                )
            totals.paid_out += amount

    # =========================================================================
    # Snapshots
    # =========================================================================

    def snapshot(self, auction_id: int) -> LedgerSlice:
        return LedgerSlice(
            auction_id=auction_id,
            entries=self.entries_for(auction_id),
            totals=self.totals_for(auction_id),
        )

    def restore(self, snap: LedgerSlice) -> None:
        """Replace one auction's entries and totals with a snapshot."""
        with self._lock:
            for key in [k for k in self.entries if k[0] == snap.auction_id]:
                del self.entries[key]
            for principal, amount in snap.entries.items():
                self.entries[(snap.auction_id, principal)] = amount
            self.totals[snap.auction_id] = EscrowTotals(snap.totals.deposited, snap.totals.paid_out)

    def load(
        self,
        entries: List[Tuple[int, str, int]],
        totals: List[Tuple[int, int, int]],
    ) -> None:
        """Load persisted rows: entries (id, principal, amount), totals (id, deposited, paid_out)."""
        with self._lock:
            for auction_id, principal, amount in entries:
                if amount > 0:
                    self.entries[(auction_id, principal)] = amount
            for auction_id, deposited, paid_out in totals:
                self.totals[auction_id] = EscrowTotals(deposited, paid_out)

    # =========================================================================
    # Audit
    # =========================================================================

    def audit(self, auction_id: int, highest_bid: int) -> AuditReport:
        totals = self.totals_for(auction_id)
        return AuditReport(
            auction_id=auction_id,
            ledger_total=self.total_owed(auction_id),
            highest_bid=highest_bid,
            deposited=totals.deposited,
            paid_out=totals.paid_out,
        )


def withdraw_eligibility(ledger: RefundLedger, auction_id: int, highest_bidder: Optional[str], principal: str) -> bool:
    """True iff `principal` is not the leader and has funds owed."""
    return principal != highest_bidder and ledger.balance_of(auction_id, principal) > 0
