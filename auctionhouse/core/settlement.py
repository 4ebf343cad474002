"""
Settlement Journal - all-or-nothing execution of external transfers.

An operation records each custody transfer and payment it performs through
a journal. Each step is executed immediately; if a step fails the journal
raises PaymentFailed, and the enclosing transaction calls `unwind()` which
compensates the already executed steps in reverse order.

    journal = SettlementJournal(custody, rail)
    journal.pay(operator, fee)
    journal.transfer_out(asset, house, seller)   # fails -> fee reversed
"""

from dataclasses import dataclass
from typing import List, Optional

from auctionhouse.core.collaborators import AssetRef, CustodyService, PaymentRail
from auctionhouse.core.errors import PaymentFailed
from auctionhouse.utils.logger import get_logger

logger = get_logger("settlement")


@dataclass
class SettlementStep:
    """One executed external transfer."""
    kind: str               # "pay" | "transfer_in" | "transfer_out"
    to: str
    amount: int = 0
    asset: Optional[AssetRef] = None
    from_: Optional[str] = None


class SettlementJournal:
    """Executes and, on failure, compensates external transfers."""

    def __init__(self, custody: CustodyService, rail: PaymentRail, auction_id: Optional[int] = None):
        self.custody = custody
        self.rail = rail
        self.auction_id = auction_id
        self.steps: List[SettlementStep] = []

    def pay(self, to: str, amount: int) -> None:
        """Pay out of escrow. Zero amounts are a no-op."""
        if amount == 0:
            return
        if not self.rail.pay(to, amount):
            raise PaymentFailed(f"payment of {amount} to {to} failed", self.auction_id)
        self.steps.append(SettlementStep(kind="pay", to=to, amount=amount))

    def transfer_in(self, asset: AssetRef, from_: str, to: str) -> None:
        if not self.custody.transfer_in(asset, from_, to):
            raise PaymentFailed(f"custody transfer of {asset} from {from_} failed", self.auction_id)
        self.steps.append(SettlementStep(kind="transfer_in", to=to, asset=asset, from_=from_))

    def transfer_out(self, asset: AssetRef, from_: str, to: str) -> None:
        if not self.custody.transfer_out(asset, from_, to):
            raise PaymentFailed(f"custody transfer of {asset} to {to} failed", self.auction_id)
        self.steps.append(SettlementStep(kind="transfer_out", to=to, asset=asset, from_=from_))

    def unwind(self) -> None:
        """
        Compensate executed steps, newest first.

        Every step is attempted. A compensation that raises is logged and
        the remaining steps are still unwound.
        """
        while self.steps:
            step = self.steps.pop()
            try:
                if step.kind == "pay":
                    self.rail.reverse(step.to, step.amount)
                else:
                    self.custody.revert_transfer(step.asset, step.from_, step.to)
            except Exception as e:
                logger.error(f"Could not unwind {step.kind} to {step.to} (auction {self.auction_id}): {e}")
            else:
                logger.debug(f"Unwound {step.kind} to {step.to}")
