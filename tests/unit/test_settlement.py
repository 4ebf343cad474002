"""
Unit tests for the settlement journal.
"""

import pytest

from auctionhouse.core.collaborators import AssetRef, SimulatedCustody, SimulatedPaymentRail
from auctionhouse.core.errors import PaymentFailed
from auctionhouse.core.settlement import SettlementJournal
from auctionhouse.crypto import address_from_label


HOUSE = address_from_label("house")
SELLER = address_from_label("seller")
OPERATOR = address_from_label("operator")


@pytest.fixture
def setup():
    custody = SimulatedCustody(operator=HOUSE)
    rail = SimulatedPaymentRail()
    asset = custody.mint(AssetRef(address_from_label("collection"), 7), HOUSE)
    return custody, rail, asset


class TestSettlementJournal:
    """Tests for execution and compensation."""

    def test_zero_payment_is_noop(self, setup):
        custody, rail, _ = setup
        journal = SettlementJournal(custody, rail)
        journal.pay(SELLER, 0)
        assert journal.steps == []
        assert rail.total_paid == 0

    def test_pay_records_step(self, setup):
        custody, rail, _ = setup
        journal = SettlementJournal(custody, rail)
        journal.pay(SELLER, 10)
        assert [s.kind for s in journal.steps] == ["pay"]
        assert rail.balance_of(SELLER) == 10

    def test_failed_payment_raises(self, setup):
        custody, rail, _ = setup
        rail.reject_payments_to(SELLER)
        journal = SettlementJournal(custody, rail, auction_id=3)
        with pytest.raises(PaymentFailed) as exc:
            journal.pay(SELLER, 10)
        assert exc.value.auction_id == 3
        assert journal.steps == []

    def test_failed_transfer_raises(self, setup):
        custody, rail, asset = setup
        custody.frozen.add(asset)
        journal = SettlementJournal(custody, rail)
        with pytest.raises(PaymentFailed):
            journal.transfer_out(asset, HOUSE, SELLER)

    def test_unwind_reverses_in_order(self, setup):
        """Fee forwarded, then asset returned; unwinding restores both."""
        custody, rail, asset = setup
        journal = SettlementJournal(custody, rail)
        journal.pay(OPERATOR, 25)
        journal.transfer_out(asset, HOUSE, SELLER)

        journal.unwind()

        assert rail.balance_of(OPERATOR) == 0
        assert custody.owner_of(asset) == HOUSE
        assert journal.steps == []

    def test_unwind_after_partial_failure(self, setup):
        custody, rail, asset = setup
        custody.frozen.add(asset)
        journal = SettlementJournal(custody, rail)
        journal.pay(OPERATOR, 25)
        with pytest.raises(PaymentFailed):
            journal.transfer_out(asset, HOUSE, SELLER)

        journal.unwind()
        assert rail.total_paid == 0

    def test_unwind_continues_past_failing_compensation(self, setup):
        """A refused clawback does not stop older steps from being undone."""
        custody, rail, asset = setup
        journal = SettlementJournal(custody, rail, auction_id=2)
        journal.transfer_out(asset, HOUSE, SELLER)
        journal.pay(OPERATOR, 25)

        def refuse(to, amount):
            raise RuntimeError("clawback refused")

        rail.reverse = refuse
        journal.unwind()

        assert custody.owner_of(asset) == HOUSE
        assert journal.steps == []
