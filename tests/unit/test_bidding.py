"""
Unit tests for the bid state machine.

Tests cover:
1. First bids (floor, strict increase, superseding)
2. Increase-bid by superseded bidders
3. Rejections on closed and expired auctions
"""

import pytest

from auctionhouse.core.auction import BidStateMachine
from auctionhouse.core.collaborators import AssetRef
from auctionhouse.core.errors import AuctionClosed, BidTooLow, NotEligible, Unauthorized
from auctionhouse.core.escrow import RefundLedger
from auctionhouse.core.registry import AuctionRecord
from auctionhouse.crypto import address_from_label


SELLER = address_from_label("seller")
ALICE = address_from_label("alice")
BOB = address_from_label("bob")
CAROL = address_from_label("carol")

END = 1_000


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def ledger():
    return RefundLedger()


@pytest.fixture
def machine(ledger):
    return BidStateMachine(ledger)


@pytest.fixture
def record():
    return AuctionRecord(
        auction_id=1,
        asset=AssetRef(address_from_label("collection"), 1),
        seller=SELLER,
        custody_owner=address_from_label("house"),
        end_time=END,
        floor_price=10,
        created_at=0,
    )


# =============================================================================
# Bid
# =============================================================================


class TestBid:
    """Tests for first bids."""

    def test_first_bid_at_floor(self, machine, record, ledger):
        outcome = machine.bid(record, ALICE, 10, now=0)
        assert record.highest_bidder == ALICE
        assert record.highest_bid == 10
        assert outcome.displaced_bidder is None
        assert ledger.totals_for(1).deposited == 10

    def test_below_floor(self, machine, record):
        with pytest.raises(BidTooLow):
            machine.bid(record, ALICE, 9, now=0)
        assert record.highest_bidder is None

    def test_must_strictly_exceed(self, machine, record):
        machine.bid(record, ALICE, 15, now=0)
        with pytest.raises(BidTooLow):
            machine.bid(record, BOB, 15, now=0)

    def test_supersede_credits_previous_leader(self, machine, record, ledger):
        machine.bid(record, ALICE, 10, now=0)
        outcome = machine.bid(record, BOB, 15, now=0)
        assert outcome.displaced_bidder == ALICE
        assert outcome.displaced_amount == 10
        assert ledger.balance_of(1, ALICE) == 10
        assert record.highest_bidder == BOB

    def test_seller_cannot_bid(self, machine, record):
        with pytest.raises(Unauthorized):
            machine.bid(record, SELLER, 50, now=0)

    def test_leader_cannot_bid_again(self, machine, record):
        machine.bid(record, ALICE, 10, now=0)
        with pytest.raises(NotEligible):
            machine.bid(record, ALICE, 20, now=0)

    def test_outbid_bidder_must_use_increase(self, machine, record):
        machine.bid(record, ALICE, 10, now=0)
        machine.bid(record, BOB, 15, now=0)
        with pytest.raises(NotEligible):
            machine.bid(record, ALICE, 30, now=0)

    def test_bid_at_end_time_allowed(self, machine, record):
        machine.bid(record, ALICE, 10, now=END)
        assert record.highest_bid == 10

    def test_bid_after_end_time(self, machine, record):
        with pytest.raises(AuctionClosed):
            machine.bid(record, ALICE, 10, now=END + 1)

    def test_bid_on_sold(self, machine, record):
        record.sold = True
        with pytest.raises(AuctionClosed):
            machine.bid(record, ALICE, 10, now=0)

    def test_bid_on_ended(self, machine, record):
        record.ended = True
        with pytest.raises(AuctionClosed):
            machine.bid(record, ALICE, 10, now=0)


# =============================================================================
# Increase Bid
# =============================================================================


class TestIncreaseBid:
    """Tests for topping up a superseded bid."""

    def test_increase_uses_ledger_balance(self, machine, record, ledger):
        machine.bid(record, ALICE, 10, now=0)
        machine.bid(record, BOB, 15, now=0)

        outcome = machine.increase_bid(record, ALICE, 10, now=0)

        assert record.highest_bidder == ALICE
        assert record.highest_bid == 20
        assert outcome.deposited == 10
        assert ledger.balance_of(1, ALICE) == 0
        assert ledger.balance_of(1, BOB) == 15

    def test_escrow_balanced_after_increase(self, machine, record, ledger):
        machine.bid(record, ALICE, 10, now=0)
        machine.bid(record, BOB, 15, now=0)
        machine.increase_bid(record, ALICE, 10, now=0)
        assert ledger.audit(1, record.highest_bid).is_balanced

    def test_without_balance(self, machine, record):
        machine.bid(record, ALICE, 10, now=0)
        with pytest.raises(NotEligible):
            machine.increase_bid(record, CAROL, 100, now=0)

    def test_leader_cannot_increase(self, machine, record):
        machine.bid(record, ALICE, 10, now=0)
        with pytest.raises(NotEligible):
            machine.increase_bid(record, ALICE, 10, now=0)

    def test_total_must_exceed_highest(self, machine, record, ledger):
        machine.bid(record, ALICE, 10, now=0)
        machine.bid(record, BOB, 15, now=0)
        with pytest.raises(BidTooLow):
            machine.increase_bid(record, ALICE, 5, now=0)
        assert ledger.balance_of(1, ALICE) == 10
        assert record.highest_bidder == BOB

    def test_increase_after_expiry(self, machine, record):
        machine.bid(record, ALICE, 10, now=0)
        machine.bid(record, BOB, 15, now=0)
        with pytest.raises(AuctionClosed):
            machine.increase_bid(record, ALICE, 10, now=END + 1)

    def test_increase_on_cancelled(self, machine, record, ledger):
        ledger.credit(1, ALICE, 10)
        record.sold = True
        with pytest.raises(AuctionClosed):
            machine.increase_bid(record, ALICE, 10, now=0)
