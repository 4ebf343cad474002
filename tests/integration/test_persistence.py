import sqlite3

import pytest

from auctionhouse.core.auction import AuctionHouse
from auctionhouse.core.collaborators import AssetRef, SimulatedCustody, SimulatedPaymentRail
from auctionhouse.core.config import HouseConfig
from auctionhouse.core.errors import AlreadyFinalized, NotEligible
from auctionhouse.core.events import EventKind
from auctionhouse.core.storage.storage_manager import StorageManager
from auctionhouse.crypto import address_from_label

SELLER = address_from_label("seller")
ALICE = address_from_label("alice")
BOB = address_from_label("bob")
CONTRACT = address_from_label("collection")


@pytest.fixture
def temp_house_dir(tmp_path):
    """Create a temporary directory for house data."""
    data_dir = tmp_path / "house_data"
    data_dir.mkdir()
    return data_dir


@pytest.fixture
def config():
    return HouseConfig(cancellation_fee=25)


def open_house(data_dir, config, custody, rail):
    storage = StorageManager(data_dir=data_dir)
    return AuctionHouse(custody=custody, rail=rail, config=config,
                        storage_manager=storage, clock=lambda: 1_000)


def test_house_persistence(temp_house_dir, config):
    """Auctions, ledger and escrow totals survive a restart."""
    custody = SimulatedCustody(operator=config.house_address)
    rail = SimulatedPaymentRail()

    # 1. Start house A
    house_a = open_house(temp_house_dir, config, custody, rail)
    asset = custody.mint(AssetRef(CONTRACT, 1), SELLER)
    custody.approve(SELLER, asset)
    auction_id = house_a.create_item(SELLER, asset, 1, 10)
    house_a.bid(auction_id, ALICE, 10)
    house_a.bid(auction_id, BOB, 15)
    record_a = house_a.get_auction(auction_id)

    # 2. Stop house A
    house_a.storage_manager.close()
    del house_a

    # 3. Start house B on the same database
    house_b = open_house(temp_house_dir, config, custody, rail)

    assert house_b.get_auction(auction_id) == record_a
    assert house_b.ledger_balance(auction_id, ALICE) == 10
    assert house_b.audit(auction_id).is_balanced
    assert house_b.audit(auction_id).deposited == 25

    # 4. Continue where A left off
    with pytest.raises(NotEligible):
        house_b.bid(auction_id, ALICE, 50)
    assert house_b.withdraw(auction_id, ALICE) is True
    house_b.auction_end(auction_id, SELLER)

    del house_b

    house_c = open_house(temp_house_dir, config, custody, rail)
    assert house_c.get_auction(auction_id).ended
    assert house_c.ledger_balance(auction_id, ALICE) == 0
    with pytest.raises(AlreadyFinalized):
        house_c.auction_end(auction_id, SELLER)


def test_id_counter_persistence(temp_house_dir, config):
    """Ids keep increasing across restarts."""
    custody = SimulatedCustody(operator=config.house_address)
    rail = SimulatedPaymentRail()

    house = open_house(temp_house_dir, config, custody, rail)
    for token_id in (1, 2):
        asset = custody.mint(AssetRef(CONTRACT, token_id), SELLER)
        custody.approve(SELLER, asset)
        house.create_item(SELLER, asset, 1, 10)
    del house

    house = open_house(temp_house_dir, config, custody, rail)
    asset = custody.mint(AssetRef(CONTRACT, 3), SELLER)
    custody.approve(SELLER, asset)
    assert house.create_item(SELLER, asset, 1, 10) == 3
    assert house.storage_manager.get_next_auction_id() == 4


def test_event_stream_persistence(temp_house_dir, config):
    """The notification stream reloads with its hash chain intact."""
    custody = SimulatedCustody(operator=config.house_address)
    rail = SimulatedPaymentRail()

    house = open_house(temp_house_dir, config, custody, rail)
    asset = custody.mint(AssetRef(CONTRACT, 1), SELLER)
    custody.approve(SELLER, asset)
    auction_id = house.create_item(SELLER, asset, 1, 10)
    house.bid(auction_id, ALICE, 10)
    house.cancel_auction(auction_id, SELLER, 25)
    del house

    house = open_house(temp_house_dir, config, custody, rail)
    assert [e.kind for e in house.events.events] == [
        EventKind.ITEM_CREATED,
        EventKind.BID_RAISED,
        EventKind.AUCTION_CANCELLED,
    ]
    assert house.events.verify_chain()

    # New events extend the reloaded chain
    house.withdraw(auction_id, ALICE)
    assert house.events.last().sequence == 4
    assert house.events.verify_chain()


def test_collaborator_blobs(temp_house_dir, config):
    """Simulated custody and rail state round-trip through the KV store."""
    storage = StorageManager(data_dir=temp_house_dir)
    custody = SimulatedCustody(operator=config.house_address)
    asset = custody.mint(AssetRef(CONTRACT, 1), SELLER)
    rail = SimulatedPaymentRail()
    rail.pay(ALICE, 7)

    storage.save_blob("custody", custody.to_dict())
    storage.save_blob("rail", rail.to_dict())
    storage.close()

    storage = StorageManager(data_dir=temp_house_dir)
    assert SimulatedCustody.from_dict(storage.load_blob("custody")).owner_of(asset) == SELLER
    assert SimulatedPaymentRail.from_dict(storage.load_blob("rail")).balance_of(ALICE) == 7


def test_failed_write_leaves_no_event_gap(temp_house_dir, config, monkeypatch):
    """Events are stored with their state change, so a failed write loses neither."""
    custody = SimulatedCustody(operator=config.house_address)
    rail = SimulatedPaymentRail()

    house = open_house(temp_house_dir, config, custody, rail)
    asset = custody.mint(AssetRef(CONTRACT, 1), SELLER)
    custody.approve(SELLER, asset)
    auction_id = house.create_item(SELLER, asset, 1, 10)
    house.bid(auction_id, ALICE, 10)

    def disk_full(*args, **kwargs):
        raise sqlite3.OperationalError("database or disk is full")

    with monkeypatch.context() as m:
        m.setattr(house.storage_manager, "persist_auction_update", disk_full)
        with pytest.raises(sqlite3.OperationalError):
            house.bid(auction_id, BOB, 15)

    house.bid(auction_id, BOB, 20)
    house.withdraw(auction_id, ALICE)
    expected = list(house.events.events)
    del house

    house = open_house(temp_house_dir, config, custody, rail)
    assert house.events.events == expected
    assert [e.sequence for e in expected] == [1, 2, 3, 4]
    assert house.events.verify_chain()
    assert house.ledger_balance(auction_id, ALICE) == 0
