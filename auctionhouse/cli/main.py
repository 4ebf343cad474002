"""
Auction House CLI - Command Line Interface

Main entry point for all CLI commands. State (auctions, ledger, events and
the simulated custody/payment backends) lives in an SQLite database under the
data directory (--data-dir, or data_dir from the config), so commands can be
chained across invocations.
"""

import json
from pathlib import Path
from typing import Optional

import click

from auctionhouse.core.errors import AuctionError
from auctionhouse.utils.logger import configure_logging, get_logger

logger = get_logger("cli")

DEFAULT_CONTRACT_LABEL = "auctionhouse.collection"


# =============================================================================
# Helpers
# =============================================================================


class HouseSession:
    """A persisted AuctionHouse with simulated collaborators."""

    def __init__(self, data_dir: Path, config):
        from auctionhouse.core.auction import AuctionHouse
        from auctionhouse.core.collaborators import SimulatedCustody, SimulatedPaymentRail
        from auctionhouse.core.storage import StorageManager

        self.storage = StorageManager(data_dir=data_dir)

        custody_data = self.storage.load_blob("custody")
        self.custody = (
            SimulatedCustody.from_dict(custody_data)
            if custody_data
            else SimulatedCustody(operator=config.house_address)
        )
        rail_data = self.storage.load_blob("rail")
        self.rail = SimulatedPaymentRail.from_dict(rail_data) if rail_data else SimulatedPaymentRail()

        self.house = AuctionHouse(
            custody=self.custody,
            rail=self.rail,
            config=config,
            storage_manager=self.storage,
        )

        logger.debug(f"Opened house session at {data_dir}")

    def save(self):
        self.storage.save_blob("custody", self.custody.to_dict())
        self.storage.save_blob("rail", self.rail.to_dict())


def _session(ctx) -> HouseSession:
    if "session" not in ctx.obj:
        ctx.obj["session"] = HouseSession(ctx.obj["data_dir"], ctx.obj["config"])
    return ctx.obj["session"]


def _resolve(ctx, name_or_address: str) -> str:
    """Wallet name or raw address -> address."""
    wallet_path = ctx.obj["data_dir"] / "wallets" / f"{name_or_address}.json"
    if wallet_path.exists():
        return json.loads(wallet_path.read_text())["address"]
    return name_or_address


def _asset(contract: Optional[str], token_id: int):
    from auctionhouse.core.collaborators import AssetRef
    from auctionhouse.crypto import address_from_label

    return AssetRef(contract=contract or address_from_label(DEFAULT_CONTRACT_LABEL), token_id=token_id)


def _run(ctx, action):
    """Run a house action, persist collaborator state, map errors to exit code 1."""
    session = _session(ctx)
    try:
        result = action(session)
    except AuctionError as e:
        click.echo(f"❌ {e.kind}: {e}")
        ctx.exit(1)
    session.save()
    return result


def _echo_record(record):
    click.echo(f"Auction #{record.auction_id}")
    click.echo("-" * 40)
    click.echo(f"  Asset:          {record.asset.key}")
    click.echo(f"  Seller:         {record.seller}")
    click.echo(f"  Custody owner:  {record.custody_owner}")
    click.echo(f"  End time:       {record.end_time}")
    click.echo(f"  Floor price:    {record.floor_price}")
    click.echo(f"  Highest bidder: {record.highest_bidder or '-'}")
    click.echo(f"  Highest bid:    {record.highest_bid}")
    click.echo(f"  Sold:           {record.sold}")
    click.echo(f"  Ended:          {record.ended}")


# =============================================================================
# Root Group
# =============================================================================


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--data-dir", default=None, help="Data directory (default: config data_dir)")
@click.option("--config", "config_path", default=None, help="JSON/TOML config file")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, data_dir, config_path):
    """Escrowed English auctions for unique assets"""
    from auctionhouse.core.config import load_config

    config = load_config(config_path)
    if data_dir:
        config.data_dir = Path(data_dir).expanduser()
    config.ensure_dirs()
    configure_logging(config, debug=debug)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["data_dir"] = config.data_dir


# =============================================================================
# Wallet Commands
# =============================================================================

@cli.group()
def wallet():
    """Wallet management commands"""
    pass


@wallet.command("create")
@click.option("--name", default="default", help="Wallet name")
@click.pass_context
def wallet_create(ctx, name):
    """Create a new principal"""
    from auctionhouse.crypto import generate_keypair

    wallet_path = ctx.obj["data_dir"] / "wallets" / f"{name}.json"
    if wallet_path.exists():
        click.echo(f"❌ Wallet '{name}' already exists")
        ctx.exit(1)

    kp = generate_keypair()
    wallet_path.parent.mkdir(parents=True, exist_ok=True)
    wallet_path.write_text(json.dumps({
        "name": name,
        "address": kp.address,
        "public_key": kp.public_key_hex,
    }, indent=2))

    click.echo(f"✓ Wallet created: {name}")
    click.echo(f"  Address: {kp.address}")


@wallet.command("list")
@click.pass_context
def wallet_list(ctx):
    """List all wallets"""
    wallet_dir = ctx.obj["data_dir"] / "wallets"
    if not wallet_dir.exists():
        click.echo("No wallets found.")
        return

    for wallet_file in sorted(wallet_dir.glob("*.json")):
        data = json.loads(wallet_file.read_text())
        click.echo(f"  {data['name']}: {data['address']}")


@wallet.command("balance")
@click.argument("who")
@click.pass_context
def wallet_balance(ctx, who):
    """Total paid out to a principal by the payment rail"""
    address = _resolve(ctx, who)
    click.echo(f"Address:  {address}")
    click.echo(f"Received: {_session(ctx).rail.balance_of(address)}")


# =============================================================================
# Asset Commands (simulated custody)
# =============================================================================

@cli.group()
def asset():
    """Simulated asset custody commands"""
    pass


@asset.command("mint")
@click.option("--owner", required=True, help="Wallet name or address")
@click.option("--token-id", required=True, type=int)
@click.option("--contract", default=None, help="Collection address")
@click.pass_context
def asset_mint(ctx, owner, token_id, contract):
    """Mint an asset to an owner"""
    session = _session(ctx)
    try:
        ref = session.custody.mint(_asset(contract, token_id), _resolve(ctx, owner))
    except ValueError as e:
        click.echo(f"❌ {e}")
        ctx.exit(1)
    session.save()
    click.echo(f"✓ Minted {ref.key}")


@asset.command("approve")
@click.option("--owner", required=True, help="Wallet name or address")
@click.option("--token-id", required=True, type=int)
@click.option("--contract", default=None, help="Collection address")
@click.pass_context
def asset_approve(ctx, owner, token_id, contract):
    """Approve the auction house to take custody of an asset"""
    session = _session(ctx)
    try:
        session.custody.approve(_resolve(ctx, owner), _asset(contract, token_id))
    except (PermissionError, ValueError) as e:
        click.echo(f"❌ {e}")
        ctx.exit(1)
    session.save()
    click.echo(f"✓ Auction house approved for token {token_id}")


@asset.command("owner")
@click.option("--token-id", required=True, type=int)
@click.option("--contract", default=None, help="Collection address")
@click.pass_context
def asset_owner(ctx, token_id, contract):
    """Show the current owner of an asset"""
    owner = _session(ctx).custody.owner_of(_asset(contract, token_id))
    click.echo(owner or "unknown asset")


# =============================================================================
# Auction Commands
# =============================================================================

@cli.command("create")
@click.option("--seller", required=True, help="Wallet name or address")
@click.option("--token-id", required=True, type=int)
@click.option("--contract", default=None, help="Collection address")
@click.option("--days", default=1, type=int, help="Duration in days")
@click.option("--floor", "floor_price", required=True, type=int, help="Floor price")
@click.pass_context
def create(ctx, seller, token_id, contract, days, floor_price):
    """List an approved asset"""
    seller = _resolve(ctx, seller)
    auction_id = _run(ctx, lambda s: s.house.create_item(seller, _asset(contract, token_id), days, floor_price))
    click.echo(f"✓ Auction #{auction_id} created")


@cli.command("bid")
@click.argument("auction_id", type=int)
@click.option("--bidder", required=True, help="Wallet name or address")
@click.option("--amount", required=True, type=int)
@click.pass_context
def bid(ctx, auction_id, bidder, amount):
    """Place a first bid"""
    bidder = _resolve(ctx, bidder)
    record = _run(ctx, lambda s: s.house.bid(auction_id, bidder, amount))
    click.echo(f"✓ Highest bid now {record.highest_bid} by {record.highest_bidder}")


@cli.command("increase-bid")
@click.argument("auction_id", type=int)
@click.option("--bidder", required=True, help="Wallet name or address")
@click.option("--amount", required=True, type=int, help="Additional amount")
@click.pass_context
def increase_bid(ctx, auction_id, bidder, amount):
    """Raise a previously outbid bid"""
    bidder = _resolve(ctx, bidder)
    record = _run(ctx, lambda s: s.house.increase_bid(auction_id, bidder, amount))
    click.echo(f"✓ Highest bid now {record.highest_bid} by {record.highest_bidder}")


@cli.command("withdraw")
@click.argument("auction_id", type=int)
@click.option("--who", required=True, help="Wallet name or address")
@click.pass_context
def withdraw(ctx, auction_id, who):
    """Withdraw outbid funds"""
    who = _resolve(ctx, who)
    moved = _run(ctx, lambda s: s.house.withdraw(auction_id, who))
    click.echo("✓ Funds withdrawn" if moved else "Nothing to withdraw")


@cli.command("cancel")
@click.argument("auction_id", type=int)
@click.option("--seller", required=True, help="Wallet name or address")
@click.option("--fee", default=None, type=int, help="Attached fee (defaults to configured fee)")
@click.pass_context
def cancel(ctx, auction_id, seller, fee):
    """Cancel an auction before it expires"""
    seller = _resolve(ctx, seller)
    if fee is None:
        fee = ctx.obj["config"].cancellation_fee
    _run(ctx, lambda s: s.house.cancel_auction(auction_id, seller, fee))
    click.echo(f"✓ Auction #{auction_id} cancelled")


@cli.command("end")
@click.argument("auction_id", type=int)
@click.option("--seller", required=True, help="Wallet name or address")
@click.pass_context
def end(ctx, auction_id, seller):
    """Finalize an auction and collect proceeds"""
    seller = _resolve(ctx, seller)
    _run(ctx, lambda s: s.house.auction_end(auction_id, seller))
    click.echo(f"✓ Auction #{auction_id} ended")


@cli.command("show")
@click.argument("auction_id", type=int)
@click.pass_context
def show(ctx, auction_id):
    """Show one auction with its ledger and escrow audit"""
    session = _session(ctx)
    try:
        record = session.house.get_auction(auction_id)
    except AuctionError as e:
        click.echo(f"❌ {e}")
        ctx.exit(1)

    _echo_record(record)
    entries = session.house.ledger.entries_for(auction_id)
    click.echo("  Refund ledger:")
    if not entries:
        click.echo("    (empty)")
    for principal, amount in sorted(entries.items()):
        click.echo(f"    {principal}: {amount}")
    report = session.house.audit(auction_id)
    status = "balanced" if report.is_balanced else "UNBALANCED"
    click.echo(f"  Escrow held:    {report.held} ({status})")


@cli.command("list")
@click.pass_context
def list_auctions(ctx):
    """List all auctions"""
    house = _session(ctx).house
    records = house.list_auctions()
    if not records:
        click.echo("No auctions.")
        return

    now = house.now()
    for record in records:
        if record.ended:
            state = "ended"
        elif record.sold:
            state = "cancelled"
        elif record.is_open(now):
            state = "open"
        else:
            state = "expired"
        click.echo(
            f"  #{record.auction_id} {record.asset.key} [{state}] "
            f"highest={record.highest_bid} floor={record.floor_price}"
        )


@cli.command("events")
@click.option("--auction", "auction_id", default=None, type=int, help="Filter by auction id")
@click.option("--verify", is_flag=True, help="Verify the hash chain")
@click.pass_context
def events(ctx, auction_id, verify):
    """Show the notification stream"""
    log = _session(ctx).house.events
    selected = log.for_auction(auction_id) if auction_id else log.events
    for event in selected:
        click.echo(f"  #{event.sequence} [{event.kind.value}] auction {event.auction_id} {event.data}")
    if verify:
        click.echo("✓ Chain intact" if log.verify_chain() else "❌ Chain broken")


@cli.command("stats")
@click.pass_context
def stats(ctx):
    """Show house statistics"""
    for key, value in _session(ctx).house.stats().items():
        click.echo(f"  {key}: {value}")


# =============================================================================
# Demo Command
# =============================================================================


@cli.command("demo")
def demo():
    """Run an in-memory walkthrough of a full auction"""
    from auctionhouse.core.auction import AuctionHouse
    from auctionhouse.core.collaborators import AssetRef, SimulatedCustody, SimulatedPaymentRail
    from auctionhouse.core.config import HouseConfig
    from auctionhouse.crypto import address_from_label, generate_keypair

    click.echo("=" * 60)
    click.echo("  AUCTION HOUSE - DEMO")
    click.echo("=" * 60)
    click.echo()

    config = HouseConfig()
    custody = SimulatedCustody(operator=config.house_address)
    rail = SimulatedPaymentRail()
    house = AuctionHouse(custody=custody, rail=rail, config=config)

    seller = generate_keypair().address
    alice = generate_keypair().address
    bob = generate_keypair().address
    asset_ref = custody.mint(AssetRef(address_from_label(DEFAULT_CONTRACT_LABEL), 1), seller)
    custody.approve(seller, asset_ref)

    click.echo("📦 Seller lists token #1 (floor 10, 1 day)...")
    auction_id = house.create_item(seller, asset_ref, duration_days=1, floor_price=10)
    click.echo(f"  ✓ Auction #{auction_id}, custody: {custody.owner_of(asset_ref)[:12]}... (house)")
    click.echo()

    click.echo("💰 Alice bids 10, Bob bids 15...")
    house.bid(auction_id, alice, 10)
    house.bid(auction_id, bob, 15)
    click.echo(f"  ✓ Highest: {house.get_auction(auction_id).highest_bid} (Bob)")
    click.echo(f"  ✓ Alice refundable: {house.ledger_balance(auction_id, alice)}")
    click.echo()

    click.echo("🔁 Alice re-enters with +10...")
    house.increase_bid(auction_id, alice, 10)
    click.echo(f"  ✓ Highest: {house.get_auction(auction_id).highest_bid} (Alice)")
    click.echo(f"  ✓ Bob refundable: {house.ledger_balance(auction_id, bob)}")
    click.echo()

    click.echo("🏧 Bob withdraws...")
    house.withdraw(auction_id, bob)
    click.echo(f"  ✓ Bob received: {rail.balance_of(bob)}")
    click.echo()

    click.echo("🏁 Seller ends the auction...")
    house.auction_end(auction_id, seller)
    click.echo(f"  ✓ Seller received: {rail.balance_of(seller)}")
    click.echo(f"  ✓ Asset now with: {custody.owner_of(asset_ref)[:12]}... (seller)")
    click.echo()

    report = house.audit(auction_id)
    click.echo("📊 Final Statistics:")
    click.echo(f"  Events: {len(house.events)} (chain intact: {house.events.verify_chain()})")
    click.echo(f"  Escrow held: {report.held} (balanced: {report.is_balanced})")
    click.echo()
    click.echo("✅ Demo complete!")


if __name__ == "__main__":
    cli()
