"""
CLI Tests - Command chaining across invocations on one data directory.
"""

import pytest
from click.testing import CliRunner

from auctionhouse.cli.main import cli
from auctionhouse.core.config import HouseConfig
from auctionhouse.utils.logger import HouseLogger


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def invoke(runner, tmp_path):
    data_dir = str(tmp_path / "house")

    def _invoke(*args):
        return runner.invoke(cli, ["--data-dir", data_dir, *args])

    return _invoke


@pytest.fixture
def wallets(invoke):
    for name in ("seller", "alice", "bob"):
        assert invoke("wallet", "create", "--name", name).exit_code == 0


@pytest.fixture
def listed(invoke, wallets):
    assert invoke("asset", "mint", "--owner", "seller", "--token-id", "1").exit_code == 0
    assert invoke("asset", "approve", "--owner", "seller", "--token-id", "1").exit_code == 0
    result = invoke("create", "--seller", "seller", "--token-id", "1", "--floor", "10")
    assert result.exit_code == 0, result.output
    assert "Auction #1 created" in result.output


class TestWalletCommands:
    """Tests for wallet management."""

    def test_create_and_list(self, invoke, wallets):
        result = invoke("wallet", "list")
        assert result.exit_code == 0
        assert "alice: 0x" in result.output
        assert "seller: 0x" in result.output

    def test_duplicate_wallet(self, invoke, wallets):
        result = invoke("wallet", "create", "--name", "alice")
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_empty_list(self, invoke):
        assert "No wallets found." in invoke("wallet", "list").output


class TestAuctionCommands:
    """Tests for the auction flow."""

    def test_full_flow(self, invoke, listed):
        assert invoke("bid", "1", "--bidder", "alice", "--amount", "10").exit_code == 0
        result = invoke("bid", "1", "--bidder", "bob", "--amount", "15")
        assert "Highest bid now 15" in result.output

        result = invoke("increase-bid", "1", "--bidder", "alice", "--amount", "10")
        assert result.exit_code == 0
        assert "Highest bid now 20" in result.output

        result = invoke("withdraw", "1", "--who", "bob")
        assert "Funds withdrawn" in result.output
        assert "Received: 15" in invoke("wallet", "balance", "bob").output

        result = invoke("end", "1", "--seller", "seller")
        assert result.exit_code == 0
        assert "Received: 20" in invoke("wallet", "balance", "seller").output

        result = invoke("show", "1")
        assert "Ended:          True" in result.output
        assert "(balanced)" in result.output

        result = invoke("events", "--verify")
        assert "auction_ended" in result.output
        assert "Chain intact" in result.output

    def test_rejected_bid_exit_code(self, invoke, listed):
        result = invoke("bid", "1", "--bidder", "alice", "--amount", "5")
        assert result.exit_code == 1
        assert "bid_too_low" in result.output

    def test_seller_cannot_bid(self, invoke, listed):
        result = invoke("bid", "1", "--bidder", "seller", "--amount", "50")
        assert result.exit_code == 1
        assert "unauthorized" in result.output

    def test_cancel_uses_configured_fee(self, invoke, listed):
        invoke("bid", "1", "--bidder", "alice", "--amount", "10")
        result = invoke("cancel", "1", "--seller", "seller")
        assert result.exit_code == 0, result.output

        result = invoke("list")
        assert "[cancelled]" in result.output
        assert "Funds withdrawn" in invoke("withdraw", "1", "--who", "alice").output

    def test_cancel_wrong_fee(self, invoke, listed):
        result = invoke("cancel", "1", "--seller", "seller", "--fee", "1")
        assert result.exit_code == 1
        assert "invalid_input" in result.output

    def test_unknown_auction(self, invoke, wallets):
        result = invoke("show", "9")
        assert result.exit_code == 1
        assert "no such auction" in result.output

    def test_unapproved_listing(self, invoke, wallets):
        invoke("asset", "mint", "--owner", "seller", "--token-id", "2")
        result = invoke("create", "--seller", "seller", "--token-id", "2", "--floor", "10")
        assert result.exit_code == 1
        assert "unauthorized" in result.output

    def test_asset_owner_tracks_custody(self, invoke, listed):
        house_owned = invoke("asset", "owner", "--token-id", "1").output.strip().splitlines()[-1]
        assert house_owned == HouseConfig().house_address

        invoke("end", "1", "--seller", "seller")
        seller_owned = invoke("asset", "owner", "--token-id", "1").output.strip().splitlines()[-1]
        assert seller_owned != house_owned
        assert seller_owned.startswith("0x")

    def test_stats(self, invoke, listed):
        result = invoke("stats")
        assert "total_auctions: 1" in result.output


class TestDemo:
    """Tests for the in-memory walkthrough."""

    def test_demo_runs(self, runner, tmp_path):
        result = runner.invoke(cli, ["--data-dir", str(tmp_path), "demo"])
        assert result.exit_code == 0, result.output
        assert "Demo complete!" in result.output
        assert "balanced: True" in result.output


class TestConfiguredPaths:
    """Tests for data_dir and log_dir taken from the configuration."""

    @pytest.fixture(autouse=True)
    def console_only(self):
        yield
        HouseLogger.setup(force=True)

    def test_environment_paths(self, runner, tmp_path):
        env = {
            "AUCTIONHOUSE_DATA_DIR": str(tmp_path / "state"),
            "AUCTIONHOUSE_LOG_DIR": str(tmp_path / "logs"),
        }
        result = runner.invoke(cli, ["wallet", "create", "--name", "carol"], env=env)
        assert result.exit_code == 0, result.output
        assert (tmp_path / "state" / "wallets" / "carol.json").exists()

        result = runner.invoke(cli, ["show", "1"], env=env)
        assert result.exit_code == 1
        assert (tmp_path / "state" / "auctionhouse.db").exists()
        assert "StorageManager initialized" in (tmp_path / "logs" / "auctionhouse.log").read_text()
