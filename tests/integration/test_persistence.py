"""
State survives a restart: a second service over the same directory sees
auctions, bids and settlement chains written by the first.
"""

import pytest
from click.testing import CliRunner

from gavel.api import MarketService
from gavel.cli.main import cli
from gavel.core.models import LifecycleStatus
from gavel.core.storage import StorageManager
from gavel.utils.logger import setup_logging

from conftest import END, MarketHarness

WINDOW = 30 * 60


def test_state_survives_restart(tmp_path, cfg, oracle):
    data_dir = tmp_path / "market"

    first = MarketHarness(MarketService(StorageManager(data_dir), oracle, cfg), oracle)
    seller = first.account(1)
    bidder = first.account(2, balance=1000)
    auction_id = first.live_auction(seller)
    first.bid(auction_id, bidder, 110)
    first.storage.close()

    second = MarketHarness(MarketService(StorageManager(data_dir), oracle, cfg), oracle)
    detail = second.lifecycle.get_auction(auction_id)
    assert detail["highest_bid"] == 110
    assert detail["bids"][0]["is_top_3"] is True

    second.end()
    assert second.storage.get_auction(auction_id).status == LifecycleStatus.SETTLING
    second.storage.close()


class TestCli:
    @pytest.fixture(autouse=True)
    def console_logging(self):
        """CliRunner swaps stdout; rebind handlers once it is gone."""
        yield
        setup_logging()

    def seed(self, data_dir, cfg, oracle):
        market = MarketHarness(MarketService(StorageManager(data_dir), oracle, cfg), oracle)
        seller = market.account(1)
        bidder = market.account(2, balance=1000)
        auction_id = market.live_auction(seller)
        market.bid(auction_id, bidder, 110)
        market.storage.close()
        return auction_id

    def test_tick_and_cascade(self, tmp_path, cfg, oracle):
        data_dir = tmp_path / "market"
        auction_id = self.seed(data_dir, cfg, oracle)
        runner = CliRunner()

        result = runner.invoke(cli, ["--data-dir", str(data_dir), "tick", "--now", str(END)])
        assert result.exit_code == 0, result.output
        assert '"to": "settling"' in result.output

        result = runner.invoke(cli, ["--data-dir", str(data_dir), "expired", "--now", str(END + WINDOW + 1)])
        assert '"count": 1' in result.output

        result = runner.invoke(cli, ["--data-dir", str(data_dir), "cascade", "--now", str(END + WINDOW + 1)])
        assert result.exit_code == 0, result.output
        assert '"failed": 1' in result.output

        result = runner.invoke(cli, ["--data-dir", str(data_dir), "show", auction_id])
        assert '"status": "failed"' in result.output

        result = runner.invoke(cli, ["--data-dir", str(data_dir), "stats"])
        assert "failed" in result.output

    def test_show_unknown(self, tmp_path):
        result = CliRunner().invoke(cli, ["--data-dir", str(tmp_path), "show", "missing"])
        assert result.exit_code != 0
        assert "Auction not found" in result.output

    def test_keygen(self):
        result = CliRunner().invoke(cli, ["keygen"])
        assert result.exit_code == 0
        assert "Account:" in result.output

    def test_demo(self, tmp_path):
        result = CliRunner().invoke(cli, ["--data-dir", str(tmp_path), "demo"])
        assert result.exit_code == 0, result.output
        assert "DEMO COMPLETE" in result.output
        assert "Auction completed" in result.output
