"""
Tests for configuration loading and logging setup.
"""

import logging
from pathlib import Path

import pytest

from gavel.core.config import MarketConfig, UNITS_PER_COIN, load_config
from gavel.utils.logger import get_logger, setup_logging


class TestDefaults:
    def test_business_constants(self):
        cfg = MarketConfig()
        assert cfg.settlement_window == 1800
        assert cfg.top_bid_slots == 3
        assert cfg.strike_limit == 3
        assert cfg.payment_tolerance == UNITS_PER_COIN // 100
        assert (cfg.auction_created_reward, cfg.winner_paid_reward, cfg.creator_sale_reward) == (10, 20, 30)
        assert cfg.block_bids_when_removed is False

    @pytest.mark.parametrize("name", ["settlement_window", "top_bid_slots", "strike_limit"])
    def test_non_positive_rejected(self, name):
        with pytest.raises(ValueError, match=name):
            MarketConfig(**{name: 0})


class TestLoadConfig:
    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("GAVEL_SETTLEMENT_WINDOW", "600")
        monkeypatch.setenv("GAVEL_BLOCK_BIDS_WHEN_REMOVED", "true")
        monkeypatch.setenv("GAVEL_ORACLE_TIMEOUT", "2.5")
        monkeypatch.setenv("GAVEL_DATA_DIR", "/tmp/gavel-data")

        cfg = load_config()

        assert cfg.settlement_window == 600
        assert cfg.block_bids_when_removed is True
        assert cfg.oracle_timeout == 2.5
        assert cfg.data_dir == Path("/tmp/gavel-data")

    def test_env_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GAVEL_CRON_SECRET", "placeholder")
        monkeypatch.delenv("GAVEL_CRON_SECRET")
        env_file = tmp_path / ".env"
        env_file.write_text("GAVEL_CRON_SECRET=from-file\n")

        cfg = load_config(str(env_file))

        assert cfg.cron_secret == "from-file"


class TestLogging:
    @pytest.fixture(autouse=True)
    def restore(self):
        yield
        setup_logging()

    def test_console_only_by_default(self):
        assert setup_logging() is None
        assert get_logger("ledger").name == "gavel.ledger"

    def test_file_handler(self, tmp_path):
        log_file = setup_logging(level=logging.DEBUG, log_dir=tmp_path / "logs")
        assert log_file == tmp_path / "logs" / "gavel.log"

        get_logger("settlement").debug("window opened")
        for handler in logging.getLogger("gavel").handlers:
            handler.flush()

        assert "[gavel.settlement] DEBUG    window opened" in log_file.read_text()

    def test_http_client_logs_quieted(self):
        setup_logging(level=logging.DEBUG)
        assert logging.getLogger("httpx").level == logging.WARNING
