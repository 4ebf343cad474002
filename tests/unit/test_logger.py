"""
Unit tests for logging setup.
"""

import logging

import pytest

from auctionhouse.core.config import HouseConfig
from auctionhouse.utils.logger import HouseLogger, configure_logging, get_logger, level_from_name


@pytest.fixture(autouse=True)
def console_only():
    yield
    HouseLogger.setup(force=True)


class TestConfigureLogging:
    """Tests for applying a HouseConfig."""

    def test_console_only_by_default(self, tmp_path):
        assert configure_logging(HouseConfig(data_dir=tmp_path)) is None
        assert logging.getLogger("auctionhouse").level == logging.INFO

    def test_log_file_under_log_dir(self, tmp_path):
        config = HouseConfig(log_dir=tmp_path / "logs", log_level="WARNING")
        log_file = configure_logging(config)

        get_logger("house").warning("escrow drift on auction 7")
        get_logger("house").info("not written at WARNING")
        for handler in logging.getLogger("auctionhouse").handlers:
            handler.flush()

        assert log_file == tmp_path / "logs" / "auctionhouse.log"
        text = log_file.read_text()
        assert "[auctionhouse.house] WARNING  escrow drift on auction 7" in text
        assert "not written" not in text

    def test_debug_flag_overrides_level(self, tmp_path):
        configure_logging(HouseConfig(log_level="ERROR"), debug=True)
        assert logging.getLogger("auctionhouse").level == logging.DEBUG

    def test_level_names(self):
        assert level_from_name("debug") == logging.DEBUG
        assert level_from_name("nonsense") == logging.INFO
