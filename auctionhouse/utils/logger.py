"""
Logging for the auction house.

All subsystem loggers hang off the "auctionhouse" logger:

    auctionhouse.house       facade and transactions
    auctionhouse.registry    listings and id allocation
    auctionhouse.bidding     bid admission
    auctionhouse.lifecycle   cancellation and finalization
    auctionhouse.escrow      refund ledger and withdrawals
    auctionhouse.collaborators  simulated custody and payment rail
    auctionhouse.settlement  external transfers and compensation
    auctionhouse.events      notification stream
    auctionhouse.storage.*   SQLite persistence
    auctionhouse.cli         command line

Output goes to a colored console handler. When HouseConfig.log_dir is set,
the same records are also written to <log_dir>/auctionhouse.log.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import colorlog

LOG_FILE_NAME = "auctionhouse.log"

CONSOLE_FORMAT = "%(log_color)s%(asctime)s [%(name)s] %(levelname)-8s%(reset)s %(message)s"
FILE_FORMAT = "%(asctime)s [%(name)s] %(levelname)-8s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class HouseLogger:
    """Owns the handlers of the "auctionhouse" logger tree."""

    _initialized = False
    log_file: Optional[Path] = None

    @classmethod
    def setup(
        cls,
        level: int = logging.INFO,
        log_dir: Optional[Path] = None,
        force: bool = False,
    ):
        """
        Install the console handler and, with `log_dir`, a file handler.

        Args:
            level: Logging level for the whole tree
            log_dir: Directory of the log file; None keeps logs on the console
            force: Replace handlers installed by an earlier setup
        """
        if cls._initialized and not force:
            return

        root_logger = logging.getLogger("auctionhouse")
        root_logger.setLevel(level)
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()

        console_handler = colorlog.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(colorlog.ColoredFormatter(
            CONSOLE_FORMAT,
            datefmt=DATE_FORMAT,
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "red,bg_white",
            },
        ))
        root_logger.addHandler(console_handler)

        cls.log_file = None
        if log_dir:
            log_dir = Path(log_dir)
            log_dir.mkdir(exist_ok=True, parents=True)
            cls.log_file = log_dir / LOG_FILE_NAME

            file_handler = logging.FileHandler(cls.log_file)
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
            root_logger.addHandler(file_handler)

        cls._initialized = True

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        if not cls._initialized:
            # Library use: console only until a config is applied
            cls.setup()
        return logging.getLogger(f"auctionhouse.{name}")


def get_logger(name: str) -> logging.Logger:
    """Logger of one subsystem, e.g. get_logger("bidding")."""
    return HouseLogger.get_logger(name)


def configure_logging(config, debug: bool = False) -> Optional[Path]:
    """
    Apply a HouseConfig's log_level and log_dir.

    Returns:
        Path of the log file, or None when logging to the console only
    """
    level = logging.DEBUG if debug else level_from_name(config.log_level)
    HouseLogger.setup(level=level, log_dir=config.log_dir, force=True)
    return HouseLogger.log_file


def level_from_name(name: str) -> int:
    """Map 'debug'/'INFO'/... to a logging level, defaulting to INFO."""
    return getattr(logging, str(name).upper(), logging.INFO)
