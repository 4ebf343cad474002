"""
Auction house configuration parameters.

Defines the system principals, the cancellation fee, time units and
operational paths. Values are layered:

    defaults -> config file (JSON or TOML) -> AUCTIONHOUSE_* environment

Environment variables may also come from a .env file (python-dotenv).
"""

import json
import os
import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from auctionhouse.crypto import address_from_label, is_valid_address, normalize_address

ENV_PREFIX = "AUCTIONHOUSE_"

SECONDS_PER_DAY = 86_400

# 0.025 of a 10**18-unit coin
DEFAULT_CANCELLATION_FEE = 25_000_000_000_000_000


@dataclass
class HouseConfig:
    """House-wide configuration parameters"""

    # Principals
    house_address: str = address_from_label("auctionhouse.escrow")  # Custodian of listed assets
    platform_operator: str = address_from_label("auctionhouse.operator")  # Receives cancellation fees

    # Economics
    cancellation_fee: int = DEFAULT_CANCELLATION_FEE

    # Time
    seconds_per_day: int = SECONDS_PER_DAY
    min_duration_days: int = 1

    # Paths
    data_dir: Path = Path("~/.auctionhouse")  # CLI state database and wallets
    log_dir: Optional[Path] = None  # Log file directory; None logs to the console only
    log_level: str = "INFO"

    def __post_init__(self):
        for name in ("house_address", "platform_operator"):
            value = getattr(self, name)
            if not is_valid_address(value):
                raise ValueError(f"{name} must be a 0x-prefixed 20-byte address, got {value!r}")
            setattr(self, name, normalize_address(value))
        self.data_dir = Path(self.data_dir).expanduser()
        self.log_dir = Path(self.log_dir).expanduser() if self.log_dir else None
        self.cancellation_fee = int(self.cancellation_fee)
        self.seconds_per_day = int(self.seconds_per_day)
        self.min_duration_days = int(self.min_duration_days)

        if self.cancellation_fee < 0:
            raise ValueError(f"cancellation_fee must be >= 0, got {self.cancellation_fee}")
        if self.seconds_per_day <= 0:
            raise ValueError(f"seconds_per_day must be positive, got {self.seconds_per_day}")
        if self.min_duration_days < 1:
            raise ValueError(f"min_duration_days must be >= 1, got {self.min_duration_days}")

    def ensure_dirs(self) -> None:
        """Create data and log directories"""
        self.data_dir.mkdir(exist_ok=True, parents=True)
        if self.log_dir:
            self.log_dir.mkdir(exist_ok=True, parents=True)

    def to_dict(self) -> Dict[str, Any]:
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            data[f.name] = str(value) if isinstance(value, Path) else value
        return data


def _read_config_file(config_path: Path) -> Dict[str, Any]:
    if config_path.suffix == ".toml":
        with open(config_path, "rb") as fh:
            data = tomllib.load(fh)
        # Allow either a flat file or an [auctionhouse] table
        return data.get("auctionhouse", data)
    return json.loads(config_path.read_text())


def _read_env() -> Dict[str, Any]:
    values = {}
    for f in fields(HouseConfig):
        raw = os.environ.get(ENV_PREFIX + f.name.upper())
        if raw is not None:
            values[f.name] = raw
    return values


def load_config(
    config_path: Optional[str] = None,
    env_file: Optional[str] = None,
) -> HouseConfig:
    """
    Load configuration from file and environment, or use defaults.

    Args:
        config_path: Optional path to a JSON or TOML config file
        env_file: Optional .env file; by default python-dotenv searches
            the working directory

    Returns:
        HouseConfig instance
    """
    values: Dict[str, Any] = {}

    if config_path:
        path = Path(config_path).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        values.update(_read_config_file(path))

    load_dotenv(dotenv_path=env_file, override=False)
    values.update(_read_env())

    known = {f.name for f in fields(HouseConfig)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown))}")

    return HouseConfig(**values)

