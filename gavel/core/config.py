"""
Marketplace configuration parameters for Gavel.

Defines settlement timing, ranking, moderation and reward constants.
Values can be overridden from a .env file or GAVEL_* environment variables.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


# Smallest currency units per whole coin
UNITS_PER_COIN = 1_000_000_000


@dataclass
class MarketConfig:
    """Marketplace-wide configuration parameters"""

    # Settlement
    settlement_window: int = 30 * 60  # Seconds a winner has to pay
    payment_tolerance: int = UNITS_PER_COIN // 100  # 0.01 coin of network fee noise

    # Bidding
    top_bid_slots: int = 3  # Bids holding a collateral lock per auction
    block_bids_when_removed: bool = False  # Reject bids on moderation-removed auctions

    # Auctions
    min_auction_duration: int = 60 * 60  # Seconds

    # Moderation
    strike_limit: int = 3  # Strikes before automatic restriction
    report_flag_threshold: int = 3  # Pending reports before auto-flag

    # Rewards (credits)
    auction_created_reward: int = 10
    winner_paid_reward: int = 20
    creator_sale_reward: int = 30

    # External collaborators
    oracle_timeout: float = 10.0  # Seconds
    auth_freshness_window: int = 5 * 60  # Max challenge timestamp skew in seconds
    session_ttl: int = 60 * 60  # Seconds
    oracle_url: Optional[str] = None

    # Operator secrets
    cron_secret: Optional[str] = None
    admin_token: Optional[str] = None

    # Paths
    data_dir: Path = Path("data")
    log_dir: Path = Path("logs")

    def __post_init__(self):
        """Validate limits"""
        for name in (
            "settlement_window",
            "top_bid_slots",
            "min_auction_duration",
            "strike_limit",
            "report_flag_threshold",
            "session_ttl",
            "auth_freshness_window",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.oracle_timeout <= 0:
            raise ValueError(f"oracle_timeout must be positive, got {self.oracle_timeout}")
        if self.payment_tolerance < 0:
            raise ValueError(f"payment_tolerance cannot be negative, got {self.payment_tolerance}")
        self.data_dir = Path(self.data_dir)
        self.log_dir = Path(self.log_dir)


# Global config instance (can be overridden)
config = MarketConfig()


def _coerce(raw: str, current):
    if isinstance(current, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    if isinstance(current, Path):
        return Path(raw).expanduser()
    return raw


def load_config(env_file: Optional[str] = None) -> MarketConfig:
    """
    Load configuration from environment.

    Reads an optional .env file first, then any GAVEL_<FIELD> variable,
    e.g. GAVEL_SETTLEMENT_WINDOW=600.

    Args:
        env_file: Optional path to a .env file

    Returns:
        MarketConfig instance
    """
    load_dotenv(env_file)

    defaults = MarketConfig()
    overrides = {}
    for f in fields(MarketConfig):
        raw = os.environ.get(f"GAVEL_{f.name.upper()}")
        if raw is None:
            continue
        overrides[f.name] = _coerce(raw, getattr(defaults, f.name))

    return MarketConfig(**overrides)
