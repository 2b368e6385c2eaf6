"""
Balance oracle implementations.

Provides:
- BalanceOracle: the contract the core consumes
- BoundedOracle: per-call deadline wrapper
- InMemoryBalanceOracle: dictionaries, for tests and demos
- HttpBalanceOracle: REST ledger client (httpx)
"""

from gavel.core.config import MarketConfig
from gavel.oracle.base import (
    BalanceOracle,
    BoundedOracle,
    Transfer,
    TransferVerification,
    transfer_matches,
)
from gavel.oracle.http import HttpBalanceOracle
from gavel.oracle.memory import InMemoryBalanceOracle
from gavel.utils.logger import get_logger

logger = get_logger("oracle")


def create_oracle(cfg: MarketConfig) -> BoundedOracle:
    """Build the configured oracle, falling back to an empty in-memory one."""
    if cfg.oracle_url:
        inner = HttpBalanceOracle(cfg.oracle_url, timeout=cfg.oracle_timeout)
    else:
        logger.warning("No oracle URL configured; using in-memory balances")
        inner = InMemoryBalanceOracle()
    return BoundedOracle(inner, timeout=cfg.oracle_timeout)


__all__ = [
    "BalanceOracle",
    "BoundedOracle",
    "Transfer",
    "TransferVerification",
    "transfer_matches",
    "HttpBalanceOracle",
    "InMemoryBalanceOracle",
    "create_oracle",
]
