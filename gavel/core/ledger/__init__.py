"""Bid ledger: acceptance, ranking and top-set collateral flags."""

from gavel.core.ledger.bid_ledger import BidLedger
from gavel.core.ledger.ranking import (
    minimum_next_bid,
    next_unoffered_bid,
    rank_bids,
    recompute_top_set,
)

__all__ = [
    "BidLedger",
    "minimum_next_bid",
    "next_unoffered_bid",
    "rank_bids",
    "recompute_top_set",
]
