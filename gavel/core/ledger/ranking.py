"""
Bid ranking rules.

Pure functions over lists of bids. Ranking is amount descending with
acceptance order (storage sequence) breaking ties, so the earlier of two
equal bids always ranks higher.
"""

from typing import Iterable, List, Optional, Set

from gavel.core.models import Bid


def rank_bids(bids: Iterable[Bid]) -> List[Bid]:
    return sorted(bids, key=lambda b: (-b.amount, b.seq))


def minimum_next_bid(reserve_price: int, min_increment: int, highest: Optional[int]) -> int:
    """
    Smallest acceptable amount for the next bid.

    The first bid must clear reserve + increment; later bids must clear
    the current highest + increment.
    """
    floor = highest if highest is not None else reserve_price
    return floor + min_increment


def recompute_top_set(ranked: List[Bid], slots: int, now: int) -> List[Bid]:
    """
    Refresh is_top flags on an already-ranked list.

    A bid leaving the top set gets outbid_at = now unless it already has
    one. outbid_at is historical and is never cleared, even when a
    retraction lets the bid back in.

    Returns:
        The bids whose flags changed
    """
    changed = []
    for index, bid in enumerate(ranked):
        in_top = index < slots
        if bid.is_top == in_top:
            continue
        if bid.is_top and bid.outbid_at is None:
            bid.outbid_at = now
        bid.is_top = in_top
        changed.append(bid)
    return changed


def next_unoffered_bid(ranked: List[Bid], offered: Set[str]) -> Optional[Bid]:
    """Highest bid from a bidder who has not been offered the auction yet."""
    for bid in ranked:
        if bid.bidder_id not in offered:
            return bid
    return None
