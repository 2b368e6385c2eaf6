"""
BidLedger - bid acceptance, retraction and collateral bookkeeping.

Every placement runs as one IMMEDIATE transaction, so two concurrent
bids on the same auction can never both pass the minimum-bid check
against the same stale highest bid.

Preconditions are checked in a fixed order and the first failure wins:
    1. auction exists
    2. auction is current
    3. bidder exists
    4. bidder is not restricted
    5. bidder is not the creator
    6. amount >= minimum next bid
    7. amount <= available balance
    8. available balance covers this bid plus top-set bids elsewhere
"""

from typing import List, Optional

from gavel.core.config import MarketConfig, config
from gavel.core.errors import (
    ForbiddenError,
    InvalidStateError,
    MarketError,
    NotFoundError,
)
from gavel.core.ledger.ranking import minimum_next_bid, rank_bids, recompute_top_set
from gavel.core.models import Auction, Bid, LifecycleStatus, ModerationStatus, new_id
from gavel.core.notifications import OUTBID, NotificationSink, Outbox
from gavel.core.storage import StorageManager
from gavel.oracle import BalanceOracle
from gavel.utils.logger import get_logger
from gavel.utils.validation import validate_amount

logger = get_logger("ledger")


class BidLedger:
    def __init__(
        self,
        storage: StorageManager,
        oracle: BalanceOracle,
        cfg: Optional[MarketConfig] = None,
        notifier: Optional[NotificationSink] = None,
    ):
        self.storage = storage
        self.oracle = oracle
        self.config = cfg or config
        self.notifier = notifier

    # =========================================================================
    # Queries
    # =========================================================================

    def ranked_bids(self, auction_id: str) -> List[Bid]:
        return rank_bids(self.storage.bids_for_auction(auction_id))

    def highest_bid(self, auction_id: str) -> Optional[Bid]:
        ranked = self.ranked_bids(auction_id)
        return ranked[0] if ranked else None

    def minimum_bid(self, auction: Auction) -> int:
        highest = self.highest_bid(auction.auction_id)
        return minimum_next_bid(
            auction.reserve_price,
            auction.min_bid_increment,
            highest.amount if highest else None,
        )

    def committed_elsewhere(self, bidder_id: str, auction_id: str) -> int:
        return self.storage.committed_elsewhere(bidder_id, auction_id)

    # =========================================================================
    # Mutations
    # =========================================================================

    def place_bid(self, auction_id: str, bidder_id: str, amount: int, now: int) -> Bid:
        """
        Validate and record a bid.

        Args:
            auction_id: Auction to bid on
            bidder_id: Bidding account
            amount: Bid in smallest currency units
            now: Current unix time

        Returns:
            The stored bid with its top-set flag

        Raises:
            MarketError: The first failed precondition
        """
        outbox = Outbox()
        try:
            with self.storage.atomic():
                auction = self.storage.get_auction(auction_id)
                if auction is None:
                    raise NotFoundError("Auction")
                if auction.status != LifecycleStatus.CURRENT or now >= auction.end_time:
                    raise InvalidStateError("Auction is not active")
                if (
                    self.config.block_bids_when_removed
                    and auction.moderation_status == ModerationStatus.REMOVED
                ):
                    raise InvalidStateError("Auction has been removed by moderators")

                bidder = self.storage.get_account(bidder_id)
                if bidder is None:
                    raise NotFoundError("Account")
                if bidder.is_restricted:
                    raise ForbiddenError("Account is restricted from bidding")
                if bidder_id == auction.creator_id:
                    raise InvalidStateError("Cannot bid on your own auction")

                ok, message = validate_amount(amount)
                if not ok:
                    raise InvalidStateError("Invalid bid amount", [("amount", message)])

                ranked = self.ranked_bids(auction_id)
                previous = ranked[0] if ranked else None
                minimum = minimum_next_bid(
                    auction.reserve_price,
                    auction.min_bid_increment,
                    previous.amount if previous else None,
                )
                if amount < minimum:
                    raise InvalidStateError(
                        f"Bid must be at least {minimum}",
                        [("amount", f"minimum bid is {minimum}")],
                    )

                available = self.oracle.get_available_balance(bidder_id)
                if amount > available:
                    raise InvalidStateError("Insufficient balance")

                committed = self.storage.committed_elsewhere(bidder_id, auction_id)
                if available < amount + committed:
                    raise InvalidStateError(
                        "Insufficient balance; funds committed to other auctions",
                        [("amount", f"{committed} already committed to top bids elsewhere")],
                    )

                bid = self.storage.insert_bid(Bid(
                    bid_id=new_id(),
                    auction_id=auction_id,
                    bidder_id=bidder_id,
                    amount=amount,
                    collateral_locked=amount,
                    created_at=now,
                ))
                self._refresh_top_set(auction_id, now)
                bid = self.storage.get_bid(bid.bid_id)

                if previous is not None and previous.bidder_id != bidder_id:
                    outbox.add(
                        previous.bidder_id,
                        OUTBID,
                        auction_id=auction_id,
                        auction_title=auction.title,
                        new_amount=amount,
                    )
        except MarketError as e:
            logger.debug(f"Bid rejected on {auction_id}: {e.message}")
            raise

        outbox.flush(self.notifier, now)
        logger.info(f"Bid {bid.bid_id} accepted: {amount} on {auction_id} by {bidder_id[:16]}...")
        return bid

    def retract_bid(self, bid_id: str, requester_id: str, now: int) -> Bid:
        """Withdraw a non-leading bid while its auction is still open."""
        try:
            with self.storage.atomic():
                bid = self.storage.get_bid(bid_id)
                if bid is None:
                    raise NotFoundError("Bid")
                if bid.bidder_id != requester_id:
                    raise ForbiddenError("Only the bidder can retract this bid")

                auction = self.storage.get_auction(bid.auction_id)
                if auction.status.has_ended or now >= auction.end_time:
                    raise InvalidStateError("Auction has ended")

                ranked = self.ranked_bids(bid.auction_id)
                if ranked and ranked[0].bid_id == bid.bid_id:
                    raise InvalidStateError("Cannot retract winning bid")

                self.storage.delete_bid(bid_id)
                self._refresh_top_set(bid.auction_id, now)
        except MarketError as e:
            logger.debug(f"Retraction of {bid_id} rejected: {e.message}")
            raise

        logger.info(f"Bid {bid_id} retracted from {bid.auction_id}")
        return bid

    def _refresh_top_set(self, auction_id: str, now: int) -> None:
        ranked = self.ranked_bids(auction_id)
        for bid in recompute_top_set(ranked, self.config.top_bid_slots, now):
            self.storage.update_bid_flags(bid)
