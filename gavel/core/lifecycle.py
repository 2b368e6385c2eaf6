"""
AuctionLifecycle - the time-driven auction state machine.

    upcoming --start--> current --end--> settling --paid--> completed
                                   |            +--exhausted--> failed
                                   +--no bids--> past

tick(now) is driven by an external scheduler. It reads no clock of its
own and guards every transition on the stored status, so overlapping
or repeated ticks with the same `now` leave the store unchanged.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from gavel.core.config import MarketConfig, config
from gavel.core.errors import ForbiddenError, InvalidStateError, NotFoundError
from gavel.core.ledger import BidLedger
from gavel.core.models import Auction, LifecycleStatus, ModerationStatus, new_id
from gavel.core.notifications import AUCTION_WON, NotificationSink, Outbox
from gavel.core.settlement import SettlementCascade
from gavel.core.storage import StorageManager
from gavel.utils.logger import get_logger
from gavel.utils.validation import (
    MAX_DESCRIPTION_LENGTH,
    MAX_TITLE_LENGTH,
    MIN_DESCRIPTION_LENGTH,
    MIN_TITLE_LENGTH,
    collect,
    normalize_tags,
    validate_integer,
    validate_schedule,
    validate_string,
    validate_tags,
)

logger = get_logger("lifecycle")

SORT_ORDERS = {
    "newest": "created_at DESC, auction_id",
    "ending_soon": "end_time ASC, auction_id",
    "price_low": "reserve_price ASC, created_at DESC",
    "price_high": "reserve_price DESC, created_at DESC",
    "most_bids": "(SELECT COUNT(*) FROM bids b WHERE b.auction_id = auctions.auction_id) DESC, created_at DESC",
}

ACTIVE = "active"


@dataclass
class Transition:
    """One status change applied by a tick."""
    auction_id: str
    from_status: LifecycleStatus
    to_status: LifecycleStatus
    winner_id: Optional[str] = None
    settlement_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "auction_id": self.auction_id,
            "from": self.from_status.label,
            "to": self.to_status.label,
            "winner_id": self.winner_id,
            "settlement_id": self.settlement_id,
        }


class AuctionLifecycle:
    def __init__(
        self,
        storage: StorageManager,
        ledger: BidLedger,
        cascade: SettlementCascade,
        cfg: Optional[MarketConfig] = None,
        notifier: Optional[NotificationSink] = None,
    ):
        self.storage = storage
        self.ledger = ledger
        self.cascade = cascade
        self.config = cfg or config
        self.notifier = notifier

    # =========================================================================
    # Creation
    # =========================================================================

    def create_auction(
        self,
        creator_id: str,
        title: str,
        description: str,
        image_ref: str,
        tags: Sequence[str],
        reserve_price: int,
        min_bid_increment: int,
        start_time: int,
        end_time: int,
        now: int,
    ) -> Auction:
        """
        Create an upcoming auction.

        All field violations are reported together in one
        InvalidStateError. The creator earns the creation reward.
        """
        problems = collect(
            ("title", validate_string(title, "title", MIN_TITLE_LENGTH, MAX_TITLE_LENGTH)),
            ("description", validate_string(
                description, "description", MIN_DESCRIPTION_LENGTH, MAX_DESCRIPTION_LENGTH)),
            ("image_ref", validate_string(image_ref, "image_ref", 1, 2048)),
            ("tags", validate_tags(tags)),
            ("reserve_price", validate_integer(reserve_price, "reserve_price")),
            ("min_bid_increment", validate_integer(min_bid_increment, "min_bid_increment", 1)),
        )
        schedule_ok = all(
            validate_integer(t, name)[0] for name, t in (("start_time", start_time), ("end_time", end_time))
        )
        if schedule_ok:
            problems += validate_schedule(start_time, end_time, now, self.config.min_auction_duration)
        else:
            problems.append(("start_time", "start_time and end_time must be unix timestamps"))
        if problems:
            raise InvalidStateError("Invalid auction", problems)

        with self.storage.atomic():
            creator = self.storage.get_account(creator_id)
            if creator is None:
                raise NotFoundError("Account")
            if creator.is_restricted:
                raise ForbiddenError("Account is restricted from creating auctions")

            auction = Auction(
                auction_id=new_id(),
                creator_id=creator_id,
                title=title.strip(),
                description=description.strip(),
                image_ref=image_ref.strip(),
                reserve_price=reserve_price,
                min_bid_increment=min_bid_increment,
                start_time=start_time,
                end_time=end_time,
                tags=normalize_tags(list(tags)),
                created_at=now,
            )
            self.storage.insert_auction(auction)
            self.storage.add_credits(creator_id, self.config.auction_created_reward)

        logger.info(f"Auction {auction.auction_id} created by {creator_id[:16]}...")
        return auction

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, auction_id: str) -> Auction:
        auction = self.storage.get_auction(auction_id)
        if auction is None:
            raise NotFoundError("Auction")
        return auction

    def get_auction(self, auction_id: str) -> dict:
        """Auction detail with ranked bids, highest bid and minimum next bid."""
        auction = self.get(auction_id)
        ranked = self.ledger.ranked_bids(auction_id)
        body = auction.to_dict()
        body["bids"] = [b.to_dict() for b in ranked]
        body["highest_bid"] = ranked[0].amount if ranked else None
        body["bids_count"] = len(ranked)
        body["minimum_bid"] = self.ledger.minimum_bid(auction)
        return body

    def list_auctions(
        self,
        status: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        query: Optional[str] = None,
        min_price: Optional[int] = None,
        max_price: Optional[int] = None,
        sort: str = "newest",
        limit: int = 20,
        offset: int = 0,
    ) -> List[dict]:
        """
        Listed auctions (moderation pending or approved) matching filters.

        status is a lifecycle label or "active" (upcoming and current).
        Price filters apply to the reserve price. ending_soon only lists
        current auctions.
        """
        if sort not in SORT_ORDERS:
            raise InvalidStateError("Invalid sort", [("sort", f"must be one of {', '.join(SORT_ORDERS)}")])

        listed = [int(s) for s in ModerationStatus if s.is_listed]
        where = [f"moderation_status IN ({','.join('?' for _ in listed)})"]
        params: list = list(listed)

        if status == ACTIVE:
            where.append("status IN (?, ?)")
            params += [int(LifecycleStatus.UPCOMING), int(LifecycleStatus.CURRENT)]
        elif status:
            try:
                where.append("status = ?")
                params.append(int(LifecycleStatus.from_label(status)))
            except ValueError:
                raise InvalidStateError("Invalid status", [("status", f"unknown status {status!r}")]) from None

        if sort == "ending_soon":
            where.append("status = ?")
            params.append(int(LifecycleStatus.CURRENT))

        for tag in normalize_tags(list(tags or [])):
            where.append("EXISTS (SELECT 1 FROM json_each(auctions.tags) WHERE json_each.value = ?)")
            params.append(tag)

        for term in (query or "").split():
            where.append("(title LIKE ? OR description LIKE ?)")
            params += [f"%{term}%", f"%{term}%"]

        if min_price is not None:
            where.append("reserve_price >= ?")
            params.append(min_price)
        if max_price is not None:
            where.append("reserve_price <= ?")
            params.append(max_price)

        auctions = self.storage.list_auctions(where, params, SORT_ORDERS[sort], limit, offset)
        counts = self.storage.bid_counts([a.auction_id for a in auctions])

        results = []
        for auction in auctions:
            count, top = counts.get(auction.auction_id, (0, None))
            body = auction.to_dict()
            body["highest_bid"] = top
            body["bids_count"] = count
            results.append(body)
        return results

    def popular_tags(self, limit: int = 20) -> List[dict]:
        """Tags of listed auctions, most used first (ties alphabetical)."""
        listed = [int(s) for s in ModerationStatus if s.is_listed]
        return [{"tag": tag, "count": count} for tag, count in self.storage.tag_counts(listed, limit)]

    # =========================================================================
    # Tick
    # =========================================================================

    def tick(self, now: int) -> List[Transition]:
        """
        Apply every time-driven transition due at `now`.

        Upcoming auctions whose start has passed open; current auctions
        whose end has passed either move to settling with the highest
        bidder as winner (opening the first payment window) or, with no
        bids, to past. An auction can pass through both in one tick.
        """
        transitions: List[Transition] = []
        outbox = Outbox()

        with self.storage.atomic():
            for auction in self.storage.auctions_due_to_start(now):
                auction.status = LifecycleStatus.CURRENT
                self.storage.update_auction_state(auction)
                transitions.append(Transition(
                    auction.auction_id, LifecycleStatus.UPCOMING, LifecycleStatus.CURRENT
                ))

            for auction in self.storage.auctions_due_to_end(now):
                transitions.append(self._close(auction, now, outbox))

        outbox.flush(self.notifier, now)
        for t in transitions:
            logger.info(f"Auction {t.auction_id}: {t.from_status.label} -> {t.to_status.label}")
        return transitions

    def _close(self, auction: Auction, now: int, outbox: Outbox) -> Transition:
        winning = self.ledger.highest_bid(auction.auction_id)
        if winning is None:
            auction.status = LifecycleStatus.PAST
            self.storage.update_auction_state(auction)
            return Transition(auction.auction_id, LifecycleStatus.CURRENT, LifecycleStatus.PAST)

        auction.status = LifecycleStatus.SETTLING
        auction.winner_id = winning.bidder_id
        auction.winning_bid = winning.amount
        self.storage.update_auction_state(auction)

        settlement = self.cascade.open(auction.auction_id, winning.bidder_id, now)
        outbox.add(
            winning.bidder_id,
            AUCTION_WON,
            auction_id=auction.auction_id,
            auction_title=auction.title,
            amount=winning.amount,
            settlement_id=settlement.settlement_id,
            payment_deadline=settlement.payment_deadline,
        )
        return Transition(
            auction.auction_id,
            LifecycleStatus.CURRENT,
            LifecycleStatus.SETTLING,
            winner_id=winning.bidder_id,
            settlement_id=settlement.settlement_id,
        )
