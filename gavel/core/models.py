"""
Domain model for the Gavel marketplace.

Accounts, auctions, bids, settlements, reports and notifications as
plain dataclasses, with row mapping for the SQLite store.

Status enums are closed sets; operations guard on them explicitly
rather than comparing free-form strings.
"""

import json
import uuid
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional


def new_id() -> str:
    """Generate a fresh entity identifier."""
    return uuid.uuid4().hex


# =============================================================================
# Enums
# =============================================================================


class LabeledEnum(IntEnum):
    """IntEnum stored as an integer and exposed as a lowercase label."""

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def from_label(cls, label: str):
        try:
            return cls[label.upper()]
        except KeyError:
            raise ValueError(f"Unknown {cls.__name__}: {label!r}") from None

    @classmethod
    def labels(cls) -> List[str]:
        return [member.label for member in cls]


class LifecycleStatus(LabeledEnum):
    """Auction lifecycle state."""
    UPCOMING = 0     # Scheduled, not yet open
    CURRENT = 1      # Accepting bids
    PAST = 2         # Ended with no bids (terminal)
    SETTLING = 3     # Winner declared, payment window open
    COMPLETED = 4    # Paid (terminal)
    FAILED = 5       # Cascade exhausted (terminal)

    @property
    def has_ended(self) -> bool:
        return self in (
            LifecycleStatus.PAST,
            LifecycleStatus.SETTLING,
            LifecycleStatus.COMPLETED,
            LifecycleStatus.FAILED,
        )

    @property
    def is_terminal(self) -> bool:
        return self in (LifecycleStatus.PAST, LifecycleStatus.COMPLETED, LifecycleStatus.FAILED)


class ModerationStatus(LabeledEnum):
    """Listing visibility, managed by moderators."""
    PENDING = 0
    APPROVED = 1
    FLAGGED = 2
    REMOVED = 3

    @property
    def is_listed(self) -> bool:
        return self in (ModerationStatus.PENDING, ModerationStatus.APPROVED)


class SettlementStatus(LabeledEnum):
    """Status of one payment window in a cascade chain."""
    PENDING = 0
    PAID = 1
    FAILED = 2


class ReportCategory(LabeledEnum):
    NSFW = 0
    SCAM = 1
    STOLEN = 2
    HARASSMENT = 3


class ReportOutcome(LabeledEnum):
    PENDING = 0
    DISMISSED = 1
    ACTIONED = 2


# =============================================================================
# Entities
# =============================================================================


@dataclass
class Account:
    """
    A marketplace participant, identified by its public key.

    Attributes:
        account_id: Hex-encoded public key
        display_name: Optional user-chosen name
        strike_count: Moderation strikes received
        is_restricted: Barred from bidding and creating auctions
        credits: Gamification reward counter
        created_at: First authentication time
    """
    account_id: str
    display_name: Optional[str] = None
    strike_count: int = 0
    is_restricted: bool = False
    credits: int = 0
    created_at: int = 0

    @classmethod
    def from_row(cls, row) -> "Account":
        return cls(
            account_id=row["account_id"],
            display_name=row["display_name"],
            strike_count=row["strike_count"],
            is_restricted=bool(row["is_restricted"]),
            credits=row["credits"],
            created_at=row["created_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id,
            "display_name": self.display_name,
            "strike_count": self.strike_count,
            "is_restricted": self.is_restricted,
            "credits": self.credits,
            "created_at": self.created_at,
        }


@dataclass
class Auction:
    """
    A timed auction for a single artwork.

    Amounts are integers in the smallest currency unit; times are unix
    seconds. winning_bid is fixed when a settlement is offered, and
    follows the cascade to whichever bidder currently owes payment.
    """
    auction_id: str
    creator_id: str
    title: str
    description: str
    image_ref: str
    reserve_price: int
    min_bid_increment: int
    start_time: int
    end_time: int
    tags: List[str] = field(default_factory=list)
    status: LifecycleStatus = LifecycleStatus.UPCOMING
    moderation_status: ModerationStatus = ModerationStatus.PENDING
    winner_id: Optional[str] = None
    winning_bid: Optional[int] = None
    created_at: int = 0

    @classmethod
    def from_row(cls, row) -> "Auction":
        return cls(
            auction_id=row["auction_id"],
            creator_id=row["creator_id"],
            title=row["title"],
            description=row["description"],
            image_ref=row["image_ref"],
            reserve_price=row["reserve_price"],
            min_bid_increment=row["min_bid_increment"],
            start_time=row["start_time"],
            end_time=row["end_time"],
            tags=json.loads(row["tags"] or "[]"),
            status=LifecycleStatus(row["status"]),
            moderation_status=ModerationStatus(row["moderation_status"]),
            winner_id=row["winner_id"],
            winning_bid=row["winning_bid"],
            created_at=row["created_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "auction_id": self.auction_id,
            "creator_id": self.creator_id,
            "title": self.title,
            "description": self.description,
            "image_ref": self.image_ref,
            "tags": list(self.tags),
            "reserve_price": self.reserve_price,
            "min_bid_increment": self.min_bid_increment,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "status": self.status.label,
            "moderation_status": self.moderation_status.label,
            "winner_id": self.winner_id,
            "winning_bid": self.winning_bid,
            "created_at": self.created_at,
        }


@dataclass
class Bid:
    """
    A bid on an auction.

    seq is the storage insertion order and breaks ranking ties: the
    earlier bid wins. outbid_at records the first time the bid dropped
    out of the top set and is never cleared.
    """
    bid_id: str
    auction_id: str
    bidder_id: str
    amount: int
    collateral_locked: int
    is_top: bool = False
    outbid_at: Optional[int] = None
    created_at: int = 0
    seq: int = 0

    @classmethod
    def from_row(cls, row) -> "Bid":
        return cls(
            bid_id=row["bid_id"],
            auction_id=row["auction_id"],
            bidder_id=row["bidder_id"],
            amount=row["amount"],
            collateral_locked=row["collateral_locked"],
            is_top=bool(row["is_top"]),
            outbid_at=row["outbid_at"],
            created_at=row["created_at"],
            seq=row["seq"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bid_id": self.bid_id,
            "auction_id": self.auction_id,
            "bidder_id": self.bidder_id,
            "amount": self.amount,
            "collateral_locked": self.collateral_locked,
            "is_top_3": self.is_top,
            "outbid_at": self.outbid_at,
            "created_at": self.created_at,
        }


@dataclass
class Settlement:
    """
    One payment window in an auction's cascade chain.

    Position 1 belongs to the original highest bidder; each cascade
    step appends position + 1 for the next bidder.
    """
    settlement_id: str
    auction_id: str
    winner_id: str
    payment_deadline: int
    status: SettlementStatus = SettlementStatus.PENDING
    cascade_position: int = 1
    original_winner_id: Optional[str] = None
    cascade_reason: Optional[str] = None
    payment_tx_signature: Optional[str] = None
    created_at: int = 0

    @classmethod
    def from_row(cls, row) -> "Settlement":
        return cls(
            settlement_id=row["settlement_id"],
            auction_id=row["auction_id"],
            winner_id=row["winner_id"],
            payment_deadline=row["payment_deadline"],
            status=SettlementStatus(row["status"]),
            cascade_position=row["cascade_position"],
            original_winner_id=row["original_winner_id"],
            cascade_reason=row["cascade_reason"],
            payment_tx_signature=row["payment_tx_signature"],
            created_at=row["created_at"],
        )

    def is_expired(self, now: int) -> bool:
        return self.status == SettlementStatus.PENDING and self.payment_deadline < now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "settlement_id": self.settlement_id,
            "auction_id": self.auction_id,
            "winner_id": self.winner_id,
            "payment_deadline": self.payment_deadline,
            "status": self.status.label,
            "cascade_position": self.cascade_position,
            "original_winner_id": self.original_winner_id,
            "cascade_reason": self.cascade_reason,
            "payment_tx_signature": self.payment_tx_signature,
            "created_at": self.created_at,
        }


@dataclass
class Report:
    """A user report against an auction."""
    report_id: str
    reporter_id: str
    auction_id: str
    category: ReportCategory
    description: str = ""
    outcome: ReportOutcome = ReportOutcome.PENDING
    created_at: int = 0

    @classmethod
    def from_row(cls, row) -> "Report":
        return cls(
            report_id=row["report_id"],
            reporter_id=row["reporter_id"],
            auction_id=row["auction_id"],
            category=ReportCategory(row["category"]),
            description=row["description"],
            outcome=ReportOutcome(row["outcome"]),
            created_at=row["created_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report_id": self.report_id,
            "reporter_id": self.reporter_id,
            "auction_id": self.auction_id,
            "category": self.category.label,
            "description": self.description,
            "outcome": self.outcome.label,
            "created_at": self.created_at,
        }


@dataclass
class Notification:
    """An inbox entry for an account."""
    notification_id: str
    account_id: str
    kind: str
    payload: Dict[str, Any] = field(default_factory=dict)
    is_read: bool = False
    created_at: int = 0

    @classmethod
    def from_row(cls, row) -> "Notification":
        return cls(
            notification_id=row["notification_id"],
            account_id=row["account_id"],
            kind=row["kind"],
            payload=json.loads(row["payload"] or "{}"),
            is_read=bool(row["is_read"]),
            created_at=row["created_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "notification_id": self.notification_id,
            "account_id": self.account_id,
            "kind": self.kind,
            "payload": dict(self.payload),
            "is_read": self.is_read,
            "created_at": self.created_at,
        }
