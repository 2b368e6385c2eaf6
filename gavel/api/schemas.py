"""
Request schemas.

Shape and type checks only; business rules (minimum bid, schedules,
ownership) live in the core components.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from gavel.core.errors import InvalidStateError
from gavel.utils.validation import (
    MAX_DISPLAY_NAME,
    MAX_REPORT_DESCRIPTION,
    validate_account_id,
)

SortOrder = Literal["newest", "ending_soon", "price_low", "price_high", "most_bids"]
Category = Literal["nsfw", "scam", "stolen", "harassment"]


class SignInBody(BaseModel):
    account_id: str
    signature: str = Field(min_length=1)
    message: str = Field(min_length=1)

    @field_validator("account_id")
    @classmethod
    def _validate_account_id(cls, value: str) -> str:
        ok, message = validate_account_id(value)
        if not ok:
            raise ValueError(message)
        return value


class CreateAuctionBody(BaseModel):
    title: str
    description: str
    image_ref: str = Field(min_length=1)
    tags: List[str] = Field(default_factory=list)
    reserve_price: int = Field(ge=0)
    min_bid_increment: int = Field(gt=0)
    start_time: int
    end_time: int


class PlaceBidBody(BaseModel):
    amount: int = Field(gt=0)


class VerifyPaymentBody(BaseModel):
    tx_signature: str = Field(min_length=1, max_length=256)


class ReportBody(BaseModel):
    auction_id: str = Field(min_length=1)
    category: Category
    description: str = Field(default="", max_length=MAX_REPORT_DESCRIPTION)


class ActionReportBody(BaseModel):
    outcome: Literal["dismissed", "actioned"]
    remove_auction: bool = False
    strike_creator: bool = False


class UserActionBody(BaseModel):
    action: Literal["strike", "restrict", "unrestrict", "clear_strikes"]


class ModerationBody(BaseModel):
    status: Literal["pending", "approved", "flagged", "removed"]


class ProfileBody(BaseModel):
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=MAX_DISPLAY_NAME)


class ListAuctionsQuery(BaseModel):
    status: Optional[str] = None
    tags: Optional[str] = None  # comma-separated
    q: Optional[str] = None
    min_price: Optional[int] = Field(default=None, ge=0)
    max_price: Optional[int] = Field(default=None, ge=0)
    sort: SortOrder = "newest"
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)

    def tag_list(self) -> List[str]:
        if not self.tags:
            return []
        return [t.strip().lower() for t in self.tags.split(",") if t.strip()]


class TagsQuery(BaseModel):
    limit: int = Field(default=20, ge=1, le=100)


class NotificationsQuery(BaseModel):
    unread_only: bool = False
    limit: int = Field(default=50, ge=1, le=100)
    offset: int = Field(default=0, ge=0)


class MarkReadBody(BaseModel):
    notification_ids: Optional[List[str]] = None


def validation_error(exc: ValidationError) -> InvalidStateError:
    """Convert a pydantic error into one field reason per failing field."""
    reasons = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        reasons.append((location or "body", error.get("msg", "invalid value")))
    return InvalidStateError("Invalid request", reasons)
