"""
MarketService - request/response facade over the core components.

Every public method takes plain values (a bearer token, path ids, a
request body dict) and returns a Response with an HTTP-style status and
a JSON-ready body. MarketErrors become their mapped status with a safe
message; anything unexpected is logged and reported as a bare internal
error so no stack trace or database detail reaches callers.
"""

import functools
import hmac
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from gavel.api.schemas import (
    ActionReportBody,
    CreateAuctionBody,
    ListAuctionsQuery,
    MarkReadBody,
    ModerationBody,
    NotificationsQuery,
    PlaceBidBody,
    ProfileBody,
    ReportBody,
    SignInBody,
    TagsQuery,
    UserActionBody,
    VerifyPaymentBody,
    validation_error,
)
from gavel.auth import AuthGate, SessionStore
from gavel.core.accounts import AccountRegistry
from gavel.core.config import MarketConfig, config
from gavel.core.errors import InternalError, MarketError, UnauthenticatedError
from gavel.core.ledger import BidLedger
from gavel.core.lifecycle import AuctionLifecycle
from gavel.core.models import ModerationStatus, ReportCategory, ReportOutcome
from gavel.core.moderation import ModerationPolicy
from gavel.core.notifications import Notifier
from gavel.core.settlement import SettlementCascade
from gavel.core.storage import StorageManager
from gavel.oracle import BalanceOracle
from gavel.utils.logger import get_logger

logger = get_logger("api")


@dataclass
class Response:
    status: int
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def endpoint(success_status: int = 200) -> Callable:
    """Map a handler's return value or raised error to a Response."""
    def decorator(fn: Callable[..., Dict[str, Any]]) -> Callable[..., Response]:
        @functools.wraps(fn)
        def wrapper(self, *args, **kwargs) -> Response:
            try:
                return Response(success_status, fn(self, *args, **kwargs))
            except ValidationError as e:
                error = validation_error(e)
            except MarketError as e:
                error = e
            except Exception:
                logger.exception(f"Unhandled error in {fn.__name__}")
                error = InternalError()
            return Response(error.status, error.to_dict())
        return wrapper
    return decorator


class MarketService:
    def __init__(
        self,
        storage: StorageManager,
        oracle: BalanceOracle,
        cfg: Optional[MarketConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = cfg or config
        self.storage = storage
        self.oracle = oracle
        self.clock = clock

        self.notifier = Notifier(storage)
        self.accounts = AccountRegistry(storage)
        self.moderation = ModerationPolicy(storage, self.config)
        self.ledger = BidLedger(storage, oracle, self.config, self.notifier)
        self.cascade = SettlementCascade(storage, oracle, self.moderation, self.config, self.notifier)
        self.lifecycle = AuctionLifecycle(storage, self.ledger, self.cascade, self.config, self.notifier)
        self.auth = AuthGate(self.config)
        self.sessions = SessionStore(storage, self.config)

    @classmethod
    def open(cls, data_dir: Path, oracle: BalanceOracle, cfg: Optional[MarketConfig] = None) -> "MarketService":
        return cls(StorageManager(data_dir), oracle, cfg)

    def close(self) -> None:
        close = getattr(self.oracle, "close", None)
        if close is not None:
            close()
        self.storage.close()

    def _now(self, now: Optional[int]) -> int:
        return int(self.clock()) if now is None else now

    def _require_secret(self, given: Optional[str], expected: Optional[str], what: str) -> None:
        if expected is None:
            return
        if not given or not hmac.compare_digest(given, expected):
            raise UnauthenticatedError(f"Invalid {what}")

    def _require_admin(self, token: Optional[str]) -> None:
        if self.config.admin_token is None:
            raise UnauthenticatedError("Admin access is not configured")
        self._require_secret(token, self.config.admin_token, "admin token")

    # =========================================================================
    # Authentication
    # =========================================================================

    @endpoint()
    def challenge(self, account_id: str, now: Optional[int] = None) -> dict:
        return {"message": self.auth.build_challenge(account_id, self._now(now))}

    @endpoint()
    def sign_in(self, body: dict, now: Optional[int] = None) -> dict:
        now = self._now(now)
        req = SignInBody(**body)
        self.auth.check(req.account_id, req.signature, req.message, now)
        account = self.accounts.get_or_create(req.account_id, now)
        session = self.sessions.issue(account.account_id, now)
        logger.info(f"Signed in {account.account_id[:16]}...")
        return {"user": account.to_dict(), "session": session.to_dict()}

    # =========================================================================
    # Auctions
    # =========================================================================

    @endpoint(201)
    def create_auction(self, token: Optional[str], body: dict, now: Optional[int] = None) -> dict:
        now = self._now(now)
        creator_id = self.sessions.resolve(token, now)
        req = CreateAuctionBody(**body)
        auction = self.lifecycle.create_auction(
            creator_id,
            req.title,
            req.description,
            req.image_ref,
            req.tags,
            req.reserve_price,
            req.min_bid_increment,
            req.start_time,
            req.end_time,
            now,
        )
        return {"auction": auction.to_dict()}

    @endpoint()
    def list_auctions(self, query: Optional[dict] = None, now: Optional[int] = None) -> dict:
        now = self._now(now)
        req = ListAuctionsQuery(**(query or {}))
        self.lifecycle.tick(now)
        auctions = self.lifecycle.list_auctions(
            status=req.status,
            tags=req.tag_list(),
            query=req.q,
            min_price=req.min_price,
            max_price=req.max_price,
            sort=req.sort,
            limit=req.limit,
            offset=req.offset,
        )
        return {"auctions": auctions}

    @endpoint()
    def popular_tags(self, query: Optional[dict] = None) -> dict:
        req = TagsQuery(**(query or {}))
        return {"tags": self.lifecycle.popular_tags(req.limit)}

    @endpoint()
    def get_auction(self, auction_id: str, now: Optional[int] = None) -> dict:
        self.lifecycle.tick(self._now(now))
        return {"auction": self.lifecycle.get_auction(auction_id)}

    # =========================================================================
    # Bids
    # =========================================================================

    @endpoint(201)
    def place_bid(self, token: Optional[str], auction_id: str, body: dict, now: Optional[int] = None) -> dict:
        now = self._now(now)
        bidder_id = self.sessions.resolve(token, now)
        req = PlaceBidBody(**body)
        self.lifecycle.tick(now)
        bid = self.ledger.place_bid(auction_id, bidder_id, req.amount, now)
        return {"bid": bid.to_dict()}

    @endpoint()
    def retract_bid(self, token: Optional[str], bid_id: str, now: Optional[int] = None) -> dict:
        now = self._now(now)
        requester_id = self.sessions.resolve(token, now)
        self.lifecycle.tick(now)
        bid = self.ledger.retract_bid(bid_id, requester_id, now)
        return {"retracted": bid.to_dict()}

    # =========================================================================
    # Settlements
    # =========================================================================

    @endpoint()
    def get_settlement(self, auction_id: str, now: Optional[int] = None) -> dict:
        now = self._now(now)
        self.lifecycle.tick(now)
        return {"settlement": self.cascade.get_for_auction(auction_id, now).to_dict()}

    @endpoint()
    def verify_payment(self, token: Optional[str], settlement_id: str, body: dict,
                       now: Optional[int] = None) -> dict:
        now = self._now(now)
        payer_id = self.sessions.resolve(token, now)
        req = VerifyPaymentBody(**body)
        settlement = self.cascade.verify_payment(settlement_id, payer_id, req.tx_signature, now)
        return {"settlement": settlement.to_dict()}

    # =========================================================================
    # Cron drivers
    # =========================================================================

    @endpoint()
    def run_lifecycle_tick(self, secret: Optional[str] = None, now: Optional[int] = None) -> dict:
        self._require_secret(secret, self.config.cron_secret, "cron secret")
        transitions = self.lifecycle.tick(self._now(now))
        return {"transitions": [t.to_dict() for t in transitions]}

    @endpoint()
    def run_cascade(self, secret: Optional[str] = None, now: Optional[int] = None) -> dict:
        self._require_secret(secret, self.config.cron_secret, "cron secret")
        return self.cascade.tick(self._now(now)).to_dict()

    @endpoint()
    def list_expired(self, secret: Optional[str] = None, now: Optional[int] = None) -> dict:
        self._require_secret(secret, self.config.cron_secret, "cron secret")
        expired = self.cascade.list_expired(self._now(now))
        return {"count": len(expired), "settlements": [s.to_dict() for s in expired]}

    # =========================================================================
    # Reports and notifications
    # =========================================================================

    @endpoint(201)
    def file_report(self, token: Optional[str], body: dict, now: Optional[int] = None) -> dict:
        now = self._now(now)
        reporter_id = self.sessions.resolve(token, now)
        req = ReportBody(**body)
        report = self.moderation.file_report(
            reporter_id, req.auction_id, ReportCategory.from_label(req.category), req.description, now
        )
        return {"report": report.to_dict()}

    @endpoint()
    def notifications(self, token: Optional[str], query: Optional[dict] = None,
                      now: Optional[int] = None) -> dict:
        account_id = self.sessions.resolve(token, self._now(now))
        req = NotificationsQuery(**(query or {}))
        items = self.notifier.list(account_id, req.unread_only, req.limit, req.offset)
        return {
            "notifications": [n.to_dict() for n in items],
            "unread_count": self.notifier.unread_count(account_id),
        }

    @endpoint()
    def mark_notifications_read(self, token: Optional[str], body: Optional[dict] = None,
                                now: Optional[int] = None) -> dict:
        account_id = self.sessions.resolve(token, self._now(now))
        req = MarkReadBody(**(body or {}))
        return {"updated": self.notifier.mark_read(account_id, req.notification_ids)}

    # =========================================================================
    # Profiles
    # =========================================================================

    @endpoint()
    def profile(self, account_id: str) -> dict:
        return {"user": self.accounts.profile(account_id)}

    @endpoint()
    def update_profile(self, token: Optional[str], account_id: str, body: dict,
                       now: Optional[int] = None) -> dict:
        requester_id = self.sessions.resolve(token, self._now(now))
        req = ProfileBody(**body)
        account = self.accounts.update_profile(account_id, requester_id, req.display_name)
        return {"user": account.to_dict()}

    # =========================================================================
    # Moderation admin
    # =========================================================================

    @endpoint()
    def admin_list_reports(self, admin_token: Optional[str], outcome: Optional[str] = None) -> dict:
        self._require_admin(admin_token)
        selected = ReportOutcome.from_label(outcome) if outcome else None
        return {"reports": [r.to_dict() for r in self.moderation.list_reports(selected)]}

    @endpoint()
    def admin_get_report(self, admin_token: Optional[str], report_id: str) -> dict:
        self._require_admin(admin_token)
        report = self.moderation.get_report(report_id)
        body = report.to_dict()
        body["auction"] = self.lifecycle.get(report.auction_id).to_dict()
        return {"report": body}

    @endpoint()
    def admin_action_report(self, admin_token: Optional[str], report_id: str, body: dict) -> dict:
        self._require_admin(admin_token)
        req = ActionReportBody(**body)
        report = self.moderation.action_report(
            report_id,
            ReportOutcome.from_label(req.outcome),
            remove_auction=req.remove_auction,
            strike_creator=req.strike_creator,
        )
        return {"report": report.to_dict()}

    @endpoint()
    def admin_user_action(self, admin_token: Optional[str], account_id: str, body: dict) -> dict:
        self._require_admin(admin_token)
        req = UserActionBody(**body)
        return {"user": self.moderation.apply_user_action(account_id, req.action).to_dict()}

    @endpoint()
    def admin_set_moderation(self, admin_token: Optional[str], auction_id: str, body: dict) -> dict:
        self._require_admin(admin_token)
        req = ModerationBody(**body)
        self.moderation.set_moderation_status(auction_id, ModerationStatus.from_label(req.status))
        return {"auction": self.lifecycle.get(auction_id).to_dict()}
