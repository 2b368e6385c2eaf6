"""
SettlementCascade - payment windows and fallback to the next bidder.

Each settling auction owns a chain of Settlement rows ordered by
cascade position. At most one row per auction is pending at any time;
the storage layer enforces that with a partial unique index, and every
mutation here runs inside one IMMEDIATE transaction.

Chain lifecycle:
    open         -> position 1 for the highest bidder
    verify       -> paid; auction completed; rewards granted
    tick (sweep) -> expired rows fail, the non-payer is struck, and the
                    next distinct bidder gets position + 1 with a fresh
                    window. With nobody left the auction fails.
"""

import sqlite3
from dataclasses import dataclass, field
from typing import List, Optional

from gavel.core.config import MarketConfig, config
from gavel.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    MarketError,
    NotFoundError,
)
from gavel.core.ledger.ranking import next_unoffered_bid, rank_bids
from gavel.core.moderation import ModerationPolicy
from gavel.core.models import (
    Auction,
    LifecycleStatus,
    Settlement,
    SettlementStatus,
    new_id,
)
from gavel.core.notifications import (
    AUCTION_FAILED,
    PAYMENT_RECEIVED,
    SETTLEMENT_EXPIRED,
    SETTLEMENT_OFFERED,
    NotificationSink,
    Outbox,
)
from gavel.core.storage import StorageManager
from gavel.oracle import BalanceOracle
from gavel.utils.logger import get_logger

logger = get_logger("settlement")

TIMEOUT_REASON = "timeout"


# =============================================================================
# Results
# =============================================================================


@dataclass
class CascadeAction:
    """What one expired settlement turned into."""
    auction_id: str
    expired_settlement_id: str
    failed_winner_id: str
    action: str  # "cascaded" or "failed"
    next_settlement_id: Optional[str] = None
    next_winner_id: Optional[str] = None
    cascade_position: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "auction_id": self.auction_id,
            "expired_settlement_id": self.expired_settlement_id,
            "failed_winner_id": self.failed_winner_id,
            "action": self.action,
            "next_settlement_id": self.next_settlement_id,
            "next_winner_id": self.next_winner_id,
            "cascade_position": self.cascade_position,
        }


@dataclass
class CascadeSweep:
    """Summary of one expiry sweep."""
    actions: List[CascadeAction] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.actions)

    @property
    def cascaded(self) -> int:
        return sum(1 for a in self.actions if a.action == "cascaded")

    @property
    def failed(self) -> int:
        return sum(1 for a in self.actions if a.action == "failed")

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "cascaded": self.cascaded,
            "failed": self.failed,
            "actions": [a.to_dict() for a in self.actions],
        }


@dataclass
class SettlementView:
    """Latest settlement of an auction's chain, with cascade context."""
    settlement: Settlement
    auction: Auction
    previous: List[Settlement] = field(default_factory=list)

    def to_dict(self) -> dict:
        body = self.settlement.to_dict()
        body["auction"] = {
            "auction_id": self.auction.auction_id,
            "title": self.auction.title,
            "creator_id": self.auction.creator_id,
            "winning_bid": self.auction.winning_bid,
            "status": self.auction.status.label,
        }
        body["cascade_info"] = None
        if self.settlement.cascade_position > 1:
            body["cascade_info"] = {
                "is_cascade": True,
                "cascade_position": self.settlement.cascade_position,
                "original_winner_id": self.settlement.original_winner_id,
                "previous_failures": [
                    {
                        "winner_id": s.winner_id,
                        "cascade_position": s.cascade_position,
                        "cascade_reason": s.cascade_reason,
                    }
                    for s in self.previous
                ],
            }
        return body


# =============================================================================
# Cascade
# =============================================================================


class SettlementCascade:
    def __init__(
        self,
        storage: StorageManager,
        oracle: BalanceOracle,
        moderation: ModerationPolicy,
        cfg: Optional[MarketConfig] = None,
        notifier: Optional[NotificationSink] = None,
    ):
        self.storage = storage
        self.oracle = oracle
        self.moderation = moderation
        self.config = cfg or config
        self.notifier = notifier

    # =========================================================================
    # Opening
    # =========================================================================

    def open(self, auction_id: str, winner_id: str, now: int) -> Settlement:
        """
        Open the first payment window for an auction.

        Idempotent: returns the pending row when one exists, or the
        latest row of an already-resolved chain, instead of creating a
        second one.
        """
        with self.storage.atomic():
            pending = self.storage.pending_settlement(auction_id)
            if pending is not None:
                return pending
            chain = self.storage.settlement_chain(auction_id)
            if chain:
                return chain[-1]
            if self.storage.get_auction(auction_id) is None:
                raise NotFoundError("Auction")

            settlement = Settlement(
                settlement_id=new_id(),
                auction_id=auction_id,
                winner_id=winner_id,
                payment_deadline=now + self.config.settlement_window,
                cascade_position=1,
                created_at=now,
            )
            self.storage.insert_settlement(settlement)

        logger.info(
            f"Settlement {settlement.settlement_id} opened for {auction_id}, "
            f"deadline {settlement.payment_deadline}"
        )
        return settlement

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, settlement_id: str) -> Settlement:
        settlement = self.storage.get_settlement(settlement_id)
        if settlement is None:
            raise NotFoundError("Settlement")
        return settlement

    def get_for_auction(self, auction_id: str, now: int) -> SettlementView:
        """
        Latest settlement for an auction, lazily opening position 1 for a
        settling auction that has a winner but no chain yet.
        """
        auction = self.storage.get_auction(auction_id)
        if auction is None:
            raise NotFoundError("Auction")

        chain = self.storage.settlement_chain(auction_id)
        if not chain:
            if auction.status != LifecycleStatus.SETTLING or auction.winner_id is None:
                raise NotFoundError("Settlement")
            self.open(auction_id, auction.winner_id, now)
            chain = self.storage.settlement_chain(auction_id)

        latest = chain[-1]
        previous = [s for s in chain[:-1] if s.status == SettlementStatus.FAILED]
        return SettlementView(settlement=latest, auction=auction, previous=previous)

    def list_expired(self, now: int) -> List[Settlement]:
        return self.storage.expired_settlements(now)

    # =========================================================================
    # Payment
    # =========================================================================

    def verify_payment(self, settlement_id: str, payer_id: str, tx_signature: str, now: int) -> Settlement:
        """
        Confirm a winner's payment and complete the auction.

        Read-only checks and the oracle call happen outside the write
        transaction; the state is re-checked before applying.

        Raises:
            NotFoundError, ForbiddenError, InvalidStateError, ConflictError,
            OracleUnavailableError
        """
        try:
            settlement = self.get(settlement_id)
            if payer_id != settlement.winner_id:
                raise ForbiddenError("Only the declared winner can pay for this settlement")
            if settlement.status == SettlementStatus.PAID:
                raise InvalidStateError("Settlement already paid")
            if now > settlement.payment_deadline:
                raise InvalidStateError("Payment deadline passed")
            if settlement.status == SettlementStatus.FAILED:
                raise InvalidStateError("Settlement has failed")
            self._check_tx_unused(tx_signature, settlement_id)

            auction = self.storage.get_auction(settlement.auction_id)
            verification = self.oracle.verify_transfer(
                tx_signature,
                payer_id,
                auction.creator_id,
                auction.winning_bid,
                self.config.payment_tolerance,
            )
            if not verification.valid:
                raise InvalidStateError(
                    verification.reason or "Payment could not be verified",
                    [("tx_signature", verification.reason or "not confirmed")],
                )

            with self.storage.atomic():
                settlement = self.get(settlement_id)
                if settlement.status == SettlementStatus.PAID:
                    raise InvalidStateError("Settlement already paid")
                if settlement.status != SettlementStatus.PENDING:
                    raise InvalidStateError("Settlement has failed")
                self._check_tx_unused(tx_signature, settlement_id)

                settlement.status = SettlementStatus.PAID
                settlement.payment_tx_signature = tx_signature
                try:
                    self.storage.update_settlement(settlement)
                except sqlite3.IntegrityError as e:
                    raise ConflictError("Transaction already used for another settlement") from e

                auction = self.storage.get_auction(settlement.auction_id)
                auction.status = LifecycleStatus.COMPLETED
                self.storage.update_auction_state(auction)

                self.storage.add_credits(settlement.winner_id, self.config.winner_paid_reward)
                self.storage.add_credits(auction.creator_id, self.config.creator_sale_reward)
        except MarketError as e:
            logger.debug(f"Payment for {settlement_id} rejected: {e.message}")
            raise

        outbox = Outbox()
        outbox.add(
            auction.creator_id,
            PAYMENT_RECEIVED,
            auction_id=auction.auction_id,
            auction_title=auction.title,
            amount=auction.winning_bid,
            tx_signature=tx_signature,
        )
        outbox.flush(self.notifier, now)

        logger.info(f"Settlement {settlement_id} paid; auction {auction.auction_id} completed")
        return settlement

    def _check_tx_unused(self, tx_signature: str, settlement_id: str) -> None:
        existing = self.storage.settlement_by_tx(tx_signature)
        if existing is not None and existing.settlement_id != settlement_id:
            raise ConflictError("Transaction already used for another settlement")

    # =========================================================================
    # Expiry sweep
    # =========================================================================

    def tick(self, now: int) -> CascadeSweep:
        """
        Expire every pending settlement whose deadline has passed.

        Safe to re-run: only pending rows are picked up, and each is
        failed before its successor is inserted.
        """
        sweep = CascadeSweep()
        outbox = Outbox()

        with self.storage.atomic():
            for expired in self.storage.expired_settlements(now):
                sweep.actions.append(self._expire(expired, now, outbox))

        outbox.flush(self.notifier, now)
        if sweep.processed:
            logger.info(
                f"Cascade sweep: {sweep.processed} expired, "
                f"{sweep.cascaded} cascaded, {sweep.failed} failed"
            )
        return sweep

    def _expire(self, expired: Settlement, now: int, outbox: Outbox) -> CascadeAction:
        expired.status = SettlementStatus.FAILED
        expired.cascade_reason = TIMEOUT_REASON
        self.storage.update_settlement(expired)
        self.moderation.strike(expired.winner_id)

        auction = self.storage.get_auction(expired.auction_id)
        outbox.add(
            expired.winner_id,
            SETTLEMENT_EXPIRED,
            auction_id=auction.auction_id,
            auction_title=auction.title,
        )
        logger.info(
            f"Settlement {expired.settlement_id} timed out "
            f"(position {expired.cascade_position}, auction {auction.auction_id})"
        )

        action = CascadeAction(
            auction_id=auction.auction_id,
            expired_settlement_id=expired.settlement_id,
            failed_winner_id=expired.winner_id,
            action="failed",
        )
        if auction.status != LifecycleStatus.SETTLING:
            return action

        chain = self.storage.settlement_chain(auction.auction_id)
        offered = {s.winner_id for s in chain}
        ranked = rank_bids(self.storage.bids_for_auction(auction.auction_id))
        successor = next_unoffered_bid(ranked, offered)

        if successor is None:
            auction.status = LifecycleStatus.FAILED
            self.storage.update_auction_state(auction)
            outbox.add(
                auction.creator_id,
                AUCTION_FAILED,
                auction_id=auction.auction_id,
                auction_title=auction.title,
            )
            logger.info(f"Auction {auction.auction_id} failed: no bidders left to offer")
            return action

        position = chain[-1].cascade_position + 1
        settlement = Settlement(
            settlement_id=new_id(),
            auction_id=auction.auction_id,
            winner_id=successor.bidder_id,
            payment_deadline=now + self.config.settlement_window,
            cascade_position=position,
            original_winner_id=chain[0].winner_id,
            created_at=now,
        )
        self.storage.insert_settlement(settlement)

        auction.winner_id = successor.bidder_id
        auction.winning_bid = successor.amount
        self.storage.update_auction_state(auction)

        outbox.add(
            successor.bidder_id,
            SETTLEMENT_OFFERED,
            auction_id=auction.auction_id,
            auction_title=auction.title,
            amount=successor.amount,
            payment_deadline=settlement.payment_deadline,
            cascade_position=position,
        )
        logger.info(
            f"Auction {auction.auction_id} cascaded to position {position} "
            f"({successor.bidder_id[:16]}..., {successor.amount})"
        )

        action.action = "cascaded"
        action.next_settlement_id = settlement.settlement_id
        action.next_winner_id = successor.bidder_id
        action.cascade_position = position
        return action
