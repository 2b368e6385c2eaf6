"""
ModerationPolicy - strikes, restrictions and reports.

A strike is a penalty unit. Reaching the strike limit restricts the
account from bidding and creating auctions. Strikes come from two
places: a winner letting a settlement window expire, and a moderator
actioning a report against an auction's creator.
"""

from typing import List, Optional

from gavel.core.config import MarketConfig, config
from gavel.core.errors import ConflictError, InvalidStateError, NotFoundError
from gavel.core.models import (
    Account,
    ModerationStatus,
    Report,
    ReportCategory,
    ReportOutcome,
    new_id,
)
from gavel.core.storage import StorageManager
from gavel.utils.logger import get_logger
from gavel.utils.validation import MAX_REPORT_DESCRIPTION, validate_string

logger = get_logger("moderation")

USER_ACTIONS = ("strike", "restrict", "unrestrict", "clear_strikes")


class ModerationPolicy:
    def __init__(self, storage: StorageManager, cfg: Optional[MarketConfig] = None):
        self.storage = storage
        self.config = cfg or config

    # =========================================================================
    # Strikes and restrictions
    # =========================================================================

    def strike(self, account_id: str) -> int:
        """
        Add one strike to an account.

        Every call increments; callers must make sure one logical failure
        produces exactly one call.

        Returns:
            The new strike count
        """
        with self.storage.atomic():
            account = self._account(account_id)
            account.strike_count += 1
            newly_restricted = (
                account.strike_count >= self.config.strike_limit and not account.is_restricted
            )
            if newly_restricted:
                account.is_restricted = True
            self.storage.update_account(account)

        logger.info(f"Strike {account.strike_count} for {account_id[:16]}...")
        if newly_restricted:
            logger.info(f"Account {account_id[:16]}... restricted after {account.strike_count} strikes")
        return account.strike_count

    def apply_user_action(self, account_id: str, action: str) -> Account:
        """Admin action on an account: strike, restrict, unrestrict or clear_strikes."""
        if action not in USER_ACTIONS:
            raise InvalidStateError("Invalid action", [("action", f"must be one of {', '.join(USER_ACTIONS)}")])

        if action == "strike":
            self.strike(account_id)
            return self._account(account_id)

        with self.storage.atomic():
            account = self._account(account_id)
            if action == "restrict":
                account.is_restricted = True
            elif action == "unrestrict":
                account.is_restricted = False
            else:
                account.strike_count = 0
            self.storage.update_account(account)

        logger.info(f"Admin {action} on {account_id[:16]}...")
        return account

    def _account(self, account_id: str) -> Account:
        account = self.storage.get_account(account_id)
        if account is None:
            raise NotFoundError("Account")
        return account

    # =========================================================================
    # Reports
    # =========================================================================

    def file_report(self, reporter_id: str, auction_id: str, category: ReportCategory,
                    description: str, now: int) -> Report:
        ok, message = validate_string(description or "", "description", 0, MAX_REPORT_DESCRIPTION)
        if not ok:
            raise InvalidStateError("Invalid report", [("description", message)])

        with self.storage.atomic():
            if self.storage.get_account(reporter_id) is None:
                raise NotFoundError("Account")
            auction = self.storage.get_auction(auction_id)
            if auction is None:
                raise NotFoundError("Auction")
            if auction.creator_id == reporter_id:
                raise InvalidStateError("Cannot report your own auction")
            if self.storage.find_report(reporter_id, auction_id) is not None:
                raise ConflictError("You have already reported this auction")

            report = Report(
                report_id=new_id(),
                reporter_id=reporter_id,
                auction_id=auction_id,
                category=category,
                description=(description or "").strip(),
                created_at=now,
            )
            self.storage.insert_report(report)

            pending = self.storage.count_pending_reports(auction_id)
            if (
                pending >= self.config.report_flag_threshold
                and auction.moderation_status in (ModerationStatus.PENDING, ModerationStatus.APPROVED)
            ):
                self.storage.set_moderation_status(auction_id, ModerationStatus.FLAGGED)
                logger.info(f"Auction {auction_id} auto-flagged after {pending} reports")

        logger.info(f"Report {report.report_id} filed against {auction_id} ({category.label})")
        return report

    def action_report(self, report_id: str, outcome: ReportOutcome,
                      remove_auction: bool = False, strike_creator: bool = False) -> Report:
        """
        Resolve a pending report.

        When actioned, optionally remove the auction and/or strike its
        creator. Dismissing ignores both flags.
        """
        if outcome == ReportOutcome.PENDING:
            raise InvalidStateError("Invalid outcome", [("outcome", "must be dismissed or actioned")])

        with self.storage.atomic():
            report = self.storage.get_report(report_id)
            if report is None:
                raise NotFoundError("Report")
            if report.outcome != ReportOutcome.PENDING:
                raise InvalidStateError(f"Report already {report.outcome.label}")

            report.outcome = outcome
            self.storage.update_report_outcome(report_id, outcome)

            if outcome == ReportOutcome.ACTIONED:
                auction = self.storage.get_auction(report.auction_id)
                if remove_auction:
                    self.storage.set_moderation_status(auction.auction_id, ModerationStatus.REMOVED)
                    logger.info(f"Auction {auction.auction_id} removed")
                if strike_creator:
                    self.strike(auction.creator_id)

        logger.info(f"Report {report_id} {outcome.label}")
        return report

    def set_moderation_status(self, auction_id: str, status: ModerationStatus) -> None:
        with self.storage.atomic():
            if self.storage.get_auction(auction_id) is None:
                raise NotFoundError("Auction")
            self.storage.set_moderation_status(auction_id, status)
        logger.info(f"Auction {auction_id} moderation set to {status.label}")

    def list_reports(self, outcome: Optional[ReportOutcome] = None, limit: int = 50,
                     offset: int = 0) -> List[Report]:
        return self.storage.list_reports(outcome, limit, offset)

    def get_report(self, report_id: str) -> Report:
        report = self.storage.get_report(report_id)
        if report is None:
            raise NotFoundError("Report")
        return report
