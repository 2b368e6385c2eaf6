"""
Tests for ModerationPolicy.

Tests cover:
1. Strikes and automatic restriction
2. Admin user actions
3. Filing reports and auto-flagging
4. Resolving reports
"""

import pytest

from gavel.core.errors import ConflictError, InvalidStateError, NotFoundError
from gavel.core.models import ModerationStatus, ReportCategory, ReportOutcome

from conftest import T0


@pytest.fixture
def auction_id(market, seller):
    return market.auction(seller)


def report(market, reporter, auction_id, category=ReportCategory.SCAM, description=""):
    return market.moderation.file_report(reporter, auction_id, category, description, T0)


class TestStrike:
    def test_increments(self, market):
        account = market.account(5)
        assert market.moderation.strike(account) == 1
        assert market.moderation.strike(account) == 2
        assert market.storage.get_account(account).is_restricted is False

    def test_restricts_at_limit(self, market):
        account = market.account(5, strikes=2)

        assert market.moderation.strike(account) == 3
        assert market.storage.get_account(account).is_restricted is True

    def test_every_call_counts(self, market):
        account = market.account(5, strikes=3, restricted=True)
        assert market.moderation.strike(account) == 4

    def test_unknown_account(self, market):
        with pytest.raises(NotFoundError):
            market.moderation.strike("missing")


class TestUserActions:
    def test_restrict_and_unrestrict(self, market):
        account = market.account(5)
        assert market.moderation.apply_user_action(account, "restrict").is_restricted is True
        assert market.moderation.apply_user_action(account, "unrestrict").is_restricted is False

    def test_clear_strikes_keeps_restriction(self, market):
        account = market.account(5, strikes=3, restricted=True)

        updated = market.moderation.apply_user_action(account, "clear_strikes")

        assert updated.strike_count == 0
        assert updated.is_restricted is True

    def test_strike_action(self, market):
        account = market.account(5, strikes=2)
        updated = market.moderation.apply_user_action(account, "strike")
        assert (updated.strike_count, updated.is_restricted) == (3, True)

    def test_invalid_action(self, market):
        account = market.account(5)
        with pytest.raises(InvalidStateError, match="Invalid action"):
            market.moderation.apply_user_action(account, "ban")


class TestFileReport:
    def test_report_created_pending(self, market, auction_id):
        reporter = market.account(20)
        filed = report(market, reporter, auction_id, description="  copied art  ")

        assert filed.outcome == ReportOutcome.PENDING
        assert filed.description == "copied art"

    def test_self_report_rejected(self, market, seller, auction_id):
        with pytest.raises(InvalidStateError, match="own auction"):
            report(market, seller, auction_id)

    def test_duplicate_conflicts(self, market, auction_id):
        reporter = market.account(20)
        report(market, reporter, auction_id)

        with pytest.raises(ConflictError):
            report(market, reporter, auction_id, ReportCategory.NSFW)

    def test_unknown_auction(self, market):
        reporter = market.account(20)
        with pytest.raises(NotFoundError, match="Auction"):
            report(market, reporter, "missing")

    def test_description_too_long(self, market, auction_id):
        reporter = market.account(20)
        with pytest.raises(InvalidStateError):
            report(market, reporter, auction_id, description="x" * 1001)

    def test_third_report_flags_auction(self, market, auction_id):
        for n in range(20, 22):
            report(market, market.account(n), auction_id)
        assert market.storage.get_auction(auction_id).moderation_status == ModerationStatus.PENDING

        report(market, market.account(22), auction_id)

        assert market.storage.get_auction(auction_id).moderation_status == ModerationStatus.FLAGGED

    def test_removed_auction_stays_removed(self, market, auction_id):
        market.storage.set_moderation_status(auction_id, ModerationStatus.REMOVED)
        for n in range(20, 23):
            report(market, market.account(n), auction_id)
        assert market.storage.get_auction(auction_id).moderation_status == ModerationStatus.REMOVED

    def test_dismissed_reports_do_not_count(self, market, auction_id):
        first = report(market, market.account(20), auction_id)
        market.moderation.action_report(first.report_id, ReportOutcome.DISMISSED)
        for n in range(21, 23):
            report(market, market.account(n), auction_id)
        assert market.storage.get_auction(auction_id).moderation_status == ModerationStatus.PENDING


class TestActionReport:
    @pytest.fixture
    def filed(self, market, auction_id):
        return report(market, market.account(20), auction_id)

    def test_dismiss(self, market, seller, auction_id, filed):
        resolved = market.moderation.action_report(
            filed.report_id, ReportOutcome.DISMISSED, remove_auction=True, strike_creator=True
        )

        assert resolved.outcome == ReportOutcome.DISMISSED
        assert market.storage.get_auction(auction_id).moderation_status == ModerationStatus.PENDING
        assert market.storage.get_account(seller).strike_count == 0

    def test_action_with_removal_and_strike(self, market, seller, auction_id, filed):
        market.moderation.action_report(
            filed.report_id, ReportOutcome.ACTIONED, remove_auction=True, strike_creator=True
        )

        assert market.storage.get_auction(auction_id).moderation_status == ModerationStatus.REMOVED
        assert market.storage.get_account(seller).strike_count == 1

    def test_action_without_consequences(self, market, seller, auction_id, filed):
        market.moderation.action_report(filed.report_id, ReportOutcome.ACTIONED)

        assert market.storage.get_report(filed.report_id).outcome == ReportOutcome.ACTIONED
        assert market.storage.get_auction(auction_id).moderation_status == ModerationStatus.PENDING
        assert market.storage.get_account(seller).strike_count == 0

    def test_already_resolved(self, market, filed):
        market.moderation.action_report(filed.report_id, ReportOutcome.DISMISSED)
        with pytest.raises(InvalidStateError, match="already dismissed"):
            market.moderation.action_report(filed.report_id, ReportOutcome.ACTIONED, strike_creator=True)

    def test_pending_is_not_an_outcome(self, market, filed):
        with pytest.raises(InvalidStateError):
            market.moderation.action_report(filed.report_id, ReportOutcome.PENDING)

    def test_unknown_report(self, market):
        with pytest.raises(NotFoundError, match="Report"):
            market.moderation.action_report("missing", ReportOutcome.ACTIONED)

    def test_list_reports_by_outcome(self, market, auction_id, filed):
        other = report(market, market.account(21), auction_id)
        market.moderation.action_report(other.report_id, ReportOutcome.ACTIONED)

        pending = market.moderation.list_reports(ReportOutcome.PENDING)

        assert [r.report_id for r in pending] == [filed.report_id]
        assert len(market.moderation.list_reports()) == 2
