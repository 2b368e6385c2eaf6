"""
Tests for the account registry and notification inbox.
"""

import pytest

from gavel.core.errors import ForbiddenError, InvalidStateError, NotFoundError
from gavel.core.notifications import OUTBID, Outbox

from conftest import T0, account_id_for


class TestAccountRegistry:
    def test_get_or_create_once(self, market):
        account_id = account_id_for(99)

        first = market.service.accounts.get_or_create(account_id, T0)
        second = market.service.accounts.get_or_create(account_id, T0 + 50)

        assert first == second
        assert second.created_at == T0

    def test_invalid_id(self, market):
        with pytest.raises(InvalidStateError):
            market.service.accounts.get_or_create("not-a-key", T0)

    def test_get_missing(self, market):
        with pytest.raises(NotFoundError):
            market.service.accounts.get("missing")

    def test_profile_edit_only_by_owner(self, market):
        owner, other = market.account(1), market.account(2)
        with pytest.raises(ForbiddenError):
            market.service.accounts.update_profile(owner, other, "Mallory")
        assert market.service.accounts.update_profile(owner, owner, " Ada ").display_name == "Ada"

    def test_grant_credits(self, market):
        account = market.account(1)
        assert market.service.accounts.grant_credits(account, 5).credits == 5
        with pytest.raises(InvalidStateError):
            market.service.accounts.grant_credits(account, -1)

    def test_profile_stats(self, market, seller, bidders):
        auction_id = market.live_auction(seller)
        market.bid(auction_id, bidders[0], 110)

        stats = market.service.accounts.profile(seller)["stats"]

        assert stats == {"total_auctions": 1, "completed_auctions": 0, "total_bids": 0, "won_auctions": 0}
        assert market.service.accounts.profile(bidders[0])["stats"]["total_bids"] == 1


class TestNotifier:
    def test_enqueue_and_read(self, market):
        account = market.account(1)
        market.notifier.enqueue(account, OUTBID, {"auction_id": "a"}, T0)
        market.notifier.enqueue(account, OUTBID, {"auction_id": "b"}, T0 + 1)

        assert market.notifier.unread_count(account) == 2
        newest = market.notifier.list(account)[0]
        assert newest.payload == {"auction_id": "b"}

        assert market.notifier.mark_read(account, [newest.notification_id]) == 1
        assert market.notifier.unread_count(account) == 1

    def test_failed_delivery_is_swallowed(self, market, monkeypatch, caplog):
        def broken(notification):
            raise RuntimeError("disk full")

        monkeypatch.setattr(market.storage, "insert_notification", broken)

        market.notifier.enqueue("someone", OUTBID, {}, T0)

        assert "Dropped outbid notification" in caplog.text

    def test_outbox_flush_without_sink(self):
        outbox = Outbox()
        outbox.add("someone", OUTBID, auction_id="a")
        assert outbox.flush(None, T0) == 0
        assert outbox.items == []
