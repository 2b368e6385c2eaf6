"""Account registry: creation on first sign-in, profiles and credits."""

from typing import Optional

from gavel.core.errors import ForbiddenError, InvalidStateError, NotFoundError
from gavel.core.models import Account, LifecycleStatus
from gavel.core.storage import StorageManager
from gavel.utils.logger import get_logger
from gavel.utils.validation import (
    MAX_DISPLAY_NAME,
    validate_account_id,
    validate_string,
)

logger = get_logger("accounts")


class AccountRegistry:
    def __init__(self, storage: StorageManager):
        self.storage = storage

    def get_or_create(self, account_id: str, now: int) -> Account:
        ok, message = validate_account_id(account_id)
        if not ok:
            raise InvalidStateError("Invalid account identifier", [("account_id", message)])

        with self.storage.atomic():
            account = self.storage.get_account(account_id)
            if account is None:
                account = Account(account_id=account_id, created_at=now)
                self.storage.insert_account(account)
                logger.info(f"Account created: {account_id[:16]}...")
        return account

    def get(self, account_id: str) -> Account:
        account = self.storage.get_account(account_id)
        if account is None:
            raise NotFoundError("Account")
        return account

    def update_profile(self, account_id: str, requester_id: str, display_name: Optional[str]) -> Account:
        if account_id != requester_id:
            raise ForbiddenError("Cannot edit another account's profile")
        if display_name is not None:
            ok, message = validate_string(display_name, "display_name", 1, MAX_DISPLAY_NAME)
            if not ok:
                raise InvalidStateError("Invalid profile", [("display_name", message)])
            display_name = display_name.strip()

        with self.storage.atomic():
            account = self.get(account_id)
            account.display_name = display_name
            self.storage.update_account(account)
        return account

    def grant_credits(self, account_id: str, amount: int) -> Account:
        if amount < 0:
            raise InvalidStateError("Credits can only be granted, not removed")
        with self.storage.atomic():
            self.get(account_id)
            self.storage.add_credits(account_id, amount)
            return self.get(account_id)

    def profile(self, account_id: str) -> dict:
        """Account plus auction and bidding statistics."""
        account = self.get(account_id)
        auctions = self.storage.auctions_by_creator(account_id)
        bids = self.storage.bids_by_bidder(account_id)

        won = 0
        for auction_id in {b.auction_id for b in bids}:
            auction = self.storage.get_auction(auction_id)
            if auction.status == LifecycleStatus.COMPLETED and auction.winner_id == account_id:
                won += 1

        body = account.to_dict()
        body["stats"] = {
            "total_auctions": len(auctions),
            "completed_auctions": sum(1 for a in auctions if a.status == LifecycleStatus.COMPLETED),
            "total_bids": len(bids),
            "won_auctions": won,
        }
        return body
