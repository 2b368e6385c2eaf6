"""Short-lived bearer sessions issued after a successful sign-in."""

import secrets
from dataclasses import dataclass
from typing import Optional

from gavel.core.config import MarketConfig, config
from gavel.core.errors import UnauthenticatedError
from gavel.core.storage import StorageManager


@dataclass
class Session:
    token: str
    account_id: str
    expires_at: int

    def to_dict(self) -> dict:
        return {"token": self.token, "account_id": self.account_id, "expires_at": self.expires_at}


class SessionStore:
    def __init__(self, storage: StorageManager, cfg: Optional[MarketConfig] = None):
        self.storage = storage
        self.config = cfg or config

    def issue(self, account_id: str, now: int) -> Session:
        session = Session(secrets.token_urlsafe(32), account_id, now + self.config.session_ttl)
        self.storage.insert_session(session.token, account_id, session.expires_at)
        return session

    def resolve(self, token: Optional[str], now: int) -> str:
        """Account id behind a token; unknown or expired tokens are refused."""
        if not token:
            raise UnauthenticatedError("Missing session token")
        found = self.storage.get_session(token)
        if found is None:
            raise UnauthenticatedError("Invalid session token")
        account_id, expires_at = found
        if now >= expires_at:
            raise UnauthenticatedError("Session expired")
        return account_id

    def purge(self, now: int) -> int:
        return self.storage.delete_expired_sessions(now)
