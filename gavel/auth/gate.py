"""
Signed-challenge authentication.

A client proves control of an account by signing a challenge message
with the account's secp256k1 key. The message carries the account id
and a timestamp; stale or foreign challenges are refused so a captured
signature cannot be replayed later or for someone else.
"""

import secrets
from typing import Dict, Optional

from gavel.core.config import MarketConfig, config
from gavel.core.errors import UnauthenticatedError
from gavel.crypto import sign_message, verify_message
from gavel.utils.logger import get_logger

logger = get_logger("auth")

CHALLENGE_HEADER = "Sign in to Gavel"


def parse_challenge(message: str) -> Dict[str, str]:
    """Read `Key: value` lines of a challenge message."""
    fields = {}
    for line in message.splitlines():
        key, sep, value = line.partition(":")
        if sep:
            fields[key.strip()] = value.strip()
    return fields


def sign_challenge(message: str, private_key: bytes) -> str:
    """Client-side helper: hex signature over keccak256(message)."""
    return sign_message(message, private_key)


class AuthGate:
    def __init__(self, cfg: Optional[MarketConfig] = None):
        self.config = cfg or config

    def build_challenge(self, account_id: str, now: int) -> str:
        return "\n".join([
            CHALLENGE_HEADER,
            f"Account: {account_id}",
            f"Timestamp: {now}",
            f"Nonce: {secrets.token_hex(8)}",
        ])

    def check(self, account_id: str, signature: str, message: str, now: int) -> None:
        """
        Verify a signed challenge.

        Raises:
            UnauthenticatedError: Bad signature, missing/stale timestamp,
                missing account line, or a challenge for another account
        """
        if not verify_message(message, signature, account_id):
            raise UnauthenticatedError("Invalid signature")

        fields = parse_challenge(message)
        named = fields.get("Account")
        if named is None:
            raise UnauthenticatedError("Challenge does not name an account")
        if named != account_id:
            raise UnauthenticatedError("Challenge was issued for a different account")

        try:
            timestamp = int(fields["Timestamp"])
        except (KeyError, ValueError):
            raise UnauthenticatedError("Challenge is missing a timestamp") from None
        if abs(now - timestamp) > self.config.auth_freshness_window:
            raise UnauthenticatedError("Message expired")

    def verify_signed_challenge(self, account_id: str, signature: str, message: str, now: int) -> bool:
        try:
            self.check(account_id, signature, message, now)
        except UnauthenticatedError as e:
            logger.debug(f"Sign-in refused for {str(account_id)[:16]}...: {e.message}")
            return False
        return True
