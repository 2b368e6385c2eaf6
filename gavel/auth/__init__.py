"""Wallet-signature authentication and sessions."""

from gavel.auth.gate import AuthGate, parse_challenge, sign_challenge
from gavel.auth.sessions import Session, SessionStore

__all__ = ["AuthGate", "parse_challenge", "sign_challenge", "Session", "SessionStore"]
