"""
Tests for signed-challenge authentication and sessions.
"""

import pytest

from gavel.auth import AuthGate, SessionStore, parse_challenge, sign_challenge
from gavel.core.config import MarketConfig
from gavel.core.errors import UnauthenticatedError
from gavel.crypto import generate_keypair

from conftest import T0


@pytest.fixture
def gate():
    return AuthGate(MarketConfig())


@pytest.fixture
def keypair():
    return generate_keypair()


class TestAuthGate:
    def test_challenge_fields(self, gate, keypair):
        fields = parse_challenge(gate.build_challenge(keypair.account_id, T0))
        assert fields["Account"] == keypair.account_id
        assert fields["Timestamp"] == str(T0)
        assert fields["Nonce"]

    def test_valid_signature(self, gate, keypair):
        message = gate.build_challenge(keypair.account_id, T0)
        signature = sign_challenge(message, keypair.private_key)

        assert gate.verify_signed_challenge(keypair.account_id, signature, message, T0 + 60)

    def test_signature_from_other_key(self, gate, keypair):
        message = gate.build_challenge(keypair.account_id, T0)
        signature = sign_challenge(message, generate_keypair().private_key)

        assert not gate.verify_signed_challenge(keypair.account_id, signature, message, T0)

    def test_stale_timestamp(self, gate, keypair):
        message = gate.build_challenge(keypair.account_id, T0)
        signature = sign_challenge(message, keypair.private_key)

        assert gate.verify_signed_challenge(keypair.account_id, signature, message, T0 + 300)
        with pytest.raises(UnauthenticatedError, match="expired"):
            gate.check(keypair.account_id, signature, message, T0 + 301)

    def test_future_timestamp(self, gate, keypair):
        message = gate.build_challenge(keypair.account_id, T0 + 400)
        signature = sign_challenge(message, keypair.private_key)
        assert not gate.verify_signed_challenge(keypair.account_id, signature, message, T0)

    def test_missing_timestamp(self, gate, keypair):
        message = f"Sign in to Gavel\nAccount: {keypair.account_id}"
        signature = sign_challenge(message, keypair.private_key)

        with pytest.raises(UnauthenticatedError, match="timestamp"):
            gate.check(keypair.account_id, signature, message, T0)

    def test_missing_account_line(self, gate, keypair):
        message = f"Sign in to Gavel\nTimestamp: {T0}"
        signature = sign_challenge(message, keypair.private_key)

        with pytest.raises(UnauthenticatedError, match="does not name an account"):
            gate.check(keypair.account_id, signature, message, T0)
        assert not gate.verify_signed_challenge(keypair.account_id, signature, message, T0)

    def test_challenge_for_other_account(self, gate, keypair):
        other = generate_keypair()
        message = gate.build_challenge(other.account_id, T0)
        signature = sign_challenge(message, keypair.private_key)

        with pytest.raises(UnauthenticatedError, match="different account"):
            gate.check(keypair.account_id, signature, message, T0)

    def test_garbage_signature(self, gate, keypair):
        message = gate.build_challenge(keypair.account_id, T0)
        assert not gate.verify_signed_challenge(keypair.account_id, "not-hex", message, T0)


class TestSessionStore:
    @pytest.fixture
    def sessions(self, storage):
        return SessionStore(storage, MarketConfig(session_ttl=600))

    def test_resolve(self, sessions):
        session = sessions.issue("acct", T0)
        assert sessions.resolve(session.token, T0 + 599) == "acct"

    def test_expired(self, sessions):
        session = sessions.issue("acct", T0)
        with pytest.raises(UnauthenticatedError, match="expired"):
            sessions.resolve(session.token, T0 + 600)

    def test_unknown_and_missing(self, sessions):
        with pytest.raises(UnauthenticatedError):
            sessions.resolve("bogus", T0)
        with pytest.raises(UnauthenticatedError):
            sessions.resolve(None, T0)

    def test_purge(self, sessions):
        sessions.issue("a", T0)
        sessions.issue("b", T0 + 1000)
        assert sessions.purge(T0 + 700) == 1
