"""
Tests for balance oracles.

Tests cover:
1. Transfer matching rules
2. BoundedOracle deadlines and failure mapping
3. HttpBalanceOracle against a mocked REST ledger
"""

import httpx
import pytest

from gavel.core.config import MarketConfig
from gavel.core.errors import OracleUnavailableError
from gavel.oracle import (
    BoundedOracle,
    HttpBalanceOracle,
    InMemoryBalanceOracle,
    Transfer,
    create_oracle,
    transfer_matches,
)

BASE_URL = "http://ledger.test"


class TestTransferMatches:
    def transfer(self, **overrides):
        values = {"signature": "tx", "sender": "alice", "recipient": "bob", "amount": 1000}
        values.update(overrides)
        return Transfer(**values)

    def test_exact_payment(self):
        assert transfer_matches(self.transfer(), "alice", "bob", 1000, 10).valid

    def test_within_tolerance(self):
        assert transfer_matches(self.transfer(amount=990), "alice", "bob", 1000, 10).valid

    def test_beyond_tolerance(self):
        result = transfer_matches(self.transfer(amount=989), "alice", "bob", 1000, 10)
        assert not result.valid
        assert "Insufficient payment" in result.reason

    def test_overpayment(self):
        assert transfer_matches(self.transfer(amount=5000), "alice", "bob", 1000, 10).valid

    def test_wrong_sender(self):
        assert not transfer_matches(self.transfer(sender="mallory"), "alice", "bob", 1000, 10).valid

    def test_failed_transaction(self):
        assert not transfer_matches(self.transfer(status="failed"), "alice", "bob", 1000, 10).valid


class TestBoundedOracle:
    def test_passes_answers_through(self):
        inner = InMemoryBalanceOracle({"alice": 500})
        assert BoundedOracle(inner, timeout=1.0).get_available_balance("alice") == 500

    def test_timeout_is_unavailable(self):
        inner = InMemoryBalanceOracle({"alice": 500})
        inner.delay = 0.5

        with pytest.raises(OracleUnavailableError) as exc:
            BoundedOracle(inner, timeout=0.05).get_available_balance("alice")
        assert exc.value.retryable

    def test_inner_exception_is_unavailable(self):
        inner = InMemoryBalanceOracle()
        inner.outage = RuntimeError("boom")

        with pytest.raises(OracleUnavailableError):
            BoundedOracle(inner, timeout=1.0).verify_transfer("tx", "a", "b", 1, 0)

    def test_negative_balance_is_malformed(self):
        inner = InMemoryBalanceOracle({"alice": -1})
        with pytest.raises(OracleUnavailableError, match="invalid balance"):
            BoundedOracle(inner, timeout=1.0).get_available_balance("alice")

    def test_create_oracle_without_url(self):
        oracle = create_oracle(MarketConfig())
        assert isinstance(oracle.inner, InMemoryBalanceOracle)
        oracle.close()


class TestHttpBalanceOracle:
    @pytest.fixture
    def oracle(self):
        client = HttpBalanceOracle(BASE_URL, timeout=1.0)
        yield client
        client.close()

    def test_balance(self, oracle, httpx_mock):
        httpx_mock.add_response(url=f"{BASE_URL}/balances/alice", json={"available": 1234})
        assert oracle.get_available_balance("alice") == 1234

    def test_balance_server_error(self, oracle, httpx_mock):
        httpx_mock.add_response(url=f"{BASE_URL}/balances/alice", status_code=502)
        with pytest.raises(OracleUnavailableError):
            oracle.get_available_balance("alice")

    def test_balance_malformed(self, oracle, httpx_mock):
        httpx_mock.add_response(url=f"{BASE_URL}/balances/alice", json={"balance": 5})
        with pytest.raises(OracleUnavailableError, match="malformed"):
            oracle.get_available_balance("alice")

    def test_balance_transport_error(self, oracle, httpx_mock):
        httpx_mock.add_exception(httpx.ConnectTimeout("timed out"), url=f"{BASE_URL}/balances/alice")
        with pytest.raises(OracleUnavailableError):
            oracle.get_available_balance("alice")

    def test_transfer_verified(self, oracle, httpx_mock):
        httpx_mock.add_response(
            url=f"{BASE_URL}/transfers/sig-1",
            json={"sender": "alice", "recipient": "bob", "amount": 1000, "status": "confirmed"},
        )
        assert oracle.verify_transfer("sig-1", "alice", "bob", 1000, 10).valid

    def test_transfer_not_found_is_definitive(self, oracle, httpx_mock):
        httpx_mock.add_response(url=f"{BASE_URL}/transfers/sig-1", status_code=404)

        result = oracle.verify_transfer("sig-1", "alice", "bob", 1000, 10)

        assert not result.valid
        assert result.reason == "Transaction not found"

    def test_transfer_mismatch(self, oracle, httpx_mock):
        httpx_mock.add_response(
            url=f"{BASE_URL}/transfers/sig-1",
            json={"sender": "alice", "recipient": "carol", "amount": 1000},
        )
        assert not oracle.verify_transfer("sig-1", "alice", "bob", 1000, 10).valid

    def test_api_key_header(self, httpx_mock):
        httpx_mock.add_response(
            url=f"{BASE_URL}/balances/alice",
            match_headers={"Authorization": "Bearer secret"},
            json={"available": 1},
        )
        with HttpBalanceOracle(BASE_URL, api_key="secret") as client:
            assert client.get_available_balance("alice") == 1
