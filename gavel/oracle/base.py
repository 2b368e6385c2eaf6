"""
BalanceOracle contract.

The marketplace never owns funds. It asks an external oracle how much an
account can spend and whether a payment transaction actually happened.
BoundedOracle puts a deadline on every such call so a slow ledger shows
up as a retryable OracleUnavailableError instead of a hung request.
"""

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, TypeVar

from gavel.core.errors import MarketError, OracleUnavailableError
from gavel.utils.logger import get_logger

logger = get_logger("oracle")

T = TypeVar("T")


# =============================================================================
# Contract
# =============================================================================


@dataclass(frozen=True)
class TransferVerification:
    """Oracle answer for a payment check."""
    valid: bool
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {"valid": self.valid, "reason": self.reason}


@dataclass(frozen=True)
class Transfer:
    """A transfer as reported by the ledger."""
    signature: str
    sender: str
    recipient: str
    amount: int
    status: str = "confirmed"


class BalanceOracle(Protocol):
    def get_available_balance(self, account_id: str) -> int:
        ...

    def verify_transfer(
        self,
        tx_signature: str,
        expected_sender: str,
        expected_recipient: str,
        expected_amount: int,
        tolerance: int,
    ) -> TransferVerification:
        ...


def transfer_matches(
    transfer: Transfer,
    expected_sender: str,
    expected_recipient: str,
    expected_amount: int,
    tolerance: int,
) -> TransferVerification:
    """
    Check a ledger transfer against the expected payment.

    Overpayment is accepted; underpayment is accepted only within
    `tolerance` smallest units.
    """
    if transfer.status == "failed":
        return TransferVerification(False, "Transaction failed on chain")
    if transfer.sender != expected_sender:
        return TransferVerification(False, "Transaction sender does not match winner")
    if transfer.recipient != expected_recipient:
        return TransferVerification(False, "Transaction recipient does not match seller")
    if transfer.amount < expected_amount - tolerance:
        return TransferVerification(
            False,
            f"Insufficient payment: expected {expected_amount}, got {transfer.amount}",
        )
    return TransferVerification(True)


# =============================================================================
# Deadline wrapper
# =============================================================================


class BoundedOracle:
    """
    Wraps any BalanceOracle with a per-call timeout.

    Timeouts, transport failures and malformed answers all surface as
    OracleUnavailableError. MarketErrors raised by the inner oracle pass
    through unchanged.
    """

    def __init__(self, inner: BalanceOracle, timeout: float = 10.0, max_workers: int = 4):
        self.inner = inner
        self.timeout = timeout
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="oracle")

    def _call(self, what: str, fn: Callable[..., T], *args) -> T:
        future = self._pool.submit(fn, *args)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeout:
            future.cancel()
            logger.warning(f"Oracle {what} timed out after {self.timeout}s")
            raise OracleUnavailableError("Balance oracle timed out; try again") from None
        except MarketError:
            raise
        except Exception as e:
            logger.warning(f"Oracle {what} failed: {e}")
            raise OracleUnavailableError("Balance oracle unavailable; try again") from e

    def get_available_balance(self, account_id: str) -> int:
        balance = self._call("balance lookup", self.inner.get_available_balance, account_id)
        if isinstance(balance, bool) or not isinstance(balance, int) or balance < 0:
            logger.warning(f"Oracle returned malformed balance {balance!r} for {account_id[:16]}...")
            raise OracleUnavailableError("Balance oracle returned an invalid balance")
        return balance

    def verify_transfer(
        self,
        tx_signature: str,
        expected_sender: str,
        expected_recipient: str,
        expected_amount: int,
        tolerance: int,
    ) -> TransferVerification:
        result = self._call(
            "transfer verification",
            self.inner.verify_transfer,
            tx_signature,
            expected_sender,
            expected_recipient,
            expected_amount,
            tolerance,
        )
        if not isinstance(result, TransferVerification):
            raise OracleUnavailableError("Balance oracle returned an invalid verification")
        return result

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)
