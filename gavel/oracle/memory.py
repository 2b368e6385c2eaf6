"""In-process BalanceOracle for tests, demos and local runs."""

import threading
import time
from typing import Dict, Optional

from gavel.oracle.base import Transfer, TransferVerification, transfer_matches


class InMemoryBalanceOracle:
    """
    Balances and transfers held in dictionaries.

    `outage` makes every call raise, and `delay` makes every call sleep,
    so callers can exercise the unavailable and timeout paths.
    """

    def __init__(self, balances: Optional[Dict[str, int]] = None):
        self._balances: Dict[str, int] = dict(balances or {})
        self._transfers: Dict[str, Transfer] = {}
        self._lock = threading.Lock()
        self.outage: Optional[Exception] = None
        self.delay: float = 0.0
        self.calls = 0

    def set_balance(self, account_id: str, amount: int) -> None:
        with self._lock:
            self._balances[account_id] = amount

    def record_transfer(self, signature: str, sender: str, recipient: str, amount: int,
                        status: str = "confirmed") -> Transfer:
        transfer = Transfer(signature, sender, recipient, amount, status)
        with self._lock:
            self._transfers[signature] = transfer
        return transfer

    def _before_call(self) -> None:
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.outage is not None:
            raise self.outage

    def get_available_balance(self, account_id: str) -> int:
        self._before_call()
        with self._lock:
            return self._balances.get(account_id, 0)

    def verify_transfer(self, tx_signature: str, expected_sender: str, expected_recipient: str,
                        expected_amount: int, tolerance: int) -> TransferVerification:
        self._before_call()
        with self._lock:
            transfer = self._transfers.get(tx_signature)
        if transfer is None:
            return TransferVerification(False, "Transaction not found")
        return transfer_matches(transfer, expected_sender, expected_recipient, expected_amount, tolerance)
