"""
REST ledger client.

Expected service endpoints:
    GET /balances/{account}     -> {"available": int}
    GET /transfers/{signature}  -> {"sender", "recipient", "amount", "status"}

A 404 on a transfer lookup is a definitive "not found" answer. Every
other transport or protocol problem is an outage.
"""

from typing import Optional

import httpx

from gavel.core.errors import OracleUnavailableError
from gavel.oracle.base import Transfer, TransferVerification, transfer_matches
from gavel.utils.logger import get_logger

logger = get_logger("oracle.http")


class HttpBalanceOracle:
    def __init__(self, base_url: str, timeout: float = 10.0, api_key: Optional[str] = None):
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = httpx.Client(base_url=base_url, headers=headers, timeout=timeout)

    def __enter__(self):
        self._client.__enter__()
        return self

    def __exit__(self, exc_type, exc_value, tb):
        self._client.__exit__(exc_type, exc_value, tb)

    def close(self) -> None:
        self._client.close()

    def get_available_balance(self, account_id: str) -> int:
        try:
            r = self._client.get(f"/balances/{account_id}")
            r.raise_for_status()
            available = r.json()["available"]
        except httpx.HTTPError as e:
            logger.warning(f"Balance lookup failed: {e}")
            raise OracleUnavailableError("Balance oracle unavailable; try again") from e
        except (KeyError, TypeError, ValueError) as e:
            raise OracleUnavailableError("Balance oracle returned a malformed response") from e

        if isinstance(available, bool) or not isinstance(available, int) or available < 0:
            raise OracleUnavailableError("Balance oracle returned an invalid balance")
        return available

    def verify_transfer(self, tx_signature: str, expected_sender: str, expected_recipient: str,
                        expected_amount: int, tolerance: int) -> TransferVerification:
        try:
            r = self._client.get(f"/transfers/{tx_signature}")
            if r.status_code == 404:
                return TransferVerification(False, "Transaction not found")
            r.raise_for_status()
            data = r.json()
            transfer = Transfer(
                signature=tx_signature,
                sender=data["sender"],
                recipient=data["recipient"],
                amount=int(data["amount"]),
                status=data.get("status", "confirmed"),
            )
        except httpx.HTTPError as e:
            logger.warning(f"Transfer lookup failed: {e}")
            raise OracleUnavailableError("Payment verification unavailable; try again") from e
        except (KeyError, TypeError, ValueError) as e:
            raise OracleUnavailableError("Balance oracle returned a malformed response") from e

        return transfer_matches(transfer, expected_sender, expected_recipient, expected_amount, tolerance)
