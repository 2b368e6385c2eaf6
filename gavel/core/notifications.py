"""
Notification inbox.

Delivery is best-effort: a failed enqueue is logged and dropped, never
raised into the operation that triggered it. Components collect
notifications in an Outbox while their transaction runs and flush it
only after the transaction commits, so a rolled-back bid never tells
anyone they were outbid.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from gavel.core.models import Notification, new_id
from gavel.core.storage import StorageManager
from gavel.utils.logger import get_logger

logger = get_logger("notifications")


# Notification kinds
OUTBID = "outbid"
AUCTION_WON = "auction_won"
SETTLEMENT_OFFERED = "settlement_offered"
SETTLEMENT_EXPIRED = "settlement_expired"
AUCTION_FAILED = "auction_failed"
PAYMENT_RECEIVED = "payment_received"


class NotificationSink(Protocol):
    def enqueue(self, account_id: str, kind: str, payload: Dict[str, Any],
                now: Optional[int] = None) -> None:
        ...


@dataclass
class Outbox:
    """Notifications waiting for their transaction to commit."""
    items: List[Tuple[str, str, Dict[str, Any]]] = field(default_factory=list)

    def add(self, account_id: str, kind: str, **payload: Any) -> None:
        self.items.append((account_id, kind, payload))

    def flush(self, sink: Optional[NotificationSink], now: int) -> int:
        sent = 0
        if sink is not None:
            for account_id, kind, payload in self.items:
                try:
                    sink.enqueue(account_id, kind, payload, now)
                except Exception as e:
                    logger.warning(f"Dropped {kind} notification for {account_id[:16]}...: {e}")
                    continue
                sent += 1
        self.items.clear()
        return sent


class Notifier:
    """Store-backed NotificationSink plus inbox queries."""

    def __init__(self, storage: StorageManager):
        self.storage = storage

    def enqueue(self, account_id: str, kind: str, payload: Dict[str, Any],
                now: Optional[int] = None) -> None:
        notification = Notification(
            notification_id=new_id(),
            account_id=account_id,
            kind=kind,
            payload=dict(payload),
            created_at=int(time.time()) if now is None else now,
        )
        try:
            self.storage.insert_notification(notification)
            logger.debug(f"Queued {kind} for {account_id[:16]}...")
        except Exception as e:
            logger.warning(f"Dropped {kind} notification for {account_id[:16]}...: {e}")

    def list(self, account_id: str, unread_only: bool = False, limit: int = 50,
             offset: int = 0) -> List[Notification]:
        return self.storage.list_notifications(account_id, unread_only, limit, offset)

    def unread_count(self, account_id: str) -> int:
        return self.storage.count_unread(account_id)

    def mark_read(self, account_id: str, notification_ids: Optional[Sequence[str]] = None) -> int:
        """Mark the given notifications (or all of them) as read."""
        return self.storage.mark_notifications_read(account_id, notification_ids)
