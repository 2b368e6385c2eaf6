import json
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from gavel.core.models import (
    Account,
    Auction,
    Bid,
    LifecycleStatus,
    ModerationStatus,
    Notification,
    Report,
    ReportOutcome,
    Settlement,
    SettlementStatus,
)
from gavel.core.storage.sqlite_adapter import SQLiteAdapter
from gavel.utils.logger import get_logger

logger = get_logger("storage.manager")


class StorageManager:
    """
    Manages persistent marketplace state.

    Coordinates data persistence using the SQLite adapter and maps rows
    to model dataclasses. Components wrap multi-step mutations in
    `atomic()` so they either fully apply or fully fail.
    """

    def __init__(self, data_dir: Path, db_name: str = "gavel.db"):
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / db_name
        self.adapter = SQLiteAdapter(self.db_path)

        logger.info(f"StorageManager initialized at {self.db_path}")

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Group mutations into one serialized transaction."""
        with self.adapter.transaction():
            yield

    def close(self) -> None:
        self.adapter.close()

    # =========================================================================
    # Accounts
    # =========================================================================

    def get_account(self, account_id: str) -> Optional[Account]:
        row = self.adapter.fetch_one("SELECT * FROM accounts WHERE account_id = ?", (account_id,))
        return Account.from_row(row) if row else None

    def insert_account(self, account: Account) -> None:
        self.adapter.execute(
            "INSERT INTO accounts (account_id, display_name, strike_count, is_restricted, credits, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                account.account_id,
                account.display_name,
                account.strike_count,
                int(account.is_restricted),
                account.credits,
                account.created_at,
            ),
        )

    def update_account(self, account: Account) -> None:
        self.adapter.execute(
            "UPDATE accounts SET display_name = ?, strike_count = ?, is_restricted = ?, credits = ? "
            "WHERE account_id = ?",
            (
                account.display_name,
                account.strike_count,
                int(account.is_restricted),
                account.credits,
                account.account_id,
            ),
        )

    def add_credits(self, account_id: str, amount: int) -> None:
        self.adapter.execute(
            "UPDATE accounts SET credits = credits + ? WHERE account_id = ?",
            (amount, account_id),
        )

    # =========================================================================
    # Auctions
    # =========================================================================

    def get_auction(self, auction_id: str) -> Optional[Auction]:
        row = self.adapter.fetch_one("SELECT * FROM auctions WHERE auction_id = ?", (auction_id,))
        return Auction.from_row(row) if row else None

    def insert_auction(self, auction: Auction) -> None:
        self.adapter.execute(
            "INSERT INTO auctions (auction_id, creator_id, title, description, image_ref, tags, "
            "reserve_price, min_bid_increment, start_time, end_time, status, moderation_status, "
            "winner_id, winning_bid, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                auction.auction_id,
                auction.creator_id,
                auction.title,
                auction.description,
                auction.image_ref,
                json.dumps(auction.tags),
                auction.reserve_price,
                auction.min_bid_increment,
                auction.start_time,
                auction.end_time,
                int(auction.status),
                int(auction.moderation_status),
                auction.winner_id,
                auction.winning_bid,
                auction.created_at,
            ),
        )

    def update_auction_state(self, auction: Auction) -> None:
        """Persist the mutable fields: status, winner and moderation."""
        self.adapter.execute(
            "UPDATE auctions SET status = ?, moderation_status = ?, winner_id = ?, winning_bid = ? "
            "WHERE auction_id = ?",
            (
                int(auction.status),
                int(auction.moderation_status),
                auction.winner_id,
                auction.winning_bid,
                auction.auction_id,
            ),
        )

    def auctions_due_to_start(self, now: int) -> List[Auction]:
        rows = self.adapter.fetch_all(
            "SELECT * FROM auctions WHERE status = ? AND start_time <= ? ORDER BY start_time, auction_id",
            (int(LifecycleStatus.UPCOMING), now),
        )
        return [Auction.from_row(r) for r in rows]

    def auctions_due_to_end(self, now: int) -> List[Auction]:
        rows = self.adapter.fetch_all(
            "SELECT * FROM auctions WHERE status = ? AND end_time <= ? ORDER BY end_time, auction_id",
            (int(LifecycleStatus.CURRENT), now),
        )
        return [Auction.from_row(r) for r in rows]

    def list_auctions(self, where: Sequence[str], params: Sequence, order_by: str,
                      limit: int, offset: int) -> List[Auction]:
        sql = "SELECT * FROM auctions"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += f" ORDER BY {order_by} LIMIT ? OFFSET ?"
        rows = self.adapter.fetch_all(sql, tuple(params) + (limit, offset))
        return [Auction.from_row(r) for r in rows]

    def auctions_by_creator(self, creator_id: str) -> List[Auction]:
        rows = self.adapter.fetch_all(
            "SELECT * FROM auctions WHERE creator_id = ? ORDER BY created_at DESC",
            (creator_id,),
        )
        return [Auction.from_row(r) for r in rows]

    def tag_counts(self, moderation_statuses: Sequence[int], limit: int) -> List[Tuple[str, int]]:
        marks = ",".join("?" for _ in moderation_statuses)
        rows = self.adapter.fetch_all(
            "SELECT json_each.value AS tag, COUNT(*) AS cnt "
            "FROM auctions, json_each(auctions.tags) "
            f"WHERE auctions.moderation_status IN ({marks}) "
            "GROUP BY json_each.value ORDER BY cnt DESC, tag ASC LIMIT ?",
            tuple(moderation_statuses) + (limit,),
        )
        return [(r["tag"], r["cnt"]) for r in rows]

    def count_auctions_by_status(self) -> Dict[str, int]:
        rows = self.adapter.fetch_all("SELECT status, COUNT(*) AS cnt FROM auctions GROUP BY status")
        return {LifecycleStatus(r["status"]).label: r["cnt"] for r in rows}

    # =========================================================================
    # Bids
    # =========================================================================

    def get_bid(self, bid_id: str) -> Optional[Bid]:
        row = self.adapter.fetch_one("SELECT * FROM bids WHERE bid_id = ?", (bid_id,))
        return Bid.from_row(row) if row else None

    def insert_bid(self, bid: Bid) -> Bid:
        self.adapter.execute(
            "INSERT INTO bids (bid_id, auction_id, bidder_id, amount, collateral_locked, is_top, "
            "outbid_at, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                bid.bid_id,
                bid.auction_id,
                bid.bidder_id,
                bid.amount,
                bid.collateral_locked,
                int(bid.is_top),
                bid.outbid_at,
                bid.created_at,
            ),
        )
        return self.get_bid(bid.bid_id)

    def delete_bid(self, bid_id: str) -> None:
        self.adapter.execute("DELETE FROM bids WHERE bid_id = ?", (bid_id,))

    def update_bid_flags(self, bid: Bid) -> None:
        self.adapter.execute(
            "UPDATE bids SET is_top = ?, outbid_at = ? WHERE bid_id = ?",
            (int(bid.is_top), bid.outbid_at, bid.bid_id),
        )

    def bids_for_auction(self, auction_id: str) -> List[Bid]:
        """All bids in ranking order: amount descending, then acceptance order."""
        rows = self.adapter.fetch_all(
            "SELECT * FROM bids WHERE auction_id = ? ORDER BY amount DESC, seq ASC",
            (auction_id,),
        )
        return [Bid.from_row(r) for r in rows]

    def bids_by_bidder(self, bidder_id: str) -> List[Bid]:
        rows = self.adapter.fetch_all(
            "SELECT * FROM bids WHERE bidder_id = ? ORDER BY seq DESC",
            (bidder_id,),
        )
        return [Bid.from_row(r) for r in rows]

    def committed_elsewhere(self, bidder_id: str, auction_id: str) -> int:
        """Sum of the bidder's top-set bids on other open or settling auctions."""
        total = self.adapter.scalar(
            "SELECT COALESCE(SUM(b.amount), 0) FROM bids b JOIN auctions a ON a.auction_id = b.auction_id "
            "WHERE b.bidder_id = ? AND b.is_top = 1 AND b.auction_id != ? AND a.status IN (?, ?)",
            (bidder_id, auction_id, int(LifecycleStatus.CURRENT), int(LifecycleStatus.SETTLING)),
        )
        return int(total or 0)

    def bid_counts(self, auction_ids: Sequence[str]) -> Dict[str, Tuple[int, Optional[int]]]:
        """auction_id -> (bid count, highest amount)"""
        if not auction_ids:
            return {}
        marks = ",".join("?" for _ in auction_ids)
        rows = self.adapter.fetch_all(
            f"SELECT auction_id, COUNT(*) AS cnt, MAX(amount) AS top FROM bids "
            f"WHERE auction_id IN ({marks}) GROUP BY auction_id",
            tuple(auction_ids),
        )
        return {r["auction_id"]: (r["cnt"], r["top"]) for r in rows}

    # =========================================================================
    # Settlements
    # =========================================================================

    def get_settlement(self, settlement_id: str) -> Optional[Settlement]:
        row = self.adapter.fetch_one("SELECT * FROM settlements WHERE settlement_id = ?", (settlement_id,))
        return Settlement.from_row(row) if row else None

    def insert_settlement(self, settlement: Settlement) -> None:
        self.adapter.execute(
            "INSERT INTO settlements (settlement_id, auction_id, winner_id, payment_deadline, status, "
            "cascade_position, original_winner_id, cascade_reason, payment_tx_signature, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                settlement.settlement_id,
                settlement.auction_id,
                settlement.winner_id,
                settlement.payment_deadline,
                int(settlement.status),
                settlement.cascade_position,
                settlement.original_winner_id,
                settlement.cascade_reason,
                settlement.payment_tx_signature,
                settlement.created_at,
            ),
        )

    def update_settlement(self, settlement: Settlement) -> None:
        self.adapter.execute(
            "UPDATE settlements SET status = ?, cascade_reason = ?, payment_tx_signature = ? "
            "WHERE settlement_id = ?",
            (
                int(settlement.status),
                settlement.cascade_reason,
                settlement.payment_tx_signature,
                settlement.settlement_id,
            ),
        )

    def settlement_chain(self, auction_id: str) -> List[Settlement]:
        rows = self.adapter.fetch_all(
            "SELECT * FROM settlements WHERE auction_id = ? ORDER BY cascade_position ASC",
            (auction_id,),
        )
        return [Settlement.from_row(r) for r in rows]

    def pending_settlement(self, auction_id: str) -> Optional[Settlement]:
        row = self.adapter.fetch_one(
            "SELECT * FROM settlements WHERE auction_id = ? AND status = ?",
            (auction_id, int(SettlementStatus.PENDING)),
        )
        return Settlement.from_row(row) if row else None

    def expired_settlements(self, now: int) -> List[Settlement]:
        rows = self.adapter.fetch_all(
            "SELECT * FROM settlements WHERE status = ? AND payment_deadline < ? "
            "ORDER BY payment_deadline ASC, settlement_id",
            (int(SettlementStatus.PENDING), now),
        )
        return [Settlement.from_row(r) for r in rows]

    def settlement_by_tx(self, tx_signature: str) -> Optional[Settlement]:
        row = self.adapter.fetch_one(
            "SELECT * FROM settlements WHERE payment_tx_signature = ?", (tx_signature,)
        )
        return Settlement.from_row(row) if row else None

    # =========================================================================
    # Reports
    # =========================================================================

    def get_report(self, report_id: str) -> Optional[Report]:
        row = self.adapter.fetch_one("SELECT * FROM reports WHERE report_id = ?", (report_id,))
        return Report.from_row(row) if row else None

    def find_report(self, reporter_id: str, auction_id: str) -> Optional[Report]:
        row = self.adapter.fetch_one(
            "SELECT * FROM reports WHERE reporter_id = ? AND auction_id = ?",
            (reporter_id, auction_id),
        )
        return Report.from_row(row) if row else None

    def insert_report(self, report: Report) -> None:
        self.adapter.execute(
            "INSERT INTO reports (report_id, reporter_id, auction_id, category, description, outcome, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                report.report_id,
                report.reporter_id,
                report.auction_id,
                int(report.category),
                report.description,
                int(report.outcome),
                report.created_at,
            ),
        )

    def update_report_outcome(self, report_id: str, outcome: ReportOutcome) -> None:
        self.adapter.execute("UPDATE reports SET outcome = ? WHERE report_id = ?", (int(outcome), report_id))

    def count_pending_reports(self, auction_id: str) -> int:
        return int(self.adapter.scalar(
            "SELECT COUNT(*) FROM reports WHERE auction_id = ? AND outcome = ?",
            (auction_id, int(ReportOutcome.PENDING)),
        ))

    def list_reports(self, outcome: Optional[ReportOutcome] = None, limit: int = 50,
                     offset: int = 0) -> List[Report]:
        if outcome is None:
            rows = self.adapter.fetch_all(
                "SELECT * FROM reports ORDER BY created_at DESC LIMIT ? OFFSET ?", (limit, offset)
            )
        else:
            rows = self.adapter.fetch_all(
                "SELECT * FROM reports WHERE outcome = ? ORDER BY created_at DESC LIMIT ? OFFSET ?",
                (int(outcome), limit, offset),
            )
        return [Report.from_row(r) for r in rows]

    def set_moderation_status(self, auction_id: str, status: ModerationStatus) -> None:
        self.adapter.execute(
            "UPDATE auctions SET moderation_status = ? WHERE auction_id = ?",
            (int(status), auction_id),
        )

    # =========================================================================
    # Notifications
    # =========================================================================

    def insert_notification(self, notification: Notification) -> None:
        self.adapter.execute(
            "INSERT INTO notifications (notification_id, account_id, kind, payload, is_read, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                notification.notification_id,
                notification.account_id,
                notification.kind,
                json.dumps(notification.payload, sort_keys=True),
                int(notification.is_read),
                notification.created_at,
            ),
        )

    def list_notifications(self, account_id: str, unread_only: bool, limit: int,
                           offset: int) -> List[Notification]:
        sql = "SELECT * FROM notifications WHERE account_id = ?"
        if unread_only:
            sql += " AND is_read = 0"
        sql += " ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?"
        rows = self.adapter.fetch_all(sql, (account_id, limit, offset))
        return [Notification.from_row(r) for r in rows]

    def count_unread(self, account_id: str) -> int:
        return int(self.adapter.scalar(
            "SELECT COUNT(*) FROM notifications WHERE account_id = ? AND is_read = 0", (account_id,)
        ))

    def mark_notifications_read(self, account_id: str, notification_ids: Optional[Sequence[str]]) -> int:
        if notification_ids is None:
            return self.adapter.execute(
                "UPDATE notifications SET is_read = 1 WHERE account_id = ? AND is_read = 0", (account_id,)
            )
        if not notification_ids:
            return 0
        marks = ",".join("?" for _ in notification_ids)
        return self.adapter.execute(
            f"UPDATE notifications SET is_read = 1 WHERE account_id = ? AND notification_id IN ({marks})",
            (account_id, *notification_ids),
        )

    # =========================================================================
    # Sessions
    # =========================================================================

    def insert_session(self, token: str, account_id: str, expires_at: int) -> None:
        self.adapter.execute(
            "INSERT INTO sessions (token, account_id, expires_at) VALUES (?, ?, ?)",
            (token, account_id, expires_at),
        )

    def get_session(self, token: str) -> Optional[Tuple[str, int]]:
        row = self.adapter.fetch_one("SELECT account_id, expires_at FROM sessions WHERE token = ?", (token,))
        return (row["account_id"], row["expires_at"]) if row else None

    def delete_expired_sessions(self, now: int) -> int:
        return self.adapter.execute("DELETE FROM sessions WHERE expires_at <= ?", (now,))
