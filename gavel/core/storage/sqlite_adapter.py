import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence

from gavel.utils.logger import get_logger

logger = get_logger("storage.sqlite")


class SQLiteAdapter:
    """
    SQLite backend for persistent storage.

    Provides:
    1. Marketplace schema (accounts, auctions, bids, settlements,
       reports, notifications, sessions) with uniqueness constraints
       for the cascade and report invariants.
    2. Re-entrant write transactions. The outermost transaction takes
       the database write lock up front (BEGIN IMMEDIATE), so a read
       followed by a write inside it can never act on a stale snapshot.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn_local = threading.local()

        if not db_path.parent.exists():
            db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create connection for current thread."""
        if not hasattr(self._conn_local, "conn"):
            conn = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                check_same_thread=False,
                isolation_level=None,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA foreign_keys=ON;")
            self._conn_local.conn = conn
            self._conn_local.depth = 0
        return self._conn_local.conn

    def _init_schema(self):
        """Initialize database schema."""
        with self.transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS accounts (
                    account_id TEXT PRIMARY KEY,
                    display_name TEXT,
                    strike_count INTEGER NOT NULL DEFAULT 0 CHECK (strike_count >= 0),
                    is_restricted INTEGER NOT NULL DEFAULT 0,
                    credits INTEGER NOT NULL DEFAULT 0 CHECK (credits >= 0),
                    created_at INTEGER NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS auctions (
                    auction_id TEXT PRIMARY KEY,
                    creator_id TEXT NOT NULL REFERENCES accounts(account_id),
                    title TEXT NOT NULL,
                    description TEXT NOT NULL,
                    image_ref TEXT NOT NULL,
                    tags TEXT NOT NULL DEFAULT '[]',
                    reserve_price INTEGER NOT NULL CHECK (reserve_price >= 0),
                    min_bid_increment INTEGER NOT NULL CHECK (min_bid_increment > 0),
                    start_time INTEGER NOT NULL,
                    end_time INTEGER NOT NULL,
                    status INTEGER NOT NULL,
                    moderation_status INTEGER NOT NULL,
                    winner_id TEXT REFERENCES accounts(account_id),
                    winning_bid INTEGER,
                    created_at INTEGER NOT NULL,
                    CHECK (end_time > start_time)
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_auction_status ON auctions(status);")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_auction_creator ON auctions(creator_id);")

            # seq is the authoritative acceptance order used for tie-breaks
            conn.execute("""
                CREATE TABLE IF NOT EXISTS bids (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    bid_id TEXT NOT NULL UNIQUE,
                    auction_id TEXT NOT NULL REFERENCES auctions(auction_id),
                    bidder_id TEXT NOT NULL REFERENCES accounts(account_id),
                    amount INTEGER NOT NULL CHECK (amount > 0),
                    collateral_locked INTEGER NOT NULL DEFAULT 0,
                    is_top INTEGER NOT NULL DEFAULT 0,
                    outbid_at INTEGER,
                    created_at INTEGER NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_bid_rank ON bids(auction_id, amount DESC, seq ASC);")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_bid_bidder ON bids(bidder_id, is_top);")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS settlements (
                    settlement_id TEXT PRIMARY KEY,
                    auction_id TEXT NOT NULL REFERENCES auctions(auction_id),
                    winner_id TEXT NOT NULL REFERENCES accounts(account_id),
                    payment_deadline INTEGER NOT NULL,
                    status INTEGER NOT NULL,
                    cascade_position INTEGER NOT NULL CHECK (cascade_position >= 1),
                    original_winner_id TEXT,
                    cascade_reason TEXT,
                    payment_tx_signature TEXT,
                    created_at INTEGER NOT NULL,
                    UNIQUE (auction_id, cascade_position)
                )
            """)
            # At most one pending payment window per auction
            conn.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_settlement_one_pending "
                "ON settlements(auction_id) WHERE status = 0;"
            )
            conn.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_settlement_tx "
                "ON settlements(payment_tx_signature) WHERE payment_tx_signature IS NOT NULL;"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_settlement_deadline ON settlements(status, payment_deadline);"
            )

            conn.execute("""
                CREATE TABLE IF NOT EXISTS reports (
                    report_id TEXT PRIMARY KEY,
                    reporter_id TEXT NOT NULL REFERENCES accounts(account_id),
                    auction_id TEXT NOT NULL REFERENCES auctions(auction_id),
                    category INTEGER NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    outcome INTEGER NOT NULL,
                    created_at INTEGER NOT NULL,
                    UNIQUE (reporter_id, auction_id)
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS notifications (
                    notification_id TEXT PRIMARY KEY,
                    account_id TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    payload TEXT NOT NULL DEFAULT '{}',
                    is_read INTEGER NOT NULL DEFAULT 0,
                    created_at INTEGER NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_notification_inbox ON notifications(account_id, created_at);"
            )

            conn.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    token TEXT PRIMARY KEY,
                    account_id TEXT NOT NULL,
                    expires_at INTEGER NOT NULL
                )
            """)

    # =========================================================================
    # Transactions
    # =========================================================================

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run a block as one atomic write transaction.

        Nested calls on the same thread join the outer transaction; only
        the outermost block commits or rolls back.
        """
        conn = self._get_conn()
        if self._conn_local.depth > 0:
            self._conn_local.depth += 1
            try:
                yield conn
            finally:
                self._conn_local.depth -= 1
            return

        conn.execute("BEGIN IMMEDIATE")
        self._conn_local.depth = 1
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        else:
            conn.execute("COMMIT")
        finally:
            self._conn_local.depth = 0

    # =========================================================================
    # Statements
    # =========================================================================

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute a write statement; returns affected row count."""
        conn = self._get_conn()
        cursor = conn.execute(sql, tuple(params))
        return cursor.rowcount

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[sqlite3.Row]:
        conn = self._get_conn()
        return conn.execute(sql, tuple(params)).fetchone()

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        conn = self._get_conn()
        return conn.execute(sql, tuple(params)).fetchall()

    def scalar(self, sql: str, params: Sequence[Any] = ()) -> Any:
        row = self.fetch_one(sql, params)
        return row[0] if row else None

    def close(self) -> None:
        """Close this thread's connection."""
        conn = getattr(self._conn_local, "conn", None)
        if conn is not None:
            conn.close()
            del self._conn_local.conn
