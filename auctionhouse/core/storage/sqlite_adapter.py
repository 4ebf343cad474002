import json
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from auctionhouse.utils.logger import get_logger

logger = get_logger("storage.sqlite")


class SQLiteAdapter:
    """
    SQLite backend for persistent storage.

    Provides:
    1. Auction records (one JSON document per auction id).
    2. Escrow state:
       - Refund ledger entries (auction id, principal) -> amount
       - Per-auction escrow totals (deposited, paid out)
    3. The notification stream.
    4. House metadata and a Key-Value store for collaborator state.
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
            self._conn_local.conn = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                check_same_thread=False
            )
            self._conn_local.conn.row_factory = sqlite3.Row
            # Enable WAL mode for better concurrency
            self._conn_local.conn.execute("PRAGMA journal_mode=WAL;")
            self._conn_local.conn.execute("PRAGMA synchronous=NORMAL;")
        return self._conn_local.conn

    def close(self):
        """Close the connection of the current thread."""
        conn = getattr(self._conn_local, "conn", None)
        if conn is not None:
            conn.close()
            del self._conn_local.conn

    def _init_schema(self):
        """Initialize database schema."""
        conn = self._get_conn()
        with conn:
            # 1. Auction records
            conn.execute("""
                CREATE TABLE IF NOT EXISTS auctions (
                    auction_id INTEGER PRIMARY KEY,
                    data TEXT NOT NULL
                )
            """)

            # 2. Refund ledger
            conn.execute("""
                CREATE TABLE IF NOT EXISTS refunds (
                    auction_id INTEGER NOT NULL,
                    principal TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    PRIMARY KEY (auction_id, principal)
                )
            """)

            # Amounts are stored as TEXT: they may exceed SQLite's 64-bit INTEGER
            conn.execute("""
                CREATE TABLE IF NOT EXISTS escrow_totals (
                    auction_id INTEGER PRIMARY KEY,
                    deposited TEXT NOT NULL,
                    paid_out TEXT NOT NULL
                )
            """)

            # 3. Notification stream
            conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    sequence INTEGER PRIMARY KEY,
                    auction_id INTEGER NOT NULL,
                    kind TEXT NOT NULL,
                    data TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_events_auction ON events(auction_id);")

            # 4. House metadata
            conn.execute("""
                CREATE TABLE IF NOT EXISTS house_state (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)

            # 5. KV Store
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    bucket TEXT NOT NULL DEFAULT 'default'
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_kv_bucket ON kv_store(bucket);")

    # =========================================================================
    # Key-Value Operations
    # =========================================================================

    def put(self, key: str, value: str, bucket: str = "default"):
        """Save a key-value pair."""
        conn = self._get_conn()
        with conn:
            conn.execute(
                "INSERT OR REPLACE INTO kv_store (key, value, bucket) VALUES (?, ?, ?)",
                (key, value, bucket)
            )

    def get(self, key: str) -> Optional[str]:
        """Get value by key."""
        conn = self._get_conn()
        cursor = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row['value'] if row else None

    # =========================================================================
    # House State Operations
    # =========================================================================

    def set_house_meta(self, key: str, value: str):
        conn = self._get_conn()
        with conn:
            conn.execute("INSERT OR REPLACE INTO house_state (key, value) VALUES (?, ?)", (key, value))

    def get_house_meta(self, key: str) -> Optional[str]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT value FROM house_state WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row['value'] if row else None

    # =========================================================================
    # Auction Operations
    # =========================================================================

    def get_all_auctions(self) -> List[Dict[str, Any]]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT data FROM auctions ORDER BY auction_id ASC")
        return [json.loads(row['data']) for row in cursor]

    def get_all_refunds(self) -> List[Tuple[int, str, int]]:
        """Get all (auction_id, principal, amount)."""
        conn = self._get_conn()
        cursor = conn.execute("SELECT auction_id, principal, amount FROM refunds")
        return [(row['auction_id'], row['principal'], int(row['amount'])) for row in cursor]

    def get_all_escrow_totals(self) -> List[Tuple[int, int, int]]:
        """Get all (auction_id, deposited, paid_out)."""
        conn = self._get_conn()
        cursor = conn.execute("SELECT auction_id, deposited, paid_out FROM escrow_totals")
        return [(row['auction_id'], int(row['deposited']), int(row['paid_out'])) for row in cursor]

    def persist_auction_update(
        self,
        auction_id: int,
        record_data: Dict[str, Any],
        refunds: Dict[str, int],
        deposited: int,
        paid_out: int,
        next_auction_id: Optional[int] = None,
        events: Sequence[Tuple[int, int, str, str]] = (),
    ):
        """
        Atomically replace one auction's record, ledger slice and totals,
        and append the events describing the change.

        Args:
            auction_id: Auction being written
            record_data: Serialized AuctionRecord
            refunds: Complete set of non-zero entries principal -> amount
            deposited: Escrow deposited total
            paid_out: Escrow paid out total
            next_auction_id: Id counter to store with the update
            events: (sequence, auction_id, kind, json) rows; a sequence that
                already exists raises sqlite3.IntegrityError
        """
        conn = self._get_conn()
        with conn:
            conn.execute(
                "INSERT OR REPLACE INTO auctions (auction_id, data) VALUES (?, ?)",
                (auction_id, json.dumps(record_data, sort_keys=True))
            )

            conn.execute("DELETE FROM refunds WHERE auction_id = ?", (auction_id,))
            conn.executemany(
                "INSERT INTO refunds (auction_id, principal, amount) VALUES (?, ?, ?)",
                [(auction_id, principal, str(amount)) for principal, amount in refunds.items()]
            )

            conn.execute(
                "INSERT OR REPLACE INTO escrow_totals (auction_id, deposited, paid_out) VALUES (?, ?, ?)",
                (auction_id, str(deposited), str(paid_out))
            )

            if next_auction_id is not None:
                conn.execute(
                    "INSERT OR REPLACE INTO house_state (key, value) VALUES (?, ?)",
                    ("next_auction_id", str(next_auction_id))
                )

            conn.executemany(
                "INSERT INTO events (sequence, auction_id, kind, data) VALUES (?, ?, ?, ?)",
                events
            )

    # =========================================================================
    # Event Operations
    # =========================================================================

    def get_all_events(self) -> List[str]:
        """Get all serialized events ordered by sequence."""
        conn = self._get_conn()
        cursor = conn.execute("SELECT data FROM events ORDER BY sequence ASC")
        return [row['data'] for row in cursor]
