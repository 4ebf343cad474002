import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from auctionhouse.core.storage.sqlite_adapter import SQLiteAdapter
from auctionhouse.utils.logger import get_logger

logger = get_logger("storage.manager")


class StorageManager:
    """
    Manages persistent storage for the auction house.

    Coordinates data persistence using SQLite adapter.
    Handles:
    - Auction records, refund ledger and escrow totals
    - The notification stream
    - Metadata (id counter) and simulated collaborator state
    """

    def __init__(self, data_dir: Path, db_name: str = "auctionhouse.db"):
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / db_name
        self.adapter = SQLiteAdapter(self.db_path)

        logger.info(f"StorageManager initialized at {self.db_path}")

    def close(self):
        self.adapter.close()

    # =========================================================================
    # House State (Metadata)
    # =========================================================================

    def get_next_auction_id(self) -> Optional[int]:
        value = self.adapter.get_house_meta("next_auction_id")
        return int(value) if value else None

    # =========================================================================
    # Auctions & Escrow
    # =========================================================================

    def persist_auction_update(
        self,
        record_data: Dict[str, Any],
        refunds: Dict[str, int],
        deposited: int,
        paid_out: int,
        next_auction_id: Optional[int] = None,
        events: Sequence[Any] = (),
    ):
        """Atomically persist one auction's state together with its new events."""
        self.adapter.persist_auction_update(
            record_data["auction_id"],
            record_data,
            refunds,
            deposited,
            paid_out,
            next_auction_id,
            [
                (event.sequence, event.auction_id, event.kind.value, event.model_dump_json())
                for event in events
            ],
        )

    def load_house_state(self) -> Tuple[List, List, List]:
        """
        Load full auction state.

        Returns:
            (records, refunds, totals)
            records: List[dict]
            refunds: List[(auction_id, principal, amount)]
            totals: List[(auction_id, deposited, paid_out)]
        """
        records = self.adapter.get_all_auctions()
        refunds = self.adapter.get_all_refunds()
        totals = self.adapter.get_all_escrow_totals()
        return records, refunds, totals

    # =========================================================================
    # Events
    # =========================================================================

    def load_events(self) -> List[str]:
        return self.adapter.get_all_events()

    # =========================================================================
    # Collaborator State
    # =========================================================================

    def save_blob(self, key: str, data: Dict[str, Any]):
        self.adapter.put(key, json.dumps(data, sort_keys=True), bucket="collaborators")

    def load_blob(self, key: str) -> Optional[Dict[str, Any]]:
        value = self.adapter.get(key)
        return json.loads(value) if value else None
