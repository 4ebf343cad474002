"""
Notification stream - Append-only audit trail of auction state changes.

Every committed operation appends one event. Events are immutable once
appended and chained by hash:

    event_hash = keccak256(previous_hash || canonical_json(event body))

so any rewrite of history is detected by `verify_chain()`. The house stages
an operation's events and writes them in the same storage transaction as the
state change they describe, so the persisted stream has no gaps. Observers
registered with `subscribe()` are called synchronously after each append;
an observer failure is logged and never affects the committed operation.
"""

import json
import threading
import time
from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from auctionhouse.crypto import keccak256
from auctionhouse.utils.logger import get_logger

logger = get_logger("events")

GENESIS_HASH = "0x" + "00" * 32


class EventKind(str, Enum):
    """Classification of auction notifications."""
    ITEM_CREATED = "item_created"
    BID_RAISED = "bid_raised"
    AUCTION_CANCELLED = "auction_cancelled"
    FUNDS_WITHDRAWN = "funds_withdrawn"
    AUCTION_ENDED = "auction_ended"


class AuctionEvent(BaseModel):
    """One entry of the notification stream."""

    model_config = ConfigDict(frozen=True)

    sequence: int = Field(ge=1)
    kind: EventKind
    auction_id: int = Field(ge=1)
    timestamp: int
    data: Dict[str, Any] = Field(default_factory=dict)
    previous_hash: str = GENESIS_HASH
    event_hash: str = ""

    def body_bytes(self) -> bytes:
        body = self.model_dump(mode="json", exclude={"event_hash", "previous_hash"})
        return json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")

    def compute_hash(self) -> str:
        return "0x" + keccak256(bytes.fromhex(self.previous_hash[2:]) + self.body_bytes()).hex()


Observer = Callable[[AuctionEvent], None]


class EventLog:
    """
    Append-only, hash-chained notification stream.

    Attributes:
        events: All events in append order
    """

    def __init__(self, clock: Optional[Callable[[], int]] = None):
        self.events: List[AuctionEvent] = []
        self._observers: List[Observer] = []
        self._clock = clock or (lambda: int(time.time()))
        self._lock = threading.Lock()

    # =========================================================================
    # Append
    # =========================================================================

    @contextmanager
    def staged(
        self,
        auction_id: int,
        entries: Sequence[Tuple[EventKind, Dict[str, Any]]],
    ) -> Iterator[List[AuctionEvent]]:
        """
        Build the next events and append them only if the block succeeds.

        The stream is locked for the duration of the block, so the staged
        sequence numbers and hashes stay valid while the caller persists
        them. Observers are notified after the events are appended.

            with log.staged(auction_id, [(EventKind.BID_RAISED, data)]) as events:
                storage.persist_auction_update(..., events=events)
        """
        with self._lock:
            events = []
            previous = self.events[-1].event_hash if self.events else GENESIS_HASH
            for kind, data in entries:
                event = AuctionEvent(
                    sequence=len(self.events) + len(events) + 1,
                    kind=kind,
                    auction_id=auction_id,
                    timestamp=self._clock(),
                    data=data,
                    previous_hash=previous,
                )
                event = event.model_copy(update={"event_hash": event.compute_hash()})
                events.append(event)
                previous = event.event_hash

            yield events

            self.events.extend(events)
            observers = list(self._observers)

        for event in events:
            logger.debug(f"Event #{event.sequence} {event.kind.value} auction {auction_id}")
            for observer in observers:
                try:
                    observer(event)
                except Exception as e:
                    logger.error(f"Observer {observer!r} failed on event #{event.sequence}: {e}")

    def append(self, kind: EventKind, auction_id: int, **data: Any) -> AuctionEvent:
        """Append a single event and notify observers."""
        with self.staged(auction_id, [(kind, data)]) as events:
            pass
        return events[0]

    def load(self, events: List[AuctionEvent]) -> None:
        """Restore persisted history (no observer notification)."""
        with self._lock:
            self.events = sorted(events, key=lambda e: e.sequence)

    # =========================================================================
    # Observers
    # =========================================================================

    def subscribe(self, observer: Observer) -> None:
        with self._lock:
            self._observers.append(observer)

    def unsubscribe(self, observer: Observer) -> None:
        with self._lock:
            if observer in self._observers:
                self._observers.remove(observer)

    # =========================================================================
    # Queries
    # =========================================================================

    def for_auction(self, auction_id: int) -> List[AuctionEvent]:
        return [e for e in self.events if e.auction_id == auction_id]

    def of_kind(self, kind: EventKind) -> List[AuctionEvent]:
        return [e for e in self.events if e.kind == kind]

    def last(self) -> Optional[AuctionEvent]:
        return self.events[-1] if self.events else None

    def __len__(self) -> int:
        return len(self.events)

    def verify_chain(self) -> bool:
        """Check sequence numbers and hash links of the whole stream."""
        previous = GENESIS_HASH
        for index, event in enumerate(self.events, start=1):
            if event.sequence != index:
                return False
            if event.previous_hash != previous:
                return False
            if event.compute_hash() != event.event_hash:
                return False
            previous = event.event_hash
        return True
