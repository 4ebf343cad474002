"""
Error kinds raised by auction house operations.

Every failure is synchronous and visible to the caller; nothing is retried
internally. The operation that raised has been rolled back completely by the
time the exception propagates.
"""

from typing import Optional


class AuctionError(Exception):
    """Base class for all auction house failures."""

    kind = "auction_error"

    def __init__(self, message: str, auction_id: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.auction_id = auction_id

    def __str__(self) -> str:
        if self.auction_id is None:
            return self.message
        return f"auction {self.auction_id}: {self.message}"


class InvalidInput(AuctionError):
    """Zero address/asset, malformed principal, non-positive duration or price."""
    kind = "invalid_input"


class AuctionNotFound(InvalidInput):
    """No record for the requested auction id."""
    kind = "auction_not_found"


class Unauthorized(AuctionError):
    """Wrong caller for a role-gated operation."""
    kind = "unauthorized"


class AuctionClosed(AuctionError):
    """Auction expired, already sold, or already ended."""
    kind = "auction_closed"


class BidTooLow(AuctionError):
    """Bid below the floor, or not strictly above the current highest bid."""
    kind = "bid_too_low"


class NotEligible(AuctionError):
    """Withdraw/bid/increase attempted by a caller the rules exclude."""
    kind = "not_eligible"


class PaymentFailed(AuctionError):
    """Payment rail or custody transfer reported failure."""
    kind = "payment_failed"


class AlreadyFinalized(AuctionError):
    """Finalization already performed for this auction."""
    kind = "already_finalized"


__all__ = [
    "AuctionError",
    "InvalidInput",
    "AuctionNotFound",
    "Unauthorized",
    "AuctionClosed",
    "BidTooLow",
    "NotEligible",
    "PaymentFailed",
    "AlreadyFinalized",
]
