"""
Input Validation - Sanitization of caller-supplied values.

Every externally visible operation validates its inputs before touching
state, so malformed values never reach the registry or the ledger:
- Principals must be well-formed, non-zero addresses
- Amounts must be integers within bounds (bools rejected)
- Durations and prices must be positive
"""

from typing import Any, Tuple

from auctionhouse.crypto import is_valid_address, is_zero_address

# =============================================================================
# Constants
# =============================================================================

MIN_AMOUNT = 0
MAX_AMOUNT = 2**256 - 1
MAX_TOKEN_ID = 2**256 - 1
MAX_DURATION_DAYS = 365 * 10


# =============================================================================
# Validation Functions
# =============================================================================


def validate_integer(
    value: Any,
    name: str,
    min_val: int = MIN_AMOUNT,
    max_val: int = MAX_AMOUNT,
) -> Tuple[bool, str]:
    """
    Validate integer within bounds.

    Args:
        value: Value to validate
        name: Field name for errors
        min_val: Minimum allowed value
        max_val: Maximum allowed value

    Returns:
        (is_valid, error_message)
    """
    # bool is an int subclass; True must not pass as an amount of 1
    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{name} must be int, got {type(value).__name__}"

    if value < min_val:
        return False, f"{name} must be >= {min_val}, got {value}"

    if value > max_val:
        return False, f"{name} must be <= {max_val}, got {value}"

    return True, ""


def validate_amount(amount: Any, name: str = "amount") -> Tuple[bool, str]:
    """Validate an attached fund amount (zero allowed)."""
    return validate_integer(amount, name, MIN_AMOUNT, MAX_AMOUNT)


def validate_price(price: Any, name: str = "floor_price") -> Tuple[bool, str]:
    """Validate a strictly positive price."""
    return validate_integer(price, name, 1, MAX_AMOUNT)


def validate_duration(days: Any, min_days: int = 1) -> Tuple[bool, str]:
    """Validate an auction duration in days."""
    return validate_integer(days, "duration_days", min_days, MAX_DURATION_DAYS)


def validate_token_id(token_id: Any) -> Tuple[bool, str]:
    return validate_integer(token_id, "token_id", 0, MAX_TOKEN_ID)


def validate_address(address: Any, name: str = "address") -> Tuple[bool, str]:
    """
    Validate a principal address.

    Must be a 0x-prefixed, 20-byte hex string and must not be the zero
    address.
    """
    if not isinstance(address, str):
        return False, f"{name} must be str, got {type(address).__name__}"

    if not is_valid_address(address):
        return False, f"{name} is not a valid address: {address!r}"

    if is_zero_address(address):
        return False, f"{name} must not be the zero address"

    return True, ""


def validate_auction_id(auction_id: Any) -> Tuple[bool, str]:
    return validate_integer(auction_id, "auction_id", 1, 2**63 - 1)
