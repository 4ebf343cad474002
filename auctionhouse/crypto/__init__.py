"""
Cryptographic primitives for the auction house.

This module provides:
- Keccak-256 hashing
- Key generation for principals (secp256k1)
- Address derivation and formatting (Ethereum-style)

Design Notes:
-------------
Principals are opaque 20-byte addresses. We derive them the same way EVM
chains do so that addresses produced by wallets, the CLI and the tests are
interchangeable:

    address = keccak256(public_key)[-20:]

Keccak-256 is also used to chain the notification stream (see
auctionhouse.core.events).
"""

import secrets
from dataclasses import dataclass

from Crypto.Hash import keccak
from py_ecc.secp256k1 import secp256k1


# =============================================================================
# Constants
# =============================================================================

# secp256k1 curve order (number of points on the curve)
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

ADDRESS_SIZE = 20
ZERO_ADDRESS = "0x" + "00" * ADDRESS_SIZE


# =============================================================================
# Hashing
# =============================================================================


def keccak256(data: bytes) -> bytes:
    """
    Compute Keccak-256 hash (Ethereum-style).

    Used for: address derivation, checksums, event chaining.
    """
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


# =============================================================================
# Key Generation
# =============================================================================


@dataclass
class KeyPair:
    """
    An ECDSA keypair on secp256k1.

    Attributes:
        private_key: 32-byte secret key (integer in [1, order-1])
        public_key: 64-byte uncompressed public key (x || y coordinates)
    """
    private_key: bytes  # 32 bytes
    public_key: bytes   # 64 bytes (uncompressed, no 0x04 prefix)

    @property
    def address(self) -> str:
        """Checksummed address of this keypair."""
        return address_from_public_key(self.public_key)

    @property
    def public_key_hex(self) -> str:
        return self.public_key.hex()


def generate_keypair() -> KeyPair:
    """
    Generate a new random keypair.

    Uses cryptographically secure random number generator.
    """
    private_key_int = secrets.randbelow(SECP256K1_ORDER - 1) + 1
    private_key = private_key_int.to_bytes(32, byteorder="big")
    return KeyPair(private_key=private_key, public_key=private_key_to_public_key(private_key))


def private_key_to_public_key(private_key: bytes) -> bytes:
    """
    Derive public key from private key.

    Args:
        private_key: 32-byte private key

    Returns:
        64-byte uncompressed public key
    """
    if len(private_key) != 32:
        raise ValueError("Private key must be 32 bytes")

    public_key_point = secp256k1.privtopub(private_key)
    x_bytes = public_key_point[0].to_bytes(32, byteorder="big")
    y_bytes = public_key_point[1].to_bytes(32, byteorder="big")
    return x_bytes + y_bytes


# =============================================================================
# Addresses
# =============================================================================


def address_from_public_key(public_key: bytes) -> str:
    """
    Derive a checksummed address from a 64-byte public key.

    address = keccak256(public_key)[-20:]
    """
    if len(public_key) != 64:
        raise ValueError("Public key must be 64 bytes")
    return to_checksum_address(keccak256(public_key)[-ADDRESS_SIZE:])


def address_from_label(label: str) -> str:
    """
    Deterministic address for a human readable label.

    Handy for well-known system principals (house, operator) and fixtures.
    """
    return to_checksum_address(keccak256(label.encode("utf-8"))[-ADDRESS_SIZE:])


def to_checksum_address(address) -> str:
    """
    EIP-55 mixed-case checksum encoding.

    Accepts 20 raw bytes or a hex string (any case, with or without 0x).
    """
    if isinstance(address, (bytes, bytearray)):
        raw_hex = bytes(address).hex()
    else:
        raw_hex = hex_to_bytes(address).hex()
    if len(raw_hex) != ADDRESS_SIZE * 2:
        raise ValueError(f"Address must be {ADDRESS_SIZE} bytes, got {len(raw_hex) // 2}")

    digest = keccak256(raw_hex.encode("ascii")).hex()
    return "0x" + "".join(
        c.upper() if c.isalpha() and int(digest[i], 16) >= 8 else c
        for i, c in enumerate(raw_hex)
    )


def normalize_address(address: str) -> str:
    """Canonical (checksummed) form of an address string."""
    return to_checksum_address(address)


def is_valid_address(address) -> bool:
    """Check if value is a well-formed 0x-prefixed address string."""
    if not isinstance(address, str):
        return False
    if not address.startswith("0x"):
        return False
    if len(address) != 2 + ADDRESS_SIZE * 2:  # 0x + 40 hex chars
        return False
    try:
        int(address, 16)
        return True
    except ValueError:
        return False


def is_zero_address(address: str) -> bool:
    return is_valid_address(address) and int(address, 16) == 0


# =============================================================================
# Utility Functions
# =============================================================================


def hex_to_bytes(hex_str: str) -> bytes:
    """Convert hex string (with or without 0x prefix) to bytes."""
    if hex_str.startswith("0x") or hex_str.startswith("0X"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)
