"""
External collaborators - asset custody and payment rail.

The auction core never moves assets or funds itself; it asks a custody
service to transfer the listed asset and a payment rail to pay out escrow.
Both are pluggable backends behind the interfaces below.

Compensation:
-------------
A single auction operation may need several external steps (forward the
cancellation fee, then return the asset). If a later step fails the earlier
ones must not remain observable, so every backend also exposes the inverse
of its transfer (`revert_transfer`, `reverse`). The settlement journal
(auctionhouse.core.settlement) calls these to unwind a partially executed
settlement.

The Simulated* implementations are in-memory, thread-safe and support
failure injection. They back the CLI, the demo and the test suite.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Set

from auctionhouse.crypto import normalize_address
from auctionhouse.utils.logger import get_logger

logger = get_logger("collaborators")


# =============================================================================
# Asset Reference
# =============================================================================


@dataclass(frozen=True)
class AssetRef:
    """
    Opaque reference to a custodied asset.

    Attributes:
        contract: Address of the custody contract / collection
        token_id: Token id within that collection
    """
    contract: str
    token_id: int

    @property
    def key(self) -> str:
        return f"{self.contract}:{self.token_id}"

    @classmethod
    def from_key(cls, key: str) -> "AssetRef":
        contract, token_id = key.rsplit(":", 1)
        return cls(contract=contract, token_id=int(token_id))

    def normalized(self) -> "AssetRef":
        return AssetRef(contract=normalize_address(self.contract), token_id=self.token_id)

    def __str__(self) -> str:
        return f"{self.contract[:10]}...#{self.token_id}"


# =============================================================================
# Interfaces
# =============================================================================


class CustodyService(ABC):
    """Holds listed assets and performs ownership transfers on request."""

    @abstractmethod
    def approved_for(self, asset: AssetRef) -> bool:
        """Whether the auction house may transfer this asset."""

    @abstractmethod
    def transfer_in(self, asset: AssetRef, from_: str, to: str) -> bool:
        """Move an approved asset from its owner into house custody."""

    @abstractmethod
    def transfer_out(self, asset: AssetRef, from_: str, to: str) -> bool:
        """Release an asset from house custody."""

    @abstractmethod
    def revert_transfer(self, asset: AssetRef, from_: str, to: str) -> None:
        """Undo a transfer executed within the current settlement."""


class PaymentRail(ABC):
    """Executes pay-outs from escrow."""

    @abstractmethod
    def pay(self, to: str, amount: int) -> bool:
        """Pay `amount` from escrow to `to`. Returns success."""

    @abstractmethod
    def reverse(self, to: str, amount: int) -> None:
        """Claw back a payment executed within the current settlement."""


# =============================================================================
# Simulated Custody
# =============================================================================


class SimulatedCustody(CustodyService):
    """
    In-memory non-fungible token custodian.

    Tracks one owner per asset and one approved operator per asset, the
    way single-token approvals work on NFT contracts.
    """

    def __init__(self, operator: str):
        """
        Args:
            operator: Address whose approval `approved_for` checks
                (the auction house)
        """
        self.operator = normalize_address(operator)
        self.owners: Dict[AssetRef, str] = {}
        self.approvals: Dict[AssetRef, str] = {}

        # Failure injection
        self.frozen: Set[AssetRef] = set()
        self.fail_all = False

        self._lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Asset administration (outside the auction core)
    # -------------------------------------------------------------------------

    def mint(self, asset: AssetRef, owner: str) -> AssetRef:
        asset = asset.normalized()
        with self._lock:
            if asset in self.owners:
                raise ValueError(f"Asset {asset.key} already exists")
            self.owners[asset] = normalize_address(owner)
        logger.debug(f"Minted {asset} to {owner}")
        return asset

    def approve(self, owner: str, asset: AssetRef, operator: Optional[str] = None) -> None:
        asset = asset.normalized()
        owner = normalize_address(owner)
        with self._lock:
            if self.owners.get(asset) != owner:
                raise PermissionError(f"{owner} does not own {asset.key}")
            self.approvals[asset] = normalize_address(operator or self.operator)

    def owner_of(self, asset: AssetRef) -> Optional[str]:
        return self.owners.get(asset.normalized())

    # -------------------------------------------------------------------------
    # CustodyService
    # -------------------------------------------------------------------------

    def approved_for(self, asset: AssetRef) -> bool:
        asset = asset.normalized()
        return asset in self.owners and self.approvals.get(asset) == self.operator

    def transfer_in(self, asset: AssetRef, from_: str, to: str) -> bool:
        asset = asset.normalized()
        with self._lock:
            if self._blocked(asset):
                return False
            if self.owners.get(asset) != normalize_address(from_):
                return False
            if self.approvals.get(asset) != self.operator:
                return False
            self.owners[asset] = normalize_address(to)
            self.approvals.pop(asset, None)
        return True

    def transfer_out(self, asset: AssetRef, from_: str, to: str) -> bool:
        asset = asset.normalized()
        with self._lock:
            if self._blocked(asset):
                return False
            if self.owners.get(asset) != normalize_address(from_):
                return False
            self.owners[asset] = normalize_address(to)
            self.approvals.pop(asset, None)
        return True

    def revert_transfer(self, asset: AssetRef, from_: str, to: str) -> None:
        asset = asset.normalized()
        with self._lock:
            if self.owners.get(asset) == normalize_address(to):
                self.owners[asset] = normalize_address(from_)

    def _blocked(self, asset: AssetRef) -> bool:
        return self.fail_all or asset in self.frozen

    # -------------------------------------------------------------------------
    # Serialization (CLI state)
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            "operator": self.operator,
            "owners": {a.key: o for a, o in self.owners.items()},
            "approvals": {a.key: o for a, o in self.approvals.items()},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SimulatedCustody":
        custody = cls(operator=data["operator"])
        custody.owners = {AssetRef.from_key(k): v for k, v in data.get("owners", {}).items()}
        custody.approvals = {AssetRef.from_key(k): v for k, v in data.get("approvals", {}).items()}
        return custody


# =============================================================================
# Simulated Payment Rail
# =============================================================================


class SimulatedPaymentRail(PaymentRail):
    """
    In-memory payment rail.

    Records every amount paid out of escrow per payee. Payees listed in
    `rejecting` refuse incoming payments (like a contract without a
    receive hook).
    """

    def __init__(self):
        self.received: Dict[str, int] = {}
        self.total_paid: int = 0

        # Failure injection
        self.rejecting: Set[str] = set()
        self.fail_all = False

        self._lock = threading.Lock()

    def balance_of(self, principal: str) -> int:
        return self.received.get(normalize_address(principal), 0)

    def reject_payments_to(self, principal: str) -> None:
        self.rejecting.add(normalize_address(principal))

    def accept_payments_to(self, principal: str) -> None:
        self.rejecting.discard(normalize_address(principal))

    def pay(self, to: str, amount: int) -> bool:
        to = normalize_address(to)
        if amount < 0:
            return False
        with self._lock:
            if self.fail_all or to in self.rejecting:
                logger.debug(f"Payment of {amount} to {to} rejected")
                return False
            self.received[to] = self.received.get(to, 0) + amount
            self.total_paid += amount
        return True

    def reverse(self, to: str, amount: int) -> None:
        to = normalize_address(to)
        with self._lock:
            self.received[to] = self.received.get(to, 0) - amount
            self.total_paid -= amount

    def to_dict(self) -> dict:
        return {"received": dict(self.received), "total_paid": self.total_paid}

    @classmethod
    def from_dict(cls, data: dict) -> "SimulatedPaymentRail":
        rail = cls()
        rail.received = {k: int(v) for k, v in data.get("received", {}).items()}
        rail.total_paid = int(data.get("total_paid", 0))
        return rail
