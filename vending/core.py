"""
Core types for the vending machine ledger system.

This module provides the foundational data structures shared by every other module:
1. Immutable value objects: Denomination, Product
2. Result types returned to callers: Selection, Balance, DispenseResult, Refund
3. TransactionState and TransactionOutcome enums
4. Exceptions: VendingError and the domain-specific error types
5. Constants

All money is an int in minor units (cents). Nothing in this package uses
float or Decimal for currency.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple


# ============================================================================
# CONSTANTS
# ============================================================================

# Caller identity used when an operation does not name one (the machine's own
# keypad and coin slot).
FRONT_PANEL = "front_panel"


def _require_money(value: Any, what: str) -> None:
    """Reject anything that is not a plain int amount of minor units."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{what} must be an int in minor units, got {type(value).__name__}")


def format_amount(amount: int) -> str:
    """Render minor units as a dollar string, e.g. 125 -> '$1.25'."""
    sign = "-" if amount < 0 else ""
    dollars, cents = divmod(abs(amount), 100)
    return f"{sign}${dollars}.{cents:02d}"


# ============================================================================
# ENUMS
# ============================================================================

class TransactionState(Enum):
    """
    Lifecycle of a single purchase attempt.

    IDLE: No pending transaction.
    SELECTING: A product is selected, no coins inserted yet.
    FUNDING: Coins inserted, total still below the price.
    READY: Inserted total covers the price.
    DISPENSING: Stock and change are being committed.
    COMPLETE / REFUNDING / CANCELLED: Terminal; the machine returns to IDLE.
    """
    IDLE = "idle"
    SELECTING = "selecting"
    FUNDING = "funding"
    READY = "ready"
    DISPENSING = "dispensing"
    COMPLETE = "complete"
    REFUNDING = "refunding"
    CANCELLED = "cancelled"


class TransactionOutcome(Enum):
    """How a pending transaction left the machine."""
    DISPENSED = "dispensed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    RESET = "reset"


# ============================================================================
# VALUE OBJECTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Denomination:
    """
    One accepted coin or note.

    Attributes:
        name: Unique identifier of the denomination (e.g., "quarter").
        value: Face value in minor units (must be > 0).
    """
    name: str
    value: int

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Denomination name cannot be empty")
        _require_money(self.value, "Denomination value")
        if self.value <= 0:
            raise ValueError(f"Denomination value must be positive, got {self.value}")

    def __repr__(self) -> str:
        return f"Denomination({self.name}={format_amount(self.value)})"


@dataclass(frozen=True, slots=True)
class Product:
    """
    A stockable good. Identity is the id, never the name or price.

    Attributes:
        id: Unique key used by the stock ledger (e.g., "A1").
        name: Display name.
        price: Price in minor units (must be > 0).
    """
    id: str
    name: str
    price: int

    def __post_init__(self):
        if not self.id or not self.id.strip():
            raise ValueError("Product id cannot be empty")
        if not self.name or not self.name.strip():
            raise ValueError("Product name cannot be empty")
        _require_money(self.price, "Product price")
        if self.price <= 0:
            raise ValueError(f"Product price must be positive, got {self.price}")

    def __repr__(self) -> str:
        return f"Product({self.id}, {self.name}, {format_amount(self.price)})"


def coins_total(coins: Tuple[Denomination, ...]) -> int:
    """Sum the face value of a sequence of coins."""
    return sum(coin.value for coin in coins)


# ============================================================================
# RESULTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Selection:
    """Outcome of a successful product selection."""
    product: Product
    available: int


@dataclass(frozen=True, slots=True)
class Balance:
    """
    Payment progress of the pending transaction.

    remaining is how much is still owed (0 once the price is covered).
    price is None when no product is selected.
    """
    inserted_total: int
    price: Optional[int]
    state: TransactionState

    @property
    def remaining(self) -> int:
        if self.price is None:
            return 0
        return max(self.price - self.inserted_total, 0)


@dataclass(frozen=True, slots=True)
class DispenseResult:
    """A completed purchase: the product and the change handed back."""
    product: Product
    change: Tuple[Denomination, ...]
    paid: int

    @property
    def change_total(self) -> int:
        return coins_total(self.change)


@dataclass(frozen=True, slots=True)
class Refund:
    """Coins handed back to the customer, exactly as they were inserted."""
    coins: Tuple[Denomination, ...]
    reason: str

    @property
    def total(self) -> int:
        return coins_total(self.coins)


# ============================================================================
# EXCEPTIONS
# ============================================================================

class VendingError(Exception):
    """
    Base exception for all vending-related errors.

    Errors raised after the customer's coins were handed back carry the
    Refund on the refund attribute; otherwise refund is None.
    """

    def __init__(self, message: str = "", refund: Optional[Refund] = None):
        super().__init__(message)
        self.refund = refund


class ProductNotFoundError(VendingError):
    """Raised when a product id is not in the catalog."""
    pass


class OutOfStockError(VendingError):
    """Raised when the selected product has no units left."""
    pass


class InsufficientPaymentError(VendingError):
    """Raised when dispense is attempted before the price is covered."""
    pass


class InsufficientChangeError(VendingError):
    """Raised when the till cannot make exact change from its current holdings."""
    pass


class LedgerUnderflowError(VendingError):
    """Raised when a commit would drive a held count below zero."""
    pass


class MachineBusyError(VendingError):
    """Raised when another caller holds the machine or its pending transaction."""
    pass


class InvalidStateError(VendingError):
    """Raised when an operation is not allowed in the current transaction state."""
    pass


class UnknownDenominationError(VendingError):
    """Raised when a coin is not part of the configured denomination table."""
    pass


class MachineClosedError(VendingError):
    """Raised when operating a machine after close()."""
    pass
