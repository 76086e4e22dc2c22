"""
payment.py - Payment methods

The transaction state machine talks to payment only through the
PaymentMethod protocol, so a different variant (e.g. a card reader) can be
dropped in without touching the dispense logic. CashPayment is the only
variant shipped.

Payment methods are immutable: accept() returns a new instance.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Protocol, Tuple, runtime_checkable

from .core import (
    Denomination,
    InsufficientPaymentError,
    coins_total, format_amount,
)
from .cash_ledger import CashLedger


@runtime_checkable
class PaymentMethod(Protocol):
    """
    Capability interface for a way of paying.

    accept() takes in one unit of payment, validate() checks that the price
    is covered, settle() moves the money into the machine and returns the
    change, refund() returns what the customer handed over.
    """

    @property
    def total(self) -> int:
        """Amount tendered so far, in minor units."""
        ...

    def accept(self, tender: Denomination) -> 'PaymentMethod':
        ...

    def validate(self, price: int) -> None:
        """Raise InsufficientPaymentError if the tendered amount is below price."""
        ...

    def settle(self, cash: CashLedger, price: int) -> Tuple[Denomination, ...]:
        """
        Complete the payment against the till.

        Must either apply fully or raise without mutating the ledger.
        """
        ...

    def refund(self) -> Tuple[Denomination, ...]:
        ...


@dataclass(frozen=True, slots=True)
class CashPayment:
    """
    Coins held in escrow for the pending transaction.

    The inserted coins are not part of the cash ledger until settle().
    """
    coins: Tuple[Denomination, ...] = ()

    @property
    def total(self) -> int:
        return coins_total(self.coins)

    def accept(self, tender: Denomination) -> CashPayment:
        return CashPayment(coins=self.coins + (tender,))

    def validate(self, price: int) -> None:
        if self.total < price:
            raise InsufficientPaymentError(
                f"Inserted {format_amount(self.total)}, price is {format_amount(price)}"
            )

    def settle(self, cash: CashLedger, price: int) -> Tuple[Denomination, ...]:
        """
        Pay price out of the escrowed coins.

        Change is chosen from the till as it stood before this payment, then
        removed, and only then are the escrowed coins added to the till.

        Raises:
            InsufficientPaymentError: If the coins do not cover price
            InsufficientChangeError: If exact change is unavailable (till untouched)
            LedgerUnderflowError: If the till lost coins between choice and removal
        """
        self.validate(price)
        change = cash.make_change(self.total - price)
        cash.commit_change(change)
        cash.deposit(self.coins)
        return change

    def refund(self) -> Tuple[Denomination, ...]:
        return self.coins
