"""
transaction.py - Transaction State Machine

Orchestrates one purchase attempt at a time over the stock and cash ledgers:

    IDLE -> SELECTING -> FUNDING -> READY -> DISPENSING -> COMPLETE  -> IDLE
                                                       -> REFUNDING -> IDLE
    (any state but DISPENSING)  -> CANCELLED -> IDLE

Refund policy lives here and nowhere else. Ledger errors are never resolved
by the ledgers themselves:
    - InsufficientPaymentError, OutOfStockError at selection: the transaction
      stays open for a retry or top-up.
    - OutOfStockError, InsufficientChangeError at dispense: every inserted
      coin is handed back and the error is raised with .refund set.
    - LedgerUnderflowError: invariant breach. Logged, stock rolled back,
      customer refunded, error re-raised.
    - Any other failure while a payment method settles: stock rolled back,
      customer refunded, error re-raised.

Every transaction that leaves the machine appends a TransactionRecord to
the audit log.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, List, Optional, Tuple
import logging

from .core import (
    Denomination, Product,
    Selection, Balance, DispenseResult, Refund,
    TransactionState, TransactionOutcome,
    VendingError, InvalidStateError, InsufficientPaymentError,
    OutOfStockError, InsufficientChangeError, LedgerUnderflowError,
    FRONT_PANEL, coins_total, format_amount,
)
from .cash_ledger import CashLedger
from .stock_ledger import StockLedger
from .payment import PaymentMethod, CashPayment

logger = logging.getLogger(__name__)


_SELECTABLE = (TransactionState.IDLE, TransactionState.SELECTING)
_ACCEPTS_COINS = (TransactionState.SELECTING, TransactionState.FUNDING, TransactionState.READY)


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    The single in-flight purchase attempt.

    Attributes:
        selected_product: Product chosen by the customer
        payment: Tendered payment, held in escrow
        state: Current TransactionState
        owner: Caller that opened the transaction
    """
    selected_product: Optional[Product]
    payment: PaymentMethod
    state: TransactionState
    owner: str = FRONT_PANEL

    @property
    def inserted_coins(self) -> Tuple[Denomination, ...]:
        return self.payment.refund()

    @property
    def inserted_total(self) -> int:
        return self.payment.total


@dataclass(frozen=True, slots=True)
class TransactionRecord:
    """
    Audit entry for a transaction that left the machine.

    Attributes:
        sequence: Monotonic position in the machine's log
        outcome: DISPENSED, CANCELLED, REFUNDED or RESET
        owner: Caller that opened the transaction
        product_id: Selected product, if any
        inserted: Coins the customer inserted
        change: Coins paid out as change (DISPENSED only)
        reason: Human-readable cause for non-dispense outcomes
        timestamp: When the record was written
    """
    sequence: int
    outcome: TransactionOutcome
    owner: str
    product_id: Optional[str]
    inserted: Tuple[Denomination, ...]
    change: Tuple[Denomination, ...]
    reason: str
    timestamp: datetime

    @property
    def inserted_total(self) -> int:
        return coins_total(self.inserted)

    @property
    def change_total(self) -> int:
        return coins_total(self.change)

    def __repr__(self) -> str:
        w = 60
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w - 3] + "..."
            return text + " " * (w - len(text))

        inserted = ", ".join(c.name for c in self.inserted) or "-"
        change = ", ".join(c.name for c in self.change) or "-"
        lines = [
            f"┌{bar}┐",
            f"│{pad(f' #{self.sequence:06d} {self.outcome.value.upper()}')}│",
            f"├{bar}┤",
            f"│{pad('   product  : ' + (self.product_id or '-'))}│",
            f"│{pad('   owner    : ' + self.owner)}│",
            f"│{pad(f'   inserted : {format_amount(self.inserted_total)} ({inserted})')}│",
            f"│{pad(f'   change   : {format_amount(self.change_total)} ({change})')}│",
        ]
        if self.reason:
            lines.append(f"│{pad('   reason   : ' + self.reason)}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


class TransactionMachine:
    """
    State machine driving a single purchase attempt over the two ledgers.

    Not thread-safe; VendingMachine serializes every call under its lock.
    """

    def __init__(
        self,
        stock: StockLedger,
        cash: CashLedger,
        payment_factory: Callable[[], PaymentMethod] = CashPayment,
        on_record: Optional[Callable[[TransactionRecord], None]] = None,
    ):
        """
        Args:
            stock: Stock ledger to reserve and commit products against
            cash: Cash ledger to make change from and deposit into
            payment_factory: Creates the empty payment for a new transaction
            on_record: Called with every audit record after it is logged
        """
        self.stock = stock
        self.cash = cash
        self._payment_factory = payment_factory
        self._on_record = on_record
        self._pending: Optional[PendingTransaction] = None
        self.log: List[TransactionRecord] = []
        self._next_sequence = 0

    @property
    def pending(self) -> Optional[PendingTransaction]:
        return self._pending

    @property
    def state(self) -> TransactionState:
        pending = self._pending
        return pending.state if pending else TransactionState.IDLE

    def balance(self) -> Balance:
        pending = self._pending
        if pending is None:
            return Balance(inserted_total=0, price=None, state=TransactionState.IDLE)
        price = pending.selected_product.price if pending.selected_product else None
        return Balance(inserted_total=pending.inserted_total, price=price, state=pending.state)

    # ========================================================================
    # TRANSITIONS
    # ========================================================================

    def select_product(self, product_id: str, owner: str = FRONT_PANEL) -> Selection:
        """
        IDLE/SELECTING -> SELECTING.

        Re-selecting replaces the previous choice; no money is involved yet.

        Raises:
            InvalidStateError: If coins were already inserted
            ProductNotFoundError: If the id is unknown (state unchanged)
            OutOfStockError: If the product has no units (state unchanged)
        """
        if self.state not in _SELECTABLE:
            raise InvalidStateError(
                f"Cannot change selection in state {self.state.value}; cancel first"
            )
        reservation = self.stock.reserve(product_id)
        product = reservation.product
        if self._pending is None:
            self._pending = PendingTransaction(
                selected_product=product,
                payment=self._payment_factory(),
                state=TransactionState.SELECTING,
                owner=owner,
            )
        else:
            self._pending = replace(self._pending, selected_product=product)
        logger.debug("Selected %s for %s", product, owner)
        return Selection(product=product, available=reservation.quantity_seen)

    def insert_coin(self, coin: Denomination) -> Balance:
        """
        SELECTING/FUNDING/READY -> FUNDING, or READY once the price is covered.

        Once a product is selected every accepted denomination is taken.

        Raises:
            InvalidStateError: If no product is selected
            UnknownDenominationError: If the coin is not in the table
        """
        pending = self._pending
        if pending is None or pending.state not in _ACCEPTS_COINS:
            raise InvalidStateError(
                f"Cannot insert coins in state {self.state.value}; select a product first"
            )
        coin = self.cash.table.resolve(coin)
        payment = pending.payment.accept(coin)
        price = pending.selected_product.price
        state = TransactionState.READY if payment.total >= price else TransactionState.FUNDING
        self._pending = replace(pending, payment=payment, state=state)
        if state is TransactionState.FUNDING:
            logger.debug(
                "Inserted %s, %s still owed for %s",
                format_amount(payment.total), format_amount(price - payment.total),
                pending.selected_product.id,
            )
        return self.balance()

    def attempt_dispense(self) -> DispenseResult:
        """
        FUNDING/READY -> DISPENSING -> COMPLETE -> IDLE.

        Either the product is dispensed with exact change, or every inserted
        coin is refunded. There is no partial outcome.

        Raises:
            InvalidStateError: If no transaction is open
            InsufficientPaymentError: If the price is not covered (transaction stays open)
            OutOfStockError: Stock vanished; refund attached
            InsufficientChangeError: Exact change unavailable; refund attached
            LedgerUnderflowError: Ledger invariant breach; refund attached
            VendingError: Any other payment failure at settle; refund attached
        """
        pending = self._pending
        if pending is None or pending.state not in _ACCEPTS_COINS:
            raise InvalidStateError(f"Nothing to dispense in state {self.state.value}")

        product = pending.selected_product
        try:
            pending.payment.validate(product.price)
        except InsufficientPaymentError:
            logger.info(
                "Dispense of %s refused: %s inserted", product.id,
                format_amount(pending.inserted_total),
            )
            raise

        self._pending = replace(pending, state=TransactionState.DISPENSING)

        try:
            reservation = self.stock.reserve(product.id)
        except OutOfStockError as exc:
            self._abort(exc, f"{product.id} out of stock at dispense")
            raise

        try:
            self.stock.commit(reservation)
        except LedgerUnderflowError as exc:
            logger.error("Stock invariant breach dispensing %s: %s", product.id, exc)
            self._abort(exc, "stock ledger underflow")
            raise

        try:
            change = pending.payment.settle(self.cash, product.price)
        except InsufficientChangeError as exc:
            self.stock.release(reservation)
            self._abort(exc, f"no exact change for {format_amount(pending.inserted_total - product.price)}")
            raise
        except LedgerUnderflowError as exc:
            logger.error("Cash invariant breach dispensing %s: %s", product.id, exc)
            self.stock.release(reservation)
            self._abort(exc, "cash ledger underflow")
            raise
        except VendingError as exc:
            self.stock.release(reservation)
            self._abort(exc, f"payment not settled: {exc}")
            raise
        except Exception:
            logger.exception("Payment settle failed dispensing %s", product.id)
            self.stock.release(reservation)
            self._abort(None, "payment error")
            raise

        self._pending = replace(self._pending, state=TransactionState.COMPLETE)
        self._record(TransactionOutcome.DISPENSED, change=change)
        logger.info(
            "Dispensed %s for %s, change %s",
            product.id, format_amount(pending.inserted_total), format_amount(coins_total(change)),
        )
        return DispenseResult(product=product, change=change, paid=pending.inserted_total)

    def cancel(self) -> Refund:
        """
        Any state but DISPENSING -> CANCELLED -> IDLE.

        Returns the inserted coins verbatim, never re-converted into other
        denominations. Cancelling with nothing pending returns an empty Refund.

        Raises:
            InvalidStateError: If called while dispensing
        """
        pending = self._pending
        if pending is None:
            return Refund(coins=(), reason="nothing to cancel")
        if pending.state is TransactionState.DISPENSING:
            raise InvalidStateError("Cannot cancel while dispensing")
        coins = pending.payment.refund()
        self._pending = replace(pending, state=TransactionState.CANCELLED)
        self._record(TransactionOutcome.CANCELLED, reason="cancelled by customer")
        logger.info("Cancelled transaction, refunded %s", format_amount(coins_total(coins)))
        return Refund(coins=coins, reason="cancelled")

    def reset(self) -> Tuple[Denomination, ...]:
        """
        Any state -> IDLE (admin).

        A pending transaction is abandoned and its escrowed coins are
        deposited into the cash ledger, since they are physically inside the
        machine already.

        Returns:
            The coins moved from escrow into the till
        """
        pending = self._pending
        if pending is None:
            return ()
        coins = pending.payment.refund()
        self.cash.deposit(coins)
        self._record(TransactionOutcome.RESET, reason="reset by admin")
        logger.warning(
            "Reset abandoned a %s transaction; %s deposited into the till",
            pending.state.value, format_amount(coins_total(coins)),
        )
        return coins

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _abort(self, exc: Optional[VendingError], reason: str) -> Refund:
        """Move to REFUNDING, hand back every inserted coin and attach the refund to exc."""
        pending = self._pending
        self._pending = replace(pending, state=TransactionState.REFUNDING)
        refund = Refund(coins=pending.payment.refund(), reason=reason)
        self._record(TransactionOutcome.REFUNDED, reason=reason)
        logger.warning("Refunded %s: %s", format_amount(refund.total), reason)
        if exc is not None:
            exc.refund = refund
        return refund

    def _record(
        self,
        outcome: TransactionOutcome,
        change: Tuple[Denomination, ...] = (),
        reason: str = "",
    ) -> TransactionRecord:
        """Log the pending transaction and clear the slot (back to IDLE)."""
        pending = self._pending
        product = pending.selected_product
        record = TransactionRecord(
            sequence=self._next_sequence,
            outcome=outcome,
            owner=pending.owner,
            product_id=product.id if product else None,
            inserted=pending.payment.refund(),
            change=change,
            reason=reason,
            timestamp=datetime.now(),
        )
        self._next_sequence += 1
        self.log.append(record)
        self._pending = None
        if self._on_record is not None:
            self._on_record(record)
        return record
