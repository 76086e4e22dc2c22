"""
machine.py - Vending Machine Controller

The VendingMachine is the process-wide facade handed to a UI, CLI or admin
tool. It owns the stock ledger, the cash ledger and the single pending
transaction slot, and it is the only module that takes the lock.

Key responsibilities:
    - Serializes every mutating operation under one non-blocking lock;
      contention raises MachineBusyError instead of waiting (only teardown
      waits, and only briefly)
    - Binds the pending transaction to the caller that opened it, so two
      customers' coins can never merge into one balance
    - Serves read-only queries from ledger snapshots without the lock
    - Tracks the till total implied by its own operations for
      verify_conservation()
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union
import logging
import threading

from .core import (
    Denomination, Product,
    Selection, Balance, DispenseResult, Refund,
    TransactionState,
    MachineBusyError, MachineClosedError,
    FRONT_PANEL, coins_total, format_amount,
)
from .denominations import DenominationTable, us_coins
from .cash_ledger import CashLedger
from .stock_ledger import StockLedger
from .transaction import TransactionMachine, TransactionRecord

logger = logging.getLogger(__name__)

Coin = Union[Denomination, str]

# Seconds the context manager waits for an in-flight operation before closing
TEARDOWN_WAIT = 1.0


class VendingMachine:
    """
    A vending machine: catalog, till and one purchase at a time.

    Design Principles:
        - One lock, never waited on: a second caller gets MachineBusyError.
          close(timeout=...) and the context manager exit are the exception.
        - One owner per pending transaction: only the caller that selected a
          product may insert coins, dispense or cancel.
        - Admin changes to stock or cash only while IDLE.

    Thread Safety:
        All public methods may be called from any thread.

    Example:
        machine = VendingMachine("lobby", verbose=False)
        machine.add_product(Product("A1", "Soda", 125), quantity=5)
        machine.deposit_cash(["quarter"] * 4)

        machine.select_product("A1")
        machine.insert_coin("dollar")
        machine.insert_coin("dollar")
        result = machine.attempt_dispense()   # change: three quarters
    """

    def __init__(
        self,
        name: str,
        denominations: Optional[DenominationTable] = None,
        verbose: bool = False,
    ):
        """
        Create a machine with an empty catalog and an empty till.

        Args:
            name: Machine identifier
            denominations: Accepted denominations (default: us_coins())
            verbose: Print a receipt for every completed transaction (default: False)
        """
        self.name = name
        self.verbose = verbose
        self.denominations = denominations or us_coins()
        self._stock = StockLedger()
        self._cash = CashLedger(self.denominations)
        self._transactions = TransactionMachine(
            self._stock, self._cash, on_record=self._print_record,
        )
        self._lock = threading.Lock()
        self._closed = False
        # Till total implied by deposits, sales and withdrawals
        self._expected_cash = 0

    # ========================================================================
    # LOCKING
    # ========================================================================

    @contextmanager
    def _exclusive(
        self,
        caller: Optional[str] = None,
        require_idle: bool = False,
        wait: float = 0.0,
    ) -> Iterator[None]:
        """
        Hold the machine lock for the duration of one operation.

        Args:
            caller: Transaction operations pass their caller; a pending
                transaction owned by someone else makes the call fail
            require_idle: Admin operations that change stock or cash
                assumptions demand that no transaction is pending
            wait: Seconds to wait for the lock; 0 fails at once
        """
        acquired = self._lock.acquire(timeout=wait) if wait > 0 else self._lock.acquire(blocking=False)
        if not acquired:
            raise MachineBusyError(f"Machine {self.name} is busy")
        try:
            if self._closed:
                raise MachineClosedError(f"Machine {self.name} is closed")
            pending = self._transactions.pending
            if pending is not None:
                if caller is not None and pending.owner != caller:
                    raise MachineBusyError(
                        f"Machine {self.name} is serving another customer"
                    )
                if require_idle:
                    raise MachineBusyError(
                        f"Machine {self.name} has a {pending.state.value} transaction"
                    )
            yield
        finally:
            self._lock.release()

    # ========================================================================
    # CUSTOMER OPERATIONS
    # ========================================================================

    def select_product(self, product_id: str, caller: str = FRONT_PANEL) -> Selection:
        """Select a product, opening a transaction owned by caller."""
        with self._exclusive(caller):
            return self._transactions.select_product(product_id, owner=caller)

    def insert_coin(self, coin: Coin, caller: str = FRONT_PANEL) -> Balance:
        """Insert one coin (a Denomination or its name) into the open transaction."""
        with self._exclusive(caller):
            return self._transactions.insert_coin(self.denominations.resolve(coin))

    def attempt_dispense(self, caller: str = FRONT_PANEL) -> DispenseResult:
        """
        Dispense the selected product and pay out change.

        On a refunding failure the raised error carries the Refund.
        """
        with self._exclusive(caller):
            result = self._transactions.attempt_dispense()
            self._expected_cash += result.paid - result.change_total
            return result

    def cancel(self, caller: str = FRONT_PANEL) -> Refund:
        """Cancel the open transaction and get the inserted coins back."""
        with self._exclusive(caller):
            return self._transactions.cancel()

    # ========================================================================
    # ADMIN OPERATIONS
    # ========================================================================

    def add_product(self, product: Product, quantity: int = 0) -> None:
        """Register a product in the catalog."""
        with self._exclusive(require_idle=True):
            self._stock.add_product(product, quantity)
            logger.info("Machine %s: added %s x%d", self.name, product, quantity)

    def restock(self, product_id: str, quantity: int) -> int:
        """
        Add units of a product. Only allowed while IDLE.

        Returns:
            The new quantity
        """
        with self._exclusive(require_idle=True):
            new_qty = self._stock.restock(product_id, quantity)
            logger.info("Machine %s: restocked %s +%d -> %d", self.name, product_id, quantity, new_qty)
            return new_qty

    def deposit_cash(self, coins: Iterable[Coin]) -> int:
        """
        Load coins into the till. Only allowed while IDLE.

        Returns:
            Value deposited, in minor units
        """
        with self._exclusive(require_idle=True):
            resolved = [self.denominations.resolve(coin) for coin in coins]
            self._cash.deposit(resolved)
            amount = coins_total(resolved)
            self._expected_cash += amount
            logger.info("Machine %s: deposited %s", self.name, format_amount(amount))
            return amount

    def withdraw_all(self) -> Tuple[Denomination, ...]:
        """Empty the till. Only allowed while IDLE."""
        with self._exclusive(require_idle=True):
            coins = self._cash.withdraw_all()
            amount = coins_total(coins)
            self._expected_cash -= amount
            logger.info("Machine %s: withdrew %s", self.name, format_amount(amount))
            return coins

    def reset(self) -> Tuple[Denomination, ...]:
        """
        Force the machine back to IDLE.

        Escrowed coins of an abandoned transaction go into the till.

        Returns:
            The coins moved into the till
        """
        with self._exclusive():
            coins = self._transactions.reset()
            self._expected_cash += coins_total(coins)
            return coins

    def close(self, timeout: float = 0.0) -> Refund:
        """
        Tear the machine down.

        A pending transaction is cancelled and its coins refunded. Every later
        operation raises MachineClosedError.

        Args:
            timeout: Seconds to wait for an in-flight operation (default: 0,
                busy machines raise MachineBusyError at once)
        """
        with self._exclusive(wait=timeout):
            refund = self._transactions.cancel()
            self._closed = True
            logger.info("Machine %s closed", self.name)
            return refund

    def __enter__(self) -> VendingMachine:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        """
        Close on leaving the block, waiting up to TEARDOWN_WAIT for the lock.

        If the machine is still busy, MachineBusyError is raised only when
        the block itself succeeded; an exception already leaving the block
        is never replaced.
        """
        if self._closed:
            return
        try:
            self.close(timeout=TEARDOWN_WAIT)
        except MachineClosedError:
            # another thread closed it first
            return
        except MachineBusyError:
            if exc_type is None:
                raise
            logger.warning(
                "Machine %s still busy at teardown, left open while %s propagates",
                self.name, exc_type.__name__,
            )

    # ========================================================================
    # READ-ONLY QUERIES (no lock)
    # ========================================================================

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def state(self) -> TransactionState:
        return self._transactions.state

    def list_available(self) -> List[Tuple[Product, int]]:
        """Products with quantity > 0, from one snapshot."""
        return list(self._stock.list_available())

    def get_product(self, product_id: str) -> Product:
        return self._stock.get_product(product_id)

    def quantity(self, product_id: str) -> int:
        return self._stock.quantity(product_id)

    def products(self) -> List[Product]:
        return self._stock.products()

    def show_balance(self) -> Balance:
        """Payment progress of the pending transaction (zero when IDLE)."""
        return self._transactions.balance()

    def cash_counts(self) -> Dict[str, int]:
        return self._cash.counts()

    def cash_total(self) -> int:
        return self._cash.total()

    def snapshot(self) -> Tuple[List[Tuple[Product, int]], Dict[str, int]]:
        """
        Consistent copy of both ledgers, taken under the lock while IDLE.

        Returns:
            ([(product, quantity), ...] in id order, {denomination name: count})
        """
        with self._exclusive(require_idle=True):
            quantities = self._stock.quantities()
            stock = [(p, quantities[p.id]) for p in self._stock.products()]
            return stock, self._cash.counts()

    def history(self) -> List[TransactionRecord]:
        """Audit log of every transaction that left the machine."""
        return list(self._transactions.log)

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Check that the till holds exactly what the machine's operations imply.

        Expected total = deposits + amounts paid for dispensed products
        - change paid out + coins absorbed by reset - withdrawals.

        Returns:
            Dict with keys:
            - 'valid': bool - True if expected and actual agree
            - 'expected': int - Till total implied by operations
            - 'actual': int - Till total held by the cash ledger
            - 'difference': int - actual - expected
        """
        actual = self._cash.total()
        expected = self._expected_cash
        return {
            'valid': actual == expected,
            'expected': expected,
            'actual': actual,
            'difference': actual - expected,
        }

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _print_record(self, record: TransactionRecord) -> None:
        if self.verbose:
            print(repr(record))

    def __repr__(self) -> str:
        return (
            f"VendingMachine({self.name}, {self.state.value}, "
            f"{len(self._stock.products())} products, till {format_amount(self._cash.total())})"
        )
