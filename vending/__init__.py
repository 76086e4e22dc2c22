"""
vending - Transactional Vending Machine Core

A vending machine modelled as a state machine over two ledgers: a stock
ledger of products and a cash ledger of coins. Purchases either dispense with
exact change or refund every inserted coin.

Usage:
    from vending import VendingMachine, Product

    machine = VendingMachine("lobby")
    machine.add_product(Product("A1", "Soda", 125), quantity=10)
    machine.deposit_cash(["quarter"] * 4)

    machine.select_product("A1")
    machine.insert_coin("dollar")
    machine.insert_coin("dollar")
    result = machine.attempt_dispense()
    # result.change == (quarter, quarter, quarter)
"""

# Core types
from .core import (
    Denomination,
    Product,
    Selection,
    Balance,
    DispenseResult,
    Refund,
    TransactionState,
    TransactionOutcome,
    VendingError,
    ProductNotFoundError,
    OutOfStockError,
    InsufficientPaymentError,
    InsufficientChangeError,
    LedgerUnderflowError,
    MachineBusyError,
    InvalidStateError,
    UnknownDenominationError,
    MachineClosedError,
    FRONT_PANEL,
    coins_total,
    format_amount,
)

# Denominations
from .denominations import (
    DenominationTable,
    table_from_mapping,
    us_coins,
)

# Ledgers
from .cash_ledger import CashLedger
from .stock_ledger import StockLedger, Reservation

# Payment
from .payment import PaymentMethod, CashPayment

# Transaction state machine
from .transaction import (
    TransactionMachine,
    PendingTransaction,
    TransactionRecord,
)

# Controller
from .machine import VendingMachine

# Persistence
from .persistence import (
    machine_to_dict,
    machine_from_dict,
    save_machine,
    load_machine,
)

__all__ = [
    # Core
    'Denomination', 'Product', 'Selection', 'Balance', 'DispenseResult', 'Refund',
    'TransactionState', 'TransactionOutcome',
    'VendingError', 'ProductNotFoundError', 'OutOfStockError', 'InsufficientPaymentError',
    'InsufficientChangeError', 'LedgerUnderflowError', 'MachineBusyError',
    'InvalidStateError', 'UnknownDenominationError', 'MachineClosedError',
    'FRONT_PANEL', 'coins_total', 'format_amount',
    # Denominations
    'DenominationTable', 'table_from_mapping', 'us_coins',
    # Ledgers
    'CashLedger', 'StockLedger', 'Reservation',
    # Payment
    'PaymentMethod', 'CashPayment',
    # Transactions
    'TransactionMachine', 'PendingTransaction', 'TransactionRecord',
    # Controller
    'VendingMachine',
    # Persistence
    'machine_to_dict', 'machine_from_dict', 'save_machine', 'load_machine',
]

__version__ = '1.0.0'
