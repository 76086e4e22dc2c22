"""
conftest.py - Shared pytest fixtures for vending tests

Provides common fixtures used across unit, functional and conformance tests:
- The default US coin table
- Bare ledgers and a transaction machine wired to them
- A stocked machine with an empty till
- A stocked machine with a loaded till
"""

import pytest

from vending import (
    Product, VendingMachine,
    CashLedger, StockLedger, TransactionMachine,
    us_coins,
)


SODA = Product("A1", "Soda", 125)
CHIPS = Product("A2", "Chips", 150)
GUM = Product("A3", "Gum", 35)


@pytest.fixture
def table():
    """The default table: dollar, quarter, dime, nickel."""
    return us_coins()


@pytest.fixture
def stock():
    """Stock ledger with soda x5, chips x3, gum x0."""
    ledger = StockLedger()
    ledger.add_product(SODA, 5)
    ledger.add_product(CHIPS, 3)
    ledger.add_product(GUM, 0)
    return ledger


@pytest.fixture
def cash(table):
    """Cash ledger holding four quarters."""
    return CashLedger(table, {"quarter": 4})


@pytest.fixture
def transactions(stock, cash):
    """Transaction machine over the stock and cash fixtures."""
    return TransactionMachine(stock, cash)


@pytest.fixture
def machine(table):
    """Machine stocked like the stock fixture, with an empty till."""
    m = VendingMachine("test", denominations=table, verbose=False)
    m.add_product(SODA, 5)
    m.add_product(CHIPS, 3)
    m.add_product(GUM, 0)
    return m


@pytest.fixture
def loaded_machine(machine):
    """Stocked machine with 10 of each coin in the till."""
    machine.deposit_cash(["dollar", "quarter", "dime", "nickel"] * 10)
    return machine
