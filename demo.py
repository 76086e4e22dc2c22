#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: The Vending Machine Step by Step

A walkthrough of how the vending core keeps stock and money honest.
Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation   - Denominations, the catalog, loading the till
  4-6:  Purchases    - A sale with change, a top-up, a cancellation
  7-8:  Failures     - Refund when change is impossible, busy machine
  9:    Admin        - Reset, withdrawal, conservation, saving state

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from pathlib import Path
import sys
import tempfile

from vending import (
    VendingMachine, Product,
    InsufficientPaymentError, InsufficientChangeError, MachineBusyError,
    format_amount, us_coins,
    save_machine, load_machine,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    machine_name: str = "lobby"
    soda_price: int = 125
    chips_price: int = 150
    initial_quarters: int = 4
    initial_stock: int = 2


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def coin_names(coins) -> str:
    return ", ".join(c.name for c in coins) or "(none)"


# ============================================================================
# PHASE 1: FOUNDATION
# ============================================================================

def step_01_denominations():
    step_header(1, "The Denomination Table",
        "Money is counted in whole cents, never floats.")

    table = us_coins()
    for denom in table.list_denominations():
        print(f"  {denom.name:<8} {denom.value:>4} cents  ({format_amount(denom.value)})")

    machine = VendingMachine(CONFIG.machine_name, denominations=table, verbose=True)
    print(f"\n>>> machine = VendingMachine({CONFIG.machine_name!r}, verbose=True)")
    print(machine)
    return machine


def step_02_catalog(machine: VendingMachine):
    step_header(2, "Stocking the Catalog",
        "Products are keyed by id, so two products can share a price.")

    machine.add_product(Product("A1", "Soda", CONFIG.soda_price), quantity=CONFIG.initial_stock)
    machine.add_product(Product("A2", "Chips", CONFIG.chips_price), quantity=CONFIG.initial_stock)

    for product, qty in machine.list_available():
        print(f"  {product.id}  {product.name:<6} {format_amount(product.price):>6}  x{qty}")
    return machine


def step_03_till(machine: VendingMachine):
    step_header(3, "Loading the Till",
        "Change can only be paid from coins the machine actually holds.")

    machine.deposit_cash(["quarter"] * CONFIG.initial_quarters)
    print(f"Till: {machine.cash_counts()}  total {format_amount(machine.cash_total())}")
    return machine


# ============================================================================
# PHASE 2: PURCHASES
# ============================================================================

def step_04_sale(machine: VendingMachine):
    step_header(4, "A Sale With Change",
        "Two dollar coins for a $1.25 soda return three quarters.")

    machine.select_product("A1")
    machine.insert_coin("dollar")
    balance = machine.insert_coin("dollar")
    print(f"Inserted {format_amount(balance.inserted_total)}, state {balance.state.value}")

    result = machine.attempt_dispense()
    print(f"Dispensed {result.product.name}, change: {coin_names(result.change)}")
    print(f"Soda left: {machine.quantity('A1')}")
    return machine


def step_05_top_up(machine: VendingMachine):
    step_header(5, "Not Enough Money",
        "A short payment keeps the transaction open for a top-up.")

    machine.select_product("A2")
    machine.insert_coin("dollar")
    try:
        machine.attempt_dispense()
    except InsufficientPaymentError as e:
        print(f"Refused: {e}")
        print(f"Still owed: {format_amount(machine.show_balance().remaining)}")

    machine.insert_coin("quarter")
    machine.insert_coin("quarter")
    result = machine.attempt_dispense()
    print(f"Dispensed {result.product.name}, change: {coin_names(result.change)}")
    return machine


def step_06_cancel(machine: VendingMachine):
    step_header(6, "Cancelling",
        "Cancel hands back exactly the coins that went in.")

    machine.select_product("A1")
    for coin in ("dime", "nickel", "quarter"):
        machine.insert_coin(coin)
    refund = machine.cancel()
    print(f"Refund: {coin_names(refund.coins)}  ({format_amount(refund.total)})")
    return machine


# ============================================================================
# PHASE 3: FAILURES
# ============================================================================

def step_07_no_change(machine: VendingMachine):
    step_header(7, "No Exact Change",
        "If change cannot be made the product stays and every coin comes back.")

    withdrawn = machine.withdraw_all()
    print(f"Admin emptied the till: {format_amount(sum(c.value for c in withdrawn))}")

    machine.select_product("A1")
    machine.insert_coin("dollar")
    machine.insert_coin("dollar")
    try:
        machine.attempt_dispense()
    except InsufficientChangeError as e:
        print(f"Refused: {e}")
        print(f"Refunded: {coin_names(e.refund.coins)}")
    print(f"Soda left: {machine.quantity('A1')}")
    return machine


def step_08_busy(machine: VendingMachine):
    step_header(8, "One Customer at a Time",
        "A second caller cannot join someone else's transaction.")

    machine.select_product("A1", caller="alice")
    machine.insert_coin("dollar", caller="alice")
    try:
        machine.select_product("A1", caller="bob")
    except MachineBusyError as e:
        print(f"bob: {e}")
    refund = machine.cancel(caller="alice")
    print(f"alice cancelled and got back {coin_names(refund.coins)}")
    return machine


# ============================================================================
# PHASE 4: ADMIN
# ============================================================================

def step_09_admin(machine: VendingMachine):
    step_header(9, "Reset, Conservation and Saving",
        "Reset keeps abandoned coins in the till; the books still balance.")

    machine.select_product("A1")
    machine.insert_coin("quarter")
    absorbed = machine.reset()
    print(f"Reset absorbed: {coin_names(absorbed)}")

    check = machine.verify_conservation()
    print(f"Conservation: valid={check['valid']} expected={check['expected']} actual={check['actual']}")

    section_header("Audit Log")
    for record in machine.history():
        print(f"  #{record.sequence:03d} {record.outcome.value:<10} {record.product_id or '-':<4} "
              f"in {format_amount(record.inserted_total)} out {format_amount(record.change_total)}")

    with tempfile.TemporaryDirectory() as tmp:
        path = save_machine(machine, Path(tmp) / "machine.json")
        restored = load_machine(path)
        print(f"\nSaved and restored: {restored}")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       VENDING MACHINE - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    wait_for_enter()

    machine = step_01_denominations()
    wait_for_enter()
    machine = step_02_catalog(machine)
    wait_for_enter()
    machine = step_03_till(machine)
    wait_for_enter()
    machine = step_04_sale(machine)
    wait_for_enter()
    machine = step_05_top_up(machine)
    wait_for_enter()
    machine = step_06_cancel(machine)
    wait_for_enter()
    machine = step_07_no_change(machine)
    wait_for_enter()
    machine = step_08_busy(machine)
    wait_for_enter()
    step_09_admin(machine)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See vending/transaction.py for the refund policy
      - See vending/cash_ledger.py for change making
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
