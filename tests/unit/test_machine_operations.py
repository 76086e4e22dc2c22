"""
test_machine_operations.py - Unit tests for the VendingMachine controller

Tests:
- Caller ownership of the pending transaction
- Admin operations restricted to IDLE
- Non-blocking lock behavior
- close(), its timeout and the context manager teardown
- Lock-free queries, history and verify_conservation
- verbose receipts
"""

import threading

import pytest
from vending import (
    Denomination, Product, VendingMachine, TransactionState, TransactionOutcome,
    MachineBusyError, MachineClosedError, InvalidStateError,
    UnknownDenominationError, InsufficientChangeError, ProductNotFoundError,
    table_from_mapping,
)


def _buy_soda(machine, caller="front_panel"):
    machine.select_product("A1", caller=caller)
    machine.insert_coin("dollar", caller=caller)
    machine.insert_coin("dollar", caller=caller)
    return machine.attempt_dispense(caller=caller)


class TestConstruction:
    """Tests for machine construction."""

    def test_defaults_to_us_coins(self):
        machine = VendingMachine("lobby")
        assert [d.name for d in machine.denominations] == ["dollar", "quarter", "dime", "nickel"]
        assert machine.cash_total() == 0
        assert machine.state == TransactionState.IDLE

    def test_custom_table(self):
        table = table_from_mapping({"token": 50})
        machine = VendingMachine("arcade", denominations=table)
        assert machine.cash_counts() == {"token": 0}

    def test_repr(self, machine):
        assert repr(machine) == "VendingMachine(test, idle, 3 products, till $0.00)"


class TestCustomerOperations:
    """Tests for the customer-facing operations."""

    def test_purchase_by_name(self, loaded_machine):
        result = _buy_soda(loaded_machine)
        assert [c.name for c in result.change] == ["quarter", "quarter", "quarter"]
        assert loaded_machine.quantity("A1") == 4

    def test_insert_denomination_object(self, machine):
        machine.select_product("A1")
        balance = machine.insert_coin(Denomination("quarter", 25))
        assert balance.inserted_total == 25

    def test_insert_unknown_name(self, machine):
        machine.select_product("A1")
        with pytest.raises(UnknownDenominationError):
            machine.insert_coin("penny")

    def test_insert_before_select(self, machine):
        with pytest.raises(InvalidStateError):
            machine.insert_coin("quarter")

    def test_show_balance(self, machine):
        machine.select_product("A2")
        machine.insert_coin("dollar")
        balance = machine.show_balance()
        assert balance.price == 150
        assert balance.remaining == 50

    def test_refund_error_carries_coins(self, machine):
        """The empty till cannot make change, so the coins come back."""
        machine.select_product("A1")
        machine.insert_coin("dollar")
        machine.insert_coin("dollar")
        with pytest.raises(InsufficientChangeError) as excinfo:
            machine.attempt_dispense()
        assert excinfo.value.refund.total == 200
        assert machine.cash_total() == 0
        assert machine.state == TransactionState.IDLE


class TestOwnership:
    """Only the caller that opened a transaction may drive it."""

    def test_other_caller_cannot_select(self, machine):
        machine.select_product("A1", caller="alice")
        with pytest.raises(MachineBusyError, match="another customer"):
            machine.select_product("A2", caller="bob")

    def test_other_caller_cannot_insert(self, machine):
        machine.select_product("A1", caller="alice")
        with pytest.raises(MachineBusyError):
            machine.insert_coin("dollar", caller="bob")
        assert machine.show_balance().inserted_total == 0

    def test_other_caller_cannot_cancel(self, machine):
        machine.select_product("A1", caller="alice")
        machine.insert_coin("dollar", caller="alice")
        with pytest.raises(MachineBusyError):
            machine.cancel(caller="bob")
        assert machine.cancel(caller="alice").total == 100

    def test_next_caller_served_after_completion(self, loaded_machine):
        _buy_soda(loaded_machine, caller="alice")
        result = _buy_soda(loaded_machine, caller="bob")
        assert result.product.id == "A1"
        assert [r.owner for r in loaded_machine.history()] == ["alice", "bob"]


class TestAdminOperations:
    """Admin operations and the IDLE requirement."""

    def test_restock(self, machine):
        assert machine.restock("A3", 4) == 4
        assert machine.quantity("A3") == 4

    def test_deposit_cash_returns_amount(self, machine):
        assert machine.deposit_cash(["quarter", "dime"]) == 35
        assert machine.cash_counts()["dime"] == 1

    def test_deposit_unknown_coin_adds_nothing(self, machine):
        with pytest.raises(UnknownDenominationError):
            machine.deposit_cash(["quarter", "penny"])
        assert machine.cash_total() == 0

    def test_withdraw_all(self, loaded_machine):
        coins = loaded_machine.withdraw_all()
        assert sum(c.value for c in coins) == 1400
        assert loaded_machine.cash_total() == 0

    @pytest.mark.parametrize("operation", [
        lambda m: m.restock("A1", 1),
        lambda m: m.deposit_cash(["quarter"]),
        lambda m: m.withdraw_all(),
        lambda m: m.add_product(Product("B1", "Water", 100), 1),
        lambda m: m.snapshot(),
    ])
    def test_admin_refused_mid_transaction(self, machine, operation):
        machine.select_product("A1")
        with pytest.raises(MachineBusyError, match="selecting transaction"):
            operation(machine)

    def test_reset_absorbs_escrow(self, machine):
        machine.select_product("A1", caller="alice")
        machine.insert_coin("dollar", caller="alice")
        coins = machine.reset()
        assert [c.name for c in coins] == ["dollar"]
        assert machine.cash_total() == 100
        assert machine.state == TransactionState.IDLE
        assert machine.history()[-1].outcome == TransactionOutcome.RESET
        assert machine.verify_conservation()['valid']


class TestLocking:
    """The machine lock is never waited on."""

    def test_busy_while_lock_held(self, machine):
        machine._lock.acquire()
        try:
            with pytest.raises(MachineBusyError, match="is busy"):
                machine.select_product("A1")
            with pytest.raises(MachineBusyError):
                machine.restock("A1", 1)
        finally:
            machine._lock.release()

    def test_reads_do_not_need_lock(self, machine):
        machine._lock.acquire()
        try:
            assert [p.id for p, _ in machine.list_available()] == ["A1", "A2"]
            assert machine.get_product("A2").price == 150
            assert machine.show_balance().inserted_total == 0
            assert machine.cash_total() == 0
            assert machine.state == TransactionState.IDLE
        finally:
            machine._lock.release()

    def test_lock_released_after_error(self, machine):
        with pytest.raises(ProductNotFoundError):
            machine.select_product("Z9")
        assert machine.select_product("A1").product.id == "A1"


class TestClose:
    """Tests for close() and the context manager."""

    def test_close_refunds_pending(self, machine):
        machine.select_product("A1")
        machine.insert_coin("quarter")
        refund = machine.close()
        assert refund.total == 25
        assert machine.closed

    def test_operations_after_close_raise(self, machine):
        machine.close()
        with pytest.raises(MachineClosedError):
            machine.select_product("A1")
        with pytest.raises(MachineClosedError):
            machine.deposit_cash(["quarter"])

    def test_context_manager_closes(self):
        with VendingMachine("ctx") as machine:
            machine.add_product(Product("A1", "Soda", 125), 1)
        assert machine.closed

    def test_context_manager_after_manual_close(self):
        with VendingMachine("ctx") as machine:
            machine.close()
        assert machine.closed

    def test_close_waits_up_to_timeout(self, machine):
        machine._lock.acquire()
        threading.Timer(0.05, machine._lock.release).start()
        assert machine.close(timeout=5.0).coins == ()
        assert machine.closed

    def test_context_manager_waits_for_inflight_operation(self):
        """Teardown outlasts an operation that finishes within the wait."""
        machine = VendingMachine("ctx")
        with machine:
            machine._lock.acquire()
            threading.Timer(0.05, machine._lock.release).start()
        assert machine.closed

    def test_busy_teardown_keeps_original_error(self, monkeypatch, caplog):
        monkeypatch.setattr("vending.machine.TEARDOWN_WAIT", 0.01)
        machine = VendingMachine("ctx")
        try:
            with pytest.raises(ValueError, match="jammed"):
                with machine:
                    machine._lock.acquire()
                    raise ValueError("jammed")
        finally:
            machine._lock.release()
        assert not machine.closed
        assert "still busy at teardown" in caplog.text

    def test_busy_teardown_after_clean_block_raises(self, monkeypatch):
        monkeypatch.setattr("vending.machine.TEARDOWN_WAIT", 0.01)
        machine = VendingMachine("ctx")
        try:
            with pytest.raises(MachineBusyError):
                with machine:
                    machine._lock.acquire()
        finally:
            machine._lock.release()
        assert not machine.closed
        machine.close()
        assert machine.closed


class TestQueries:
    """Lock-free queries and audit helpers."""

    def test_list_available_skips_empty(self, machine):
        assert [(p.id, q) for p, q in machine.list_available()] == [("A1", 5), ("A2", 3)]

    def test_products_lists_whole_catalog(self, machine):
        assert [p.id for p in machine.products()] == ["A1", "A2", "A3"]

    def test_snapshot(self, loaded_machine):
        stock, counts = loaded_machine.snapshot()
        assert [(p.id, q) for p, q in stock] == [("A1", 5), ("A2", 3), ("A3", 0)]
        assert counts == {"dollar": 10, "quarter": 10, "dime": 10, "nickel": 10}

    def test_history_is_a_copy(self, loaded_machine):
        _buy_soda(loaded_machine)
        history = loaded_machine.history()
        history.clear()
        assert len(loaded_machine.history()) == 1

    def test_conservation_after_activity(self, loaded_machine):
        _buy_soda(loaded_machine)
        loaded_machine.select_product("A2")
        loaded_machine.insert_coin("quarter")
        loaded_machine.cancel()
        report = loaded_machine.verify_conservation()
        assert report == {'valid': True, 'expected': 1525, 'actual': 1525, 'difference': 0}

    def test_conservation_detects_tampering(self, loaded_machine):
        loaded_machine._cash.deposit([loaded_machine.denominations.get("dime")])
        report = loaded_machine.verify_conservation()
        assert not report['valid']
        assert report['difference'] == 10


class TestVerbose:
    """verbose=True prints a receipt for every record."""

    def test_verbose_prints_receipt(self, capsys):
        machine = VendingMachine("loud", verbose=True)
        machine.add_product(Product("A1", "Soda", 125), 1)
        machine.select_product("A1")
        machine.cancel()
        out = capsys.readouterr().out
        assert "CANCELLED" in out
        assert "A1" in out

    def test_quiet_by_default(self, machine, capsys):
        machine.select_product("A1")
        machine.cancel()
        assert capsys.readouterr().out == ""
