"""
cash_ledger.py - The machine's float

Tracks how many coins of each denomination the machine holds and computes
exact change from those holdings.

Conservation:
    total() changes only through deposit (+), commit_change (-) and
    withdraw_all (-). The ledger never creates or destroys value itself.

State handling:
    Held counts live in a dict that is never mutated once published. Every
    mutation builds a new dict and swaps the reference, so a reader that
    grabbed the reference sees one consistent snapshot without locking.
"""

from __future__ import annotations
from collections import Counter, deque
from typing import Deque, Dict, Iterable, List, Mapping, Optional, Tuple

from .core import (
    Denomination,
    InsufficientChangeError, LedgerUnderflowError,
    _require_money, format_amount,
)
from .denominations import DenominationTable


class CashLedger:
    """
    Count store for the coins held by the machine.

    Thread Safety:
        Reads are safe from any thread. Mutations must be serialized by the
        owner (the VendingMachine lock).

    Example:
        cash = CashLedger(us_coins())
        cash.deposit([table.get("quarter")] * 4)
        cash.make_change(75)   # (quarter, quarter, quarter), nothing removed yet
    """

    def __init__(self, table: DenominationTable, counts: Optional[Mapping[str, int]] = None):
        """
        Create a cash ledger.

        Args:
            table: Accepted denominations
            counts: Optional initial held counts keyed by denomination name
        """
        self.table = table
        initial = {d.name: 0 for d in table}
        for name, count in (counts or {}).items():
            table.get(name)
            if isinstance(count, bool) or not isinstance(count, int) or count < 0:
                raise ValueError(f"Count for {name} must be a non-negative int, got {count!r}")
            initial[name] = count
        self._counts: Dict[str, int] = initial

    # ========================================================================
    # READ-ONLY
    # ========================================================================

    @property
    def denominations(self) -> Tuple[Denomination, ...]:
        return self.table.list_denominations()

    def count(self, name: str) -> int:
        """Held count of a single denomination."""
        self.table.get(name)
        return self._counts[name]

    def counts(self) -> Dict[str, int]:
        """Copy of all held counts, keyed by denomination name."""
        return dict(self._counts)

    def total(self) -> int:
        """Total value held, in minor units."""
        counts = self._counts
        return sum(d.value * counts[d.name] for d in self.table)

    def make_change(self, amount: int) -> Tuple[Denomination, ...]:
        """
        Choose coins from current holdings that sum exactly to amount.

        Greedy largest-first is tried first. If it dead-ends because a needed
        denomination ran out, an exhaustive minimal-coin search runs over the
        same holdings. Among minimal combinations the one using the most
        high-value coins wins.

        This never mutates the ledger; call commit_change() with the result.

        Args:
            amount: Change to return, in minor units

        Returns:
            Coins, highest value first (empty tuple for amount 0)

        Raises:
            ValueError: If amount is negative or not an int
            InsufficientChangeError: If no exact combination exists
        """
        _require_money(amount, "Change amount")
        if amount < 0:
            raise ValueError(f"Change amount cannot be negative, got {amount}")
        if amount == 0:
            return ()

        counts = self._counts
        coins = self._greedy(amount, counts)
        if coins is None:
            coins = self._minimal(amount, counts)
        if coins is None:
            raise InsufficientChangeError(
                f"Cannot make {format_amount(amount)} in change from holdings {self._describe(counts)}"
            )
        return coins

    def _greedy(self, amount: int, counts: Mapping[str, int]) -> Optional[Tuple[Denomination, ...]]:
        picked: List[Denomination] = []
        remaining = amount
        for denom in self.table:
            take = min(counts[denom.name], remaining // denom.value)
            picked.extend([denom] * take)
            remaining -= take * denom.value
        if remaining:
            return None
        return tuple(picked)

    def _minimal(self, amount: int, counts: Mapping[str, int]) -> Optional[Tuple[Denomination, ...]]:
        """
        Bounded minimal-coin search.

        tables[i][s] is the fewest coins that make s quanta using only the
        first i usable denominations (ascending by value). Walking back from
        the highest denomination and always taking as many as still reaches
        the optimum yields the tie-break toward higher values.
        """
        quantum = self.table.quantum
        if amount % quantum:
            return None
        target = amount // quantum
        usable = [
            (denom, denom.value // quantum, counts[denom.name])
            for denom in reversed(self.table.list_denominations())
            if counts[denom.name] > 0 and denom.value <= amount
        ]
        unreachable = target + 1

        tables: List[List[int]] = [[0] + [unreachable] * target]
        for _, step, available in usable:
            tables.append(self._bounded_pass(tables[-1], step, available, unreachable))

        if tables[-1][target] >= unreachable:
            return None

        picked: List[Denomination] = []
        s = target
        for i in range(len(usable), 0, -1):
            denom, step, available = usable[i - 1]
            needed = tables[i][s]
            for k in range(min(available, s // step), -1, -1):
                if tables[i - 1][s - k * step] + k == needed:
                    picked.extend([denom] * k)
                    s -= k * step
                    break
        return tuple(picked)

    @staticmethod
    def _bounded_pass(prev: List[int], step: int, available: int, unreachable: int) -> List[int]:
        """
        One bounded-knapsack layer: cur[s] = min over 0 <= k <= available of
        prev[s - k*step] + k.

        Sums sharing a residue mod step form a chain s = r + j*step, where the
        term is (prev[s] - j) + j. A monotonic deque of (j, prev[s] - j) over
        the last available+1 positions keeps the minimum, so each layer costs
        O(target) regardless of the held count.
        """
        size = len(prev)
        cur = [unreachable] * size
        for r in range(min(step, size)):
            window: Deque[Tuple[int, int]] = deque()
            for j, s in enumerate(range(r, size, step)):
                if prev[s] < unreachable:
                    key = prev[s] - j
                    while window and window[-1][1] >= key:
                        window.pop()
                    window.append((j, key))
                while window and window[0][0] < j - available:
                    window.popleft()
                if window:
                    cur[s] = window[0][1] + j
        return cur

    def _describe(self, counts: Mapping[str, int]) -> str:
        held = ", ".join(f"{d.name}x{counts[d.name]}" for d in self.table if counts[d.name])
        return f"[{held}]" if held else "[empty]"

    # ========================================================================
    # MUTATING
    # ========================================================================

    def deposit(self, coins: Iterable[Denomination]) -> None:
        """
        Add coins to the float.

        Raises:
            UnknownDenominationError: If any coin is outside the table (nothing is added)
        """
        resolved = [self.table.resolve(coin) for coin in coins]
        if not resolved:
            return
        updated = dict(self._counts)
        for coin in resolved:
            updated[coin.name] += 1
        self._counts = updated

    def commit_change(self, coins: Iterable[Denomination]) -> None:
        """
        Remove coins previously chosen by make_change().

        All-or-nothing: if any denomination would go negative nothing is removed.

        Raises:
            LedgerUnderflowError: If the ledger does not hold the coins
        """
        needed = Counter(self.table.resolve(coin).name for coin in coins)
        if not needed:
            return
        current = self._counts
        for name, n in needed.items():
            if current[name] < n:
                raise LedgerUnderflowError(
                    f"Cash ledger underflow: {name} held {current[name]}, removing {n}"
                )
        updated = dict(current)
        for name, n in needed.items():
            updated[name] -= n
        self._counts = updated

    def withdraw_all(self) -> Tuple[Denomination, ...]:
        """
        Empty the float (admin cash-out).

        Returns:
            Every coin that was held, highest value first
        """
        current = self._counts
        coins: List[Denomination] = []
        for denom in self.table:
            coins.extend([denom] * current[denom.name])
        self._counts = {d.name: 0 for d in self.table}
        return tuple(coins)

    def __repr__(self) -> str:
        return f"CashLedger({format_amount(self.total())}, {self._describe(self._counts)})"
