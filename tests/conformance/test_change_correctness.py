"""
Change Correctness Conformance Tests

INVARIANT: For every holding h and amount a:
    make_change(a) sums to a, uses only coins in h, and raises
    InsufficientChangeError only when no sub-multiset of h sums to a.

Existence is checked by brute force over small holdings.
"""

from collections import Counter
from itertools import product as cartesian

from hypothesis import given, settings
from hypothesis import strategies as st

from vending import CashLedger, InsufficientChangeError, table_from_mapping, us_coins


def _reachable(table, counts):
    """Every amount some sub-multiset of the holdings can make."""
    denoms = table.list_denominations()
    ranges = [range(counts[d.name] + 1) for d in denoms]
    return {
        sum(k * d.value for k, d in zip(picks, denoms))
        for picks in cartesian(*ranges)
    }


def _fewest(table, counts, amount):
    """Fewest coins that make amount, by brute force."""
    denoms = table.list_denominations()
    ranges = [range(counts[d.name] + 1) for d in denoms]
    best = None
    for picks in cartesian(*ranges):
        if sum(k * d.value for k, d in zip(picks, denoms)) == amount:
            n = sum(picks)
            if best is None or n < best:
                best = n
    return best


holding = st.integers(min_value=0, max_value=5)

us_holdings = st.fixed_dictionaries({
    "dollar": holding, "quarter": holding, "dime": holding, "nickel": holding,
})

odd_holdings = st.fixed_dictionaries({
    "nine": holding, "six": holding, "four": holding, "one": st.integers(min_value=0, max_value=2),
})


class TestChangeProperties:
    """make_change finds exact change from holdings whenever it exists."""

    @given(us_holdings, st.integers(min_value=0, max_value=700))
    @settings(max_examples=300)
    def test_us_coins_exact_and_complete(self, counts, amount):
        table = us_coins()
        cash = CashLedger(table, counts)
        try:
            coins = cash.make_change(amount)
        except InsufficientChangeError:
            assert amount not in _reachable(table, counts)
            return

        assert sum(c.value for c in coins) == amount
        used = Counter(c.name for c in coins)
        assert all(used[name] <= counts[name] for name in used)

    @given(odd_holdings, st.integers(min_value=1, max_value=60))
    @settings(max_examples=300)
    def test_non_canonical_table_exact_and_complete(self, counts, amount):
        """A table where greedy is not optimal still finds every makeable amount."""
        table = table_from_mapping({"nine": 9, "six": 6, "four": 4, "one": 1})
        cash = CashLedger(table, counts)
        try:
            coins = cash.make_change(amount)
        except InsufficientChangeError:
            assert amount not in _reachable(table, counts)
            return

        assert sum(c.value for c in coins) == amount
        used = Counter(c.name for c in coins)
        assert all(used[name] <= counts[name] for name in used)

    @given(us_holdings, st.integers(min_value=5, max_value=700))
    @settings(max_examples=200)
    def test_coins_ordered_highest_first(self, counts, amount):
        cash = CashLedger(us_coins(), counts)
        try:
            coins = cash.make_change(amount)
        except InsufficientChangeError:
            return
        values = [c.value for c in coins]
        assert values == sorted(values, reverse=True)

    @given(us_holdings, st.integers(min_value=0, max_value=700))
    @settings(max_examples=200)
    def test_make_change_is_read_only(self, counts, amount):
        cash = CashLedger(us_coins(), counts)
        try:
            cash.make_change(amount)
        except InsufficientChangeError:
            pass
        assert cash.counts() == counts


class TestChangeExamples:
    """Explicit change examples."""

    def test_fallback_result_is_minimal(self):
        """Greedy takes the nine and strands 3 with only two ones; 6+6 is found instead."""
        table = table_from_mapping({"nine": 9, "six": 6, "four": 4, "one": 1})
        counts = {"nine": 1, "six": 2, "four": 0, "one": 2}
        cash = CashLedger(table, counts)
        coins = cash.make_change(12)
        assert [c.name for c in coins] == ["six", "six"]
        assert len(coins) == _fewest(table, counts, 12)
