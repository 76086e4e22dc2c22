"""
denominations.py - Denomination Table

The fixed set of coins and notes a machine accepts. Built once at
configuration time and never mutated afterwards.
"""

from __future__ import annotations
from functools import reduce
from math import gcd
from typing import Dict, Iterable, Iterator, Mapping, Tuple

from .core import Denomination, UnknownDenominationError


class DenominationTable:
    """
    Ordered, immutable collection of accepted denominations.

    Denominations are kept sorted descending by value, the order every
    change-making routine walks them in.

    Example:
        table = DenominationTable([
            Denomination("quarter", 25),
            Denomination("dollar", 100),
        ])
        table.list_denominations()
        # (Denomination(dollar=$1.00), Denomination(quarter=$0.25))
    """

    def __init__(self, denominations: Iterable[Denomination]):
        """
        Build a table.

        Args:
            denominations: Accepted denominations, in any order

        Raises:
            ValueError: If the table is empty or a name or value repeats
        """
        ordered = tuple(sorted(denominations, key=lambda d: (-d.value, d.name)))
        if not ordered:
            raise ValueError("Denomination table cannot be empty")

        by_name: Dict[str, Denomination] = {}
        seen_values = set()
        for denom in ordered:
            if denom.name in by_name:
                raise ValueError(f"Denomination {denom.name} already registered")
            if denom.value in seen_values:
                raise ValueError(f"Two denominations share the value {denom.value}")
            by_name[denom.name] = denom
            seen_values.add(denom.value)

        self._ordered: Tuple[Denomination, ...] = ordered
        self._by_name: Dict[str, Denomination] = by_name

    def list_denominations(self) -> Tuple[Denomination, ...]:
        """Return all denominations, highest value first."""
        return self._ordered

    def get(self, name: str) -> Denomination:
        """
        Look up a denomination by name.

        Raises:
            UnknownDenominationError: If the name is not in the table
        """
        try:
            return self._by_name[name]
        except KeyError:
            raise UnknownDenominationError(f"Denomination {name} not accepted") from None

    def resolve(self, coin) -> Denomination:
        """
        Accept either a Denomination or its name and return the table's entry.

        A Denomination whose name matches but whose value differs is rejected.
        """
        if isinstance(coin, Denomination):
            known = self.get(coin.name)
            if known != coin:
                raise UnknownDenominationError(
                    f"{coin!r} does not match configured {known!r}"
                )
            return known
        return self.get(coin)

    @property
    def min_value(self) -> int:
        return self._ordered[-1].value

    @property
    def quantum(self) -> int:
        """Greatest common divisor of all values; every payable amount is a multiple of it."""
        return reduce(gcd, (d.value for d in self._ordered))

    def __contains__(self, item) -> bool:
        if isinstance(item, Denomination):
            return self._by_name.get(item.name) == item
        return item in self._by_name

    def __iter__(self) -> Iterator[Denomination]:
        return iter(self._ordered)

    def __len__(self) -> int:
        return len(self._ordered)

    def __eq__(self, other) -> bool:
        if not isinstance(other, DenominationTable):
            return NotImplemented
        return self._ordered == other._ordered

    def __hash__(self) -> int:
        return hash(self._ordered)

    def __repr__(self) -> str:
        names = ", ".join(f"{d.name}={d.value}" for d in self._ordered)
        return f"DenominationTable({names})"


# ============================================================================
# TABLE FACTORIES
# ============================================================================

def table_from_mapping(values: Mapping[str, int]) -> DenominationTable:
    """
    Create a table from a {name: value} mapping.

    Args:
        values: Denomination names mapped to values in minor units

    Returns:
        A DenominationTable
    """
    return DenominationTable(Denomination(name, value) for name, value in values.items())


def us_coins() -> DenominationTable:
    """
    Create the default US coin table: dollar coin, quarter, dime, nickel.

    Pennies are not accepted.
    """
    return table_from_mapping({
        "dollar": 100,
        "quarter": 25,
        "dime": 10,
        "nickel": 5,
    })
