"""
persistence.py - Saving and restoring machine state

Ledger state serializes to plain JSON with every amount in minor units:

    {
      "name": "lobby",
      "denominations": [{"name": "quarter", "value": 25}, ...],
      "products": [{"id": "A1", "name": "Soda", "price": 125, "qty": 3}, ...],
      "cash": [{"denom": "quarter", "value": 25, "count": 4}, ...]
    }

Only ledger state is saved. A pending transaction is escrow, not ledger
state, so saving requires an IDLE machine.
"""

from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Optional, Union
import json

from .core import Denomination, Product
from .denominations import DenominationTable
from .machine import VendingMachine

FORMAT_VERSION = 1


def machine_to_dict(machine: VendingMachine) -> Dict[str, Any]:
    """
    Serialize a machine's ledgers.

    Raises:
        MachineBusyError: If a transaction is pending
    """
    stock, counts = machine.snapshot()
    return {
        "version": FORMAT_VERSION,
        "name": machine.name,
        "denominations": [
            {"name": d.name, "value": d.value}
            for d in machine.denominations.list_denominations()
        ],
        "products": [
            {"id": p.id, "name": p.name, "price": p.price, "qty": qty}
            for p, qty in stock
        ],
        "cash": [
            {"denom": d.name, "value": d.value, "count": counts[d.name]}
            for d in machine.denominations.list_denominations()
        ],
    }


def machine_from_dict(
    data: Dict[str, Any],
    denominations: Optional[DenominationTable] = None,
    verbose: bool = False,
) -> VendingMachine:
    """
    Rebuild a machine from machine_to_dict() output.

    Args:
        data: Serialized state
        denominations: Table to use when data carries none
        verbose: Passed to the new machine

    Raises:
        ValueError: If the data is malformed (wrong shape or a missing
            required key), uses non-integer money or disagrees with the
            denomination table
        UnknownDenominationError: If a cash entry names a coin outside the table
    """
    if not isinstance(data, dict):
        raise ValueError(f"Malformed state: expected an object, got {type(data).__name__}")
    version = data.get("version", FORMAT_VERSION)
    if version != FORMAT_VERSION:
        raise ValueError(f"Unsupported state format version {version}")

    if data.get("denominations"):
        table = DenominationTable(
            Denomination(_field(entry, "name", "denomination"), _field(entry, "value", "denomination"))
            for entry in data["denominations"]
        )
        if denominations is not None and denominations != table:
            raise ValueError(f"Saved table {table!r} does not match {denominations!r}")
    elif denominations is not None:
        table = denominations
    else:
        raise ValueError("State carries no denomination table and none was given")

    machine = VendingMachine(data.get("name", "restored"), denominations=table, verbose=verbose)

    for entry in data.get("products") or []:
        product = Product(
            _field(entry, "id", "product"),
            _field(entry, "name", "product"),
            _field(entry, "price", "product"),
        )
        machine.add_product(product, entry.get("qty", 0))

    coins = []
    for entry in data.get("cash") or []:
        name = _field(entry, "denom", "cash")
        denom = table.get(name)
        if "value" in entry and entry["value"] != denom.value:
            raise ValueError(
                f"Cash entry {name} has value {entry['value']}, table says {denom.value}"
            )
        count = _field(entry, "count", "cash")
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise ValueError(f"Cash count for {name} must be a non-negative int")
        coins.extend([denom] * count)
    if coins:
        machine.deposit_cash(coins)

    return machine


def _field(entry: Any, key: str, kind: str) -> Any:
    """Required key of one serialized entry, as ValueError when absent."""
    if not isinstance(entry, dict):
        raise ValueError(f"Malformed {kind} entry: expected an object, got {entry!r}")
    try:
        return entry[key]
    except KeyError:
        raise ValueError(f"Malformed {kind} entry {entry!r}: missing '{key}'") from None


def save_machine(machine: VendingMachine, path: Union[str, Path]) -> Path:
    """Write machine state as JSON and return the path written."""
    path = Path(path)
    path.write_text(json.dumps(machine_to_dict(machine), indent=2) + "\n", encoding="utf-8")
    return path


def load_machine(
    path: Union[str, Path],
    denominations: Optional[DenominationTable] = None,
    verbose: bool = False,
) -> VendingMachine:
    """Read a machine written by save_machine()."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return machine_from_dict(data, denominations=denominations, verbose=verbose)
