"""
stock_ledger.py - Product catalog and quantities

Quantities move through a reserve / commit / release protocol:

    reserve(id)         -> Reservation   checks quantity > 0, changes nothing
    commit(reservation)                  takes one unit out (never below zero)
    release(reservation)                 puts a committed unit back (rollback)

The catalog and the quantities are published together as one
(products, quantities) tuple. Neither dict is mutated once published; every
mutation builds a new tuple and swaps it in with a single assignment, so a
lock-free reader that grabbed the tuple sees both maps from the same moment.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterator, List, Tuple

from .core import (
    Product,
    ProductNotFoundError, OutOfStockError, LedgerUnderflowError,
)


@dataclass(frozen=True, slots=True)
class Reservation:
    """Proof that a product had stock when it was checked."""
    product: Product
    quantity_seen: int


class StockLedger:
    """
    Catalog of products and their available quantities.

    Thread Safety:
        Reads are safe from any thread. Mutations must be serialized by the
        owner (the VendingMachine lock).
    """

    def __init__(self):
        self._state: Tuple[Dict[str, Product], Dict[str, int]] = ({}, {})

    # ========================================================================
    # READ-ONLY
    # ========================================================================

    def get_product(self, product_id: str) -> Product:
        """
        Return the catalog entry for an id.

        Raises:
            ProductNotFoundError: If the id is not in the catalog
        """
        products, _ = self._state
        try:
            return products[product_id]
        except KeyError:
            raise ProductNotFoundError(f"Product {product_id} not found") from None

    def quantity(self, product_id: str) -> int:
        products, quantities = self._state
        if product_id not in products:
            raise ProductNotFoundError(f"Product {product_id} not found")
        return quantities[product_id]

    def products(self) -> List[Product]:
        """All catalog entries, in id order."""
        products, _ = self._state
        return [products[pid] for pid in sorted(products)]

    def quantities(self) -> Dict[str, int]:
        """Copy of all quantities keyed by product id."""
        return dict(self._state[1])

    def total_units(self) -> int:
        return sum(self._state[1].values())

    def list_available(self) -> Iterator[Tuple[Product, int]]:
        """
        Yield (product, quantity) for every product with quantity > 0.

        Iterates one snapshot taken when iteration starts; later mutations
        are not observed.
        """
        products, quantities = self._state
        for pid in sorted(quantities):
            qty = quantities[pid]
            if qty > 0:
                yield products[pid], qty

    # ========================================================================
    # MUTATING
    # ========================================================================

    def add_product(self, product: Product, quantity: int = 0) -> None:
        """
        Register a product in the catalog.

        Args:
            product: The product to register
            quantity: Initial quantity (default: 0)

        Raises:
            ValueError: If the id is already registered or quantity is negative
        """
        products, quantities = self._state
        if product.id in products:
            raise ValueError(f"Product {product.id} already registered")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
            raise ValueError(f"Initial quantity must be a non-negative int, got {quantity!r}")
        self._state = (
            {**products, product.id: product},
            {**quantities, product.id: quantity},
        )

    def reserve(self, product_id: str) -> Reservation:
        """
        Check that one unit is available.

        Raises:
            ProductNotFoundError: If the id is not in the catalog
            OutOfStockError: If the quantity is zero
        """
        product = self.get_product(product_id)
        qty = self._state[1][product_id]
        if qty <= 0:
            raise OutOfStockError(f"{product.name} ({product_id}) is out of stock")
        return Reservation(product=product, quantity_seen=qty)

    def commit(self, reservation: Reservation) -> None:
        """
        Take one reserved unit out of stock.

        Raises:
            LedgerUnderflowError: If the quantity already reached zero
        """
        pid = reservation.product.id
        qty = self.quantity(pid)
        if qty <= 0:
            raise LedgerUnderflowError(
                f"Stock ledger underflow: {pid} at 0 (reserved when {reservation.quantity_seen})"
            )
        self._set_quantity(pid, qty - 1)

    def release(self, reservation: Reservation) -> None:
        """Return one committed unit to stock."""
        pid = reservation.product.id
        self._set_quantity(pid, self.quantity(pid) + 1)

    def restock(self, product_id: str, quantity: int) -> int:
        """
        Add units of an existing product.

        Returns:
            The new quantity

        Raises:
            ProductNotFoundError: If the id is not in the catalog
            ValueError: If quantity is not a positive int
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValueError(f"Restock quantity must be a positive int, got {quantity!r}")
        new_qty = self.quantity(product_id) + quantity
        self._set_quantity(product_id, new_qty)
        return new_qty

    def _set_quantity(self, product_id: str, qty: int) -> None:
        products, quantities = self._state
        self._state = (products, {**quantities, product_id: qty})

    def __repr__(self) -> str:
        products, quantities = self._state
        return f"StockLedger({len(products)} products, {sum(quantities.values())} units)"
