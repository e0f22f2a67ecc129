"""In-memory cart used while a sale is being built."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable


@dataclass
class CartLine:
    product_id: int
    quantity: int = 1

    def to_dict(self) -> dict:
        return {"product_id": self.product_id, "quantity": self.quantity}


class Cart:
    """
    Ordered (product, quantity) lines with a live-price total.

    Each product appears at most once and every quantity is >= 1.
    """

    def __init__(self, lines: Iterable[tuple[int, int]] | None = None):
        self._lines: list[CartLine] = []
        if lines:
            self.seed(lines)

    @property
    def lines(self) -> tuple[CartLine, ...]:
        return tuple(self._lines)

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def __len__(self) -> int:
        return len(self._lines)

    def __contains__(self, product_id: int) -> bool:
        return self._find(product_id) is not None

    def _find(self, product_id: int) -> CartLine | None:
        for line in self._lines:
            if line.product_id == product_id:
                return line
        return None

    def add(self, product_id: int) -> None:
        """Insert a product with quantity 1; no-op when already present."""
        if self._find(product_id) is None:
            self._lines.append(CartLine(product_id=product_id, quantity=1))

    def set_quantity(self, product_id: int, quantity: int) -> None:
        line = self._find(product_id)
        if line is not None:
            line.quantity = max(1, quantity)

    def remove(self, product_id: int) -> None:
        self._lines = [line for line in self._lines if line.product_id != product_id]

    def seed(self, lines: Iterable[tuple[int, int]]) -> None:
        """Replace the contents, e.g. from a stored record being resumed."""
        self._lines = []
        for product_id, quantity in lines:
            self.add(product_id)
            self.set_quantity(product_id, quantity)

    def clear(self) -> None:
        self._lines = []

    def distinct_product_ids(self) -> list[int]:
        return [line.product_id for line in self._lines]

    def quantity_of(self, product_id: int) -> int:
        line = self._find(product_id)
        return line.quantity if line else 0

    def total(self, price_of: Callable[[int], int | None]) -> int:
        """Sum of price x quantity; products without a price contribute 0."""
        total = 0
        for line in self._lines:
            price = price_of(line.product_id)
            if price is not None:
                total += price * line.quantity
        return total

    def to_list(self) -> list[dict]:
        return [line.to_dict() for line in self._lines]
