# Overview: Catalog lookups for the cashier screen and the stock adjuster.

from __future__ import annotations

from typing import Iterable

from ..extensions import db
from ..models import Product
from .concurrency import lock_for_update


class CatalogError(Exception):
    """Raised for catalog lookup and stock errors."""
    pass


def search_available_products(products: Iterable[Product], query: str | None = None) -> list[Product]:
    """
    Products the cashier can pick: available ones whose name or description
    contains the query (case-insensitive). An empty query returns all available.
    """
    needle = (query or "").strip().lower()
    result = []
    for p in products:
        if p.available is False:
            continue
        if needle and needle not in p.name.lower() and needle not in (p.description or "").lower():
            continue
        result.append(p)
    return result


def decrement_stock(product_id: int, quantity: int, *, commit: bool = True) -> Product:
    """
    Stock Adjuster: take `quantity` units of a product off the shelf.

    Stock never goes below zero; a sale that already happened is not
    rejected for lack of recorded stock.
    """
    if quantity <= 0:
        raise CatalogError("Quantity must be positive")

    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if product is None:
        raise CatalogError(f"Product {product_id} not found")

    product.stock_quantity = max(0, (product.stock_quantity or 0) - quantity)
    db.session.flush()

    if commit:
        db.session.commit()
    return product
