from __future__ import annotations

from flask import current_app, has_app_context


def format_money(cents: int | None, symbol: str | None = None) -> str | None:
    """Display string for an amount in cents, e.g. 123450 -> '₱1,234.50'."""
    if cents is None:
        return None
    if symbol is None:
        symbol = current_app.config.get("CURRENCY_SYMBOL", "₱") if has_app_context() else "₱"
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), 100)
    return f"{sign}{symbol}{whole:,}.{frac:02d}"
