from __future__ import annotations

from typing import Any


# Maximum price: ₱9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

# Upper bound for a single cart line
MAX_LINE_QUANTITY = 10_000


class ValidationError(ValueError):
    """400-level input problem."""


def coerce_int(field: str, value: Any) -> int:
    """
    Strict integer coercion for JSON input.

    Accepts ints and plain digit strings; rejects bools, floats,
    decimals and scientific notation.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def parse_cents(field: str, value: Any, *, required: bool = True) -> int | None:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} required")
        return None
    cents = coerce_int(field, value)
    if cents < 0:
        raise ValidationError(f"{field} cannot be negative")
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS} cents")
    return cents


def parse_cart_lines(value: Any) -> list[tuple[int, int]]:
    """
    Normalize a JSON list of {"product_id", "quantity"} objects.

    Quantity defaults to 1 and is NOT clamped here; the cart owns clamping.
    Duplicate product ids are kept in order so the cart can collapse them.
    """
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError("lines must be a list")

    lines: list[tuple[int, int]] = []
    for i, raw in enumerate(value):
        if not isinstance(raw, dict):
            raise ValidationError(f"lines[{i}] must be an object")
        if raw.get("product_id") is None:
            raise ValidationError(f"lines[{i}].product_id required")
        product_id = coerce_int(f"lines[{i}].product_id", raw.get("product_id"))
        quantity = raw.get("quantity", 1)
        quantity = coerce_int(f"lines[{i}].quantity", quantity)
        if quantity > MAX_LINE_QUANTITY:
            raise ValidationError(f"lines[{i}].quantity cannot exceed {MAX_LINE_QUANTITY}")
        lines.append((product_id, quantity))
    return lines


def optional_str(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None
