# Overview: Flask API routes for catalog lookups; parses input and returns JSON responses.

# backend/paydesk/routes/catalog.py
"""Product picker and loyalty customer autocomplete."""

from flask import Blueprint, request, jsonify

from ..formatting import format_money
from ..services import document_store
from ..services.catalog_service import search_available_products


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


@catalog_bp.get("/products")
def list_products_route():
    """
    List products for the sale picker.

    Query params:
    - search: str (optional) - case-insensitive match on name or description
    - include_unavailable: "true" to list hidden products as well
    """
    search = request.args.get("search")
    include_unavailable = request.args.get("include_unavailable", "false").lower() == "true"

    products = document_store.list_products()
    if include_unavailable:
        needle = (search or "").strip().lower()
        items = [
            p for p in products
            if not needle or needle in p.name.lower() or needle in (p.description or "").lower()
        ]
    else:
        items = search_available_products(products, search)

    return jsonify({
        "items": [
            {**p.to_dict(), "display_price": format_money(p.unit_price_cents)}
            for p in items
        ],
        "count": len(items),
    }), 200


@catalog_bp.get("/loyalty-customers")
def list_loyalty_customers_route():
    customers = document_store.list_loyalty_customers()
    return jsonify({
        "items": [c.to_dict() for c in customers],
        "count": len(customers),
    }), 200
