# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/paydesk/routes/sales.py
"""
Sales API Routes

DESIGN:
- List sale records with filters, summary cards and dropdown options
- Quote a cart (live total, change, quick amounts) without writing
- Settle a fresh cart as paid or pay-later
- Resume an UNPAID record and settle it as paid
- Void a record

Every write route requires an identified cashier (@require_operator).
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import document_store, ledger_query, stock_effects_service
from ..services.document_store import PersistenceError, RecordNotFoundError
from ..services.ledger_query import LedgerFilter
from ..services.settlement_service import (
    SettlementSession,
    SettlementError,
    PAYMENT_METHODS,
    void_sale_record,
)
from ..models.ledger import SETTLEMENT_UNPAID
from ..validation import ValidationError, parse_cart_lines, parse_cents, optional_str
from ..decorators import require_operator


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _apply_customer(session: SettlementSession, data: dict) -> None:
    if "loyalty_customer_name" in data:
        session.select_customer(optional_str(data.get("loyalty_customer_name")))
    if "customer_name" in data:
        session.set_customer_input(optional_str(data.get("customer_name")) or "")


def _apply_mode(session: SettlementSession, data: dict) -> None:
    if data.get("pay_later"):
        session.choose_deferred()
        return
    tendered = parse_cents("amount_tendered_cents", data.get("amount_tendered_cents"), required=False)
    session.choose_immediate(optional_str(data.get("payment_method")), tendered)


def _settlement_response(result, status_code: int):
    return jsonify({
        "record": result.record.to_dict(),
        "message": result.message,
        "stock": {
            "applied": result.stock_applied,
            "pending": result.stock_pending,
        },
    }), status_code


# =============================================================================
# LEDGER VIEW
# =============================================================================

@sales_bp.get("")
def list_sales_route():
    """
    List sale records.

    Query params (all optional, combined with AND):
    - date_from, date_to: YYYY-MM-DD, inclusive whole days
    - customer: exact customer name
    - product: exact product name
    - status: paid | unpaid | voided
    - search: case-insensitive substring of the customer name

    stats, options and most_sold are computed over all records.
    Pending stock effects are reconciled before reading.
    """
    try:
        flt = LedgerFilter.from_args(request.args)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        stock_effects_service.reconcile_pending_effects()
        records = document_store.list_sale_records()
        items = ledger_query.filter_records(records, flt)

        return jsonify({
            "items": [r.to_dict() for r in items],
            "count": len(items),
            "stats": ledger_query.compute_stats(records),
            "options": ledger_query.filter_options(records),
            "most_sold": ledger_query.most_sold_products(records),
            "payment_methods": [{"key": k, "label": v} for k, v in PAYMENT_METHODS.items()],
        }), 200
    except Exception:
        current_app.logger.exception("Failed to list sale records")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:record_id>")
def get_sale_route(record_id: int):
    """Sale record with its stock effects."""
    try:
        record = document_store.get_sale_record(record_id)
    except RecordNotFoundError:
        return jsonify({"error": "Sale record not found"}), 404

    return jsonify({
        "record": record.to_dict(),
        "stock_effects": [e.to_dict() for e in record.stock_effects],
        "can_resume": record.settlement_state == SETTLEMENT_UNPAID,
    }), 200


# =============================================================================
# CART PREVIEW
# =============================================================================

@sales_bp.post("/quote")
def quote_route():
    """
    Price a cart without writing anything.

    Request body:
    {
        "lines": [{"product_id": 1, "quantity": 2}],
        "customer_name": "Juan",            (optional)
        "loyalty_customer_name": "Maria",   (optional)
        "payment_method": "cash",           (optional)
        "amount_tendered_cents": 20000,     (optional)
        "pay_later": false                  (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        session = SettlementSession(document_store.list_products())
        session.replace_lines(parse_cart_lines(data.get("lines")))
        _apply_customer(session, data)
        if not session.cart.is_empty:
            _apply_mode(session, data)
        return jsonify({"quote": session.to_dict()}), 200

    except (ValidationError, SettlementError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to quote cart")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# SETTLEMENT
# =============================================================================

@sales_bp.post("/settle")
@require_operator
def settle_route():
    """
    Settle a fresh cart.

    Request body: same as /quote. "pay_later": true records the sale as
    UNPAID with no payment fields. Otherwise amount_tendered_cents defaults
    to the cart total.

    Returns:
        201: Sale record created
        400: Validation failure (empty cart, short tender, bad input)
        401: Missing cashier
        503: Ledger write failed; safe to retry
    """
    data = request.get_json(silent=True) or {}
    try:
        session = SettlementSession(document_store.list_products())
        session.replace_lines(parse_cart_lines(data.get("lines")))
        _apply_customer(session, data)
        _apply_mode(session, data)

        result = session.confirm(g.operator)
        return _settlement_response(result, 201)

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except SettlementError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except PersistenceError:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Failed to record payment"}), 503
    except Exception:
        current_app.logger.exception("Failed to settle sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:record_id>/settle")
@require_operator
def resume_settle_route(record_id: int):
    """
    Settle an UNPAID record as paid.

    Request body:
    {
        "payment_method": "gcash",
        "amount_tendered_cents": 15000,   (optional, defaults to total)
        "lines": [...],                   (optional, replaces the stored lines)
        "customer_name": "..."            (optional)
    }

    Returns:
        200: Record updated to PAID; created_at unchanged
        404: Record not found
        409: Record is not UNPAID
    """
    data = request.get_json(silent=True) or {}
    try:
        try:
            record = document_store.get_sale_record(record_id)
        except RecordNotFoundError:
            return jsonify({"error": "Sale record not found"}), 404

        session = SettlementSession.resume(record, document_store.list_products())
        if data.get("lines") is not None:
            session.replace_lines(parse_cart_lines(data.get("lines")))
        _apply_customer(session, data)
        if data.get("pay_later"):
            raise SettlementError("A resumed sale can only be settled as paid")
        _apply_mode(session, data)

        result = session.confirm(g.operator)
        return _settlement_response(result, 200)

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except SettlementError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except PersistenceError:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Failed to record payment"}), 503
    except Exception:
        current_app.logger.exception("Failed to settle sale record")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:record_id>/void")
@require_operator
def void_sale_route(record_id: int):
    """Void a sale record. Body: {"reason": "..."}"""
    data = request.get_json(silent=True) or {}
    try:
        record = void_sale_record(record_id, g.operator, data.get("reason") or "")
        return jsonify({"record": record.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except SettlementError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except PersistenceError:
        current_app.logger.exception("Failed to void sale record")
        return jsonify({"error": "Failed to void sale record"}), 503
    except Exception:
        current_app.logger.exception("Failed to void sale record")
        return jsonify({"error": "Internal server error"}), 500
