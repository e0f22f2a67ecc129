# Overview: Collection-level reads and writes for products, payments and loyalty_customers.

"""
Document Store Access

WHY: The cashier screen treats its backend as three document collections
read in full and filtered in Python. This module is the only place that
talks to those collections; services above it never build queries of
their own for listing.

COLLECTIONS:
- products: catalog entries (read-only here, except stock via catalog_service)
- payments: sale records (appended and updated in place)
- loyalty_customers: autocomplete reference data

Writes accept commit=False so the settlement engine can persist a sale
record and its pending stock effects in one transaction.
"""

from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Product, SaleRecord, LoyaltyCustomer
from ..models.ledger import SETTLEMENT_STATES


class PersistenceError(Exception):
    """Raised when a write to the ledger collection fails."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ConcurrentUpdateError(PersistenceError):
    """Raised when a sale record changed underneath an in-place update."""


class RecordNotFoundError(LookupError):
    """Raised when a sale record id does not exist."""


# Fields a caller may set through update_sale_record.
# created_at marks the original sale time and is not updatable.
SALE_RECORD_MUTABLE_FIELDS = {
    "customer_name",
    "line_items",
    "total_price_cents",
    "cashier_id",
    "cashier_display_name",
    "settlement_state",
    "payment_method",
    "amount_tendered_cents",
    "change_given_cents",
    "paid_at",
    "voided_at",
    "voided_by",
    "void_reason",
}

SALE_RECORD_CREATE_FIELDS = SALE_RECORD_MUTABLE_FIELDS | {
    "created_at",
    "legacy_service_id",
    "legacy_service_name",
    "legacy_quantity",
}


def list_products() -> list[Product]:
    """Full snapshot of the products collection, ordered by name."""
    return db.session.query(Product).order_by(Product.name.asc(), Product.id.asc()).all()


def list_sale_records() -> list[SaleRecord]:
    """Full snapshot of the payments collection, newest first."""
    return (
        db.session.query(SaleRecord)
        .order_by(SaleRecord.created_at.desc(), SaleRecord.id.desc())
        .all()
    )


def list_loyalty_customers() -> list[LoyaltyCustomer]:
    return db.session.query(LoyaltyCustomer).order_by(LoyaltyCustomer.name.asc()).all()


def get_sale_record(record_id: int) -> SaleRecord:
    record = db.session.get(SaleRecord, record_id)
    if record is None:
        raise RecordNotFoundError(f"Sale record {record_id} not found")
    return record


def _check_fields(fields: dict, allowed: set[str]) -> None:
    unknown = sorted(set(fields) - allowed)
    if unknown:
        raise ValueError(f"Unknown sale record fields: {', '.join(unknown)}")
    state = fields.get("settlement_state")
    if state is not None and state not in SETTLEMENT_STATES:
        raise ValueError(f"Invalid settlement_state: {state}")


def commit_ledger_write() -> None:
    """Commit the current unit of work, translating driver failures to PersistenceError."""
    try:
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        raise ConcurrentUpdateError("Sale record was modified by another operator") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceError("Failed to write sale record", details={"cause": type(exc).__name__}) from exc


def create_sale_record(fields: dict, *, commit: bool = True) -> SaleRecord:
    """
    Append a sale record.

    Returns the record (its id is assigned by flush). With commit=False the
    caller owns the transaction and must call commit_ledger_write().
    """
    _check_fields(fields, SALE_RECORD_CREATE_FIELDS)
    if not fields.get("line_items") and not fields.get("legacy_service_id"):
        raise ValueError("A sale record needs at least one line item")

    record = SaleRecord(**fields)
    try:
        db.session.add(record)
        db.session.flush()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceError("Failed to write sale record", details={"cause": type(exc).__name__}) from exc

    if commit:
        commit_ledger_write()
    return record


def update_sale_record(record: SaleRecord | int, fields: dict, *, commit: bool = True) -> SaleRecord:
    """Apply a partial update to a sale record in place."""
    _check_fields(fields, SALE_RECORD_MUTABLE_FIELDS)
    if not isinstance(record, SaleRecord):
        record = get_sale_record(record)

    for key, value in fields.items():
        setattr(record, key, value)

    try:
        db.session.flush()
    except StaleDataError as exc:
        db.session.rollback()
        raise ConcurrentUpdateError("Sale record was modified by another operator") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceError("Failed to update sale record", details={"cause": type(exc).__name__}) from exc

    if commit:
        commit_ledger_write()
    return record
