# Overview: Service-layer settlement workflow; turns a cart into a persisted sale record.

"""
Settlement Service

WHY: Finalizing a sale is the one place where the cart, the payment mode,
the ledger write and the stock decrements meet. Keeping it in one object
lets the HTTP layer stay a thin translator.

STATE MACHINE (per attempt):
    BUILDING -> AWAITING_MODE -> (IMMEDIATE | DEFERRED) -> SETTLED

- BUILDING: cart edits, customer selection
- AWAITING_MODE: payment step opened; tendered amount pre-filled with total
- IMMEDIATE: method + tendered; tendered must cover the total
- DEFERRED: pay later; no payment fields are written
- SETTLED: record created (fresh cart) or UNPAID record updated to PAID
  (resume); terminal for the attempt

FAILURES:
- ValidationError blocks confirmation (empty cart, short tender)
- PersistenceError leaves cart, customer and payment fields untouched so
  the operator can retry
- Stock decrements run after the ledger commit through pending stock
  effects; a failed decrement never fails the sale
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from flask import current_app

from ..extensions import db
from ..models import Product, SaleRecord
from ..models.ledger import SETTLEMENT_UNPAID, SETTLEMENT_PAID, SETTLEMENT_VOIDED
from ..time_utils import utcnow
from ..validation import ValidationError
from . import document_store, stock_effects_service
from .cart import Cart
from .concurrency import lock_for_update
from .document_store import PersistenceError, ConcurrentUpdateError
from .stock_effects_service import StockAdjuster, SETTLEMENT_KEY_CREATE, SETTLEMENT_KEY_RESUME


class SettlementError(Exception):
    """Raised when the settlement workflow cannot proceed."""
    def __init__(self, message: str, details: dict | None = None, status_code: int = 400):
        super().__init__(message)
        self.details = details or {}
        self.status_code = status_code


# =============================================================================
# PAYMENT METHODS / QUICK AMOUNTS (CONSTANTS)
# =============================================================================

PAYMENT_CASH = "cash"
PAYMENT_GCASH = "gcash"
PAYMENT_CARD = "card"
PAYMENT_MAYA = "maya"

PAYMENT_METHODS = {
    PAYMENT_CASH: "Cash",
    PAYMENT_GCASH: "GCash",
    PAYMENT_CARD: "Card",
    PAYMENT_MAYA: "Maya",
}

DEFAULT_PAYMENT_METHOD = PAYMENT_CASH

# ₱100, ₱200, ₱300, ₱500, ₱1000
QUICK_AMOUNTS_CENTS = (10_000, 20_000, 30_000, 50_000, 100_000)

NO_CUSTOMER = "N/A"


# =============================================================================
# STATES
# =============================================================================

STATE_BUILDING = "BUILDING"
STATE_AWAITING_MODE = "AWAITING_MODE"
STATE_IMMEDIATE = "IMMEDIATE"
STATE_DEFERRED = "DEFERRED"
STATE_SETTLED = "SETTLED"


@dataclass(frozen=True)
class OperatorContext:
    """The cashier performing the settlement, passed in explicitly."""
    cashier_id: str
    display_name: str | None = None

    def __post_init__(self):
        if not self.cashier_id or not str(self.cashier_id).strip():
            raise ValidationError("cashier_id required")


@dataclass
class SettlementResult:
    record: SaleRecord
    created: bool
    stock_applied: int
    stock_pending: int

    @property
    def message(self) -> str:
        if self.record.settlement_state == SETTLEMENT_UNPAID:
            return "Products recorded as unpaid."
        return "Payment recorded!"


class SettlementSession:
    """
    One sale attempt: cart, customer, payment mode and confirmation.

    `catalog` is the product snapshot the cashier is looking at; live
    prices come from it. Use SettlementSession.resume() to reopen an UNPAID
    record.
    """

    def __init__(
        self,
        catalog: Iterable[Product] | Mapping[int, Product],
        *,
        stock_adjuster: StockAdjuster | None = None,
    ):
        if isinstance(catalog, Mapping):
            self._catalog: dict[int, Product] = dict(catalog)
        else:
            self._catalog = {p.id: p for p in catalog}
        self._stock_adjuster = stock_adjuster

        self.cart = Cart()
        self.state = STATE_BUILDING
        self.selected_customer: str | None = None
        self.customer_input: str = ""
        self.payment_method: str = DEFAULT_PAYMENT_METHOD
        self.amount_tendered_cents: int | None = None

        self._resume_record_id: int | None = None
        self._resume_version: int | None = None
        self._resume_customer: str | None = None
        # Stored line snapshot of a resumed record, keyed by product id.
        # Used when a product has since left the catalog.
        self._stored_lines: dict[int, dict] = {}

    # ------------------------------------------------------------------
    # construction
    # ------------------------------------------------------------------

    @classmethod
    def resume(
        cls,
        record: SaleRecord,
        catalog: Iterable[Product] | Mapping[int, Product],
        *,
        stock_adjuster: StockAdjuster | None = None,
    ) -> "SettlementSession":
        """Reopen an UNPAID record; its lines and customer seed the session."""
        if record.settlement_state == SETTLEMENT_PAID:
            raise SettlementError("Sale record is already paid", status_code=409)
        if record.settlement_state == SETTLEMENT_VOIDED:
            raise SettlementError("Sale record is voided", status_code=409)

        session = cls(catalog, stock_adjuster=stock_adjuster)
        session._resume_record_id = record.id
        session._resume_version = record.version_id
        session._resume_customer = record.customer_name

        lines = lines_from_record(record)
        session._stored_lines = {
            item["product_id"]: item for item in (record.line_items or []) if item.get("product_id") is not None
        }
        session.cart.seed(lines)

        session.selected_customer = record.customer_name or None
        session.customer_input = record.customer_name or ""
        session.begin_payment()
        return session

    @property
    def is_resume(self) -> bool:
        return self._resume_record_id is not None

    @property
    def resume_record_id(self) -> int | None:
        return self._resume_record_id

    # ------------------------------------------------------------------
    # cart
    # ------------------------------------------------------------------

    def _require_open(self) -> None:
        if self.state == STATE_SETTLED:
            raise SettlementError("Settlement already completed", status_code=409)

    def add_product(self, product_id: int) -> None:
        self._require_open()
        # Lines already on a resumed record stay addable even if the product
        # was hidden or removed since.
        if product_id in self._stored_lines:
            self.cart.add(product_id)
            return
        product = self._catalog.get(product_id)
        if product is None:
            raise ValidationError(f"Product {product_id} not found")
        if product.available is False:
            raise ValidationError(f"Product {product.name} is not available")
        self.cart.add(product_id)

    def set_quantity(self, product_id: int, quantity: int) -> None:
        self._require_open()
        self.cart.set_quantity(product_id, quantity)

    def remove_product(self, product_id: int) -> None:
        self._require_open()
        self.cart.remove(product_id)

    def replace_lines(self, lines: Iterable[tuple[int, int]]) -> None:
        """
        Load cart lines in bulk, validating each product like add_product.

        Once the payment step is open, tendered is reset to the new total.
        """
        self._require_open()
        self.cart.clear()
        for product_id, quantity in lines:
            self.add_product(product_id)
            self.cart.set_quantity(product_id, quantity)
        if self.state != STATE_BUILDING:
            if self.cart.is_empty:
                raise ValidationError("Please select at least one product.")
            self.amount_tendered_cents = self.total_cents()

    def unit_price_of(self, product_id: int) -> int | None:
        product = self._catalog.get(product_id)
        if product is not None:
            return product.unit_price_cents
        stored = self._stored_lines.get(product_id)
        if stored is not None:
            return stored.get("unit_price_cents")
        return None

    def product_name_of(self, product_id: int) -> str | None:
        product = self._catalog.get(product_id)
        if product is not None:
            return product.name
        stored = self._stored_lines.get(product_id)
        if stored is not None:
            return stored.get("product_name")
        return None

    def total_cents(self) -> int:
        return self.cart.total(self.unit_price_of)

    def line_snapshot(self) -> list[dict]:
        """Cart lines frozen at current prices, as stored on the sale record."""
        snapshot = []
        missing = []
        for line in self.cart.lines:
            price = self.unit_price_of(line.product_id)
            name = self.product_name_of(line.product_id)
            if price is None or name is None:
                missing.append(line.product_id)
                continue
            snapshot.append({
                "product_id": line.product_id,
                "product_name": name,
                "unit_price_cents": price,
                "quantity": line.quantity,
            })
        if missing:
            raise ValidationError(f"Unknown products in cart: {missing}")
        return snapshot

    # ------------------------------------------------------------------
    # customer
    # ------------------------------------------------------------------

    def select_customer(self, name: str | None) -> None:
        """Pick a loyalty customer by name (None clears the selection)."""
        self._require_open()
        self.selected_customer = (name or "").strip() or None

    def set_customer_input(self, text: str | None) -> None:
        self._require_open()
        self.customer_input = text or ""

    def resolve_customer_name(self) -> str:
        """Loyalty selection, then typed name, then the resumed record's name, then N/A."""
        if self.selected_customer:
            return self.selected_customer
        typed = self.customer_input.strip()
        if typed:
            return typed
        if self._resume_customer:
            return self._resume_customer
        return NO_CUSTOMER

    # ------------------------------------------------------------------
    # payment mode
    # ------------------------------------------------------------------

    def begin_payment(self) -> None:
        """Open the payment step; tendered defaults to the cart total."""
        self._require_open()
        if self.cart.is_empty:
            raise ValidationError("Please select at least one product.")
        self.state = STATE_AWAITING_MODE
        self.amount_tendered_cents = self.total_cents()

    def _require_payment_step(self) -> None:
        self._require_open()
        if self.state == STATE_BUILDING:
            self.begin_payment()

    def choose_immediate(self, payment_method: str | None = None, amount_tendered_cents: int | None = None) -> None:
        self._require_payment_step()
        method = payment_method or self.payment_method or DEFAULT_PAYMENT_METHOD
        if method not in PAYMENT_METHODS:
            raise ValidationError(
                f"Invalid payment method: {method}. Must be one of {list(PAYMENT_METHODS)}"
            )
        self.payment_method = method
        if amount_tendered_cents is not None:
            if amount_tendered_cents < 0:
                raise ValidationError("Amount tendered cannot be negative")
            self.amount_tendered_cents = amount_tendered_cents
        self.state = STATE_IMMEDIATE

    def choose_deferred(self) -> None:
        self._require_payment_step()
        if self.is_resume:
            raise SettlementError("A resumed sale can only be settled as paid")
        self.state = STATE_DEFERRED

    def apply_quick_amount(self, cents: int) -> None:
        """Convenience setter for the tendered amount."""
        self._require_open()
        self.amount_tendered_cents = cents

    @property
    def change_cents(self) -> int:
        if self.amount_tendered_cents is None:
            return 0
        return self.amount_tendered_cents - self.total_cents()

    def validation_errors(self) -> list[str]:
        errors = []
        if self.cart.is_empty:
            errors.append("Please select at least one product.")
        if self.state not in (STATE_IMMEDIATE, STATE_DEFERRED):
            errors.append("Choose to pay now or pay later.")
        if self.state == STATE_IMMEDIATE:
            if self.amount_tendered_cents is None:
                errors.append("Amount tendered required")
            elif self.amount_tendered_cents < self.total_cents():
                errors.append("Amount tendered is less than the total")
        return errors

    def can_confirm(self) -> bool:
        return self.state != STATE_SETTLED and not self.validation_errors()

    # ------------------------------------------------------------------
    # confirmation
    # ------------------------------------------------------------------

    def confirm(self, operator: OperatorContext) -> SettlementResult:
        """
        Persist the attempt.

        Raises:
            ValidationError: cart empty, mode missing, or short tender
            SettlementError: resumed record no longer UNPAID
            PersistenceError: ledger write failed (session left intact)
        """
        self._require_open()
        errors = self.validation_errors()
        if errors:
            raise ValidationError(errors[0])

        lines = self.line_snapshot()
        total = sum(item["unit_price_cents"] * item["quantity"] for item in lines)
        paid_now = self.state == STATE_IMMEDIATE

        fields = {
            "customer_name": self.resolve_customer_name(),
            "line_items": lines,
            "total_price_cents": total,
            "cashier_id": operator.cashier_id,
            "cashier_display_name": operator.display_name,
        }
        if paid_now:
            fields.update({
                "settlement_state": SETTLEMENT_PAID,
                "payment_method": self.payment_method,
                "amount_tendered_cents": self.amount_tendered_cents,
                "change_given_cents": self.amount_tendered_cents - total,
                "paid_at": utcnow(),
            })
        else:
            fields["settlement_state"] = SETTLEMENT_UNPAID

        try:
            if self.is_resume:
                record = self._write_resume(fields)
                settlement_key = SETTLEMENT_KEY_RESUME
            else:
                fields["created_at"] = utcnow()
                record = document_store.create_sale_record(fields, commit=False)
                settlement_key = SETTLEMENT_KEY_CREATE

            effects = stock_effects_service.record_effects(record.id, lines, settlement_key)
            effect_ids = [e.id for e in effects]
            document_store.commit_ledger_write()
        except (SettlementError, PersistenceError):
            db.session.rollback()
            raise

        current_app.logger.info(
            "Sale record %s settled as %s by %s (total %s cents)",
            record.id, record.settlement_state, operator.cashier_id, total,
        )

        stock = stock_effects_service.apply_effects(effect_ids, self._stock_adjuster)

        created = not self.is_resume
        self._finish()
        return SettlementResult(
            record=record,
            created=created,
            stock_applied=stock["applied"],
            stock_pending=stock["pending"],
        )

    def _write_resume(self, fields: dict) -> SaleRecord:
        record = lock_for_update(
            db.session.query(SaleRecord).filter_by(id=self._resume_record_id)
        ).first()
        if record is None:
            raise SettlementError("Sale record not found", status_code=404)
        if record.settlement_state != SETTLEMENT_UNPAID:
            raise SettlementError(
                f"Cannot settle a sale record with state {record.settlement_state}",
                status_code=409,
            )
        if self._resume_version is not None and record.version_id != self._resume_version:
            raise SettlementError("Sale record changed since it was opened", status_code=409)

        try:
            return document_store.update_sale_record(record, fields, commit=False)
        except ConcurrentUpdateError as exc:
            raise SettlementError(str(exc), status_code=409) from exc

    def _finish(self) -> None:
        self.cart.clear()
        self.selected_customer = None
        self.customer_input = ""
        self.payment_method = DEFAULT_PAYMENT_METHOD
        self.amount_tendered_cents = None
        self._resume_record_id = None
        self._resume_version = None
        self._resume_customer = None
        self._stored_lines = {}
        self.state = STATE_SETTLED

    def to_dict(self) -> dict:
        lines = []
        for line in self.cart.lines:
            price = self.unit_price_of(line.product_id)
            lines.append({
                "product_id": line.product_id,
                "product_name": self.product_name_of(line.product_id),
                "unit_price_cents": price,
                "quantity": line.quantity,
                "subtotal_cents": (price or 0) * line.quantity,
            })
        return {
            "state": self.state,
            "resume_record_id": self._resume_record_id,
            "customer_name": self.resolve_customer_name(),
            "lines": lines,
            "total_cents": self.total_cents(),
            "payment_method": self.payment_method,
            "amount_tendered_cents": self.amount_tendered_cents,
            "change_cents": self.change_cents,
            "can_confirm": self.can_confirm(),
            "errors": self.validation_errors(),
            "quick_amounts_cents": list(QUICK_AMOUNTS_CENTS),
        }


def lines_from_record(record: SaleRecord) -> list[tuple[int, int]]:
    """Cart lines for a stored record; single-service legacy records fall back to their service id."""
    if record.line_items:
        return [
            (item["product_id"], item.get("quantity") or 1)
            for item in record.line_items
            if item.get("product_id") is not None
        ]
    if record.legacy_service_id:
        return [(record.legacy_service_id, record.legacy_quantity or 1)]
    return []


def void_sale_record(record_id: int, operator: OperatorContext, reason: str) -> SaleRecord:
    """
    Void an UNPAID or PAID record. VOIDED is terminal.

    Stock is not restored; pending stock effects are left as they are.
    """
    if not reason or not reason.strip():
        raise ValidationError("reason required")

    record = lock_for_update(db.session.query(SaleRecord).filter_by(id=record_id)).first()
    if record is None:
        raise SettlementError("Sale record not found", status_code=404)
    if record.settlement_state == SETTLEMENT_VOIDED:
        raise SettlementError("Sale record already voided", status_code=409)

    try:
        document_store.update_sale_record(record, {
            "settlement_state": SETTLEMENT_VOIDED,
            "voided_at": utcnow(),
            "voided_by": operator.cashier_id,
            "void_reason": reason.strip()[:255],
        })
    except ConcurrentUpdateError as exc:
        raise SettlementError(str(exc), status_code=409) from exc

    current_app.logger.info("Sale record %s voided by %s", record.id, operator.cashier_id)
    return record
