from __future__ import annotations

from ..extensions import db
from ..formatting import format_money
from ..time_utils import to_utc_z


SETTLEMENT_UNPAID = "UNPAID"
SETTLEMENT_PAID = "PAID"
SETTLEMENT_VOIDED = "VOIDED"

SETTLEMENT_STATES = (SETTLEMENT_UNPAID, SETTLEMENT_PAID, SETTLEMENT_VOIDED)

EFFECT_PENDING = "PENDING"
EFFECT_APPLIED = "APPLIED"


class SaleRecord(db.Model):
    """
    Sale / payment record (collection: payments).

    The persisted unit of truth for a sale. Line items are a snapshot of the
    catalog at settlement time, so `total_price_cents` never follows later
    price changes.

    LIFECYCLE:
    - Created once, either PAID (immediate) or UNPAID (pay later)
    - UNPAID -> PAID at most once; created_at is preserved across it
    - VOIDED is terminal
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_state_created", "settlement_state", "created_at"),
        db.Index("ix_payments_customer_name", "customer_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    customer_name = db.Column(db.String(255), nullable=False, default="N/A")

    # [{"product_id", "product_name", "unit_price_cents", "quantity"}]
    line_items = db.Column(db.JSON, nullable=False, default=list)
    total_price_cents = db.Column(db.Integer, nullable=False, default=0)

    # Operator attribution (copied, not joined)
    cashier_id = db.Column(db.String(128), nullable=False)
    cashier_display_name = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    settlement_state = db.Column(db.String(16), nullable=False, default=SETTLEMENT_UNPAID, index=True)

    # Present only when PAID
    payment_method = db.Column(db.String(16), nullable=True)
    amount_tendered_cents = db.Column(db.Integer, nullable=True)
    change_given_cents = db.Column(db.Integer, nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Void audit trail
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_by = db.Column(db.String(128), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    # Records carried over from the single-service screen
    legacy_service_id = db.Column(db.Integer, nullable=True)
    legacy_service_name = db.Column(db.String(255), nullable=True)
    legacy_quantity = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def product_names(self) -> list[str]:
        """Distinct product names on the record, legacy name included, in first-seen order."""
        names: list[str] = []
        for item in self.line_items or []:
            name = item.get("product_name")
            if name and name not in names:
                names.append(name)
        if self.legacy_service_name and self.legacy_service_name not in names:
            names.append(self.legacy_service_name)
        return names

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_name": self.customer_name,
            "line_items": [dict(item) for item in (self.line_items or [])],
            "total_price_cents": self.total_price_cents,
            "cashier_id": self.cashier_id,
            "cashier_display_name": self.cashier_display_name,
            "created_at": to_utc_z(self.created_at),
            "settlement_state": self.settlement_state,
            "payment_method": self.payment_method,
            "amount_tendered_cents": self.amount_tendered_cents,
            "change_given_cents": self.change_given_cents,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "voided_by": self.voided_by,
            "void_reason": self.void_reason,
            "legacy_service_id": self.legacy_service_id,
            "legacy_service_name": self.legacy_service_name,
            "legacy_quantity": self.legacy_quantity,
            "version_id": self.version_id,
            "display": {
                "total_price": format_money(self.total_price_cents),
                "amount_tendered": format_money(self.amount_tendered_cents),
                "change_given": format_money(self.change_given_cents),
            },
        }


class StockEffect(db.Model):
    """
    Pending stock decrement owned by a sale record.

    Written in the same transaction as the sale record, then applied one by
    one. A row moves PENDING -> APPLIED exactly once; reconciliation retries
    PENDING rows on the next ledger load.
    """
    __tablename__ = "stock_effects"
    __table_args__ = (
        db.UniqueConstraint(
            "sale_record_id", "product_id", "settlement_key",
            name="uq_stock_effects_record_product_key",
        ),
        db.Index("ix_stock_effects_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_record_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    # "create" for the initial settlement, "resume" for UNPAID -> PAID
    settlement_key = db.Column(db.String(16), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=EFFECT_PENDING)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    applied_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    sale_record = db.relationship("SaleRecord", backref=db.backref("stock_effects", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_record_id": self.sale_record_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "settlement_key": self.settlement_key,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": to_utc_z(self.created_at),
            "applied_at": to_utc_z(self.applied_at) if self.applied_at else None,
        }
