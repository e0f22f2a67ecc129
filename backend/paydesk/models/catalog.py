from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product catalog entry (collection: products).

    Prices are authoritative in cents; the API only formats them for display.
    `available=False` hides the product from the cashier's picker but keeps
    it resolvable for historical sale records.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_available_name", "available", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    available = db.Column(db.Boolean, nullable=False, default=True)
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} price_cents={self.unit_price_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "available": self.available,
            "stock_quantity": self.stock_quantity,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class LoyaltyCustomer(db.Model):
    """
    Loyalty customer reference data (collection: loyalty_customers).

    Used for autocomplete only. Sales copy the name; there is no foreign key
    from a sale record back to this table.
    """
    __tablename__ = "loyalty_customers"
    __table_args__ = (
        db.Index("ix_loyalty_customers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    # [{"car_name": ..., "plate_number": ...}]
    cars = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "cars": list(self.cars or []),
            "created_at": to_utc_z(self.created_at),
        }
