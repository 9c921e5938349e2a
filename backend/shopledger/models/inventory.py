from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


VALID_CATEGORIES = ["lighting", "switches", "cables", "tools", "accessories", "other"]

STOCK_IN = "In Stock"
STOCK_LOW = "Low Stock"
STOCK_OUT = "Out of Stock"
STOCK_DISCONTINUED = "Discontinued"


class Product(db.Model):
    """
    Sellable catalogue item.

    quantity is the on-hand count decremented by bill creation and
    restored by bill deletion. Products are never hard-deleted: old
    bill lines must keep resolving, and retiring one flips is_active.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_active", "category", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(32), nullable=False, default="other", index=True)

    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    low_stock_alert = db.Column(db.Integer, nullable=False, default=5)

    brand = db.Column(db.String(128), nullable=True)
    model = db.Column(db.String(128), nullable=True)
    warranty_months = db.Column(db.Integer, nullable=False, default=0)

    # Supplier record; anything without a named column goes in `extra`
    supplier_name = db.Column(db.String(255), nullable=True)
    supplier_contact = db.Column(db.String(64), nullable=True)
    supplier_email = db.Column(db.String(255), nullable=True)
    extra = db.Column(db.JSON, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def stock_status(self) -> str:
        if not self.is_active:
            return STOCK_DISCONTINUED
        if (self.quantity or 0) <= 0:
            return STOCK_OUT
        if self.quantity <= (self.low_stock_alert or 0):
            return STOCK_LOW
        return STOCK_IN

    def to_summary(self) -> dict:
        """Denormalized fields shown on bill lines."""
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "price_cents": self.price_cents,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price_cents": self.price_cents,
            "cost_price_cents": self.cost_price_cents,
            "quantity": self.quantity,
            "low_stock_alert": self.low_stock_alert,
            "brand": self.brand,
            "model": self.model,
            "warranty_months": self.warranty_months,
            "supplier": {
                "name": self.supplier_name,
                "contact": self.supplier_contact,
                "email": self.supplier_email,
            },
            "extra": self.extra or {},
            "is_active": self.is_active,
            "stock_status": self.stock_status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
