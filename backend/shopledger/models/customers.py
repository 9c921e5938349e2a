from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


FINANCIAL_PURCHASE = "purchase"
FINANCIAL_PAYMENT = "payment"
FINANCIAL_PURCHASE_REVERSAL = "purchase_reversal"
FINANCIAL_PAYMENT_REVERSAL = "payment_reversal"


class Customer(db.Model):
    """
    Customer master data and accounts-receivable balance.

    INVARIANT: total_due_cents == sum(Bill.due_amount_cents) over this
    customer's bills. It is a cached aggregate maintained inside the same
    transaction as every bill/payment mutation and is never writable from
    request input. `flask ledger check` verifies it.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_active_due", "is_active", "total_due_cents"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False, unique=True, index=True)
    email = db.Column(db.String(255), nullable=True)

    street = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(128), nullable=True)
    state = db.Column(db.String(128), nullable=True)
    pincode = db.Column(db.String(16), nullable=True)

    credit_limit_cents = db.Column(db.Integer, nullable=False, default=0)

    # Denormalized aggregates (updated by bill and payment operations only)
    total_due_cents = db.Column(db.Integer, nullable=False, default=0)
    total_purchases_cents = db.Column(db.Integer, nullable=False, default=0)
    total_payments_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def remaining_credit_cents(self) -> int:
        return max(0, (self.credit_limit_cents or 0) - (self.total_due_cents or 0))

    def update_financials(self, amount_cents: int, kind: str) -> None:
        """
        Apply a purchase or payment to the cached balances.

        purchase: amount_cents is the bill total put on account
        payment:  amount_cents is the amount received against it

        The *_reversal kinds undo the above when a bill is deleted.
        """
        if kind == FINANCIAL_PURCHASE:
            self.total_purchases_cents = (self.total_purchases_cents or 0) + amount_cents
            self.total_due_cents = (self.total_due_cents or 0) + amount_cents
        elif kind == FINANCIAL_PAYMENT:
            self.total_payments_cents = (self.total_payments_cents or 0) + amount_cents
            self.total_due_cents = (self.total_due_cents or 0) - amount_cents
        elif kind == FINANCIAL_PURCHASE_REVERSAL:
            self.total_purchases_cents = (self.total_purchases_cents or 0) - amount_cents
            self.total_due_cents = (self.total_due_cents or 0) - amount_cents
        elif kind == FINANCIAL_PAYMENT_REVERSAL:
            self.total_payments_cents = (self.total_payments_cents or 0) - amount_cents
            self.total_due_cents = (self.total_due_cents or 0) + amount_cents
        else:
            raise ValueError(f"Unknown financial update kind: {kind}")

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "phone": self.phone}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": {
                "street": self.street,
                "city": self.city,
                "state": self.state,
                "pincode": self.pincode,
            },
            "credit_limit_cents": self.credit_limit_cents,
            "total_due_cents": self.total_due_cents,
            "total_purchases_cents": self.total_purchases_cents,
            "total_payments_cents": self.total_payments_cents,
            "remaining_credit_cents": self.remaining_credit_cents,
            "notes": self.notes,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
