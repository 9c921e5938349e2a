from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


# =============================================================================
# ENUMS (CONSTANTS)
# =============================================================================

BILL_PAYMENT_METHODS = ["cash", "card", "upi", "bank_transfer", "credit"]
PAYMENT_METHODS = ["cash", "card", "upi", "bank_transfer", "credit"]

PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_PARTIAL = "partial"
PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUSES = [PAYMENT_STATUS_PENDING, PAYMENT_STATUS_PARTIAL, PAYMENT_STATUS_PAID]

BILL_STATUS_PENDING = "pending"
BILL_STATUS_PAID = "paid"
BILL_STATUSES = ["pending", "processing", "completed", "cancelled", "refunded", "paid"]

BILL_TYPES = ["sale", "purchase", "return"]


class Bill(db.Model):
    """
    Sales invoice.

    INVARIANT: due_amount_cents == total_cents - paid_amount_cents, both >= 0.
    total/subtotal/tax/discount are supplied by the caller; paid/due are only
    ever changed by bill_service and payment_service.
    """
    __tablename__ = "bills"
    __table_args__ = (
        db.Index("ix_bills_customer_due", "customer_id", "due_amount_cents"),
        db.Index("ix_bills_customer_date", "customer_id", "bill_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable sequential number ("BILL-1001")
    bill_number = db.Column(db.String(32), nullable=False, unique=True, index=True)
    # Opaque external reference (printed on receipts, safe to share)
    reference = db.Column(db.String(64), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    due_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=False)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PENDING, index=True)
    status = db.Column(db.String(16), nullable=False, default=BILL_STATUS_PENDING, index=True)
    type = db.Column(db.String(16), nullable=False, default="sale")
    # True when the bill was put on the customer's account (created pending/partial)
    on_account = db.Column(db.Boolean, nullable=False, default=False)

    bill_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    extra = db.Column(db.JSON, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("bills", lazy=True))
    lines = db.relationship(
        "BillLine",
        backref="bill",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="BillLine.position",
    )
    payments = db.relationship(
        "BillPayment",
        backref="bill",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="BillPayment.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, populate: bool = True) -> dict:
        data = {
            "id": self.id,
            "bill_number": self.bill_number,
            "reference": self.reference,
            "customer_id": self.customer_id,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "due_amount_cents": self.due_amount_cents,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "status": self.status,
            "type": self.type,
            "on_account": self.on_account,
            "bill_date": to_utc_z(self.bill_date),
            "due_date": to_utc_z(self.due_date) if self.due_date else None,
            "notes": self.notes,
            "extra": self.extra or {},
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
            "items": [line.to_dict(populate=populate) for line in self.lines],
            "payments": [p.to_dict() for p in self.payments],
        }
        if populate:
            data["customer"] = self.customer.to_summary() if self.customer else None
        return data


class BillLine(db.Model):
    """Individual line items on a bill. References, but does not own, a Product."""
    __tablename__ = "bill_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    bill_id = db.Column(db.Integer, db.ForeignKey("bills.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self, populate: bool = True) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.line_total_cents,
        }
        if populate:
            data["product"] = self.product.to_summary() if self.product else None
        return data


class BillPayment(db.Model):
    """
    Payment history embedded in a bill.

    One row per direct payment-on-bill, and one per FIFO allocation of a
    customer Payment (payment_id set).
    """
    __tablename__ = "bill_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    bill_id = db.Column(db.Integer, db.ForeignKey("bills.id"), nullable=False, index=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(32), nullable=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    recorded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bill_id": self.bill_id,
            "payment_id": self.payment_id,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "paid_at": to_utc_z(self.paid_at),
            "recorded_by_user_id": self.recorded_by_user_id,
        }


class Payment(db.Model):
    """
    Standalone customer payment ("received on account").

    IMMUTABLE: no update path. Deleted only together with its customer.
    payment_number is assigned by the before_insert hook below, so every
    insert gets one regardless of which code path created the row.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    payment_number = db.Column(db.String(32), nullable=False, unique=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    # Customer balance right after this payment
    balance_after_cents = db.Column(db.Integer, nullable=False)
    # How much of the amount was allocated to open bills / left over
    applied_cents = db.Column(db.Integer, nullable=False, default=0)
    unapplied_cents = db.Column(db.Integer, nullable=False, default=0)

    recorded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    customer = db.relationship("Customer", backref=db.backref("payments", lazy=True))
    allocations = db.relationship("BillPayment", lazy=True, order_by="BillPayment.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payment_number": self.payment_number,
            "customer_id": self.customer_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "balance_after_cents": self.balance_after_cents,
            "applied_cents": self.applied_cents,
            "unapplied_cents": self.unapplied_cents,
            "recorded_by_user_id": self.recorded_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


@db.event.listens_for(Payment, "before_insert")
def _assign_payment_number(mapper, connection, target: Payment) -> None:
    if target.payment_number:
        return
    from ..services.document_service import next_payment_number

    if target.created_at is None:
        target.created_at = utcnow()
    target.payment_number = next_payment_number(connection, target.created_at)
