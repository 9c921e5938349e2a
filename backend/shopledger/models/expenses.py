from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


EXPENSE_CATEGORIES = [
    "rent",
    "utilities",
    "salary",
    "marketing",
    "maintenance",
    "office_supplies",
    "travel",
    "misc",
]
EXPENSE_PAYMENT_METHODS = ["cash", "card", "bank_transfer", "upi"]
RECURRING_FREQUENCIES = ["daily", "weekly", "monthly", "yearly"]


class Expense(db.Model):
    """Operating expense; feeds the profit/loss report."""
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_date_category", "expense_date", "category"),
        db.Index("ix_expenses_created_by_date", "created_by_user_id", "expense_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    description = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(32), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False)
    expense_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    reference = db.Column(db.String(128), nullable=True)

    is_recurring = db.Column(db.Boolean, nullable=False, default=False)
    recurring_frequency = db.Column(db.String(16), nullable=True)
    next_due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    created_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "category": self.category,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "expense_date": to_utc_z(self.expense_date),
            "reference": self.reference,
            "is_recurring": self.is_recurring,
            "recurring_frequency": self.recurring_frequency,
            "next_due_date": to_utc_z(self.next_due_date) if self.next_due_date else None,
            "created_by": {"id": self.created_by.id, "name": self.created_by.name} if self.created_by else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
