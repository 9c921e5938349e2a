# Overview: Operating expenses: CRUD and period summaries.

from __future__ import annotations

import calendar
from datetime import datetime, timedelta

from sqlalchemy import func

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Expense
from ..models.expenses import EXPENSE_CATEGORIES, EXPENSE_PAYMENT_METHODS, RECURRING_FREQUENCIES
from ..time_utils import utcnow
from ..validation import ModelValidationPolicy, enforce_rules_expense, normalize_choice, validate_payload


EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields={
        "description", "category", "amount_cents", "payment_method",
        "expense_date", "reference",
        "is_recurring", "recurring_frequency", "next_due_date",
    },
    required_on_create={"description", "category", "amount_cents", "payment_method"},
)

SORTABLE_FIELDS = {"expense_date", "amount_cents", "category", "created_at"}


def next_occurrence(start: datetime, frequency: str) -> datetime:
    if frequency == "daily":
        return start + timedelta(days=1)
    if frequency == "weekly":
        return start + timedelta(weeks=1)
    if frequency == "monthly":
        year, month = (start.year + 1, 1) if start.month == 12 else (start.year, start.month + 1)
        day = min(start.day, calendar.monthrange(year, month)[1])
        return start.replace(year=year, month=month, day=day)
    if frequency == "yearly":
        day = min(start.day, calendar.monthrange(start.year + 1, start.month)[1])
        return start.replace(year=start.year + 1, day=day)
    raise ValueError(f"Unknown recurring frequency: {frequency}")


def _normalize(patch: dict) -> dict:
    if "category" in patch:
        patch["category"] = normalize_choice("category", patch["category"], EXPENSE_CATEGORIES)
    if "payment_method" in patch:
        patch["payment_method"] = normalize_choice("payment_method", patch["payment_method"], EXPENSE_PAYMENT_METHODS)
    if patch.get("recurring_frequency"):
        patch["recurring_frequency"] = normalize_choice(
            "recurring_frequency", patch["recurring_frequency"], RECURRING_FREQUENCIES
        )
    enforce_rules_expense(patch)
    return patch


def _apply_recurrence(expense: Expense) -> None:
    if not expense.is_recurring:
        expense.recurring_frequency = None
        expense.next_due_date = None
        return
    if expense.next_due_date is None:
        expense.next_due_date = next_occurrence(expense.expense_date, expense.recurring_frequency)


def get_expense(expense_id: int) -> Expense:
    expense = db.session.get(Expense, expense_id)
    if not expense:
        raise NotFoundError("Expense not found")
    return expense


def list_expenses(
    *,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    category: str | None = None,
    sort_by: str = "expense_date",
    sort_order: str = "desc",
) -> list[Expense]:
    query = db.session.query(Expense)
    if start_date:
        query = query.filter(Expense.expense_date >= start_date)
    if end_date:
        query = query.filter(Expense.expense_date <= end_date)
    if category:
        query = query.filter(Expense.category == normalize_choice("category", category, EXPENSE_CATEGORIES))

    if sort_by not in SORTABLE_FIELDS:
        raise ValidationError(f"Cannot sort by {sort_by}", details={"valid_options": sorted(SORTABLE_FIELDS)})
    column = getattr(Expense, sort_by)
    descending = str(sort_order).lower() == "desc"
    return query.order_by(
        column.desc() if descending else column.asc(),
        Expense.id.desc() if descending else Expense.id.asc(),
    ).all()


def create_expense(payload: dict, *, actor_user_id: int) -> Expense:
    patch = _normalize(validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=False))
    if patch.get("expense_date") is None:
        patch["expense_date"] = utcnow()

    expense = Expense(**patch, created_by_user_id=actor_user_id)
    _apply_recurrence(expense)

    db.session.add(expense)
    db.session.commit()
    return expense


def update_expense(expense_id: int, payload: dict) -> Expense:
    expense = get_expense(expense_id)
    patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=True)
    if patch.get("is_recurring") and "recurring_frequency" not in patch:
        patch["recurring_frequency"] = expense.recurring_frequency
    patch = _normalize(patch)

    if "expense_date" in patch and patch["expense_date"] is None:
        raise ValidationError("expense_date cannot be null")

    for k, v in patch.items():
        setattr(expense, k, v)
    if "expense_date" in patch or "recurring_frequency" in patch:
        if "next_due_date" not in patch:
            expense.next_due_date = None
    _apply_recurrence(expense)

    db.session.commit()
    return expense


def delete_expense(expense_id: int) -> Expense:
    expense = get_expense(expense_id)
    db.session.delete(expense)
    db.session.commit()
    return expense


def period_summary(start_date: datetime, end_date: datetime) -> dict:
    """Totals per category over [start_date, end_date]."""
    rows = (
        db.session.query(Expense.category, func.sum(Expense.amount_cents), func.count(Expense.id))
        .filter(Expense.expense_date >= start_date, Expense.expense_date <= end_date)
        .group_by(Expense.category)
        .order_by(func.sum(Expense.amount_cents).desc())
        .all()
    )
    by_category = [
        {"category": category, "total_cents": int(total or 0), "count": int(count)}
        for category, total, count in rows
    ]
    return {
        "by_category": by_category,
        "total_cents": sum(r["total_cents"] for r in by_category),
        "count": sum(r["count"] for r in by_category),
    }
