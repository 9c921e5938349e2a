# Overview: Bill ledger: create, pay, update, delete bills and the sales summaries.

from __future__ import annotations

import secrets
from datetime import date, datetime, timedelta

from sqlalchemy import func

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Bill, BillLine, BillPayment, Customer, Payment, Product
from ..models.billing import (
    BILL_PAYMENT_METHODS,
    BILL_STATUSES,
    BILL_STATUS_PAID,
    BILL_STATUS_PENDING,
    BILL_TYPES,
    PAYMENT_METHODS,
    PAYMENT_STATUSES,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_PENDING,
)
from ..models.customers import (
    FINANCIAL_PAYMENT,
    FINANCIAL_PAYMENT_REVERSAL,
    FINANCIAL_PURCHASE,
    FINANCIAL_PURCHASE_REVERSAL,
)
from ..time_utils import day_bounds, month_days, utcnow, week_start
from ..validation import (
    ModelValidationPolicy,
    coerce_datetime,
    coerce_int,
    normalize_choice,
    parse_amount_cents,
    require_fields,
    validate_payload,
)
from . import audit_service
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_bill_number


REQUIRED_CREATE_FIELDS = ["customer_id", "items", "subtotal_cents", "total_cents", "payment_method"]

# Generic update never touches money or derived fields
BILL_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"notes", "status", "type", "payment_method", "bill_date", "due_date", "extra"},
)

SORTABLE_FIELDS = {"bill_date", "created_at", "total_cents", "due_amount_cents", "bill_number"}


def _parse_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("Bill must contain at least one item", details={"missing": ["items"]})

    parsed = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"Item {index} must be an object", details={"index": index})
        missing = [k for k in ("product_id", "quantity", "price_cents") if item.get(k) in (None, "")]
        if missing:
            raise ValidationError(
                f"Item {index} is missing product, quantity or price",
                details={"index": index, "missing": missing},
            )

        quantity = coerce_int("quantity", item["quantity"])
        if quantity < 1:
            raise ValidationError(f"Item {index} quantity must be at least 1", details={"index": index})

        price = parse_amount_cents("price_cents", item["price_cents"])
        discount = parse_amount_cents("discount_cents", item.get("discount_cents") or 0)
        tax = parse_amount_cents("tax_cents", item.get("tax_cents") or 0)
        line_total = quantity * price - discount + tax
        if line_total < 0:
            raise ValidationError(f"Item {index} discount exceeds its value", details={"index": index})

        parsed.append({
            "product_id": coerce_int("product_id", item["product_id"]),
            "quantity": quantity,
            "unit_price_cents": price,
            "discount_cents": discount,
            "tax_cents": tax,
            "line_total_cents": line_total,
        })
    return parsed


def _validate_stock(items: list[dict], products: dict[int, Product]) -> None:
    requested: dict[int, int] = {}
    for item in items:
        requested[item["product_id"]] = requested.get(item["product_id"], 0) + item["quantity"]

    problems = []
    for product_id, qty in requested.items():
        product = products.get(product_id)
        if product is None:
            problems.append({"product_id": product_id, "reason": "not_found"})
        elif not product.is_active:
            problems.append({"product_id": product_id, "reason": "inactive"})
        elif product.quantity < qty:
            problems.append({
                "product_id": product_id,
                "reason": "insufficient_stock",
                "requested_quantity": qty,
                "on_hand": product.quantity,
            })

    if problems:
        raise ValidationError("Insufficient inventory to create bill", details={"items": problems})


def _resolve_paid_amount(payment_status: str, total: int, raw_paid) -> int:
    if payment_status == PAYMENT_STATUS_PAID:
        return total
    if payment_status == PAYMENT_STATUS_PARTIAL and raw_paid not in (None, ""):
        paid = parse_amount_cents("paid_amount_cents", raw_paid)
        if not 0 < paid < total:
            raise ValidationError(
                "paid_amount_cents must be greater than 0 and less than total_cents for a partial bill",
                details={"total_cents": total},
            )
        return paid
    return 0


def create_bill(payload: dict, *, actor_user_id: int | None = None) -> Bill:
    """
    Create a bill, take its items out of stock and put its due on the
    customer's account. One unit of work.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    require_fields(payload, REQUIRED_CREATE_FIELDS)

    customer_id = coerce_int("customer_id", payload["customer_id"])
    items = _parse_items(payload["items"])

    subtotal = parse_amount_cents("subtotal_cents", payload["subtotal_cents"])
    total = parse_amount_cents("total_cents", payload["total_cents"])
    tax = parse_amount_cents("tax_cents", payload.get("tax_cents") or 0)
    discount = parse_amount_cents("discount_cents", payload.get("discount_cents") or 0)

    payment_method = normalize_choice("payment_method", payload["payment_method"], BILL_PAYMENT_METHODS)
    payment_status = normalize_choice(
        "payment_status", payload.get("payment_status") or PAYMENT_STATUS_PENDING, PAYMENT_STATUSES
    )
    bill_type = normalize_choice("type", payload.get("type") or "sale", BILL_TYPES)

    paid = _resolve_paid_amount(payment_status, total, payload.get("paid_amount_cents"))
    due = total - paid

    if payload.get("status"):
        status = normalize_choice("status", payload["status"], BILL_STATUSES)
    else:
        status = BILL_STATUS_PAID if due == 0 and payment_status == PAYMENT_STATUS_PAID else BILL_STATUS_PENDING

    bill_date = coerce_datetime("bill_date", payload["bill_date"]) if payload.get("bill_date") else utcnow()
    due_date = coerce_datetime("due_date", payload["due_date"]) if payload.get("due_date") else None

    extra = payload.get("extra")
    if extra is not None and not isinstance(extra, dict):
        raise ValidationError("extra must be an object")
    notes = payload.get("notes")

    def _op():
        customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
        if not customer:
            raise NotFoundError("Customer not found")

        product_ids = sorted({i["product_id"] for i in items})
        products = {
            p.id: p
            for p in lock_for_update(
                db.session.query(Product).filter(Product.id.in_(product_ids))
            ).all()
        }
        _validate_stock(items, products)

        bill = Bill(
            bill_number=next_bill_number(),
            reference=secrets.token_hex(8).upper(),
            customer_id=customer.id,
            subtotal_cents=subtotal,
            tax_cents=tax,
            discount_cents=discount,
            total_cents=total,
            paid_amount_cents=paid,
            due_amount_cents=due,
            payment_method=payment_method,
            payment_status=payment_status,
            status=status,
            type=bill_type,
            on_account=payment_status in (PAYMENT_STATUS_PENDING, PAYMENT_STATUS_PARTIAL),
            bill_date=bill_date,
            due_date=due_date,
            notes=str(notes).strip() if notes else None,
            extra=extra,
            created_by_user_id=actor_user_id,
        )
        for position, item in enumerate(items):
            bill.lines.append(BillLine(position=position, **item))
            products[item["product_id"]].quantity -= item["quantity"]

        if paid:
            bill.payments.append(BillPayment(
                amount_cents=paid,
                method=payment_method,
                paid_at=bill_date,
                recorded_by_user_id=actor_user_id,
            ))

        if bill.on_account:
            customer.update_financials(total, FINANCIAL_PURCHASE)
            if paid:
                customer.update_financials(paid, FINANCIAL_PAYMENT)

        db.session.add(bill)
        db.session.flush()

        audit_service.record_event(
            event_type=audit_service.EVENT_BILL_CREATED,
            entity_type="bill",
            entity_id=bill.id,
            actor_user_id=actor_user_id,
            customer_id=customer.id,
            bill_id=bill.id,
            occurred_at=bill.bill_date,
            note=bill.bill_number,
            payload={"total_cents": total, "paid_amount_cents": paid, "due_amount_cents": due},
        )

        db.session.commit()
        return bill

    return run_with_retry(_op)


def pay_bill(
    bill_id: int,
    amount_cents,
    payment_method,
    *,
    actor_user_id: int | None = None,
) -> Bill:
    """
    Apply a payment directly to one bill.

    Paying more than the bill's due (or paying a settled bill) is rejected;
    the customer's account only ever moves by the amount actually applied.
    """
    amount = parse_amount_cents("paid_amount_cents", amount_cents, allow_zero=False)
    method = normalize_choice("payment_method", payment_method, PAYMENT_METHODS)

    def _op():
        bill = lock_for_update(db.session.query(Bill).filter_by(id=bill_id)).first()
        if not bill:
            raise NotFoundError("Bill not found")

        if bill.due_amount_cents <= 0:
            raise ValidationError("Bill is already fully paid", details={"due_amount_cents": 0})
        if amount > bill.due_amount_cents:
            raise ValidationError(
                "Payment exceeds the bill's due amount",
                details={"due_amount_cents": bill.due_amount_cents},
            )

        customer = lock_for_update(db.session.query(Customer).filter_by(id=bill.customer_id)).first()

        old_due = bill.due_amount_cents
        bill.paid_amount_cents += amount
        bill.due_amount_cents = bill.total_cents - bill.paid_amount_cents
        if bill.due_amount_cents == 0:
            bill.payment_status = PAYMENT_STATUS_PAID
            bill.status = BILL_STATUS_PAID
        else:
            bill.payment_status = PAYMENT_STATUS_PARTIAL

        now = utcnow()
        bill.payments.append(BillPayment(
            amount_cents=amount,
            method=method,
            paid_at=now,
            recorded_by_user_id=actor_user_id,
        ))

        customer.update_financials(old_due - bill.due_amount_cents, FINANCIAL_PAYMENT)

        audit_service.record_event(
            event_type=audit_service.EVENT_BILL_PAYMENT_APPLIED,
            entity_type="bill",
            entity_id=bill.id,
            actor_user_id=actor_user_id,
            customer_id=bill.customer_id,
            bill_id=bill.id,
            occurred_at=now,
            note=bill.bill_number,
            payload={"amount_cents": amount, "method": method, "due_amount_cents": bill.due_amount_cents},
        )

        db.session.commit()
        return bill

    return run_with_retry(_op)


def delete_bill(bill_id: int, *, actor_user_id: int | None = None) -> dict:
    """
    Delete a bill: return its items to stock and take it off the customer's
    account. Returns a snapshot of the deleted bill.

    A bill that customer payments were allocated to cannot be deleted; those
    payments would be left crediting a bill that no longer exists.
    """
    def _op():
        bill = lock_for_update(db.session.query(Bill).filter_by(id=bill_id)).first()
        if not bill:
            raise NotFoundError("Bill not found")

        payment_ids = sorted({bp.payment_id for bp in bill.payments if bp.payment_id is not None})
        if payment_ids:
            numbers = [
                number
                for (number,) in db.session.query(Payment.payment_number)
                .filter(Payment.id.in_(payment_ids))
                .order_by(Payment.id)
            ]
            raise ValidationError(
                "Bill has customer payments allocated to it",
                details={"payment_numbers": numbers},
            )

        product_ids = sorted({line.product_id for line in bill.lines})
        products = {
            p.id: p
            for p in lock_for_update(
                db.session.query(Product).filter(Product.id.in_(product_ids))
            ).all()
        }
        for line in bill.lines:
            product = products.get(line.product_id)
            if product is not None:
                product.quantity += line.quantity

        if bill.on_account:
            customer = lock_for_update(db.session.query(Customer).filter_by(id=bill.customer_id)).first()
            customer.update_financials(bill.total_cents, FINANCIAL_PURCHASE_REVERSAL)
            if bill.paid_amount_cents:
                customer.update_financials(bill.paid_amount_cents, FINANCIAL_PAYMENT_REVERSAL)

        snapshot = {"id": bill.id, "bill_number": bill.bill_number, "total_cents": bill.total_cents}

        audit_service.record_event(
            event_type=audit_service.EVENT_BILL_DELETED,
            entity_type="bill",
            entity_id=bill.id,
            actor_user_id=actor_user_id,
            customer_id=bill.customer_id,
            bill_id=bill.id,
            note=bill.bill_number,
            payload={
                "total_cents": bill.total_cents,
                "paid_amount_cents": bill.paid_amount_cents,
                "due_amount_cents": bill.due_amount_cents,
            },
        )

        db.session.delete(bill)
        db.session.commit()
        return snapshot

    return run_with_retry(_op)


def update_bill(bill_id: int, payload: dict, *, actor_user_id: int | None = None) -> Bill:
    """Patch descriptive fields. Amounts and derived balances are not writable here."""
    patch = validate_payload(model=Bill, payload=payload, policy=BILL_UPDATE_POLICY, partial=True)
    if "status" in patch:
        patch["status"] = normalize_choice("status", patch["status"], BILL_STATUSES)
    if "type" in patch:
        patch["type"] = normalize_choice("type", patch["type"], BILL_TYPES)
    if "payment_method" in patch:
        patch["payment_method"] = normalize_choice("payment_method", patch["payment_method"], BILL_PAYMENT_METHODS)
    if "bill_date" in patch and patch["bill_date"] is None:
        raise ValidationError("bill_date cannot be null")

    def _op():
        bill = lock_for_update(db.session.query(Bill).filter_by(id=bill_id)).first()
        if not bill:
            raise NotFoundError("Bill not found")

        for k, v in patch.items():
            setattr(bill, k, v)

        audit_service.record_event(
            event_type=audit_service.EVENT_BILL_UPDATED,
            entity_type="bill",
            entity_id=bill.id,
            actor_user_id=actor_user_id,
            customer_id=bill.customer_id,
            bill_id=bill.id,
            note=bill.bill_number,
            payload={"fields": sorted(patch.keys())},
        )

        db.session.commit()
        return bill

    return run_with_retry(_op)


def get_bill(bill_id: int) -> Bill:
    bill = db.session.get(Bill, bill_id)
    if not bill:
        raise NotFoundError("Bill not found")
    return bill


def parse_sort(raw: str | None, *, allowed: set[str], default: str) -> tuple[str, bool]:
    """'field:asc' / 'field:desc' -> (field, descending)."""
    field, _, direction = (raw or default).partition(":")
    field = field.strip()
    direction = (direction or "asc").strip().lower()
    if field not in allowed:
        raise ValidationError(f"Cannot sort by {field}", details={"valid_options": sorted(allowed)})
    if direction not in ("asc", "desc"):
        raise ValidationError("Sort direction must be asc or desc")
    return field, direction == "desc"


def list_bills(
    *,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    customer_id: int | None = None,
    status: str | None = None,
    payment_status: str | None = None,
    sort: str | None = None,
) -> list[Bill]:
    query = db.session.query(Bill)

    if start_date:
        query = query.filter(Bill.bill_date >= start_date)
    if end_date:
        query = query.filter(Bill.bill_date <= end_date)
    if customer_id:
        query = query.filter(Bill.customer_id == customer_id)
    if status:
        query = query.filter(Bill.status == normalize_choice("status", status, BILL_STATUSES))
    if payment_status:
        query = query.filter(
            Bill.payment_status == normalize_choice("payment_status", payment_status, PAYMENT_STATUSES)
        )

    field, descending = parse_sort(sort, allowed=SORTABLE_FIELDS, default="bill_date:desc")
    column = getattr(Bill, field)
    query = query.order_by(
        column.desc() if descending else column.asc(),
        Bill.id.desc() if descending else Bill.id.asc(),
    )
    return query.all()


# =============================================================================
# Summaries
# =============================================================================

def _empty_row(day: date) -> dict:
    return {"date": day.isoformat(), "amount_cents": 0, "paid_cents": 0, "due_cents": 0, "count": 0}


def _daily_rows(days: list[date]) -> list[dict]:
    """One row per day in `days` (contiguous), zero-filled."""
    rows = {d: _empty_row(d) for d in days}
    start, _ = day_bounds(days[0])
    _, end = day_bounds(days[-1])

    bills = (
        db.session.query(Bill.bill_date, Bill.total_cents, Bill.paid_amount_cents, Bill.due_amount_cents)
        .filter(Bill.bill_date >= start, Bill.bill_date < end)
        .all()
    )
    for bill_date, total, paid, due in bills:
        row = rows.get(bill_date.date())
        if row is None:
            continue
        row["amount_cents"] += total
        row["paid_cents"] += paid
        row["due_cents"] += due
        row["count"] += 1

    return [rows[d] for d in days]


def today_summary(today: date | None = None) -> dict:
    today = today or utcnow().date()
    start, end = day_bounds(today)

    total, paid, due, count = (
        db.session.query(
            func.coalesce(func.sum(Bill.total_cents), 0),
            func.coalesce(func.sum(Bill.paid_amount_cents), 0),
            func.coalesce(func.sum(Bill.due_amount_cents), 0),
            func.count(Bill.id),
        )
        .filter(Bill.bill_date >= start, Bill.bill_date < end)
        .one()
    )
    return {
        "date": today.isoformat(),
        "total_sales_cents": int(total),
        "total_paid_cents": int(paid),
        "total_due_cents": int(due),
        "count": int(count),
    }


def weekly_summary(today: date | None = None) -> list[dict]:
    """Seven days starting from the Sunday of the current week."""
    first = week_start(today or utcnow().date())
    return _daily_rows([first + timedelta(days=i) for i in range(7)])


def monthly_summary(today: date | None = None) -> list[dict]:
    return _daily_rows(month_days(today or utcnow().date()))


def category_summary(start_date: datetime | None = None, end_date: datetime | None = None) -> list[dict]:
    """Revenue (price x quantity) and units sold per product category."""
    amount = func.sum(BillLine.unit_price_cents * BillLine.quantity)
    query = (
        db.session.query(Product.category, amount, func.sum(BillLine.quantity))
        .join(BillLine, BillLine.product_id == Product.id)
        .join(Bill, Bill.id == BillLine.bill_id)
    )
    if start_date:
        query = query.filter(Bill.bill_date >= start_date)
    if end_date:
        query = query.filter(Bill.bill_date <= end_date)

    rows = query.group_by(Product.category).order_by(amount.desc()).all()
    return [
        {"category": category, "amount_cents": int(total or 0), "quantity": int(qty or 0)}
        for category, total, qty in rows
    ]
