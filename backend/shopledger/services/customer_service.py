# Overview: Customer directory, account overviews and guarded cascade delete.

from __future__ import annotations

from sqlalchemy import func

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Bill, BillPayment, Customer, Payment
from ..time_utils import to_utc_z
from ..validation import ModelValidationPolicy, parse_amount_cents, validate_payload
from . import audit_service
from .concurrency import lock_for_update, run_with_retry


# total_due / total_purchases / total_payments are not listed:
# they move only through bills and payments.
CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "phone", "email",
        "street", "city", "state", "pincode",
        "credit_limit_cents", "notes", "is_active",
    },
    required_on_create={"name", "phone"},
)

SORTABLE_FIELDS = {"name", "phone", "created_at", "total_due_cents", "total_purchases_cents"}


def _flatten_address(payload: dict) -> dict:
    """Accept {"address": {"street", "city", "state", "pincode"}} as well as flat columns."""
    payload = dict(payload or {})
    address = payload.pop("address", None)
    if isinstance(address, dict):
        for key in ("street", "city", "state", "pincode"):
            if key in address:
                payload[key] = address[key]
    elif address is not None:
        raise ValidationError("address must be an object")
    return payload


def _clean(payload: dict, *, partial: bool) -> dict:
    patch = validate_payload(
        model=Customer,
        payload=_flatten_address(payload),
        policy=CUSTOMER_POLICY,
        partial=partial,
    )
    if patch.get("credit_limit_cents") is not None:
        patch["credit_limit_cents"] = parse_amount_cents("credit_limit_cents", patch["credit_limit_cents"])
    if patch.get("email"):
        patch["email"] = patch["email"].lower()
    return patch


def _ensure_phone_available(phone: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Customer.id).filter(Customer.phone == phone)
    if exclude_id:
        query = query.filter(Customer.id != exclude_id)
    if query.first():
        raise ValidationError("Phone number already registered")


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError("Customer not found")
    return customer


def list_customers(
    *,
    search: str | None = None,
    sort_by: str = "name",
    sort_order: str = "asc",
) -> list[Customer]:
    query = db.session.query(Customer).filter(Customer.is_active.is_(True))

    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Customer.name.ilike(like),
            Customer.phone.ilike(like),
            Customer.email.ilike(like),
        ))

    if sort_by not in SORTABLE_FIELDS:
        raise ValidationError(f"Cannot sort by {sort_by}", details={"valid_options": sorted(SORTABLE_FIELDS)})
    column = getattr(Customer, sort_by)
    descending = str(sort_order).lower() == "desc"
    return query.order_by(column.desc() if descending else column.asc(), Customer.id.asc()).all()


def create_customer(payload: dict) -> Customer:
    patch = _clean(payload, partial=False)
    _ensure_phone_available(patch["phone"])

    customer = Customer(**patch)
    db.session.add(customer)
    db.session.commit()
    return customer


def update_customer(customer_id: int, payload: dict) -> Customer:
    patch = _clean(payload, partial=True)

    def _op():
        customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
        if not customer:
            raise NotFoundError("Customer not found")
        if "phone" in patch:
            _ensure_phone_available(patch["phone"], exclude_id=customer.id)

        for k, v in patch.items():
            setattr(customer, k, v)

        db.session.commit()
        return customer

    return run_with_retry(_op)


def delete_customer(customer_id: int, *, actor_user_id: int | None = None) -> dict:
    """
    Delete a customer with all their bills and payments.

    Refused (nothing deleted) while any bill still has money due; the
    offending bills are listed in details.unpaid_bills.
    """
    def _op():
        customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
        if not customer:
            raise NotFoundError("Customer not found")

        unpaid = (
            db.session.query(Bill)
            .filter(Bill.customer_id == customer.id, Bill.due_amount_cents > 0)
            .order_by(Bill.bill_date.asc(), Bill.id.asc())
            .all()
        )
        if unpaid:
            raise ValidationError(
                "Cannot delete customer with unpaid bills",
                details={"unpaid_bills": [
                    {"id": b.id, "bill_number": b.bill_number, "due_amount_cents": b.due_amount_cents}
                    for b in unpaid
                ]},
            )

        bills = db.session.query(Bill).filter(Bill.customer_id == customer.id).all()
        payments = db.session.query(Payment).filter(Payment.customer_id == customer.id).all()
        counts = {"bills": len(bills), "payments": len(payments)}

        for bill in bills:
            db.session.delete(bill)
        db.session.flush()
        for payment in payments:
            db.session.delete(payment)
        db.session.flush()

        audit_service.record_event(
            event_type=audit_service.EVENT_CUSTOMER_DELETED,
            entity_type="customer",
            entity_id=customer.id,
            actor_user_id=actor_user_id,
            customer_id=customer.id,
            note=customer.name,
            payload=counts,
        )

        snapshot = {"id": customer.id, "name": customer.name, "phone": customer.phone, **counts}
        db.session.delete(customer)
        db.session.commit()
        return snapshot

    return run_with_retry(_op)


def customers_with_dues() -> list[Customer]:
    return (
        db.session.query(Customer)
        .filter(Customer.is_active.is_(True), Customer.total_due_cents > 0)
        .order_by(Customer.total_due_cents.desc(), Customer.id.asc())
        .all()
    )


def customer_stats() -> dict:
    base = db.session.query(Customer).filter(Customer.is_active.is_(True))
    total_dues = (
        db.session.query(func.coalesce(func.sum(Customer.total_due_cents), 0))
        .filter(Customer.is_active.is_(True))
        .scalar()
    )
    return {
        "total_customers": base.count(),
        "customers_with_dues": base.filter(Customer.total_due_cents > 0).count(),
        "total_dues_cents": int(total_dues or 0),
    }


def customer_ledger(customer_id: int) -> dict:
    """
    Account statement: bills are debits; money received (paid-on-bill entries
    and payments on account) are credits. Newest first, each entry carrying
    the balance right after it.
    """
    customer = get_customer(customer_id)

    entries = []
    bills = db.session.query(Bill).filter(Bill.customer_id == customer.id).all()
    for bill in bills:
        entries.append({
            "type": "bill",
            "id": bill.id,
            "reference": bill.bill_number,
            "date": bill.bill_date,
            "description": f"Bill {bill.bill_number}",
            "debit_cents": bill.total_cents,
            "credit_cents": 0,
        })

    direct = (
        db.session.query(BillPayment, Bill.bill_number)
        .join(Bill, Bill.id == BillPayment.bill_id)
        .filter(Bill.customer_id == customer.id, BillPayment.payment_id.is_(None))
        .all()
    )
    for entry, bill_number in direct:
        entries.append({
            "type": "bill_payment",
            "id": entry.id,
            "reference": bill_number,
            "date": entry.paid_at,
            "description": f"Paid on {bill_number} ({entry.method})",
            "debit_cents": 0,
            "credit_cents": entry.amount_cents,
        })

    payments = db.session.query(Payment).filter(Payment.customer_id == customer.id).all()
    for payment in payments:
        entries.append({
            "type": "payment",
            "id": payment.id,
            "reference": payment.payment_number,
            "date": payment.created_at,
            "description": f"Payment {payment.payment_number} ({payment.payment_method})",
            "debit_cents": 0,
            "credit_cents": payment.amount_cents,
        })

    # Bills sort before money received at the same instant
    order = {"bill": 0, "bill_payment": 1, "payment": 2}
    entries.sort(key=lambda e: (e["date"], order[e["type"]], e["id"]))

    balance = 0
    for e in entries:
        balance += e["debit_cents"] - e["credit_cents"]
        e["balance_cents"] = balance
        e["date"] = to_utc_z(e["date"])

    entries.reverse()
    return {"customer": customer, "transactions": entries}
