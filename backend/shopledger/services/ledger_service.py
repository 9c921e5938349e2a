# Overview: Consistency checks between cached customer balances and bill dues.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Bill, Customer
from . import audit_service
from .concurrency import run_with_retry

"""
Ledger invariants (authoritative)

- For every bill: due_amount_cents == total_cents - paid_amount_cents, both >= 0.
- For every customer: total_due_cents == sum(due_amount_cents) over its bills.

Every write path keeps these inside one transaction; this module only
detects and repairs drift left by out-of-band edits.
"""


def bill_anomalies() -> list[dict]:
    bills = (
        db.session.query(Bill)
        .filter(db.or_(
            Bill.due_amount_cents != Bill.total_cents - Bill.paid_amount_cents,
            Bill.due_amount_cents < 0,
            Bill.paid_amount_cents < 0,
        ))
        .order_by(Bill.id.asc())
        .all()
    )
    return [
        {
            "bill_id": b.id,
            "bill_number": b.bill_number,
            "total_cents": b.total_cents,
            "paid_amount_cents": b.paid_amount_cents,
            "due_amount_cents": b.due_amount_cents,
        }
        for b in bills
    ]


def customer_drift() -> list[dict]:
    """Customers whose cached total_due_cents disagrees with their bills."""
    dues = dict(
        db.session.query(Bill.customer_id, func.coalesce(func.sum(Bill.due_amount_cents), 0))
        .group_by(Bill.customer_id)
        .all()
    )

    drift = []
    for customer in db.session.query(Customer).order_by(Customer.id.asc()).all():
        expected = int(dues.get(customer.id, 0))
        if customer.total_due_cents != expected:
            drift.append({
                "customer_id": customer.id,
                "name": customer.name,
                "cached_total_due_cents": customer.total_due_cents,
                "bills_due_cents": expected,
                "difference_cents": customer.total_due_cents - expected,
            })
    return drift


def reconcile_customer_dues(*, actor_user_id: int | None = None) -> list[dict]:
    """Rewrite drifted customer totals from their bills. Returns what was fixed."""
    def _op():
        drift = customer_drift()
        for row in drift:
            customer = db.session.get(Customer, row["customer_id"])
            customer.total_due_cents = row["bills_due_cents"]
            audit_service.record_event(
                event_type=audit_service.EVENT_LEDGER_RECONCILED,
                entity_type="customer",
                entity_id=customer.id,
                actor_user_id=actor_user_id,
                customer_id=customer.id,
                note="total_due_cents rebuilt from bills",
                payload=row,
            )
        db.session.commit()
        return drift

    return run_with_retry(_op)
