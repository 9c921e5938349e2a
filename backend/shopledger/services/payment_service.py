# Overview: Customer payments received on account and their FIFO allocation to open bills.

from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Bill, BillPayment, Customer, Payment
from ..models.billing import (
    BILL_STATUS_PAID,
    BILL_STATUS_PENDING,
    PAYMENT_METHODS,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PARTIAL,
)
from ..models.customers import FINANCIAL_PAYMENT
from ..time_utils import utcnow
from ..validation import normalize_choice, parse_amount_cents
from . import audit_service
from .concurrency import lock_for_update, run_with_retry


def _allocate_fifo(
    customer_id: int,
    payment: Payment,
    amount: int,
    *,
    actor_user_id: int | None,
) -> tuple[list[dict], int]:
    """
    Spread `amount` over the customer's open bills, oldest bill_date first
    (id breaks ties). Returns (allocations, unapplied remainder).
    """
    bills = lock_for_update(
        db.session.query(Bill)
        .filter(Bill.customer_id == customer_id, Bill.due_amount_cents > 0)
        .order_by(Bill.bill_date.asc(), Bill.id.asc())
    ).all()

    remaining = amount
    allocations = []
    for bill in bills:
        if remaining <= 0:
            break

        applied = min(remaining, bill.due_amount_cents)
        bill.paid_amount_cents += applied
        bill.due_amount_cents -= applied
        if bill.due_amount_cents == 0:
            bill.status = BILL_STATUS_PAID
            bill.payment_status = PAYMENT_STATUS_PAID
        else:
            bill.status = BILL_STATUS_PENDING
            bill.payment_status = PAYMENT_STATUS_PARTIAL

        bill.payments.append(BillPayment(
            payment_id=payment.id,
            amount_cents=applied,
            method=payment.payment_method,
            paid_at=payment.created_at,
            recorded_by_user_id=actor_user_id,
        ))
        remaining -= applied

        allocations.append({
            "bill_id": bill.id,
            "bill_number": bill.bill_number,
            "applied_cents": applied,
            "paid_amount_cents": bill.paid_amount_cents,
            "due_amount_cents": bill.due_amount_cents,
            "payment_status": bill.payment_status,
        })

        audit_service.record_event(
            event_type=audit_service.EVENT_PAYMENT_ALLOCATED,
            entity_type="payment",
            entity_id=payment.id,
            actor_user_id=actor_user_id,
            customer_id=customer_id,
            bill_id=bill.id,
            payment_id=payment.id,
            occurred_at=payment.created_at,
            note=f"{payment.payment_number} -> {bill.bill_number}",
            payload={"applied_cents": applied, "due_amount_cents": bill.due_amount_cents},
        )

    return allocations, remaining


def record_payment(
    customer_id: int,
    amount_cents,
    payment_method,
    *,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> tuple[Payment, Customer, list[dict]]:
    """
    Record a payment received from a customer and apply it FIFO.

    The payment row, the customer's balances and every bill allocation commit
    together or not at all. A payment larger than the customer's total due is
    rejected before anything is written.
    """
    amount = parse_amount_cents("amount_cents", amount_cents, allow_zero=False)
    method = normalize_choice("payment_method", payment_method, PAYMENT_METHODS)
    notes = str(notes).strip() if notes else None

    def _op():
        customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
        if not customer:
            raise NotFoundError("Customer not found")

        if amount > customer.total_due_cents:
            raise ValidationError(
                "Payment amount exceeds customer's total due",
                details={"total_due_cents": customer.total_due_cents},
            )

        payment = Payment(
            customer_id=customer.id,
            amount_cents=amount,
            payment_method=method,
            notes=notes,
            balance_after_cents=customer.total_due_cents - amount,
            recorded_by_user_id=actor_user_id,
            created_at=utcnow(),
        )
        db.session.add(payment)
        db.session.flush()  # assigns id and payment_number

        customer.update_financials(amount, FINANCIAL_PAYMENT)

        allocations, unapplied = _allocate_fifo(
            customer.id, payment, amount, actor_user_id=actor_user_id
        )
        payment.applied_cents = amount - unapplied
        payment.unapplied_cents = unapplied

        if unapplied:
            current_app.logger.warning(
                "Payment %s left %s cents unapplied: customer %s open bills do not cover total_due",
                payment.payment_number, unapplied, customer.id,
            )

        audit_service.record_event(
            event_type=audit_service.EVENT_PAYMENT_RECORDED,
            entity_type="payment",
            entity_id=payment.id,
            actor_user_id=actor_user_id,
            customer_id=customer.id,
            payment_id=payment.id,
            occurred_at=payment.created_at,
            note=payment.payment_number,
            payload={
                "amount_cents": amount,
                "applied_cents": payment.applied_cents,
                "unapplied_cents": unapplied,
                "balance_after_cents": payment.balance_after_cents,
            },
        )

        db.session.commit()
        return payment, customer, allocations

    return run_with_retry(_op)


def list_customer_payments(customer_id: int) -> list[Payment]:
    if not db.session.get(Customer, customer_id):
        raise NotFoundError("Customer not found")
    return (
        db.session.query(Payment)
        .filter(Payment.customer_id == customer_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .all()
    )


def get_payment(payment_id: int) -> Payment:
    payment = db.session.get(Payment, payment_id)
    if not payment:
        raise NotFoundError("Payment not found")
    return payment
