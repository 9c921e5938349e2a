"""
Bill ledger tests.

Verifies:
- Bill numbers are sequential from BILL-1001
- Creating a bill takes items out of stock and puts the due on the customer
- Stock problems reject the whole bill with per-item details
- Direct bill payments cannot exceed the bill's due
- Deleting a bill restores stock and reverses it on the customer account
"""

from datetime import date, datetime

import pytest

from shopledger.errors import NotFoundError, ValidationError
from shopledger.models import AuditEvent, Bill, BillPayment
from shopledger.services import audit_service, bill_service, payment_service

from conftest import make_bill, make_customer


# =============================================================================
# CREATE
# =============================================================================


class TestCreateBill:

    def test_pending_bill_moves_stock_and_customer_due(self, db_session, customer, bulb, operator):
        bill = make_bill(customer, bulb, quantity=3, actor_user_id=operator.id)

        assert bill.bill_number == "BILL-1001"
        assert bill.total_cents == 300_00
        assert bill.paid_amount_cents == 0
        assert bill.due_amount_cents == 300_00
        assert bill.status == "pending"
        assert bill.payment_status == "pending"
        assert bill.created_by_user_id == operator.id
        assert [line.quantity for line in bill.lines] == [3]

        assert bulb.quantity == 47
        assert customer.total_due_cents == 300_00
        assert customer.total_purchases_cents == 300_00
        assert customer.total_payments_cents == 0

    def test_bill_numbers_are_sequential(self, db_session, customer, bulb):
        numbers = [make_bill(customer, bulb).bill_number for _ in range(3)]
        assert numbers == ["BILL-1001", "BILL-1002", "BILL-1003"]

    def test_paid_bill_leaves_customer_account_untouched(self, db_session, customer, bulb):
        bill = make_bill(customer, bulb, quantity=2, payment_status="paid")

        assert bill.status == "paid"
        assert bill.paid_amount_cents == 200_00
        assert bill.due_amount_cents == 0
        assert [p.amount_cents for p in bill.payments] == [200_00]
        assert customer.total_due_cents == 0
        assert customer.total_purchases_cents == 0

    def test_partial_bill_records_upfront_payment(self, db_session, customer, bulb):
        bill = make_bill(customer, bulb, quantity=1, payment_status="partial", paid_amount_cents=40_00)

        assert bill.paid_amount_cents == 40_00
        assert bill.due_amount_cents == 60_00
        assert bill.status == "pending"
        assert customer.total_purchases_cents == 100_00
        assert customer.total_payments_cents == 40_00
        assert customer.total_due_cents == 60_00

    @pytest.mark.parametrize("paid", [0, 100_00, 150_00])
    def test_partial_amount_must_be_inside_total(self, db_session, customer, bulb, paid):
        with pytest.raises(ValidationError):
            make_bill(customer, bulb, payment_status="partial", paid_amount_cents=paid)
        assert db_session.query(Bill).count() == 0

    def test_insufficient_stock_rejects_whole_bill(self, db_session, customer, bulb, switch):
        payload = {
            "customer_id": customer.id,
            "items": [
                {"product_id": bulb.id, "quantity": 2, "price_cents": 100_00},
                {"product_id": switch.id, "quantity": 11, "price_cents": 50_00},
            ],
            "subtotal_cents": 750_00,
            "total_cents": 750_00,
            "payment_method": "cash",
        }
        with pytest.raises(ValidationError) as exc:
            bill_service.create_bill(payload)

        problems = exc.value.details["items"]
        assert problems == [{
            "product_id": switch.id,
            "reason": "insufficient_stock",
            "requested_quantity": 11,
            "on_hand": 10,
        }]
        assert db_session.query(Bill).count() == 0
        assert bulb.quantity == 50
        assert customer.total_due_cents == 0

        # The failed attempt does not consume a number
        assert make_bill(customer, bulb).bill_number == "BILL-1001"

    def test_inactive_and_unknown_products_are_reported(self, db_session, customer, bulb):
        bulb.is_active = False
        db_session.commit()

        payload = {
            "customer_id": customer.id,
            "items": [
                {"product_id": bulb.id, "quantity": 1, "price_cents": 100_00},
                {"product_id": 9999, "quantity": 1, "price_cents": 1_00},
            ],
            "subtotal_cents": 101_00,
            "total_cents": 101_00,
            "payment_method": "cash",
        }
        with pytest.raises(ValidationError) as exc:
            bill_service.create_bill(payload)

        reasons = {p["product_id"]: p["reason"] for p in exc.value.details["items"]}
        assert reasons == {bulb.id: "inactive", 9999: "not_found"}

    def test_unknown_customer_is_not_found(self, db_session, bulb):
        payload = {
            "customer_id": 424242,
            "items": [{"product_id": bulb.id, "quantity": 1, "price_cents": 100_00}],
            "subtotal_cents": 100_00,
            "total_cents": 100_00,
            "payment_method": "cash",
        }
        with pytest.raises(NotFoundError):
            bill_service.create_bill(payload)

    def test_missing_fields_are_listed(self, db_session):
        with pytest.raises(ValidationError) as exc:
            bill_service.create_bill({"customer_id": 1})
        assert set(exc.value.details["missing"]) == {"items", "subtotal_cents", "total_cents", "payment_method"}

    def test_creation_is_audited(self, db_session, customer, bulb, operator):
        bill = make_bill(customer, bulb, actor_user_id=operator.id)

        events, total = audit_service.list_events(bill_id=bill.id)
        assert total == 1
        assert events[0].event_type == audit_service.EVENT_BILL_CREATED
        assert events[0].actor_user_id == operator.id
        assert events[0].customer_id == customer.id


# =============================================================================
# PAY
# =============================================================================


class TestPayBill:

    def test_partial_then_full_payment(self, db_session, customer, bulb):
        bill = make_bill(customer, bulb, quantity=2)

        bill = bill_service.pay_bill(bill.id, 50_00, "upi")
        assert bill.paid_amount_cents == 50_00
        assert bill.due_amount_cents == 150_00
        assert bill.payment_status == "partial"
        assert customer.total_due_cents == 150_00

        bill = bill_service.pay_bill(bill.id, 150_00, "cash")
        assert bill.due_amount_cents == 0
        assert bill.payment_status == "paid"
        assert bill.status == "paid"
        assert customer.total_due_cents == 0
        assert customer.total_payments_cents == 200_00
        assert [p.method for p in bill.payments] == ["upi", "cash"]

    def test_overpayment_is_rejected_without_changes(self, db_session, customer, bulb):
        bill = make_bill(customer, bulb)

        with pytest.raises(ValidationError) as exc:
            bill_service.pay_bill(bill.id, 100_01, "cash")

        assert exc.value.details == {"due_amount_cents": 100_00}
        db_session.expire_all()
        assert bill.paid_amount_cents == 0
        assert customer.total_due_cents == 100_00
        assert db_session.query(BillPayment).count() == 0

    def test_settled_bill_cannot_be_paid(self, db_session, customer, bulb):
        bill = make_bill(customer, bulb, payment_status="paid")
        with pytest.raises(ValidationError, match="already fully paid"):
            bill_service.pay_bill(bill.id, 1, "cash")

    @pytest.mark.parametrize("amount", [0, -5, "12.5", "abc"])
    def test_amount_must_be_positive_integer_cents(self, db_session, customer, bulb, amount):
        bill = make_bill(customer, bulb)
        with pytest.raises(ValidationError):
            bill_service.pay_bill(bill.id, amount, "cash")

    def test_unknown_bill(self, db_session):
        with pytest.raises(NotFoundError):
            bill_service.pay_bill(999, 100, "cash")


# =============================================================================
# DELETE / UPDATE
# =============================================================================


class TestDeleteAndUpdate:

    def test_delete_restores_stock_and_due(self, db_session, customer, bulb):
        bill = make_bill(customer, bulb, quantity=4, payment_status="partial", paid_amount_cents=100_00)
        assert bulb.quantity == 46
        assert customer.total_due_cents == 300_00

        snapshot = bill_service.delete_bill(bill.id)

        assert snapshot == {"id": bill.id, "bill_number": "BILL-1001", "total_cents": 400_00}
        assert bulb.quantity == 50
        assert customer.total_due_cents == 0
        assert db_session.query(Bill).count() == 0
        assert db_session.query(BillPayment).count() == 0

    def test_delete_reverses_customer_totals(self, db_session, customer, bulb):
        bill = make_bill(customer, bulb, quantity=4, payment_status="partial", paid_amount_cents=100_00)
        bill_service.pay_bill(bill.id, 100_00, "cash")
        assert (customer.total_purchases_cents, customer.total_payments_cents) == (400_00, 200_00)

        bill_service.delete_bill(bill.id)

        assert customer.total_purchases_cents == 0
        assert customer.total_payments_cents == 0
        assert customer.total_due_cents == 0

    def test_delete_cash_bill_leaves_account_alone(self, db_session, customer, bulb):
        make_bill(customer, bulb)
        cash_bill = make_bill(customer, bulb, payment_status="paid")
        assert cash_bill.on_account is False

        bill_service.delete_bill(cash_bill.id)

        assert customer.total_purchases_cents == 100_00
        assert customer.total_payments_cents == 0
        assert customer.total_due_cents == 100_00

    def test_delete_refused_when_customer_payment_allocated(self, db_session, customer, bulb):
        bill = make_bill(customer, bulb)
        payment, _, _ = payment_service.record_payment(customer.id, 40_00, "cash")

        with pytest.raises(ValidationError) as exc:
            bill_service.delete_bill(bill.id)

        assert exc.value.details == {"payment_numbers": [payment.payment_number]}
        assert db_session.query(Bill).count() == 1
        assert db_session.query(BillPayment).filter_by(payment_id=payment.id).count() == 1
        assert bulb.quantity == 49
        assert customer.total_due_cents == 60_00

    def test_delete_is_audited(self, db_session, customer, bulb):
        bill = make_bill(customer, bulb)
        bill_service.delete_bill(bill.id)
        assert db_session.query(AuditEvent).filter_by(
            event_type=audit_service.EVENT_BILL_DELETED, bill_id=bill.id
        ).count() == 1

    def test_update_never_touches_amounts(self, db_session, customer, bulb):
        bill = make_bill(customer, bulb)

        with pytest.raises(ValidationError, match="Field not allowed: total_cents"):
            bill_service.update_bill(bill.id, {"notes": "deliver Friday", "total_cents": 1})

        bill = bill_service.update_bill(bill.id, {"notes": "deliver Friday"})
        assert bill.notes == "deliver Friday"
        assert bill.total_cents == 100_00
        assert bill.due_amount_cents == 100_00


# =============================================================================
# LIST / SUMMARIES
# =============================================================================


class TestListingAndSummaries:

    def test_list_filters_and_sorts(self, db_session, customer, bulb):
        other = make_customer(db_session, name="Meena", phone="9000000002")
        first = make_bill(customer, bulb, bill_date=datetime(2026, 3, 1, 10, 0))
        second = make_bill(customer, bulb, quantity=2, payment_status="paid", bill_date=datetime(2026, 3, 2, 10, 0))
        make_bill(other, bulb, bill_date=datetime(2026, 3, 3, 10, 0))

        assert [b.id for b in bill_service.list_bills(customer_id=customer.id)] == [second.id, first.id]
        assert [b.id for b in bill_service.list_bills(payment_status="paid")] == [second.id]
        assert [b.id for b in bill_service.list_bills(sort="total_cents:desc")][0] == second.id
        assert [b.id for b in bill_service.list_bills(
            start_date=datetime(2026, 3, 1), end_date=datetime(2026, 3, 1, 23, 59, 59),
        )] == [first.id]

    def test_unknown_sort_field_is_rejected(self, db_session):
        with pytest.raises(ValidationError) as exc:
            bill_service.list_bills(sort="customer_id:asc")
        assert "bill_date" in exc.value.details["valid_options"]

    def test_today_summary(self, db_session, customer, bulb):
        make_bill(customer, bulb, bill_date=datetime(2026, 5, 6, 9, 0))
        make_bill(customer, bulb, payment_status="paid", bill_date=datetime(2026, 5, 6, 18, 0))
        make_bill(customer, bulb, bill_date=datetime(2026, 5, 7, 9, 0))

        summary = bill_service.today_summary(date(2026, 5, 6))
        assert summary == {
            "date": "2026-05-06",
            "total_sales_cents": 200_00,
            "total_paid_cents": 100_00,
            "total_due_cents": 100_00,
            "count": 2,
        }

    def test_weekly_summary_starts_on_sunday(self, db_session, customer, bulb):
        # 2026-05-06 is a Wednesday; its week starts Sunday 2026-05-03
        make_bill(customer, bulb, bill_date=datetime(2026, 5, 3, 12, 0))
        make_bill(customer, bulb, quantity=2, bill_date=datetime(2026, 5, 9, 12, 0))
        make_bill(customer, bulb, bill_date=datetime(2026, 5, 10, 12, 0))

        rows = bill_service.weekly_summary(date(2026, 5, 6))
        assert [r["date"] for r in rows][0] == "2026-05-03"
        assert len(rows) == 7
        assert rows[0]["amount_cents"] == 100_00
        assert rows[6]["amount_cents"] == 200_00
        assert sum(r["count"] for r in rows) == 2

    def test_monthly_summary_covers_every_day(self, db_session, customer, bulb):
        make_bill(customer, bulb, bill_date=datetime(2026, 2, 14, 12, 0))
        rows = bill_service.monthly_summary(date(2026, 2, 20))
        assert len(rows) == 28
        assert rows[13] == {"date": "2026-02-14", "amount_cents": 100_00, "paid_cents": 0, "due_cents": 100_00, "count": 1}

    def test_category_summary(self, db_session, customer, bulb, switch):
        make_bill(customer, bulb, quantity=2)
        make_bill(customer, switch, quantity=3)

        rows = bill_service.category_summary()
        assert rows == [
            {"category": "lighting", "amount_cents": 200_00, "quantity": 2},
            {"category": "switches", "amount_cents": 150_00, "quantity": 3},
        ]
