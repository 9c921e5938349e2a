"""
Reporting and ledger consistency tests.

A small month of trading is seeded once per test:
- 2026-03-05 pending bill, 2 x LED bulb (100.00, cost 60.00)
- 2026-03-20 paid bill by UPI, 3 x switch (50.00, cost 20.00)
- 2026-04-02 partial bill, 1 x LED bulb, 40.00 paid upfront
- expenses: rent 50.00 in March, utilities 10.00 in April
"""

from datetime import datetime

import pytest

from shopledger.models import AuditEvent
from shopledger.services import audit_service, expense_service, ledger_service, reporting_service

from conftest import make_bill, make_product


@pytest.fixture
def trading(db_session, customer, bulb, switch, operator):
    cable = make_product(db_session, sku="CBL-1MM", name="1mm Cable", category="cables",
                         price_cents=10_00, cost_price_cents=5_00, quantity=2)
    bills = [
        make_bill(customer, bulb, quantity=2, bill_date=datetime(2026, 3, 5, 10, 0)),
        make_bill(customer, switch, quantity=3, payment_status="paid", payment_method="upi",
                  bill_date=datetime(2026, 3, 20, 10, 0)),
        make_bill(customer, bulb, quantity=1, payment_status="partial", paid_amount_cents=40_00,
                  bill_date=datetime(2026, 4, 2, 10, 0)),
    ]
    for description, category, amount, day in (
        ("March rent", "rent", 50_00, "2026-03-10T00:00:00"),
        ("April power", "utilities", 10_00, "2026-04-05T00:00:00"),
    ):
        expense_service.create_expense({
            "description": description,
            "category": category,
            "amount_cents": amount,
            "payment_method": "cash",
            "expense_date": day,
        }, actor_user_id=operator.id)
    return {"bills": bills, "cable": cable}


class TestSalesReports:

    def test_sales_report(self, trading):
        report = reporting_service.sales_report()

        assert [(d["date"], d["total_cents"], d["paid_cents"], d["due_cents"]) for d in report["daily"]] == [
            ("2026-03-05", 200_00, 0, 200_00),
            ("2026-03-20", 150_00, 150_00, 0),
            ("2026-04-02", 100_00, 40_00, 60_00),
        ]
        assert report["by_category"] == [
            {"category": "lighting", "amount_cents": 300_00, "quantity": 3},
            {"category": "switches", "amount_cents": 150_00, "quantity": 3},
        ]
        assert report["by_payment_method"] == [
            {"method": "cash", "total_cents": 300_00, "count": 2},
            {"method": "upi", "total_cents": 150_00, "count": 1},
        ]

    def test_sales_report_date_range(self, trading):
        report = reporting_service.sales_report(datetime(2026, 4, 1), datetime(2026, 4, 30, 23, 59, 59))
        assert [d["date"] for d in report["daily"]] == ["2026-04-02"]

    def test_top_products(self, trading, bulb, switch):
        rows = reporting_service.top_products(limit=5)

        assert [(r["product"]["id"], r["revenue_cents"], r["quantity"], r["bill_count"]) for r in rows] == [
            (bulb.id, 300_00, 3, 2),
            (switch.id, 150_00, 3, 1),
        ]
        assert len(reporting_service.top_products(limit=1)) == 1


class TestInventoryReport:

    def test_values_and_low_stock(self, trading):
        report = reporting_service.inventory_report()

        assert [r["category"] for r in report["by_category"]] == ["cables", "lighting", "switches"]
        assert report["total_value_cents"] == 47 * 100_00 + 7 * 50_00 + 2 * 10_00
        assert report["total_cost_value_cents"] == 47 * 60_00 + 7 * 20_00 + 2 * 5_00
        assert [p["sku"] for p in report["low_stock"]] == ["CBL-1MM"]
        assert report["low_stock"][0]["stock_status"] == "Low Stock"


class TestFinancialReports:

    def test_expense_report(self, trading):
        report = reporting_service.expense_report()

        assert report["by_category"] == [
            {"category": "rent", "total_cents": 50_00, "count": 1},
            {"category": "utilities", "total_cents": 10_00, "count": 1},
        ]
        assert report["monthly"] == [
            {"month": "2026-03", "total_cents": 50_00, "count": 1},
            {"month": "2026-04", "total_cents": 10_00, "count": 1},
        ]

    def test_profit_and_loss(self, trading):
        report = reporting_service.profit_loss_report()

        assert report["total_sales_cents"] == 450_00
        assert report["total_paid_cents"] == 190_00
        assert report["total_due_cents"] == 260_00
        assert report["cost_of_goods_cents"] == 240_00
        assert report["total_expenses_cents"] == 60_00
        assert report["gross_profit_cents"] == 210_00
        assert report["net_profit_cents"] == 150_00

        march, april = report["monthly"]
        assert (march["month"], march["gross_profit_cents"], march["net_profit_cents"]) == ("2026-03", 170_00, 120_00)
        assert (april["month"], april["gross_profit_cents"], april["net_profit_cents"]) == ("2026-04", 40_00, 30_00)

    def test_profit_and_loss_for_one_month(self, trading):
        report = reporting_service.profit_loss_report(datetime(2026, 4, 1), datetime(2026, 4, 30, 23, 59, 59))
        assert report["total_sales_cents"] == 100_00
        assert report["net_profit_cents"] == 100_00 - 60_00 - 10_00

    def test_outstanding(self, trading, customer):
        rows = reporting_service.outstanding_report()

        assert len(rows) == 1
        row = rows[0]
        assert row["customer"]["id"] == customer.id
        assert row["total_due_cents"] == 260_00
        assert row["open_bills"] == 2
        assert row["last_bill"]["bill_number"] == trading["bills"][2].bill_number
        assert row["last_payment"] is None


class TestLedgerConsistency:

    def test_clean_books(self, trading):
        assert ledger_service.bill_anomalies() == []
        assert ledger_service.customer_drift() == []

    def test_drift_is_detected_and_reconciled(self, trading, db_session, customer, super_admin):
        customer.total_due_cents = 999_00
        db_session.commit()

        drift = ledger_service.customer_drift()
        assert drift == [{
            "customer_id": customer.id,
            "name": customer.name,
            "cached_total_due_cents": 999_00,
            "bills_due_cents": 260_00,
            "difference_cents": 739_00,
        }]

        fixed = ledger_service.reconcile_customer_dues(actor_user_id=super_admin.id)
        assert [r["customer_id"] for r in fixed] == [customer.id]
        assert customer.total_due_cents == 260_00
        assert ledger_service.customer_drift() == []
        assert db_session.query(AuditEvent).filter_by(
            event_type=audit_service.EVENT_LEDGER_RECONCILED, customer_id=customer.id
        ).count() == 1
