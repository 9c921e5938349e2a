# Overview: Read-only financial reports over bills, products and expenses.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import Bill, BillLine, Customer, Expense, Payment, Product
from ..time_utils import to_utc_z
from . import bill_service


def _in_range(query, column, start: datetime | None, end: datetime | None):
    if start:
        query = query.filter(column >= start)
    if end:
        query = query.filter(column <= end)
    return query


def _bill_rows(start: datetime | None, end: datetime | None):
    query = db.session.query(
        Bill.id, Bill.bill_date, Bill.total_cents, Bill.paid_amount_cents, Bill.due_amount_cents
    )
    return _in_range(query, Bill.bill_date, start, end).all()


def _cost_by_bill(start: datetime | None, end: datetime | None) -> dict[int, int]:
    """Cost of goods per bill at current product cost prices."""
    query = (
        db.session.query(BillLine.bill_id, func.sum(BillLine.quantity * Product.cost_price_cents))
        .join(Product, Product.id == BillLine.product_id)
        .join(Bill, Bill.id == BillLine.bill_id)
    )
    rows = _in_range(query, Bill.bill_date, start, end).group_by(BillLine.bill_id).all()
    return {bill_id: int(cost or 0) for bill_id, cost in rows}


# =============================================================================
# Sales
# =============================================================================

def sales_report(start: datetime | None = None, end: datetime | None = None) -> dict:
    daily: dict[str, dict] = {}
    for _, bill_date, total, paid, due in _bill_rows(start, end):
        key = bill_date.date().isoformat()
        row = daily.setdefault(key, {"date": key, "total_cents": 0, "paid_cents": 0, "due_cents": 0, "count": 0})
        row["total_cents"] += total
        row["paid_cents"] += paid
        row["due_cents"] += due
        row["count"] += 1

    method_query = db.session.query(Bill.payment_method, func.sum(Bill.total_cents), func.count(Bill.id))
    by_method = (
        _in_range(method_query, Bill.bill_date, start, end)
        .group_by(Bill.payment_method)
        .order_by(func.sum(Bill.total_cents).desc())
        .all()
    )

    return {
        "daily": [daily[k] for k in sorted(daily)],
        "by_category": bill_service.category_summary(start, end),
        "by_payment_method": [
            {"method": method, "total_cents": int(total or 0), "count": int(count)}
            for method, total, count in by_method
        ],
    }


def top_products(limit: int = 10, start: datetime | None = None, end: datetime | None = None) -> list[dict]:
    revenue = func.sum(BillLine.line_total_cents)
    query = (
        db.session.query(Product, revenue, func.sum(BillLine.quantity), func.count(func.distinct(BillLine.bill_id)))
        .join(BillLine, BillLine.product_id == Product.id)
        .join(Bill, Bill.id == BillLine.bill_id)
    )
    rows = (
        _in_range(query, Bill.bill_date, start, end)
        .group_by(Product.id)
        .order_by(revenue.desc(), Product.id.asc())
        .limit(max(1, min(limit, 100)))
        .all()
    )
    return [
        {
            "product": product.to_summary(),
            "category": product.category,
            "revenue_cents": int(rev or 0),
            "quantity": int(qty or 0),
            "bill_count": int(bills),
        }
        for product, rev, qty, bills in rows
    ]


# =============================================================================
# Inventory
# =============================================================================

def inventory_report() -> dict:
    rows = (
        db.session.query(
            Product.category,
            func.count(Product.id),
            func.sum(Product.quantity),
            func.sum(Product.price_cents * Product.quantity),
            func.sum(Product.cost_price_cents * Product.quantity),
        )
        .filter(Product.is_active.is_(True))
        .group_by(Product.category)
        .order_by(Product.category.asc())
        .all()
    )
    by_category = [
        {
            "category": category,
            "total_items": int(items),
            "total_quantity": int(qty or 0),
            "total_value_cents": int(value or 0),
            "total_cost_value_cents": int(cost or 0),
        }
        for category, items, qty, value, cost in rows
    ]

    low_stock = [
        {
            "id": p.id,
            "name": p.name,
            "sku": p.sku,
            "category": p.category,
            "quantity": p.quantity,
            "low_stock_alert": p.low_stock_alert,
            "price_cents": p.price_cents,
            "stock_status": p.stock_status,
        }
        for p in (
            db.session.query(Product)
            .filter(Product.is_active.is_(True), Product.quantity <= Product.low_stock_alert)
            .order_by(Product.quantity.asc(), Product.name.asc())
            .all()
        )
    ]

    return {
        "by_category": by_category,
        "low_stock": low_stock,
        "total_value_cents": sum(r["total_value_cents"] for r in by_category),
        "total_cost_value_cents": sum(r["total_cost_value_cents"] for r in by_category),
    }


# =============================================================================
# Expenses
# =============================================================================

def _expense_rows(start: datetime | None, end: datetime | None):
    query = db.session.query(Expense.expense_date, Expense.category, Expense.amount_cents)
    return _in_range(query, Expense.expense_date, start, end).all()


def expense_report(start: datetime | None = None, end: datetime | None = None) -> dict:
    by_category: dict[str, dict] = {}
    monthly: dict[str, dict] = {}
    for expense_date, category, amount in _expense_rows(start, end):
        cat = by_category.setdefault(category, {"category": category, "total_cents": 0, "count": 0})
        cat["total_cents"] += amount
        cat["count"] += 1

        month = expense_date.strftime("%Y-%m")
        row = monthly.setdefault(month, {"month": month, "total_cents": 0, "count": 0})
        row["total_cents"] += amount
        row["count"] += 1

    return {
        "by_category": sorted(by_category.values(), key=lambda r: (-r["total_cents"], r["category"])),
        "monthly": [monthly[k] for k in sorted(monthly)],
    }


# =============================================================================
# Profit & loss
# =============================================================================

def _pl_row() -> dict:
    return {
        "total_sales_cents": 0,
        "total_paid_cents": 0,
        "total_due_cents": 0,
        "cost_of_goods_cents": 0,
        "total_expenses_cents": 0,
    }


def _finish_pl(row: dict) -> dict:
    row["gross_profit_cents"] = row["total_sales_cents"] - row["cost_of_goods_cents"]
    row["net_profit_cents"] = row["gross_profit_cents"] - row["total_expenses_cents"]
    return row


def profit_loss_report(start: datetime | None = None, end: datetime | None = None) -> dict:
    """
    net profit = sales - cost of goods - expenses.

    Cost of goods uses each product's current cost price.
    """
    totals = _pl_row()
    monthly: dict[str, dict] = {}
    costs = _cost_by_bill(start, end)

    for bill_id, bill_date, total, paid, due in _bill_rows(start, end):
        month = bill_date.strftime("%Y-%m")
        row = monthly.setdefault(month, dict(_pl_row(), month=month))
        cost = costs.get(bill_id, 0)
        for target in (totals, row):
            target["total_sales_cents"] += total
            target["total_paid_cents"] += paid
            target["total_due_cents"] += due
            target["cost_of_goods_cents"] += cost

    for expense_date, _, amount in _expense_rows(start, end):
        month = expense_date.strftime("%Y-%m")
        row = monthly.setdefault(month, dict(_pl_row(), month=month))
        totals["total_expenses_cents"] += amount
        row["total_expenses_cents"] += amount

    result = _finish_pl(totals)
    result["monthly"] = [_finish_pl(monthly[k]) for k in sorted(monthly)]
    return result


# =============================================================================
# Receivables
# =============================================================================

def outstanding_report() -> list[dict]:
    """Customers owing money, largest balance first, with last bill and last payment."""
    customers = (
        db.session.query(Customer)
        .filter(Customer.total_due_cents > 0)
        .order_by(Customer.total_due_cents.desc(), Customer.id.asc())
        .all()
    )

    result = []
    for customer in customers:
        last_bill = (
            db.session.query(Bill)
            .filter(Bill.customer_id == customer.id)
            .order_by(Bill.bill_date.desc(), Bill.id.desc())
            .first()
        )
        last_payment = (
            db.session.query(Payment)
            .filter(Payment.customer_id == customer.id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .first()
        )
        open_bills = (
            db.session.query(func.count(Bill.id))
            .filter(Bill.customer_id == customer.id, Bill.due_amount_cents > 0)
            .scalar()
        )
        result.append({
            "customer": customer.to_summary(),
            "total_due_cents": customer.total_due_cents,
            "open_bills": int(open_bills or 0),
            "last_bill": {
                "id": last_bill.id,
                "bill_number": last_bill.bill_number,
                "bill_date": to_utc_z(last_bill.bill_date),
                "due_amount_cents": last_bill.due_amount_cents,
            } if last_bill else None,
            "last_payment": {
                "id": last_payment.id,
                "payment_number": last_payment.payment_number,
                "amount_cents": last_payment.amount_cents,
                "created_at": to_utc_z(last_payment.created_at),
            } if last_payment else None,
        })
    return result
