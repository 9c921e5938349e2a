from datetime import datetime

import pytest

from shopledger.errors import NotFoundError, ValidationError
from shopledger.services import expense_service


def _expense(actor, **overrides):
    payload = {
        "description": "Shop rent",
        "category": "rent",
        "amount_cents": 15_000_00,
        "payment_method": "bank_transfer",
        "expense_date": "2026-06-01T00:00:00",
    }
    payload.update(overrides)
    return expense_service.create_expense(payload, actor_user_id=actor.id)


class TestExpenses:

    def test_create_normalizes_choices(self, db_session, operator):
        expense = _expense(operator, category="Office Supplies", payment_method="Bank Transfer")

        assert expense.category == "office_supplies"
        assert expense.payment_method == "bank_transfer"
        assert expense.created_by_user_id == operator.id
        assert expense.is_recurring is False
        assert expense.next_due_date is None

    def test_recurring_expense_gets_next_due_date(self, db_session, operator):
        expense = _expense(operator, is_recurring=True, recurring_frequency="monthly",
                           expense_date="2026-01-31T00:00:00")
        assert expense.next_due_date == datetime(2026, 2, 28)

    def test_recurring_requires_frequency(self, db_session, operator):
        with pytest.raises(ValidationError, match="recurring_frequency"):
            _expense(operator, is_recurring=True)

    @pytest.mark.parametrize("field,value", [
        ("category", "bribes"),
        ("payment_method", "credit"),
        ("amount_cents", -1),
        ("amount_cents", "10.50"),
    ])
    def test_invalid_values(self, db_session, operator, field, value):
        with pytest.raises(ValidationError):
            _expense(operator, **{field: value})

    def test_update_and_delete(self, db_session, operator):
        expense = _expense(operator)
        updated = expense_service.update_expense(expense.id, {"amount_cents": 16_000_00, "reference": "JUN-RENT"})
        assert updated.amount_cents == 16_000_00
        assert updated.reference == "JUN-RENT"

        expense_service.delete_expense(expense.id)
        with pytest.raises(NotFoundError):
            expense_service.get_expense(expense.id)

    def test_list_filters_by_date_and_category(self, db_session, operator):
        june = _expense(operator)
        _expense(operator, description="Power bill", category="utilities", amount_cents=2_300_00,
                 expense_date="2026-06-15T00:00:00")
        _expense(operator, description="July rent", expense_date="2026-07-01T00:00:00")

        listed = expense_service.list_expenses(
            start_date=datetime(2026, 6, 1), end_date=datetime(2026, 6, 30, 23, 59), category="rent",
        )
        assert [e.id for e in listed] == [june.id]

    def test_period_summary(self, db_session, operator):
        _expense(operator)
        _expense(operator, description="Power bill", category="utilities", amount_cents=2_300_00,
                 expense_date="2026-06-15T00:00:00")
        _expense(operator, description="Water", category="utilities", amount_cents=700_00,
                 expense_date="2026-06-20T00:00:00")

        summary = expense_service.period_summary(datetime(2026, 6, 1), datetime(2026, 6, 30, 23, 59))
        assert summary == {
            "by_category": [
                {"category": "rent", "total_cents": 15_000_00, "count": 1},
                {"category": "utilities", "total_cents": 3_000_00, "count": 2},
            ],
            "total_cents": 18_000_00,
            "count": 3,
        }
