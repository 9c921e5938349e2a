# backend/shopledger/routes/expenses.py
"""
Expense book API. Deleting an expense is super admin only.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_super_admin
from ..errors import ApiError, ServerError, ValidationError
from ..services import expense_service
from ..validation import parse_date_param, parse_id


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("")
@require_auth
def list_expenses_route():
    """Query params: start_date, end_date, category, sort_by (default expense_date), sort_order."""
    try:
        expenses = expense_service.list_expenses(
            start_date=parse_date_param("start_date", request.args.get("start_date")),
            end_date=parse_date_param("end_date", request.args.get("end_date"), end_of_day=True),
            category=request.args.get("category"),
            sort_by=request.args.get("sort_by", "expense_date"),
            sort_order=request.args.get("sort_order", "desc"),
        )
        return jsonify([e.to_dict() for e in expenses]), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list expenses")
        return jsonify(ServerError().to_dict()), 500


@expenses_bp.get("/summary/period")
@require_auth
def period_summary_route():
    try:
        start = parse_date_param("start_date", request.args.get("start_date"))
        end = parse_date_param("end_date", request.args.get("end_date"), end_of_day=True)
        if start is None or end is None:
            raise ValidationError("Start date and end date are required")
        return jsonify(expense_service.period_summary(start, end)), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to summarize expenses")
        return jsonify(ServerError().to_dict()), 500


@expenses_bp.get("/<expense_id>")
@require_auth
def get_expense_route(expense_id):
    try:
        return jsonify(expense_service.get_expense(parse_id(expense_id, "expense")).to_dict()), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get expense")
        return jsonify(ServerError().to_dict()), 500


@expenses_bp.post("")
@require_auth
def create_expense_route():
    try:
        expense = expense_service.create_expense(
            request.get_json(silent=True) or {},
            actor_user_id=g.context.user_id,
        )
        return jsonify(expense.to_dict()), 201
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create expense")
        return jsonify(ServerError().to_dict()), 500


@expenses_bp.put("/<expense_id>")
@require_auth
def update_expense_route(expense_id):
    try:
        expense = expense_service.update_expense(
            parse_id(expense_id, "expense"),
            request.get_json(silent=True) or {},
        )
        return jsonify(expense.to_dict()), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update expense")
        return jsonify(ServerError().to_dict()), 500


@expenses_bp.delete("/<expense_id>")
@require_auth
@require_super_admin
def delete_expense_route(expense_id):
    try:
        expense_service.delete_expense(parse_id(expense_id, "expense"))
        return jsonify({"message": "Expense deleted"}), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete expense")
        return jsonify(ServerError().to_dict()), 500
