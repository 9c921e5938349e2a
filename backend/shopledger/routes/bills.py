# backend/shopledger/routes/bills.py
"""
Bill ledger API.

DESIGN:
- POST creates a bill, decrements stock and puts its due on the customer
- PUT /<id>/payment applies money to one bill
- DELETE restores stock and removes the bill's outstanding due
- PUT /<id> edits descriptive fields only; amounts are never recomputed
- /summary/* are read-only rollups by bill_date
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import ApiError, ServerError
from ..services import bill_service
from ..validation import parse_date_param, parse_id, require_fields


bills_bp = Blueprint("bills", __name__, url_prefix="/api/bills")


@bills_bp.get("")
@require_auth
def list_bills_route():
    """
    Query params: start_date, end_date, customer_id, status, payment_status,
    sort=field:asc|desc (default bill_date:desc).
    """
    try:
        customer_id = request.args.get("customer_id")
        bills = bill_service.list_bills(
            start_date=parse_date_param("start_date", request.args.get("start_date")),
            end_date=parse_date_param("end_date", request.args.get("end_date"), end_of_day=True),
            customer_id=parse_id(customer_id, "customer") if customer_id else None,
            status=request.args.get("status"),
            payment_status=request.args.get("payment_status"),
            sort=request.args.get("sort"),
        )
        return jsonify([b.to_dict() for b in bills]), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list bills")
        return jsonify(ServerError().to_dict()), 500


@bills_bp.post("")
@require_auth
def create_bill_route():
    """
    Request body:
    {
        "customer_id": 1,
        "items": [{"product_id": 3, "quantity": 2, "price_cents": 4500}],
        "subtotal_cents": 9000,
        "total_cents": 9000,
        "payment_method": "cash",
        "payment_status": "pending",   (optional: pending | partial | paid)
        "paid_amount_cents": 4000,     (optional, partial only)
        "tax_cents", "discount_cents", "status", "type",
        "bill_date", "due_date", "notes", "extra"   (optional)
    }

    Returns:
        201: Bill with customer and product fields populated
        400: Missing fields, bad enum value or insufficient stock
        404: Customer not found
    """
    try:
        bill = bill_service.create_bill(
            request.get_json(silent=True) or {},
            actor_user_id=g.context.user_id,
        )
        return jsonify(bill.to_dict()), 201
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create bill")
        return jsonify(ServerError().to_dict()), 500


# =============================================================================
# SUMMARIES
# =============================================================================

@bills_bp.get("/summary/today")
@require_auth
def today_summary_route():
    try:
        return jsonify(bill_service.today_summary()), 200
    except Exception:
        current_app.logger.exception("Failed to build today's summary")
        return jsonify(ServerError().to_dict()), 500


@bills_bp.get("/summary/weekly")
@require_auth
def weekly_summary_route():
    try:
        return jsonify(bill_service.weekly_summary()), 200
    except Exception:
        current_app.logger.exception("Failed to build weekly summary")
        return jsonify(ServerError().to_dict()), 500


@bills_bp.get("/summary/monthly")
@require_auth
def monthly_summary_route():
    try:
        return jsonify(bill_service.monthly_summary()), 200
    except Exception:
        current_app.logger.exception("Failed to build monthly summary")
        return jsonify(ServerError().to_dict()), 500


@bills_bp.get("/summary/category")
@require_auth
def category_summary_route():
    try:
        rows = bill_service.category_summary(
            parse_date_param("start_date", request.args.get("start_date")),
            parse_date_param("end_date", request.args.get("end_date"), end_of_day=True),
        )
        return jsonify(rows), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build category summary")
        return jsonify(ServerError().to_dict()), 500


# =============================================================================
# SINGLE BILL
# =============================================================================

@bills_bp.get("/<bill_id>")
@require_auth
def get_bill_route(bill_id):
    try:
        return jsonify(bill_service.get_bill(parse_id(bill_id, "bill")).to_dict()), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get bill")
        return jsonify(ServerError().to_dict()), 500


@bills_bp.put("/<bill_id>")
@require_auth
def update_bill_route(bill_id):
    """Writable: notes, status, type, payment_method, bill_date, due_date, extra."""
    try:
        bill = bill_service.update_bill(
            parse_id(bill_id, "bill"),
            request.get_json(silent=True) or {},
            actor_user_id=g.context.user_id,
        )
        return jsonify(bill.to_dict()), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update bill")
        return jsonify(ServerError().to_dict()), 500


@bills_bp.put("/<bill_id>/payment")
@require_auth
def pay_bill_route(bill_id):
    """
    Request body: {"paid_amount_cents": 5000, "payment_method": "upi"}

    Returns:
        200: Updated bill
        400: Invalid amount, amount above the due (details.due_amount_cents)
        404: Bill not found
    """
    try:
        data = request.get_json(silent=True) or {}
        require_fields(data, ["paid_amount_cents", "payment_method"])
        bill = bill_service.pay_bill(
            parse_id(bill_id, "bill"),
            data["paid_amount_cents"],
            data["payment_method"],
            actor_user_id=g.context.user_id,
        )
        return jsonify(bill.to_dict()), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to apply bill payment")
        return jsonify(ServerError().to_dict()), 500


@bills_bp.delete("/<bill_id>")
@require_auth
def delete_bill_route(bill_id):
    try:
        deleted = bill_service.delete_bill(parse_id(bill_id, "bill"), actor_user_id=g.context.user_id)
        return jsonify({"message": "Bill deleted successfully", "bill": deleted}), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete bill")
        return jsonify(ServerError().to_dict()), 500
