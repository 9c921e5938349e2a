# backend/shopledger/routes/customers.py
"""
Customer directory API, plus the customer-scoped payment and ledger views.

- POST /<id>/payment records money received and applies it FIFO to the
  customer's oldest open bills
- DELETE is super admin only and refused while any bill has money due
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_super_admin
from ..errors import ApiError, ServerError
from ..services import customer_service, payment_service
from ..validation import parse_id, require_fields


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers_route():
    """Query params: search, sort_by (default name), sort_order (asc|desc)."""
    try:
        customers = customer_service.list_customers(
            search=request.args.get("search"),
            sort_by=request.args.get("sort_by", "name"),
            sort_order=request.args.get("sort_order", "asc"),
        )
        return jsonify([c.to_dict() for c in customers]), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list customers")
        return jsonify(ServerError().to_dict()), 500


@customers_bp.get("/dues")
@require_auth
def customers_with_dues_route():
    try:
        return jsonify([c.to_dict() for c in customer_service.customers_with_dues()]), 200
    except Exception:
        current_app.logger.exception("Failed to list customers with dues")
        return jsonify(ServerError().to_dict()), 500


@customers_bp.get("/stats")
@require_auth
def customer_stats_route():
    try:
        return jsonify(customer_service.customer_stats()), 200
    except Exception:
        current_app.logger.exception("Failed to compute customer stats")
        return jsonify(ServerError().to_dict()), 500


@customers_bp.get("/<customer_id>")
@require_auth
def get_customer_route(customer_id):
    try:
        customer = customer_service.get_customer(parse_id(customer_id, "customer"))
        return jsonify(customer.to_dict()), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get customer")
        return jsonify(ServerError().to_dict()), 500


@customers_bp.post("")
@require_auth
def create_customer_route():
    """
    Request body:
    {
        "name": "Ravi Kumar",
        "phone": "9876543210",
        "email": "ravi@example.com",          (optional)
        "address": {"street", "city", "state", "pincode"},  (optional)
        "credit_limit_cents": 500000,          (optional)
        "notes": "..."                         (optional)
    }
    """
    try:
        customer = customer_service.create_customer(request.get_json(silent=True) or {})
        return jsonify(customer.to_dict()), 201
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify(ServerError().to_dict()), 500


@customers_bp.put("/<customer_id>")
@require_auth
def update_customer_route(customer_id):
    try:
        customer = customer_service.update_customer(
            parse_id(customer_id, "customer"),
            request.get_json(silent=True) or {},
        )
        return jsonify(customer.to_dict()), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify(ServerError().to_dict()), 500


@customers_bp.delete("/<customer_id>")
@require_auth
@require_super_admin
def delete_customer_route(customer_id):
    """
    Returns:
        200: Customer, bills and payments deleted
        400: Customer has unpaid bills (details.unpaid_bills)
        404: Customer not found
    """
    try:
        deleted = customer_service.delete_customer(
            parse_id(customer_id, "customer"),
            actor_user_id=g.context.user_id,
        )
        return jsonify({"message": "Customer and associated data deleted", "customer": deleted}), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete customer")
        return jsonify(ServerError().to_dict()), 500


# =============================================================================
# PAYMENTS ON ACCOUNT
# =============================================================================

@customers_bp.post("/<customer_id>/payment")
@require_auth
def record_payment_route(customer_id):
    """
    Record a payment received from the customer.

    Request body:
    {
        "amount_cents": 12000,
        "payment_method": "cash",
        "notes": "..."  (optional)
    }

    Returns:
        201: {payment, customer, allocations}
        400: Invalid input or amount exceeds total due (details.total_due_cents)
        404: Customer not found
    """
    try:
        data = request.get_json(silent=True) or {}
        require_fields(data, ["amount_cents", "payment_method"])

        payment, customer, allocations = payment_service.record_payment(
            parse_id(customer_id, "customer"),
            data["amount_cents"],
            data["payment_method"],
            notes=data.get("notes"),
            actor_user_id=g.context.user_id,
        )
        return jsonify({
            "message": "Payment recorded successfully",
            "payment": payment.to_dict(),
            "customer": customer.to_dict(),
            "allocations": allocations,
        }), 201
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify(ServerError().to_dict()), 500


@customers_bp.get("/<customer_id>/payments")
@require_auth
def list_customer_payments_route(customer_id):
    try:
        payments = payment_service.list_customer_payments(parse_id(customer_id, "customer"))
        return jsonify([p.to_dict() for p in payments]), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list customer payments")
        return jsonify(ServerError().to_dict()), 500


@customers_bp.get("/<customer_id>/ledger")
@require_auth
def customer_ledger_route(customer_id):
    """Account statement, newest first, with a running balance_cents."""
    try:
        ledger = customer_service.customer_ledger(parse_id(customer_id, "customer"))
        return jsonify({
            "customer": ledger["customer"].to_dict(),
            "transactions": ledger["transactions"],
        }), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build customer ledger")
        return jsonify(ServerError().to_dict()), 500
