# backend/shopledger/routes/payments.py
"""
Read access to recorded payments. Payments are created through
POST /api/customers/<id>/payment and are never edited.
"""

from flask import Blueprint, current_app, jsonify

from ..decorators import require_auth
from ..errors import ApiError, ServerError
from ..services import payment_service
from ..validation import parse_id


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.get("/<payment_id>")
@require_auth
def get_payment_route(payment_id):
    """Payment with the bill allocations it produced."""
    try:
        payment = payment_service.get_payment(parse_id(payment_id, "payment"))
        body = payment.to_dict()
        body["allocations"] = [a.to_dict() for a in payment.allocations]
        return jsonify(body), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get payment")
        return jsonify(ServerError().to_dict()), 500
