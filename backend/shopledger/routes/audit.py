# backend/shopledger/routes/audit.py
"""
Audit trail read API. Super admin only.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_super_admin
from ..errors import ApiError, ServerError
from ..services import audit_service
from ..validation import coerce_int, parse_id, parse_limit


audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit-events")


@audit_bp.get("")
@require_auth
@require_super_admin
def list_audit_events_route():
    """Query params: event_type, customer_id, bill_id, payment_id, limit (max 500), offset."""
    try:
        args = request.args
        events, total = audit_service.list_events(
            event_type=args.get("event_type"),
            customer_id=parse_id(args["customer_id"], "customer") if args.get("customer_id") else None,
            bill_id=parse_id(args["bill_id"], "bill") if args.get("bill_id") else None,
            payment_id=parse_id(args["payment_id"], "payment") if args.get("payment_id") else None,
            limit=parse_limit(args.get("limit"), default=100, maximum=500),
            offset=coerce_int("offset", args["offset"]) if args.get("offset") else 0,
        )
        return jsonify({"items": [e.to_dict() for e in events], "count": total}), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list audit events")
        return jsonify(ServerError().to_dict()), 500
