# backend/shopledger/routes/reports.py
"""
Reporting API. Read-only; every endpoint accepts optional start_date and
end_date (ISO-8601) unless noted.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth
from ..errors import ApiError, ServerError
from ..services import reporting_service
from ..validation import parse_date_param, parse_limit


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _range():
    return (
        parse_date_param("start_date", request.args.get("start_date")),
        parse_date_param("end_date", request.args.get("end_date"), end_of_day=True),
    )


@reports_bp.get("/sales")
@require_auth
def sales_report_route():
    try:
        return jsonify(reporting_service.sales_report(*_range())), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build sales report")
        return jsonify(ServerError().to_dict()), 500


@reports_bp.get("/inventory")
@require_auth
def inventory_report_route():
    """Current stock position; no date range."""
    try:
        return jsonify(reporting_service.inventory_report()), 200
    except Exception:
        current_app.logger.exception("Failed to build inventory report")
        return jsonify(ServerError().to_dict()), 500


@reports_bp.get("/expenses")
@require_auth
def expense_report_route():
    try:
        return jsonify(reporting_service.expense_report(*_range())), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build expense report")
        return jsonify(ServerError().to_dict()), 500


@reports_bp.get("/profit-loss")
@require_auth
def profit_loss_route():
    try:
        return jsonify(reporting_service.profit_loss_report(*_range())), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build profit and loss report")
        return jsonify(ServerError().to_dict()), 500


@reports_bp.get("/top-products")
@require_auth
def top_products_route():
    """Query params: limit (default 10, max 100), start_date, end_date."""
    try:
        limit = parse_limit(request.args.get("limit"), default=10, maximum=100)
        return jsonify(reporting_service.top_products(limit, *_range())), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build top products report")
        return jsonify(ServerError().to_dict()), 500


@reports_bp.get("/outstanding")
@require_auth
def outstanding_route():
    """Customers owing money; no date range."""
    try:
        return jsonify(reporting_service.outstanding_report()), 200
    except Exception:
        current_app.logger.exception("Failed to build outstanding report")
        return jsonify(ServerError().to_dict()), 500
