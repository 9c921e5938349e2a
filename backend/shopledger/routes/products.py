# backend/shopledger/routes/products.py
"""
Product catalogue API.

Reads are open to every authenticated operator; writes are super admin only.
DELETE retires a product (is_active = False) instead of removing the row.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_super_admin
from ..errors import ApiError, ServerError
from ..services import products_service
from ..validation import coerce_int, parse_id


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    Query params: category, search, stock_status, include_inactive,
    sort_by, sort_order, page, per_page.
    """
    try:
        page = request.args.get("page")
        per_page = request.args.get("per_page")
        result = products_service.list_products(
            category=request.args.get("category"),
            search=request.args.get("search"),
            stock_status=request.args.get("stock_status"),
            include_inactive=request.args.get("include_inactive", "").lower() in ("1", "true", "yes"),
            sort_by=request.args.get("sort_by", "name"),
            sort_order=request.args.get("sort_order", "asc"),
            page=coerce_int("page", page) if page else None,
            per_page=coerce_int("per_page", per_page) if per_page else None,
        )
        return jsonify(result), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify(ServerError().to_dict()), 500


@products_bp.get("/low-stock")
@require_auth
def low_stock_route():
    try:
        return jsonify([p.to_dict() for p in products_service.low_stock_products()]), 200
    except Exception:
        current_app.logger.exception("Failed to list low stock products")
        return jsonify(ServerError().to_dict()), 500


@products_bp.get("/<product_id>")
@require_auth
def get_product_route(product_id):
    try:
        return jsonify(products_service.get_product(parse_id(product_id, "product")).to_dict()), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get product")
        return jsonify(ServerError().to_dict()), 500


@products_bp.post("")
@require_auth
@require_super_admin
def create_product_route():
    try:
        product = products_service.create_product(request.get_json(silent=True) or {})
        return jsonify(product.to_dict()), 201
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify(ServerError().to_dict()), 500


@products_bp.put("/<product_id>")
@require_auth
@require_super_admin
def update_product_route(product_id):
    try:
        product = products_service.update_product(
            parse_id(product_id, "product"),
            request.get_json(silent=True) or {},
        )
        return jsonify(product.to_dict()), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify(ServerError().to_dict()), 500


@products_bp.delete("/<product_id>")
@require_auth
@require_super_admin
def delete_product_route(product_id):
    try:
        product = products_service.deactivate_product(parse_id(product_id, "product"))
        return jsonify({"message": "Product deactivated", "product": product.to_dict()}), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate product")
        return jsonify(ServerError().to_dict()), 500
