# backend/shopledger/services/products_service.py
"""
Product catalogue.

Products are never hard-deleted: old bill lines must keep resolving, so
"delete" retires the product (is_active = False). Stock quantity is moved by
bill_service; here it is only set directly by catalogue edits.
"""
from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Product
from ..models.inventory import STOCK_IN, STOCK_LOW, STOCK_OUT, VALID_CATEGORIES
from ..validation import ModelValidationPolicy, enforce_rules_product, normalize_choice, validate_payload


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "description", "category",
        "price_cents", "cost_price_cents", "quantity", "low_stock_alert",
        "brand", "model", "warranty_months",
        "supplier_name", "supplier_contact", "supplier_email",
        "extra", "is_active",
    },
    required_on_create={"sku", "name", "category", "price_cents"},
)

SORTABLE_FIELDS = {"name", "sku", "price_cents", "quantity", "created_at", "category"}


def _flatten_supplier(payload: dict) -> dict:
    """Accept {"supplier": {"name", "contact", "email"}} as well as flat columns."""
    payload = dict(payload or {})
    supplier = payload.pop("supplier", None)
    if isinstance(supplier, dict):
        for key in ("name", "contact", "email"):
            if key in supplier:
                payload[f"supplier_{key}"] = supplier[key]
    elif supplier is not None:
        raise ValidationError("supplier must be an object")
    return payload


def _ensure_sku_available(sku: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ValidationError("SKU already exists")


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found")
    return product


def list_products(
    *,
    category: str | None = None,
    search: str | None = None,
    stock_status: str | None = None,
    include_inactive: bool = False,
    sort_by: str = "name",
    sort_order: str = "asc",
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional pagination.

    Returns dict with 'items', 'count', and pagination metadata if paginated.
    """
    query = db.session.query(Product)

    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if category:
        query = query.filter(Product.category == normalize_choice("category", category, VALID_CATEGORIES))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Product.name.ilike(like),
            Product.sku.ilike(like),
            Product.brand.ilike(like),
        ))
    if stock_status:
        status = stock_status.strip().lower().replace("_", " ")
        if status == STOCK_OUT.lower():
            query = query.filter(Product.quantity <= 0)
        elif status == STOCK_LOW.lower():
            query = query.filter(Product.quantity > 0, Product.quantity <= Product.low_stock_alert)
        elif status == STOCK_IN.lower():
            query = query.filter(Product.quantity > Product.low_stock_alert)
        else:
            raise ValidationError(
                f"Invalid stock_status: {stock_status}",
                details={"valid_options": [STOCK_IN, STOCK_LOW, STOCK_OUT]},
            )

    if sort_by not in SORTABLE_FIELDS:
        raise ValidationError(f"Cannot sort by {sort_by}", details={"valid_options": sorted(SORTABLE_FIELDS)})
    column = getattr(Product, sort_by)
    query = query.order_by(column.desc() if sort_order == "desc" else column.asc(), Product.id.asc())

    if page is None:
        products = query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    products = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def create_product(payload: dict) -> Product:
    patch = validate_payload(
        model=Product,
        payload=_flatten_supplier(payload),
        policy=PRODUCT_POLICY,
        partial=False,
    )
    enforce_rules_product(patch)
    patch["category"] = normalize_choice("category", patch["category"], VALID_CATEGORIES)
    patch["sku"] = patch["sku"].upper()
    if patch.get("low_stock_alert") is None:
        patch["low_stock_alert"] = current_app.config.get("DEFAULT_LOW_STOCK_ALERT", 5)

    _ensure_sku_available(patch["sku"])

    product = Product(**patch)
    db.session.add(product)
    db.session.commit()
    return product


def update_product(product_id: int, payload: dict) -> Product:
    product = get_product(product_id)
    patch = validate_payload(
        model=Product,
        payload=_flatten_supplier(payload),
        policy=PRODUCT_POLICY,
        partial=True,
    )
    enforce_rules_product(patch)
    if "category" in patch:
        patch["category"] = normalize_choice("category", patch["category"], VALID_CATEGORIES)
    if "sku" in patch:
        patch["sku"] = patch["sku"].upper()
        _ensure_sku_available(patch["sku"], exclude_id=product.id)

    for k, v in patch.items():
        setattr(product, k, v)

    db.session.commit()
    return product


def deactivate_product(product_id: int) -> Product:
    product = get_product(product_id)
    product.is_active = False
    db.session.commit()
    return product


def low_stock_products() -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.quantity <= Product.low_stock_alert)
        .order_by(Product.quantity.asc(), Product.name.asc())
        .all()
    )
