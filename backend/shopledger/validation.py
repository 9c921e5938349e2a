from __future__ import annotations
from datetime import datetime, timedelta

from dataclasses import dataclass
from typing import Any, Iterable

from sqlalchemy import JSON, Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .time_utils import parse_iso_datetime


# Maximum money amount: 99,999,999.99 (9,999,999,999 cents)
MAX_AMOUNT_CENTS = 9_999_999_999


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(key: str, value: Any) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def coerce_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{key} must be an ISO-8601 datetime")
        if dt is None:
            raise ValidationError(f"{key} must be an ISO-8601 datetime")
        return dt
    raise ValidationError(f"{key} must be a datetime")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be true or false")

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, DateTime):
        return coerce_datetime(col.key, value)

    if isinstance(coltype, JSON):
        if not isinstance(value, dict):
            raise ValidationError(f"{col.key} must be an object")
        return value

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                details={"missing": missing},
            )

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def normalize_choice(key: str, value: Any, choices: Iterable[str]) -> str:
    """
    Lower-case an enum value ("Bank Transfer" -> "bank_transfer") and check it
    against the allowed options.
    """
    options = list(choices)
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{key} is required", details={"valid_options": options})
    normalized = value.strip().lower().replace("-", "_").replace(" ", "_")
    if normalized not in options:
        raise ValidationError(
            f"Invalid {key}: {value}",
            details={"valid_options": options},
        )
    return normalized


def require_fields(payload: dict, fields: Iterable[str]) -> None:
    missing = [f for f in fields if payload.get(f) in (None, "", [])]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={"missing": missing},
        )


def parse_amount_cents(key: str, value: Any, *, allow_zero: bool = True) -> int:
    amount = coerce_int(key, value)
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationError(f"{key} must be {'>= 0' if allow_zero else '> 0'}")
    if amount > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT_CENTS}")
    return amount


def parse_id(raw: Any, label: str) -> int:
    """Path ids arrive as strings; anything but a positive integer is a 400."""
    try:
        value = int(str(raw))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {label} id")
    if value <= 0:
        raise ValidationError(f"Invalid {label} id")
    return value


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for key in ("price_cents", "cost_price_cents"):
        if key in patch and patch[key] is not None:
            if patch[key] < 0:
                raise ValidationError(f"{key} must be >= 0")
            if patch[key] > MAX_AMOUNT_CENTS:
                raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT_CENTS}")

    for key in ("quantity", "low_stock_alert", "warranty_months"):
        if key in patch and patch[key] is not None and patch[key] < 0:
            raise ValidationError(f"{key} must be >= 0")


def enforce_rules_expense(patch: dict) -> None:
    if "amount_cents" in patch and patch["amount_cents"] is not None:
        parse_amount_cents("amount_cents", patch["amount_cents"])
    if patch.get("is_recurring") and not patch.get("recurring_frequency"):
        raise ValidationError("recurring_frequency is required for recurring expenses")


def parse_date_param(key: str, raw: str | None, *, end_of_day: bool = False) -> datetime | None:
    """
    Query-string date filter. A bare "YYYY-MM-DD" used as an upper bound
    covers the whole day.
    """
    if raw in (None, ""):
        return None
    value = coerce_datetime(key, raw)
    if end_of_day and len(raw.strip()) == 10:
        value = value + timedelta(days=1) - timedelta(microseconds=1)
    return value


def parse_limit(raw: str | None, *, default: int, maximum: int) -> int:
    if raw in (None, ""):
        return default
    value = coerce_int("limit", raw)
    if value < 1:
        raise ValidationError("limit must be >= 1")
    return min(value, maximum)
