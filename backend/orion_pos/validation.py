from __future__ import annotations
from datetime import date, datetime
from orion_pos.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum amount: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT_CENTS = 999_999_999

MOVEMENT_TYPES = ("entry", "exit")
DISCOUNT_TYPES = ("percent", "fixed")
USER_ROLES = ("admin", "cashier")
EXPENSE_TYPES = ("realized", "planned")
EXPENSE_STATUSES = ("pending", "validated")
GOAL_STATUSES = ("active", "achieved", "cancelled")


class ValidationError(ValueError):
    """400-level input problem."""
    kind = "validation_error"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NotFoundError(ValidationError):
    """404-level unknown product/movement/sale/client/user id."""
    kind = "not_found"
    status_code = 404


class InsufficientStockError(ValidationError):
    """An exit would drive on-hand quantity below zero."""
    kind = "insufficient_stock"
    status_code = 400


class ConflictError(ValidationError):
    """409-level business rule conflict (e.g., duplicate invoice number)."""
    kind = "conflict"
    status_code = 409


class ForbiddenError(ValidationError):
    """403-level protected record (e.g., the default admin account)."""
    kind = "forbidden"
    status_code = 403


def error_response(exc: ValidationError):
    """JSON body and status for a service-layer error."""
    body = {"error": str(exc), "kind": exc.kind}
    if exc.details:
        body["details"] = exc.details
    return body, exc.status_code


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
    """Strict integer coercion: rejects floats, bools and scientific notation."""
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


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, Date):
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                return None
            try:
                return date.fromisoformat(stripped[:10])
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date (YYYY-MM-DD)")
        raise ValidationError(f"{col.key} must be a date")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
    ignore_unknown: bool = False,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    ignore_unknown=True drops non-writable keys instead of rejecting them
    (form-style clients resend read-only fields like id/created_at).
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    patch: dict = {}

    for k, raw in payload.items():
        if k not in policy.writable_fields or k not in cols:
            if ignore_unknown:
                continue
            raise ValidationError(f"Field not allowed: {k}")

        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _check_amount(patch: dict, key: str) -> None:
    if key in patch and patch[key] is not None:
        amount = patch[key]
        if amount < 0:
            raise ValidationError(f"{key} must be >= 0")
        if amount > MAX_AMOUNT_CENTS:
            raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT_CENTS}")


def _check_choice(patch: dict, key: str, choices: tuple[str, ...]) -> None:
    if key in patch and patch[key] is not None and patch[key] not in choices:
        raise ValidationError(f"{key} must be one of: {', '.join(choices)}")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    _check_amount(patch, "purchase_price_cents")
    _check_amount(patch, "sale_price_cents")
    if "sale_price_cents" in patch and patch["sale_price_cents"] is None:
        raise ValidationError("sale_price_cents is required")

    if "quantity" in patch:
        if patch["quantity"] is None:
            patch["quantity"] = 0
        if patch["quantity"] < 0:
            raise ValidationError("quantity must be >= 0")

    if "min_stock" in patch and patch["min_stock"] is not None and patch["min_stock"] < 0:
        raise ValidationError("min_stock must be >= 0")


def enforce_rules_positive_quantity(value: Any, key: str = "quantity") -> int:
    """Restock, movement and cart quantities must be present and > 0."""
    if value is None or value == "":
        raise ValidationError(f"{key} is required")
    qty = coerce_int(key, value)
    if qty <= 0:
        raise ValidationError(f"{key} must be > 0")
    return qty


def enforce_rules_movement_type(value: Any) -> str:
    movement_type = str(value or "").strip().lower()
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError("movement_type must be 'entry' or 'exit'")
    return movement_type


def enforce_rules_discount(discount_type: Any, discount_value: Any) -> tuple[str, int]:
    dtype = str(discount_type or "percent").strip().lower()
    if dtype not in DISCOUNT_TYPES:
        raise ValidationError("discount_type must be 'percent' or 'fixed'")

    value = 0 if discount_value in (None, "") else coerce_int("discount_value", discount_value)
    if value < 0:
        raise ValidationError("discount_value must be >= 0")
    if dtype == "percent" and value > 100:
        raise ValidationError("discount_value cannot exceed 100 for percent discounts")
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"discount_value cannot exceed {MAX_AMOUNT_CENTS}")
    return dtype, value


def enforce_rules_expense(patch: dict) -> None:
    _check_amount(patch, "amount_cents")
    if "amount_cents" in patch and not patch["amount_cents"]:
        raise ValidationError("amount_cents must be > 0")
    _check_choice(patch, "type", EXPENSE_TYPES)
    _check_choice(patch, "status", EXPENSE_STATUSES)


def enforce_rules_goal(patch: dict) -> None:
    _check_amount(patch, "target_amount_cents")
    _check_amount(patch, "current_amount_cents")
    if "target_amount_cents" in patch and not patch["target_amount_cents"]:
        raise ValidationError("target_amount_cents must be > 0")
    _check_choice(patch, "status", GOAL_STATUSES)


def enforce_rules_user(patch: dict) -> None:
    _check_choice(patch, "role", USER_ROLES)


def enforce_rules_company_config(patch: dict) -> None:
    if "tax_rate_bps" in patch and patch["tax_rate_bps"] is not None:
        if not 0 <= patch["tax_rate_bps"] <= 10_000:
            raise ValidationError("tax_rate_bps must be between 0 and 10000")
