from __future__ import annotations
from datetime import datetime

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Float, Integer, String, Text, DateTime, JSON
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .models.catalog import (
    PRODUCT_CATEGORIES,
    CARE_LEVELS,
    SUN_REQUIREMENTS,
    WATERING_NEEDS,
    MEMBERSHIP_LEVELS,
)
from .models.sales import PAYMENT_METHODS
from .time_utils import parse_iso_datetime


# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_int(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValueError(f"{key} must be an integer")
        # Reject scientific notation and decimals ("1e15", "12.5")
        if 'e' in stripped.lower() or '.' in stripped:
            raise ValueError(f"{key} must be a plain integer")
        try:
            return int(stripped)
        except ValueError:
            raise ValueError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValueError(f"{key} must be an integer, not a decimal")
    raise ValueError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return _coerce_int(col.key, value)

    if isinstance(coltype, Float):
        if isinstance(value, bool):
            raise ValueError(f"{col.key} must be a number")
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValueError(f"{col.key} must be a number")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ("true", "false"):
            return value.lower() == "true"
        raise ValueError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        try:
            dt = parse_iso_datetime(value)
        except Exception:
            dt = None
        if dt is None:
            raise ValueError(f"{col.key} must be an ISO-8601 datetime")
        return dt

    if isinstance(coltype, JSON):
        if not isinstance(value, (dict, list)):
            raise ValueError(f"{col.key} must be an object or list")
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

    All problems are collected and raised together as a ValidationError
    with one message per field.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors: dict[str, str] = {}

    if not partial:
        for f in sorted(policy.required_on_create):
            if f not in payload or payload[f] in (None, ""):
                errors[f] = f"{f} is required"

    cols = _columns_by_key(model)
    patch: dict = {}

    for k, raw in payload.items():
        if k in errors:
            continue
        if k not in policy.writable_fields or k not in cols:
            errors[k] = f"Field not allowed: {k}"
            continue

        col = cols[k]

        if raw is None:
            if not col.nullable:
                errors[k] = f"{k} cannot be null"
            else:
                patch[k] = None
            continue

        try:
            val = _coerce_value(col, raw)
        except ValueError as e:
            errors[k] = str(e)
            continue

        if isinstance(col.type, (String, Text)) and not col.nullable and val == "":
            errors[k] = f"{k} cannot be blank"
            continue

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                errors[k] = f"{k} exceeds max length {col.type.length}"
                continue

        patch[k] = val

    if errors:
        raise ValidationError("Validation failed", fields=errors)
    return patch


def _check_price(errors: dict, patch: dict, key: str) -> None:
    if patch.get(key) is None:
        return
    price = patch[key]
    if price < 0:
        errors[key] = f"{key} must be >= 0"
    elif price > MAX_PRICE_CENTS:
        errors[key] = f"{key} cannot exceed {MAX_PRICE_CENTS}"


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    """
    errors: dict[str, str] = {}

    if "category" in patch and patch["category"] not in PRODUCT_CATEGORIES:
        errors["category"] = f"category must be one of {', '.join(PRODUCT_CATEGORIES)}"

    _check_price(errors, patch, "cost_price_cents")
    _check_price(errors, patch, "selling_price_cents")

    if patch.get("tax_rate") is not None and not (0 <= patch["tax_rate"] <= 100):
        errors["tax_rate"] = "tax_rate must be between 0 and 100"

    for key in ("current_stock", "minimum_stock"):
        if patch.get(key) is not None and patch[key] < 0:
            errors[key] = f"{key} must be >= 0"

    details = patch.get("plant_details")
    if details is not None:
        if not isinstance(details, dict):
            errors["plant_details"] = "plant_details must be an object"
        else:
            for key, allowed in (
                ("care_level", CARE_LEVELS),
                ("sun_requirement", SUN_REQUIREMENTS),
                ("watering_needs", WATERING_NEEDS),
            ):
                if details.get(key) is not None and details[key] not in allowed:
                    errors[f"plant_details.{key}"] = f"{key} must be one of {', '.join(allowed)}"

    if errors:
        raise ValidationError("Validation failed", fields=errors)


def enforce_rules_customer(patch: dict) -> None:
    errors: dict[str, str] = {}
    if "email" in patch and not patch["email"]:
        patch["email"] = None
    if patch.get("membership_level") is not None and patch["membership_level"] not in MEMBERSHIP_LEVELS:
        errors["membership_level"] = f"membership_level must be one of {', '.join(MEMBERSHIP_LEVELS)}"
    if patch.get("loyalty_points") is not None and patch["loyalty_points"] < 0:
        errors["loyalty_points"] = "loyalty_points must be >= 0"
    if patch.get("email"):
        patch["email"] = patch["email"].lower()
        if "@" not in patch["email"]:
            errors["email"] = "email must be a valid email address"
    if errors:
        raise ValidationError("Validation failed", fields=errors)


def enforce_rules_supplier(patch: dict) -> None:
    errors: dict[str, str] = {}
    if "email" in patch and not patch["email"]:
        patch["email"] = None
    if patch.get("lead_time_days") is not None and patch["lead_time_days"] < 0:
        errors["lead_time_days"] = "lead_time_days must be >= 0"
    if patch.get("email"):
        patch["email"] = patch["email"].lower()
        if "@" not in patch["email"]:
            errors["email"] = "email must be a valid email address"
    if errors:
        raise ValidationError("Validation failed", fields=errors)


# =============================================================================
# TYPED REQUESTS (sales / refunds)
# =============================================================================

@dataclass
class SaleItemRequest:
    product_id: int
    quantity: int
    unit_price_cents: int | None = None
    discount_cents: int = 0


@dataclass
class PaymentRequest:
    method: str
    amount_cents: int
    reference: str | None = None
    transaction_id: str | None = None
    card_type: str | None = None
    last_four_digits: str | None = None


@dataclass
class SaleRequest:
    items: list[SaleItemRequest]
    payments: list[PaymentRequest] = field(default_factory=list)
    customer_id: int | None = None
    subtotal_cents: int | None = None
    total_cents: int | None = None
    amount_tendered_cents: int | None = None
    register_number: str | None = None
    receipt_email: str | None = None
    notes: str | None = None


@dataclass
class RefundItemRequest:
    product_id: int
    quantity: int


@dataclass
class RefundRequest:
    items: list[RefundItemRequest]
    reason: str | None = None
    payment_method: str | None = None


def _optional_int(errors: dict, data: dict, key: str, path: str, *, minimum: int | None = None) -> int | None:
    if data.get(key) is None:
        return None
    try:
        value = _coerce_int(key, data[key])
    except ValueError as e:
        errors[path] = str(e)
        return None
    if minimum is not None and value < minimum:
        errors[path] = f"{key} must be >= {minimum}"
        return None
    return value


def _required_int(errors: dict, data: dict, key: str, path: str, *, minimum: int | None = None) -> int | None:
    if data.get(key) is None:
        errors[path] = f"{key} is required"
        return None
    return _optional_int(errors, data, key, path, minimum=minimum)


def _optional_str(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_sale_request(payload: dict) -> SaleRequest:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors: dict[str, str] = {}
    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        errors["items"] = "items must be a non-empty list"
        raw_items = []

    items = []
    for i, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            errors[f"items[{i}]"] = "item must be an object"
            continue
        product_id = _required_int(errors, raw, "product_id", f"items[{i}].product_id")
        quantity = _required_int(errors, raw, "quantity", f"items[{i}].quantity", minimum=1)
        unit_price = _optional_int(errors, raw, "unit_price_cents", f"items[{i}].unit_price_cents", minimum=0)
        discount = _optional_int(errors, raw, "discount_cents", f"items[{i}].discount_cents", minimum=0) or 0
        if unit_price is not None and unit_price > MAX_PRICE_CENTS:
            errors[f"items[{i}].unit_price_cents"] = f"unit_price_cents cannot exceed {MAX_PRICE_CENTS}"
        if product_id is not None and quantity is not None:
            items.append(SaleItemRequest(product_id, quantity, unit_price, discount))

    raw_payments = payload.get("payments") or []
    if not isinstance(raw_payments, list):
        errors["payments"] = "payments must be a list"
        raw_payments = []

    payments = []
    for i, raw in enumerate(raw_payments):
        if not isinstance(raw, dict):
            errors[f"payments[{i}]"] = "payment must be an object"
            continue
        method = raw.get("method")
        if method not in PAYMENT_METHODS:
            errors[f"payments[{i}].method"] = f"method must be one of {', '.join(PAYMENT_METHODS)}"
        amount = _required_int(errors, raw, "amount_cents", f"payments[{i}].amount_cents", minimum=1)
        if method in PAYMENT_METHODS and amount is not None:
            last_four = _optional_str(raw, "last_four_digits")
            payments.append(PaymentRequest(
                method=method,
                amount_cents=amount,
                reference=_optional_str(raw, "reference"),
                transaction_id=_optional_str(raw, "transaction_id"),
                card_type=_optional_str(raw, "card_type"),
                last_four_digits=last_four[-4:] if last_four else None,
            ))

    request = SaleRequest(
        items=items,
        payments=payments,
        customer_id=_optional_int(errors, payload, "customer_id", "customer_id"),
        subtotal_cents=_optional_int(errors, payload, "subtotal_cents", "subtotal_cents", minimum=0),
        total_cents=_optional_int(errors, payload, "total_cents", "total_cents", minimum=0),
        amount_tendered_cents=_optional_int(errors, payload, "amount_tendered_cents", "amount_tendered_cents", minimum=0),
        register_number=_optional_str(payload, "register_number"),
        receipt_email=_optional_str(payload, "receipt_email"),
        notes=_optional_str(payload, "notes"),
    )

    if errors:
        raise ValidationError("Validation failed", fields=errors)
    return request


def parse_refund_request(payload: dict) -> RefundRequest:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors: dict[str, str] = {}
    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        errors["items"] = "items must be a non-empty list"
        raw_items = []

    items = []
    for i, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            errors[f"items[{i}]"] = "item must be an object"
            continue
        product_id = _required_int(errors, raw, "product_id", f"items[{i}].product_id")
        quantity = _required_int(errors, raw, "quantity", f"items[{i}].quantity", minimum=1)
        if product_id is not None and quantity is not None:
            items.append(RefundItemRequest(product_id, quantity))

    payment_method = payload.get("payment_method")
    if payment_method is not None and payment_method not in PAYMENT_METHODS:
        errors["payment_method"] = f"payment_method must be one of {', '.join(PAYMENT_METHODS)}"

    if errors:
        raise ValidationError("Validation failed", fields=errors)

    return RefundRequest(
        items=items,
        reason=_optional_str(payload, "reason"),
        payment_method=payment_method,
    )
