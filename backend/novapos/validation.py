from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

# KSh 9,999,999.99; anything above is a keying error at the till
MAX_PRICE_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level clash with existing data (duplicate id, barcode)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which columns a client may write, and which must be present on create.
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "id", "name", "category", "description", "image",
        "barcode", "batch_number", "expiry_date", "price_cents",
    },
    required_on_create={"name", "category", "price_cents"},
)

BRANCH_POLICY = ModelValidationPolicy(
    writable_fields={"id", "name", "location", "phone", "code", "is_active"},
    required_on_create={"name"},
)

EMPLOYEE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "role", "email", "phone", "home_branch_id"},
)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    return {c.key: c for c in model.__mapper__.columns}


def coerce_int(key: str, value: Any) -> int:
    """
    Accept ints and plain digit strings. Floats, bools, decimals and
    scientific notation are refused rather than truncated.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{key} must be an integer")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    if value is None:
        return None
    if isinstance(col.type, Integer):
        return coerce_int(col.key, value)
    if isinstance(col.type, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be true or false")
    if isinstance(col.type, (String, Text)):
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
    Check a JSON body against column metadata and the policy allowlist.

    Returns a cleaned patch holding only writable fields.
    partial=False enforces required_on_create; partial=True checks only the
    keys that were sent.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    for k in payload:
        if k not in policy.writable_fields or k not in cols:
            raise ValidationError(f"Field not allowed: {k}")

    patch: dict = {}
    for k, raw in payload.items():
        col = cols[k]
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)
        if isinstance(col.type, (String, Text)) and not col.nullable and val == "":
            raise ValidationError(f"{k} cannot be blank")
        if isinstance(col.type, String) and col.type.length and len(val) > col.type.length:
            raise ValidationError(f"{k} exceeds max length {col.type.length}")
        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    if patch.get("price_cents") is not None:
        price = patch["price_cents"]
        if price < 0:
            raise ValidationError("price_cents must be >= 0")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"price_cents cannot exceed {MAX_PRICE_CENTS}")


def parse_money_to_cents(key: str, value: Any) -> int:
    """
    Convert a major-unit amount ("350", 3.5, "1,200.00") to cents.

    Used for CSV import and expense entry, where amounts arrive as typed.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{key} must be a number")
    text = str(value).strip().replace(",", "")
    try:
        amount = Decimal(text)
    except InvalidOperation:
        raise ValidationError(f"{key} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{key} must be a number")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
