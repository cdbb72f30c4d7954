# Overview: Typed service errors and column-driven payload validation.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Text

from retailpos.numbers import to_decimal
from retailpos.time_utils import parse_iso_datetime

# 9,999,999.99 in cents
MAX_PRICE_CENTS = 999_999_999
# Largest magnitude a Numeric(12,3) column holds
MAX_QUANTITY = Decimal("999999999.999")


class ValidationError(ValueError):
    """Bad input (400)."""


class ConflictError(ValueError):
    """Business rule conflict such as a duplicate barcode or a referenced row (409)."""


class NotFoundError(ValueError):
    """Unknown id (404)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which columns a client may write, and which a create must include.

    Anything outside writable_fields is rejected, so ids, timestamps and
    flags like is_active stay server-controlled unless listed.
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def coerce_int(key: str, value: Any) -> int:
    """
    Strict integer: accepts ints and plain digit strings.

    Rejected: bools, floats (12.5 and 12.0 alike), "1.5", "1e5", blanks.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    if isinstance(value, str):
        text = value.strip()
        if "e" in text.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if "." in text:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(text)
        except ValueError:
            pass
    raise ValidationError(f"{key} must be an integer")


def coerce_quantity(key: str, value: Any) -> Decimal:
    """Quantities take ints, floats and numeric strings so weighed goods work."""
    try:
        qty = to_decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{key} must be a number")
    if not qty.is_finite():
        raise ValidationError(f"{key} must be a finite number")
    if abs(qty) > MAX_QUANTITY:
        raise ValidationError(f"{key} cannot exceed {MAX_QUANTITY}")
    return qty


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    raise ValidationError(f"{key} must be a boolean")


def _coerce_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            parsed = parse_iso_datetime(value)
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed
    raise ValidationError(f"{key} must be an ISO-8601 datetime")


def _coerce_text(key: str, value: Any) -> str:
    return str(value).strip()


_COERCERS = (
    (Integer, coerce_int),
    (Numeric, coerce_quantity),
    (Boolean, _coerce_bool),
    (DateTime, _coerce_datetime),
    ((String, Text), _coerce_text),
)


def _coerce(column, value: Any):
    for types, coercer in _COERCERS:
        if isinstance(column.type, types):
            return coercer(column.key, value)
    return value


def _check_text_column(column, value) -> None:
    if not isinstance(value, str) or not isinstance(column.type, (String, Text)):
        return
    if value == "" and not column.nullable:
        raise ValidationError(f"{column.key} cannot be blank")
    max_len = getattr(column.type, "length", None)
    if max_len and len(value) > max_len:
        raise ValidationError(f"{column.key} exceeds max length {max_len}")


def validate_payload(*, model, payload: dict, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Turn a JSON body into a clean patch dict for `model`.

    partial=False is create semantics (every required_on_create key present);
    partial=True validates only the keys sent. Types, nullability and String
    lengths come from the model's column metadata.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(policy.required_on_create - set(payload))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}

    patch: dict = {}
    for key, raw in payload.items():
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        column = columns.get(key)
        if column is None:
            raise ValidationError(f"Unknown field: {key}")

        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
            continue

        value = _coerce(column, raw)
        _check_text_column(column, value)
        patch[key] = value

    return patch


def check_cents_ceiling(key: str, value: int) -> None:
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS}")


def _check_price(patch: dict, key: str) -> None:
    price = patch.get(key)
    if price is None:
        return
    if price < 0:
        raise ValidationError(f"{key} must be >= 0")
    check_cents_ceiling(key, price)


def enforce_rules_product(patch: dict) -> None:
    """Product rules beyond column metadata: price ranges, empty SKU stored as NULL."""
    _check_price(patch, "sale_price_cents")
    _check_price(patch, "cost_price_cents")
    if patch.get("sku") == "":
        patch["sku"] = None
