# Overview: Quantity and money helpers shared by models and services.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

QTY_PLACES = Decimal("0.001")


def to_decimal(value) -> Decimal:
    """Coerce int/float/str/Decimal to Decimal without float artefacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidOperation("booleans are not quantities")
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(str(value).strip())


def round_cents(value: Decimal) -> int:
    """Round a Decimal amount of cents half-up to an integer."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def qty_to_json(value) -> int | float | None:
    """Render a stored Numeric quantity as a JSON number (int when whole)."""
    if value is None:
        return None
    d = to_decimal(value).quantize(QTY_PLACES, rounding=ROUND_HALF_UP)
    if d == d.to_integral_value():
        return int(d)
    return float(d)
