"""
Sales Service - checkout transaction and sale history.

complete_sale() is the single write path for sales: every lookup and
validation happens first, then the sale header, its lines, its payments and
every stock decrement are flushed inside one transaction and committed once.
Any failure in the write phase rolls the whole unit back.

MONEY: integer cents. Quantities are Decimals (weighed goods).
line_total = round_half_up(qty * unit_price) - discount
tax_total  = sum(round_half_up(line_total * tax_rate_bps / 10000))
grand_total = subtotal - discount_total + tax_total
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Sale, SaleLine, SalePayment, Product, Customer, CashSession
from ..models.sales import (
    VALID_SALE_TYPES,
    VALID_PAYMENT_METHODS,
    SALE_TYPE_POS_RECEIPT,
    SALE_TYPE_INVOICE,
    SALE_STATUS_COMPLETED,
    SALE_STATUS_CANCELLED,
    PAYMENT_METHOD_CASH,
)
from ..models.registers import SESSION_STATUS_OPEN
from ..validation import (
    ValidationError,
    ConflictError,
    NotFoundError,
    check_cents_ceiling,
    coerce_int,
    coerce_quantity,
)
from ..numbers import QTY_PLACES, round_cents
from .concurrency import apply_stock_delta, lock_for_update
from .pagination import paginate, empty_page
from .products_service import parse_int_filter
from retailpos.time_utils import utcnow, parse_iso_datetime, parse_date, day_bounds, to_utc_z

UNKNOWN_PRODUCT_NAME = "Unknown Product"
MAX_TAX_RATE_BPS = 10000

DOCUMENT_PREFIXES = {
    SALE_TYPE_POS_RECEIPT: "WS",
    SALE_TYPE_INVOICE: "INV",
}


class CheckoutError(Exception):
    """Generic checkout failure after validation passed; the transaction was rolled back."""
    def __init__(self, message: str = "Checkout failed", details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass
class _PreparedLine:
    product_id: int | None
    product_name: str
    qty: Decimal
    unit_price_cents: int
    discount_cents: int
    tax_rate_bps: int
    line_total_cents: int
    tax_cents: int


@dataclass
class _PreparedPayment:
    method: str
    amount_cents: int
    reference: str | None
    paid_at: datetime | None


def generate_document_number(sale_type: str, now: datetime | None = None) -> str:
    """<PREFIX>-<YYYYMMDDHHMMSS>-<6 hex>, e.g. WS-20260101120000-A1B2C3."""
    now = now or utcnow()
    prefix = DOCUMENT_PREFIXES.get(sale_type, "WS")
    return f"{prefix}-{now:%Y%m%d%H%M%S}-{secrets.token_hex(3).upper()}"


def _optional_int(data: dict, key: str, default: int | None = None) -> int | None:
    value = data.get(key)
    if value is None:
        return default
    return coerce_int(key, value)


# =============================================================================
# CHECKOUT: VALIDATION PHASE (no writes)
# =============================================================================

def _prepare_line(index: int, raw) -> _PreparedLine:
    if not isinstance(raw, dict):
        raise ValidationError(f"lines[{index}] must be an object")

    product_id = _optional_int(raw, "product_id")
    product = None
    if product_id is not None:
        product = db.session.get(Product, product_id)
        if product is None:
            raise ValidationError(f"lines[{index}]: product {product_id} not found")
        if not product.is_active:
            raise ValidationError(f"lines[{index}]: product {product_id} is inactive")

    if raw.get("qty") is None:
        raise ValidationError(f"lines[{index}]: qty is required")
    try:
        qty = coerce_quantity("qty", raw["qty"]).quantize(QTY_PLACES, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f"lines[{index}]: qty is out of range")
    if qty <= 0:
        raise ValidationError(f"lines[{index}]: qty must be > 0")

    default_price = product.sale_price_cents if product is not None else None
    unit_price = _optional_int(raw, "unit_price_cents", default_price)
    if unit_price is None:
        raise ValidationError(f"lines[{index}]: unit_price_cents is required for custom items")
    if unit_price < 0:
        raise ValidationError(f"lines[{index}]: unit_price_cents must be >= 0")
    check_cents_ceiling(f"lines[{index}]: unit_price_cents", unit_price)

    gross = round_cents(qty * unit_price)

    discount = _optional_int(raw, "discount_cents", 0)
    check_cents_ceiling(f"lines[{index}]: discount_cents", discount)
    if discount < 0 or discount > gross:
        raise ValidationError(f"lines[{index}]: discount_cents must be between 0 and {gross}")

    tax_rate = _optional_int(raw, "tax_rate_bps", 0)
    if tax_rate < 0 or tax_rate > MAX_TAX_RATE_BPS:
        raise ValidationError(f"lines[{index}]: tax_rate_bps must be between 0 and {MAX_TAX_RATE_BPS}")

    line_total = gross - discount
    client_total = _optional_int(raw, "line_total_cents")
    if client_total is not None and client_total != line_total:
        raise ValidationError(
            f"lines[{index}]: line_total_cents mismatch (expected {line_total}, got {client_total})"
        )

    name = raw.get("product_name")
    name = str(name).strip() if name is not None else ""
    if not name and product is not None:
        name = product.name
    name = (name or UNKNOWN_PRODUCT_NAME)[:255]

    return _PreparedLine(
        product_id=product_id,
        product_name=name,
        qty=qty,
        unit_price_cents=unit_price,
        discount_cents=discount,
        tax_rate_bps=tax_rate,
        line_total_cents=line_total,
        tax_cents=round_cents(Decimal(line_total) * tax_rate / MAX_TAX_RATE_BPS),
    )


def _prepare_payment(index: int, raw) -> _PreparedPayment:
    if not isinstance(raw, dict):
        raise ValidationError(f"payments[{index}] must be an object")

    method = str(raw.get("method") or "").strip().lower()
    if method not in VALID_PAYMENT_METHODS:
        raise ValidationError(
            f"payments[{index}]: method must be one of: {', '.join(VALID_PAYMENT_METHODS)}"
        )

    amount = _optional_int(raw, "amount_cents")
    if amount is None or amount <= 0:
        raise ValidationError(f"payments[{index}]: amount_cents must be > 0")
    check_cents_ceiling(f"payments[{index}]: amount_cents", amount)

    reference = raw.get("reference")
    if reference is not None:
        reference = str(reference).strip()[:128] or None

    paid_at = None
    if raw.get("paid_at"):
        try:
            paid_at = parse_iso_datetime(str(raw["paid_at"]))
        except ValueError:
            raise ValidationError(f"payments[{index}]: paid_at must be an ISO-8601 datetime")

    return _PreparedPayment(method=method, amount_cents=amount, reference=reference, paid_at=paid_at)


def _resolve_cash_session(header: dict, user_id: int) -> int | None:
    session_id = _optional_int(header, "cash_session_id")
    if session_id is None:
        open_session = (
            db.session.query(CashSession.id)
            .filter(CashSession.user_id == user_id, CashSession.status == SESSION_STATUS_OPEN)
            .first()
        )
        return open_session[0] if open_session else None

    session = db.session.get(CashSession, session_id)
    if session is None or session.status != SESSION_STATUS_OPEN:
        raise ValidationError("cash_session_id must refer to an open cash session")
    return session.id


def _check_client_total(header: dict, key: str, computed: int) -> None:
    client_value = _optional_int(header, key)
    if client_value is not None and client_value != computed:
        raise ValidationError(f"{key} mismatch (expected {computed}, got {client_value})")


# =============================================================================
# CHECKOUT
# =============================================================================

def complete_sale(header: dict, lines: list, payments: list, *, user_id: int) -> Sale:
    """
    Validate and persist a completed sale atomically.

    Raises:
        ValidationError: bad input, unknown references, total mismatch, underpayment
        ConflictError: insufficient stock while POS_ALLOW_NEGATIVE_STOCK is off
        CheckoutError: any failure while writing (nothing was persisted)
    """
    if header is None:
        header = {}
    if not isinstance(header, dict):
        raise ValidationError("sale must be an object")
    if not isinstance(lines, list) or not lines:
        raise ValidationError("At least one sale line is required")
    if payments is None:
        payments = []
    if not isinstance(payments, list):
        raise ValidationError("payments must be a list")

    sale_type = str(header.get("type") or SALE_TYPE_POS_RECEIPT).strip()
    if sale_type not in VALID_SALE_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(VALID_SALE_TYPES)}")

    customer_id = _optional_int(header, "customer_id")
    if customer_id is not None and db.session.get(Customer, customer_id) is None:
        raise ValidationError("customer_id does not exist")

    cash_session_id = _resolve_cash_session(header, user_id)

    prepared_lines = [_prepare_line(i, raw) for i, raw in enumerate(lines)]
    prepared_payments = [_prepare_payment(i, raw) for i, raw in enumerate(payments)]

    subtotal = sum(line.line_total_cents for line in prepared_lines)
    tax_total = sum(line.tax_cents for line in prepared_lines)

    discount_total = _optional_int(header, "discount_total_cents", 0)
    check_cents_ceiling("discount_total_cents", discount_total)
    if discount_total < 0 or discount_total > subtotal:
        raise ValidationError(f"discount_total_cents must be between 0 and {subtotal}")

    grand_total = subtotal - discount_total + tax_total

    _check_client_total(header, "subtotal_cents", subtotal)
    _check_client_total(header, "tax_total_cents", tax_total)
    _check_client_total(header, "grand_total_cents", grand_total)

    paid_total = sum(p.amount_cents for p in prepared_payments)
    if paid_total < grand_total and not current_app.config["POS_ALLOW_UNDERPAYMENT"]:
        raise ValidationError(
            f"Insufficient payment: paid {paid_total}, due {grand_total}"
        )
    non_cash_total = sum(p.amount_cents for p in prepared_payments if p.method != PAYMENT_METHOD_CASH)
    if non_cash_total > grand_total:
        raise ValidationError("Non-cash tender cannot exceed the amount due")
    change_due = max(paid_total - grand_total, 0)

    allow_negative_stock = current_app.config["POS_ALLOW_NEGATIVE_STOCK"]

    now = utcnow()
    try:
        sale = Sale(
            document_number=generate_document_number(sale_type, now),
            type=sale_type,
            customer_id=customer_id,
            cash_session_id=cash_session_id,
            status=SALE_STATUS_COMPLETED,
            subtotal_cents=subtotal,
            discount_total_cents=discount_total,
            tax_total_cents=tax_total,
            grand_total_cents=grand_total,
            paid_total_cents=paid_total,
            change_due_cents=change_due,
            created_at=now,
            completed_at=now,
            created_by_user_id=user_id,
        )
        for line in prepared_lines:
            sale.lines.append(SaleLine(
                product_id=line.product_id,
                product_name=line.product_name,
                qty=line.qty,
                unit_price_cents=line.unit_price_cents,
                discount_cents=line.discount_cents,
                tax_rate_bps=line.tax_rate_bps,
                line_total_cents=line.line_total_cents,
            ))
        for payment in prepared_payments:
            sale.payments.append(SalePayment(
                method=payment.method,
                amount_cents=payment.amount_cents,
                reference=payment.reference,
                paid_at=payment.paid_at or now,
            ))

        db.session.add(sale)
        db.session.flush()

        for line in prepared_lines:
            if line.product_id is None:
                continue
            updated = apply_stock_delta(line.product_id, -line.qty, enforce_floor=not allow_negative_stock)
            if updated == 0:
                raise ConflictError(f"Insufficient stock for product {line.product_id} ({line.product_name})")

        db.session.commit()
    except ConflictError:
        db.session.rollback()
        current_app.logger.warning("Checkout rejected by stock floor (user=%s)", user_id)
        raise
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Checkout failed (user=%s)", user_id)
        raise CheckoutError("Checkout failed")

    current_app.logger.info(
        "Sale completed: %s total=%s paid=%s lines=%s user=%s session=%s",
        sale.document_number, grand_total, paid_total, len(prepared_lines), user_id, cash_session_id,
    )
    return sale


def cancel_sale(sale_id: int, *, user_id: int, reason: str | None = None) -> Sale:
    """
    Cancel a completed sale and restore stock for its catalog lines.

    Cancelled sales drop out of dashboards, session stats and expected cash.
    """
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if not sale:
        raise NotFoundError("Sale not found")
    if sale.status != SALE_STATUS_COMPLETED:
        raise ConflictError(f"Only completed sales can be cancelled (status: {sale.status})")

    reason = (reason or "").strip()[:255] or None

    try:
        for line in sale.lines:
            if line.product_id is not None:
                apply_stock_delta(line.product_id, Decimal(line.qty))

        sale.status = SALE_STATUS_CANCELLED
        sale.cancelled_at = utcnow()
        sale.cancelled_by_user_id = user_id
        sale.cancel_reason = reason
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Cancel failed for sale %s", sale_id)
        raise

    current_app.logger.info("Sale cancelled: %s by user=%s reason=%s", sale.document_number, user_id, reason)
    return sale


# =============================================================================
# HISTORY
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError("Sale not found")
    return sale


def _apply_date_filter(query, column, date_value):
    day = parse_date(date_value)
    if day is None:
        return query
    start, end = day_bounds(day)
    return query.filter(column >= start, column < end)


def list_sales(
    page: int | None = None,
    limit: int | None = None,
    search: str | None = None,
    date: str | None = None,
    user_id=None,
    status: str | None = None,
    cash_session_id=None,
) -> dict:
    """
    Paginated sales, newest first.

    search: document number substring; date: YYYY-MM-DD creation day;
    user_id: exact creator. Bad filters or query failures give an empty page.
    """
    try:
        user_id = parse_int_filter(user_id)
        cash_session_id = parse_int_filter(cash_session_id)

        query = db.session.query(Sale)
        if search:
            query = query.filter(Sale.document_number.ilike(f"%{search.strip()}%"))
        query = _apply_date_filter(query, Sale.created_at, date)
        if user_id is not None:
            query = query.filter(Sale.created_by_user_id == user_id)
        if status:
            query = query.filter(Sale.status == status.strip())
        if cash_session_id is not None:
            query = query.filter(Sale.cash_session_id == cash_session_id)

        query = query.order_by(Sale.created_at.desc(), Sale.id.desc())
        return paginate(query, page, limit)
    except (ValueError, SQLAlchemyError):
        db.session.rollback()
        current_app.logger.warning("Sales listing failed; returning empty page", exc_info=True)
        return empty_page(page, limit)


def get_sale_lines(sale_id: int) -> list[SaleLine]:
    return (
        db.session.query(SaleLine)
        .filter(SaleLine.sale_id == sale_id)
        .order_by(SaleLine.id.asc())
        .all()
    )


def _flat_line(row) -> dict:
    line, document_number, created_at, created_by_user_id = row
    data = line.to_dict()
    data["document_number"] = document_number
    data["created_at"] = to_utc_z(created_at)
    data["created_by_user_id"] = created_by_user_id
    return data


def list_sale_lines(
    page: int | None = None,
    limit: int | None = None,
    search: str | None = None,
    date: str | None = None,
    user_id=None,
) -> dict:
    """
    Flattened, paginated view of sale lines joined with their sale header.

    search matches product name or document number.
    """
    try:
        user_id = parse_int_filter(user_id)

        query = (
            db.session.query(SaleLine, Sale.document_number, Sale.created_at, Sale.created_by_user_id)
            .join(Sale, SaleLine.sale_id == Sale.id)
        )
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(db.or_(SaleLine.product_name.ilike(pattern), Sale.document_number.ilike(pattern)))
        query = _apply_date_filter(query, Sale.created_at, date)
        if user_id is not None:
            query = query.filter(Sale.created_by_user_id == user_id)

        query = query.order_by(Sale.created_at.desc(), SaleLine.id.asc())
        return paginate(query, page, limit, serialize=_flat_line)
    except (ValueError, SQLAlchemyError):
        db.session.rollback()
        current_app.logger.warning("Sale line listing failed; returning empty page", exc_info=True)
        return empty_page(page, limit)
