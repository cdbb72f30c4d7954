"""
Cash Session Service - cashier shifts and cash reconciliation.

DESIGN PRINCIPLES:
- At most one open session per user (idempotent open, partial unique index)
- Sessions are immutable once closed
- Variance tracking (expected vs actual cash)
- Session stats are recomputed from persisted rows on every call
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import CashSession, Sale, SaleLine, SalePayment, User
from ..models.registers import SESSION_STATUS_OPEN, SESSION_STATUS_CLOSED
from ..models.sales import SALE_STATUS_CANCELLED, PAYMENT_METHOD_CASH
from ..numbers import qty_to_json, round_cents, to_decimal
from ..validation import ValidationError, NotFoundError, coerce_int
from .concurrency import lock_for_update
from .pagination import paginate, empty_page
from .products_service import parse_int_filter
from retailpos.time_utils import utcnow, parse_date, day_bounds

MATCHED_BY_SESSION = "session"
MATCHED_BY_TIME_RANGE = "time_range"


class CashSessionError(Exception):
    """Raised for cash session lifecycle errors."""
    pass


# =============================================================================
# LIFECYCLE
# =============================================================================

def get_open_session(user_id: int) -> CashSession | None:
    """Get the currently open session for a user, if any."""
    return db.session.query(CashSession).filter_by(
        user_id=user_id,
        status=SESSION_STATUS_OPEN
    ).first()


def get_session(session_id: int) -> CashSession:
    session = db.session.get(CashSession, session_id)
    if not session:
        raise NotFoundError("Cash session not found")
    return session


def open_session(user_id: int, opening_balance_cents=0) -> tuple[CashSession, bool]:
    """
    Open a cash session for a user, or return the one already open.

    Returns (session, created). A second call while a session is open returns
    the existing session unchanged. A concurrent insert that loses the race
    on the partial unique index returns the winner's row.

    Raises:
        ValidationError: unknown/inactive user or negative opening balance
    """
    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        raise ValidationError("User not found or inactive")

    opening_balance_cents = coerce_int("opening_balance_cents", opening_balance_cents or 0)
    if opening_balance_cents < 0:
        raise ValidationError("opening_balance_cents must be >= 0")

    existing = get_open_session(user_id)
    if existing:
        return existing, False

    session = CashSession(
        user_id=user_id,
        status=SESSION_STATUS_OPEN,
        start_time=utcnow(),
        opening_balance_cents=opening_balance_cents,
    )
    db.session.add(session)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        winner = get_open_session(user_id)
        if winner is None:
            raise CashSessionError("Could not open cash session")
        current_app.logger.info("Cash session open race for user=%s resolved to session %s", user_id, winner.id)
        return winner, False

    current_app.logger.info(
        "Cash session opened: id=%s user=%s opening=%s", session.id, user_id, opening_balance_cents
    )
    return session, True


def compute_expected_cash(session: CashSession) -> int:
    """opening balance + cash tendered on non-cancelled sales - change given back."""
    cash_in = (
        db.session.query(func.coalesce(func.sum(SalePayment.amount_cents), 0))
        .join(Sale, SalePayment.sale_id == Sale.id)
        .filter(
            Sale.cash_session_id == session.id,
            Sale.status != SALE_STATUS_CANCELLED,
            SalePayment.method == PAYMENT_METHOD_CASH,
        )
        .scalar()
    )
    change_out = (
        db.session.query(func.coalesce(func.sum(Sale.change_due_cents), 0))
        .filter(Sale.cash_session_id == session.id, Sale.status != SALE_STATUS_CANCELLED)
        .scalar()
    )
    return (session.opening_balance_cents or 0) + int(cash_in) - int(change_out)


def close_session(
    session_id: int,
    actual_cash_balance_cents=None,
    notes: str | None = None,
    *,
    current_user_id: int | None = None,
    manager_override: bool = False,
) -> CashSession:
    """
    Close a session and calculate cash variance.

    IMMUTABLE: Once closed, a session cannot be reopened or modified.
    """
    session = lock_for_update(db.session.query(CashSession).filter_by(id=session_id)).first()

    if not session:
        raise NotFoundError("Cash session not found")

    if session.status != SESSION_STATUS_OPEN:
        raise CashSessionError("Session already closed")

    if current_user_id is not None and session.user_id != current_user_id and not manager_override:
        raise CashSessionError("Only the session owner can close this session without manager approval")

    actual = None
    if actual_cash_balance_cents is not None:
        actual = coerce_int("actual_cash_balance_cents", actual_cash_balance_cents)
        if actual < 0:
            raise ValidationError("actual_cash_balance_cents must be >= 0")

    expected = compute_expected_cash(session)

    session.status = SESSION_STATUS_CLOSED
    session.end_time = utcnow()
    session.expected_cash_balance_cents = expected
    session.actual_cash_balance_cents = actual
    session.difference_cents = actual - expected if actual is not None else None
    if notes is not None:
        session.notes = str(notes).strip() or None

    db.session.commit()

    current_app.logger.info(
        "Cash session closed: id=%s user=%s expected=%s actual=%s difference=%s",
        session.id, session.user_id, expected, actual, session.difference_cents,
    )
    return session


def list_sessions(
    page: int | None = None,
    limit: int | None = None,
    user_id=None,
    date: str | None = None,
    status: str | None = None,
    serialize=None,
) -> dict:
    """Paginated sessions, newest start_time first. date filters on the start day."""
    try:
        user_id = parse_int_filter(user_id)

        query = db.session.query(CashSession)
        if user_id is not None:
            query = query.filter(CashSession.user_id == user_id)
        day = parse_date(date)
        if day is not None:
            start, end = day_bounds(day)
            query = query.filter(CashSession.start_time >= start, CashSession.start_time < end)
        if status:
            query = query.filter(CashSession.status == status.strip())

        query = query.order_by(CashSession.start_time.desc(), CashSession.id.desc())
        return paginate(query, page, limit, serialize=serialize)
    except (ValueError, SQLAlchemyError):
        db.session.rollback()
        current_app.logger.warning("Cash session listing failed; returning empty page", exc_info=True)
        return empty_page(page, limit)


# =============================================================================
# RECONCILIATION
# =============================================================================

def _session_sales(session: CashSession) -> tuple[list[Sale], str]:
    base = (
        db.session.query(Sale)
        .options(selectinload(Sale.lines).selectinload(SaleLine.product))
        .filter(Sale.status != SALE_STATUS_CANCELLED)
    )

    sales = base.filter(Sale.cash_session_id == session.id).all()
    if sales:
        return sales, MATCHED_BY_SESSION

    # Fallback for sales that were never tagged with a session id
    end = session.end_time or utcnow()
    sales = base.filter(
        Sale.created_by_user_id == session.user_id,
        Sale.created_at >= session.start_time,
        Sale.created_at <= end,
    ).all()
    return sales, MATCHED_BY_TIME_RANGE


def compute_session_stats(session: CashSession) -> dict:
    """
    Per-session sales statistics.

    products_sold: sum of line quantities
    total_revenue_cents: sum of sale grand totals
    total_gain_cents: sum((unit_price - product cost) * qty); a line without a
        resolvable product (custom item) counts cost 0
    transaction_count: number of sales
    """
    sales, matched_by = _session_sales(session)

    products_sold = Decimal(0)
    revenue = 0
    gain = Decimal(0)
    for sale in sales:
        revenue += sale.grand_total_cents or 0
        for line in sale.lines:
            qty = to_decimal(line.qty)
            products_sold += qty
            cost = line.product.cost_price_cents if line.product is not None else 0
            gain += (line.unit_price_cents - (cost or 0)) * qty

    return {
        "products_sold": qty_to_json(products_sold),
        "transaction_count": len(sales),
        "total_revenue_cents": revenue,
        "total_gain_cents": round_cents(gain),
        "matched_by": matched_by,
    }


def session_report_row(session: CashSession) -> dict:
    data = session.to_dict()
    data["user_name"] = session.user.name if session.user else None
    data["stats"] = compute_session_stats(session)
    return data
