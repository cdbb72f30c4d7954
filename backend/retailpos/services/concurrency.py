# Overview: Service-layer operations for concurrency; encapsulates business logic and database work.

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import update

from ..extensions import db
from ..models import Product


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def apply_stock_delta(product_id: int, delta: Decimal, *, enforce_floor: bool = False) -> int:
    """
    Relative stock update: stock_quantity = stock_quantity + delta.

    A single UPDATE statement, so concurrent sales of the same product never
    lose a decrement (no read-modify-write in Python).
    With enforce_floor, a decrement only applies while stock covers it.

    Returns the affected row count (0 means the product is missing or, with
    enforce_floor, stock was insufficient). Does not commit.
    """
    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(stock_quantity=Product.stock_quantity + delta)
    )
    if enforce_floor and delta < 0:
        stmt = stmt.where(Product.stock_quantity >= -delta)

    result = db.session.execute(stmt.execution_options(synchronize_session=False))
    return result.rowcount
