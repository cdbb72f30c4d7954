# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from retailpos.extensions import db
from retailpos.models import Sale, SaleLine, Product, ProductCategory, Customer
from retailpos.models.sales import SALE_STATUS_COMPLETED
from retailpos.validation import ValidationError
from retailpos.time_utils import parse_range_bound, to_utc_z

TOP_PRODUCTS_LIMIT = 5


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None, bool]:
    """Returns (start_dt, end_dt, end_exclusive); a bare YYYY-MM-DD end covers that whole day."""
    try:
        start_dt, _ = parse_range_bound(start, end=False)
        end_dt, end_exclusive = parse_range_bound(end, end=True)
    except ValueError:
        raise ValidationError("start/end must be YYYY-MM-DD or ISO-8601 datetimes")
    if start_dt and end_dt and end_dt < start_dt:
        raise ValidationError("end must not be before start")
    return start_dt, end_dt, end_exclusive


def _completed_in_range(query, start_dt, end_dt, end_exclusive):
    query = query.filter(Sale.status == SALE_STATUS_COMPLETED)
    if start_dt:
        query = query.filter(Sale.created_at >= start_dt)
    if end_dt:
        query = query.filter(Sale.created_at < end_dt if end_exclusive else Sale.created_at <= end_dt)
    return query


def dashboard(start: str | None = None, end: str | None = None) -> dict:
    """
    Dashboard aggregates over completed sales in [start, end].

    total_products / total_customers are catalog-wide counts, not range-scoped.
    """
    start_dt, end_dt, end_exclusive = _parse_range(start, end)

    def scoped(query):
        return _completed_in_range(query, start_dt, end_dt, end_exclusive)

    revenue, sales_count = scoped(
        db.session.query(
            func.coalesce(func.sum(Sale.grand_total_cents), 0),
            func.count(Sale.id),
        )
    ).one()

    total_products = db.session.query(func.count(Product.id)).scalar()
    total_customers = db.session.query(func.count(Customer.id)).scalar()

    day_expr = func.strftime("%Y-%m-%d", Sale.created_at)
    over_time = scoped(
        db.session.query(
            day_expr.label("day"),
            func.coalesce(func.sum(Sale.grand_total_cents), 0).label("revenue"),
        )
    ).group_by("day").order_by("day").all()

    hour_expr = func.strftime("%H", Sale.created_at)
    by_hour = scoped(
        db.session.query(
            hour_expr.label("hour"),
            func.coalesce(func.sum(Sale.grand_total_cents), 0).label("revenue"),
        )
    ).group_by("hour").order_by("hour").all()

    line_revenue = func.coalesce(func.sum(SaleLine.line_total_cents), 0).label("revenue")

    top_products = scoped(
        db.session.query(SaleLine.product_name.label("name"), line_revenue)
        .join(Sale, SaleLine.sale_id == Sale.id)
    ).group_by(SaleLine.product_name).order_by(line_revenue.desc(), SaleLine.product_name.asc()).limit(
        TOP_PRODUCTS_LIMIT
    ).all()

    by_category = scoped(
        db.session.query(ProductCategory.name.label("name"), line_revenue)
        .select_from(SaleLine)
        .join(Sale, SaleLine.sale_id == Sale.id)
        .join(Product, SaleLine.product_id == Product.id)
        .join(ProductCategory, Product.category_id == ProductCategory.id)
    ).group_by(ProductCategory.id, ProductCategory.name).order_by(line_revenue.desc()).all()

    return {
        "range": {
            "start": to_utc_z(start_dt) if start_dt else None,
            "end": to_utc_z(end_dt) if end_dt else None,
        },
        "summary": {
            "total_revenue_cents": int(revenue or 0),
            "total_sales": int(sales_count or 0),
            "total_products": int(total_products or 0),
            "total_customers": int(total_customers or 0),
        },
        "salesOverTime": [
            {"date": row.day, "revenue_cents": int(row.revenue or 0)} for row in over_time
        ],
        "salesByHour": [
            {"hour": row.hour, "revenue_cents": int(row.revenue or 0)} for row in by_hour
        ],
        "topProducts": [
            {"name": row.name, "revenue_cents": int(row.revenue or 0)} for row in top_products
        ],
        "salesByCategory": [
            {"name": row.name, "revenue_cents": int(row.revenue or 0)} for row in by_category
        ],
    }
