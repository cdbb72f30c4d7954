# Overview: Shared page/limit handling for list endpoints.

from __future__ import annotations

import math

from flask import current_app


def normalize_page(page: int | None, limit: int | None) -> tuple[int, int]:
    """page floored at 1; limit defaults to DEFAULT_PAGE_LIMIT and is capped at MAX_PAGE_LIMIT."""
    default_limit = current_app.config["DEFAULT_PAGE_LIMIT"]
    max_limit = current_app.config["MAX_PAGE_LIMIT"]

    page = max(page or 1, 1)
    if not limit or limit < 1:
        limit = default_limit
    return page, min(limit, max_limit)


def page_meta(total: int, page: int, limit: int) -> dict:
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }


def empty_page(page: int | None = None, limit: int | None = None) -> dict:
    page, limit = normalize_page(page, limit)
    return {"data": [], "pagination": page_meta(0, page, limit)}


def paginate(query, page: int | None, limit: int | None, serialize=None) -> dict:
    """
    Run a count + offset/limit page of an ORM query.

    Returns {"data": [...], "pagination": {total, page, limit, totalPages}}.
    """
    page, limit = normalize_page(page, limit)
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    serialize = serialize or (lambda row: row.to_dict())
    return {
        "data": [serialize(row) for row in rows],
        "pagination": page_meta(total, page, limit),
    }
