# backend/retailpos/services/products_service.py
"""
Products Service

Catalog CRUD plus the POS barcode lookup.
- barcode is required and unique across the catalog
- category_id / unit_id must resolve when given
- delete is a soft delete (is_active=False) so sale lines keep their reference
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import Product, ProductCategory, ProductUnit
from ..validation import ConflictError, NotFoundError, ValidationError
from .pagination import paginate, empty_page

PRODUCT_MUTABLE_FIELDS = {
    "sku",
    "barcode",
    "name",
    "category_id",
    "unit_id",
    "stock_quantity",
    "cost_price_cents",
    "sale_price_cents",
    "is_active",
    "last_purchase_at",
}


def parse_int_filter(value) -> int | None:
    if value is None or str(value).strip() == "":
        return None
    return int(str(value).strip())


def parse_bool_filter(value) -> bool | None:
    if value is None or str(value).strip() == "":
        return None
    s = str(value).strip().lower()
    if s in {"1", "true", "yes"}:
        return True
    if s in {"0", "false", "no"}:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _check_references(patch: dict) -> None:
    category_id = patch.get("category_id")
    if category_id is not None and db.session.get(ProductCategory, category_id) is None:
        raise ValidationError("category_id does not exist")

    unit_id = patch.get("unit_id")
    if unit_id is not None and db.session.get(ProductUnit, unit_id) is None:
        raise ValidationError("unit_id does not exist")


def _check_barcode_unique(barcode: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Product.id).filter(Product.barcode == barcode)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError("Barcode already exists.")


def list_products(
    page: int | None = None,
    limit: int | None = None,
    search: str | None = None,
    category_id=None,
    active=None,
) -> dict:
    """
    Paginated product listing.

    search: case-insensitive substring over name and barcode.
    Unparseable filters or query failures degrade to an empty page.
    """
    try:
        category_id = parse_int_filter(category_id)
        active = parse_bool_filter(active)

        query = db.session.query(Product)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(db.or_(Product.name.ilike(pattern), Product.barcode.ilike(pattern)))
        if category_id is not None:
            query = query.filter(Product.category_id == category_id)
        if active is not None:
            query = query.filter(Product.is_active.is_(active))

        query = query.order_by(Product.name.asc(), Product.id.asc())
        return paginate(query, page, limit)
    except (ValueError, SQLAlchemyError):
        db.session.rollback()
        current_app.logger.warning("Product listing failed; returning empty page", exc_info=True)
        return empty_page(page, limit)


def get_product(product_id: int) -> Product:
    p = db.session.get(Product, product_id)
    if not p:
        raise NotFoundError("Product not found")
    return p


def get_product_by_barcode(barcode: str) -> Product:
    """Exact barcode match (POS scan). Inactive products are not sellable and not returned."""
    barcode = (barcode or "").strip()
    p = (
        db.session.query(Product)
        .filter(Product.barcode == barcode, Product.is_active.is_(True))
        .first()
    )
    if not p:
        raise NotFoundError("Product not found")
    return p


def create_product(*, patch: dict) -> dict:
    """
    Create product using a validated patch dict.

    Raises:
        ValidationError: unknown category/unit
        ConflictError: barcode already exists
    """
    _check_references(patch)
    _check_barcode_unique(patch["barcode"])

    p = Product()
    apply_product_patch(p, patch)

    db.session.add(p)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Barcode already exists.")

    current_app.logger.info("Product created: id=%s barcode=%s", p.id, p.barcode)
    return p.to_dict()


def update_product(*, product_id: int, patch: dict) -> dict:
    """
    Update a product.

    Raises:
        NotFoundError: unknown product
        ConflictError: new barcode already exists
    """
    p = get_product(product_id)

    _check_references(patch)
    if "barcode" in patch and patch["barcode"] != p.barcode:
        _check_barcode_unique(patch["barcode"], exclude_id=p.id)

    apply_product_patch(p, patch)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Barcode already exists.")
    return p.to_dict()


def delete_product(*, product_id: int) -> dict:
    """
    Soft-delete a product: preserve IDs and historical references.
    """
    p = get_product(product_id)

    if p.is_active:
        p.is_active = False
        db.session.commit()
        current_app.logger.info("Product deactivated: id=%s barcode=%s", p.id, p.barcode)

    return p.to_dict()
