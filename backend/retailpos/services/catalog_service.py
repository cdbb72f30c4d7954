# Overview: Service-layer operations for product categories and units of measure.

"""
Categories and units share the same lifecycle:
- list with a live product_count (LEFT JOIN + COUNT over products)
- create / update
- delete only while no product references the row
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Product, ProductCategory, ProductUnit
from ..validation import ConflictError, NotFoundError, ValidationError


def _clean_name(value, field: str, max_len: int) -> str:
    name = str(value).strip() if value is not None else ""
    if not name:
        raise ValidationError(f"{field} is required")
    if len(name) > max_len:
        raise ValidationError(f"{field} exceeds max length {max_len}")
    return name


# =============================================================================
# CATEGORIES
# =============================================================================

def list_categories() -> list[dict]:
    rows = (
        db.session.query(ProductCategory, func.count(Product.id))
        .outerjoin(Product, Product.category_id == ProductCategory.id)
        .group_by(ProductCategory.id)
        .order_by(ProductCategory.name.asc())
        .all()
    )
    return [category.to_dict(product_count=count) for category, count in rows]


def get_category(category_id: int) -> ProductCategory:
    category = db.session.get(ProductCategory, category_id)
    if not category:
        raise NotFoundError("Category not found")
    return category


def _check_parent(category_id: int | None, parent_id) -> int | None:
    if parent_id is None:
        return None
    if not isinstance(parent_id, int) or isinstance(parent_id, bool):
        raise ValidationError("parent_id must be an integer")
    if category_id is not None and parent_id == category_id:
        raise ValidationError("A category cannot be its own parent")
    if db.session.get(ProductCategory, parent_id) is None:
        raise ValidationError("parent_id does not exist")
    return parent_id


def create_category(data: dict) -> ProductCategory:
    category = ProductCategory(
        name=_clean_name(data.get("name"), "name", 128),
        description=(data.get("description") or None),
        parent_id=_check_parent(None, data.get("parent_id")),
    )
    db.session.add(category)
    db.session.commit()
    return category


def update_category(category_id: int, data: dict) -> ProductCategory:
    category = get_category(category_id)
    if "name" in data:
        category.name = _clean_name(data.get("name"), "name", 128)
    if "description" in data:
        category.description = data.get("description") or None
    if "parent_id" in data:
        category.parent_id = _check_parent(category.id, data.get("parent_id"))
    db.session.commit()
    return category


def delete_category(category_id: int) -> None:
    """
    Raises:
        NotFoundError: unknown id
        ConflictError: products still reference the category
    """
    category = get_category(category_id)

    in_use = db.session.query(Product.id).filter(Product.category_id == category.id).first()
    if in_use:
        current_app.logger.warning("Refused to delete category %s: products reference it", category.id)
        raise ConflictError("Cannot delete category with associated products")

    name = category.name
    # Children fall back to top level
    db.session.query(ProductCategory).filter(ProductCategory.parent_id == category.id).update(
        {ProductCategory.parent_id: None}, synchronize_session=False
    )
    db.session.delete(category)
    db.session.commit()
    current_app.logger.info("Category deleted: id=%s name=%s", category_id, name)


# =============================================================================
# UNITS
# =============================================================================

def list_units() -> list[dict]:
    rows = (
        db.session.query(ProductUnit, func.count(Product.id))
        .outerjoin(Product, Product.unit_id == ProductUnit.id)
        .group_by(ProductUnit.id)
        .order_by(ProductUnit.name.asc())
        .all()
    )
    return [unit.to_dict(product_count=count) for unit, count in rows]


def get_unit(unit_id: int) -> ProductUnit:
    unit = db.session.get(ProductUnit, unit_id)
    if not unit:
        raise NotFoundError("Unit not found")
    return unit


def create_unit(data: dict) -> ProductUnit:
    unit = ProductUnit(
        name=_clean_name(data.get("name"), "name", 64),
        short_code=_clean_name(data.get("short_code"), "short_code", 16),
    )
    db.session.add(unit)
    db.session.commit()
    return unit


def update_unit(unit_id: int, data: dict) -> ProductUnit:
    unit = get_unit(unit_id)
    if "name" in data:
        unit.name = _clean_name(data.get("name"), "name", 64)
    if "short_code" in data:
        unit.short_code = _clean_name(data.get("short_code"), "short_code", 16)
    db.session.commit()
    return unit


def delete_unit(unit_id: int) -> None:
    unit = get_unit(unit_id)

    in_use = db.session.query(Product.id).filter(Product.unit_id == unit.id).first()
    if in_use:
        current_app.logger.warning("Refused to delete unit %s: products reference it", unit.id)
        raise ConflictError("Cannot delete unit with associated products")

    name = unit.name
    db.session.delete(unit)
    db.session.commit()
    current_app.logger.info("Unit deleted: id=%s name=%s", unit_id, name)
