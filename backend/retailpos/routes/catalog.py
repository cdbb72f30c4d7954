# Overview: Flask API routes for product categories and units; parses input and returns JSON responses.

"""
Catalog reference data.

- /api/categories  list (with product_count), create, update, delete
- /api/units       list (with product_count), create, update, delete

Delete is refused (409) while products reference the row.
"""

from flask import Blueprint, request

from ..services import catalog_service
from ..validation import ValidationError, ConflictError, NotFoundError
from ..decorators import require_auth, require_permission

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


def _handle(fn, *args, success_status: int = 200):
    try:
        result = fn(*args)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    if result is None:
        return {"ok": True}, success_status
    return result.to_dict(), success_status


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# =============================================================================
# CATEGORIES
# =============================================================================

@catalog_bp.get("/categories")
@require_auth
@require_permission("VIEW_PRODUCTS")
def list_categories():
    return {"data": catalog_service.list_categories()}


@catalog_bp.post("/categories")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_category():
    return _handle(catalog_service.create_category, _json_body(), success_status=201)


@catalog_bp.put("/categories/<int:category_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def update_category(category_id: int):
    return _handle(catalog_service.update_category, category_id, _json_body())


@catalog_bp.delete("/categories/<int:category_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def delete_category(category_id: int):
    return _handle(catalog_service.delete_category, category_id)


# =============================================================================
# UNITS
# =============================================================================

@catalog_bp.get("/units")
@require_auth
@require_permission("VIEW_PRODUCTS")
def list_units():
    return {"data": catalog_service.list_units()}


@catalog_bp.post("/units")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_unit():
    return _handle(catalog_service.create_unit, _json_body(), success_status=201)


@catalog_bp.put("/units/<int:unit_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def update_unit(unit_id: int):
    return _handle(catalog_service.update_unit, unit_id, _json_body())


@catalog_bp.delete("/units/<int:unit_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def delete_unit(unit_id: int):
    return _handle(catalog_service.delete_unit, unit_id)
