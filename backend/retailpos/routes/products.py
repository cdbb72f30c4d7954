# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/retailpos/routes/products.py
"""
Product management routes.

SECURITY: All routes require authentication.
- Read operations require VIEW_PRODUCTS permission
- Write operations require MANAGE_PRODUCTS permission
"""
from flask import Blueprint, request

from ..services import products_service
from ..models import Product
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    ConflictError,
    NotFoundError,
)
from ..decorators import require_auth, require_permission

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
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
    },
    required_on_create={"barcode", "name", "sale_price_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_permission("VIEW_PRODUCTS")
def list_products():
    """
    Query params:
    - page, limit: pagination (default 20, max 100)
    - search: substring of name or barcode
    - category_id: int
    - active: true | false
    """
    return products_service.list_products(
        page=request.args.get("page", type=int),
        limit=request.args.get("limit", type=int),
        search=request.args.get("search"),
        category_id=request.args.get("category_id"),
        active=request.args.get("active"),
    )


@products_bp.get("/barcode/<string:barcode>")
@require_auth
@require_permission("VIEW_PRODUCTS")
def get_by_barcode(barcode: str):
    """POS scan lookup (active products only)."""
    try:
        return products_service.get_product_by_barcode(barcode).to_dict()
    except NotFoundError as e:
        return {"error": str(e)}, 404


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("VIEW_PRODUCTS")
def get_product(product_id: int):
    try:
        return products_service.get_product(product_id).to_dict()
    except NotFoundError as e:
        return {"error": str(e)}, 404


@products_bp.post("")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        created = products_service.create_product(patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409

    return created, 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        updated = products_service.update_product(product_id=product_id, patch=patch)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409

    return updated, 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def delete_product_route(product_id: int):
    """Soft delete (is_active=False)."""
    try:
        product = products_service.delete_product(product_id=product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404

    return {"ok": True, "product": product}, 200
