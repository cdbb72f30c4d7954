# Overview: Flask API routes for customers and suppliers; parses input and returns JSON responses.

"""
- /api/customers  VIEW_CUSTOMERS to read, MANAGE_CUSTOMERS to write
- /api/suppliers  MANAGE_SUPPLIERS for everything
"""

from flask import Blueprint, request

from ..services import customer_service
from ..models import Customer, Supplier
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    ConflictError,
    NotFoundError,
)
from ..decorators import require_auth, require_permission

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "address", "tax_number"},
    required_on_create={"name"},
)

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "contact_name", "phone", "email", "address", "tax_number"},
    required_on_create={"name"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api")


def _list_args() -> dict:
    return {
        "page": request.args.get("page", type=int),
        "limit": request.args.get("limit", type=int),
        "search": request.args.get("search"),
    }


def _save(model, policy, partial: bool, fn, *args, success_status: int = 200):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=model, payload=payload, policy=policy, partial=partial)
        obj = fn(*args, patch)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    return obj.to_dict(), success_status


# =============================================================================
# CUSTOMERS
# =============================================================================

@customers_bp.get("/customers")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def list_customers():
    return customer_service.list_customers(**_list_args())


@customers_bp.get("/customers/<int:customer_id>")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def get_customer(customer_id: int):
    try:
        return customer_service.get_customer(customer_id).to_dict()
    except NotFoundError as e:
        return {"error": str(e)}, 404


@customers_bp.post("/customers")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def create_customer():
    return _save(Customer, CUSTOMER_POLICY, False, customer_service.create_customer, success_status=201)


@customers_bp.put("/customers/<int:customer_id>")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def update_customer(customer_id: int):
    return _save(Customer, CUSTOMER_POLICY, True, customer_service.update_customer, customer_id)


@customers_bp.delete("/customers/<int:customer_id>")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def delete_customer(customer_id: int):
    try:
        customer_service.delete_customer(customer_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    return {"ok": True}, 200


# =============================================================================
# SUPPLIERS
# =============================================================================

@customers_bp.get("/suppliers")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def list_suppliers():
    return customer_service.list_suppliers(**_list_args())


@customers_bp.get("/suppliers/<int:supplier_id>")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def get_supplier(supplier_id: int):
    try:
        return customer_service.get_supplier(supplier_id).to_dict()
    except NotFoundError as e:
        return {"error": str(e)}, 404


@customers_bp.post("/suppliers")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def create_supplier():
    return _save(Supplier, SUPPLIER_POLICY, False, customer_service.create_supplier, success_status=201)


@customers_bp.put("/suppliers/<int:supplier_id>")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def update_supplier(supplier_id: int):
    return _save(Supplier, SUPPLIER_POLICY, True, customer_service.update_supplier, supplier_id)


@customers_bp.delete("/suppliers/<int:supplier_id>")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def delete_supplier(supplier_id: int):
    try:
        customer_service.delete_supplier(supplier_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"ok": True}, 200
