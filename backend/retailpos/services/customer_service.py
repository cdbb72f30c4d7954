# Overview: Service-layer operations for customers and suppliers; encapsulates business logic and database work.

"""
Customer and Supplier Service

Customers may be attached to sales (invoices); a customer referenced by any
sale cannot be deleted. Suppliers are plain contact records.

Both take patch dicts already normalized by validation.validate_payload.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Customer, Sale, Supplier
from ..validation import ConflictError, NotFoundError
from .pagination import paginate, empty_page


def _apply_patch(obj, patch: dict) -> None:
    for k, v in patch.items():
        setattr(obj, k, v)


def _list(model, search_columns, page, limit, search) -> dict:
    try:
        query = db.session.query(model)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(db.or_(*[col.ilike(pattern) for col in search_columns]))
        query = query.order_by(model.name.asc(), model.id.asc())
        return paginate(query, page, limit)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("%s listing failed; returning empty page", model.__name__, exc_info=True)
        return empty_page(page, limit)


# =============================================================================
# CUSTOMERS
# =============================================================================

def list_customers(page: int | None = None, limit: int | None = None, search: str | None = None) -> dict:
    return _list(Customer, (Customer.name, Customer.phone, Customer.email), page, limit, search)


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError("Customer not found")
    return customer


def create_customer(patch: dict) -> Customer:
    customer = Customer()
    _apply_patch(customer, patch)
    db.session.add(customer)
    db.session.commit()
    return customer


def update_customer(customer_id: int, patch: dict) -> Customer:
    customer = get_customer(customer_id)
    _apply_patch(customer, patch)
    db.session.commit()
    return customer


def delete_customer(customer_id: int) -> None:
    """
    Raises:
        NotFoundError: unknown id
        ConflictError: sales reference the customer
    """
    customer = get_customer(customer_id)

    referenced = db.session.query(Sale.id).filter(Sale.customer_id == customer.id).first()
    if referenced:
        current_app.logger.warning("Refused to delete customer %s: sales reference it", customer.id)
        raise ConflictError("Cannot delete customer with associated sales")

    db.session.delete(customer)
    db.session.commit()


# =============================================================================
# SUPPLIERS
# =============================================================================

def list_suppliers(page: int | None = None, limit: int | None = None, search: str | None = None) -> dict:
    return _list(Supplier, (Supplier.name, Supplier.contact_name, Supplier.phone, Supplier.email), page, limit, search)


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if not supplier:
        raise NotFoundError("Supplier not found")
    return supplier


def create_supplier(patch: dict) -> Supplier:
    supplier = Supplier()
    _apply_patch(supplier, patch)
    db.session.add(supplier)
    db.session.commit()
    return supplier


def update_supplier(supplier_id: int, patch: dict) -> Supplier:
    supplier = get_supplier(supplier_id)
    _apply_patch(supplier, patch)
    db.session.commit()
    return supplier


def delete_supplier(supplier_id: int) -> None:
    supplier = get_supplier(supplier_id)
    db.session.delete(supplier)
    db.session.commit()
