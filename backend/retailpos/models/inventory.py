from __future__ import annotations

from ..extensions import db
from retailpos.numbers import qty_to_json
from retailpos.time_utils import to_utc_z


class ProductCategory(db.Model):
    """
    Product grouping used for catalog browsing and the category sales breakdown.

    Cannot be deleted while any Product references it.
    """
    __tablename__ = "product_categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=True, index=True)

    parent = db.relationship("ProductCategory", remote_side=[id], backref=db.backref("children", lazy=True))

    def __repr__(self) -> str:
        return f"<ProductCategory id={self.id} name={self.name!r}>"

    def to_dict(self, product_count: int | None = None) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "parent_id": self.parent_id,
        }
        if product_count is not None:
            data["product_count"] = product_count
        return data


class ProductUnit(db.Model):
    """Unit of measure (piece, kg, can...). Cannot be deleted while referenced."""
    __tablename__ = "product_units"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    short_code = db.Column(db.String(16), nullable=False)

    def __repr__(self) -> str:
        return f"<ProductUnit id={self.id} short_code={self.short_code!r}>"

    def to_dict(self, product_count: int | None = None) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "short_code": self.short_code,
        }
        if product_count is not None:
            data["product_count"] = product_count
        return data


class Product(db.Model):
    """
    Product master data.

    BARCODE: unique across the catalog, required, used for POS scanning.
    SKU is an optional internal code.

    STOCK: stock_quantity is only mutated by sale completion/cancellation
    (relative UPDATE, see services/concurrency.py) or a manual edit.
    It may go negative unless POS_ALLOW_NEGATIVE_STOCK is disabled.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=True)
    barcode = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)

    category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=True, index=True)
    unit_id = db.Column(db.Integer, db.ForeignKey("product_units.id"), nullable=True, index=True)

    stock_quantity = db.Column(db.Numeric(12, 3), nullable=False, default=0)

    # Authoritative storage in cents (frontend may only format for display)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    sale_price_cents = db.Column(db.Integer, nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_purchase_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("ProductCategory", backref=db.backref("products", lazy=True))
    unit = db.relationship("ProductUnit", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} barcode={self.barcode!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "category_id": self.category_id,
            "unit_id": self.unit_id,
            "stock_quantity": qty_to_json(self.stock_quantity),
            "cost_price_cents": self.cost_price_cents,
            "sale_price_cents": self.sale_price_cents,
            "is_active": self.is_active,
            "last_purchase_at": to_utc_z(self.last_purchase_at) if self.last_purchase_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Supplier(db.Model):
    """Supplier contact record."""
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    contact_name = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    tax_number = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_name": self.contact_name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "tax_number": self.tax_number,
            "created_at": to_utc_z(self.created_at),
        }
