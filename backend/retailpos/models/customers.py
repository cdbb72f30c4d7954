from __future__ import annotations

from ..extensions import db
from retailpos.time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer contact record.

    Optionally referenced by Sale; a sale without a customer is a walk-in sale.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    tax_number = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "tax_number": self.tax_number,
            "created_at": to_utc_z(self.created_at),
        }
