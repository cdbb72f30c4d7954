from __future__ import annotations

from ..extensions import db
from retailpos.numbers import qty_to_json
from retailpos.time_utils import to_utc_z

SALE_TYPE_POS_RECEIPT = "pos_receipt"
SALE_TYPE_INVOICE = "invoice"
VALID_SALE_TYPES = (SALE_TYPE_POS_RECEIPT, SALE_TYPE_INVOICE)

SALE_STATUS_DRAFT = "draft"
SALE_STATUS_COMPLETED = "completed"
SALE_STATUS_CANCELLED = "cancelled"

PAYMENT_METHOD_CASH = "cash"
VALID_PAYMENT_METHODS = (PAYMENT_METHOD_CASH, "card", "transfer", "check", "store_credit")


class Sale(db.Model):
    """
    Sale document header.

    MONEY: all amounts in cents.
    grand_total = subtotal - discount_total + tax_total
    subtotal = sum(line.line_total)
    change_due = paid_total - grand_total (cash over-tender)

    Lines and payments are owned by the sale and created with it in one
    transaction (services/sales_service.complete_sale); they are never edited.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("document_number", name="uq_sales_document_number"),
        # Composite index for status/date scoped reporting
        db.Index("ix_sales_status_created", "status", "created_at"),
        db.Index("ix_sales_user_created", "created_by_user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable document number (e.g., "WS-20260101120000-A1B2C3")
    document_number = db.Column(db.String(64), nullable=False)
    type = db.Column(db.String(16), nullable=False, default=SALE_TYPE_POS_RECEIPT)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    cash_session_id = db.Column(db.Integer, db.ForeignKey("cash_sessions.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_DRAFT, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_total_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_total_cents = db.Column(db.Integer, nullable=False, default=0)
    grand_total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_total_cents = db.Column(db.Integer, nullable=False, default=0)
    change_due_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # Cancel audit trail
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    cash_session = db.relationship("CashSession", backref=db.backref("sales", lazy=True))
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    lines = db.relationship(
        "SaleLine",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleLine.id",
        lazy=True,
    )
    payments = db.relationship(
        "SalePayment",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SalePayment.id",
        lazy=True,
    )

    def to_dict(self, include_children: bool = False) -> dict:
        data = {
            "id": self.id,
            "document_number": self.document_number,
            "type": self.type,
            "customer_id": self.customer_id,
            "cash_session_id": self.cash_session_id,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "discount_total_cents": self.discount_total_cents,
            "tax_total_cents": self.tax_total_cents,
            "grand_total_cents": self.grand_total_cents,
            "paid_total_cents": self.paid_total_cents,
            "change_due_cents": self.change_due_cents,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "created_by_user_id": self.created_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancel_reason": self.cancel_reason,
        }
        if include_children:
            data["lines"] = [line.to_dict() for line in self.lines]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class SaleLine(db.Model):
    """
    Individual line item on a sale.

    product_id is NULL for custom (ad-hoc) items. product_name is a snapshot
    taken at sale time, independent of later product renames.
    line_total = qty * unit_price - discount
    """
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    qty = db.Column(db.Numeric(12, 3), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    # Basis points: 1000 = 10%
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", back_populates="lines")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "qty": qty_to_json(self.qty),
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "line_total_cents": self.line_total_cents,
        }


class SalePayment(db.Model):
    """
    Payment tendered for a sale.

    TENDER METHODS: cash, card, transfer, check, store_credit.
    One or more per sale (split payments); the amounts sum to sale.paid_total.
    """
    __tablename__ = "sale_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    method = db.Column(db.String(32), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # Reference info (card auth code, transfer id, etc.)
    reference = db.Column(db.String(128), nullable=True)

    sale = db.relationship("Sale", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "paid_at": to_utc_z(self.paid_at),
            "reference": self.reference,
        }
