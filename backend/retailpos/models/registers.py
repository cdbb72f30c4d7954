from __future__ import annotations

from ..extensions import db
from retailpos.time_utils import to_utc_z

SESSION_STATUS_OPEN = "open"
SESSION_STATUS_CLOSED = "closed"


class CashSession(db.Model):
    """
    Cashier cash-drawer session (shift).

    LIFECYCLE:
    - open: shift is active, sales are tagged with this session
    - closed: shift ended, expected cash computed, difference recorded

    At most one open session per user, enforced by the partial unique index
    below as well as by services/cash_session_service.open_session.
    """
    __tablename__ = "cash_sessions"
    __table_args__ = (
        db.Index(
            "uq_cash_sessions_user_open",
            "user_id",
            unique=True,
            sqlite_where=db.text("status = 'open'"),
            postgresql_where=db.text("status = 'open'"),
        ),
        db.Index("ix_cash_sessions_user_start", "user_id", "start_time"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=SESSION_STATUS_OPEN, index=True)

    start_time = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)

    # Cash tracking (all amounts in cents)
    opening_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    expected_cash_balance_cents = db.Column(db.Integer, nullable=True)  # opening + cash taken - change given
    actual_cash_balance_cents = db.Column(db.Integer, nullable=True)  # counted at close
    difference_cents = db.Column(db.Integer, nullable=True)  # actual - expected

    notes = db.Column(db.Text, nullable=True)

    user = db.relationship("User", backref=db.backref("cash_sessions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time) if self.end_time else None,
            "opening_balance_cents": self.opening_balance_cents,
            "expected_cash_balance_cents": self.expected_cash_balance_cents,
            "actual_cash_balance_cents": self.actual_cash_balance_cents,
            "difference_cents": self.difference_cents,
            "notes": self.notes,
        }
