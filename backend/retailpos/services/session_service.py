# Overview: Bearer token issue, validation and revocation.

"""
Auth tokens.

The client holds a random 64-hex token; only its SHA-256 digest is stored.
A token stops working when any of these is true:
- it is older than SESSION_ABSOLUTE_TIMEOUT_HOURS
- it was unused for longer than SESSION_IDLE_TIMEOUT_MINUTES (revoked on sight)
- its user was deactivated (revoked on sight)
- it was revoked (logout, password change, deactivation)
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from retailpos.time_utils import utcnow

TOKEN_BYTES = 32


@dataclass
class SessionContext:
    user: User
    session: SessionToken


def generate_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _live_row(token: str) -> SessionToken | None:
    return (
        db.session.query(SessionToken)
        .filter(SessionToken.token_hash == hash_token(token), SessionToken.is_revoked.is_(False))
        .first()
    )


def _mark_revoked(row: SessionToken, reason: str, when=None) -> None:
    row.is_revoked = True
    row.revoked_at = when or utcnow()
    row.revoked_reason = reason


def create_session(user_id: int, user_agent: str | None = None, ip_address: str | None = None):
    """Issue a token for user_id. Returns (row, plaintext); the plaintext is never persisted."""
    if db.session.get(User, user_id) is None:
        raise ValueError("User not found")

    token = generate_token()
    issued = utcnow()
    ttl = timedelta(hours=current_app.config["SESSION_ABSOLUTE_TIMEOUT_HOURS"])

    row = SessionToken(
        user_id=user_id,
        token_hash=hash_token(token),
        created_at=issued,
        last_used_at=issued,
        expires_at=issued + ttl,
        user_agent=(user_agent or "")[:255] or None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(row)
    db.session.commit()
    return row, token


def validate_session(token: str) -> SessionContext | None:
    """Resolve a token to its user, refreshing last_used_at; None when it no longer authenticates."""
    row = _live_row(token)
    if row is None:
        return None

    now = utcnow()
    if now > row.expires_at:
        return None

    idle_limit = timedelta(minutes=current_app.config["SESSION_IDLE_TIMEOUT_MINUTES"])
    reason = None
    if now - row.last_used_at > idle_limit:
        reason = "Idle timeout"
    elif row.user is None or not row.user.is_active:
        reason = "User account deactivated"

    if reason:
        _mark_revoked(row, reason, now)
        db.session.commit()
        current_app.logger.info("Token %s revoked: %s", row.id, reason)
        return None

    row.last_used_at = now
    db.session.commit()
    return SessionContext(user=row.user, session=row)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    row = _live_row(token)
    if row is None:
        return False
    _mark_revoked(row, reason)
    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions", commit: bool = True) -> int:
    """Revoke every live token of a user. commit=False leaves the caller's transaction open."""
    now = utcnow()
    rows = (
        db.session.query(SessionToken)
        .filter(SessionToken.user_id == user_id, SessionToken.is_revoked.is_(False))
        .all()
    )
    for row in rows:
        _mark_revoked(row, reason, now)

    if commit:
        db.session.commit()
    return len(rows)
