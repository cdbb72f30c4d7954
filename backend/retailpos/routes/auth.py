# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/retailpos/routes/auth.py
"""
Authentication API routes

- POST /api/auth/login   -> bearer token
- POST /api/auth/logout  -> revoke token (optionally closing the open cash session)
- GET  /api/auth/me      -> current user, permissions, open cash session
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services import cash_session_service
from ..services.auth_service import InactiveUserError
from ..services.cash_session_service import CashSessionError
from ..decorators import require_auth
from ..permissions import get_role_permissions


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Returns user info and session token on success.
    Token must be included in Authorization header for protected routes.
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    password = data.get("password")

    if not isinstance(username, str) or not isinstance(password, str) or not username or not password:
        return jsonify({"error": "username and password required"}), 400

    try:
        user = auth_service.authenticate(username, password)
    except InactiveUserError:
        current_app.logger.warning("Login refused for inactive user %s", username)
        return jsonify({"error": "Account is deactivated"}), 403

    if not user:
        current_app.logger.warning("Failed login for %s from %s", username, request.remote_addr)
        return jsonify({"error": "Invalid credentials"}), 401

    try:
        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("User logged in: %s", user.username)
    return jsonify({
        "user": user.to_dict(),
        "permissions": sorted(get_role_permissions(user.role)),
        "token": token,
        "session": session.to_dict(),
        "message": "Login successful",
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """
    Revoke the current token.

    Body (optional): {"close_cash_session": true, "actual_cash_balance_cents": int}
    closes the caller's open cash session before logging out.
    """
    data = request.get_json(silent=True) or {}
    closed_session = None

    if data.get("close_cash_session"):
        open_session = cash_session_service.get_open_session(g.current_user.id)
        if open_session:
            try:
                closed_session = cash_session_service.close_session(
                    open_session.id,
                    data.get("actual_cash_balance_cents"),
                    data.get("notes"),
                    current_user_id=g.current_user.id,
                )
            except (CashSessionError, ValueError) as e:
                return jsonify({"error": str(e)}), 400

    session_service.revoke_session(g.auth_token, reason="User logout")
    current_app.logger.info("User logged out: %s", g.current_user.username)

    return jsonify({
        "message": "Logout successful",
        "closed_cash_session": closed_session.to_dict() if closed_session else None,
    }), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    open_session = cash_session_service.get_open_session(user.id)
    return jsonify({
        "user": user.to_dict(),
        "permissions": sorted(get_role_permissions(user.role)),
        "cash_session": open_session.to_dict() if open_session else None,
    }), 200
