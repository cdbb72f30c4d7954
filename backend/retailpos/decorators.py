# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services import session_service
from .permissions import has_permission


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def require_auth(f):
    """
    401 unless the request carries a live `Authorization: Bearer <token>`.

    On success the view sees g.current_user, g.auth_session (the token row)
    and g.auth_token (plaintext, used by logout).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.auth_session = context.session
        g.auth_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """Require a specific permission. Denials are logged at warning level."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            user = g.current_user
            if not has_permission(user, permission_code):
                current_app.logger.warning(
                    "Permission denied: user=%s role=%s permission=%s path=%s",
                    user.username, user.role, permission_code, request.path,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": permission_code,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
