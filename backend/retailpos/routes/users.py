# Overview: Flask API routes for user account management; parses input and returns JSON responses.

"""
User management routes (admin).

- GET    /api/users            VIEW_USERS
- GET    /api/users/<id>       VIEW_USERS
- POST   /api/users            MANAGE_USERS
- PATCH  /api/users/<id>       MANAGE_USERS
- DELETE /api/users/<id>       MANAGE_USERS (soft delete: deactivate)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import auth_service
from ..services.auth_service import PasswordValidationError
from ..validation import ValidationError, ConflictError, NotFoundError
from ..decorators import require_auth, require_permission

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_permission("VIEW_USERS")
def list_users():
    """
    Query params:
    - include_inactive: bool (default true)
    """
    include_inactive = request.args.get("include_inactive", "true").lower() != "false"
    users = auth_service.list_users(include_inactive=include_inactive)
    return jsonify({"users": [u.to_dict() for u in users], "count": len(users)})


@users_bp.get("/<int:user_id>")
@require_auth
@require_permission("VIEW_USERS")
def get_user(user_id: int):
    try:
        user = auth_service.get_user(user_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"user": user.to_dict()})


@users_bp.post("")
@require_auth
@require_permission("MANAGE_USERS")
def create_user():
    """
    Request body:
    - username: str (required)
    - password: str (required)
    - name: str
    - email: str
    - role: admin | sub_admin | cashier (default cashier)
    """
    data = request.get_json(silent=True) or {}
    if not data.get("username") or not data.get("password"):
        return jsonify({"error": "username and password required"}), 400

    try:
        user = auth_service.create_user(
            username=data.get("username"),
            password=data.get("password"),
            name=data.get("name"),
            role=data.get("role"),
            email=data.get("email"),
        )
    except (PasswordValidationError, ValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"user": user.to_dict(), "message": "User created successfully"}), 201


@users_bp.patch("/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def update_user(user_id: int):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        user = auth_service.update_user(user_id, data, acting_user_id=g.current_user.id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (PasswordValidationError, ValidationError) as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"user": user.to_dict()})


@users_bp.delete("/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def deactivate_user(user_id: int):
    try:
        user = auth_service.deactivate_user(user_id, acting_user_id=g.current_user.id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"user": user.to_dict(), "message": "User deactivated"})
