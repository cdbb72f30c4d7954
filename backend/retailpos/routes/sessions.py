# Overview: Flask API routes for cash sessions; parses input and returns JSON responses.

"""
Cash session routes.

- POST /api/sessions/open           open (idempotent) the caller's session
- GET  /api/sessions/current        caller's open session or null
- GET  /api/sessions                list (own sessions unless MANAGE_ANY_SESSION)
- GET  /api/sessions/<id>           one session
- POST /api/sessions/<id>/close     close with counted cash
- GET  /api/sessions/<id>/stats     reconciliation stats
"""

from flask import Blueprint, request, jsonify, g

from ..services import cash_session_service
from ..services.cash_session_service import CashSessionError
from ..validation import ValidationError, NotFoundError
from ..decorators import require_auth, require_permission
from ..permissions import has_permission

sessions_bp = Blueprint("sessions", __name__, url_prefix="/api/sessions")


def _load_visible_session(session_id: int, elevated_permission: str = "MANAGE_ANY_SESSION"):
    session = cash_session_service.get_session(session_id)
    if session.user_id != g.current_user.id and not has_permission(g.current_user, elevated_permission):
        raise NotFoundError("Cash session not found")
    return session


@sessions_bp.post("/open")
@require_auth
@require_permission("MANAGE_OWN_SESSION")
def open_session_route():
    data = request.get_json(silent=True) or {}
    try:
        session, created = cash_session_service.open_session(
            g.current_user.id,
            data.get("opening_balance_cents", 0),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CashSessionError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"session": session.to_dict(), "created": created}), 201 if created else 200


@sessions_bp.get("/current")
@require_auth
@require_permission("MANAGE_OWN_SESSION")
def current_session_route():
    session = cash_session_service.get_open_session(g.current_user.id)
    return jsonify({"session": session.to_dict() if session else None})


@sessions_bp.get("")
@require_auth
@require_permission("MANAGE_OWN_SESSION")
def list_sessions_route():
    """Query params: page, limit, user_id, date (start day), status."""
    if has_permission(g.current_user, "MANAGE_ANY_SESSION"):
        user_id = request.args.get("user_id")
    else:
        user_id = g.current_user.id

    return cash_session_service.list_sessions(
        page=request.args.get("page", type=int),
        limit=request.args.get("limit", type=int),
        user_id=user_id,
        date=request.args.get("date"),
        status=request.args.get("status"),
    )


@sessions_bp.get("/<int:session_id>")
@require_auth
@require_permission("MANAGE_OWN_SESSION")
def get_session_route(session_id: int):
    try:
        session = _load_visible_session(session_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"session": session.to_dict()})


@sessions_bp.post("/<int:session_id>/close")
@require_auth
@require_permission("MANAGE_OWN_SESSION")
def close_session_route(session_id: int):
    """Body: {"actual_cash_balance_cents": int?, "notes": str?}"""
    data = request.get_json(silent=True) or {}
    try:
        session = cash_session_service.close_session(
            session_id,
            data.get("actual_cash_balance_cents"),
            data.get("notes"),
            current_user_id=g.current_user.id,
            manager_override=has_permission(g.current_user, "MANAGE_ANY_SESSION"),
        )
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (CashSessionError, ValidationError) as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"session": session.to_dict()})


@sessions_bp.get("/<int:session_id>/stats")
@require_auth
@require_permission("MANAGE_OWN_SESSION")
def session_stats_route(session_id: int):
    try:
        session = _load_visible_session(session_id, "VIEW_SESSION_STATS")
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({
        "session": session.to_dict(),
        "stats": cash_session_service.compute_session_stats(session),
    })
