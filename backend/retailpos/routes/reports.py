# Overview: Flask API routes for reports operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify

from ..decorators import require_auth, require_permission
from ..services import cash_session_service
from ..services.reporting_service import dashboard
from ..validation import ValidationError

reports_bp = Blueprint("reports", __name__, url_prefix="/api")


@reports_bp.get("/stats/dashboard")
@require_auth
@require_permission("VIEW_DASHBOARD")
def dashboard_route():
    """Query params: start, end (YYYY-MM-DD or ISO-8601); a bare end date covers the whole day."""
    try:
        data = dashboard(
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(data)


@reports_bp.get("/reports/sessions")
@require_auth
@require_permission("VIEW_SESSION_STATS")
def sessions_report_route():
    """Sessions newest first, each with the user's name and its stats. Filters: user_id, date."""
    return cash_session_service.list_sessions(
        page=request.args.get("page", type=int),
        limit=request.args.get("limit", type=int),
        user_id=request.args.get("user_id"),
        date=request.args.get("date"),
        serialize=cash_session_service.session_report_row,
    )
