# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""
Sales routes.

- POST /api/sales                  checkout (CREATE_SALE)
- GET  /api/sales                  history (VIEW_SALES; cashiers see only their own)
- GET  /api/sales/<id>             one sale with lines and payments
- POST /api/sales/<id>/cancel      CANCEL_SALE
- GET  /api/sale-lines             lines of one sale (?sale_id=) or flattened paginated view
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import sales_service
from ..services.sales_service import CheckoutError
from ..validation import ValidationError, ConflictError, NotFoundError
from ..decorators import require_auth, require_permission
from ..permissions import has_permission

sales_bp = Blueprint("sales", __name__, url_prefix="/api")


def _visible_user_id():
    """None when the caller may see every user's sales, else the caller's own id."""
    if has_permission(g.current_user, "VIEW_ALL_SALES"):
        return None
    return g.current_user.id


def _load_visible_sale(sale_id: int):
    sale = sales_service.get_sale(sale_id)
    restricted_to = _visible_user_id()
    if restricted_to is not None and sale.created_by_user_id != restricted_to:
        raise NotFoundError("Sale not found")
    return sale


@sales_bp.post("/sales")
@require_auth
@require_permission("CREATE_SALE")
def complete_sale_route():
    """
    Body: {"sale": {...header}, "lines": [...], "payments": [...]}

    Returns {"success": true, "saleId": id, "sale": {...}} with 201.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        sale = sales_service.complete_sale(
            data.get("sale") or {},
            data.get("lines"),
            data.get("payments"),
            user_id=g.current_user.id,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except CheckoutError:
        return jsonify({"error": "Checkout failed"}), 500
    except Exception:
        current_app.logger.exception("Unexpected checkout failure")
        return jsonify({"error": "Checkout failed"}), 500

    return jsonify({
        "success": True,
        "saleId": sale.id,
        "sale": sale.to_dict(include_children=True),
    }), 201


@sales_bp.get("/sales")
@require_auth
@require_permission("VIEW_SALES")
def list_sales_route():
    """
    Query params: page, limit, search (document number), date (YYYY-MM-DD),
    user_id, status, cash_session_id.
    """
    restricted_to = _visible_user_id()
    user_id = restricted_to if restricted_to is not None else request.args.get("user_id")

    return sales_service.list_sales(
        page=request.args.get("page", type=int),
        limit=request.args.get("limit", type=int),
        search=request.args.get("search"),
        date=request.args.get("date"),
        user_id=user_id,
        status=request.args.get("status"),
        cash_session_id=request.args.get("cash_session_id"),
    )


@sales_bp.get("/sales/<int:sale_id>")
@require_auth
@require_permission("VIEW_SALES")
def get_sale_route(sale_id: int):
    try:
        sale = _load_visible_sale(sale_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"sale": sale.to_dict(include_children=True)})


@sales_bp.post("/sales/<int:sale_id>/cancel")
@require_auth
@require_permission("CANCEL_SALE")
def cancel_sale_route(sale_id: int):
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.cancel_sale(sale_id, user_id=g.current_user.id, reason=data.get("reason"))
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to cancel sale %s", sale_id)
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sale.to_dict(include_children=True)})


@sales_bp.get("/sale-lines")
@require_auth
@require_permission("VIEW_SALES")
def list_sale_lines_route():
    """
    ?sale_id=<id>: every line of that sale.
    Otherwise: paginated flattened view with page, limit, search, date, user_id.
    """
    sale_id = request.args.get("sale_id")
    if sale_id:
        try:
            sale = _load_visible_sale(int(sale_id))
        except ValueError:
            # NotFoundError is a ValueError too; both mean nothing to show
            return jsonify({"error": "Sale not found"}), 404
        return jsonify({"data": [line.to_dict() for line in sales_service.get_sale_lines(sale.id)]})

    restricted_to = _visible_user_id()
    user_id = restricted_to if restricted_to is not None else request.args.get("user_id")

    return sales_service.list_sale_lines(
        page=request.args.get("page", type=int),
        limit=request.args.get("limit", type=int),
        search=request.args.get("search"),
        date=request.args.get("date"),
        user_id=user_id,
    )
