# Overview: Flask API routes for sales; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import LedgerError
from ..services import sales_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/")
@require_auth
def record_sale_route():
    """
    Record a sale.

    Body: {"items": [{"category_id", "quantity"}], "cash", "online", "slip_url"?}
    """
    try:
        data = request.get_json() or {}
        sale = sales_service.record_sale(
            actor_id=g.current_user.id,
            items=data.get("items"),
            cash=data.get("cash"),
            online=data.get("online"),
            slip_url=data.get("slip_url"),
        )
        return jsonify({"sale": sale.to_dict(), "sale_id": sale.id}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/")
@require_auth
def list_sales_route():
    """Most recent sales, newest first, with creator names."""
    default_limit = current_app.config.get("RECENT_SALES_LIMIT", 50)
    limit = request.args.get("limit", default_limit, type=int)
    limit = max(1, min(limit, 500))
    sales = sales_service.list_recent_sales(limit=limit)
    return jsonify({"sales": [s.to_dict() for s in sales]}), 200


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    sale = sales_service.get_sale(sale_id)
    if not sale:
        return jsonify({"error": "Sale not found", "code": "SALE_NOT_FOUND", "details": {}}), 404
    return jsonify({"sale": sale.to_dict()}), 200
