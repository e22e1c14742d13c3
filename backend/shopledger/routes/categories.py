# Overview: Flask API routes for price categories (inventory tiers).

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import LedgerError, ValidationError
from ..services import ledger_service
from ..validation import parse_int


categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("/")
@require_auth
def list_categories_route():
    """Categories ordered by price ascending."""
    categories = ledger_service.list_categories()
    return jsonify({"categories": [c.to_dict() for c in categories]}), 200


@categories_bp.post("/")
@require_auth
def create_category_route():
    try:
        data = request.get_json() or {}
        price = parse_int(data.get("price"), "price", minimum=1)
        stock = parse_int(data.get("stock", 0), "stock")
        category = ledger_service.add_category(price, actor_id=g.current_user.id, stock=stock)
        return jsonify({"category": category.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.patch("/<int:category_id>")
@require_auth
def update_category_route(category_id: int):
    """Set stock and/or price. Both fields commit together or not at all."""
    try:
        data = request.get_json() or {}
        if "stock" not in data and "price" not in data:
            raise ValidationError("stock or price required")

        stock = parse_int(data.get("stock"), "stock") if "stock" in data else None
        price = parse_int(data.get("price"), "price", minimum=1) if "price" in data else None
        category = ledger_service.adjust_category(category_id, stock=stock, price=price)

        return jsonify({"category": category.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.delete("/<int:category_id>")
@require_auth
def delete_category_route(category_id: int):
    try:
        ledger_service.remove_category(category_id)
        return jsonify({"success": True}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete category")
        return jsonify({"error": "Internal server error"}), 500
