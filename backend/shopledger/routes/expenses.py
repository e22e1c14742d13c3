# Overview: Flask API routes for expenses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import LedgerError
from ..services import expense_service


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.post("/")
@require_auth
def record_expense_route():
    """
    Record an expense.

    Body: {"purpose", "cash_amount", "online_amount", "receipt_url"?}
    Online amounts require the Owner role.
    """
    try:
        data = request.get_json() or {}
        expense = expense_service.record_expense(
            actor_id=g.current_user.id,
            purpose=data.get("purpose"),
            cash_amount=data.get("cash_amount", 0),
            online_amount=data.get("online_amount", 0),
            receipt_url=data.get("receipt_url"),
        )
        return jsonify({"expense": expense.to_dict(), "expense_id": expense.id}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record expense")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.get("/")
@require_auth
def list_expenses_route():
    limit = max(1, min(request.args.get("limit", 50, type=int), 500))
    expenses = expense_service.list_expenses(limit=limit)
    return jsonify({"expenses": [e.to_dict() for e in expenses]}), 200
