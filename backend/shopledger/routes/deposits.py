# Overview: Flask API routes for deposits (till to bank transfers).

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import LedgerError
from ..models import ROLE_OWNER
from ..services import deposit_service
from ..validation import parse_int


deposits_bp = Blueprint("deposits", __name__, url_prefix="/api/deposits")


@deposits_bp.post("/")
@require_auth
@require_role(ROLE_OWNER)
def record_deposit_route():
    """
    Record a deposit received by the current Owner.

    Body: {"depositor_id", "amount", "description"?, "slip_url"?}
    """
    try:
        data = request.get_json() or {}
        depositor_id = parse_int(data.get("depositor_id"), "depositor_id", minimum=1)
        deposit = deposit_service.record_deposit(
            depositor_id=depositor_id,
            receiver_id=g.current_user.id,
            amount=data.get("amount"),
            description=data.get("description"),
            slip_url=data.get("slip_url"),
        )
        return jsonify({"deposit": deposit.to_dict(), "deposit_id": deposit.id}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record deposit")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.get("/")
@require_auth
@require_role(ROLE_OWNER)
def list_deposits_route():
    limit = max(1, min(request.args.get("limit", 50, type=int), 500))
    deposits = deposit_service.list_deposits(limit=limit)
    return jsonify({"deposits": [d.to_dict() for d in deposits]}), 200
