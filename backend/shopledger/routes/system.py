# Overview: Flask API routes for health checks and the ledger snapshot.

from flask import Blueprint, jsonify
from sqlalchemy import text

from ..decorators import require_privileged
from ..extensions import db
from ..services import ledger_service


system_bp = Blueprint("system", __name__, url_prefix="/api/system")


@system_bp.get("/health")
def health_route():
    db.session.execute(text("SELECT 1"))
    return jsonify({"status": "ok"}), 200


@system_bp.get("/snapshot")
@require_privileged
def snapshot_route():
    """Full ledger snapshot (balances + stock); privileged context only."""
    return jsonify({"snapshot": ledger_service.get_snapshot().to_dict()}), 200
