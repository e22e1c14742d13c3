# Overview: Flask API routes for the balances snapshot and the change feed.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import ValidationError
from ..services import change_feed_service, ledger_service


balances_bp = Blueprint("balances", __name__, url_prefix="/api/balances")
changes_bp = Blueprint("changes", __name__, url_prefix="/api/changes")


@balances_bp.get("/")
@require_auth
def get_balances_route():
    """Bank balance is only disclosed to Owners."""
    balance = ledger_service.get_balances()
    return jsonify({"balances": balance.to_dict(include_bank=g.current_user.is_owner)}), 200


@changes_bp.get("/")
@require_auth
def list_changes_route():
    """
    Change feed page.

    Query: after=<cursor> (default 0), streams=sales,categories,balances
    Returns {"changes": [...], "cursor": <resume cursor>}
    """
    after = request.args.get("after", 0, type=int)
    streams_param = request.args.get("streams")
    streams = None
    if streams_param:
        streams = [s.strip() for s in streams_param.split(",") if s.strip()]
        unknown = [s for s in streams if s not in change_feed_service.VALID_STREAMS]
        if unknown:
            err = ValidationError("Unknown change stream", details={"streams": unknown})
            return jsonify(err.to_dict()), err.status_code

    limit = current_app.config.get("CHANGE_FEED_PAGE_SIZE", 200)
    events, cursor = change_feed_service.changes_since(after, streams=streams, limit=limit)
    return jsonify({"changes": [ev.to_dict() for ev in events], "cursor": cursor}), 200


@changes_bp.get("/cursor")
@require_auth
def latest_cursor_route():
    return jsonify({"cursor": change_feed_service.latest_cursor()}), 200
