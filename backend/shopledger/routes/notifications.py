# Overview: Flask API routes for the current actor's notifications.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..errors import LedgerError
from ..services import notification_service


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("/")
@require_auth
def list_notifications_route():
    unread_only = request.args.get("unread", "").lower() in ("1", "true", "yes")
    limit = max(1, min(request.args.get("limit", 50, type=int), 200))
    items = notification_service.list_for_user(g.current_user.id, unread_only=unread_only, limit=limit)
    return jsonify({
        "notifications": [n.to_dict() for n in items],
        "unread_count": notification_service.unread_count(g.current_user.id),
    }), 200


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    try:
        notification = notification_service.mark_read(g.current_user.id, notification_id)
        return jsonify({"notification": notification.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@notifications_bp.post("/read-all")
@require_auth
def mark_all_read_route():
    count = notification_service.mark_all_read(g.current_user.id)
    return jsonify({"updated": count}), 200
