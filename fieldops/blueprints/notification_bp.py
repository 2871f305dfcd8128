"""
Notification blueprint — the acting user's in-app inbox.

Endpoints (under /api/v1):
    GET  /notifications?unread=true&limit=&offset=
    POST /notifications/<id>/read
    POST /notifications/read-all
"""

from flask import Blueprint, g, jsonify, request

from fieldops.middleware.actor_context import require_actor
from fieldops.services.notification import NotificationService
from fieldops.utils.errors import E, api_error, register_error_handlers

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1")
register_error_handlers(notification_bp)


@notification_bp.route("/notifications", methods=["GET"])
@require_actor
def list_notifications():
    unread_only = request.args.get("unread", "false").lower() in ("1", "true", "yes")
    limit = min(request.args.get("limit", 50, type=int), 200)
    offset = request.args.get("offset", 0, type=int)

    items, total = NotificationService.list_for_user(
        g.current_user.id, unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(g.current_user.id),
    }), 200


@notification_bp.route("/notifications/<int:notification_id>/read", methods=["POST"])
@require_actor
def mark_read(notification_id):
    notif = NotificationService.mark_read(notification_id, g.current_user.id)
    if notif is None:
        return api_error(E.NOT_FOUND, "Notification not found")
    return jsonify(notif.to_dict()), 200


@notification_bp.route("/notifications/read-all", methods=["POST"])
@require_actor
def mark_all_read():
    count = NotificationService.mark_all_read(g.current_user.id)
    return jsonify({"marked_read": count}), 200
