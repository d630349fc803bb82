# Overview: Flask API routes for the in-app notification inbox.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import notification_service
from ..validation import NotFoundError
from ..decorators import require_auth


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    """
    The signed-in user's notifications, newest first.

    Query params:
    - limit: page size (default 20, max 100)
    - offset: rows to skip (default 0)
    """
    try:
        result = notification_service.list_notifications(
            g.current_user.id,
            limit=request.args.get("limit", 20, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({
            "notifications": [n.to_dict() for n in result["notifications"]],
            "unread_count": result["unread_count"],
        }), 200
    except Exception:
        current_app.logger.exception("Failed to list notifications")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.get("/unread-count")
@require_auth
def unread_count_route():
    try:
        return jsonify({"unread_count": notification_service.unread_count(g.current_user.id)}), 200
    except Exception:
        current_app.logger.exception("Failed to count unread notifications")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.patch("/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    """Mark one notification read; read notifications leave the inbox."""
    try:
        notification_service.mark_read(g.current_user.id, notification_id)
        return jsonify({"message": "Notification marked as read", "id": notification_id}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to mark notification read")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.patch("/mark-all-read")
@require_auth
def mark_all_read_route():
    try:
        count = notification_service.mark_all_read(g.current_user.id)
        return jsonify({"message": "All notifications marked as read", "count": count}), 200
    except Exception:
        current_app.logger.exception("Failed to mark all notifications read")
        return jsonify({"error": "Internal server error"}), 500
