# Overview: Flask API routes for users; current-user profile and role management.

from flask import Blueprint, request, jsonify, g, current_app

from ..permissions import get_permission_definition
from ..services import permission_service, user_service
from ..validation import ValidationError, NotFoundError
from ..decorators import require_auth, require_permission


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("/me")
@require_auth
def get_me_route():
    """The signed-in user's local profile (role, department, phone) and permissions."""
    data = g.current_user.to_dict()
    data["permissions"] = [
        get_permission_definition(code)
        for code in sorted(permission_service.get_user_permissions(g.current_user))
    ]
    return jsonify(data), 200


@users_bp.get("")
@require_auth
@require_permission("MANAGE_USERS")
def list_users_route():
    """
    List users.

    Requires: MANAGE_USERS permission
    Query params:
    - role: filter by role
    """
    try:
        users = user_service.list_users(role=request.args.get("role"))
        return jsonify({"users": [u.to_dict() for u in users]}), 200
    except Exception:
        current_app.logger.exception("Failed to list users")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.patch("/<int:user_id>/role")
@require_auth
@require_permission("MANAGE_USERS")
def change_role_route(user_id: int):
    """
    Change a user's role.

    Request body: {"role": "APPROVER"}
    """
    try:
        data = request.get_json(silent=True) or {}
        user = user_service.change_role(
            user_id=user_id,
            role=data.get("role"),
            actor_id=g.current_user.id,
        )
        return jsonify(user.to_dict()), 200
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to change user role")
        return jsonify({"error": "Internal server error"}), 500
