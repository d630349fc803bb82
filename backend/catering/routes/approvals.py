# Overview: Flask API routes for the approvals queue.

from flask import Blueprint, jsonify, g, current_app

from ..services import request_service
from ..services.permission_service import PermissionDeniedError
from ..decorators import require_auth, require_permission


approvals_bp = Blueprint("approvals", __name__, url_prefix="/api/approvals")


@approvals_bp.get("")
@require_auth
@require_permission("APPROVE_REQUEST")
def list_pending_approvals_route():
    """
    Requests waiting for a decision (SUBMITTED or NEEDS_REVISION), oldest first.

    Requires: APPROVE_REQUEST permission
    Available to: APPROVER, FINANCE_OFFICER
    """
    try:
        pending = request_service.list_pending_approvals(g.current_user)
        return jsonify({"requests": [r.to_dict() for r in pending], "count": len(pending)}), 200
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to list pending approvals")
        return jsonify({"error": "Internal server error"}), 500
