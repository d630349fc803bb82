# Overview: Flask API routes for service requests; parses input and returns JSON responses.

# backend/catering/routes/requests.py
"""
Service Request API Routes

WHY: Requesters submit catering requests; approvers and finance officers
move them through the workflow.

DESIGN:
- Create / list / read / edit / delete requests
- Workflow actions: approve, reject, revision, fulfill
- Role and ownership checks live in permission_service; routes only map
  domain errors to HTTP status codes

SECURITY:
- Every route requires an authenticated principal
- Requesters only see and edit their own requests
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import audit_service, request_service
from ..services.permission_service import PermissionDeniedError
from ..services.request_service import WorkflowError
from ..validation import ValidationError, ConflictError, NotFoundError
from ..decorators import require_auth


requests_bp = Blueprint("requests", __name__, url_prefix="/api/requests")


def _comments_from_body(*keys):
    data = request.get_json(silent=True) or {}
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


# =============================================================================
# REQUEST CRUD
# =============================================================================

@requests_bp.get("")
@require_auth
def list_requests_route():
    """
    List service requests, newest first.

    Query params:
    - status: filter by request status

    Requesters only receive their own requests.
    """
    try:
        requests_ = request_service.list_requests(g.current_user, status=request.args.get("status"))
        return jsonify({"requests": [r.to_dict() for r in requests_]}), 200
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except Exception:
        current_app.logger.exception("Failed to list requests")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.post("")
@require_auth
def create_request_route():
    """
    Submit a new service request.

    Request body:
    {
        "event_name": "Faculty Welcome Lunch",
        "event_date": "2026-03-01T12:00:00Z",
        "venue": "Main Hall",
        "attendees": 50,
        "estimate_amount_cents": 250000,
        "funding_source": "Dept budget",
        "department_name": "Chemistry",      (or "department_id": 3)
        "service_type": "LUNCH",             (optional)
        "description": "...",                (optional)
        "contact_phone": "+1-555-0100",      (optional)
        "phone": "+1-555-0100"               (required if the user has none on file)
    }

    Returns:
        201: Created request
        400: Validation failed (with issues)
    """
    try:
        service_request = request_service.create_request(g.current_user, request.get_json(silent=True))
        return jsonify(service_request.to_dict()), 201
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to create request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.get("/<int:request_id>")
@require_auth
def get_request_route(request_id: int):
    """Get one request with its invoices, payments, attachments and audit history."""
    try:
        service_request = request_service.get_request_for_user(request_id, g.current_user)
        data = service_request.to_dict(include_invoices=True)
        data["history"] = [entry.to_dict() for entry in audit_service.list_for_request(service_request.id)]
        return jsonify(data), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to get request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.put("/<int:request_id>")
@require_auth
def update_request_route(request_id: int):
    """
    Edit a SUBMITTED or NEEDS_REVISION request.

    Owner or finance officer only. Editing a NEEDS_REVISION request as its
    owner resubmits it.
    """
    try:
        service_request = request_service.update_request(
            g.current_user, request_id, request.get_json(silent=True)
        )
        return jsonify(service_request.to_dict()), 200
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except ConflictError as e:
        return jsonify(e.to_dict()), 409
    except Exception:
        current_app.logger.exception("Failed to update request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.delete("/<int:request_id>")
@require_auth
def delete_request_route(request_id: int):
    """
    Delete a REJECTED request that has no invoices.

    Returns:
        200: Deleted
        400: Not REJECTED, or has invoices
        403: Not the owner or a finance officer
        404: Not found
    """
    try:
        request_service.delete_request(g.current_user, request_id)
        return jsonify({"message": "Request deleted", "id": request_id}), 200
    except WorkflowError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to delete request")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# WORKFLOW ACTIONS
# =============================================================================

def _transition_response(func, *args, label: str):
    try:
        service_request = func(g.current_user, *args)
        return jsonify(service_request.to_dict()), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except ConflictError as e:
        return jsonify(e.to_dict()), 409
    except Exception:
        current_app.logger.exception("Failed to %s request", label)
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.post("/<int:request_id>/approve")
@require_auth
def approve_request_route(request_id: int):
    """
    Approve a SUBMITTED or NEEDS_REVISION request.

    Request body (optional): {"comments": "ok"}
    Notifies the requester and every finance officer.
    """
    comments = _comments_from_body("comments")
    return _transition_response(request_service.approve_request, request_id, comments, label="approve")


@requests_bp.post("/<int:request_id>/reject")
@require_auth
def reject_request_route(request_id: int):
    """Reject a request. Body (optional): {"rejection_reason": "budget exceeded"}"""
    reason = _comments_from_body("rejection_reason", "reason", "comments")
    return _transition_response(request_service.reject_request, request_id, reason, label="reject")


@requests_bp.post("/<int:request_id>/revision")
@require_auth
def revision_request_route(request_id: int):
    """Send a SUBMITTED request back for revision. Body (optional): {"comments": "..."}"""
    comments = _comments_from_body("comments", "revision_comments")
    return _transition_response(request_service.request_revision, request_id, comments, label="request revision for")


@requests_bp.post("/<int:request_id>/fulfill")
@require_auth
def fulfill_request_route(request_id: int):
    """Mark an APPROVED request FULFILLED (finance officers)."""
    return _transition_response(request_service.fulfill_request, request_id, label="fulfill")
