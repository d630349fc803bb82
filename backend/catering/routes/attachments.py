# Overview: Flask API routes for file attachments on requests, invoices and payments.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import attachment_service
from ..services.permission_service import PermissionDeniedError
from ..validation import ValidationError, NotFoundError
from ..decorators import require_auth


attachments_bp = Blueprint("attachments", __name__, url_prefix="/api")


def _upload(target: str, target_id: int):
    try:
        attachment = attachment_service.add_attachment(
            g.current_user, target, target_id, request.files.get("file")
        )
        return jsonify(attachment.to_dict()), 201
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to upload %s attachment", target)
        return jsonify({"error": "Internal server error"}), 500


@attachments_bp.post("/requests/<int:request_id>/attachments")
@require_auth
def upload_request_attachment_route(request_id: int):
    """Multipart upload, field name "file"."""
    return _upload("request", request_id)


@attachments_bp.post("/invoices/<int:invoice_id>/attachments")
@require_auth
def upload_invoice_attachment_route(invoice_id: int):
    return _upload("invoice", invoice_id)


@attachments_bp.post("/payments/<int:payment_id>/attachments")
@require_auth
def upload_payment_attachment_route(payment_id: int):
    return _upload("payment", payment_id)
