# Overview: Flask API routes for invoices; parses input and returns JSON responses.

# backend/catering/routes/invoices.py
"""
Invoice API Routes

WHY: Finance officers bill approved requests. Invoice listings double as
the query surface for external reporting (date range + status).

SECURITY:
- MANAGE_INVOICES permission required for every write
- Reads are open to anyone who can read the underlying request
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import invoice_service
from ..services.invoice_service import InvoiceError
from ..services.permission_service import PermissionDeniedError
from ..validation import ValidationError, ConflictError, NotFoundError
from ..decorators import require_auth, require_permission
from ._params import date_range_args


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.get("")
@require_auth
def list_invoices_route():
    """
    List invoices, newest invoice_date first.

    Query params:
    - status: invoice status
    - from / to: ISO-8601 bounds on invoice_date
    - request_id: only invoices of one request
    """
    try:
        from_date, to_date = date_range_args()
        invoices = invoice_service.list_invoices(
            g.current_user,
            status=request.args.get("status"),
            from_date=from_date,
            to_date=to_date,
            request_id=request.args.get("request_id", type=int),
        )
        return jsonify({"invoices": [inv.to_dict() for inv in invoices]}), 200
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except Exception:
        current_app.logger.exception("Failed to list invoices")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("")
@require_auth
@require_permission("MANAGE_INVOICES")
def create_invoice_route():
    """
    Create an invoice for an APPROVED request.

    Request body:
    {
        "request_id": 12,
        "invoice_date": "2026-03-02",
        "due_date": "2026-04-01",
        "gross_amount_cents": 100000,
        "tax_amount_cents": 10000,
        "net_amount_cents": 110000
    }

    Returns:
        201: Invoice created (status SUBMITTED)
        400: Validation failed
        404: Request not found
        409: Request is not APPROVED
    """
    try:
        invoice = invoice_service.create_invoice(g.current_user, request.get_json(silent=True))
        return jsonify(invoice.to_dict(include_payments=True)), 201
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except ConflictError as e:
        return jsonify(e.to_dict()), 409
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>")
@require_auth
def get_invoice_route(invoice_id: int):
    """Get one invoice with its payments and balance."""
    try:
        invoice = invoice_service.get_invoice_for_user(invoice_id, g.current_user)
        return jsonify(invoice.to_dict(include_payments=True)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to get invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.put("/<int:invoice_id>")
@require_auth
@require_permission("MANAGE_INVOICES")
def update_invoice_route(invoice_id: int):
    """
    Partially update dates, amounts or status.

    Returns 400 if net_amount_cents would drop below what has been paid.
    """
    try:
        invoice = invoice_service.update_invoice(g.current_user, invoice_id, request.get_json(silent=True))
        return jsonify(invoice.to_dict(include_payments=True)), 200
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except InvoiceError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to update invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/approve")
@require_auth
@require_permission("MANAGE_INVOICES")
def approve_invoice_route(invoice_id: int):
    """Move a SUBMITTED or VERIFIED invoice to APPROVED_FOR_PAYMENT."""
    try:
        invoice = invoice_service.approve_for_payment(g.current_user, invoice_id)
        return jsonify(invoice.to_dict(include_payments=True)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except ConflictError as e:
        return jsonify(e.to_dict()), 409
    except Exception:
        current_app.logger.exception("Failed to approve invoice for payment")
        return jsonify({"error": "Internal server error"}), 500
