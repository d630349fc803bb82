# Overview: Flask API routes for payments operations; parses input and returns JSON responses.

# backend/catering/routes/payments.py
"""
Payment API Routes

WHY: Finance officers record payments against invoices; the invoice's paid
total and status follow automatically.

DESIGN:
- Partial payments: PARTIALLY_PAID until the net amount is covered, then PAID
- Overpayment is refused (400)
- Only CANCELLED payments can be deleted

SECURITY:
- MANAGE_PAYMENTS permission required for every route
- Every mutation writes an audit entry
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import payment_service
from ..services.payment_service import PaymentError
from ..services.permission_service import PermissionDeniedError
from ..validation import ValidationError, ConflictError, NotFoundError
from ..decorators import require_auth, require_permission
from ._params import date_range_args


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


# =============================================================================
# PAYMENT QUERIES
# =============================================================================

@payments_bp.get("")
@require_auth
@require_permission("MANAGE_PAYMENTS")
def list_payments_route():
    """
    List payments, newest payment_date first.

    Query params:
    - status: payment status
    - from / to: ISO-8601 bounds on payment_date
    - invoice_id: only payments of one invoice
    """
    try:
        from_date, to_date = date_range_args()
        payments = payment_service.list_payments(
            g.current_user,
            status=request.args.get("status"),
            from_date=from_date,
            to_date=to_date,
            invoice_id=request.args.get("invoice_id", type=int),
        )
        return jsonify({"payments": [p.to_dict() for p in payments]}), 200
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to list payments")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/<int:payment_id>")
@require_auth
@require_permission("MANAGE_PAYMENTS")
def get_payment_route(payment_id: int):
    try:
        payment = payment_service.get_payment(payment_id)
        data = payment.to_dict()
        data["invoice"] = payment.invoice.to_dict()
        return jsonify(data), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get payment")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENT MUTATIONS
# =============================================================================

@payments_bp.post("")
@require_auth
@require_permission("MANAGE_PAYMENTS")
def create_payment_route():
    """
    Record a payment against an invoice.

    Request body:
    {
        "invoice_id": 7,
        "method": "TRANSFER",            (CHEQUE | TRANSFER | MOBILE_MONEY | CASH)
        "payment_date": "2026-03-10",
        "amount_cents": 60000,
        "reference": "TRX-0091"          (optional)
    }

    Returns:
        201: Payment recorded, with the updated invoice
        400: Invalid input, or the payment exceeds the outstanding balance
        404: Invoice not found
        409: Invoice status does not accept payments
    """
    try:
        payment = payment_service.create_payment(g.current_user, request.get_json(silent=True))
        data = payment.to_dict()
        data["invoice"] = payment.invoice.to_dict()
        return jsonify(data), 201
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except PaymentError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except ConflictError as e:
        return jsonify(e.to_dict()), 409
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.put("/<int:payment_id>")
@require_auth
@require_permission("MANAGE_PAYMENTS")
def update_payment_route(payment_id: int):
    """Edit method, reference, date, amount or status of a payment."""
    try:
        payment = payment_service.update_payment(g.current_user, payment_id, request.get_json(silent=True))
        data = payment.to_dict()
        data["invoice"] = payment.invoice.to_dict()
        return jsonify(data), 200
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except PaymentError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to update payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.delete("/<int:payment_id>")
@require_auth
@require_permission("MANAGE_PAYMENTS")
def delete_payment_route(payment_id: int):
    """Delete a CANCELLED payment (400 for any other status)."""
    try:
        payment_service.delete_payment(g.current_user, payment_id)
        return jsonify({"message": "Payment deleted", "id": payment_id}), 200
    except PaymentError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to delete payment")
        return jsonify({"error": "Internal server error"}), 500
