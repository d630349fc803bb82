# Overview: Flask API routes for departments (read-only reference data).

from flask import Blueprint, jsonify, current_app

from ..services import department_service


departments_bp = Blueprint("departments", __name__, url_prefix="/api/departments")


@departments_bp.get("")
def list_departments_route():
    """List departments by name. Public: the request form needs it before sign-in."""
    try:
        departments = department_service.list_departments()
        return jsonify({"departments": [d.to_dict() for d in departments]}), 200
    except Exception:
        current_app.logger.exception("Failed to list departments")
        return jsonify({"error": "Internal server error"}), 500
