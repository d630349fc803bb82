# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services import permission_service, user_service
from .validation import ConflictError, ValidationError


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and g.current_user is not None


def require_auth(f):
    """
    Require an authenticated principal and load the local user.

    The upstream identity gateway authenticates the caller and forwards
    the principal in trusted headers:
    - X-Auth-Subject: provider subject id (required)
    - X-Auth-Email / X-Auth-Name: used to create the user on first sight

    Sets g.current_user. Returns 401 if:
    - No subject header
    - First sight of a subject without an e-mail header
    - User account deactivated

    Returns 409 when the e-mail belongs to a user linked to another subject.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        config = current_app.config
        subject = (request.headers.get(config["AUTH_SUBJECT_HEADER"]) or "").strip()

        if not subject:
            return jsonify({"error": "Authentication required"}), 401

        try:
            user = user_service.ensure_user(
                external_id=subject,
                email=request.headers.get(config["AUTH_EMAIL_HEADER"]),
                name=request.headers.get(config["AUTH_NAME_HEADER"]),
            )
        except ValidationError as e:
            return jsonify({"error": str(e)}), 401
        except ConflictError as e:
            return jsonify(e.to_dict()), 409

        if not user.is_active:
            current_app.logger.warning("Deactivated user %s attempted access to %s", user.id, request.path)
            return jsonify({"error": "Account deactivated"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """
    Require a specific permission code for the current user's role.

    Must be stacked under @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            user = g.current_user
            if not permission_service.user_has_permission(user, permission_code):
                current_app.logger.warning(
                    "Permission denied: user=%s role=%s permission=%s path=%s",
                    user.id, user.role, permission_code, request.path,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": permission_code,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
