# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service
from .errors import ValidationError
from .validation import coerce_int


def resolve_branch_id(raw=None) -> int:
    """
    Branch a request acts on: the explicit value when given, else the
    caller's home branch.
    """
    if raw not in (None, ""):
        return coerce_int("branch_id", raw)
    user = getattr(g, "current_user", None)
    if user is not None and user.branch_id is not None:
        return user.branch_id
    raise ValidationError("branch_id is required")


def require_auth(f):
    """
    Require a bearer token and resolve it to the calling user.

    Sets g.current_user to the authenticated User.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required", "kind": "unauthorized"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        user = session_service.validate_session(token)

        if user is None:
            return jsonify({"error": "Invalid or expired token", "kind": "unauthorized"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function
