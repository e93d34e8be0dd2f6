# Overview: Request authentication and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services import session_service


def get_request_token() -> str | None:
    """Session token from the Authorization header, else from the cookie."""
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        if token:
            return token
    cookie_name = current_app.config.get("SESSION_TOKEN_COOKIE", "token")
    return request.cookies.get(cookie_name) or None


def require_auth(f):
    """
    Require a valid session token (Bearer header or cookie).

    Sets:
    - g.current_user: The authenticated User object
    - g.session_context: The full SessionContext object

    Returns 401 if no token is presented or it is invalid, expired or revoked.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = get_request_token()

        if not token:
            return jsonify({"success": False, "message": "Not authorized to access this route"}), 401

        context = session_service.validate_session(token)

        if not context:
            return jsonify({"success": False, "message": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require the authenticated user to hold one of roles.

    Must be applied after @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return jsonify({"success": False, "message": "Authentication required"}), 401

            if user.role not in roles:
                return jsonify({
                    "success": False,
                    "message": f"User role {user.role} is not authorized to access this route",
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
