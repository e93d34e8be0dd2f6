# Overview: Shared JSON response helpers for API routes.

from flask import jsonify, current_app, request

from ..validation import (
    ValidationError,
    ConflictError,
    AuthenticationError,
    PermissionDeniedError,
    NotFoundError,
)


def error(message: str, status: int, **extra):
    return jsonify({"success": False, "message": message, **extra}), status


def json_error(exc: Exception, log_message: str = "Request failed"):
    """Map a service exception to its JSON error response; log anything unexpected."""
    if isinstance(exc, (ValidationError, ConflictError)):
        return error(str(exc), 400)
    if isinstance(exc, AuthenticationError):
        return error(str(exc), 401)
    if isinstance(exc, PermissionDeniedError):
        return error(str(exc), 403)
    if isinstance(exc, NotFoundError):
        return error(str(exc), 404)
    current_app.logger.exception(log_message)
    return error("Internal server error", 500)


def get_json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def client_context() -> tuple[str | None, str | None]:
    """(ip_address, user_agent) of the current request."""
    return request.remote_addr, request.headers.get("User-Agent")
