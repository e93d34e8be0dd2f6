# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/youfin/routes/auth.py
"""
Authentication API routes

SECURITY FEATURES:
- Password strength validation on registration and password changes
- Login throttling to prevent brute-force attacks
- Optional TOTP second factor
- Session tokens returned in the body and in an HTTP-only cookie
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services import login_throttle_service
from ..services import two_factor_service
from ..services import email_service
from ..decorators import require_auth, require_role, get_request_token
from ..validation import ValidationError
from .helpers import error, json_error, get_json_body, client_context


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _token_response(user, status: int = 200, message: str | None = None, **extra):
    """Create a session for user and answer with token in body and cookie."""
    ip_address, user_agent = client_context()
    session, token = session_service.create_session(
        user_id=user.id,
        user_agent=user_agent,
        ip_address=ip_address,
    )

    body = {
        "success": True,
        "token": token,
        "user": user.to_dict(),
        "session": session.to_dict(),
        **extra,
    }
    if message:
        body["message"] = message

    response = jsonify(body)
    response.status_code = status
    response.set_cookie(
        current_app.config.get("SESSION_TOKEN_COOKIE", "token"),
        token,
        max_age=current_app.config.get("SESSION_LIFETIME_DAYS", 1) * 24 * 60 * 60,
        httponly=True,
        secure=current_app.config.get("SESSION_TOKEN_COOKIE_SECURE", False),
        samesite="Lax",
    )
    return response


@auth_bp.post("/register")
def register_route():
    """
    Create a parent, child or business account.

    Child accounts need dateOfBirth and the id of an existing parent.
    Business accounts need businessName, businessType, address, description.
    """
    try:
        data = get_json_body()
        user, email_sent = auth_service.register_user(data)

        if user.is_verified:
            message = "Registration successful. Account auto-verified."
        elif email_sent:
            message = "Registration successful. Please check your email to verify your account."
        else:
            message = ("Registration successful, but we could not send a verification email. "
                       "Please contact support.")

        return _token_response(user, 201, message)

    except Exception as e:
        return json_error(e, "Failed to register user")


@auth_bp.get("/verify-email/<token>")
def verify_email_route(token: str):
    try:
        auth_service.verify_email(token)
        return jsonify({"success": True, "message": "Email verified successfully"}), 200
    except Exception as e:
        return json_error(e, "Failed to verify email")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate with email + password.

    Accounts with 2FA enabled get {requires2FA: true, userId} and no token;
    the client then calls /validate-2fa.

    SECURITY:
    - Checks for lockout before attempting authentication
    - Records failed attempts for throttling
    - Records successful logins for audit trail
    """
    try:
        data = get_json_body()
        email = data.get("email")
        password = data.get("password")

        if not (isinstance(email, str) and email.strip() and isinstance(password, str) and password):
            return error("Please provide email and password", 400)

        ip_address, user_agent = client_context()

        is_locked, seconds_remaining = login_throttle_service.is_account_locked(email)
        if is_locked:
            minutes_remaining = (seconds_remaining // 60) + 1 if seconds_remaining else 15
            return error(
                "Account temporarily locked due to too many failed login attempts",
                429,
                locked=True,
                retryAfterSeconds=seconds_remaining,
                retryAfterMinutes=minutes_remaining,
            )

        user = auth_service.authenticate(email, password)

        if not user:
            failed_count = login_throttle_service.record_failed_attempt(
                identifier=email,
                ip_address=ip_address,
                user_agent=user_agent,
                reason="Invalid credentials"
            )

            remaining = login_throttle_service.MAX_FAILED_ATTEMPTS - failed_count

            if remaining <= 0:
                return error(
                    "Account locked due to too many failed login attempts",
                    429,
                    locked=True,
                    retryAfterMinutes=15,
                )
            elif remaining <= 3:
                return error(
                    "Invalid credentials",
                    401,
                    warning=f"{remaining} attempts remaining before account lockout",
                )
            else:
                return error("Invalid credentials", 401)

        if not user.is_verified and not current_app.config.get("AUTO_VERIFY_ACCOUNTS"):
            return error("Please verify your email before logging in", 401)

        if user.two_factor_enabled:
            return jsonify({
                "success": True,
                "requires2FA": True,
                "userId": user.id,
                "message": "Please enter your two-factor authentication code",
            }), 200

        login_throttle_service.record_successful_login(
            user_id=user.id,
            identifier=email,
            ip_address=ip_address,
            user_agent=user_agent
        )
        auth_service.record_login(user)

        return _token_response(user, 200, "Login successful")

    except Exception as e:
        return json_error(e, "Failed to login user")


@auth_bp.post("/validate-2fa")
def validate_two_factor_route():
    """Second login step: {token, userId} -> session token."""
    try:
        data = get_json_body()
        code = data.get("token")
        user_id = data.get("userId")

        if not code or not user_id:
            return error("Please provide token and userId", 400)

        is_locked, seconds_remaining = login_throttle_service.is_two_factor_locked(user_id)
        if is_locked:
            return error(
                "Too many invalid verification codes. Try again later",
                429,
                locked=True,
                retryAfterSeconds=seconds_remaining,
            )

        user = two_factor_service.validate_login_code(user_id, code)

        ip_address, user_agent = client_context()
        login_throttle_service.record_successful_login(
            user_id=user.id,
            identifier=user.email,
            ip_address=ip_address,
            user_agent=user_agent
        )
        auth_service.record_login(user)

        return _token_response(user, 200, "Authentication successful")

    except Exception as e:
        return json_error(e, "Failed to validate 2FA token")


@auth_bp.post("/logout")
def logout_route():
    """Revoke the presented session (if any) and clear the cookie."""
    try:
        token = get_request_token()
        if token:
            session_service.revoke_session(token, reason="User logout")

        response = jsonify({"success": True, "message": "Logged out successfully"})
        response.delete_cookie(current_app.config.get("SESSION_TOKEN_COOKIE", "token"))
        return response, 200

    except Exception as e:
        return json_error(e, "Failed to logout user")


@auth_bp.post("/check-email")
def check_email_route():
    try:
        data = get_json_body()
        email = data.get("email")
        if not isinstance(email, str) or not email.strip():
            return error("Please provide an email", 400)
        return jsonify({"success": True, "exists": auth_service.email_exists(email)}), 200
    except Exception as e:
        return json_error(e, "Failed to check email")


@auth_bp.post("/forgot-password")
def forgot_password_route():
    try:
        data = get_json_body()
        _, email_sent = auth_service.request_password_reset(data.get("email"))

        if email_sent:
            message = "Password reset link sent to your email"
        else:
            message = ("We could not send the reset email right now. "
                       "Please try again later or contact support.")
        return jsonify({"success": True, "emailSent": email_sent, "message": message}), 200

    except Exception as e:
        return json_error(e, "Failed to process forgot password request")


@auth_bp.post("/reset-password/<token>")
def reset_password_route(token: str):
    try:
        data = get_json_body()
        auth_service.reset_password(token, data.get("password"), data.get("confirmPassword"))
        return jsonify({"success": True, "message": "Password reset successful"}), 200
    except Exception as e:
        return json_error(e, "Failed to reset password")


@auth_bp.get("/lockout-status/<identifier>")
def lockout_status_route(identifier: str):
    """Public: lets a user check whether their account is locked and when to retry."""
    status = login_throttle_service.get_lockout_status(identifier)
    return jsonify(status)


@auth_bp.post("/test-email")
def test_email_route():
    """Development only: send one of the transactional emails to an address."""
    if current_app.config.get("APP_ENV") != "development":
        return error("This endpoint is only available in development mode", 403)

    try:
        data = get_json_body()
        email = data.get("email")
        email_type = data.get("type")

        if not email:
            return error("Email is required", 400)

        if email_type == "verification":
            result = email_service.send_verification_email(email, "test-verification-token")
        elif email_type == "reset":
            result = email_service.send_reset_password_email(email, "test-reset-token")
        elif email_type == "2fa":
            result = email_service.send_two_factor_setup_email(
                email, "TESTSECRET", "data:image/png;base64,"
            )
        elif email_type == "notification":
            result = email_service.send_notification_email(
                email, "YouFin - Test Notification", "This is a test notification from YouFin."
            )
        else:
            return error("Valid email type is required (verification, reset, notification, or 2fa)", 400)

        if result.get("error"):
            return error(f"Failed to send test {email_type} email", 500, details=result.get("message"))

        return jsonify({
            "success": True,
            "message": f"Test {email_type} email sent to {email} (or logged in console in development mode)",
            "result": result,
        }), 200

    except Exception as e:
        return json_error(e, "Failed to send test email")


# Protected routes

@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    data = user.to_dict()
    if user.is_parent():
        data["children"] = [child.to_dict() for child in user.children]
    if user.is_child() and user.parent is not None:
        data["parent"] = user.parent.to_summary()
    return jsonify({"success": True, "user": data}), 200


@auth_bp.get("/children")
@require_auth
@require_role("parent")
def children_route():
    try:
        children = auth_service.get_children(g.current_user)
        return jsonify({"success": True, "children": [c.to_dict() for c in children]}), 200
    except Exception as e:
        return json_error(e, "Failed to list children")


@auth_bp.patch("/update-password")
@require_auth
def update_password_route():
    """Change password; all sessions are revoked and a new one is issued."""
    try:
        data = get_json_body()
        user = auth_service.update_password(
            g.current_user,
            data.get("currentPassword"),
            data.get("newPassword"),
        )
        return _token_response(user, 200, "Password updated successfully")
    except Exception as e:
        return json_error(e, "Failed to update password")


@auth_bp.patch("/update-allowance")
@require_auth
@require_role("parent")
def update_allowance_route():
    try:
        child = auth_service.update_allowance(g.current_user, get_json_body())
        return jsonify({"success": True, "child": child.to_dict()}), 200
    except Exception as e:
        return json_error(e, "Failed to update allowance")


@auth_bp.patch("/update-spending-limits")
@require_auth
@require_role("parent")
def update_spending_limits_route():
    try:
        child = auth_service.update_spending_limits(g.current_user, get_json_body())
        return jsonify({"success": True, "child": child.to_dict()}), 200
    except Exception as e:
        return json_error(e, "Failed to update spending limits")


@auth_bp.post("/2fa/generate")
@require_auth
def generate_two_factor_route():
    try:
        result = two_factor_service.generate_secret(g.current_user)
        return jsonify({"success": True, **result}), 200
    except Exception as e:
        return json_error(e, "Failed to generate 2FA secret")


@auth_bp.post("/2fa/verify")
@require_auth
def verify_two_factor_route():
    try:
        data = get_json_body()
        code = data.get("token")
        if not code:
            raise ValidationError("Verification code is required")
        two_factor_service.verify_and_enable(g.current_user, code)
        return jsonify({
            "success": True,
            "message": "Two-factor authentication enabled successfully",
        }), 200
    except Exception as e:
        return json_error(e, "Failed to verify 2FA")


@auth_bp.post("/2fa/disable")
@require_auth
def disable_two_factor_route():
    try:
        data = get_json_body()
        code = data.get("token")
        if not code:
            raise ValidationError("Verification code is required")
        two_factor_service.disable(g.current_user, code)
        return jsonify({
            "success": True,
            "message": "Two-factor authentication disabled successfully",
        }), 200
    except Exception as e:
        return json_error(e, "Failed to disable 2FA")
