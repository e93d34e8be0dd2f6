# Overview: TOTP two-factor enrolment, login validation and removal.

"""
Two-Factor Authentication Service

Flow:
1. generate_secret: store a fresh temp secret, return otpauth URL + QR PNG data URL
2. verify_and_enable: code checked against temp secret; on success the temp
   secret becomes the active secret and 2FA is enabled
3. validate_login_code: code checked against the active secret at login
4. disable: code checked against the active secret; all 2FA fields cleared

Codes are accepted within TOTP_VALID_WINDOW 30-second steps either side.
"""

import base64
import io

import pyotp
import qrcode
from flask import current_app

from ..extensions import db
from ..models import User, TwoFactorAuth
from .login_throttle_service import record_security_event
from youfin.validation import ValidationError, NotFoundError, parse_record_id


def _window() -> int:
    return int(current_app.config.get("TOTP_VALID_WINDOW", 2))


def _code_matches(secret: str | None, code) -> bool:
    if not secret or code in (None, ""):
        return False
    code = str(code).strip()
    if not code.isdigit():
        return False
    return pyotp.TOTP(secret).verify(code, valid_window=_window())


def qr_data_url(otp_url: str) -> str:
    """Render an otpauth:// URL as a PNG data URL."""
    qr_img = qrcode.make(otp_url)
    buf = io.BytesIO()
    qr_img.save(buf, format="PNG")
    qr_b64 = base64.b64encode(buf.getvalue()).decode("utf-8")
    return f"data:image/png;base64,{qr_b64}"


def _record_for(user: User) -> TwoFactorAuth:
    if user.two_factor is None:
        user.two_factor = TwoFactorAuth(enabled=False)
    return user.two_factor


def generate_secret(user: User) -> dict:
    """
    Start (or restart) enrolment.

    Returns {"secret", "otpURL", "dataURL"}. 2FA stays disabled until
    verify_and_enable succeeds.
    """
    secret = pyotp.random_base32()
    otp_url = pyotp.TOTP(secret).provisioning_uri(
        name=user.email,
        issuer_name=current_app.config.get("TOTP_ISSUER", "YouFin"),
    )
    data_url = qr_data_url(otp_url)

    record = _record_for(user)
    record.temp_secret = secret
    record.otp_url = otp_url
    record.data_url = data_url
    db.session.commit()

    current_app.logger.info("2FA enrolment started for user %s", user.id)
    return {"secret": secret, "otpURL": otp_url, "dataURL": data_url}


def verify_and_enable(user: User, code) -> TwoFactorAuth:
    record = user.two_factor
    if record is None or not record.temp_secret:
        raise ValidationError("No 2FA setup in progress. Generate a secret first")

    if not _code_matches(record.temp_secret, code):
        raise ValidationError("Invalid verification code")

    record.secret = record.temp_secret
    record.temp_secret = None
    record.enabled = True
    db.session.commit()

    record_security_event(user.id, "2FA_ENABLED", resource="/api/auth/2fa/verify")
    return record


def validate_login_code(user_id, code) -> User:
    """
    Second login step. Returns the user when the code is valid.

    Raises NotFoundError for unknown user, ValidationError when 2FA is not
    enabled or the code does not match.
    """
    try:
        user = db.session.get(User, parse_record_id(user_id))
    except (TypeError, ValueError):
        user = None
    if not user:
        raise NotFoundError("User not found")

    record = user.two_factor
    if record is None or not record.enabled:
        raise ValidationError("Two-factor authentication is not enabled for this user")
    if not record.secret:
        raise ValidationError("No 2FA secret found for this user")

    if not _code_matches(record.secret, code):
        record_security_event(
            user.id, "2FA_FAILED", success=False,
            reason="Invalid verification code", resource="/api/auth/validate-2fa",
        )
        raise ValidationError("Invalid verification code")

    return user


def disable(user: User, code) -> None:
    record = user.two_factor
    if record is None or not record.enabled:
        raise ValidationError("Two-factor authentication is not enabled for this user")

    if not _code_matches(record.secret, code):
        raise ValidationError("Invalid verification code")

    record.enabled = False
    record.secret = None
    record.temp_secret = None
    record.otp_url = None
    record.data_url = None
    db.session.commit()

    record_security_event(user.id, "2FA_DISABLED", resource="/api/auth/2fa/disable")
