# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

Registration, credential checks, email verification, password reset and
the parent-managed child settings (allowance, spending limits).

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, with uppercase, digit and special char
- Verification and reset tokens are random, stored only as SHA-256 hashes
- Session tokens managed separately (see session_service.py)
"""

import secrets
from datetime import timedelta

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from . import email_service
from .session_service import generate_token, hash_token, revoke_all_user_sessions
from youfin.time_utils import utcnow, parse_iso_date, age_on
from youfin.validation import (
    ValidationError,
    ConflictError,
    AuthenticationError,
    PermissionDeniedError,
    NotFoundError,
    USER_ROLES,
    BUSINESS_PROFILE_TYPES,
    ALLOWANCE_FREQUENCIES,
    require_fields,
    normalize_email,
    validate_password_strength,
    validate_choice,
    parse_non_negative_cents,
    parse_record_id,
    optional_text,
)


CHILD_MIN_AGE = 6
CHILD_MAX_AGE = 17
ADDRESS_FIELDS = ("street", "city", "state", "zipCode", "country")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. Malformed hashes count as a mismatch.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def email_exists(email: str) -> bool:
    normalized = (email or "").strip().lower()
    return db.session.query(User).filter_by(email=normalized).first() is not None


def _generate_username(first_name: str, last_name: str) -> str:
    base = f"{first_name}{last_name}".lower().replace(" ", "")[:56]
    return f"{base}{secrets.randbelow(9000) + 1000}"


def _validate_name(value, field: str) -> str:
    if not isinstance(value, str) or len(value.strip()) < 2:
        raise ValidationError(f"{field} must be at least 2 characters")
    if len(value.strip()) > 100:
        raise ValidationError(f"{field} must be at most 100 characters")
    return value.strip()


def _parse_address(address) -> dict:
    if not isinstance(address, dict):
        raise ValidationError("Please provide all required business information")
    missing = [f for f in ADDRESS_FIELDS if not str(address.get(f) or "").strip()]
    if missing:
        raise ValidationError(f"Address is missing: {', '.join(missing)}")
    return {f: str(address[f]).strip() for f in ADDRESS_FIELDS}


def _parse_child_birth_date(value):
    try:
        birth = parse_iso_date(value) if isinstance(value, str) else None
    except ValueError:
        birth = None
    if birth is None:
        raise ValidationError("dateOfBirth must be an ISO-8601 date")
    age = age_on(birth)
    if not CHILD_MIN_AGE <= age <= CHILD_MAX_AGE:
        raise ValidationError(
            f"Child must be between {CHILD_MIN_AGE} and {CHILD_MAX_AGE} years old"
        )
    return birth


def _issue_verification_token(user: User) -> str:
    token = generate_token()
    hours = current_app.config.get("VERIFICATION_TOKEN_HOURS", 24)
    user.verification_token_hash = hash_token(token)
    user.verification_expires_at = utcnow() + timedelta(hours=hours)
    return token


def register_user(data: dict) -> tuple[User, bool]:
    """
    Create an account from a registration payload (camelCase wire keys).

    Returns (user, email_sent). email_sent is True when the account was
    auto-verified (nothing to send) or the verification email went out.

    Raises:
        ConflictError: email already registered (no user is created)
        ValidationError: missing/invalid common or role-specific fields
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    require_fields(data, "firstName", "lastName", "email", "password", "role")
    email = normalize_email(data.get("email"))

    if email_exists(email):
        raise ConflictError("Email is already registered")

    first_name = _validate_name(data.get("firstName"), "firstName")
    last_name = _validate_name(data.get("lastName"), "lastName")
    role = validate_choice(data.get("role"), USER_ROLES, "role")

    confirm = data.get("confirmPassword")
    if confirm is not None and confirm != data.get("password"):
        raise ValidationError("Passwords don't match")

    password_hash = hash_password(data.get("password"))

    user = User(
        first_name=first_name,
        last_name=last_name,
        username=optional_text(data.get("username"), "username", 64) or _generate_username(first_name, last_name),
        email=email,
        password_hash=password_hash,
        role=role,
        is_verified=bool(current_app.config.get("AUTO_VERIFY_ACCOUNTS")),
    )

    if role == "business":
        if not all(data.get(k) for k in ("businessName", "businessType", "address", "description")):
            raise ValidationError("Please provide all required business information")
        user.business_name = str(data["businessName"]).strip()
        user.business_type = validate_choice(data["businessType"], BUSINESS_PROFILE_TYPES, "businessType")
        address = _parse_address(data["address"])
        user.address_street = address["street"]
        user.address_city = address["city"]
        user.address_state = address["state"]
        user.address_zip_code = address["zipCode"]
        user.address_country = address["country"]
        description = str(data["description"]).strip()
        if len(description) > 500:
            raise ValidationError("Description cannot be more than 500 characters")
        user.description = description

    if role == "child":
        if not data.get("dateOfBirth") or not data.get("parentId"):
            raise ValidationError("Please provide all required child information")
        parent = _get_user_or_none(data.get("parentId"))
        if not parent or not parent.is_parent():
            raise ValidationError("Invalid parent ID")
        user.date_of_birth = _parse_child_birth_date(data.get("dateOfBirth"))
        # Appends to parent.children through the backref
        user.parent = parent

    token = _issue_verification_token(user)

    db.session.add(user)
    db.session.commit()

    if user.is_verified:
        current_app.logger.info("Auto-verified new account %s (%s)", user.email, user.role)
        return user, True

    result = email_service.send_verification_email(user.email, token)
    if result.get("error"):
        current_app.logger.warning("Verification email to %s failed: %s", user.email, result.get("message"))
        return user, False
    return user, True


def _get_user_or_none(user_id) -> User | None:
    try:
        return db.session.get(User, parse_record_id(user_id))
    except (TypeError, ValueError):
        return None


def authenticate(email: str, password: str) -> User | None:
    """
    Check email + password.

    Returns User if credentials valid, None otherwise. Does not touch
    last_login_at: the login flow does that once the second factor (if
    any) is satisfied.
    """
    normalized = (email or "").strip().lower()
    user = db.session.query(User).filter_by(email=normalized).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        return user

    return None


def record_login(user: User) -> None:
    user.last_login_at = utcnow()
    db.session.commit()


def verify_email(token: str) -> User:
    """Mark the account holding this verification token as verified."""
    now = utcnow()
    user = db.session.query(User).filter_by(verification_token_hash=hash_token(token or "")).first()

    if not user or not user.verification_expires_at or user.verification_expires_at < now:
        raise ValidationError("Invalid or expired verification token")

    user.is_verified = True
    user.verification_token_hash = None
    user.verification_expires_at = None
    db.session.commit()
    return user


def request_password_reset(email: str) -> tuple[User, bool]:
    """
    Issue a 1-hour reset token and email the reset link.

    Returns (user, email_sent). Raises NotFoundError for unknown email.
    """
    if not isinstance(email, str) or not email.strip():
        raise ValidationError("Email is required")
    normalized = email.strip().lower()
    user = db.session.query(User).filter_by(email=normalized).first()
    if not user:
        raise NotFoundError("User not found")

    token = generate_token()
    minutes = current_app.config.get("RESET_TOKEN_MINUTES", 60)
    user.reset_password_token_hash = hash_token(token)
    user.reset_password_expires_at = utcnow() + timedelta(minutes=minutes)
    db.session.commit()

    result = email_service.send_reset_password_email(user.email, token)
    if result.get("error"):
        current_app.logger.warning("Reset email to %s failed: %s", user.email, result.get("message"))
        return user, False
    return user, True


def reset_password(token: str, password: str, confirm_password: str | None = None) -> User:
    """
    Set a new password from a valid reset token.

    Clears the token and revokes every existing session of the user.
    """
    if not password:
        raise ValidationError("Password is required")
    if confirm_password is not None and confirm_password != password:
        raise ValidationError("Passwords don't match")

    now = utcnow()
    user = db.session.query(User).filter_by(reset_password_token_hash=hash_token(token or "")).first()
    if not user or not user.reset_password_expires_at or user.reset_password_expires_at < now:
        raise ValidationError("Invalid or expired reset token")

    user.password_hash = hash_password(password)
    user.reset_password_token_hash = None
    user.reset_password_expires_at = None
    db.session.commit()

    revoke_all_user_sessions(user.id, reason="Password reset")
    return user


def update_password(user: User, current_password: str, new_password: str) -> User:
    """
    Change password for an authenticated user.

    Raises AuthenticationError if current password is wrong. All existing
    sessions are revoked; the caller issues a fresh one.
    """
    if not current_password or not new_password:
        raise ValidationError("currentPassword and newPassword are required")
    if not verify_password(current_password, user.password_hash):
        raise AuthenticationError("Current password is incorrect")

    user.password_hash = hash_password(new_password)
    db.session.commit()

    revoke_all_user_sessions(user.id, reason="Password changed")
    return user


def _get_own_child(parent: User, child_id) -> User:
    if not parent.is_parent():
        raise PermissionDeniedError("Only parents can manage children")
    child = _get_user_or_none(child_id)
    if not child or child.parent_id != parent.id:
        raise NotFoundError("Child not found")
    return child


def get_children(parent: User) -> list[User]:
    if not parent.is_parent():
        raise PermissionDeniedError("Only parents can access this route")
    return list(parent.children)


def update_allowance(parent: User, data: dict) -> User:
    """Set a child's allowance amount/frequency; lastPaid becomes now."""
    child = _get_own_child(parent, data.get("childId"))

    child.allowance_cents = parse_non_negative_cents(data.get("amount"), "amount")
    child.allowance_frequency = validate_choice(
        data.get("frequency") or "monthly", ALLOWANCE_FREQUENCIES, "frequency"
    )
    child.allowance_last_paid_at = utcnow()
    db.session.commit()
    return child


def update_spending_limits(parent: User, data: dict) -> User:
    child = _get_own_child(parent, data.get("childId"))

    child.spending_limit_daily_cents = parse_non_negative_cents(data.get("daily"), "daily")
    child.spending_limit_weekly_cents = parse_non_negative_cents(data.get("weekly"), "weekly")
    child.spending_limit_monthly_cents = parse_non_negative_cents(data.get("monthly"), "monthly")
    db.session.commit()
    return child
