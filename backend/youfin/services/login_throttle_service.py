"""
Failed-login throttling and the security event trail.

Every failed login for an email is written to security_events as
LOGIN_FAILED. Once MAX_FAILED_ATTEMPTS pile up inside LOCKOUT_WINDOW, further
logins for that email are refused until LOCKOUT_DURATION has passed since
the latest failure. The same table also records 2FA and password events.
"""

from datetime import timedelta
from ..extensions import db
from ..models import SecurityEvent, User
from youfin.time_utils import utcnow
from youfin.validation import parse_record_id


MAX_FAILED_ATTEMPTS = 10
MAX_TWO_FACTOR_FAILURES = 5
LOCKOUT_WINDOW = timedelta(minutes=15)
LOCKOUT_DURATION = timedelta(minutes=15)

LOGIN_RESOURCE = "/api/auth/login"


def _key(identifier: str) -> str:
    return identifier.strip().lower() if isinstance(identifier, str) else ""


def _failures(identifier: str):
    return db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type == "LOGIN_FAILED",
        SecurityEvent.action == _key(identifier),
    )


def _two_factor_failures(user_id: int):
    return db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type == "2FA_FAILED",
        SecurityEvent.user_id == user_id,
    )


def _lock_state(failures, max_attempts: int) -> tuple[bool, int | None]:
    """Shared lockout rule over a query of failure events."""
    now = utcnow()
    if failures.filter(SecurityEvent.occurred_at >= now - LOCKOUT_WINDOW).count() < max_attempts:
        return False, None

    latest = failures.order_by(SecurityEvent.occurred_at.desc()).first()
    unlock_at = latest.occurred_at + LOCKOUT_DURATION
    if now >= unlock_at:
        return False, None
    return True, int((unlock_at - now).total_seconds())


def _log_event(**fields) -> None:
    fields.setdefault("occurred_at", utcnow())
    db.session.add(SecurityEvent(**fields))
    db.session.commit()


def get_recent_failed_attempts(identifier: str) -> int:
    return _failures(identifier).filter(
        SecurityEvent.occurred_at >= utcnow() - LOCKOUT_WINDOW
    ).count()


def is_account_locked(identifier: str) -> tuple[bool, int | None]:
    """(True, seconds left) while locked out, otherwise (False, None)."""
    return _lock_state(_failures(identifier), MAX_FAILED_ATTEMPTS)


def is_two_factor_locked(user_id) -> tuple[bool, int | None]:
    """Same rule for wrong TOTP codes at /validate-2fa, counted per user."""
    try:
        user_id = parse_record_id(user_id)
    except (TypeError, ValueError):
        return False, None
    return _lock_state(_two_factor_failures(user_id), MAX_TWO_FACTOR_FAILURES)


def record_failed_attempt(
    identifier: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
    reason: str = "Invalid credentials"
) -> int:
    """Log one failure and return the failure count inside the window."""
    email = _key(identifier)
    known = db.session.query(User.id).filter(User.email == email).scalar()
    _log_event(
        user_id=known,
        event_type="LOGIN_FAILED",
        resource=LOGIN_RESOURCE,
        action=email,
        success=False,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return get_recent_failed_attempts(email)


def record_successful_login(
    user_id: int,
    identifier: str,
    ip_address: str | None = None,
    user_agent: str | None = None
) -> None:
    _log_event(
        user_id=user_id,
        event_type="LOGIN_SUCCESS",
        resource=LOGIN_RESOURCE,
        action=_key(identifier),
        success=True,
        ip_address=ip_address,
        user_agent=user_agent,
    )


def record_security_event(
    user_id: int | None,
    event_type: str,
    *,
    success: bool = True,
    reason: str | None = None,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """2FA toggles, password resets and similar account events."""
    _log_event(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
    )


def get_lockout_status(identifier: str) -> dict:
    locked, seconds_left = is_account_locked(identifier)
    return {
        "locked": locked,
        "failedAttempts": get_recent_failed_attempts(identifier),
        "maxAttempts": MAX_FAILED_ATTEMPTS,
        "secondsUntilUnlock": seconds_left,
        "lockoutWindowMinutes": LOCKOUT_WINDOW // timedelta(minutes=1),
        "lockoutDurationMinutes": LOCKOUT_DURATION // timedelta(minutes=1),
    }


def cleanup_security_events(*, retention_days: int = 90) -> int:
    purged = db.session.query(SecurityEvent).filter(
        SecurityEvent.occurred_at < utcnow() - timedelta(days=retention_days)
    ).delete(synchronize_session=False)
    db.session.commit()
    return purged
