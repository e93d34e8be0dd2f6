# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Opaque login sessions for YouFin.

A login hands the client a random 64-hex token. Only its SHA-256 digest is
kept in the session_tokens table, so a leaked table cannot be replayed.
The client sends the token back through the "token" cookie or an
Authorization: Bearer header.

A session stops working when:
- SESSION_LIFETIME_DAYS have passed since login
- it sat unused for longer than SESSION_IDLE_HOURS (it is then revoked)
- the user logs out, changes or resets the password
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from youfin.time_utils import utcnow


TOKEN_BYTES = 32
USER_AGENT_MAX = 512


@dataclass
class SessionContext:
    user: User
    session: SessionToken


def generate_token() -> str:
    """Random hex token; also reused for email verification and reset links."""
    return secrets.token_hex(TOKEN_BYTES)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _lifetime() -> timedelta:
    return timedelta(days=current_app.config.get("SESSION_LIFETIME_DAYS", 1))


def _idle_limit() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_IDLE_HOURS", 2))


def _find_open(token: str) -> SessionToken | None:
    """Non-revoked session row for a plaintext token, if any."""
    return (
        db.session.query(SessionToken)
        .filter(SessionToken.token_hash == hash_token(token), SessionToken.is_revoked.is_(False))
        .one_or_none()
    )


def _mark_revoked(row: SessionToken, reason: str, when=None) -> None:
    row.is_revoked = True
    row.revoked_at = when or utcnow()
    row.revoked_reason = reason


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Open a session for user_id.

    Returns the stored row and the plaintext token. The token is not
    recoverable afterwards, so callers must hand it to the client now.
    Raises ValueError for an unknown user.
    """
    if db.session.get(User, user_id) is None:
        raise ValueError("User not found")

    token = generate_token()
    issued = utcnow()
    row = SessionToken(
        user_id=user_id,
        token_hash=hash_token(token),
        created_at=issued,
        last_used_at=issued,
        expires_at=issued + _lifetime(),
        user_agent=user_agent[:USER_AGENT_MAX] if user_agent else None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(row)
    db.session.commit()
    return row, token


def validate_session(token: str) -> SessionContext | None:
    """Resolve a token to its user, touching last_used_at; None when unusable."""
    row = _find_open(token)
    if row is None:
        return None

    now = utcnow()
    if now > row.expires_at:
        return None
    if now - row.last_used_at > _idle_limit():
        _mark_revoked(row, "Idle timeout", now)
        db.session.commit()
        return None
    if row.user is None:
        return None

    row.last_used_at = now
    db.session.commit()
    return SessionContext(user=row.user, session=row)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    row = _find_open(token)
    if row is None:
        return False
    _mark_revoked(row, reason)
    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions") -> int:
    """Close every open session of a user; returns how many were closed."""
    open_rows = (
        db.session.query(SessionToken)
        .filter(SessionToken.user_id == user_id, SessionToken.is_revoked.is_(False))
        .all()
    )
    now = utcnow()
    for row in open_rows:
        _mark_revoked(row, reason, now)
    db.session.commit()
    return len(open_rows)


def cleanup_expired_sessions(older_than_days: int = 30) -> int:
    """Purge dead (expired or revoked) rows created before the cutoff."""
    now = utcnow()
    dead = db.or_(SessionToken.expires_at < now, SessionToken.is_revoked.is_(True))
    purged = (
        db.session.query(SessionToken)
        .filter(dead, SessionToken.created_at < now - timedelta(days=older_than_days))
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return purged
