# backend/youfin/routes/system.py
"""
GET /api/health for load balancers and deploy scripts.

Each probe runs a few cheap queries and reports its own latency. Any failing
probe turns the whole answer into a 503.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import User, Business, Offer, SessionToken, Spending
from youfin.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def _run_probe(label: str, probe) -> dict:
    """Time probe(); a raised error becomes an unhealthy entry."""
    started = time.perf_counter()
    try:
        details = probe()
        result = {"status": "healthy", "details": details}
    except Exception:
        current_app.logger.exception("Health probe %s failed", label)
        db.session.rollback()
        result = {"status": "unhealthy", "error": f"{label} error"}
    result["latency_ms"] = round((time.perf_counter() - started) * 1000, 2)
    return result


def _database_details() -> dict:
    return {
        "users": db.session.query(User).count(),
        "businesses": db.session.query(Business).count(),
    }


def _session_details() -> dict:
    open_sessions = db.session.query(SessionToken).filter(SessionToken.is_revoked.is_(False))
    return {
        "active_sessions": open_sessions.count(),
        "expired_pending_cleanup": open_sessions.filter(SessionToken.expires_at < utcnow()).count(),
    }


def _activity_details() -> dict:
    return {
        "pending_approvals": db.session.query(Spending).filter(
            Spending.is_approved_by_parent.is_(False)
        ).count(),
        "active_offers": db.session.query(Offer).filter(Offer.is_active.is_(True)).count(),
    }


@system_bp.get("/health")
def health():
    started = time.perf_counter()
    checks = {
        "database": _run_probe("Database", _database_details),
        "session_service": _run_probe("Session service", _session_details),
        "activity": _run_probe("Activity", _activity_details),
    }
    healthy = all(check["status"] == "healthy" for check in checks.values())

    body = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "environment": current_app.config.get("APP_ENV"),
        "total_latency_ms": round((time.perf_counter() - started) * 1000, 2),
        "checks": checks,
    }
    return body, 200 if healthy else 503
