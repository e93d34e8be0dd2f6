# Overview: Service-layer operations for spending; encapsulates business logic and database work.

"""
Spending Service

Recording, parent approval and reporting of expenses.

APPROVAL RULE:
- Spending by a child above CHILD_APPROVAL_THRESHOLD_CENTS is stored with
  is_approved_by_parent=False and the parent is notified.
- Everything else is approved on creation.
- Only approved spending counts towards the user's running spent total.
- Approval flips false -> true exactly once.
"""

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Spending, User
from . import email_service
from .business_service import get_business
from .user_service import get_accessible_user
from youfin.geo_utils import within_radius
from youfin.time_utils import utcnow, days_ago, parse_iso_datetime
from youfin.validation import (
    ValidationError,
    PermissionDeniedError,
    NotFoundError,
    SPENDING_CATEGORIES,
    PAYMENT_METHODS,
    validate_choice,
    parse_amount_cents,
    cents_to_amount,
    parse_record_id,
    optional_text,
)


DEFAULT_NEARBY_DISTANCE_M = 1000
MAX_DAILY_DAYS = 366
RECEIPT_URL_MAX = 1024


def _approval_threshold_cents() -> int:
    return int(current_app.config.get("CHILD_APPROVAL_THRESHOLD_CENTS", 2000))


def _parse_tags(value) -> list[str]:
    if value in (None, ""):
        return []
    if not isinstance(value, list) or not all(isinstance(t, str) for t in value):
        raise ValidationError("tags must be a list of strings")
    return [t.strip() for t in value if t.strip()]


def _parse_receipt(value) -> str | None:
    """Optional {url} of an already uploaded receipt image."""
    if value in (None, ""):
        return None
    if not isinstance(value, dict):
        raise ValidationError("receipt must be an object")
    url = optional_text(value.get("url"), "receipt.url", RECEIPT_URL_MAX)
    if url is None:
        raise ValidationError("receipt.url is required")
    if not url.lower().startswith(("http://", "https://")):
        raise ValidationError("receipt.url must be an http(s) URL")
    return url


def _notify_parent(child: User, spending: Spending) -> None:
    parent = child.parent
    current_app.logger.info(
        "Spending approval needed: spending %s by user %s (%.2f EUR)",
        spending.id, child.id, cents_to_amount(spending.amount_cents),
    )
    if parent is None or not parent.notifications_enabled:
        return
    email_service.send_notification_email(
        parent.email,
        "YouFin - Spending approval needed",
        f"{child.first_name} wants to spend {cents_to_amount(spending.amount_cents):.2f} EUR. "
        "Open YouFin to approve it.",
    )


def create_spending(user: User, data: dict) -> Spending:
    """
    Record spending at a business for user.

    Category defaults from the business type (bank -> other). Coordinates
    are copied from the business.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    if data.get("businessId") in (None, ""):
        raise ValidationError("businessId is required")

    amount_cents = parse_amount_cents(data.get("amount"))
    business = get_business(data["businessId"])

    category = data.get("category")
    if category in (None, ""):
        category = business.type if business.type in SPENDING_CATEGORIES else "other"
    else:
        validate_choice(category, SPENDING_CATEGORIES, "category")

    payment_method = validate_choice(data.get("paymentMethod") or "cash", PAYMENT_METHODS, "paymentMethod")

    description = optional_text(data.get("description"), "description", 500)
    receipt_url = _parse_receipt(data.get("receipt"))

    needs_approval = user.is_child() and amount_cents > _approval_threshold_cents()
    now = utcnow()

    spending = Spending(
        user_id=user.id,
        business_id=business.id,
        amount_cents=amount_cents,
        description=description,
        category=category,
        occurred_at=now,
        latitude=business.latitude,
        longitude=business.longitude,
        payment_method=payment_method,
        is_approved_by_parent=not needs_approval,
        tags=_parse_tags(data.get("tags")),
        receipt_url=receipt_url,
        receipt_uploaded_at=now if receipt_url else None,
    )
    if not needs_approval:
        user.spent_cents = (user.spent_cents or 0) + amount_cents

    db.session.add(spending)
    db.session.commit()

    if needs_approval:
        _notify_parent(user, spending)

    return spending


def get_spending(spending_id) -> Spending:
    try:
        spending = db.session.get(Spending, parse_record_id(spending_id))
    except (TypeError, ValueError):
        spending = None
    if not spending:
        raise NotFoundError("Spending not found")
    return spending


def approve_spending(parent: User, spending_id) -> Spending:
    spending = get_spending(spending_id)
    owner = spending.user
    if owner is None:
        raise NotFoundError("User not found")

    if not parent.is_parent() or owner.parent_id != parent.id:
        raise PermissionDeniedError("Not authorized")

    if spending.is_approved_by_parent:
        raise ValidationError("Spending is already approved")

    # Conditional flip: only one of two concurrent approvals matches the row.
    flipped = (
        db.session.query(Spending)
        .filter(Spending.id == spending.id, Spending.is_approved_by_parent.is_(False))
        .update(
            {
                Spending.is_approved_by_parent: True,
                Spending.approved_by_user_id: parent.id,
                Spending.approved_at: utcnow(),
            },
            synchronize_session=False,
        )
    )
    if flipped != 1:
        db.session.rollback()
        raise ValidationError("Spending is already approved")

    db.session.query(User).filter(User.id == owner.id).update(
        {User.spent_cents: func.coalesce(User.spent_cents, 0) + spending.amount_cents},
        synchronize_session=False,
    )
    db.session.commit()
    return spending


def list_pending(parent: User) -> list[Spending]:
    """Children's spending awaiting this parent's approval, oldest first."""
    if not parent.is_parent():
        raise PermissionDeniedError("Only parents can review pending spending")
    child_ids = [c.id for c in parent.children]
    if not child_ids:
        return []
    return (
        db.session.query(Spending)
        .filter(Spending.user_id.in_(child_ids), Spending.is_approved_by_parent.is_(False))
        .order_by(Spending.occurred_at, Spending.id)
        .all()
    )


def history(actor: User, user_id) -> list[Spending]:
    target = get_accessible_user(actor, user_id)
    return (
        db.session.query(Spending)
        .filter_by(user_id=target.id)
        .order_by(Spending.occurred_at.desc(), Spending.id.desc())
        .all()
    )


def _parse_range_bound(value, field: str, default: datetime) -> datetime:
    if value in (None, ""):
        return default
    try:
        parsed = parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date or datetime")
    return parsed or default


def totals_by_category(actor: User, user_id, start_date=None, end_date=None) -> list[dict]:
    """
    Sum of spending per category between start_date and end_date
    (default: last 30 days up to now).
    """
    target = get_accessible_user(actor, user_id)
    now = utcnow()
    start = _parse_range_bound(start_date, "startDate", days_ago(30, now))
    end = _parse_range_bound(end_date, "endDate", now)
    if start > end:
        raise ValidationError("startDate must be before endDate")

    rows = (
        db.session.query(
            Spending.category.label("category"),
            func.coalesce(func.sum(Spending.amount_cents), 0).label("total_cents"),
            func.count(Spending.id).label("count"),
        )
        .filter(
            Spending.user_id == target.id,
            Spending.occurred_at >= start,
            Spending.occurred_at <= end,
        )
        .group_by(Spending.category)
        .order_by(Spending.category)
        .all()
    )
    return [
        {
            "category": row.category,
            "total": cents_to_amount(row.total_cents),
            "totalCents": int(row.total_cents),
            "count": int(row.count),
        }
        for row in rows
    ]


def daily_totals(actor: User, user_id, days=7) -> list[dict]:
    """Sum of spending per calendar day (UTC) over the last N days, ascending."""
    target = get_accessible_user(actor, user_id)
    try:
        days = int(days)
    except (TypeError, ValueError):
        raise ValidationError("days must be an integer")
    if not 1 <= days <= MAX_DAILY_DAYS:
        raise ValidationError(f"days must be between 1 and {MAX_DAILY_DAYS}")

    day_expr = func.date(Spending.occurred_at)
    rows = (
        db.session.query(
            day_expr.label("day"),
            func.coalesce(func.sum(Spending.amount_cents), 0).label("total_cents"),
        )
        .filter(Spending.user_id == target.id, Spending.occurred_at >= days_ago(days))
        .group_by(day_expr)
        .order_by(day_expr)
        .all()
    )
    return [
        {
            "date": str(row.day),
            "total": cents_to_amount(row.total_cents),
            "totalCents": int(row.total_cents),
        }
        for row in rows
    ]


def nearby(actor: User, lat: float, lng: float, distance_m: float = DEFAULT_NEARBY_DISTANCE_M) -> list[tuple[Spending, float]]:
    """
    The actor's visible spending (own, plus children's for a parent) within
    distance_m of (lat, lng), nearest first.
    """
    user_ids = [actor.id]
    if actor.is_parent():
        user_ids.extend(c.id for c in actor.children)
    candidates = db.session.query(Spending).filter(Spending.user_id.in_(user_ids)).all()
    return within_radius(candidates, lat, lng, distance_m)
