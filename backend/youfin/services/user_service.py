# Overview: Service-layer operations for user profiles, children and savings goals.

"""
User Service

Access rule shared by every /api/users operation: a user may act on their
own record, and a parent may act on the records of their own children.
"""

from ..extensions import db
from ..models import User, SavingsGoal
from . import auth_service
from youfin.validation import (
    ModelValidationPolicy,
    validate_payload,
    validate_choice,
    parse_amount_cents,
    parse_non_negative_cents,
    ValidationError,
    PermissionDeniedError,
    NotFoundError,
    THEMES,
    BUSINESS_PROFILE_TYPES,
    parse_record_id,
)
from youfin.time_utils import parse_iso_date


PROFILE_POLICY = ModelValidationPolicy(
    writable_fields={
        "firstName": "first_name",
        "lastName": "last_name",
        "username": "username",
        "avatar": "avatar",
        "description": "description",
        "businessName": "business_name",
        "businessType": "business_type",
    },
)

# Nested wire objects flattened onto columns
ADDRESS_COLUMNS = {
    "street": "address_street",
    "city": "address_city",
    "state": "address_state",
    "zipCode": "address_zip_code",
    "country": "address_country",
}
BUSINESS_ONLY_FIELDS = {"description", "businessName", "businessType", "address"}


def get_user(user_id) -> User:
    try:
        user = db.session.get(User, parse_record_id(user_id))
    except (TypeError, ValueError):
        user = None
    if not user:
        raise NotFoundError("User not found")
    return user


def can_access(actor: User, target: User) -> bool:
    if actor.id == target.id:
        return True
    return actor.is_parent() and target.parent_id == actor.id


def get_accessible_user(actor: User, user_id) -> User:
    """Load user_id and enforce the self-or-own-child rule."""
    target = get_user(user_id)
    if not can_access(actor, target):
        raise PermissionDeniedError("Not authorized to access this user")
    return target


def update_profile(actor: User, user_id, payload: dict) -> User:
    """
    Apply an allowlisted profile patch.

    Unknown fields are rejected. preferences and address are nested objects.
    """
    target = get_accessible_user(actor, user_id)
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    payload = dict(payload)
    preferences = payload.pop("preferences", None)
    address = payload.pop("address", None)

    if not target.is_business():
        used = BUSINESS_ONLY_FIELDS.intersection(payload)
        if address is not None:
            used.add("address")
        if used:
            raise ValidationError(f"Field not allowed: {sorted(used)[0]}")

    patch = validate_payload(model=User, payload=payload, policy=PROFILE_POLICY, partial=True)

    for attr in ("first_name", "last_name"):
        if attr in patch and (patch[attr] is None or len(patch[attr]) < 2):
            raise ValidationError(f"{attr} must be at least 2 characters")
    if "business_type" in patch:
        validate_choice(patch["business_type"], BUSINESS_PROFILE_TYPES, "businessType")

    if preferences is not None:
        if not isinstance(preferences, dict):
            raise ValidationError("preferences must be an object")
        unknown = set(preferences) - {"theme", "notifications"}
        if unknown:
            raise ValidationError(f"Field not allowed: preferences.{sorted(unknown)[0]}")
        if "theme" in preferences:
            patch["theme"] = validate_choice(preferences["theme"], THEMES, "theme")
        if "notifications" in preferences:
            if not isinstance(preferences["notifications"], bool):
                raise ValidationError("notifications must be a boolean")
            patch["notifications_enabled"] = preferences["notifications"]

    if address is not None:
        if not isinstance(address, dict):
            raise ValidationError("address must be an object")
        unknown = set(address) - set(ADDRESS_COLUMNS)
        if unknown:
            raise ValidationError(f"Field not allowed: address.{sorted(unknown)[0]}")
        for key, attr in ADDRESS_COLUMNS.items():
            if key in address:
                value = str(address[key] or "").strip()
                if not value:
                    raise ValidationError(f"address.{key} cannot be blank")
                patch[attr] = value

    for attr, value in patch.items():
        setattr(target, attr, value)
    db.session.commit()
    return target


def list_children(actor: User, parent_id) -> list[User]:
    parent = get_accessible_user(actor, parent_id)
    if not parent.is_parent():
        raise NotFoundError("Parent not found")
    return list(parent.children)


def add_child(actor: User, parent_id, payload: dict) -> User:
    """Create a child account under parent_id with registration validation."""
    parent = get_user(parent_id)
    if not parent.is_parent():
        raise NotFoundError("Parent not found")
    if actor.id != parent.id:
        raise PermissionDeniedError("Only the parent can add children")

    data = dict(payload or {})
    data["role"] = "child"
    data["parentId"] = parent.id
    child, _ = auth_service.register_user(data)
    return child


def list_goals(actor: User, user_id) -> list[SavingsGoal]:
    return list(get_accessible_user(actor, user_id).goals)


def add_goal(actor: User, user_id, payload: dict) -> SavingsGoal:
    target = get_accessible_user(actor, user_id)
    payload = payload or {}

    name = str(payload.get("name") or "").strip()
    if not name:
        raise ValidationError("Goal name is required")

    deadline = None
    if payload.get("deadline"):
        try:
            deadline = parse_iso_date(payload["deadline"])
        except (TypeError, ValueError):
            raise ValidationError("deadline must be an ISO-8601 date")

    goal = SavingsGoal(
        user_id=target.id,
        name=name[:255],
        target_amount_cents=parse_amount_cents(payload.get("targetAmount"), "targetAmount"),
        current_amount_cents=parse_non_negative_cents(payload.get("currentAmount"), "currentAmount"),
        deadline=deadline,
    )
    db.session.add(goal)
    db.session.commit()
    return goal


def add_goal_progress(actor: User, user_id, goal_id, amount) -> SavingsGoal:
    """Add amount to the goal's current progress."""
    target = get_accessible_user(actor, user_id)
    goal = db.session.query(SavingsGoal).filter_by(id=goal_id, user_id=target.id).first()
    if not goal:
        raise NotFoundError("Goal not found")

    goal.current_amount_cents += parse_amount_cents(amount, "amount")
    db.session.commit()
    return goal
