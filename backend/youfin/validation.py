from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime, Date, Float
from sqlalchemy.orm import DeclarativeMeta

from youfin.time_utils import parse_iso_datetime, parse_iso_date


# Maximum single amount: 9,999,999.99 EUR
MAX_AMOUNT_CENTS = 999_999_999
# Largest key SQLite and Postgres integer columns hold
MAX_RECORD_ID = 2**63 - 1

EMAIL_RE = re.compile(r"^\S+@\S+\.\S+$")

USER_ROLES = ("business", "parent", "child")
BUSINESS_PROFILE_TYPES = ("retail", "food", "entertainment", "education", "other")
BUSINESS_TYPES = ("food", "shopping", "entertainment", "education", "bank")
SPENDING_CATEGORIES = ("food", "shopping", "entertainment", "education", "transport", "other")
PAYMENT_METHODS = ("cash", "card", "digital")
ALLOWANCE_FREQUENCIES = ("daily", "weekly", "monthly")
THEMES = ("light", "dark")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """Duplicate record (e.g., email already registered)."""


class AuthenticationError(Exception):
    """401-level credential problem."""


class PermissionDeniedError(Exception):
    """403-level: authenticated but not allowed."""


class NotFoundError(LookupError):
    """404-level: referenced record does not exist."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: maps wire keys (camelCase) to model attributes
    - required_on_create: wire keys required for POST
    """
    writable_fields: dict[str, str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, key: str, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{key} must be a boolean")

    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            return int(value.strip())
        raise ValidationError(f"{key} must be an integer")

    if isinstance(coltype, Float):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        raise ValidationError(f"{key} must be a number")

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{key} must be a datetime")

    if isinstance(coltype, Date):
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{key} must be an ISO-8601 date")
            if d is None:
                raise ValidationError(f"{key} must be an ISO-8601 date")
            return d
        raise ValidationError(f"{key} must be a date")

    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{key} must be a string")
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a patch dict keyed by model attribute names.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        attr = policy.writable_fields[k]
        col = cols[attr]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[attr] = None
            continue

        val = _coerce_value(col, k, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[attr] = val

    return patch


def require_fields(data: dict, *fields: str) -> None:
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def parse_record_id(value: Any) -> int:
    """Primary key from JSON or a URL segment. Raises ValueError or TypeError when unusable."""
    if isinstance(value, bool):
        raise TypeError("id must be an integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError("id must be an integer")
        value = int(value)
    record_id = int(value)
    if not 0 < record_id <= MAX_RECORD_ID:
        raise ValueError("id out of range")
    return record_id


def optional_text(value: Any, field: str, max_length: int | None = None) -> str | None:
    """
    Free-text JSON field -> stripped str or None.

    Numbers are accepted and stringified; objects, lists and booleans are not.
    """
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ValidationError(f"{field} must be a string")
    text = str(value).strip()
    if not text:
        return None
    return text[:max_length] if max_length else text


def require_text(data: dict, field: str, max_length: int | None = None) -> str:
    text = optional_text(data.get(field), field, max_length)
    if text is None:
        raise ValidationError(f"Missing required fields: {field}")
    return text


def normalize_email(value: Any) -> str:
    if not isinstance(value, str) or not EMAIL_RE.match(value.strip()):
        raise ValidationError("Invalid email format")
    return value.strip().lower()


def validate_password_strength(password: Any) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one digit
    - At least one special character
    """
    if not isinstance(password, str) or len(password) < 8:
        raise ValidationError("Password must be at least 8 characters")
    if not re.search(r"[A-Z]", password):
        raise ValidationError("Password must contain at least one uppercase letter")
    if not re.search(r"[0-9]", password):
        raise ValidationError("Password must contain at least one number")
    if not re.search(r"[!@#$%^&*(),.?\":{}|<>]", password):
        raise ValidationError("Password must contain at least one special character")


def validate_choice(value: Any, choices: tuple[str, ...], field: str) -> str:
    if value not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return value


def parse_amount_cents(value: Any, field: str = "amount") -> int:
    """Decimal euro amount from JSON -> positive integer cents."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number")
    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents <= 0:
        raise ValidationError(f"{field} must be greater than 0")
    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} is too large")
    return cents


def parse_non_negative_cents(value: Any, field: str) -> int:
    if value in (None, ""):
        return 0
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"{field} must be >= 0")
    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} is too large")
    return cents


def parse_coordinate(value: Any, field: str, *, low: float, high: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not low <= number <= high:
        raise ValidationError(f"{field} must be between {low} and {high}")
    return number


def parse_lat_lng(lat: Any, lng: Any) -> tuple[float, float]:
    if lat in (None, "") or lng in (None, ""):
        raise ValidationError("Location coordinates are required")
    return (
        parse_coordinate(lat, "lat", low=-90, high=90),
        parse_coordinate(lng, "lng", low=-180, high=180),
    )


def parse_distance(value: Any, default: float) -> float:
    if value in (None, ""):
        return default
    try:
        distance = float(value)
    except (TypeError, ValueError):
        raise ValidationError("distance must be a number")
    if distance <= 0:
        raise ValidationError("distance must be > 0")
    return distance


def cents_to_amount(cents: int | None) -> float:
    return round((cents or 0) / 100, 2)
