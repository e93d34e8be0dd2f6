# Overview: Service-layer operations for businesses and their offers.

"""
Business Service

Businesses are public records; offers are embedded per business. A caught
(claimed) offer is deactivated so it can be caught only once.

Nearby queries filter by great-circle distance (see geo_utils) and return
results nearest first.
"""

from ..extensions import db
from ..models import Business, Offer, Spending, User
from youfin.geo_utils import haversine_m, within_radius
from youfin.time_utils import utcnow, parse_iso_datetime
from youfin.models.business import WEEKDAYS
from youfin.validation import (
    ValidationError,
    NotFoundError,
    BUSINESS_TYPES,
    require_fields,
    require_text,
    optional_text,
    validate_choice,
    parse_lat_lng,
    parse_record_id,
)


DEFAULT_NEARBY_DISTANCE_M = 5000
CATCH_DEAL_RANGE_M = 100

SEED_BUSINESSES = [
    {
        "name": "Tirana Coffee Shop",
        "type": "food",
        "lat": 41.3275,
        "lng": 19.8187,
        "address": {"street": "Rruga Myslym Shyri", "city": "Tirana", "country": "Albania"},
        "description": "Popular coffee shop in central Tirana",
        "budgetCategory": "dining",
        "priceLevel": 2,
    },
    {
        "name": "Raiffeisen Bank - Tirana Main",
        "type": "bank",
        "lat": 41.3280,
        "lng": 19.8195,
        "address": {"street": "Bulevardi Bajram Curri", "city": "Tirana", "country": "Albania"},
        "description": "Main branch of Raiffeisen Bank",
        "raiffeisenInfo": "Learn about student savings accounts and financial literacy programs",
    },
    {
        "name": "TEG Shopping Center",
        "type": "shopping",
        "lat": 41.3200,
        "lng": 19.8450,
        "address": {"street": "Rruga e Elbasanit", "city": "Tirana", "country": "Albania"},
        "description": "Largest shopping mall in Tirana",
        "budgetCategory": "shopping",
        "priceLevel": 3,
    },
]


def list_businesses() -> list[Business]:
    return db.session.query(Business).order_by(Business.id).all()


def get_business(business_id) -> Business:
    try:
        business = db.session.get(Business, parse_record_id(business_id))
    except (TypeError, ValueError):
        business = None
    if not business:
        raise NotFoundError("Business not found")
    return business


def find_nearby(lat: float, lng: float, distance_m: float = DEFAULT_NEARBY_DISTANCE_M) -> list[tuple[Business, float]]:
    """(business, distance_m) pairs within distance_m, nearest first."""
    return within_radius(list_businesses(), lat, lng, distance_m)


def find_by_type(business_type: str) -> list[Business]:
    validate_choice(business_type, BUSINESS_TYPES, "type")
    return db.session.query(Business).filter_by(type=business_type).order_by(Business.id).all()


def active_offers_by_business() -> list[dict]:
    """Businesses having at least one active offer, with those offers."""
    now = utcnow()
    grouped = []
    businesses = (
        db.session.query(Business)
        .join(Offer)
        .filter(Offer.is_active.is_(True))
        .distinct()
        .order_by(Business.id)
        .all()
    )
    for business in businesses:
        offers = business.active_offers(now)
        if offers:
            grouped.append({
                "businessId": business.id,
                "businessName": business.name,
                "offers": [o.to_dict() for o in offers],
            })
    return grouped


def _parse_operating_hours(value) -> dict | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValidationError("operatingHours must be an object")
    hours = {}
    for day, window in value.items():
        if day not in WEEKDAYS:
            raise ValidationError(f"operatingHours has unknown day: {day}")
        if not isinstance(window, dict):
            raise ValidationError(f"operatingHours.{day} must be an object")
        hours[day] = {"open": window.get("open"), "close": window.get("close")}
    return hours


def _parse_rating(value) -> float:
    if value in (None, ""):
        return 0
    try:
        rating = float(value)
    except (TypeError, ValueError):
        raise ValidationError("rating must be a number")
    if not 0 <= rating <= 5:
        raise ValidationError("rating must be between 0 and 5")
    return rating


def _parse_price_level(value) -> int:
    if value in (None, ""):
        return 1
    if isinstance(value, bool) or not isinstance(value, (int, str)) or not str(value).isdigit():
        raise ValidationError("priceLevel must be an integer")
    level = int(value)
    if not 1 <= level <= 3:
        raise ValidationError("priceLevel must be between 1 and 3")
    return level


def create_business(data: dict) -> Business:
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    require_fields(data, "name", "type")
    lat, lng = parse_lat_lng(data.get("lat"), data.get("lng"))

    address = data.get("address") or {}
    if not isinstance(address, dict):
        raise ValidationError("address must be an object")

    business = Business(
        name=require_text(data, "name", 255),
        type=validate_choice(data["type"], BUSINESS_TYPES, "type"),
        latitude=lat,
        longitude=lng,
        street=optional_text(address.get("street"), "street", 255),
        city=optional_text(address.get("city"), "city", 128),
        country=optional_text(address.get("country"), "country", 128) or "Albania",
        description=optional_text(data.get("description"), "description"),
        budget_category=optional_text(data.get("budgetCategory"), "budgetCategory", 64),
        raiffeisen_info=optional_text(data.get("raiffeisenInfo"), "raiffeisenInfo"),
        operating_hours=_parse_operating_hours(data.get("operatingHours")),
        rating=_parse_rating(data.get("rating")),
        price_level=_parse_price_level(data.get("priceLevel")),
    )
    db.session.add(business)
    db.session.commit()
    return business


def add_offer(business_id, data: dict) -> Business:
    business = get_business(business_id)
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    require_fields(data, "title")

    valid_until = None
    raw_until = data.get("validUntil")
    if raw_until not in (None, ""):
        if not isinstance(raw_until, str):
            raise ValidationError("validUntil must be an ISO-8601 datetime")
        try:
            valid_until = parse_iso_datetime(raw_until)
        except ValueError:
            raise ValidationError("validUntil must be an ISO-8601 datetime")

    is_active = data.get("isActive", True)
    if not isinstance(is_active, bool):
        raise ValidationError("isActive must be a boolean")

    business.offers.append(Offer(
        title=require_text(data, "title", 255),
        description=optional_text(data.get("description"), "description"),
        discount=optional_text(data.get("discount"), "discount", 64),
        valid_until=valid_until,
        is_active=is_active,
    ))
    db.session.commit()
    return business


def seed_businesses() -> list[Business]:
    """Insert the demo Tirana businesses."""
    created = [create_business(dict(item)) for item in SEED_BUSINESSES]
    return created


def catch_deal(user: User, data: dict) -> dict:
    """
    Claim an active offer while standing within CATCH_DEAL_RANGE_M.

    location is [lat, lng]. Returns the claimed offer, the business type and
    the user's 10 most recent spendings.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    require_fields(data, "businessId", "offerId", "location")

    business = get_business(data["businessId"])

    location = data["location"]
    if not isinstance(location, (list, tuple)) or len(location) != 2:
        raise ValidationError("location must be [lat, lng]")
    lat, lng = parse_lat_lng(location[0], location[1])

    offer = next((o for o in business.offers if str(o.id) == str(data["offerId"])), None)
    if offer is None or not offer.is_available():
        raise ValidationError("Offer not available")

    distance = haversine_m(lat, lng, business.latitude, business.longitude)
    if distance > CATCH_DEAL_RANGE_M:
        raise ValidationError("Too far from the business to catch this deal")

    offer.is_active = False
    offer.claimed_by_user_id = user.id
    offer.claimed_at = utcnow()
    db.session.commit()

    history = (
        db.session.query(Spending)
        .filter_by(user_id=user.id)
        .order_by(Spending.occurred_at.desc(), Spending.id.desc())
        .limit(10)
        .all()
    )

    return {
        "offer": offer,
        "type": business.type,
        "distance": round(distance, 1),
        "userHistory": history,
    }
