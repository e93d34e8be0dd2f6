# Overview: Flask API routes for businesses and offers; parses input and returns JSON responses.

"""
Business routes.

Browsing, creation and seeding are public. Catching a deal requires
authentication (the claim is recorded against the caller).
"""

from flask import Blueprint, request, jsonify, g

from ..services import business_service
from ..services import ai_service
from ..decorators import require_auth
from ..validation import parse_lat_lng, parse_distance
from .helpers import json_error, get_json_body


businesses_bp = Blueprint("businesses", __name__, url_prefix="/api/businesses")


@businesses_bp.get("")
def list_businesses_route():
    try:
        return jsonify([b.to_dict() for b in business_service.list_businesses()]), 200
    except Exception as e:
        return json_error(e, "Failed to list businesses")


@businesses_bp.get("/nearby")
def nearby_businesses_route():
    """Query: lat, lng, distance (metres, default 5000)."""
    try:
        lat, lng = parse_lat_lng(request.args.get("lat"), request.args.get("lng"))
        distance = parse_distance(request.args.get("distance"), business_service.DEFAULT_NEARBY_DISTANCE_M)
        hits = business_service.find_nearby(lat, lng, distance)
        return jsonify([
            {**business.to_dict(), "distance": round(meters, 1)}
            for business, meters in hits
        ]), 200
    except Exception as e:
        return json_error(e, "Failed to find nearby businesses")


@businesses_bp.get("/type/<business_type>")
def businesses_by_type_route(business_type: str):
    try:
        return jsonify([b.to_dict() for b in business_service.find_by_type(business_type)]), 200
    except Exception as e:
        return json_error(e, "Failed to list businesses by type")


@businesses_bp.get("/offers")
def active_offers_route():
    try:
        return jsonify(business_service.active_offers_by_business()), 200
    except Exception as e:
        return json_error(e, "Failed to list active offers")


@businesses_bp.get("/<int:business_id>")
def get_business_route(business_id: int):
    try:
        return jsonify(business_service.get_business(business_id).to_dict()), 200
    except Exception as e:
        return json_error(e, "Failed to load business")


@businesses_bp.post("")
def create_business_route():
    try:
        business = business_service.create_business(get_json_body())
        return jsonify(business.to_dict()), 201
    except Exception as e:
        return json_error(e, "Failed to create business")


@businesses_bp.post("/<int:business_id>/offers")
def add_offer_route(business_id: int):
    try:
        business = business_service.add_offer(business_id, get_json_body())
        return jsonify(business.to_dict()), 200
    except Exception as e:
        return json_error(e, "Failed to add offer")


@businesses_bp.post("/seed")
def seed_businesses_route():
    try:
        created = business_service.seed_businesses()
        return jsonify({
            "message": "Seed data inserted successfully",
            "count": len(created),
        }), 201
    except Exception as e:
        return json_error(e, "Failed to seed businesses")


@businesses_bp.post("/catch-deal")
@require_auth
def catch_deal_route():
    """Body: {businessId, offerId, location: [lat, lng]}; must be within 100 m."""
    try:
        result = business_service.catch_deal(g.current_user, get_json_body())
        return jsonify({
            "message": "Deal caught successfully!",
            "offer": result["offer"].to_dict(),
            "type": result["type"],
            "distance": result["distance"],
            "userHistory": [s.to_dict() for s in result["userHistory"]],
        }), 200
    except Exception as e:
        return json_error(e, "Failed to catch deal")


@businesses_bp.post("/analyze-deal")
def analyze_deal_route():
    try:
        data = get_json_body()
        result = ai_service.analyze_deal(data.get("dealType"), data.get("userHistory"))
        return jsonify(result), 200
    except Exception as e:
        return json_error(e, "Failed to analyze deal")
