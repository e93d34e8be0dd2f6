# Overview: Flask API routes for spending operations; parses input and returns JSON responses.

"""
Spending routes.

SECURITY: All routes require authentication. Spending is always recorded for
the caller; history and reports follow the self-or-own-child rule; approval
is reserved for the child's parent.
"""

from flask import Blueprint, request, jsonify, g

from ..services import spending_service
from ..decorators import require_auth, require_role
from ..validation import parse_lat_lng, parse_distance
from .helpers import json_error, get_json_body


spending_bp = Blueprint("spending", __name__, url_prefix="/api/spending")


@spending_bp.post("")
@require_auth
def create_spending_route():
    try:
        spending = spending_service.create_spending(g.current_user, get_json_body())
        body = spending.to_dict()
        if not spending.is_approved_by_parent:
            body["message"] = "Spending is waiting for parent approval"
        return jsonify(body), 201
    except Exception as e:
        return json_error(e, "Failed to create spending")


@spending_bp.post("/<int:spending_id>/approve")
@require_auth
@require_role("parent")
def approve_spending_route(spending_id: int):
    try:
        spending = spending_service.approve_spending(g.current_user, spending_id)
        return jsonify(spending.to_dict()), 200
    except Exception as e:
        return json_error(e, "Failed to approve spending")


@spending_bp.get("/pending")
@require_auth
@require_role("parent")
def pending_spending_route():
    try:
        pending = spending_service.list_pending(g.current_user)
        return jsonify([s.to_dict(include_business=True) for s in pending]), 200
    except Exception as e:
        return json_error(e, "Failed to list pending spending")


@spending_bp.get("/user/<int:user_id>")
@require_auth
def spending_history_route(user_id: int):
    try:
        history = spending_service.history(g.current_user, user_id)
        return jsonify([s.to_dict(include_business=True) for s in history]), 200
    except Exception as e:
        return json_error(e, "Failed to load spending history")


@spending_bp.get("/user/<int:user_id>/categories")
@require_auth
def spending_categories_route(user_id: int):
    """Query: startDate, endDate (ISO-8601, default last 30 days)."""
    try:
        totals = spending_service.totals_by_category(
            g.current_user,
            user_id,
            request.args.get("startDate"),
            request.args.get("endDate"),
        )
        return jsonify(totals), 200
    except Exception as e:
        return json_error(e, "Failed to load spending by category")


@spending_bp.get("/user/<int:user_id>/daily")
@require_auth
def spending_daily_route(user_id: int):
    """Query: days (default 7)."""
    try:
        totals = spending_service.daily_totals(g.current_user, user_id, request.args.get("days", 7))
        return jsonify(totals), 200
    except Exception as e:
        return json_error(e, "Failed to load daily spending")


@spending_bp.get("/nearby")
@require_auth
def nearby_spending_route():
    """Query: lat, lng, distance (metres, default 1000)."""
    try:
        lat, lng = parse_lat_lng(request.args.get("lat"), request.args.get("lng"))
        distance = parse_distance(request.args.get("distance"), spending_service.DEFAULT_NEARBY_DISTANCE_M)
        hits = spending_service.nearby(g.current_user, lat, lng, distance)
        return jsonify([
            {**spending.to_dict(include_business=True), "distance": round(meters, 1)}
            for spending, meters in hits
        ]), 200
    except Exception as e:
        return json_error(e, "Failed to find nearby spending")
