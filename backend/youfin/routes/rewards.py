# Overview: Flask API routes for rewards; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..services import rewards_service
from ..decorators import require_auth
from ..validation import parse_lat_lng
from .helpers import json_error, get_json_body


rewards_bp = Blueprint("rewards", __name__, url_prefix="/api/rewards")


@rewards_bp.get("/nearby")
@require_auth
def nearby_rewards_route():
    try:
        lat, lng = parse_lat_lng(request.args.get("lat"), request.args.get("lng"))
        return jsonify(rewards_service.nearby_rewards(lat, lng)), 200
    except Exception as e:
        return json_error(e, "Failed to load nearby rewards")


@rewards_bp.post("/redeem")
@require_auth
def redeem_reward_route():
    try:
        data = get_json_body()
        redemption = rewards_service.redeem(g.current_user, data.get("rewardId"))
        return jsonify({
            "success": True,
            "message": "Reward successfully redeemed",
            "rewardId": redemption.reward_id,
            "redemption": redemption.to_dict(),
        }), 200
    except Exception as e:
        return json_error(e, "Failed to redeem reward")


@rewards_bp.get("/redeemed")
@require_auth
def redeemed_rewards_route():
    try:
        redemptions = rewards_service.redeemed(g.current_user)
        return jsonify({
            "redeemedRewards": [r.reward_id for r in redemptions],
            "redemptions": [r.to_dict() for r in redemptions],
        }), 200
    except Exception as e:
        return json_error(e, "Failed to load redeemed rewards")
