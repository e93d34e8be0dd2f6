# Overview: Flask API routes for AI-assisted features; parses input and returns JSON responses.

"""
AI routes.

Advice and predictions read a user's spending and follow the
self-or-own-child rule. Expense parsing and the chat assistant only see
what the caller sends.
"""

from flask import Blueprint, jsonify, g

from ..services import ai_service
from ..services import user_service
from ..decorators import require_auth
from .helpers import json_error, get_json_body


ai_bp = Blueprint("ai", __name__, url_prefix="/api/ai")


@ai_bp.post("/process-expense")
def process_expense_route():
    try:
        data = get_json_body()
        return jsonify(ai_service.process_expense(data.get("text"))), 200
    except Exception as e:
        return json_error(e, "AI processing failed")


@ai_bp.get("/advice/<int:user_id>")
@require_auth
def advice_route(user_id: int):
    try:
        user = user_service.get_accessible_user(g.current_user, user_id)
        return jsonify(ai_service.financial_advice(user)), 200
    except Exception as e:
        return json_error(e, "AI advice failed")


@ai_bp.get("/predictions/<int:user_id>")
@require_auth
def predictions_route(user_id: int):
    try:
        user = user_service.get_accessible_user(g.current_user, user_id)
        return jsonify(ai_service.spending_predictions(user)), 200
    except Exception as e:
        return json_error(e, "AI prediction failed")


@ai_bp.post("/suggest")
def suggest_route():
    """Body: {message, budget, spent, userId?}."""
    try:
        data = get_json_body()
        result = ai_service.suggest(
            data.get("message"),
            budget=data.get("budget"),
            spent=data.get("spent"),
            user_id=data.get("userId"),
        )
        return jsonify(result), 200
    except Exception as e:
        return json_error(e, "AI suggestion failed")
