# Overview: Flask API routes for user profiles, children and savings goals.

"""
User routes.

SECURITY: All routes require authentication. A user may read and update
their own record; a parent may also read and update their children.
"""

from flask import Blueprint, jsonify, g

from ..services import user_service
from ..decorators import require_auth
from .helpers import json_error, get_json_body


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("/<int:user_id>")
@require_auth
def get_user_route(user_id: int):
    try:
        user = user_service.get_accessible_user(g.current_user, user_id)
        return jsonify(user.to_dict()), 200
    except Exception as e:
        return json_error(e, "Failed to load user")


@users_bp.patch("/<int:user_id>")
@require_auth
def update_user_route(user_id: int):
    try:
        user = user_service.update_profile(g.current_user, user_id, get_json_body())
        return jsonify(user.to_dict()), 200
    except Exception as e:
        return json_error(e, "Failed to update user")


@users_bp.get("/<int:parent_id>/children")
@require_auth
def list_children_route(parent_id: int):
    try:
        children = user_service.list_children(g.current_user, parent_id)
        return jsonify([child.to_dict() for child in children]), 200
    except Exception as e:
        return json_error(e, "Failed to list children")


@users_bp.post("/<int:parent_id>/children")
@require_auth
def add_child_route(parent_id: int):
    try:
        child = user_service.add_child(g.current_user, parent_id, get_json_body())
        return jsonify(child.to_dict()), 201
    except Exception as e:
        return json_error(e, "Failed to add child")


@users_bp.get("/<int:user_id>/goals")
@require_auth
def list_goals_route(user_id: int):
    try:
        goals = user_service.list_goals(g.current_user, user_id)
        return jsonify([goal.to_dict() for goal in goals]), 200
    except Exception as e:
        return json_error(e, "Failed to list goals")


@users_bp.post("/<int:user_id>/goals")
@require_auth
def add_goal_route(user_id: int):
    try:
        goal = user_service.add_goal(g.current_user, user_id, get_json_body())
        return jsonify(goal.to_dict()), 201
    except Exception as e:
        return json_error(e, "Failed to add goal")


@users_bp.patch("/<int:user_id>/goals/<int:goal_id>")
@require_auth
def update_goal_route(user_id: int, goal_id: int):
    """Add {amount} to the goal's current progress."""
    try:
        data = get_json_body()
        goal = user_service.add_goal_progress(g.current_user, user_id, goal_id, data.get("amount"))
        return jsonify(goal.to_dict()), 200
    except Exception as e:
        return json_error(e, "Failed to update goal")
