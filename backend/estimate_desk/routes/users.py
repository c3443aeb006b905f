# Overview: Flask API routes for user management; parses input and returns JSON responses.

"""
User management routes.

SECURITY:
- Listing and deleting users is admin only
- Users may edit their own account; only admins may change role or is_active
- Role changes, deactivation and deletion revoke the user's sessions
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..services import user_service
from ..validation import json_body, page_args


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_role("admin")
def list_users_route():
    page, limit = page_args(request.args)
    result = user_service.list_users(
        role=request.args.get("role"),
        search=request.args.get("search"),
        page=page,
        limit=limit,
    )
    return jsonify(result)


@users_bp.get("/traders")
@require_auth
def list_traders_route():
    return jsonify(user_service.list_traders())


@users_bp.put("/<int:user_id>")
@require_auth
def update_user_route(user_id: int):
    user = user_service.update_user(g.current_user, user_id, json_body())
    return jsonify({"message": "User updated successfully", "user": user.to_dict()})


@users_bp.delete("/<int:user_id>")
@require_auth
@require_role("admin")
def delete_user_route(user_id: int):
    user_service.delete_user(g.current_user, user_id)
    return jsonify({"message": "User deleted successfully"})
