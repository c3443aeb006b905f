# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

SECURITY FEATURES:
- bcrypt password hashing, minimum length enforced on registration
- Opaque bearer session tokens (only the SHA-256 is stored)
- Trader/admin accounts cannot log in until an admin approves them
- Failed and blocked logins are written to the security event log
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ValidationError
from ..validation import json_body
from ..services import auth_service
from ..services import session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _issue_session(user):
    _, token = session_service.create_session(
        user,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return token


@auth_bp.post("/register")
def register_route():
    """
    Self-registration.

    Customers receive a token straight away. Traders and admins are created
    pending and receive no token until approved.
    """
    user = auth_service.register(json_body())

    if user.needs_approval:
        return jsonify({
            "message": auth_service.REGISTERED_PENDING_MESSAGE,
            "requires_approval": True,
            "user": user.to_dict(),
        }), 201

    return jsonify({
        "message": "Registration successful",
        "requires_approval": False,
        "token": _issue_session(user),
        "user": user.to_dict(),
    }), 201


@auth_bp.post("/register-customer")
def register_customer_route():
    user = auth_service.register_customer(json_body())
    return jsonify({
        "message": "Customer registration successful",
        "token": _issue_session(user),
        "user": user.to_dict(),
    }), 201


@auth_bp.post("/login")
def login_route():
    """
    Authenticate by email and password and create a session token.

    Token must be included in the Authorization header for protected routes.
    """
    data = json_body()
    email = data.get("email")
    password = data.get("password")

    if not email or not password:
        raise ValidationError(
            "Email and password are required",
            errors=[
                {"param": p, "msg": f"{p.capitalize()} is required"}
                for p in ("email", "password")
                if not data.get(p)
            ],
        )

    user = auth_service.authenticate(email, password)
    return jsonify({
        "message": "Login successful",
        "token": _issue_session(user),
        "user": user.to_dict(),
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the caller's session token."""
    session_service.revoke_session(g.session_token, reason="User logout")
    return jsonify({"message": "Logout successful"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify(g.current_user.to_dict())


@auth_bp.get("/profile")
@require_auth
def get_profile_route():
    return jsonify(g.current_user.to_dict())


@auth_bp.put("/profile")
@require_auth
def update_profile_route():
    user = auth_service.update_profile(g.current_user, json_body())
    return jsonify({"message": "Profile updated successfully", "user": user.to_dict()})


@auth_bp.put("/change-password")
@require_auth
def change_password_route():
    data = json_body()
    auth_service.change_password(g.current_user, data.get("current_password"), data.get("new_password"))
    return jsonify({"message": "Password changed successfully"})


@auth_bp.put("/tags")
@require_auth
def update_tags_route():
    tags = auth_service.update_tags(g.current_user, json_body().get("tags"))
    return jsonify({"message": "Tags updated successfully", "tags": tags})


# =============================================================================
# APPROVAL ROUTES (admin only)
# =============================================================================

@auth_bp.get("/pending-approvals")
@require_auth
@require_role("admin")
def pending_approvals_route():
    users = auth_service.list_pending_approvals()
    return jsonify({"items": [u.to_dict() for u in users], "count": len(users)})


@auth_bp.put("/approve-user/<int:user_id>")
@require_auth
@require_role("admin")
def approve_user_route(user_id: int):
    user = auth_service.approve_user(user_id, g.current_user)
    return jsonify({"message": "User approved successfully", "user": user.to_dict()})


@auth_bp.put("/reject-user/<int:user_id>")
@require_auth
@require_role("admin")
def reject_user_route(user_id: int):
    user = auth_service.reject_user(user_id, g.current_user, json_body().get("reason"))
    return jsonify({"message": "User rejected", "user": user.to_dict()})
