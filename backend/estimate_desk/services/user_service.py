# Overview: Service-layer operations for admin user management.

"""
User Management Service

Admins list, edit, deactivate and delete accounts. Anyone may edit their own
basic details here, but only an admin may change role or is_active.

SECURITY: Changing a user's role, deactivating them or deleting them revokes
every open session, so the change takes effect on their next request.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..errors import ConflictError, NotFoundError, PermissionDenied, ValidationError
from ..models import ROLES, Brand, Customer, Estimate, Item, User
from ..validation import normalize_tags
from . import session_service
from .auth_service import clean_email, clean_required, ensure_unique_contact
from .pagination import paginate
from .security_service import log_security_event


ADMIN_ONLY_FIELDS = ("role", "is_active")


def list_users(*, role=None, search=None, page: int = 1, limit: int = 10) -> dict:
    query = db.session.query(User)
    if role:
        if role not in ROLES:
            raise ValidationError(f"role must be one of: {', '.join(ROLES)}", param="role")
        query = query.filter(User.role == role)
    if search:
        like = f"%{search}%"
        query = query.filter(or_(User.name.ilike(like), User.email.ilike(like), User.phone.ilike(like)))
    query = query.order_by(User.created_at.desc(), User.id.desc())
    return paginate(query, page=page, limit=limit, serialize=lambda u: u.to_dict())


def list_traders() -> list[dict]:
    """Active, approved traders (for the referral and admin trader pickers)."""
    traders = (
        db.session.query(User)
        .filter(
            User.role == "trader",
            User.is_active.is_(True),
            User.approval_status == "approved",
        )
        .order_by(User.name.asc())
        .all()
    )
    return [
        {"id": t.id, "name": t.name, "email": t.email, "business_name": t.business_name}
        for t in traders
    ]


def _get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def update_user(actor: User, user_id: int, payload: dict) -> User:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if actor.role != "admin" and actor.id != user_id:
        log_security_event(
            user_id=actor.id,
            event_type="USER_UPDATE_DENIED",
            success=False,
            resource="user",
            action=str(user_id),
            reason="Not authorized to update this user",
        )
        raise PermissionDenied("Not authorized to update this user")

    user = _get_user(user_id)

    if actor.role != "admin":
        blocked = [f for f in ADMIN_ONLY_FIELDS if f in payload]
        if blocked:
            raise PermissionDenied(f"Only an admin may change {', '.join(blocked)}")

    email = clean_email(payload["email"]) if "email" in payload else None
    phone = clean_required(payload["phone"], "phone", "Phone number cannot be empty") if "phone" in payload else None
    ensure_unique_contact(email, phone, exclude_user_id=user.id)

    if "name" in payload:
        user.name = clean_required(payload["name"], "name", "Name cannot be empty")
    if email:
        user.email = email
    if phone:
        user.phone = phone
    if "tags" in payload:
        user.tags = normalize_tags(payload["tags"], max_tags=current_app.config.get("MAX_USER_TAGS", 10))

    revoke_reason = None
    if "role" in payload and payload["role"] != user.role:
        if payload["role"] not in ROLES:
            raise ValidationError(f"role must be one of: {', '.join(ROLES)}", param="role")
        if user.id == actor.id:
            raise ValidationError("You cannot change your own role", param="role")
        user.role = payload["role"]
        # Admin-set roles are approved as part of the change
        user.approval_status = "approved" if user.needs_approval else None
        revoke_reason = "Role changed"

    if "is_active" in payload:
        if not isinstance(payload["is_active"], bool):
            raise ValidationError("is_active must be a boolean", param="is_active")
        if user.id == actor.id and payload["is_active"] is False:
            raise ValidationError("You cannot deactivate your own account", param="is_active")
        if user.is_active and payload["is_active"] is False:
            revoke_reason = "User account deactivated"
        user.is_active = payload["is_active"]

    if revoke_reason:
        session_service.revoke_all_user_sessions(user.id, revoke_reason, commit=False)

    db.session.commit()
    current_app.logger.info("User %s updated by %s", user.id, actor.id)
    return user


def _has_related_records(user: User) -> bool:
    checks = (
        db.session.query(Estimate.id).filter(or_(Estimate.trader_id == user.id, Estimate.customer_user_id == user.id)),
        db.session.query(Customer.id).filter(or_(Customer.trader_id == user.id, Customer.user_id == user.id)),
        db.session.query(Brand.id).filter(Brand.trader_id == user.id),
        db.session.query(Item.id).filter(Item.trader_id == user.id),
    )
    return any(q.first() is not None for q in checks)


def delete_user(actor: User, user_id: int) -> None:
    """
    Delete an account.

    Refused for the caller's own account, and for accounts that still own or
    are billed on business records; deactivate those instead. The account's
    sessions are deleted with it.
    """
    if actor.id == user_id:
        raise ValidationError("You cannot delete your own account")

    user = _get_user(user_id)
    if _has_related_records(user):
        raise ConflictError("User has estimates, customers or catalog records; deactivate the account instead")

    # Detach self-references so other accounts keep their history
    db.session.query(User).filter(User.approved_by_user_id == user.id).update(
        {User.approved_by_user_id: None}, synchronize_session=False
    )
    db.session.query(User).filter(User.referred_by_user_id == user.id).update(
        {User.referred_by_user_id: None}, synchronize_session=False
    )
    db.session.query(Customer).filter(Customer.referred_by_user_id == user.id).update(
        {Customer.referred_by_user_id: None}, synchronize_session=False
    )

    db.session.delete(user)
    db.session.commit()
    log_security_event(
        user_id=actor.id,
        event_type="USER_DELETED",
        success=True,
        resource="user",
        action=str(user_id),
    )
    current_app.logger.info("User %s deleted by admin %s", user_id, actor.id)
