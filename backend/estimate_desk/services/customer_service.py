# backend/estimate_desk/services/customer_service.py
"""
Customer Directory Service

TENANCY: Every directory record belongs to one trader. Reads and writes go
through access_policy, so traders only see their own customers while admins
see all of them. Customer accounts have no access to the directory.

Phone numbers are unique within a trader's directory, not globally.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Customer, Estimate, User
from ..validation import (
    ModelValidationPolicy,
    REFERRAL_TYPES,
    normalize_address,
    normalize_tags,
    validate_payload,
)
from . import access_policy
from .pagination import paginate


CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "phone", "email", "address", "gst_number", "tags",
        "referred_by_user_id", "referred_by_type", "notes", "is_active", "user_id",
    },
    required_on_create={"name", "phone"},
    choices={"referred_by_type": REFERRAL_TYPES},
)

DUPLICATE_PHONE_MESSAGE = "Customer with this phone number already exists"


def _clean_patch(payload: dict, partial: bool) -> dict:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=partial)
    if "address" in patch:
        patch["address"] = normalize_address(patch["address"])
    if "tags" in patch:
        patch["tags"] = normalize_tags(patch["tags"])
    if patch.get("email") == "":
        patch["email"] = None
    if patch.get("user_id") is not None:
        linked = db.session.get(User, patch["user_id"])
        if not linked or linked.role != "customer":
            raise ValidationError("user_id must reference a registered customer account", param="user_id")
    if patch.get("referred_by_user_id") is not None:
        if not db.session.get(User, patch["referred_by_user_id"]):
            raise ValidationError("referred_by_user_id must reference an existing user", param="referred_by_user_id")
    return patch


def _ensure_unique_phone(trader_id: int, phone: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Customer).filter(Customer.trader_id == trader_id, Customer.phone == phone)
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    if query.first():
        raise ConflictError(DUPLICATE_PHONE_MESSAGE, param="phone")


def create_customer(actor: User, payload: dict) -> Customer:
    patch = _clean_patch(payload, partial=False)
    trader_id = access_policy.resolve_owner_id(actor, payload.get("trader_id"))
    _ensure_unique_phone(trader_id, patch["phone"])

    customer = Customer(trader_id=trader_id, **patch)
    db.session.add(customer)
    db.session.commit()
    current_app.logger.info("Customer %s created for trader %s", customer.id, trader_id)
    return customer


def _search_filter(term: str):
    like = f"%{term}%"
    return or_(Customer.name.ilike(like), Customer.phone.ilike(like), Customer.email.ilike(like))


def list_customers(actor: User, *, search=None, tag=None, page: int = 1, limit: int = 10, for_estimate: bool = False) -> dict:
    """
    Active directory customers in the actor's scope.

    for_estimate=True sorts by name (dropdown order) instead of newest first.
    """
    query = access_policy.scoped_query(actor, Customer).filter(Customer.is_active.is_(True))

    if search:
        query = query.filter(_search_filter(search))

    if tag:
        # JSON arrays are not portably indexable; match tags in Python
        ids = [c.id for c in query.all() if tag in (c.tags or [])]
        query = query.filter(Customer.id.in_(ids))

    if for_estimate:
        query = query.order_by(Customer.name.asc(), Customer.id.asc())
    else:
        query = query.order_by(Customer.created_at.desc(), Customer.id.desc())

    return paginate(query, page=page, limit=limit, serialize=lambda c: c.to_dict())


def _estimate_choice_from_customer(customer: Customer) -> dict:
    display = f"{customer.name} ({customer.phone})"
    if customer.email:
        display += f" - {customer.email}"
    return {
        "customer_kind": "directory",
        "id": customer.id,
        "name": customer.name,
        "phone": customer.phone,
        "email": customer.email or "",
        "address": dict(customer.address or {}),
        "full_address": customer.full_address,
        "gst_number": customer.gst_number or "",
        "tags": list(customer.tags or []),
        "display_name": display,
        "is_registered": customer.user_id is not None,
        "user_id": customer.user_id,
    }


def _estimate_choice_from_user(user: User) -> dict:
    profile = user.customer_profile or {}
    address = dict(profile.get("address") or {})
    display = f"{user.name} ({user.phone})"
    if user.email:
        display += f" - {user.email}"
    display += " [Registered]"
    return {
        "customer_kind": "registered",
        "id": user.id,
        "name": user.name,
        "phone": user.phone,
        "email": user.email or "",
        "address": address,
        "full_address": ", ".join(address.get(k) for k in ("street", "city", "state", "pincode") if address.get(k)),
        "gst_number": profile.get("gst_number") or "",
        "tags": list(user.tags or []),
        "display_name": display,
        "is_registered": True,
        "user_id": user.id,
        "company_name": profile.get("company_name") or "",
    }


def list_for_estimate(actor: User, *, search=None, limit: int = 1000) -> dict:
    """
    Every party the actor can bill: their active directory customers plus
    all active registered customer accounts, merged and sorted by name.
    """
    half = max(limit // 2, 1)

    directory = access_policy.scoped_query(actor, Customer).filter(Customer.is_active.is_(True))
    registered = db.session.query(User).filter(User.role == "customer", User.is_active.is_(True))

    if search:
        like = f"%{search}%"
        directory = directory.filter(_search_filter(search))
        registered = registered.filter(or_(User.name.ilike(like), User.phone.ilike(like), User.email.ilike(like)))

    choices = [
        _estimate_choice_from_customer(c)
        for c in directory.order_by(Customer.name.asc()).limit(half).all()
    ] + [
        _estimate_choice_from_user(u)
        for u in registered.order_by(User.name.asc()).limit(half).all()
    ]
    choices.sort(key=lambda c: c["name"].lower())

    return {"items": choices, "count": len(choices)}


def get_customer(actor: User, customer_id: int) -> Customer:
    return access_policy.require_access(actor, Customer, customer_id)


def find_by_phone(actor: User, phone: str) -> Customer:
    customer = (
        access_policy.scoped_query(actor, Customer)
        .filter(Customer.phone == phone.strip())
        .order_by(Customer.id.asc())
        .first()
    )
    if not customer:
        raise NotFoundError("Customer not found")
    return customer


def update_customer(actor: User, customer_id: int, payload: dict) -> Customer:
    customer = access_policy.require_access(actor, Customer, customer_id, write=True)
    patch = _clean_patch(payload, partial=True)

    if "phone" in patch and patch["phone"] != customer.phone:
        _ensure_unique_phone(customer.trader_id, patch["phone"], exclude_id=customer.id)

    for key, value in patch.items():
        setattr(customer, key, value)
    db.session.commit()
    return customer


def delete_customer(actor: User, customer_id: int) -> dict:
    """
    Delete a directory customer.

    A customer still referenced by estimates is deactivated instead, so
    issued estimates keep their bill-to details.
    """
    customer = access_policy.require_access(actor, Customer, customer_id, write=True)

    in_use = db.session.query(Estimate.id).filter(Estimate.customer_id == customer.id).first() is not None
    if in_use:
        customer.is_active = False
        db.session.commit()
        current_app.logger.info("Customer %s deactivated (referenced by estimates)", customer.id)
        return {"message": "Customer deactivated; existing estimates still reference it", "deleted": False}

    db.session.delete(customer)
    db.session.commit()
    return {"message": "Customer deleted successfully", "deleted": True}
