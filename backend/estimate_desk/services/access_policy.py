"""
Access Policy: one scope resolver for every tenant-owned resource

WHY: Ownership filtering must be identical across routes. Every read and
write of a Customer, Brand, Item or Estimate goes through this module
instead of re-implementing trader_id checks per handler.

RULES:
1. admin: unrestricted read/write across all traders
2. trader: read/write only rows where trader_id == self
3. customer: read-only, and only Estimates billed to self, either directly
   (registered bill-to) or through a directory Customer linked by user_id
4. Missing rows raise NotFoundError (404); rows that exist but belong to
   someone else raise PermissionDenied (403) and are logged as
   CROSS_TENANT_ACCESS_DENIED

USAGE:
    from estimate_desk.services import access_policy

    query = access_policy.scoped_query(g.current_user, Item)
    item = access_policy.require_access(g.current_user, Item, item_id, write=True)
"""

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..errors import NotFoundError, PermissionDenied, ValidationError
from ..models import Brand, Customer, Estimate, Item, User
from .security_service import log_security_event


RESOURCE_LABELS = {
    Customer: "Customer",
    Brand: "Brand",
    Item: "Item",
    Estimate: "Estimate",
}


def is_admin(actor: User) -> bool:
    return actor is not None and actor.role == "admin"


def linked_customer_ids(actor: User):
    """Subquery of directory Customer ids linked to a registered customer account."""
    return db.session.query(Customer.id).filter(Customer.user_id == actor.id)


def estimate_billed_to_filter(actor: User):
    return or_(
        Estimate.customer_user_id == actor.id,
        Estimate.customer_id.in_(linked_customer_ids(actor)),
    )


def is_billed_to(actor: User, estimate: Estimate) -> bool:
    if estimate.customer_user_id == actor.id:
        return True
    return estimate.customer is not None and estimate.customer.user_id == actor.id


def scoped_query(actor: User, model):
    """
    Return a query over model restricted to what actor may read.

    Raises PermissionDenied when the actor's role has no access to the model
    at all (customers on the directory or catalog).
    """
    query = db.session.query(model)

    if is_admin(actor):
        return query

    if actor.role == "trader":
        return query.filter(model.trader_id == actor.id)

    if actor.role == "customer" and model is Estimate:
        return query.filter(estimate_billed_to_filter(actor))

    raise PermissionDenied("Access denied")


def _can_access(actor: User, obj, write: bool) -> bool:
    if is_admin(actor):
        return True
    if actor.role == "trader":
        return obj.trader_id == actor.id
    if actor.role == "customer" and not write and isinstance(obj, Estimate):
        return is_billed_to(actor, obj)
    return False


def _log_cross_tenant_attempt(actor: User, label: str, obj_id: int, owner_id: int | None) -> None:
    log_security_event(
        user_id=actor.id if actor else None,
        event_type="CROSS_TENANT_ACCESS_DENIED",
        success=False,
        reason=f"{label} {obj_id} belongs to trader {owner_id}, not user {actor.id if actor else None}",
    )


def check_access(actor: User, obj, *, write: bool = False) -> None:
    """Raise PermissionDenied (and log it) unless actor may read/write obj."""
    if _can_access(actor, obj, write):
        return
    label = RESOURCE_LABELS.get(type(obj), type(obj).__name__)
    _log_cross_tenant_attempt(actor, label, obj.id, getattr(obj, "trader_id", None))
    raise PermissionDenied("Access denied")


def require_access(actor: User, model, obj_id: int, *, write: bool = False, message: str | None = None):
    """
    Load model row by id and check actor may access it.

    Raises:
        NotFoundError: no such row
        PermissionDenied: row exists but actor may not access it
    """
    label = RESOURCE_LABELS.get(model, model.__name__)
    obj = db.session.get(model, obj_id)
    if obj is None:
        raise NotFoundError(message or f"{label} not found")
    check_access(actor, obj, write=write)
    return obj


def resolve_owner_id(actor: User, requested_trader_id=None) -> int:
    """
    Decide which trader a new row belongs to.

    Traders always own what they create. Admins may create on behalf of a
    trader by passing trader_id; otherwise the row is owned by the admin.
    Customers never create tenant-owned rows.
    """
    if actor.role == "trader":
        return actor.id

    if is_admin(actor):
        if requested_trader_id in (None, ""):
            return actor.id
        try:
            trader_id = int(requested_trader_id)
        except (TypeError, ValueError):
            raise ValidationError("trader_id must be an integer", param="trader_id")
        trader = db.session.get(User, trader_id)
        if not trader or trader.role != "trader":
            raise ValidationError("trader_id must reference a trader", param="trader_id")
        return trader.id

    raise PermissionDenied("Access denied")
