# backend/estimate_desk/services/catalog_service.py
"""
Catalog Service (brands and priced items)

TENANCY: Brands and items belong to one trader and are read and written
through access_policy. An item's brand must belong to the same trader as
the item.

Brand names are unique per trader, compared case-insensitively, so
"UltraTech" and "ultratech" cannot coexist in one catalog while two
different traders may each carry "UltraTech".
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_

from ..extensions import db
from ..errors import ConflictError, ValidationError
from ..models import Brand, EstimateLine, Item, User
from ..validation import ModelValidationPolicy, UOM_CHOICES, require_non_negative, validate_payload
from . import access_policy
from .pagination import paginate


BRAND_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "is_active"},
    required_on_create={"name"},
)

ITEM_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "category", "brand_id", "uom", "current_rate",
        "description", "specifications", "is_active",
    },
    required_on_create={"name", "category", "brand_id", "uom", "current_rate"},
    choices={"uom": UOM_CHOICES},
)

DUPLICATE_BRAND_MESSAGE = "A brand with this name already exists in your account"


# =============================================================================
# Brands
# =============================================================================

def _ensure_unique_brand_name(trader_id: int, name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Brand).filter(
        Brand.trader_id == trader_id,
        func.lower(Brand.name) == name.lower(),
    )
    if exclude_id is not None:
        query = query.filter(Brand.id != exclude_id)
    if query.first():
        raise ConflictError(
            DUPLICATE_BRAND_MESSAGE,
            errors=[{"param": "name", "msg": "Brand name already exists"}],
        )


def create_brand(actor: User, payload: dict) -> Brand:
    patch = validate_payload(model=Brand, payload=payload, policy=BRAND_POLICY, partial=False)
    trader_id = access_policy.resolve_owner_id(actor, payload.get("trader_id"))
    _ensure_unique_brand_name(trader_id, patch["name"])

    brand = Brand(trader_id=trader_id, **patch)
    db.session.add(brand)
    db.session.commit()
    current_app.logger.info("Brand %s created for trader %s", brand.id, trader_id)
    return brand


def list_brands(actor: User, *, search=None, page: int = 1, limit: int = 10) -> dict:
    query = access_policy.scoped_query(actor, Brand)
    if search:
        query = query.filter(Brand.name.ilike(f"%{search}%"))
    query = query.order_by(Brand.name.asc(), Brand.id.asc())
    return paginate(query, page=page, limit=limit, serialize=lambda b: b.to_dict())


def get_brand(actor: User, brand_id: int) -> Brand:
    return access_policy.require_access(actor, Brand, brand_id)


def update_brand(actor: User, brand_id: int, payload: dict) -> Brand:
    brand = access_policy.require_access(actor, Brand, brand_id, write=True)
    patch = validate_payload(model=Brand, payload=payload, policy=BRAND_POLICY, partial=True)

    if "name" in patch and patch["name"].lower() != brand.name.lower():
        _ensure_unique_brand_name(brand.trader_id, patch["name"], exclude_id=brand.id)

    for key, value in patch.items():
        setattr(brand, key, value)
    db.session.commit()
    return brand


def delete_brand(actor: User, brand_id: int) -> None:
    """Delete a brand. Refused while any item still references it."""
    brand = access_policy.require_access(actor, Brand, brand_id, write=True)

    if db.session.query(Item.id).filter(Item.brand_id == brand.id).first() is not None:
        raise ConflictError("Cannot delete a brand that still has items")

    db.session.delete(brand)
    db.session.commit()


# =============================================================================
# Items
# =============================================================================

def _require_brand_for_owner(brand_id: int, trader_id: int) -> Brand:
    brand = db.session.get(Brand, brand_id)
    if not brand or brand.trader_id != trader_id:
        raise ValidationError("Brand not found in this catalog", param="brand_id")
    return brand


def _clean_item_patch(payload: dict, partial: bool) -> dict:
    patch = validate_payload(model=Item, payload=payload, policy=ITEM_POLICY, partial=partial)
    require_non_negative(patch, "current_rate")
    return patch


def create_item(actor: User, payload: dict) -> Item:
    patch = _clean_item_patch(payload, partial=False)
    trader_id = access_policy.resolve_owner_id(actor, payload.get("trader_id"))
    _require_brand_for_owner(patch["brand_id"], trader_id)

    item = Item(trader_id=trader_id, **patch)
    db.session.add(item)
    db.session.commit()
    current_app.logger.info("Item %s created for trader %s", item.id, trader_id)
    return item


def list_items(actor: User, *, search=None, category=None, brand_id=None, page: int = 1, limit: int = 10) -> dict:
    query = access_policy.scoped_query(actor, Item).filter(Item.is_active.is_(True))

    if search:
        like = f"%{search}%"
        query = query.filter(or_(Item.name.ilike(like), Item.category.ilike(like)))
    if category:
        query = query.filter(Item.category.ilike(f"%{category}%"))
    if brand_id:
        query = query.filter(Item.brand_id == brand_id)

    query = query.order_by(Item.name.asc(), Item.id.asc())
    return paginate(query, page=page, limit=limit, serialize=lambda i: i.to_dict())


def list_categories(actor: User) -> list[str]:
    query = (
        access_policy.scoped_query(actor, Item)
        .filter(Item.is_active.is_(True))
        .with_entities(Item.category)
        .distinct()
        .order_by(Item.category.asc())
    )
    return [row[0] for row in query.all() if row[0]]


def get_item(actor: User, item_id: int) -> Item:
    return access_policy.require_access(actor, Item, item_id)


def update_item(actor: User, item_id: int, payload: dict) -> Item:
    item = access_policy.require_access(actor, Item, item_id, write=True)
    patch = _clean_item_patch(payload, partial=True)

    if "brand_id" in patch:
        _require_brand_for_owner(patch["brand_id"], item.trader_id)

    for key, value in patch.items():
        setattr(item, key, value)
    db.session.commit()
    return item


def delete_item(actor: User, item_id: int) -> dict:
    """
    Delete an item.

    Items quoted on existing estimates are deactivated instead so those
    estimate lines keep resolving.
    """
    item = access_policy.require_access(actor, Item, item_id, write=True)

    if db.session.query(EstimateLine.id).filter(EstimateLine.item_id == item.id).first() is not None:
        item.is_active = False
        db.session.commit()
        return {"message": "Item deactivated; existing estimates still reference it", "deleted": False}

    db.session.delete(item)
    db.session.commit()
    return {"message": "Item deleted successfully", "deleted": True}
