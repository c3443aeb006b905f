# Overview: Flask API routes for catalog items; parses input and returns JSON responses.

"""
Item routes.

current_rate is today's price. Estimates copy the rate onto their lines, so
changing it here never reprices an existing estimate.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..services import catalog_service
from ..validation import json_body, page_args


items_bp = Blueprint("items", __name__, url_prefix="/api/items")


@items_bp.post("")
@require_auth
@require_role("trader", "admin")
def create_item_route():
    item = catalog_service.create_item(g.current_user, json_body())
    return jsonify(item.to_dict()), 201


@items_bp.get("")
@require_auth
@require_role("trader", "admin")
def list_items_route():
    """
    Query params:
    - search: matches name or category
    - category
    - brand: brand id
    - page, limit
    """
    page, limit = page_args(request.args)
    result = catalog_service.list_items(
        g.current_user,
        search=request.args.get("search"),
        category=request.args.get("category"),
        brand_id=request.args.get("brand", type=int),
        page=page,
        limit=limit,
    )
    return jsonify(result)


@items_bp.get("/categories")
@require_auth
@require_role("trader", "admin")
def list_categories_route():
    return jsonify(catalog_service.list_categories(g.current_user))


@items_bp.get("/<int:item_id>")
@require_auth
@require_role("trader", "admin")
def get_item_route(item_id: int):
    return jsonify(catalog_service.get_item(g.current_user, item_id).to_dict())


@items_bp.put("/<int:item_id>")
@require_auth
@require_role("trader", "admin")
def update_item_route(item_id: int):
    item = catalog_service.update_item(g.current_user, item_id, json_body())
    return jsonify(item.to_dict())


@items_bp.delete("/<int:item_id>")
@require_auth
@require_role("trader", "admin")
def delete_item_route(item_id: int):
    return jsonify(catalog_service.delete_item(g.current_user, item_id))
