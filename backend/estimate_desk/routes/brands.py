# Overview: Flask API routes for brands; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..services import catalog_service
from ..validation import json_body, page_args


brands_bp = Blueprint("brands", __name__, url_prefix="/api/brands")


@brands_bp.post("")
@require_auth
@require_role("trader", "admin")
def create_brand_route():
    brand = catalog_service.create_brand(g.current_user, json_body())
    return jsonify(brand.to_dict()), 201


@brands_bp.get("")
@require_auth
@require_role("trader", "admin")
def list_brands_route():
    page, limit = page_args(request.args)
    return jsonify(
        catalog_service.list_brands(g.current_user, search=request.args.get("search"), page=page, limit=limit)
    )


@brands_bp.get("/<int:brand_id>")
@require_auth
@require_role("trader", "admin")
def get_brand_route(brand_id: int):
    return jsonify(catalog_service.get_brand(g.current_user, brand_id).to_dict())


@brands_bp.put("/<int:brand_id>")
@require_auth
@require_role("trader", "admin")
def update_brand_route(brand_id: int):
    brand = catalog_service.update_brand(g.current_user, brand_id, json_body())
    return jsonify(brand.to_dict())


@brands_bp.delete("/<int:brand_id>")
@require_auth
@require_role("trader", "admin")
def delete_brand_route(brand_id: int):
    catalog_service.delete_brand(g.current_user, brand_id)
    return jsonify({"message": "Brand deleted successfully"})
