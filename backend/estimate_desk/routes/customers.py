# Overview: Flask API routes for the customer directory; parses input and returns JSON responses.

"""
Customer directory routes.

MULTI-TENANT: Traders work on their own directory; admins on every
trader's. Customer accounts have no access here.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..services import customer_service
from ..validation import json_body, page_args


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.post("")
@require_auth
@require_role("trader", "admin")
def create_customer_route():
    customer = customer_service.create_customer(g.current_user, json_body())
    return jsonify(customer.to_dict()), 201


@customers_bp.get("")
@require_auth
@require_role("trader", "admin")
def list_customers_route():
    """
    Query params:
    - search: matches name, phone or email
    - tag: exact tag
    - page, limit
    - for_estimate: "true" sorts by name for pickers
    """
    page, limit = page_args(request.args)
    result = customer_service.list_customers(
        g.current_user,
        search=request.args.get("search"),
        tag=request.args.get("tag"),
        page=page,
        limit=limit,
        for_estimate=request.args.get("for_estimate", "").lower() == "true",
    )
    return jsonify(result)


@customers_bp.get("/for-estimate")
@require_auth
@require_role("trader", "admin")
def customers_for_estimate_route():
    """Directory customers plus registered customer accounts, for the estimate form."""
    limit = request.args.get("limit", default=1000, type=int) or 1000
    result = customer_service.list_for_estimate(
        g.current_user, search=request.args.get("search"), limit=min(max(limit, 1), 1000)
    )
    return jsonify(result)


@customers_bp.get("/search/phone/<phone>")
@require_auth
@require_role("trader", "admin")
def find_customer_by_phone_route(phone: str):
    return jsonify(customer_service.find_by_phone(g.current_user, phone).to_dict())


@customers_bp.get("/<int:customer_id>")
@require_auth
@require_role("trader", "admin")
def get_customer_route(customer_id: int):
    return jsonify(customer_service.get_customer(g.current_user, customer_id).to_dict())


@customers_bp.put("/<int:customer_id>")
@require_auth
@require_role("trader", "admin")
def update_customer_route(customer_id: int):
    customer = customer_service.update_customer(g.current_user, customer_id, json_body())
    return jsonify(customer.to_dict())


@customers_bp.delete("/<int:customer_id>")
@require_auth
@require_role("trader", "admin")
def delete_customer_route(customer_id: int):
    return jsonify(customer_service.delete_customer(g.current_user, customer_id))
