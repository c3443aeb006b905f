# Overview: Flask API routes for estimates; parses input and returns JSON responses.

"""
Estimate routes.

MULTI-TENANT:
- trader: their own estimates, read and write
- admin: every estimate; may create for a trader by passing trader_id
- customer: read-only, estimates billed to them. Opening a "sent" estimate
  marks it "viewed".

Status changes go through lifecycle_service; illegal transitions are 400.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..services import estimate_service
from ..validation import json_body, page_args


estimates_bp = Blueprint("estimates", __name__, url_prefix="/api/estimates")


@estimates_bp.post("")
@require_auth
@require_role("trader", "admin")
def create_estimate_route():
    """
    Create a draft estimate.

    Request body:
    {
        "customer": 12,                        // or {"kind": "registered", "id": 7}
        "items": [{"item": 3, "quantity": 10, "rate": 30}],
        "discount": 0,
        "discount_type": "percentage",         // or "amount"
        "loading_charges": 20,
        "valid_till": "2025-07-01",            // optional
        "notes": "..."
    }
    """
    estimate = estimate_service.create_estimate(g.current_user, json_body())
    return jsonify(estimate.to_dict()), 201


@estimates_bp.get("")
@require_auth
def list_estimates_route():
    """
    Query params: search (estimate number), status, customer, customer_kind,
    date_from, date_to, page, limit.
    """
    page, limit = page_args(request.args)
    result = estimate_service.list_estimates(
        g.current_user,
        search=request.args.get("search"),
        status=request.args.get("status"),
        customer_id=request.args.get("customer", type=int),
        customer_kind=request.args.get("customer_kind"),
        date_from=request.args.get("date_from"),
        date_to=request.args.get("date_to"),
        page=page,
        limit=limit,
    )
    return jsonify(result)


@estimates_bp.get("/my-estimates")
@require_auth
@require_role("customer")
def my_estimates_route():
    page, limit = page_args(request.args)
    result = estimate_service.list_my_estimates(
        g.current_user, status=request.args.get("status"), page=page, limit=limit
    )
    return jsonify(result)


@estimates_bp.get("/customer/<int:customer_id>")
@require_auth
@require_role("trader", "admin")
def estimates_for_customer_route(customer_id: int):
    limit = request.args.get("limit", default=5, type=int) or 5
    result = estimate_service.list_for_customer(
        g.current_user,
        customer_id,
        customer_kind=request.args.get("customer_kind"),
        date_from=request.args.get("date_from"),
        date_to=request.args.get("date_to"),
        limit=min(max(limit, 1), 100),
    )
    return jsonify(result)


@estimates_bp.get("/search/item/<int:item_id>")
@require_auth
@require_role("trader", "admin")
def estimates_with_item_route(item_id: int):
    return jsonify(estimate_service.list_containing_item(g.current_user, item_id))


@estimates_bp.get("/<int:estimate_id>")
@require_auth
def get_estimate_route(estimate_id: int):
    estimate = estimate_service.get_estimate(g.current_user, estimate_id)
    return jsonify(estimate.to_dict())


@estimates_bp.put("/<int:estimate_id>")
@require_auth
@require_role("trader", "admin")
def update_estimate_route(estimate_id: int):
    estimate = estimate_service.update_estimate(g.current_user, estimate_id, json_body())
    return jsonify(estimate.to_dict())


@estimates_bp.put("/<int:estimate_id>/send")
@require_auth
@require_role("trader", "admin")
def send_estimate_route(estimate_id: int):
    estimate = estimate_service.mark_as_sent(g.current_user, estimate_id, json_body().get("sent_via"))
    return jsonify({"message": "Estimate marked as sent", "estimate": estimate.to_dict()})


@estimates_bp.put("/<int:estimate_id>/convert")
@require_auth
@require_role("trader", "admin")
def convert_estimate_route(estimate_id: int):
    estimate = estimate_service.convert_estimate(
        g.current_user, estimate_id, json_body().get("invoice_number")
    )
    return jsonify({"message": "Estimate converted", "estimate": estimate.to_dict()})


@estimates_bp.put("/<int:estimate_id>/expire")
@require_auth
@require_role("trader", "admin")
def expire_estimate_route(estimate_id: int):
    estimate = estimate_service.expire_estimate(g.current_user, estimate_id)
    return jsonify({"message": "Estimate expired", "estimate": estimate.to_dict()})


@estimates_bp.delete("/<int:estimate_id>")
@require_auth
@require_role("trader", "admin")
def delete_estimate_route(estimate_id: int):
    estimate_service.delete_estimate(g.current_user, estimate_id)
    return jsonify({"message": "Estimate deleted successfully"})
