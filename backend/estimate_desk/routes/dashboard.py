# Overview: Flask API routes for dashboard aggregates.

from flask import Blueprint, g, jsonify

from ..decorators import require_auth, require_role
from ..services import dashboard_service


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/stats")
@require_auth
@require_role("trader", "admin")
def stats_route():
    return jsonify(dashboard_service.get_stats(g.current_user))


@dashboard_bp.get("/recent-estimates")
@require_auth
@require_role("trader", "admin")
def recent_estimates_route():
    return jsonify(dashboard_service.get_recent_estimates(g.current_user))


@dashboard_bp.get("/top-customers")
@require_auth
@require_role("trader", "admin")
def top_customers_route():
    return jsonify(dashboard_service.get_top_customers(g.current_user))


@dashboard_bp.get("/monthly-stats")
@require_auth
@require_role("trader", "admin")
def monthly_stats_route():
    return jsonify(dashboard_service.get_monthly_stats(g.current_user))


@dashboard_bp.get("/admin-stats")
@require_auth
@require_role("admin")
def admin_stats_route():
    return jsonify(dashboard_service.get_admin_stats())
