# Overview: System health and version endpoints.

"""
System health and version endpoints.

/api/health reports database connectivity and session table state so a load
balancer or uptime check can tell a live process from a working one.
"""

import sys
import time

from flask import Blueprint, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import to_utc_z, utcnow


API_VERSION = "1.0.0"

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """Run a trivial query and count users. Returns status and latency."""
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        user_count = db.session.query(User).count()
        active_sessions = (
            db.session.query(SessionToken)
            .filter(SessionToken.is_revoked.is_(False), SessionToken.expires_at >= utcnow())
            .count()
        )
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }

    return {
        "status": "healthy",
        "latency_ms": round((time.time() - start_time) * 1000, 2),
        "details": {
            "users": user_count,
            "active_sessions": active_sessions,
        },
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database check failed
    """
    database_health = check_database_health()
    healthy = database_health["status"] == "healthy"

    response = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database_health},
    }
    return response, 200 if healthy else 503


@system_bp.get("/version")
def version():
    """Non-sensitive deployment info: API version, environment, Python version."""
    return {
        "api_version": API_VERSION,
        "environment": "development" if current_app.debug else "production",
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
