# backend/orion_pos/routes/system.py
"""
System health and version endpoints.
"""

import sys
import time
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import CompanyConfig, Product, SessionToken, User
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)

API_VERSION = "1.0.0"


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        product_count = db.session.query(Product).count()
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()
        config_present = db.session.get(CompanyConfig, CompanyConfig.SINGLETON_ID) is not None

        elapsed_ms = (time.time() - start_time) * 1000

        details = {
            "users": user_count,
            "products": product_count,
            "active_sessions": active_sessions,
            "company_config": config_present,
        }
        if user_count == 0:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": "No users; run `flask system init`",
                "details": details,
            }
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except SQLAlchemyError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded (still operational)
    - 503: database unreachable
    """
    database_health = check_database_health()
    status = database_health["status"]

    return {
        "status": status,
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database_health},
    }, (503 if status == "unhealthy" else 200)


@system_bp.get("/version")
def version():
    """
    Version endpoint for deployment debugging.

    Does NOT expose secret keys, database credentials or internal paths.
    """
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": API_VERSION,
        "environment": env,
        "python_version": sys.version.split()[0],
        "business_timezone": current_app.config["BUSINESS_TIMEZONE"],
        "server_time": to_utc_z(utcnow()),
    }
