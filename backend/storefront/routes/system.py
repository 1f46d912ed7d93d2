# backend/storefront/routes/system.py
"""
System health endpoint.

Reports database reachability plus whether the payment gateway is
configured, for deployment debugging.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Card, Order, User
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        details = {
            "cards": db.session.query(Card).count(),
            "orders": db.session.query(Order).count(),
            "users": db.session.query(User).count(),
        }
        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "details": details,
        }
    except SQLAlchemyError:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }


def check_gateway_config() -> dict:
    if current_app.config.get("MERCADOPAGO_ACCESS_TOKEN") or "gateway_client" in current_app.extensions:
        return {"status": "healthy"}
    return {"status": "degraded", "warning": "MERCADOPAGO_ACCESS_TOKEN is not set"}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy, or degraded (gateway not configured)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    gateway_health = check_gateway_config()

    if database_health["status"] == "unhealthy":
        overall_status, http_status = "unhealthy", 503
    elif gateway_health["status"] == "degraded":
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "gateway": gateway_health,
        },
    }, http_status
