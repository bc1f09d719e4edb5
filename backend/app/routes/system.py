# backend/app/routes/system.py
"""
System health and version endpoints.

/health answers {"status": "ok"} when the database answers a trivial query,
503 otherwise. /version exposes non-sensitive deployment info.
"""

import sys
import time
from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from app.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api/v1")

API_VERSION = "1.0.0"


def check_database_health() -> dict:
    """
    Check database connectivity with a trivial round trip.

    Returns dict with status and latency.
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
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
    - 200 {"status": "ok"}: database reachable
    - 503 {"status": "unhealthy"}: database unreachable
    """
    database_health = check_database_health()

    if database_health["status"] != "healthy":
        return {"status": "unhealthy", "checks": {"database": database_health}}, 503

    return {
        "status": "ok",
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {"database": database_health},
    }, 200


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
        "server_time": utcnow().isoformat() + "Z",
    }
