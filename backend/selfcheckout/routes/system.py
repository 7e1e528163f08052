# backend/selfcheckout/routes/system.py
"""
System health endpoint.

Reports database reachability and the purchase.created backlog the
safety-net reconciler still has to work through.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Station, PurchaseEvent
from ..models.events import EVENT_STATUS_FAILED, EVENT_STATUS_PENDING
from ..services.gateways import EXTENSION_KEY
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        station_count = db.session.query(Station).filter_by(is_active=True).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "active_stations": station_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_event_backlog_health() -> dict:
    """
    Parked (FAILED) purchase.created events mean a purchase may still owe a
    stock decrement; report them as degraded.
    """
    start_time = time.time()
    try:
        pending = db.session.query(PurchaseEvent).filter_by(status=EVENT_STATUS_PENDING).count()
        failed = db.session.query(PurchaseEvent).filter_by(status=EVENT_STATUS_FAILED).count()

        elapsed_ms = (time.time() - start_time) * 1000

        result = {
            "status": "degraded" if failed else "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "pending": pending,
                "failed": failed,
            }
        }
        if failed:
            result["warning"] = f"{failed} purchase event(s) need attention"
        return result
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Event backlog health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Event backlog error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    events_health = check_event_backlog_health()

    all_checks = [database_health, events_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "payment_providers": sorted(current_app.extensions.get(EXTENSION_KEY, {}).keys()),
        "checks": {
            "database": database_health,
            "purchase_events": events_health,
        }
    }

    return response, http_status
