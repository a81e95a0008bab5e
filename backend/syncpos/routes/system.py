# backend/syncpos/routes/system.py
"""
System health endpoint for the local service.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Tenant
from ..services.tenant_service import get_activated_tenant
from ..sync.engine import unsynced_counts
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        tenant_count = db.session.query(Tenant).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"tenants": tenant_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_activation() -> dict:
    tenant = get_activated_tenant()
    if tenant is None:
        return {"status": "degraded", "warning": "Installation is not activated"}
    return {
        "status": "healthy",
        "details": {
            "tenant_id": tenant.uuid,
            "pending_sync": sum(unsynced_counts(tenant.uuid).values()),
        },
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (not activated yet)
    - 503: database unreachable
    """
    start_time = time.time()
    database_health = check_database_health()
    if database_health["status"] == "unhealthy":
        checks = {"database": database_health}
        overall_status, http_status = "unhealthy", 503
    else:
        activation = check_activation()
        checks = {"database": database_health, "activation": activation}
        overall_status, http_status = activation["status"], 200

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": checks,
    }, http_status
