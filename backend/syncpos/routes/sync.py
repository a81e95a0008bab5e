# Overview: Flask API routes for sync status and manual push/pull triggers.

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_context
from ..sync.engine import SyncEngine, unsynced_counts
from ..sync.remote import RemoteGateway, RemoteError
from ..sync.scheduler import get_scheduler

sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


@sync_bp.get("/status")
@require_context(user_required=False)
def status_route():
    status = get_scheduler(current_app).status()
    status["tenant_id"] = g.ctx.tenant_id
    status["unsynced"] = unsynced_counts(g.ctx.tenant_id)
    return jsonify(status), 200


@sync_bp.post("/push")
@require_context
def push_route():
    """Run one push cycle now (skipped if another cycle is running)."""
    try:
        with RemoteGateway.from_config(current_app.config) as remote:
            result = SyncEngine(g.ctx.tenant_id, remote).push()
    except RemoteError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Manual push failed")
        return jsonify({"error": "Internal server error"}), 500

    get_scheduler(current_app).last_results["push"] = result
    return jsonify(result.to_dict()), 200


@sync_bp.post("/pull")
@require_context
def pull_route():
    """
    Pull remote changes for the tenant.

    Body: {"wait"?: true}. Without wait the pull runs as a background job
    and its outcome shows up in /api/sync/status.
    """
    data = request.get_json(silent=True) or {}
    if not data.get("wait"):
        get_scheduler(current_app).submit_pull()
        return jsonify({"status": "accepted"}), 202

    try:
        with RemoteGateway.from_config(current_app.config) as remote:
            result = SyncEngine(g.ctx.tenant_id, remote).pull()
    except RemoteError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Manual pull failed")
        return jsonify({"error": "Internal server error"}), 500

    get_scheduler(current_app).last_results["pull"] = result
    return jsonify(result.to_dict()), 200
