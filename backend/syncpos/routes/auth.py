# Overview: Flask API routes for login and license activation.

from flask import Blueprint, request, jsonify, current_app

from ..services import auth_service
from ..services.auth_service import AuthError
from ..services.activation_service import activate, ActivationError
from ..services.tenant_service import ContextError
from ..sync.remote import RemoteGateway, RemoteError
from ..sync.scheduler import get_scheduler

auth_bp = Blueprint("auth", __name__, url_prefix="/api")


@auth_bp.post("/auth/login")
def login_route():
    """
    Authenticate a local user.

    Returns the user id the UI sends back as X-User-Id, plus the tenant.
    """
    data = request.get_json(silent=True) or {}
    try:
        ctx = auth_service.login(data.get("username"), data.get("password"))
    except AuthError as e:
        return jsonify({"error": str(e)}), 401
    except ContextError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Login failed")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "user_id": ctx.user_id,
        "username": ctx.username,
        "role": ctx.role,
        "tenant_id": ctx.tenant_id,
    }), 200


@auth_bp.post("/activation")
def activation_route():
    """
    Activate this installation for a license key.

    Body: {"license_key": "...", "wait": false}
    - wait=false (default): runs on the background worker, returns 202;
      poll GET /api/activation/status
    - wait=true: runs inline and returns the result
    """
    data = request.get_json(silent=True) or {}
    license_key = (data.get("license_key") or "").strip()
    if not license_key:
        return jsonify({"error": "license_key required"}), 400

    if not data.get("wait"):
        get_scheduler(current_app).submit_activation(license_key)
        return jsonify({"status": "accepted"}), 202

    try:
        with RemoteGateway.from_config(current_app.config) as remote:
            tenant, result = activate(license_key, remote)
    except (ActivationError, RemoteError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Activation failed")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"tenant": tenant.to_dict(), "pull": result.to_dict()}), 200


@auth_bp.get("/activation/status")
def activation_status_route():
    return jsonify(get_scheduler(current_app).status()["activation"]), 200
