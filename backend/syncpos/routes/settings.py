# Overview: Flask API routes for tenant settings.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import settings_service
from ..services.settings_service import SettingsError
from ..decorators import require_context


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
@require_context
def get_settings_route():
    return jsonify({"settings": settings_service.get_settings(g.ctx.tenant_id)}), 200


@settings_bp.put("")
@require_context
def put_settings_route():
    """Body: {"settings": {"store_name": "...", "currency": "EUR"}}"""
    data = request.get_json(silent=True) or {}
    try:
        values = settings_service.save_settings(g.ctx, data.get("settings"))
        return jsonify({"settings": values}), 200

    except SettingsError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to save settings")
        return jsonify({"error": "Internal server error"}), 500
