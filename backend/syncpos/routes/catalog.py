# Overview: Flask API routes for catalog reference data.

# backend/syncpos/routes/catalog.py
"""
Generic catalog CRUD for categories, units, suppliers, customers, products
and product-supplier links. Deletes are soft (tombstones sync like edits).
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import catalog_service
from ..services.catalog_service import ENTITY_MODELS
from ..validation import ValidationError, ConflictError
from ..decorators import require_context


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


def _unknown(entity: str):
    return jsonify({"error": f"Unknown catalog entity: {entity}"}), 404


@catalog_bp.get("/products/low-stock")
@require_context
def low_stock_route():
    return jsonify({"products": catalog_service.low_stock_products(g.ctx.tenant_id)}), 200


@catalog_bp.get("/<entity>")
@require_context
def list_route(entity: str):
    if entity not in ENTITY_MODELS:
        return _unknown(entity)
    if entity == "products":
        return jsonify({"products": catalog_service.list_products_with_stock(g.ctx.tenant_id)}), 200
    rows = catalog_service.list_entities(g.ctx.tenant_id, entity)
    return jsonify({entity: [r.to_dict() for r in rows]}), 200


@catalog_bp.post("/<entity>")
@require_context
def create_route(entity: str):
    if entity not in ENTITY_MODELS:
        return _unknown(entity)
    try:
        row = catalog_service.create_entity(g.ctx, entity, request.get_json(silent=True))
        return jsonify({"item": row.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create %s", entity)
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.put("/<entity>/<int:item_id>")
@require_context
def update_route(entity: str, item_id: int):
    if entity not in ENTITY_MODELS:
        return _unknown(entity)
    try:
        row = catalog_service.update_entity(g.ctx, entity, item_id, request.get_json(silent=True))
        if row is None:
            return jsonify({"error": "Not found"}), 404
        return jsonify({"item": row.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to update %s %s", entity, item_id)
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.delete("/<entity>/<int:item_id>")
@require_context
def delete_route(entity: str, item_id: int):
    if entity not in ENTITY_MODELS:
        return _unknown(entity)
    try:
        if not catalog_service.delete_entity(g.ctx, entity, item_id):
            return jsonify({"error": "Not found"}), 404
        return jsonify({"deleted": True}), 200

    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to delete %s %s", entity, item_id)
        return jsonify({"error": "Internal server error"}), 500
