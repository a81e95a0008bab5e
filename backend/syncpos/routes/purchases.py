# Overview: Flask API routes for purchases (incoming goods).

from flask import Blueprint, request, jsonify, g, current_app

from ..services import purchase_service
from ..services.purchase_service import PurchaseError
from ..services.sales_service import document_with_items, DocumentNotFoundError
from ..services.tenant_service import ContextError
from ..validation import ValidationError
from ..decorators import require_context


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.post("")
@require_context
def create_purchase_route():
    """
    Record a purchase; lines add stock at the entered purchase price.

    Body: {"lines": [...], "supplier_id"?, "payment_method"?, "discount"?, "notes"?}
    """
    data = request.get_json(silent=True) or {}
    try:
        purchase = purchase_service.record_purchase(
            g.ctx,
            data.get("lines"),
            supplier_id=data.get("supplier_id"),
            payment_method=data.get("payment_method"),
            discount=data.get("discount", 0.0),
            notes=data.get("notes"),
        )
        return jsonify({"purchase": document_with_items(purchase)}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ContextError as e:
        return jsonify({"error": str(e)}), 401
    except PurchaseError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to record purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("")
@require_context
def list_purchases_route():
    purchases = purchase_service.list_purchases(g.ctx.tenant_id)
    return jsonify({"purchases": [p.to_dict() for p in purchases]}), 200


@purchases_bp.get("/<int:purchase_id>")
@require_context
def get_purchase_route(purchase_id: int):
    purchase = purchase_service.get_purchase(g.ctx.tenant_id, purchase_id)
    if not purchase:
        return jsonify({"error": "Purchase not found"}), 404
    return jsonify({"purchase": document_with_items(purchase)}), 200


@purchases_bp.post("/<int:purchase_id>/cancel")
@require_context
def cancel_purchase_route(purchase_id: int):
    try:
        purchase = purchase_service.cancel_purchase(g.ctx, purchase_id)
        return jsonify({"purchase": purchase.to_dict()}), 200

    except DocumentNotFoundError:
        return jsonify({"error": "Purchase not found"}), 404
    except PurchaseError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to cancel purchase")
        return jsonify({"error": "Internal server error"}), 500
