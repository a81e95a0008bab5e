# Overview: Flask API routes for derived stock and manual ledger adjustments.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import stock_service
from ..services.stock_service import StockError, LedgerEntryNotFoundError
from ..services.repository import Repository
from ..validation import ValidationError
from ..decorators import require_context
from ..models import Product


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/<int:product_id>")
@require_context
def get_stock_route(product_id: int):
    """Current stock = SUM(quantity_delta) over the product's live ledger rows."""
    if Repository(Product).get(product_id, g.ctx.tenant_id) is None:
        return jsonify({"error": "Product not found"}), 404
    return jsonify({
        "product_id": product_id,
        "current_stock": stock_service.get_stock(g.ctx.tenant_id, product_id),
    }), 200


@stock_bp.get("/<int:product_id>/ledger")
@require_context
def get_ledger_route(product_id: int):
    rows = stock_service.list_movements(g.ctx.tenant_id, product_id)
    return jsonify({"ledger": [r.to_dict() for r in rows]}), 200


@stock_bp.post("/adjustments")
@require_context
def create_adjustment_route():
    """
    Body: {"product_id": 1, "quantity_delta": -2, "reason"?: "damaged", "notes"?: "..."}
    """
    data = request.get_json(silent=True) or {}
    product_id = data.get("product_id")
    if not isinstance(product_id, int) or isinstance(product_id, bool):
        return jsonify({"error": "product_id required"}), 400
    try:
        row = stock_service.record_adjustment(
            g.ctx,
            product_id,
            data.get("quantity_delta"),
            reason=data.get("reason"),
            notes=data.get("notes"),
        )
        return jsonify({
            "entry": row.to_dict(),
            "current_stock": stock_service.get_stock(g.ctx.tenant_id, product_id),
        }), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except StockError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record stock adjustment")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/adjustments/<int:ledger_id>/cancel")
@require_context
def cancel_adjustment_route(ledger_id: int):
    try:
        reversal = stock_service.cancel_adjustment(g.ctx, ledger_id)
        return jsonify({
            "entry": reversal.to_dict(),
            "current_stock": stock_service.get_stock(g.ctx.tenant_id, reversal.product_id),
        }), 201

    except LedgerEntryNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except StockError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to reverse stock adjustment")
        return jsonify({"error": "Internal server error"}), 500
