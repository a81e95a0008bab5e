# Overview: Flask API routes for sales and their payments; parses input and returns JSON responses.

# backend/syncpos/routes/sales.py
"""Sales API routes"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import sales_service, payment_service
from ..services.sales_service import SaleError, DocumentNotFoundError
from ..services.payment_service import PaymentError
from ..services.tenant_service import ContextError
from ..validation import ValidationError
from ..decorators import require_context
from ..models import TradeDocument
from ..extensions import db


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_context
def create_sale_route():
    """
    Record a sale.

    Body: {"lines": [{"product_id", "quantity", "unit_price"?, "tax_rate"?, "discount"?}],
           "customer_id"?, "payment_method"?, "discount"?, "notes"?}
    """
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.record_sale(
            g.ctx,
            data.get("lines"),
            customer_id=data.get("customer_id"),
            payment_method=data.get("payment_method"),
            discount=data.get("discount", 0.0),
            notes=data.get("notes"),
        )
        return jsonify({"sale": sales_service.document_with_items(sale)}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ContextError as e:
        return jsonify({"error": str(e)}), 401
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_context
def list_sales_route():
    sales = sales_service.list_sales(g.ctx.tenant_id)
    return jsonify({"sales": [s.to_dict() for s in sales]}), 200


@sales_bp.get("/<int:sale_id>")
@require_context
def get_sale_route(sale_id: int):
    sale = sales_service.get_sale(g.ctx.tenant_id, sale_id)
    if not sale:
        return jsonify({"error": "Sale not found"}), 404
    return jsonify({"sale": sales_service.document_with_items(sale)}), 200


@sales_bp.post("/<int:sale_id>/cancel")
@require_context
def cancel_sale_route(sale_id: int):
    """Cancel a sale: tombstones header, items and their stock movements."""
    try:
        sale = sales_service.cancel_sale(g.ctx, sale_id)
        return jsonify({"sale": sale.to_dict()}), 200

    except DocumentNotFoundError:
        return jsonify({"error": "Sale not found"}), 404
    except SaleError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/payments")
@require_context
def add_payment_route(sale_id: int):
    """
    Apply a payment to a sale (or purchase) header.

    Body: {"amount": 40.0, "payment_method"?: "cash", "reference"?: "..."}
    """
    data = request.get_json(silent=True) or {}
    try:
        payment, doc = payment_service.apply_payment(
            g.ctx,
            sale_id,
            data.get("amount"),
            payment_method=data.get("payment_method"),
            reference=data.get("reference"),
            epsilon=current_app.config["PAYMENT_EPSILON"],
        )
        return jsonify({
            "payment": payment.to_dict(),
            "summary": payment_service.payment_summary(g.ctx.tenant_id, doc),
        }), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except DocumentNotFoundError:
        return jsonify({"error": "Sale not found"}), 404
    except PaymentError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to apply payment")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>/payments")
@require_context
def list_payments_route(sale_id: int):
    doc = (
        db.session.query(TradeDocument)
        .filter_by(id=sale_id, tenant_id=g.ctx.tenant_id)
        .one_or_none()
    )
    if doc is None:
        return jsonify({"error": "Sale not found"}), 404
    payments = payment_service.list_payments(g.ctx.tenant_id, sale_id)
    return jsonify({
        "payments": [p.to_dict() for p in payments],
        "summary": payment_service.payment_summary(g.ctx.tenant_id, doc),
    }), 200
