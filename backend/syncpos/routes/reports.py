# Overview: Flask API routes for reports, the dashboard and customer purchase history.

from flask import Blueprint, jsonify, request, g

from ..decorators import require_context
from ..models import Customer
from ..services import reporting_service
from ..services.repository import Repository


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/sales")
@require_context
def sales_report():
    """Query: start?, end? (YYYY-MM-DD, inclusive)."""
    try:
        report = reporting_service.sales_detail(
            g.ctx.tenant_id,
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
        return jsonify(report), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/product-performance")
@require_context
def product_performance_report():
    try:
        report = reporting_service.product_performance(
            g.ctx.tenant_id,
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
        return jsonify(report), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/inventory-value")
@require_context
def inventory_value_report():
    return jsonify(reporting_service.inventory_value(g.ctx.tenant_id)), 200


@reports_bp.get("/dashboard")
@require_context
def dashboard_report():
    return jsonify(reporting_service.dashboard(g.ctx.tenant_id)), 200


@reports_bp.get("/customers/<int:customer_id>/purchases")
@require_context
def customer_history_report(customer_id: int):
    if Repository(Customer).get(customer_id, g.ctx.tenant_id) is None:
        return jsonify({"error": "Customer not found"}), 404
    return jsonify({
        "customer_id": customer_id,
        "purchases": reporting_service.customer_purchase_history(g.ctx.tenant_id, customer_id),
    }), 200
