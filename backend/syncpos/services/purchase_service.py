# Overview: Service-layer operations for purchases (incoming goods).

"""
Purchase Service

Same shape as a sale with the sign flipped: each line adds stock, the cost
snapshot is the entered purchase price, and the supplier's own product code
(if a product-supplier link exists) is stamped on the line.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Purchase, Supplier
from ..models.inventory import REASON_PURCHASE
from ..validation import ValidationError, optional_number
from .concurrency import transaction, run_with_retry
from .sales_service import parse_lines, write_document, cancel_document, get_document, list_documents
from .catalog_service import find_product_supplier
from .tenant_service import TenantContext, ContextError

logger = logging.getLogger(__name__)


class PurchaseError(Exception):
    """Raised when a purchase cannot be recorded or cancelled."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def record_purchase(
    ctx: TenantContext,
    lines,
    *,
    supplier_id: int | None = None,
    payment_method: str | None = None,
    discount: float = 0.0,
    notes: str | None = None,
) -> Purchase:
    parsed = parse_lines(lines)
    header_discount = optional_number("discount", discount)
    if header_discount < 0:
        raise ValidationError("discount must be >= 0")

    def _supplier_code(product):
        if supplier_id is None:
            return None
        link = find_product_supplier(ctx.tenant_id, product.id, supplier_id)
        return link.supplier_product_code if link else None

    def _op():
        with transaction():
            if supplier_id is not None:
                supplier = (
                    db.session.query(Supplier)
                    .filter_by(id=supplier_id, tenant_id=ctx.tenant_id, is_deleted=False)
                    .one_or_none()
                )
                if supplier is None:
                    raise ValidationError(f"Supplier {supplier_id} not found")
            return write_document(
                ctx,
                Purchase,
                parsed,
                header={
                    "supplier_id": supplier_id,
                    "payment_method": payment_method,
                    "notes": notes,
                },
                header_discount=header_discount,
                default_price=lambda product: product.purchase_price or 0.0,
                cost_snapshot=lambda product, line, price: price,
                quantity_sign=1,
                reason=REASON_PURCHASE,
                note_label="Purchase",
                supplier_code=_supplier_code,
            )

    try:
        purchase = run_with_retry(_op)
    except (ValidationError, ContextError):
        raise
    except Exception as exc:
        logger.exception("Recording purchase failed; rolled back")
        raise PurchaseError("Purchase could not be recorded", {"cause": str(exc)}) from exc

    logger.info("Recorded purchase %s total=%.2f (tenant %s)", purchase.id, purchase.total, ctx.tenant_id)
    return purchase


def cancel_purchase(ctx: TenantContext, purchase_id: int) -> Purchase:
    return cancel_document(ctx, Purchase, purchase_id, PurchaseError)


def get_purchase(tenant_id: str, purchase_id: int) -> Purchase | None:
    return get_document(tenant_id, Purchase, purchase_id)


def list_purchases(tenant_id: str) -> list[Purchase]:
    return list_documents(tenant_id, Purchase)
