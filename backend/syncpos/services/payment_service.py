# Overview: Service-layer operations for payment; inserts payments and resolves payment status.

"""
Payment Service

DESIGN PRINCIPLES:
- Payments are separate rows (many-to-one with the sale/purchase header)
- Payments are immutable: insert only, no update path
- Status is recomputed from the sum of payments in the same transaction
  as the insert; it is never set directly by callers
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from ..extensions import db
from ..models import TradeDocument, Payment
from ..models.sales import PAYMENT_STATUS_PAID, PAYMENT_STATUS_PARTIAL
from ..validation import ValidationError, require_positive
from .concurrency import transaction, run_with_retry
from .sales_service import DocumentNotFoundError
from .tenant_service import TenantContext, ContextError

logger = logging.getLogger(__name__)


class PaymentError(Exception):
    """Raised for payment operation errors."""
    pass


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_PAYMENT_EPSILON = 0.001
DEFAULT_PAYMENT_METHOD = "cash"


def resolve_status(paid: float, total: float, epsilon: float = DEFAULT_PAYMENT_EPSILON) -> str:
    """paid once the payments cover the total within epsilon, else partial."""
    if paid >= total - epsilon:
        return PAYMENT_STATUS_PAID
    return PAYMENT_STATUS_PARTIAL


def total_paid(tenant_id: str, doc_id: int) -> float:
    return float(
        db.session.query(func.coalesce(func.sum(Payment.amount), 0.0))
        .filter(
            Payment.tenant_id == tenant_id,
            Payment.sale_id == doc_id,
            Payment.is_deleted.is_(False),
        )
        .scalar()
    )


def apply_payment(
    ctx: TenantContext,
    doc_id: int,
    amount,
    *,
    payment_method: str | None = None,
    reference: str | None = None,
    epsilon: float = DEFAULT_PAYMENT_EPSILON,
) -> tuple[Payment, TradeDocument]:
    """
    Insert a payment and persist the recomputed payment_status on the header.

    Returns:
        (payment, header) after commit

    Raises:
        ValidationError: amount not a positive number
        PaymentError: document missing/cancelled, or the transaction failed
    """
    amount = require_positive("amount", amount)
    method = (payment_method or DEFAULT_PAYMENT_METHOD).strip() or DEFAULT_PAYMENT_METHOD

    def _op():
        with transaction():
            user_id = ctx.require_user()
            doc = (
                db.session.query(TradeDocument)
                .filter_by(id=doc_id, tenant_id=ctx.tenant_id)
                .one_or_none()
            )
            if doc is None:
                raise DocumentNotFoundError(f"Sale {doc_id} not found")
            if doc.is_deleted:
                raise PaymentError(f"Sale {doc_id} is cancelled")

            payment = Payment(
                tenant_id=ctx.tenant_id,
                sale_id=doc.id,
                amount=amount,
                payment_method=method,
                reference=reference,
                user_id=user_id,
            )
            db.session.add(payment)
            db.session.flush()

            doc.payment_status = resolve_status(total_paid(ctx.tenant_id, doc.id), doc.total, epsilon)
            return payment, doc

    try:
        payment, doc = run_with_retry(_op)
    except (PaymentError, DocumentNotFoundError, ContextError):
        raise
    except Exception as exc:
        logger.exception("Applying payment to %s failed; rolled back", doc_id)
        raise PaymentError("Payment could not be recorded") from exc

    logger.info(
        "Payment %.2f applied to %s %s -> %s",
        payment.amount, doc.type, doc.id, doc.payment_status,
    )
    return payment, doc


def list_payments(tenant_id: str, doc_id: int) -> list[Payment]:
    return (
        db.session.query(Payment)
        .filter_by(tenant_id=tenant_id, sale_id=doc_id, is_deleted=False)
        .order_by(Payment.created_at.asc(), Payment.id.asc())
        .all()
    )


def payment_summary(tenant_id: str, doc: TradeDocument) -> dict:
    paid = total_paid(tenant_id, doc.id)
    return {
        "sale_id": doc.id,
        "total": doc.total,
        "paid": round(paid, 2),
        "remaining": round(max(doc.total - paid, 0.0), 2),
        "payment_status": doc.payment_status,
    }
