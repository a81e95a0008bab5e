# Overview: Service-layer operations for stock; derived stock reads and manual ledger movements.

"""
Stock Service

INVARIANTS (authoritative):
1. Stock is never stored. stock(P) = SUM(quantity_delta) over non-deleted
   ledger rows of P, recomputed on every read.
2. The ledger is append-only. A manual adjustment is cancelled by appending
   the negated movement (reason "reversal", notes naming the original uuid),
   never by editing the original. Manual adjustments may not use the
   reasons reserved for documents and reversals.
3. Document-linked rows (sale_item_id set) are only removed by cancelling
   their document.
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from ..extensions import db
from ..models import StockLedger, Product
from ..models.inventory import REASON_REVERSAL, REASON_SALE, REASON_PURCHASE
from ..validation import ValidationError, optional_number
from .concurrency import transaction, run_with_retry
from .tenant_service import TenantContext, ContextError

logger = logging.getLogger(__name__)


class StockError(Exception):
    """Raised for stock ledger operation errors."""
    pass


class LedgerEntryNotFoundError(StockError):
    """Raised when a ledger row does not exist for the tenant."""
    pass


DEFAULT_ADJUSTMENT_REASON = "adjustment"

# Written only by documents and by cancel_adjustment.
RESERVED_REASONS = frozenset({REASON_SALE, REASON_PURCHASE, REASON_REVERSAL})


def get_stock(tenant_id: str, product_id: int) -> float:
    return float(
        db.session.query(func.coalesce(func.sum(StockLedger.quantity_delta), 0.0))
        .filter(
            StockLedger.tenant_id == tenant_id,
            StockLedger.product_id == product_id,
            StockLedger.is_deleted.is_(False),
        )
        .scalar()
    )


def get_stock_map(tenant_id: str, product_ids: list[int] | None = None) -> dict[int, float]:
    """Stock per product in one grouped query. Products without movements are absent."""
    query = (
        db.session.query(StockLedger.product_id, func.sum(StockLedger.quantity_delta))
        .filter(StockLedger.tenant_id == tenant_id, StockLedger.is_deleted.is_(False))
        .group_by(StockLedger.product_id)
    )
    if product_ids is not None:
        if not product_ids:
            return {}
        query = query.filter(StockLedger.product_id.in_(product_ids))
    return {product_id: float(total or 0.0) for product_id, total in query.all()}


def list_movements(tenant_id: str, product_id: int) -> list[StockLedger]:
    return (
        db.session.query(StockLedger)
        .filter_by(tenant_id=tenant_id, product_id=product_id, is_deleted=False)
        .order_by(StockLedger.created_at.asc(), StockLedger.id.asc())
        .all()
    )


def record_adjustment(
    ctx: TenantContext,
    product_id: int,
    quantity_delta,
    *,
    reason: str | None = None,
    notes: str | None = None,
) -> StockLedger:
    """Append a manual signed movement (count correction, damage, opening stock...)."""
    delta = optional_number("quantity_delta", quantity_delta)
    if delta == 0:
        raise ValidationError("quantity_delta must be non-zero")
    reason = (reason or DEFAULT_ADJUSTMENT_REASON).strip() or DEFAULT_ADJUSTMENT_REASON
    if reason.lower() in RESERVED_REASONS:
        raise ValidationError(f"reason '{reason}' is reserved")

    def _op():
        with transaction():
            user_id = ctx.require_user()
            product = (
                db.session.query(Product)
                .filter_by(id=product_id, tenant_id=ctx.tenant_id, is_deleted=False)
                .one_or_none()
            )
            if product is None:
                raise ValidationError(f"Product {product_id} not found")
            row = StockLedger(
                tenant_id=ctx.tenant_id,
                product_id=product.id,
                quantity_delta=delta,
                reason=reason,
                user_id=user_id,
                notes=notes,
            )
            db.session.add(row)
            db.session.flush()
            return row

    try:
        row = run_with_retry(_op)
    except (ValidationError, ContextError):
        raise
    except Exception as exc:
        logger.exception("Stock adjustment for product %s failed; rolled back", product_id)
        raise StockError("Stock adjustment could not be recorded") from exc

    logger.info("Stock adjustment %s: product %s %+g (%s)", row.id, product_id, delta, reason)
    return row


def _reversal_note(original: StockLedger) -> str:
    # uuid, not id: the note syncs to every installation of the tenant.
    return f"Reversal of adjustment {original.uuid}"


def cancel_adjustment(ctx: TenantContext, ledger_id: int) -> StockLedger:
    """
    Cancel a manual adjustment by appending its negation.

    The original row is left untouched so the audit trail shows both.
    """
    def _op():
        with transaction():
            user_id = ctx.require_user()
            original = (
                db.session.query(StockLedger)
                .filter_by(id=ledger_id, tenant_id=ctx.tenant_id, is_deleted=False)
                .one_or_none()
            )
            if original is None:
                raise LedgerEntryNotFoundError(f"Ledger entry {ledger_id} not found")
            if original.sale_item_id is not None:
                raise StockError("Document movements are reversed by cancelling the document")
            if original.reason == REASON_REVERSAL:
                raise StockError("A reversal cannot itself be reversed")
            already = (
                db.session.query(StockLedger.id)
                .filter_by(
                    tenant_id=ctx.tenant_id,
                    reason=REASON_REVERSAL,
                    notes=_reversal_note(original),
                    is_deleted=False,
                )
                .first()
            )
            if already is not None:
                raise StockError(f"Ledger entry {ledger_id} is already reversed")

            reversal = StockLedger(
                tenant_id=ctx.tenant_id,
                product_id=original.product_id,
                quantity_delta=-original.quantity_delta,
                reason=REASON_REVERSAL,
                user_id=user_id,
                notes=_reversal_note(original),
            )
            db.session.add(reversal)
            db.session.flush()
            return reversal

    try:
        reversal = run_with_retry(_op)
    except (StockError, ContextError):
        raise
    except Exception as exc:
        logger.exception("Reversing ledger entry %s failed; rolled back", ledger_id)
        raise StockError("Adjustment could not be reversed") from exc

    logger.info("Ledger entry %s reversed by %s", ledger_id, reversal.id)
    return reversal
