# Overview: Service-layer operations for sales; records and cancels trade documents atomically.

"""
Sales Service: Transactional Write Path

WHY: A sale is a header + N line items + N stock movements. Either all of
them are committed or none are, so stock (a ledger sum) is never left
inconsistent with the documents that moved it.

INVARIANTS:
1. Header, items and ledger rows are written in one transaction
2. cost_at_sale is snapshotted from the product when the line is recorded
3. Every line has exactly one ledger row pointing back at it (sale_item_id)
4. Cancelling tombstones header, items and their ledger rows together
5. Stock availability is NOT enforced here (advisory, checked by the UI)

Purchases share this machinery; see purchase_service.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable

from ..extensions import db
from ..models import (
    TradeDocument,
    Sale,
    SaleItem,
    StockLedger,
    Product,
    Customer,
)
from ..models.inventory import REASON_SALE
from ..validation import ValidationError, require_positive, optional_number
from .concurrency import transaction, run_with_retry
from .tenant_service import TenantContext, ContextError

logger = logging.getLogger(__name__)


class SaleError(Exception):
    """Raised when a sale cannot be recorded or cancelled."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class DocumentNotFoundError(Exception):
    """Raised when a sale or purchase header does not exist for the tenant."""
    pass


@dataclass
class LineInput:
    product_id: int
    quantity: float
    unit_price: float | None = None
    tax_rate: float | None = None
    discount: float = 0.0

    @classmethod
    def from_payload(cls, raw: dict) -> "LineInput":
        if not isinstance(raw, dict):
            raise ValidationError("Each line must be an object")
        product_id = raw.get("product_id")
        if not isinstance(product_id, int) or isinstance(product_id, bool):
            raise ValidationError("product_id must be an integer")
        unit_price = raw.get("unit_price")
        tax_rate = raw.get("tax_rate")
        line = cls(
            product_id=product_id,
            quantity=require_positive("quantity", raw.get("quantity")),
            unit_price=None if unit_price is None else optional_number("unit_price", unit_price),
            tax_rate=None if tax_rate is None else optional_number("tax_rate", tax_rate),
            discount=optional_number("discount", raw.get("discount")),
        )
        if line.unit_price is not None and line.unit_price < 0:
            raise ValidationError("unit_price must be >= 0")
        if line.tax_rate is not None and line.tax_rate < 0:
            raise ValidationError("tax_rate must be >= 0")
        if line.discount < 0:
            raise ValidationError("discount must be >= 0")
        return line


def parse_lines(raw_lines) -> list[LineInput]:
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("At least one line item is required")
    return [
        line if isinstance(line, LineInput) else LineInput.from_payload(line)
        for line in raw_lines
    ]


# =============================================================================
# TOTALS
# =============================================================================

def line_amounts(quantity: float, unit_price: float, tax_rate: float, discount: float) -> tuple[float, float]:
    """Return (line subtotal after discount, line tax). tax_rate is a percent."""
    subtotal = round(quantity * unit_price - discount, 2)
    tax = round(subtotal * tax_rate / 100.0, 2)
    return subtotal, tax


# =============================================================================
# SHARED DOCUMENT WRITER
# =============================================================================

def _load_product(tenant_id: str, product_id: int) -> Product:
    product = (
        db.session.query(Product)
        .filter_by(id=product_id, tenant_id=tenant_id, is_deleted=False)
        .one_or_none()
    )
    if product is None:
        raise ValidationError(f"Product {product_id} not found")
    return product


def write_document(
    ctx: TenantContext,
    doc_cls: type[TradeDocument],
    lines: Iterable[LineInput],
    *,
    header: dict,
    header_discount: float,
    default_price: Callable[[Product], float],
    cost_snapshot: Callable[[Product, LineInput, float], float],
    quantity_sign: int,
    reason: str,
    note_label: str,
    supplier_code: Callable[[Product], str | None] | None = None,
) -> TradeDocument:
    """
    Insert a header, its items and one ledger row per item.

    Runs inside the caller's transaction; the caller commits or rolls back.
    """
    user_id = ctx.require_user()
    doc = doc_cls(tenant_id=ctx.tenant_id, user_id=user_id, **header)
    db.session.add(doc)
    db.session.flush()

    subtotal = 0.0
    tax = 0.0
    for line in lines:
        product = _load_product(ctx.tenant_id, line.product_id)
        unit_price = line.unit_price if line.unit_price is not None else default_price(product)
        tax_rate = line.tax_rate if line.tax_rate is not None else (product.tax_rate or 0.0)
        line_subtotal, line_tax = line_amounts(line.quantity, unit_price, tax_rate, line.discount)
        if line_subtotal < 0:
            raise ValidationError(f"Discount exceeds line amount for product {product.id}")

        item = SaleItem(
            tenant_id=ctx.tenant_id,
            sale_id=doc.id,
            product_id=product.id,
            supplier_product_code=supplier_code(product) if supplier_code else None,
            quantity=line.quantity,
            unit_price=unit_price,
            cost_at_sale=cost_snapshot(product, line, unit_price),
            tax_rate=tax_rate,
            discount=line.discount,
            total=round(line_subtotal + line_tax, 2),
        )
        db.session.add(item)
        db.session.flush()

        db.session.add(StockLedger(
            tenant_id=ctx.tenant_id,
            product_id=product.id,
            quantity_delta=quantity_sign * line.quantity,
            reason=reason,
            sale_item_id=item.id,
            user_id=user_id,
            notes=f"{note_label} #{doc.id}",
        ))

        subtotal += line_subtotal
        tax += line_tax

    doc.subtotal = round(subtotal, 2)
    doc.tax = round(tax, 2)
    doc.discount = header_discount
    doc.total = round(subtotal + tax - header_discount, 2)
    if doc.total < 0:
        raise ValidationError("Discount exceeds document total")
    db.session.flush()
    return doc


def cancel_document(ctx: TenantContext, doc_cls: type[TradeDocument], doc_id: int, error_cls) -> TradeDocument:
    """Tombstone a header, its items and their ledger rows in one transaction."""
    def _op():
        with transaction():
            doc = (
                db.session.query(doc_cls)
                .filter_by(id=doc_id, tenant_id=ctx.tenant_id)
                .one_or_none()
            )
            if doc is None:
                raise DocumentNotFoundError(f"{doc_cls.__name__} {doc_id} not found")
            if doc.is_deleted:
                raise error_cls(f"{doc_cls.__name__} {doc_id} is already cancelled")

            items = (
                db.session.query(SaleItem)
                .filter_by(sale_id=doc.id, tenant_id=ctx.tenant_id, is_deleted=False)
                .all()
            )
            item_ids = [item.id for item in items]
            ledger_rows = []
            if item_ids:
                ledger_rows = (
                    db.session.query(StockLedger)
                    .filter(
                        StockLedger.tenant_id == ctx.tenant_id,
                        StockLedger.sale_item_id.in_(item_ids),
                        StockLedger.is_deleted.is_(False),
                    )
                    .all()
                )

            doc.is_deleted = True
            for row in (*items, *ledger_rows):
                row.is_deleted = True
        return doc

    doc = run_with_retry(_op)
    logger.info("Cancelled %s %s (tenant %s)", doc_cls.__name__.lower(), doc_id, ctx.tenant_id)
    return doc


def get_document(tenant_id: str, doc_cls: type[TradeDocument], doc_id: int) -> TradeDocument | None:
    return (
        db.session.query(doc_cls)
        .filter_by(id=doc_id, tenant_id=tenant_id, is_deleted=False)
        .one_or_none()
    )


def list_documents(tenant_id: str, doc_cls: type[TradeDocument]) -> list[TradeDocument]:
    return (
        db.session.query(doc_cls)
        .filter_by(tenant_id=tenant_id, is_deleted=False)
        .order_by(doc_cls.created_at.desc(), doc_cls.id.desc())
        .all()
    )


def get_items(tenant_id: str, doc_id: int) -> list[SaleItem]:
    return (
        db.session.query(SaleItem)
        .filter_by(sale_id=doc_id, tenant_id=tenant_id, is_deleted=False)
        .order_by(SaleItem.id.asc())
        .all()
    )


def document_with_items(doc: TradeDocument) -> dict:
    data = doc.to_dict()
    data["items"] = [item.to_dict() for item in get_items(doc.tenant_id, doc.id)]
    return data


# =============================================================================
# SALES
# =============================================================================

def record_sale(
    ctx: TenantContext,
    lines,
    *,
    customer_id: int | None = None,
    payment_method: str | None = None,
    discount: float = 0.0,
    notes: str | None = None,
) -> Sale:
    """
    Record a sale: header, items (cost snapshot from purchase_price) and
    one negative ledger movement per item.

    Raises:
        ValidationError: bad input (unknown product/customer, qty <= 0)
        SaleError: the transaction failed and was rolled back
    """
    parsed = parse_lines(lines)
    header_discount = optional_number("discount", discount)
    if header_discount < 0:
        raise ValidationError("discount must be >= 0")

    def _op():
        with transaction():
            if customer_id is not None:
                customer = (
                    db.session.query(Customer)
                    .filter_by(id=customer_id, tenant_id=ctx.tenant_id, is_deleted=False)
                    .one_or_none()
                )
                if customer is None:
                    raise ValidationError(f"Customer {customer_id} not found")
            return write_document(
                ctx,
                Sale,
                parsed,
                header={
                    "customer_id": customer_id,
                    "payment_method": payment_method,
                    "notes": notes,
                },
                header_discount=header_discount,
                default_price=lambda product: product.selling_price or 0.0,
                cost_snapshot=lambda product, line, price: product.purchase_price or 0.0,
                quantity_sign=-1,
                reason=REASON_SALE,
                note_label="Sale",
            )

    try:
        sale = run_with_retry(_op)
    except (ValidationError, ContextError):
        raise
    except Exception as exc:
        logger.exception("Recording sale failed; rolled back")
        raise SaleError("Sale could not be recorded", {"cause": str(exc)}) from exc

    logger.info("Recorded sale %s total=%.2f (tenant %s)", sale.id, sale.total, ctx.tenant_id)
    return sale


def cancel_sale(ctx: TenantContext, sale_id: int) -> Sale:
    return cancel_document(ctx, Sale, sale_id, SaleError)


def get_sale(tenant_id: str, sale_id: int) -> Sale | None:
    return get_document(tenant_id, Sale, sale_id)


def list_sales(tenant_id: str) -> list[Sale]:
    return list_documents(tenant_id, Sale)
