from __future__ import annotations

from ..extensions import db
from .base import SyncMixin
from syncpos.time_utils import utcnow, to_utc_z


TYPE_SALE = "sale"
TYPE_PURCHASE = "purchase"
DOCUMENT_TYPES = (TYPE_SALE, TYPE_PURCHASE)

PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_PARTIAL = "partial"
PAYMENT_STATUS_PAID = "paid"


class TradeDocument(SyncMixin, db.Model):
    """
    Transaction header stored in the single `sales` table.

    One physical representation, two domain types: `type` is the
    discriminator and maps rows to Sale or Purchase. Customer applies to
    sales, supplier to purchases.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_tenant_type_created", "tenant_id", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    type = db.Column(db.String(16), nullable=False)
    user_id = db.Column(db.Integer, nullable=True)
    customer_id = db.Column(db.Integer, nullable=True, index=True)
    supplier_id = db.Column(db.Integer, nullable=True, index=True)

    subtotal = db.Column(db.Float, nullable=False, default=0.0)
    tax = db.Column(db.Float, nullable=False, default=0.0)
    discount = db.Column(db.Float, nullable=False, default=0.0)
    total = db.Column(db.Float, nullable=False, default=0.0)

    payment_method = db.Column(db.String(32), nullable=True)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PENDING)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __mapper_args__ = {"polymorphic_on": type}

    def to_dict(self) -> dict:
        return {
            **self.envelope_dict(),
            "type": self.type,
            "user_id": self.user_id,
            "customer_id": self.customer_id,
            "supplier_id": self.supplier_id,
            "subtotal": self.subtotal,
            "tax": self.tax,
            "discount": self.discount,
            "total": self.total,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class Sale(TradeDocument):
    """Outgoing goods to an (optional) customer."""
    __mapper_args__ = {"polymorphic_identity": TYPE_SALE}


class Purchase(TradeDocument):
    """Incoming goods from an (optional) supplier."""
    __mapper_args__ = {"polymorphic_identity": TYPE_PURCHASE}


class SaleItem(SyncMixin, db.Model):
    """
    Line item of a sale or purchase.

    cost_at_sale is a snapshot taken when the document is recorded and never
    follows later product price changes.
    """
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    sale_id = db.Column(db.Integer, nullable=False, index=True)
    product_id = db.Column(db.Integer, nullable=False, index=True)
    supplier_product_code = db.Column(db.String(128), nullable=True)

    quantity = db.Column(db.Float, nullable=False)
    unit_price = db.Column(db.Float, nullable=False)
    cost_at_sale = db.Column(db.Float, nullable=False, default=0.0)
    tax_rate = db.Column(db.Float, nullable=False, default=0.0)
    discount = db.Column(db.Float, nullable=False, default=0.0)
    total = db.Column(db.Float, nullable=False, default=0.0)

    def to_dict(self) -> dict:
        return {
            **self.envelope_dict(),
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "supplier_product_code": self.supplier_product_code,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "cost_at_sale": self.cost_at_sale,
            "tax_rate": self.tax_rate,
            "discount": self.discount,
            "total": self.total,
        }


class Payment(SyncMixin, db.Model):
    """
    Payment against a sale or purchase.

    Immutable: payments are only ever inserted. There is no update path.
    """
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    sale_id = db.Column(db.Integer, nullable=False, index=True)
    amount = db.Column(db.Float, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="cash")
    reference = db.Column(db.String(255), nullable=True)
    user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            **self.envelope_dict(),
            "sale_id": self.sale_id,
            "amount": self.amount,
            "payment_method": self.payment_method,
            "reference": self.reference,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
