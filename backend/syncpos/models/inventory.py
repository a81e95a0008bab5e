from __future__ import annotations

from ..extensions import db
from .base import SyncMixin
from syncpos.time_utils import utcnow, to_utc_z


REASON_SALE = "sale"
REASON_PURCHASE = "purchase"
REASON_REVERSAL = "reversal"


class StockLedger(SyncMixin, db.Model):
    """
    Append-only stock movement.

    quantity_delta is signed (sale < 0, purchase > 0). A product's stock is
    SUM(quantity_delta) over its non-deleted rows. Rows are never edited:
    corrections append an opposing row, cancelled documents tombstone theirs.
    """
    __tablename__ = "stock_ledger"
    __table_args__ = (
        db.Index("ix_stock_ledger_tenant_product", "tenant_id", "product_id", "is_deleted"),
        {"sqlite_autoincrement": True},
    )

    product_id = db.Column(db.Integer, nullable=False)
    quantity_delta = db.Column(db.Float, nullable=False)
    reason = db.Column(db.String(64), nullable=False)
    sale_item_id = db.Column(db.Integer, nullable=True, index=True)
    user_id = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            **self.envelope_dict(),
            "product_id": self.product_id,
            "quantity_delta": self.quantity_delta,
            "reason": self.reason,
            "sale_item_id": self.sale_item_id,
            "user_id": self.user_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
