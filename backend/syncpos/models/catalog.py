from __future__ import annotations

from ..extensions import db
from .base import SyncMixin


class Category(SyncMixin, db.Model):
    """
    Product category tree.

    parent_id is a nullable self-reference. There is no database foreign key:
    the catalog service validates that the parent exists, is live and shares
    the tenant before every write.
    """
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    parent_id = db.Column(db.Integer, nullable=True, index=True)

    def to_dict(self) -> dict:
        return {
            **self.envelope_dict(),
            "name": self.name,
            "description": self.description,
            "parent_id": self.parent_id,
        }


class Unit(SyncMixin, db.Model):
    __tablename__ = "units"
    __table_args__ = {"sqlite_autoincrement": True}

    name = db.Column(db.String(120), nullable=False)
    abbreviation = db.Column(db.String(32), nullable=False, default="")

    def to_dict(self) -> dict:
        return {
            **self.envelope_dict(),
            "name": self.name,
            "abbreviation": self.abbreviation,
        }


class Supplier(SyncMixin, db.Model):
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    name = db.Column(db.String(255), nullable=False)
    contact_person = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)
    payment_terms = db.Column(db.String(255), nullable=True)
    credit_limit = db.Column(db.Float, nullable=False, default=0.0)

    def to_dict(self) -> dict:
        return {
            **self.envelope_dict(),
            "name": self.name,
            "contact_person": self.contact_person,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "payment_terms": self.payment_terms,
            "credit_limit": self.credit_limit,
        }


class Customer(SyncMixin, db.Model):
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)
    loyalty_points = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            **self.envelope_dict(),
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "loyalty_points": self.loyalty_points,
        }


class Product(SyncMixin, db.Model):
    """
    Product master data.

    STOCK: there is no stock column. Current stock is the sum of non-deleted
    StockLedger.quantity_delta rows for the product, computed on every read
    (see stock_service.get_stock).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_tenant_name", "tenant_id", "name"),
        {"sqlite_autoincrement": True},
    )

    sku = db.Column(db.String(64), nullable=True)
    barcode = db.Column(db.String(128), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    product_type = db.Column(db.String(32), nullable=False, default="PHYSICAL")

    # Optional references (local ids, resolved from *_uuid on pull)
    category_id = db.Column(db.Integer, nullable=True, index=True)
    unit_id = db.Column(db.Integer, nullable=True)
    supplier_id = db.Column(db.Integer, nullable=True)

    purchase_price = db.Column(db.Float, nullable=False, default=0.0)
    selling_price = db.Column(db.Float, nullable=False, default=0.0)
    tax_rate = db.Column(db.Float, nullable=False, default=0.0)  # percent, e.g. 19.0
    min_stock_level = db.Column(db.Float, nullable=False, default=0.0)
    reorder_quantity = db.Column(db.Float, nullable=False, default=0.0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self, current_stock: float | None = None) -> dict:
        data = {
            **self.envelope_dict(),
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "product_type": self.product_type,
            "category_id": self.category_id,
            "unit_id": self.unit_id,
            "supplier_id": self.supplier_id,
            "purchase_price": self.purchase_price,
            "selling_price": self.selling_price,
            "tax_rate": self.tax_rate,
            "min_stock_level": self.min_stock_level,
            "reorder_quantity": self.reorder_quantity,
            "is_active": self.is_active,
        }
        if current_stock is not None:
            data["current_stock"] = current_stock
        return data


class ProductSupplier(SyncMixin, db.Model):
    """
    Product x Supplier junction carrying the supplier's own product code.

    Pair uniqueness among live links is enforced by catalog_service, not the
    schema, so a tombstoned link never blocks re-linking.
    """
    __tablename__ = "product_suppliers"
    __table_args__ = (
        db.Index("ix_product_suppliers_pair", "tenant_id", "product_id", "supplier_id"),
        {"sqlite_autoincrement": True},
    )

    product_id = db.Column(db.Integer, nullable=False)
    supplier_id = db.Column(db.Integer, nullable=False)
    supplier_product_code = db.Column(db.String(128), nullable=True)

    def to_dict(self) -> dict:
        return {
            **self.envelope_dict(),
            "product_id": self.product_id,
            "supplier_id": self.supplier_id,
            "supplier_product_code": self.supplier_product_code,
        }
