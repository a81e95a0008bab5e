# Overview: Service-layer operations for catalog reference data (categories, units, suppliers, customers, products, links).

"""
Catalog Service

Thin CRUD over the generic repository, plus the integrity rules the schema
does not enforce (there are no database foreign keys):

- every local reference (category_id, unit_id, supplier_id, product_id)
  must name a live row of the same tenant
- a category's parent must not be the category itself or a descendant
- at most one live product-supplier link per (product, supplier)
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Category, Unit, Supplier, Customer, Product, ProductSupplier
from ..validation import ModelValidationPolicy, ValidationError, ConflictError, validate_payload
from .repository import Repository
from .stock_service import get_stock_map
from .tenant_service import TenantContext

logger = logging.getLogger(__name__)


ENTITY_MODELS = {
    "categories": Category,
    "units": Unit,
    "suppliers": Supplier,
    "customers": Customer,
    "products": Product,
    "product_suppliers": ProductSupplier,
}

POLICIES: dict[str, ModelValidationPolicy] = {
    "categories": ModelValidationPolicy(
        writable_fields={"name", "description", "parent_id"},
        required_on_create={"name"},
    ),
    "units": ModelValidationPolicy(
        writable_fields={"name", "abbreviation"},
        required_on_create={"name"},
    ),
    "suppliers": ModelValidationPolicy(
        writable_fields={"name", "contact_person", "email", "phone", "address", "payment_terms", "credit_limit"},
        required_on_create={"name"},
        non_negative={"credit_limit"},
    ),
    "customers": ModelValidationPolicy(
        writable_fields={"name", "email", "phone", "address", "loyalty_points"},
        required_on_create={"name"},
        non_negative={"loyalty_points"},
    ),
    "products": ModelValidationPolicy(
        writable_fields={
            "sku", "barcode", "name", "description", "product_type",
            "category_id", "unit_id", "supplier_id",
            "purchase_price", "selling_price", "tax_rate",
            "min_stock_level", "reorder_quantity", "is_active",
        },
        required_on_create={"name"},
        non_negative={"purchase_price", "selling_price", "tax_rate", "min_stock_level", "reorder_quantity"},
    ),
    "product_suppliers": ModelValidationPolicy(
        writable_fields={"product_id", "supplier_id", "supplier_product_code"},
        required_on_create={"product_id", "supplier_id"},
    ),
}

# Local reference columns and the model they must point at
REFERENCES: dict[str, dict[str, type]] = {
    "categories": {"parent_id": Category},
    "products": {"category_id": Category, "unit_id": Unit, "supplier_id": Supplier},
    "product_suppliers": {"product_id": Product, "supplier_id": Supplier},
}


def _model(entity: str):
    try:
        return ENTITY_MODELS[entity]
    except KeyError:
        raise ValidationError(f"Unknown catalog entity: {entity}")


def _require_live(tenant_id: str, model, id: int, field: str):
    row = Repository(model).get(id, tenant_id)
    if row is None:
        raise ValidationError(f"{field} {id} not found")
    return row


def _check_references(tenant_id: str, entity: str, patch: dict) -> None:
    for field, target in REFERENCES.get(entity, {}).items():
        value = patch.get(field)
        if value is not None:
            _require_live(tenant_id, target, value, field)


# =============================================================================
# CATEGORY TREE
# =============================================================================

def _validate_category_parent(tenant_id: str, parent_id: int | None, category_id: int | None = None) -> None:
    """Parent must exist, be live, share the tenant and not close a cycle."""
    if parent_id is None:
        return
    if category_id is not None and parent_id == category_id:
        raise ValidationError("A category cannot be its own parent")
    repo = Repository(Category)
    parent = repo.get(parent_id, tenant_id)
    if parent is None:
        raise ValidationError(f"Parent category {parent_id} not found")
    if category_id is None:
        return
    seen = {parent.id}
    node = parent
    while node.parent_id is not None:
        if node.parent_id == category_id:
            raise ValidationError("A category cannot be moved under its own descendant")
        if node.parent_id in seen:
            break
        seen.add(node.parent_id)
        node = repo.get(node.parent_id, tenant_id)
        if node is None:
            break


# =============================================================================
# PRODUCT-SUPPLIER LINKS
# =============================================================================

def find_product_supplier(tenant_id: str, product_id: int, supplier_id: int) -> ProductSupplier | None:
    return (
        db.session.query(ProductSupplier)
        .filter_by(tenant_id=tenant_id, product_id=product_id, supplier_id=supplier_id, is_deleted=False)
        .order_by(ProductSupplier.id.asc())
        .first()
    )


def _ensure_unique_link(tenant_id: str, product_id: int, supplier_id: int, link_id: int | None = None) -> None:
    existing = find_product_supplier(tenant_id, product_id, supplier_id)
    if existing is not None and existing.id != link_id:
        raise ConflictError(f"Product {product_id} is already linked to supplier {supplier_id}")


# =============================================================================
# GENERIC CRUD
# =============================================================================

def list_entities(tenant_id: str, entity: str) -> list:
    return Repository(_model(entity)).query_all(tenant_id)


def get_entity(tenant_id: str, entity: str, id: int):
    return Repository(_model(entity)).get(id, tenant_id)


def create_entity(ctx: TenantContext, entity: str, payload: dict):
    model = _model(entity)
    patch = validate_payload(model=model, payload=payload, policy=POLICIES[entity], partial=False)
    _check_references(ctx.tenant_id, entity, patch)

    if entity == "categories":
        _validate_category_parent(ctx.tenant_id, patch.get("parent_id"))
    elif entity == "product_suppliers":
        _ensure_unique_link(ctx.tenant_id, patch["product_id"], patch["supplier_id"])

    row = Repository(model).insert(ctx.tenant_id, **patch)
    logger.info("Created %s %s (tenant %s)", entity, row.id, ctx.tenant_id)
    return row


def update_entity(ctx: TenantContext, entity: str, id: int, payload: dict):
    """Returns the updated row, or None when it does not exist."""
    model = _model(entity)
    repo = Repository(model)
    row = repo.get(id, ctx.tenant_id)
    if row is None:
        return None

    patch = validate_payload(model=model, payload=payload, policy=POLICIES[entity], partial=True)
    _check_references(ctx.tenant_id, entity, patch)

    if entity == "categories" and "parent_id" in patch:
        _validate_category_parent(ctx.tenant_id, patch["parent_id"], category_id=row.id)
    elif entity == "product_suppliers":
        _ensure_unique_link(
            ctx.tenant_id,
            patch.get("product_id", row.product_id),
            patch.get("supplier_id", row.supplier_id),
            link_id=row.id,
        )

    return repo.update(row, **patch)


def delete_entity(ctx: TenantContext, entity: str, id: int) -> bool:
    model = _model(entity)
    if entity == "categories":
        has_children = (
            db.session.query(Category.id)
            .filter_by(tenant_id=ctx.tenant_id, parent_id=id, is_deleted=False)
            .first()
        )
        if has_children is not None:
            raise ConflictError("Category has sub-categories")
    deleted = Repository(model).soft_delete(id, ctx.tenant_id)
    if deleted:
        logger.info("Deleted %s %s (tenant %s)", entity, id, ctx.tenant_id)
    return deleted


def serialize(entity: str, row, stock: dict[int, float] | None = None) -> dict:
    if entity == "products":
        current = (stock or {}).get(row.id, 0.0) if stock is not None else None
        return row.to_dict(current_stock=current)
    return row.to_dict()


# =============================================================================
# PRODUCTS
# =============================================================================

def list_products_with_stock(tenant_id: str, *, active_only: bool = False) -> list[dict]:
    products = Repository(Product).query_all(tenant_id)
    if active_only:
        products = [p for p in products if p.is_active]
    stock = get_stock_map(tenant_id, [p.id for p in products])
    return [p.to_dict(current_stock=stock.get(p.id, 0.0)) for p in products]


def low_stock_products(tenant_id: str) -> list[dict]:
    """Active products whose derived stock is at or below min_stock_level."""
    return [
        p for p in list_products_with_stock(tenant_id, active_only=True)
        if p["current_stock"] <= p["min_stock_level"]
    ]


def deactivate_product(ctx: TenantContext, product_id: int) -> Product | None:
    repo = Repository(Product)
    product = repo.get(product_id, ctx.tenant_id)
    if product is None:
        return None
    return repo.update(product, is_active=False)
