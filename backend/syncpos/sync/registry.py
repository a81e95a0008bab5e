# Overview: Declarative per-entity sync descriptors (fields, cross-entity references, ingest defaults).

"""
Entity registry for sync

Each syncable table is described once: which columns travel as-is, which
local id columns travel as the referenced row's uuid, and which defaults
replace missing non-nullable values on ingest. The engine is generic over
these descriptors; there is no per-entity sync code.

Order matters: ENTITY_ORDER lists parents before children. Pull resolves
`*_uuid` references against tables materialized by earlier phases, and Push
sends parents before the children that point at them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text

from ..extensions import db
from ..models import (
    User,
    Category,
    Unit,
    Supplier,
    Customer,
    Setting,
    Product,
    ProductSupplier,
    TradeDocument,
    SaleItem,
    Payment,
    StockLedger,
)
from ..models.sales import DOCUMENT_TYPES, TYPE_SALE, PAYMENT_STATUS_PENDING
from ..time_utils import utcnow, parse_iso_datetime, to_wire

logger = logging.getLogger(__name__)


class SkipRecord(Exception):
    """A single record cannot be ingested or sent; the cycle continues."""


@dataclass(frozen=True)
class Ref:
    attr: str
    target: str
    wire: str
    required: bool = False


@dataclass(frozen=True)
class EntitySpec:
    name: str
    model: type
    fields: tuple[str, ...]
    refs: tuple[Ref, ...] = ()
    defaults: dict[str, Any] = field(default_factory=dict)
    check: Callable[[dict], None] | None = None

    @property
    def columns(self) -> dict:
        return {c.key: c for c in self.model.__mapper__.columns}


def _check_document_type(attrs: dict) -> None:
    if attrs.get("type") not in DOCUMENT_TYPES:
        raise SkipRecord(f"invalid transaction type {attrs.get('type')!r}")


ENTITY_SPECS: tuple[EntitySpec, ...] = (
    EntitySpec(
        "users", User,
        ("username", "firstname", "lastname", "password_hash", "email", "phone", "role", "is_active"),
        defaults={"role": "cashier"},
    ),
    EntitySpec(
        "categories", Category,
        ("name", "description"),
        refs=(Ref("parent_id", "categories", "parent_uuid"),),
    ),
    EntitySpec("units", Unit, ("name", "abbreviation")),
    EntitySpec(
        "suppliers", Supplier,
        ("name", "contact_person", "email", "phone", "address", "payment_terms", "credit_limit"),
    ),
    EntitySpec("customers", Customer, ("name", "email", "phone", "address", "loyalty_points")),
    EntitySpec("settings", Setting, ("setting_key", "setting_value")),
    EntitySpec(
        "products", Product,
        (
            "sku", "barcode", "name", "description", "product_type",
            "purchase_price", "selling_price", "tax_rate",
            "min_stock_level", "reorder_quantity", "is_active",
        ),
        refs=(
            Ref("category_id", "categories", "category_uuid"),
            Ref("unit_id", "units", "unit_uuid"),
            Ref("supplier_id", "suppliers", "supplier_uuid"),
        ),
        defaults={"product_type": "PHYSICAL"},
    ),
    EntitySpec(
        "product_suppliers", ProductSupplier,
        ("supplier_product_code",),
        refs=(
            Ref("product_id", "products", "product_uuid", required=True),
            Ref("supplier_id", "suppliers", "supplier_uuid", required=True),
        ),
    ),
    EntitySpec(
        "sales", TradeDocument,
        (
            "type", "subtotal", "tax", "discount", "total",
            "payment_method", "payment_status", "notes", "created_at",
        ),
        refs=(
            Ref("user_id", "users", "user_uuid"),
            Ref("customer_id", "customers", "customer_uuid"),
            Ref("supplier_id", "suppliers", "supplier_uuid"),
        ),
        defaults={"type": TYPE_SALE, "payment_status": PAYMENT_STATUS_PENDING},
        check=_check_document_type,
    ),
    EntitySpec(
        "sale_items", SaleItem,
        ("supplier_product_code", "quantity", "unit_price", "cost_at_sale", "tax_rate", "discount", "total"),
        refs=(
            Ref("sale_id", "sales", "sale_uuid", required=True),
            Ref("product_id", "products", "product_uuid", required=True),
        ),
    ),
    EntitySpec(
        "payments", Payment,
        ("amount", "payment_method", "reference", "created_at"),
        refs=(
            Ref("sale_id", "sales", "sale_uuid", required=True),
            Ref("user_id", "users", "user_uuid"),
        ),
    ),
    EntitySpec(
        "stock_ledger", StockLedger,
        ("quantity_delta", "reason", "notes", "created_at"),
        refs=(
            Ref("product_id", "products", "product_uuid", required=True),
            Ref("sale_item_id", "sale_items", "sale_item_uuid"),
            Ref("user_id", "users", "user_uuid"),
        ),
    ),
)

_BY_NAME = {spec.name: spec for spec in ENTITY_SPECS}
ENTITY_ORDER: tuple[str, ...] = tuple(spec.name for spec in ENTITY_SPECS)


def get_entity_spec(name: str) -> EntitySpec:
    try:
        return _BY_NAME[name]
    except KeyError:
        raise ValueError(f"Unknown sync entity: {name}") from None


# =============================================================================
# REFERENCE LOOKUPS
# =============================================================================

def uuid_for(target: str, local_id: int | None) -> str | None:
    if local_id is None:
        return None
    model = _BY_NAME[target].model
    return db.session.query(model.uuid).filter(model.id == local_id).scalar()


def id_for(target: str, uuid: str | None, tenant_id: str) -> int | None:
    if not uuid:
        return None
    model = _BY_NAME[target].model
    return (
        db.session.query(model.id)
        .filter(model.uuid == uuid, model.tenant_id == tenant_id)
        .scalar()
    )


# =============================================================================
# OUTBOUND (push)
# =============================================================================

def to_payload(spec: EntitySpec, obj) -> dict:
    """
    Wire shape of a local row: envelope + fields + references as uuids.

    Local ids and is_synced never leave the installation.
    """
    columns = spec.columns
    payload = {
        "uuid": obj.uuid,
        "tenant_id": obj.tenant_id,
        "last_updated_at": to_wire(obj.last_updated_at),
        "is_deleted": bool(obj.is_deleted),
    }
    for name in spec.fields:
        value = getattr(obj, name)
        if isinstance(columns[name].type, DateTime):
            value = to_wire(value)
        payload[name] = value
    for ref in spec.refs:
        local_id = getattr(obj, ref.attr)
        ref_uuid = uuid_for(ref.target, local_id)
        if ref.required and ref_uuid is None:
            raise SkipRecord(f"{ref.attr}={local_id} has no local {ref.target} row")
        payload[ref.wire] = ref_uuid
    return payload


# =============================================================================
# INBOUND (pull, sanitize-on-ingest)
# =============================================================================

def _coerce(column, value):
    coltype = column.type
    if isinstance(coltype, DateTime):
        parsed = parse_iso_datetime(value)
        if parsed is None:
            raise ValueError("empty datetime")
        return parsed
    if isinstance(coltype, Boolean):
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "t", "yes"}
        return bool(value)
    if isinstance(coltype, Integer):
        return int(value)
    if isinstance(coltype, Float):
        return float(value)
    if isinstance(coltype, (String, Text)):
        return str(value)
    return value


def _default_for(spec: EntitySpec, column):
    if column.key in spec.defaults:
        return spec.defaults[column.key]
    coltype = column.type
    if isinstance(coltype, DateTime):
        return utcnow()
    if isinstance(coltype, Boolean):
        default = column.default.arg if column.default is not None else False
        return bool(default)
    if isinstance(coltype, Integer):
        return 0
    if isinstance(coltype, Float):
        return 0.0
    return ""


def from_payload(spec: EntitySpec, row: dict, tenant_id: str, *, deferred: list | None = None) -> dict:
    """
    Local attributes for a remote row.

    Raises SkipRecord when the row cannot be stored: no uuid, foreign tenant,
    malformed value, or a mandatory reference that does not resolve locally.
    Unresolvable optional references are stored as NULL; when `deferred` is
    given they are appended to it as (attr, target, uuid) for a later retry.
    """
    if not isinstance(row, dict):
        raise SkipRecord("row is not an object")
    uuid = row.get("uuid")
    if not uuid:
        raise SkipRecord("missing uuid")

    row_tenant = row.get("tenant_id")
    if row_tenant and row_tenant != tenant_id:
        raise SkipRecord(f"belongs to tenant {row_tenant}")

    columns = spec.columns
    attrs: dict[str, Any] = {"uuid": str(uuid), "tenant_id": tenant_id}

    raw_updated = row.get("last_updated_at")
    try:
        attrs["last_updated_at"] = parse_iso_datetime(raw_updated) or utcnow()
    except ValueError:
        raise SkipRecord(f"malformed last_updated_at {raw_updated!r}")
    if raw_updated in (None, ""):
        logger.warning("%s %s: last_updated_at missing, defaulted to now", spec.name, uuid)
    attrs["is_deleted"] = bool(_coerce(columns["is_deleted"], row.get("is_deleted") or False))

    for name in spec.fields:
        column = columns[name]
        value = row.get(name)
        if value is None or (value == "" and not isinstance(column.type, (String, Text))):
            if column.nullable:
                attrs[name] = None
                continue
            attrs[name] = _default_for(spec, column)
            logger.warning("%s %s: %s missing, defaulted to %r", spec.name, uuid, name, attrs[name])
            continue
        try:
            attrs[name] = _coerce(column, value)
        except (TypeError, ValueError):
            raise SkipRecord(f"malformed {name} {value!r}")

    for ref in spec.refs:
        ref_uuid = row.get(ref.wire)
        local_id = id_for(ref.target, ref_uuid, tenant_id)
        if local_id is None:
            if ref.required:
                reason = "missing" if not ref_uuid else f"unresolved ({ref_uuid})"
                raise SkipRecord(f"{ref.wire} {reason}")
            if ref_uuid:
                logger.warning("%s %s: %s=%s not found locally, stored as NULL", spec.name, uuid, ref.wire, ref_uuid)
                if deferred is not None:
                    deferred.append((ref.attr, ref.target, ref_uuid))
        attrs[ref.attr] = local_id

    if spec.check is not None:
        spec.check(attrs)
    return attrs
