# Overview: Service-layer read models for reports, the dashboard and customer purchase history.

"""
Reporting Service

Read-only aggregates over the local store. Every query is tenant-scoped and
ignores tombstoned rows. Date ranges are whole UTC calendar days, both ends
inclusive; a missing bound leaves that side open.

Margins use SaleItem.cost_at_sale, the cost snapshot taken when the sale was
recorded, never the product's current purchase price.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import Sale, SaleItem, Product, Customer, User
from ..models.sales import TYPE_SALE
from ..time_utils import utcnow, to_utc_z
from .catalog_service import low_stock_products
from .stock_service import get_stock_map


WALK_IN_CUSTOMER = "Walk-in Customer"
DASHBOARD_DAYS = 7


class ReportError(Exception):
    """Raised when report parameters are invalid."""
    pass


def _parse_day(value: str | None, name: str) -> date | None:
    if value is None or value == "":
        return None
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ReportError(f"{name} must be a date (YYYY-MM-DD)")


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    """Day bounds -> [start 00:00, day after end 00:00)."""
    start_day = _parse_day(start, "start")
    end_day = _parse_day(end, "end")
    if start_day and end_day and start_day > end_day:
        raise ReportError("start must not be after end")
    start_dt = datetime.combine(start_day, time.min) if start_day else None
    end_dt = datetime.combine(end_day + timedelta(days=1), time.min) if end_day else None
    return start_dt, end_dt


def _live_sales(tenant_id: str) -> tuple:
    return (Sale.tenant_id == tenant_id, Sale.type == TYPE_SALE, Sale.is_deleted.is_(False))


def _within(query, start_dt: datetime | None, end_dt: datetime | None):
    if start_dt:
        query = query.filter(Sale.created_at >= start_dt)
    if end_dt:
        query = query.filter(Sale.created_at < end_dt)
    return query


def sales_detail(tenant_id: str, *, start: str | None = None, end: str | None = None) -> dict:
    """One row per sale in the range, newest first, with customer and cashier names."""
    start_dt, end_dt = _parse_range(start, end)

    query = (
        db.session.query(Sale, Customer.name, User.username)
        .outerjoin(Customer, (Customer.id == Sale.customer_id) & (Customer.tenant_id == Sale.tenant_id))
        .outerjoin(User, User.id == Sale.user_id)
        .filter(*_live_sales(tenant_id))
    )
    query = _within(query, start_dt, end_dt)
    rows = query.order_by(Sale.created_at.desc(), Sale.id.desc()).all()

    return {
        "start": start,
        "end": end,
        "count": len(rows),
        "total": round(sum(sale.total for sale, _, _ in rows), 2),
        "rows": [
            {
                "sale_id": sale.id,
                "uuid": sale.uuid,
                "created_at": to_utc_z(sale.created_at),
                "customer_name": customer_name or WALK_IN_CUSTOMER,
                "cashier_name": cashier_name,
                "total": sale.total,
                "payment_status": sale.payment_status,
            }
            for sale, customer_name, cashier_name in rows
        ],
    }


def product_performance(tenant_id: str, *, start: str | None = None, end: str | None = None) -> dict:
    """Quantity, revenue, cost and margin per product sold in the range, best sellers first."""
    start_dt, end_dt = _parse_range(start, end)

    revenue = func.coalesce(func.sum(SaleItem.total), 0.0)
    cost = func.coalesce(func.sum(SaleItem.quantity * SaleItem.cost_at_sale), 0.0)
    query = (
        db.session.query(
            Product.id.label("product_id"),
            Product.name,
            Product.sku,
            func.coalesce(func.sum(SaleItem.quantity), 0.0).label("quantity_sold"),
            revenue.label("revenue"),
            cost.label("cost"),
        )
        .join(Sale, (Sale.id == SaleItem.sale_id) & (Sale.tenant_id == SaleItem.tenant_id))
        .join(Product, (Product.id == SaleItem.product_id) & (Product.tenant_id == SaleItem.tenant_id))
        .filter(
            SaleItem.tenant_id == tenant_id,
            SaleItem.is_deleted.is_(False),
            *_live_sales(tenant_id),
        )
    )
    query = _within(query, start_dt, end_dt)
    rows = query.group_by(Product.id, Product.name, Product.sku).order_by(revenue.desc()).all()

    out = []
    for row in rows:
        row_revenue = round(float(row.revenue), 2)
        row_cost = round(float(row.cost), 2)
        margin = round(row_revenue - row_cost, 2)
        out.append({
            "product_id": row.product_id,
            "name": row.name,
            "sku": row.sku,
            "quantity_sold": float(row.quantity_sold),
            "revenue": row_revenue,
            "cost": row_cost,
            "margin": margin,
            "margin_pct": round(margin / row_revenue * 100.0, 2) if row_revenue else None,
        })

    return {"start": start, "end": end, "rows": out}


def inventory_value(tenant_id: str) -> dict:
    """Derived stock of every active product valued at its purchase price."""
    products = (
        db.session.query(Product)
        .filter_by(tenant_id=tenant_id, is_deleted=False, is_active=True)
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )
    stock = get_stock_map(tenant_id, [p.id for p in products])

    rows = []
    total_value = 0.0
    for product in products:
        qty = stock.get(product.id, 0.0)
        value = round(qty * (product.purchase_price or 0.0), 2)
        total_value += value
        rows.append({
            "product_id": product.id,
            "name": product.name,
            "sku": product.sku,
            "current_stock": qty,
            "purchase_price": product.purchase_price,
            "value": value,
        })

    return {"as_of": to_utc_z(utcnow()), "total_value": round(total_value, 2), "rows": rows}


def daily_sales(tenant_id: str, *, days: int = DASHBOARD_DAYS, today: date | None = None) -> dict[str, float]:
    """Sales total per day for the last `days` days (oldest first), zero-filled."""
    today = today or utcnow().date()
    first = today - timedelta(days=days - 1)
    totals = {(first + timedelta(days=i)).isoformat(): 0.0 for i in range(days)}

    day = func.strftime("%Y-%m-%d", Sale.created_at)
    query = (
        db.session.query(day.label("day"), func.coalesce(func.sum(Sale.total), 0.0).label("total"))
        .filter(*_live_sales(tenant_id))
    )
    query = _within(query, datetime.combine(first, time.min), datetime.combine(today + timedelta(days=1), time.min))
    for row in query.group_by("day").all():
        totals[row.day] = round(float(row.total), 2)
    return totals


def dashboard(tenant_id: str, *, today: date | None = None) -> dict:
    today = today or utcnow().date()
    start_dt = datetime.combine(today, time.min)
    sales_today, count_today = (
        _within(
            db.session.query(func.coalesce(func.sum(Sale.total), 0.0), func.count(Sale.id))
            .filter(*_live_sales(tenant_id)),
            start_dt,
            start_dt + timedelta(days=1),
        ).one()
    )
    return {
        "date": today.isoformat(),
        "sales_today": round(float(sales_today), 2),
        "transactions_today": int(count_today),
        "low_stock": low_stock_products(tenant_id),
        "last_7_days": daily_sales(tenant_id, today=today),
    }


def customer_purchase_history(tenant_id: str, customer_id: int) -> list[dict]:
    """The customer's live sales, newest first, with their live item counts."""
    item_count = (
        db.session.query(func.count(SaleItem.id))
        .filter(
            SaleItem.sale_id == Sale.id,
            SaleItem.tenant_id == Sale.tenant_id,
            SaleItem.is_deleted.is_(False),
        )
        .correlate(Sale)
        .scalar_subquery()
    )
    rows = (
        db.session.query(Sale, item_count.label("item_count"))
        .filter(
            *_live_sales(tenant_id),
            Sale.customer_id == customer_id,
        )
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .all()
    )
    return [
        {
            "sale_id": sale.id,
            "date": sale.created_at.date().isoformat(),
            "total": sale.total,
            "item_count": int(count or 0),
            "payment_status": sale.payment_status,
        }
        for sale, count in rows
    ]
