"""
Reports, dashboard figures and customer purchase history.

Verifies:
- Margins come from the cost snapshot on the sale item, not the current price
- Cancelled sales and purchases never count as sales
- Day ranges are inclusive and bad ranges are rejected
"""

from datetime import date, datetime

import pytest

from syncpos.extensions import db
from syncpos.models import Product
from syncpos.services import reporting_service, sales_service, purchase_service, catalog_service
from syncpos.services.reporting_service import ReportError
from syncpos.services.repository import Repository


def _sale(ctx, product, quantity, *, on=None, customer_id=None):
    sale = sales_service.record_sale(ctx, [{"product_id": product.id, "quantity": quantity}], customer_id=customer_id)
    if on is not None:
        sale.created_at = on
        db.session.commit()
    return sale


# =============================================================================
# PRODUCT PERFORMANCE
# =============================================================================


def test_margin_uses_cost_snapshot(db_session, ctx, stocked_product, second_product):
    _sale(ctx, second_product, 2)
    _sale(ctx, stocked_product, 1)
    Repository(Product).update(second_product, purchase_price=30.0)

    rows = reporting_service.product_performance(ctx.tenant_id)["rows"]

    assert [r["name"] for r in rows] == ["Gadget", "Widget"]
    gadget, widget = rows
    assert gadget["quantity_sold"] == 2
    assert gadget["revenue"] == 100.0
    assert gadget["cost"] == 40.0
    assert gadget["margin"] == 60.0
    assert gadget["margin_pct"] == 60.0
    assert widget["revenue"] == 11.9
    assert widget["cost"] == 4.0


def test_cancelled_sales_and_purchases_are_not_sales(db_session, ctx, stocked_product, second_product):
    cancelled = _sale(ctx, second_product, 1)
    sales_service.cancel_sale(ctx, cancelled.id)
    purchase_service.record_purchase(ctx, [{"product_id": stocked_product.id, "quantity": 5, "unit_price": 3.0}])

    assert reporting_service.product_performance(ctx.tenant_id)["rows"] == []
    assert reporting_service.sales_detail(ctx.tenant_id)["count"] == 0


# =============================================================================
# SALES DETAIL
# =============================================================================


def test_sales_detail_names_and_range(db_session, ctx, stocked_product, customer):
    early = _sale(ctx, stocked_product, 1, on=datetime(2026, 1, 10, 23, 59), customer_id=customer.id)
    _sale(ctx, stocked_product, 2, on=datetime(2026, 1, 12, 8, 0))

    everything = reporting_service.sales_detail(ctx.tenant_id)
    assert everything["count"] == 2
    assert everything["total"] == round(11.9 + 23.8, 2)
    assert [r["customer_name"] for r in everything["rows"]] == ["Walk-in Customer", "Jane Buyer"]
    assert {r["cashier_name"] for r in everything["rows"]} == {"cashier"}

    one_day = reporting_service.sales_detail(ctx.tenant_id, start="2026-01-10", end="2026-01-10")
    assert [r["sale_id"] for r in one_day["rows"]] == [early.id]
    assert reporting_service.sales_detail(ctx.tenant_id, start="2026-01-11")["count"] == 1


@pytest.mark.parametrize(
    "start,end",
    [("yesterday", None), (None, "2026-13-01"), ("2026-02-02", "2026-02-01")],
)
def test_bad_ranges_rejected(db_session, ctx, start, end):
    with pytest.raises(ReportError):
        reporting_service.sales_detail(ctx.tenant_id, start=start, end=end)


# =============================================================================
# INVENTORY VALUE
# =============================================================================


def test_inventory_value_from_ledger_stock(db_session, ctx, stocked_product, second_product):
    _sale(ctx, stocked_product, 5)
    catalog_service.deactivate_product(ctx, second_product.id)

    report = reporting_service.inventory_value(ctx.tenant_id)

    assert [r["name"] for r in report["rows"]] == ["Widget"]
    assert report["rows"][0]["current_stock"] == 15
    assert report["rows"][0]["value"] == 60.0
    assert report["total_value"] == 60.0


# =============================================================================
# DASHBOARD
# =============================================================================


def test_daily_sales_are_zero_filled(db_session, ctx, stocked_product):
    _sale(ctx, stocked_product, 1, on=datetime(2026, 1, 6, 9, 0))
    _sale(ctx, stocked_product, 1, on=datetime(2026, 1, 12, 9, 0))
    _sale(ctx, stocked_product, 1, on=datetime(2026, 1, 12, 18, 0))
    _sale(ctx, stocked_product, 1, on=datetime(2026, 1, 5, 9, 0))

    totals = reporting_service.daily_sales(ctx.tenant_id, today=date(2026, 1, 12))

    assert list(totals) == [f"2026-01-{d:02d}" for d in range(6, 13)]
    assert totals["2026-01-06"] == 11.9
    assert totals["2026-01-12"] == 23.8
    assert totals["2026-01-09"] == 0.0


def test_dashboard_figures(db_session, ctx, stocked_product, second_product):
    _sale(ctx, stocked_product, 1, on=datetime(2026, 3, 3, 10, 0))
    _sale(ctx, second_product, 1, on=datetime(2026, 3, 3, 11, 0))
    _sale(ctx, stocked_product, 1, on=datetime(2026, 3, 2, 10, 0))

    board = reporting_service.dashboard(ctx.tenant_id, today=date(2026, 3, 3))

    assert board["sales_today"] == 61.9
    assert board["transactions_today"] == 2
    assert board["last_7_days"]["2026-03-02"] == 11.9
    assert [p["name"] for p in board["low_stock"]] == ["Gadget"]


# =============================================================================
# CUSTOMER PURCHASE HISTORY
# =============================================================================


def test_customer_purchase_history(db_session, ctx, stocked_product, second_product, customer):
    older = sales_service.record_sale(
        ctx,
        [{"product_id": stocked_product.id, "quantity": 1}, {"product_id": second_product.id, "quantity": 1}],
        customer_id=customer.id,
    )
    older.created_at = datetime(2026, 4, 1, 9, 0)
    db.session.commit()
    newer = _sale(ctx, second_product, 3, on=datetime(2026, 4, 2, 9, 0), customer_id=customer.id)
    cancelled = _sale(ctx, second_product, 1, customer_id=customer.id)
    sales_service.cancel_sale(ctx, cancelled.id)
    _sale(ctx, stocked_product, 1)

    history = reporting_service.customer_purchase_history(ctx.tenant_id, customer.id)

    assert [h["sale_id"] for h in history] == [newer.id, older.id]
    assert history[0] == {
        "sale_id": newer.id,
        "date": "2026-04-02",
        "total": 150.0,
        "item_count": 1,
        "payment_status": "pending",
    }
    assert history[1]["item_count"] == 2
