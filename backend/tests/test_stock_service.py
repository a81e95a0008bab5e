"""Ledger-derived stock and manual adjustments."""

import uuid

import pytest

from syncpos.models import StockLedger
from syncpos.services import stock_service, sales_service
from syncpos.services.repository import Repository
from syncpos.services.stock_service import StockError, LedgerEntryNotFoundError
from syncpos.validation import ValidationError


def test_stock_is_ledger_sum(db_session, ctx, product):
    assert stock_service.get_stock(ctx.tenant_id, product.id) == 0.0

    stock_service.record_adjustment(ctx, product.id, 10)
    stock_service.record_adjustment(ctx, product.id, -2.5, reason="damage", notes="dropped")

    assert stock_service.get_stock(ctx.tenant_id, product.id) == 7.5
    movements = stock_service.list_movements(ctx.tenant_id, product.id)
    assert [m.reason for m in movements] == ["adjustment", "damage"]
    assert movements[1].notes == "dropped"


def test_stock_map_groups_by_product(db_session, ctx, product, second_product):
    stock_service.record_adjustment(ctx, product.id, 3)
    stock_service.record_adjustment(ctx, second_product.id, 8)
    stock_service.record_adjustment(ctx, second_product.id, -1)

    assert stock_service.get_stock_map(ctx.tenant_id) == {product.id: 3.0, second_product.id: 7.0}
    assert stock_service.get_stock_map(ctx.tenant_id, []) == {}


@pytest.mark.parametrize("delta", [0, "x", None])
def test_adjustment_rejects_bad_delta(db_session, ctx, product, delta):
    with pytest.raises(ValidationError):
        stock_service.record_adjustment(ctx, product.id, delta)


def test_adjustment_unknown_product(db_session, ctx):
    with pytest.raises(ValidationError):
        stock_service.record_adjustment(ctx, 9999, 1)


def test_cancel_adjustment_appends_reversal(db_session, ctx, product):
    original = stock_service.record_adjustment(ctx, product.id, 6)

    reversal = stock_service.cancel_adjustment(ctx, original.id)

    assert reversal.id != original.id
    assert reversal.quantity_delta == -6
    assert reversal.reason == "reversal"
    assert reversal.notes == f"Reversal of adjustment {original.uuid}"
    assert stock_service.get_stock(ctx.tenant_id, product.id) == 0.0
    # The original row is untouched
    db_session.refresh(original)
    assert original.is_deleted is False
    assert original.quantity_delta == 6


def test_adjustment_cannot_be_reversed_twice(db_session, ctx, product):
    original = stock_service.record_adjustment(ctx, product.id, 6)
    stock_service.cancel_adjustment(ctx, original.id)
    with pytest.raises(StockError):
        stock_service.cancel_adjustment(ctx, original.id)


def test_reversal_cannot_be_reversed(db_session, ctx, product):
    original = stock_service.record_adjustment(ctx, product.id, 6)
    reversal = stock_service.cancel_adjustment(ctx, original.id)
    with pytest.raises(StockError):
        stock_service.cancel_adjustment(ctx, reversal.id)


def test_reversal_from_another_installation_does_not_block_cancel(db_session, ctx, product):
    original = stock_service.record_adjustment(ctx, product.id, 4)
    # Pulled row whose note names a same-numbered adjustment of another store
    Repository(StockLedger).upsert_remote({
        "uuid": str(uuid.uuid4()),
        "tenant_id": ctx.tenant_id,
        "product_id": product.id,
        "quantity_delta": -1.0,
        "reason": "reversal",
        "notes": f"Reversal of adjustment #{original.id}",
    })
    db_session.commit()

    reversal = stock_service.cancel_adjustment(ctx, original.id)

    assert reversal.quantity_delta == -4
    assert stock_service.get_stock(ctx.tenant_id, product.id) == -1.0


@pytest.mark.parametrize("reason", ["reversal", "Sale", "purchase"])
def test_adjustment_rejects_reserved_reasons(db_session, ctx, product, reason):
    with pytest.raises(ValidationError):
        stock_service.record_adjustment(ctx, product.id, 1, reason=reason)


def test_sale_movements_cannot_be_reversed_directly(db_session, ctx, stocked_product):
    sale = sales_service.record_sale(ctx, [{"product_id": stocked_product.id, "quantity": 1}])
    item = sales_service.get_items(ctx.tenant_id, sale.id)[0]
    row = [m for m in stock_service.list_movements(ctx.tenant_id, stocked_product.id) if m.sale_item_id == item.id][0]

    with pytest.raises(StockError):
        stock_service.cancel_adjustment(ctx, row.id)


def test_cancel_unknown_adjustment(db_session, ctx):
    with pytest.raises(LedgerEntryNotFoundError):
        stock_service.cancel_adjustment(ctx, 31337)
