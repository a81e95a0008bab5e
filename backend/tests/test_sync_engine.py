"""
Sync engine tests against the in-memory FakeRemote.

Covers push bookkeeping, pull ordering and sanitizing, the per-tenant lock
and a full push -> wipe -> pull round trip.
"""

import time

import pytest

from syncpos.extensions import db
from syncpos.models import (
    Category,
    Product,
    Sale,
    SaleItem,
    StockLedger,
    User,
    Payment,
    Customer,
    Tenant,
    Unit,
)
from syncpos.services import sales_service, payment_service, catalog_service
from syncpos.services.repository import Repository
from syncpos.services.stock_service import get_stock
from syncpos.sync import ENTITY_ORDER, SyncEngine
from syncpos.sync.engine import tenant_lock, unsynced_counts

from conftest import TENANT_UUID, OTHER_TENANT_UUID


STAMP = "2026-03-01T10:00:00.123456Z"


def _remote_row(uuid, **fields):
    row = {"uuid": uuid, "tenant_id": TENANT_UUID, "last_updated_at": STAMP, "is_deleted": False}
    row.update(fields)
    return row


def _uuid(n):
    return f"00000000-0000-4000-8000-{n:012d}"


# =============================================================================
# PUSH
# =============================================================================

class TestPush:
    def test_push_sends_unsynced_rows_and_marks_them(self, db_session, remote, ctx, stocked_product, fake_remote):
        engine = SyncEngine(ctx.tenant_id, remote)
        result = engine.push()

        assert result.ok
        assert result.counts["products"].pushed == 1
        assert result.counts["users"].pushed == 1
        assert result.counts["stock_ledger"].pushed == 1
        assert all(count == 0 for count in unsynced_counts(ctx.tenant_id).values())

        db_session.refresh(stocked_product)
        assert stocked_product.is_synced is True

    def test_second_push_sends_nothing(self, db_session, remote, ctx, product, fake_remote):
        SyncEngine(ctx.tenant_id, remote).push()
        sent = len(fake_remote.posts)

        result = SyncEngine(ctx.tenant_id, remote).push()

        assert result.ok
        assert result.total("pushed") == 0
        assert len(fake_remote.posts) == sent

    def test_parents_are_pushed_before_children(self, db_session, remote, ctx, stocked_product, customer, fake_remote):
        sales_service.record_sale(ctx, [{"product_id": stocked_product.id, "quantity": 1}], customer_id=customer.id)

        SyncEngine(ctx.tenant_id, remote).push()

        order = [ENTITY_ORDER.index(entity) for entity, _ in fake_remote.posts]
        assert order == sorted(order)

    def test_payload_carries_uuids_not_local_ids(self, db_session, remote, ctx, fake_remote):
        category = catalog_service.create_entity(ctx, "categories", {"name": "Tools"})
        product = catalog_service.create_entity(ctx, "products", {"name": "Hammer", "category_id": category.id})

        SyncEngine(ctx.tenant_id, remote).push()

        row = fake_remote.tables["products"][product.uuid]
        assert row["category_uuid"] == category.uuid
        assert row["tenant_id"] == TENANT_UUID
        assert row["is_deleted"] is False
        assert row["last_updated_at"].endswith("Z")
        assert "id" not in row
        assert "category_id" not in row
        assert "is_synced" not in row

    def test_tombstones_are_pushed(self, db_session, remote, ctx, customer, fake_remote):
        SyncEngine(ctx.tenant_id, remote).push()
        catalog_service.delete_entity(ctx, "customers", customer.id)

        result = SyncEngine(ctx.tenant_id, remote).push()

        assert result.counts["customers"].pushed == 1
        assert fake_remote.tables["customers"][customer.uuid]["is_deleted"] is True

    def test_remote_upsert_is_idempotent(self, db_session, remote, ctx, product, fake_remote):
        SyncEngine(ctx.tenant_id, remote).push()
        Repository(Product).update(product, name="Widget Pro")

        SyncEngine(ctx.tenant_id, remote).push()

        assert len(fake_remote.rows("products")) == 1
        assert fake_remote.rows("products")[0]["name"] == "Widget Pro"

    def test_failed_post_stays_unsynced_and_others_continue(self, db_session, remote, ctx, product, second_product, fake_remote):
        fake_remote.fail_posts.add(product.uuid)

        result = SyncEngine(ctx.tenant_id, remote).push()

        assert result.ok
        assert result.counts["products"].failed == 1
        assert result.counts["products"].pushed == 1
        db_session.expire_all()
        assert db.session.get(Product, product.id).is_synced is False
        assert db.session.get(Product, second_product.id).is_synced is True

        fake_remote.fail_posts.clear()
        retry = SyncEngine(ctx.tenant_id, remote).push()
        assert retry.counts["products"].pushed == 1
        assert unsynced_counts(ctx.tenant_id)["products"] == 0

    def test_local_mark_failure_does_not_stop_later_entities(
        self, db_session, remote, ctx, stocked_product, monkeypatch, fake_remote
    ):
        from sqlalchemy.exc import OperationalError

        original_mark = Repository.mark_synced

        def locked_for_products(self, id, tenant_id, expected_updated_at=None):
            if self.model is Product:
                raise OperationalError("UPDATE products", {}, Exception("database is locked"))
            return original_mark(self, id, tenant_id, expected_updated_at=expected_updated_at)

        monkeypatch.setattr(Repository, "mark_synced", locked_for_products)

        result = SyncEngine(ctx.tenant_id, remote).push()

        assert result.ok
        assert result.counts["products"].failed == 1
        assert result.counts["products"].pushed == 0
        assert result.counts["stock_ledger"].pushed == 1
        assert "stock_ledger" in [entity for entity, _ in fake_remote.posts]
        db_session.expire_all()
        assert db.session.get(Product, stocked_product.id).is_synced is False
        assert unsynced_counts(ctx.tenant_id)["stock_ledger"] == 0

    def test_offline_remote_leaves_everything_unsynced(self, db_session, remote, ctx, product, fake_remote):
        fake_remote.offline = True

        result = SyncEngine(ctx.tenant_id, remote).push()

        assert result.total("pushed") == 0
        assert result.total("failed") >= 2
        assert unsynced_counts(ctx.tenant_id)["products"] == 1

    def test_row_edited_during_push_stays_unsynced(self, db_session, remote, ctx, product, fake_remote):
        def edit_while_posting(entity, payload):
            if entity == "products":
                time.sleep(0.001)
                Repository(Product).update(db.session.get(Product, product.id), name="edited mid-push")

        fake_remote.on_post = edit_while_posting
        SyncEngine(ctx.tenant_id, remote).push_entities(["products"])
        fake_remote.on_post = None

        db_session.expire_all()
        row = db.session.get(Product, product.id)
        assert row.name == "edited mid-push"
        assert row.is_synced is False

    def test_row_with_dangling_required_reference_is_skipped(self, db_session, remote, ctx, fake_remote):
        orphan = StockLedger(tenant_id=ctx.tenant_id, product_id=99999, quantity_delta=1, reason="adjustment")
        db_session.add(orphan)
        db_session.commit()

        result = SyncEngine(ctx.tenant_id, remote).push()

        assert result.ok
        assert result.counts["stock_ledger"].skipped == 1
        db_session.refresh(orphan)
        assert orphan.is_synced is False

    def test_push_entities_limits_the_cycle(self, db_session, remote, ctx, product, customer, fake_remote):
        result = SyncEngine(ctx.tenant_id, remote).push_entities(["customers"])

        assert list(result.counts) == ["customers"]
        assert unsynced_counts(ctx.tenant_id)["products"] == 1

    def test_unknown_entity_is_rejected(self, db_session, remote, ctx):
        with pytest.raises(ValueError):
            SyncEngine(ctx.tenant_id, remote).push_entities(["widgets"])


# =============================================================================
# PULL
# =============================================================================

class TestPull:
    def test_pull_stores_rows_synced_with_remote_timestamps(self, db_session, remote, tenant, fake_remote):
        fake_remote.seed("units", _remote_row(_uuid(1), name="Piece", abbreviation="pc"))

        result = SyncEngine(tenant.uuid, remote).pull()

        assert result.ok
        assert result.counts["units"].pulled == 1
        unit = Repository(Unit).get_by_uuid(_uuid(1), tenant.uuid)
        assert unit.is_synced is True
        assert unit.last_updated_at.isoformat() == "2026-03-01T10:00:00.123456"

    def test_references_resolve_to_local_ids(self, db_session, remote, tenant, fake_remote):
        fake_remote.seed("categories", _remote_row(_uuid(10), name="Drinks"))
        fake_remote.seed("products", _remote_row(_uuid(20), name="Cola", selling_price=2.5, category_uuid=_uuid(10)))
        fake_remote.seed("stock_ledger",
                         _remote_row(_uuid(30), product_uuid=_uuid(20), quantity_delta=12, reason="opening"))

        result = SyncEngine(tenant.uuid, remote).pull()

        assert result.ok
        category = Repository(Category).get_by_uuid(_uuid(10), tenant.uuid)
        product = Repository(Product).get_by_uuid(_uuid(20), tenant.uuid)
        assert product.category_id == category.id
        assert get_stock(tenant.uuid, product.id) == 12

    def test_child_category_before_parent_is_resolved_after_phase(self, db_session, remote, tenant, fake_remote):
        # Child arrives first; its parent is unknown until later in the same phase
        fake_remote.seed(
            "categories",
            _remote_row(_uuid(2), name="Soft drinks", parent_uuid=_uuid(1)),
            _remote_row(_uuid(1), name="Drinks"),
        )

        result = SyncEngine(tenant.uuid, remote).pull()

        assert result.counts["categories"].pulled == 2
        parent = Repository(Category).get_by_uuid(_uuid(1), tenant.uuid)
        child = Repository(Category).get_by_uuid(_uuid(2), tenant.uuid)
        assert child.parent_id == parent.id
        assert child.is_synced is True

    def test_sale_pulled_before_its_items_arrive(self, db_session, remote, tenant, fake_remote):
        fake_remote.seed("products", _remote_row(_uuid(20), name="Cola", selling_price=2.5))
        fake_remote.seed("sales", _remote_row(_uuid(40), type="sale", subtotal=5.0, tax=0.0, total=5.0,
                                              payment_status="paid", created_at=STAMP))
        fake_remote.seed("sale_items",
                         _remote_row(_uuid(41), sale_uuid=_uuid(40), product_uuid=_uuid(20),
                                     quantity=2, unit_price=2.5, cost_at_sale=1.0, total=5.0),
                         _remote_row(_uuid(42), sale_uuid=_uuid(99), product_uuid=_uuid(20), quantity=1))
        fake_remote.seed("payments", _remote_row(_uuid(43), sale_uuid=_uuid(40), amount=5.0, payment_method="cash"))
        fake_remote.seed("stock_ledger",
                         _remote_row(_uuid(44), product_uuid=_uuid(20), sale_item_uuid=_uuid(41),
                                     quantity_delta=-2, reason="sale"))

        result = SyncEngine(tenant.uuid, remote).pull()

        assert result.ok
        assert result.counts["sale_items"].pulled == 1
        assert result.counts["sale_items"].skipped == 1

        sale = Repository(Sale).get_by_uuid(_uuid(40), tenant.uuid)
        assert isinstance(sale, Sale)
        items = sales_service.get_items(tenant.uuid, sale.id)
        assert [i.uuid for i in items] == [_uuid(41)]
        assert payment_service.total_paid(tenant.uuid, sale.id) == 5.0
        ledger = Repository(StockLedger).get_by_uuid(_uuid(44), tenant.uuid)
        assert ledger.sale_item_id == items[0].id

    def test_items_pulled_before_sales_are_skipped_then_recovered(self, db_session, remote, tenant, fake_remote):
        fake_remote.seed("products", _remote_row(_uuid(20), name="Cola"))
        fake_remote.seed("sales", _remote_row(_uuid(40), type="sale", total=2.5))
        fake_remote.seed("sale_items",
                         _remote_row(_uuid(41), sale_uuid=_uuid(40), product_uuid=_uuid(20), quantity=1, unit_price=2.5))

        out_of_order = SyncEngine(tenant.uuid, remote).pull_entities(["sale_items"])

        assert out_of_order.ok
        assert out_of_order.counts["sale_items"].skipped == 1
        assert db_session.query(SaleItem).count() == 0

        in_order = SyncEngine(tenant.uuid, remote).pull()

        assert in_order.ok
        assert in_order.counts["sale_items"].pulled == 1
        sale = Repository(Sale).get_by_uuid(_uuid(40), tenant.uuid)
        assert [i.uuid for i in sales_service.get_items(tenant.uuid, sale.id)] == [_uuid(41)]

    def test_purchase_rows_become_purchases(self, db_session, remote, tenant, fake_remote):
        from syncpos.models import Purchase

        fake_remote.seed("sales", _remote_row(_uuid(50), type="purchase", total=9.0))

        SyncEngine(tenant.uuid, remote).pull()

        doc = Repository(Purchase).get_by_uuid(_uuid(50), tenant.uuid)
        assert isinstance(doc, Purchase)
        assert doc.payment_status == "pending"

    def test_bad_rows_are_skipped_and_defaults_applied(self, db_session, remote, tenant, fake_remote):
        fake_remote.seed(
            "products",
            _remote_row(_uuid(60), sku="NO-NAME"),                              # name defaulted to ""
            _remote_row(_uuid(61), name="Bad date", last_updated_at="yesterday"),
            _remote_row(_uuid(62), name="Bad price", selling_price="cheap"),
        )
        fake_remote.tables["products"]["no-uuid"] = {"tenant_id": TENANT_UUID, "name": "Nameless"}
        fake_remote.seed("sales", _remote_row(_uuid(64), type="refund", total=1.0))

        result = SyncEngine(tenant.uuid, remote).pull()

        assert result.ok
        assert result.counts["products"].pulled == 1
        assert result.counts["products"].skipped == 3
        assert result.counts["sales"].skipped == 1

        product = Repository(Product).get_by_uuid(_uuid(60), tenant.uuid)
        assert product.name == ""
        assert product.selling_price == 0.0
        assert product.product_type == "PHYSICAL"
        assert product.is_active is True

    def test_missing_optional_reference_is_stored_as_null(self, db_session, remote, tenant, fake_remote):
        fake_remote.seed("products", _remote_row(_uuid(70), name="Loose", unit_uuid=_uuid(71)))

        SyncEngine(tenant.uuid, remote).pull()

        product = Repository(Product).get_by_uuid(_uuid(70), tenant.uuid)
        assert product.unit_id is None

    def test_remote_wins_over_local_changes(self, db_session, remote, tenant, product, fake_remote):
        Repository(Product).update(product, name="Local edit")
        fake_remote.seed("products", _remote_row(product.uuid, name="Remote name", selling_price=11.0))

        SyncEngine(tenant.uuid, remote).pull()

        db_session.expire_all()
        row = db.session.get(Product, product.id)
        assert row.name == "Remote name"
        assert row.selling_price == 11.0
        assert row.is_synced is True

    def test_uuid_owned_by_another_tenant_is_skipped(self, db_session, remote, tenant, fake_remote):
        db_session.add(Category(tenant_id=OTHER_TENANT_UUID, uuid=_uuid(80), name="Theirs"))
        db_session.commit()
        fake_remote.seed("categories", _remote_row(_uuid(80), name="Ours"))

        result = SyncEngine(tenant.uuid, remote).pull()

        assert result.counts["categories"].skipped == 1
        assert Repository(Category).get_by_uuid(_uuid(80)).name == "Theirs"

    def test_pulled_rows_are_not_pushed_back(self, db_session, remote, tenant, fake_remote):
        fake_remote.seed("customers", _remote_row(_uuid(90), name="Ann"))
        SyncEngine(tenant.uuid, remote).pull()

        result = SyncEngine(tenant.uuid, remote).push()

        assert result.counts["customers"].pushed == 0

    def test_failed_fetch_fails_the_cycle(self, db_session, remote, tenant, fake_remote):
        fake_remote.seed("categories", _remote_row(_uuid(10), name="Drinks"))
        fake_remote.fail_fetch.add("products")

        result = SyncEngine(tenant.uuid, remote).pull()

        assert result.status == "failed"
        assert "products" in result.error
        # Rows committed before the failure stay
        assert Repository(Category).get_by_uuid(_uuid(10), tenant.uuid) is not None
        assert "products" not in result.counts


# =============================================================================
# CYCLE CONTROL
# =============================================================================

class TestCycle:
    def test_state_transitions(self, db_session, remote, tenant):
        states = []
        engine = SyncEngine(tenant.uuid, remote, on_state=states.append)

        engine.push()

        assert states == ["running", "succeeded", "idle"]
        assert engine.state == "idle"
        assert engine.last_result.ok

    def test_cycle_is_skipped_while_tenant_is_locked(self, db_session, remote, tenant):
        lock = tenant_lock(tenant.uuid)
        assert lock.acquire(blocking=False)
        try:
            result = SyncEngine(tenant.uuid, remote).pull()
        finally:
            lock.release()

        assert result.status == "skipped"
        assert result.counts == {}

    def test_other_tenant_is_not_blocked(self, db_session, remote, tenant):
        lock = tenant_lock(tenant.uuid)
        lock.acquire()
        try:
            result = SyncEngine(OTHER_TENANT_UUID, remote).push()
        finally:
            lock.release()

        assert result.ok

    def test_result_to_dict(self, db_session, remote, ctx, product):
        data = SyncEngine(ctx.tenant_id, remote).push().to_dict()

        assert data["kind"] == "push"
        assert data["status"] == "succeeded"
        assert data["counts"]["products"]["pushed"] == 1
        assert data["finished_at"].endswith("Z")


# =============================================================================
# ROUND TRIP
# =============================================================================

def test_push_wipe_pull_round_trip(db_session, remote, ctx, stocked_product, customer, fake_remote):
    category = catalog_service.create_entity(ctx, "categories", {"name": "Hardware"})
    catalog_service.update_entity(ctx, "products", stocked_product.id, {"category_id": category.id})
    sale = sales_service.record_sale(ctx, [{"product_id": stocked_product.id, "quantity": 3}], customer_id=customer.id)
    payment_service.apply_payment(ctx, sale.id, sale.total)

    expected_total = sale.total
    expected_stock = get_stock(ctx.tenant_id, stocked_product.id)
    product_uuid, sale_uuid = stocked_product.uuid, sale.uuid
    product_stamp = db.session.get(Product, stocked_product.id).last_updated_at

    assert SyncEngine(ctx.tenant_id, remote).push().ok

    # Fresh installation: keep only the tenant row
    for table in reversed(db.metadata.sorted_tables):
        if table.name != Tenant.__tablename__:
            db_session.execute(table.delete())
    db_session.commit()
    db_session.expire_all()

    result = SyncEngine(ctx.tenant_id, remote).pull()
    assert result.ok
    assert result.total("skipped") == 0

    product = Repository(Product).get_by_uuid(product_uuid, ctx.tenant_id)
    pulled_sale = Repository(Sale).get_by_uuid(sale_uuid, ctx.tenant_id)
    assert product.last_updated_at == product_stamp
    assert Repository(Category).get(product.category_id, ctx.tenant_id).name == "Hardware"
    assert get_stock(ctx.tenant_id, product.id) == expected_stock
    assert pulled_sale.total == pytest.approx(expected_total)
    assert pulled_sale.payment_status == "paid"
    assert Repository(Customer).get(pulled_sale.customer_id, ctx.tenant_id).name == "Jane Buyer"
    assert db_session.query(SaleItem).count() == 1
    assert db_session.query(Payment).count() == 1
    assert db_session.query(User).filter_by(username="cashier").one().is_synced is True
    assert all(count == 0 for count in unsynced_counts(ctx.tenant_id).values())
