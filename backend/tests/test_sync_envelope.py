"""
Sync envelope tests.

Every local mutation of a syncable row clears is_synced and stamps
last_updated_at; pull-origin writes and is_synced-only updates do not.
"""

import time

from syncpos.models import Product, Category
from syncpos.services.repository import Repository
from syncpos.time_utils import utcnow


def test_new_row_gets_uuid_and_is_unsynced(db_session, tenant):
    repo = Repository(Category)
    cat = repo.insert(tenant.uuid, name="Drinks")

    assert cat.uuid and len(cat.uuid) == 36
    assert cat.is_synced is False
    assert cat.is_deleted is False
    assert cat.last_updated_at is not None


def test_mark_synced_then_local_edit_clears_flag(db_session, product):
    repo = Repository(Product)
    assert repo.mark_synced(product.id, product.tenant_id) is True
    db_session.refresh(product)
    assert product.is_synced is True
    before = product.last_updated_at

    time.sleep(0.001)
    repo.update(product, selling_price=12.5)
    db_session.refresh(product)

    assert product.is_synced is False
    assert product.last_updated_at > before


def test_is_synced_only_change_does_not_restamp(db_session, product):
    stamp = product.last_updated_at
    product.is_synced = True
    db_session.commit()
    db_session.refresh(product)

    assert product.is_synced is True
    assert product.last_updated_at == stamp


def test_soft_delete_is_a_tombstone_that_must_sync(db_session, product):
    repo = Repository(Product)
    repo.mark_synced(product.id, product.tenant_id)

    assert repo.soft_delete(product.id, product.tenant_id) is True
    row = repo.get(product.id, product.tenant_id, include_deleted=True)

    assert row is not None
    assert row.is_deleted is True
    assert row.is_synced is False
    assert repo.get(product.id, product.tenant_id) is None
    assert product.id not in [p.id for p in repo.query_all(product.tenant_id)]
    assert product.id in [p.id for p in repo.query_unsynced(product.tenant_id)]


def test_soft_delete_unknown_row_returns_false(db_session, tenant):
    assert Repository(Product).soft_delete(9999, tenant.uuid) is False


def test_queries_are_tenant_scoped(db_session, product):
    repo = Repository(Product)
    assert repo.get(product.id, "some-other-tenant") is None
    assert repo.query_all("some-other-tenant") == []
    assert repo.query_unsynced("some-other-tenant") == []


def test_upsert_remote_inserts_synced_row(db_session, tenant):
    repo = Repository(Category)
    stamp = utcnow().replace(microsecond=123456)
    obj, created = repo.upsert_remote({
        "uuid": "aaaaaaaa-0000-4000-8000-000000000001",
        "tenant_id": tenant.uuid,
        "last_updated_at": stamp,
        "is_deleted": False,
        "name": "Remote Cat",
        "description": None,
        "parent_id": None,
    })
    db_session.commit()
    db_session.refresh(obj)

    assert created is True
    assert obj.is_synced is True
    assert obj.last_updated_at == stamp


def test_upsert_remote_overwrites_local_changes(db_session, tenant):
    repo = Repository(Category)
    local = repo.insert(tenant.uuid, name="Local name")
    stamp = utcnow()

    obj, created = repo.upsert_remote({
        "uuid": local.uuid,
        "tenant_id": tenant.uuid,
        "last_updated_at": stamp,
        "is_deleted": False,
        "name": "Remote name",
        "description": "from remote",
        "parent_id": None,
    })
    db_session.commit()
    db_session.refresh(obj)

    assert created is False
    assert obj.id == local.id
    assert obj.name == "Remote name"
    assert obj.is_synced is True
    assert obj.last_updated_at == stamp


def test_conditional_mark_synced_keeps_row_edited_during_push(db_session, product):
    repo = Repository(Product)
    read_stamp = product.last_updated_at

    time.sleep(0.001)
    repo.update(product, name="Widget v2")

    assert repo.mark_synced(product.id, product.tenant_id, expected_updated_at=read_stamp) is False
    db_session.refresh(product)
    assert product.is_synced is False

    assert repo.mark_synced(product.id, product.tenant_id, expected_updated_at=product.last_updated_at) is True
    db_session.refresh(product)
    assert product.is_synced is True
