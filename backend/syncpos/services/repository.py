"""
Local Persistence Gateway: one generic repository per syncable model

WHY: Every syncable table shares the same envelope (uuid, tenant_id,
last_updated_at, is_synced, is_deleted), so tenant scoping, tombstones and
sync bookkeeping live here once instead of per entity.

INVARIANTS:
1. Every query is scoped by tenant_id
2. query_all never returns tombstones; query_unsynced does (they must sync)
3. soft_delete is the only deletion; it clears is_synced via the flush hook
4. mark_synced is a conditional UPDATE: it only flips the flag when the row
   has not been touched since the caller read it
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Generic, TypeVar

from sqlalchemy import update

from ..extensions import db
from ..models import SyncMixin

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=SyncMixin)


class Repository(Generic[M]):
    def __init__(self, model: type[M]):
        self.model = model

    def __repr__(self) -> str:
        return f"<Repository {self.model.__name__}>"

    def _scoped(self, tenant_id: str):
        return db.session.query(self.model).filter(self.model.tenant_id == tenant_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, id: int, tenant_id: str, *, include_deleted: bool = False) -> M | None:
        query = self._scoped(tenant_id).filter(self.model.id == id)
        if not include_deleted:
            query = query.filter(self.model.is_deleted.is_(False))
        return query.one_or_none()

    def get_by_uuid(self, uuid: str, tenant_id: str | None = None) -> M | None:
        query = db.session.query(self.model).filter(self.model.uuid == uuid)
        if tenant_id is not None:
            query = query.filter(self.model.tenant_id == tenant_id)
        return query.one_or_none()

    def query_all(self, tenant_id: str, **filters) -> list[M]:
        return (
            self._scoped(tenant_id)
            .filter(self.model.is_deleted.is_(False))
            .filter_by(**filters)
            .order_by(self.model.id.asc())
            .all()
        )

    def query_unsynced(self, tenant_id: str) -> list[M]:
        return (
            self._scoped(tenant_id)
            .filter(self.model.is_synced.is_(False))
            .order_by(self.model.id.asc())
            .all()
        )

    def count_unsynced(self, tenant_id: str) -> int:
        return self._scoped(tenant_id).filter(self.model.is_synced.is_(False)).count()

    # ------------------------------------------------------------------
    # Local writes (flag + timestamp handled by the flush hook)
    # ------------------------------------------------------------------

    def insert(self, tenant_id: str, *, commit: bool = True, **attrs) -> M:
        obj = self.model(tenant_id=tenant_id, **attrs)
        db.session.add(obj)
        if commit:
            db.session.commit()
        else:
            db.session.flush()
        return obj

    def update(self, obj: M, *, commit: bool = True, **changes) -> M:
        for key, value in changes.items():
            setattr(obj, key, value)
        if commit:
            db.session.commit()
        else:
            db.session.flush()
        return obj

    def soft_delete(self, id: int, tenant_id: str, *, commit: bool = True) -> bool:
        obj = self.get(id, tenant_id)
        if obj is None:
            return False
        obj.is_deleted = True
        if commit:
            db.session.commit()
        else:
            db.session.flush()
        return True

    # ------------------------------------------------------------------
    # Sync bookkeeping
    # ------------------------------------------------------------------

    def mark_synced(self, id: int, tenant_id: str, expected_updated_at: datetime | None = None) -> bool:
        """
        Flip is_synced=True after a successful push.

        With expected_updated_at, a row edited while its push was in flight
        keeps is_synced=False and goes out again next cycle.
        """
        stmt = (
            update(self.model)
            .where(self.model.id == id, self.model.tenant_id == tenant_id)
            .values(is_synced=True)
            .execution_options(synchronize_session="fetch")
        )
        if expected_updated_at is not None:
            stmt = stmt.where(self.model.last_updated_at == expected_updated_at)
        result = db.session.execute(stmt)
        db.session.commit()
        if result.rowcount == 0:
            logger.info("%s id=%s changed during push; left unsynced", self.model.__name__, id)
            return False
        return True

    def upsert_remote(self, attrs: dict) -> tuple[M, bool]:
        """
        Overwrite-or-insert by uuid with remote-origin data.

        The caller commits. Returns (row, created).
        """
        obj = self.get_by_uuid(attrs["uuid"])
        created = obj is None
        if created:
            obj = self._model_for(attrs)()
            db.session.add(obj)
        for key, value in attrs.items():
            setattr(obj, key, value)
        obj.is_synced = True
        obj.mark_remote_origin()
        db.session.flush()
        return obj, created

    def _model_for(self, attrs: dict) -> type[M]:
        # Single-table variants: pick the mapped subclass for the discriminator
        mapper = self.model.__mapper__
        if mapper.polymorphic_on is None:
            return self.model
        identity = attrs.get(mapper.polymorphic_on.key)
        sub = mapper.polymorphic_map.get(identity)
        return sub.class_ if sub is not None else self.model
