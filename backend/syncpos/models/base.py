from __future__ import annotations

import uuid as uuid_lib

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from ..extensions import db
from syncpos.time_utils import utcnow, to_utc_z

"""
Sync envelope invariants (authoritative)

- id is local only; uuid is the cross-installation identity and never changes.
- Rows are never physically deleted; is_deleted is a tombstone that must sync.
- Any local change to a column other than is_synced clears is_synced and
  stamps last_updated_at. Rows written by a pull are flagged remote-origin
  and keep is_synced=True.
"""

REMOTE_ORIGIN_FLAG = "_remote_origin"


def new_uuid() -> str:
    return str(uuid_lib.uuid4())


class SyncMixin:
    """Metadata envelope shared by every syncable entity."""

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), nullable=False, unique=True, default=new_uuid)
    tenant_id = db.Column(db.String(36), nullable=False, index=True)
    last_updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    is_synced = db.Column(db.Boolean, nullable=False, default=False, index=True)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)

    def mark_remote_origin(self) -> None:
        """Exempt the pending write from the local-mutation stamp."""
        self.__dict__[REMOTE_ORIGIN_FLAG] = True

    def envelope_dict(self) -> dict:
        return {
            "id": self.id,
            "uuid": self.uuid,
            "tenant_id": self.tenant_id,
            "last_updated_at": to_utc_z(self.last_updated_at),
            "is_synced": self.is_synced,
            "is_deleted": self.is_deleted,
        }


def _changed_columns(obj) -> set[str]:
    state = inspect(obj)
    return {
        attr.key
        for attr in state.mapper.column_attrs
        if state.attrs[attr.key].history.has_changes()
    }


@event.listens_for(Session, "before_flush")
def _stamp_local_mutations(session, flush_context, instances):
    now = utcnow()

    for obj in session.new:
        if isinstance(obj, SyncMixin):
            obj.__dict__.pop(REMOTE_ORIGIN_FLAG, None)

    for obj in session.dirty:
        if not isinstance(obj, SyncMixin):
            continue
        if obj.__dict__.pop(REMOTE_ORIGIN_FLAG, False):
            continue
        changed = _changed_columns(obj)
        if not changed or changed <= {"is_synced"}:
            continue
        obj.is_synced = False
        obj.last_updated_at = now
