# Overview: Dependency-ordered Pull (activation) and incremental Push (periodic) for one tenant.

"""
Sync Engine

Cycle state machine: idle -> running -> (succeeded | failed) -> idle.

PULL (once, at activation):
    for each entity in ENTITY_ORDER: fetch every remote row for the tenant,
    upsert it by uuid (remote wins), store it with is_synced=True. Each row
    commits on its own; a bad row is skipped and logged. A failed fetch
    fails the whole cycle.

PUSH (periodic):
    for each entity in ENTITY_ORDER: post every unsynced local row
    (tombstones included), then mark it synced. A row that fails to post
    stays unsynced for the next cycle; nothing else is blocked.

A tenant's Pull and Push never overlap: both take the same per-tenant
non-blocking lock, and a cycle that cannot take it is reported "skipped".
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Callable, Iterable

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..services.repository import Repository
from ..time_utils import utcnow, to_utc_z
from .registry import ENTITY_ORDER, EntitySpec, SkipRecord, get_entity_spec, from_payload, to_payload, id_for
from .remote import RemoteError, RemoteGateway

logger = logging.getLogger(__name__)


STATE_IDLE = "idle"
STATE_RUNNING = "running"
STATE_SUCCEEDED = "succeeded"
STATE_FAILED = "failed"
STATUS_SKIPPED = "skipped"

KIND_PULL = "pull"
KIND_PUSH = "push"


_tenant_locks: dict[str, threading.Lock] = {}
_tenant_locks_guard = threading.Lock()


def tenant_lock(tenant_id: str) -> threading.Lock:
    with _tenant_locks_guard:
        lock = _tenant_locks.get(tenant_id)
        if lock is None:
            lock = _tenant_locks[tenant_id] = threading.Lock()
        return lock


@dataclass
class EntityCounts:
    pulled: int = 0
    pushed: int = 0
    skipped: int = 0
    failed: int = 0


@dataclass
class SyncResult:
    kind: str
    tenant_id: str
    status: str = STATE_RUNNING
    counts: dict[str, EntityCounts] = field(default_factory=dict)
    error: str | None = None
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None

    @property
    def ok(self) -> bool:
        return self.status == STATE_SUCCEEDED

    def total(self, key: str) -> int:
        return sum(getattr(c, key) for c in self.counts.values())

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "tenant_id": self.tenant_id,
            "status": self.status,
            "counts": {name: asdict(c) for name, c in self.counts.items()},
            "error": self.error,
            "started_at": to_utc_z(self.started_at),
            "finished_at": to_utc_z(self.finished_at),
        }


class SyncEngine:
    def __init__(
        self,
        tenant_id: str,
        remote: RemoteGateway,
        *,
        on_progress: Callable[[str], None] | None = None,
        on_state: Callable[[str], None] | None = None,
    ):
        self.tenant_id = tenant_id
        self.remote = remote
        self.on_progress = on_progress
        self.on_state = on_state
        self.state = STATE_IDLE
        self.last_message: str | None = None
        self.last_result: SyncResult | None = None

    def __repr__(self) -> str:
        return f"<SyncEngine tenant={self.tenant_id} state={self.state}>"

    # ------------------------------------------------------------------
    # Public cycles
    # ------------------------------------------------------------------

    def pull(self) -> SyncResult:
        return self.pull_entities(ENTITY_ORDER)

    def push(self) -> SyncResult:
        return self.push_entities(ENTITY_ORDER)

    def pull_entities(self, names: Iterable[str]) -> SyncResult:
        return self._run(KIND_PULL, names, self._pull_entity)

    def push_entities(self, names: Iterable[str]) -> SyncResult:
        return self._run(KIND_PUSH, names, self._push_entity)

    # ------------------------------------------------------------------
    # Cycle driver
    # ------------------------------------------------------------------

    def _progress(self, message: str) -> None:
        self.last_message = message
        if self.on_progress is not None:
            self.on_progress(message)

    def _set_state(self, state: str) -> None:
        self.state = state
        if self.on_state is not None:
            self.on_state(state)

    def _run(self, kind: str, names: Iterable[str], phase: Callable[[EntitySpec], EntityCounts]) -> SyncResult:
        specs = [get_entity_spec(name) for name in names]
        result = SyncResult(kind=kind, tenant_id=self.tenant_id)

        lock = tenant_lock(self.tenant_id)
        if not lock.acquire(blocking=False):
            result.status = STATUS_SKIPPED
            result.finished_at = utcnow()
            logger.info("%s for tenant %s skipped: another cycle is running", kind, self.tenant_id)
            self._progress(f"{kind.capitalize()} skipped: another sync is running")
            return result

        try:
            self._set_state(STATE_RUNNING)
            self._progress(f"{kind.capitalize()} started")
            for spec in specs:
                result.counts[spec.name] = phase(spec)
            result.status = STATE_SUCCEEDED
            self._progress(f"{kind.capitalize()} finished")
        except Exception as exc:
            db.session.rollback()
            result.status = STATE_FAILED
            result.error = str(exc)
            logger.exception("%s for tenant %s failed", kind, self.tenant_id)
            self._progress(f"{kind.capitalize()} failed: {exc}")
        finally:
            result.finished_at = utcnow()
            self.last_result = result
            lock.release()

        self._set_state(result.status)
        self._set_state(STATE_IDLE)
        return result

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    def _pull_entity(self, spec: EntitySpec) -> EntityCounts:
        counts = EntityCounts()
        self._progress(f"Pulling {spec.name}...")
        rows = self.remote.fetch_all(spec.name, self.tenant_id)

        repo = Repository(spec.model)
        deferred: list[tuple[int, str, str, str]] = []
        for row in rows:
            row_uuid = row.get("uuid") if isinstance(row, dict) else None
            pending: list[tuple[str, str, str]] = []
            try:
                attrs = from_payload(spec, row, self.tenant_id, deferred=pending)
                existing = repo.get_by_uuid(attrs["uuid"])
                if existing is not None and existing.tenant_id != self.tenant_id:
                    raise SkipRecord("uuid already used by another tenant")
                obj, _ = repo.upsert_remote(attrs)
                db.session.commit()
            except SkipRecord as exc:
                db.session.rollback()
                counts.skipped += 1
                logger.warning("Pull %s: skipped %s: %s", spec.name, row_uuid, exc)
                continue
            except SQLAlchemyError as exc:
                db.session.rollback()
                counts.failed += 1
                logger.warning("Pull %s: could not store %s: %s", spec.name, row_uuid, exc)
                continue
            counts.pulled += 1
            deferred.extend((obj.id, attr, target, ref_uuid) for attr, target, ref_uuid in pending)

        if deferred:
            self._resolve_deferred(spec, deferred)

        logger.info(
            "Pulled %s: %s stored, %s skipped, %s failed",
            spec.name, counts.pulled, counts.skipped, counts.failed,
        )
        return counts

    def _resolve_deferred(self, spec: EntitySpec, deferred: list[tuple[int, str, str, str]]) -> None:
        """Second chance for references to rows that arrived later in the same phase."""
        for obj_id, attr, target, ref_uuid in deferred:
            local_id = id_for(target, ref_uuid, self.tenant_id)
            if local_id is None:
                logger.warning("Pull %s: %s=%s still unresolved for id %s", spec.name, attr, ref_uuid, obj_id)
                continue
            obj = db.session.get(spec.model, obj_id)
            if obj is None:
                continue
            setattr(obj, attr, local_id)
            obj.mark_remote_origin()
        db.session.commit()

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def _push_entity(self, spec: EntitySpec) -> EntityCounts:
        counts = EntityCounts()
        repo = Repository(spec.model)
        pending = [(obj.id, obj.uuid) for obj in repo.query_unsynced(self.tenant_id)]
        if not pending:
            return counts
        self._progress(f"Pushing {len(pending)} {spec.name}...")

        for obj_id, obj_uuid in pending:
            obj = repo.get(obj_id, self.tenant_id, include_deleted=True)
            if obj is None or obj.is_synced:
                continue
            stamp = obj.last_updated_at
            try:
                payload = to_payload(spec, obj)
                self.remote.upsert(spec.name, payload)
            except SkipRecord as exc:
                counts.skipped += 1
                logger.warning("Push %s: skipped %s: %s", spec.name, obj_uuid, exc)
                continue
            except RemoteError as exc:
                counts.failed += 1
                logger.warning("Push %s: %s left unsynced: %s", spec.name, obj_uuid, exc)
                continue

            try:
                repo.mark_synced(obj_id, self.tenant_id, expected_updated_at=stamp)
            except SQLAlchemyError as exc:
                # Remote already holds the row; it is re-sent next cycle.
                db.session.rollback()
                counts.failed += 1
                logger.warning("Push %s: %s sent but not marked synced: %s", spec.name, obj_uuid, exc)
                continue
            counts.pushed += 1

        logger.info(
            "Pushed %s: %s sent, %s skipped, %s failed",
            spec.name, counts.pushed, counts.skipped, counts.failed,
        )
        return counts


def unsynced_counts(tenant_id: str) -> dict[str, int]:
    return {
        name: Repository(get_entity_spec(name).model).count_unsynced(tenant_id)
        for name in ENTITY_ORDER
    }
