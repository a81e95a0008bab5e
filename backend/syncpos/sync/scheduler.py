# Overview: Background workers for sync (periodic Push, one-shot Pull and activation).

"""
SyncScheduler

Wraps an APScheduler BackgroundScheduler bound to one Flask app:

- periodic Push: interval job, first run after SYNC_INITIAL_DELAY_SECONDS,
  then every SYNC_INTERVAL_SECONDS; max_instances=1 and coalesce so a slow
  cycle never stacks up behind itself
- one-shot Pull / activation jobs submitted on demand

Every job runs inside an app context and records its progress and terminal
status for the status endpoints.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.background import BackgroundScheduler

from ..extensions import db
from ..services.tenant_service import get_activated_tenant
from .engine import SyncEngine, SyncResult, STATE_RUNNING, STATE_SUCCEEDED, STATE_FAILED, STATE_IDLE
from .remote import RemoteGateway, RemoteError

logger = logging.getLogger(__name__)

PUSH_JOB_ID = "syncpos-push"
PULL_JOB_ID = "syncpos-pull"
ACTIVATION_JOB_ID = "syncpos-activation"


class SyncScheduler:
    def __init__(self, app=None):
        self.app = None
        self._scheduler: BackgroundScheduler | None = None
        self._lock = threading.Lock()
        self.last_results: dict[str, SyncResult] = {}
        self.last_message: str | None = None
        self.activation: dict = {"state": STATE_IDLE, "message": None, "error": None, "tenant_id": None}
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        self.app = app
        app.extensions["syncpos_scheduler"] = self

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def _ensure_started(self) -> BackgroundScheduler:
        with self._lock:
            if self._scheduler is None:
                self._scheduler = BackgroundScheduler(daemon=True, timezone=timezone.utc)
            if not self._scheduler.running:
                self._scheduler.start()
            return self._scheduler

    def start_periodic_push(self) -> None:
        config = self.app.config
        delay = config["SYNC_INITIAL_DELAY_SECONDS"]
        interval = config["SYNC_INTERVAL_SECONDS"]
        scheduler = self._ensure_started()
        scheduler.add_job(
            self.run_push,
            trigger="interval",
            seconds=interval,
            next_run_time=datetime.now(timezone.utc) + timedelta(seconds=delay),
            id=PUSH_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info("Periodic push scheduled: first in %ss, every %ss", delay, interval)

    def shutdown(self, wait: bool = False) -> None:
        with self._lock:
            if self._scheduler is not None and self._scheduler.running:
                self._scheduler.shutdown(wait=wait)
            self._scheduler = None

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def _record(self, message: str) -> None:
        self.last_message = message

    def _run_cycle(self, kind: str) -> SyncResult | None:
        with self.app.app_context():
            try:
                tenant = get_activated_tenant()
                if tenant is None:
                    logger.debug("No activated tenant; %s not run", kind)
                    return None
                try:
                    remote = RemoteGateway.from_config(self.app.config)
                except RemoteError as exc:
                    logger.warning("%s not run: %s", kind, exc)
                    return None
                with remote:
                    engine = SyncEngine(tenant.uuid, remote, on_progress=self._record)
                    result = engine.push() if kind == "push" else engine.pull()
                self.last_results[kind] = result
                return result
            finally:
                db.session.remove()

    def run_push(self) -> SyncResult | None:
        return self._run_cycle("push")

    def run_pull(self) -> SyncResult | None:
        return self._run_cycle("pull")

    def submit_pull(self) -> None:
        self._ensure_started().add_job(self.run_pull, id=PULL_JOB_ID, replace_existing=True)

    def run_activation(self, license_key: str) -> None:
        """Activation worker: publishes progress and the terminal state in self.activation."""
        from ..services.activation_service import activate, ActivationError

        self.activation = {"state": STATE_RUNNING, "message": "Starting activation...", "error": None, "tenant_id": None}

        def _progress(message: str) -> None:
            self.activation["message"] = message

        with self.app.app_context():
            try:
                with RemoteGateway.from_config(self.app.config) as remote:
                    tenant, result = activate(license_key, remote, on_progress=_progress)
                self.last_results["pull"] = result
                self.activation.update(state=STATE_SUCCEEDED, message="Activation complete", tenant_id=tenant.uuid)
            except (ActivationError, RemoteError) as exc:
                logger.warning("Activation failed: %s", exc)
                self.activation.update(state=STATE_FAILED, error=str(exc))
            except Exception as exc:
                logger.exception("Activation failed unexpectedly")
                self.activation.update(state=STATE_FAILED, error=str(exc))
            finally:
                db.session.remove()

    def submit_activation(self, license_key: str) -> None:
        self.activation = {"state": STATE_RUNNING, "message": "Queued", "error": None, "tenant_id": None}
        self._ensure_started().add_job(
            self.run_activation,
            args=[license_key],
            id=ACTIVATION_JOB_ID,
            replace_existing=True,
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> dict:
        push_job = self._scheduler.get_job(PUSH_JOB_ID) if self.running else None
        next_run = push_job.next_run_time if push_job is not None else None
        return {
            "scheduler_running": self.running,
            "next_push_at": next_run.astimezone(timezone.utc).isoformat().replace("+00:00", "Z") if next_run else None,
            "last_message": self.last_message,
            "last_results": {kind: r.to_dict() for kind, r in self.last_results.items()},
            "activation": dict(self.activation),
        }


def get_scheduler(app) -> SyncScheduler:
    return app.extensions["syncpos_scheduler"]
