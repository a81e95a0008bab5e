# Overview: Service-layer operations for license activation (tenant lookup + initial pull).

"""
Activation

1. Look the license key up on the remote store
2. The tenant must exist and have status ACTIVE
3. Save the tenant locally
4. Run the initial Pull for the tenant
5. Only when Pull succeeded: stamp activated_at

A failed Pull leaves activated_at NULL, so the tenant is not usable and
activation can simply be retried.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable

from ..extensions import db
from ..models import Tenant, TENANT_STATUS_ACTIVE
from ..sync.engine import SyncEngine, SyncResult
from ..sync.remote import RemoteError, RemoteGateway
from ..time_utils import utcnow, parse_iso_datetime

logger = logging.getLogger(__name__)


class ActivationError(Exception):
    """License unknown, tenant not ACTIVE, or initial download failed."""


def _parse_date(value) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        logger.warning("Ignoring malformed tenant expiry_date %r", value)
        return None


def save_tenant(row: dict) -> Tenant:
    tenant_uuid = row.get("uuid")
    if not tenant_uuid:
        raise ActivationError("Tenant record from license server has no uuid")

    tenant = db.session.query(Tenant).filter_by(uuid=tenant_uuid).one_or_none()
    if tenant is None:
        tenant = Tenant(uuid=tenant_uuid)
        db.session.add(tenant)

    tenant.license_key = row.get("license_key") or ""
    tenant.owner_email = row.get("owner_email")
    tenant.status = row.get("status") or ""
    tenant.expiry_date = _parse_date(row.get("expiry_date"))
    try:
        tenant.created_at = parse_iso_datetime(row.get("created_at"))
    except ValueError:
        tenant.created_at = None
    db.session.commit()
    return tenant


def activate(
    license_key: str,
    remote: RemoteGateway,
    *,
    on_progress: Callable[[str], None] | None = None,
) -> tuple[Tenant, SyncResult]:
    """
    Raises:
        ActivationError: on any failed step; nothing is marked activated
    """
    license_key = (license_key or "").strip()
    if not license_key:
        raise ActivationError("License key is required")

    if on_progress:
        on_progress("Validating license...")
    try:
        row = remote.get_tenant_by_license(license_key)
    except RemoteError as exc:
        raise ActivationError(f"License server unreachable: {exc}") from exc

    if row is None:
        raise ActivationError("License key not found")
    if row.get("status") != TENANT_STATUS_ACTIVE:
        raise ActivationError(f"License is not active (status: {row.get('status')})")

    tenant = save_tenant(row)
    logger.info("License validated for tenant %s; starting initial download", tenant.uuid)

    engine = SyncEngine(tenant.uuid, remote, on_progress=on_progress)
    result = engine.pull()
    if not result.ok:
        raise ActivationError(f"Initial download failed: {result.error or result.status}")

    tenant.activated_at = utcnow()
    db.session.commit()
    logger.info("Tenant %s activated (%s rows pulled)", tenant.uuid, result.total("pulled"))
    return tenant, result
