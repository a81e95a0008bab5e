# Overview: Service-layer operations for tenant settings (key/value, unique per tenant).

from __future__ import annotations

import logging
from typing import Any

from ..extensions import db
from ..models import Setting
from .tenant_service import TenantContext

logger = logging.getLogger(__name__)

MAX_KEY_LENGTH = 128


class SettingsError(ValueError):
    """Base error for settings operations."""


class SettingsValidationError(SettingsError):
    """Invalid settings payload."""


def _find(tenant_id: str, key: str) -> Setting | None:
    # Includes tombstones: (tenant_id, setting_key) is unique at the schema level
    return db.session.query(Setting).filter_by(tenant_id=tenant_id, setting_key=key).one_or_none()


def get_settings(tenant_id: str) -> dict[str, str | None]:
    rows = (
        db.session.query(Setting)
        .filter_by(tenant_id=tenant_id, is_deleted=False)
        .order_by(Setting.setting_key.asc())
        .all()
    )
    return {row.setting_key: row.setting_value for row in rows}


def get_setting(tenant_id: str, key: str, default: str | None = None) -> str | None:
    row = _find(tenant_id, key)
    if row is None or row.is_deleted:
        return default
    return row.setting_value


def _normalize_key(key: Any) -> str:
    if not isinstance(key, str) or not key.strip():
        raise SettingsValidationError("Setting keys must be non-empty strings")
    key = key.strip()
    if len(key) > MAX_KEY_LENGTH:
        raise SettingsValidationError(f"Setting key exceeds max length {MAX_KEY_LENGTH}")
    return key


def save_settings(ctx: TenantContext, values: dict) -> dict[str, str | None]:
    """
    Upsert many settings by (tenant, key) in one commit.

    A tombstoned key is revived rather than duplicated.
    """
    if not isinstance(values, dict):
        raise SettingsValidationError("Settings payload must be an object")

    normalized = {
        _normalize_key(key): (None if value is None else str(value))
        for key, value in values.items()
    }

    changed = 0
    for key, value in normalized.items():
        row = _find(ctx.tenant_id, key)
        if row is None:
            db.session.add(Setting(tenant_id=ctx.tenant_id, setting_key=key, setting_value=value))
            changed += 1
        elif row.is_deleted or row.setting_value != value:
            row.setting_value = value
            row.is_deleted = False
            changed += 1
    db.session.commit()

    if changed:
        logger.info("Saved %s setting(s) for tenant %s", changed, ctx.tenant_id)
    return get_settings(ctx.tenant_id)


def delete_setting(ctx: TenantContext, key: str) -> bool:
    row = _find(ctx.tenant_id, _normalize_key(key))
    if row is None or row.is_deleted:
        return False
    row.is_deleted = True
    db.session.commit()
    return True
