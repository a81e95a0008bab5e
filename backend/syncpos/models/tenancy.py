from __future__ import annotations

from ..extensions import db
from .base import SyncMixin
from syncpos.time_utils import to_utc_z


TENANT_STATUS_ACTIVE = "ACTIVE"


class Tenant(db.Model):
    """
    Tenant (license) root.

    Not synced bidirectionally: fetched once from the remote store during
    activation. activated_at stays NULL until the initial pull succeeded,
    so a half-downloaded tenant is never usable.
    """
    __tablename__ = "tenants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), nullable=False, unique=True)
    license_key = db.Column(db.String(128), nullable=False, unique=True)
    owner_email = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(32), nullable=False)
    expiry_date = db.Column(db.Date, nullable=True)
    created_at = db.Column(db.DateTime, nullable=True)
    activated_at = db.Column(db.DateTime, nullable=True)

    @property
    def is_active(self) -> bool:
        return self.status == TENANT_STATUS_ACTIVE

    def __repr__(self) -> str:
        return f"<Tenant uuid={self.uuid!r} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "uuid": self.uuid,
            "license_key": self.license_key,
            "owner_email": self.owner_email,
            "status": self.status,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "created_at": to_utc_z(self.created_at),
            "activated_at": to_utc_z(self.activated_at),
        }


class Setting(SyncMixin, db.Model):
    """Tenant-scoped key/value pair."""
    __tablename__ = "settings"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "setting_key", name="uq_settings_tenant_key"),
        {"sqlite_autoincrement": True},
    )

    setting_key = db.Column(db.String(128), nullable=False)
    setting_value = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            **self.envelope_dict(),
            "setting_key": self.setting_key,
            "setting_value": self.setting_value,
        }
