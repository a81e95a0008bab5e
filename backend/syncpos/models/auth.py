from __future__ import annotations

from ..extensions import db
from .base import SyncMixin


class User(SyncMixin, db.Model):
    """
    Local user account.

    Usernames are globally unique: login looks a user up before the tenant
    is known.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    username = db.Column(db.String(80), nullable=False, unique=True)
    firstname = db.Column(db.String(120), nullable=False, default="")
    lastname = db.Column(db.String(120), nullable=False, default="")
    password_hash = db.Column(db.String(255), nullable=False, default="")
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    role = db.Column(db.String(32), nullable=False, default="cashier")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} tenant_id={self.tenant_id!r}>"

    def to_dict(self) -> dict:
        # password_hash is never exposed to the UI collaborator
        return {
            **self.envelope_dict(),
            "username": self.username,
            "firstname": self.firstname,
            "lastname": self.lastname,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "is_active": self.is_active,
        }
