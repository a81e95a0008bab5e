# Overview: Service-layer operations for local users of a tenant.

from __future__ import annotations

import logging

from ..extensions import db
from ..models import User
from ..validation import ValidationError, ConflictError
from .auth_service import hash_password, PasswordVerifier
from .repository import Repository
from .tenant_service import TenantContext

logger = logging.getLogger(__name__)

VALID_ROLES = ("admin", "manager", "cashier")
PROFILE_FIELDS = ("firstname", "lastname", "email", "phone")


def _username_taken(username: str, exclude_id: int | None = None) -> bool:
    # Global across tenants: login resolves the tenant from the username
    query = db.session.query(User.id).filter(User.username == username)
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first() is not None


def _check_role(role: str) -> str:
    if role not in VALID_ROLES:
        raise ValidationError(f"Invalid role: {role}. Must be one of {list(VALID_ROLES)}")
    return role


def list_users(tenant_id: str) -> list[User]:
    return Repository(User).query_all(tenant_id)


def create_user(
    ctx: TenantContext,
    username: str,
    password: str,
    *,
    role: str = "cashier",
    verifier: PasswordVerifier | None = None,
    **profile,
) -> User:
    username = (username or "").strip()
    if not username:
        raise ValidationError("username is required")
    if _username_taken(username):
        raise ConflictError(f"Username {username!r} already exists")
    unknown = set(profile) - set(PROFILE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    user = Repository(User).insert(
        ctx.tenant_id,
        username=username,
        password_hash=hash_password(password, verifier),
        role=_check_role(role),
        is_active=True,
        **{k: (v or "") if k in ("firstname", "lastname") else v for k, v in profile.items()},
    )
    logger.info("Created user %s (tenant %s)", username, ctx.tenant_id)
    return user


def update_user(
    ctx: TenantContext,
    user_id: int,
    *,
    password: str | None = None,
    role: str | None = None,
    is_active: bool | None = None,
    verifier: PasswordVerifier | None = None,
    **profile,
) -> User | None:
    repo = Repository(User)
    user = repo.get(user_id, ctx.tenant_id)
    if user is None:
        return None
    unknown = set(profile) - set(PROFILE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    changes = dict(profile)
    if password is not None:
        changes["password_hash"] = hash_password(password, verifier)
    if role is not None:
        changes["role"] = _check_role(role)
    if is_active is not None:
        changes["is_active"] = bool(is_active)
    return repo.update(user, **changes)


def delete_user(ctx: TenantContext, user_id: int) -> bool:
    """Tombstone and deactivate. A user cannot delete themselves."""
    if ctx.user_id == user_id:
        raise ValidationError("Users cannot delete their own account")
    repo = Repository(User)
    user = repo.get(user_id, ctx.tenant_id)
    if user is None:
        return False
    repo.update(user, is_active=False, is_deleted=True)
    logger.info("Deleted user %s (tenant %s)", user.username, ctx.tenant_id)
    return True
