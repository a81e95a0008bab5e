"""
Tenant Context: explicit tenant + user scoping for every service call

WHY: Every operation is scoped to one tenant. Instead of a process-wide
"current session", callers build a TenantContext once (login, activation,
request decorator) and pass it into each service function.

INVARIANTS:
1. A context always names a tenant that exists locally with status ACTIVE
2. user_id, when present, names an active, non-deleted user of that tenant
3. Services never read tenant/user from globals
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..extensions import db
from ..models import Tenant, User, TENANT_STATUS_ACTIVE


class ContextError(Exception):
    """No active tenant or no authenticated user."""


@dataclass(frozen=True)
class TenantContext:
    tenant_id: str
    user_id: Optional[int] = None
    username: Optional[str] = None
    role: Optional[str] = None

    def require_user(self) -> int:
        if self.user_id is None:
            raise ContextError("Authenticated user required")
        return self.user_id


def get_tenant(tenant_id: str) -> Tenant | None:
    return db.session.query(Tenant).filter_by(uuid=tenant_id).one_or_none()


def get_activated_tenant() -> Tenant | None:
    """
    The tenant this installation was activated for.

    Single-tenant per install in practice; the most recently activated
    ACTIVE tenant wins if several were ever activated.
    """
    return (
        db.session.query(Tenant)
        .filter(Tenant.activated_at.isnot(None), Tenant.status == TENANT_STATUS_ACTIVE)
        .order_by(Tenant.activated_at.desc())
        .first()
    )


def require_active_tenant(tenant_id: str) -> Tenant:
    tenant = get_tenant(tenant_id)
    if tenant is None:
        raise ContextError("Tenant not found locally")
    if not tenant.is_active:
        raise ContextError(f"Tenant is not active (status: {tenant.status})")
    return tenant


def build_context(tenant_id: str, user_id: int | None = None) -> TenantContext:
    """Validate tenant (and user) and return an explicit context."""
    require_active_tenant(tenant_id)
    if user_id is None:
        return TenantContext(tenant_id=tenant_id)

    user = db.session.get(User, user_id)
    if user is None or user.tenant_id != tenant_id or user.is_deleted or not user.is_active:
        raise ContextError("User not found or inactive for tenant")
    return TenantContext(
        tenant_id=tenant_id,
        user_id=user.id,
        username=user.username,
        role=user.role,
    )
