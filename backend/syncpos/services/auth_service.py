# Overview: Service-layer operations for auth; password verification and local login.

"""
Authentication Service

Login happens before any tenant is known: the username is looked up across
all local tenants (usernames are globally unique), the password is checked
by a verifier collaborator, and the owning tenant must be present locally
and ACTIVE. The result is an explicit TenantContext, not session state.

The verifier is injectable; BcryptVerifier is the default and accepts the
$2a$/$2b$ hashes the remote store carries.
"""

from __future__ import annotations

import logging
from typing import Protocol

import bcrypt

from ..extensions import db
from ..models import User
from .tenant_service import TenantContext, ContextError, get_tenant

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class AuthError(Exception):
    """Invalid credentials or unusable account."""


class PasswordValidationError(ValueError):
    """Raised when a new password doesn't meet the minimum requirements."""


class PasswordVerifier(Protocol):
    def hash(self, password: str) -> str: ...

    def verify(self, password: str, password_hash: str) -> bool: ...


class BcryptVerifier:
    """bcrypt with cost factor 12."""

    rounds = 12

    def hash(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')

    def verify(self, password: str, password_hash: str) -> bool:
        if not password_hash:
            return False
        try:
            return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
        except ValueError:
            # Malformed hash (e.g. sanitized to "" or a foreign format)
            return False


default_verifier = BcryptVerifier()


def validate_password(password) -> str:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    return password


def hash_password(password: str, verifier: PasswordVerifier | None = None) -> str:
    validate_password(password)
    return (verifier or default_verifier).hash(password)


def login(username: str, password: str, verifier: PasswordVerifier | None = None) -> TenantContext:
    """
    Authenticate a local user and build the context for subsequent calls.

    Raises:
        AuthError: unknown user, inactive user or wrong password
        ContextError: owning tenant missing locally or not ACTIVE
    """
    verifier = verifier or default_verifier
    username = (username or "").strip()
    if not username or not password:
        raise AuthError("Username and password are required")

    user = (
        db.session.query(User)
        .filter_by(username=username, is_deleted=False)
        .one_or_none()
    )
    if user is None or not user.is_active:
        logger.info("Login rejected for %r: unknown or inactive user", username)
        raise AuthError("Invalid username or password")

    if not verifier.verify(password, user.password_hash):
        logger.info("Login rejected for %r: bad password", username)
        raise AuthError("Invalid username or password")

    tenant = get_tenant(user.tenant_id)
    if tenant is None:
        raise ContextError("Tenant for this user is not activated on this installation")
    if not tenant.is_active:
        raise ContextError(f"Tenant is not active (status: {tenant.status})")

    logger.info("User %s logged in (tenant %s)", user.username, user.tenant_id)
    return TenantContext(
        tenant_id=user.tenant_id,
        user_id=user.id,
        username=user.username,
        role=user.role,
    )
