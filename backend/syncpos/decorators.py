# Overview: Request decorators establishing the explicit tenant/user context for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services.tenant_service import ContextError, build_context, get_activated_tenant


def _context_from_request(user_required: bool):
    tenant = get_activated_tenant()
    if tenant is None:
        return None, (jsonify({"error": "Installation is not activated"}), 409)

    raw_user = request.headers.get("X-User-Id")
    if raw_user is None or not raw_user.strip():
        if user_required:
            return None, (jsonify({"error": "Authentication required"}), 401)
        return build_context(tenant.uuid), None

    try:
        user_id = int(raw_user)
    except ValueError:
        return None, (jsonify({"error": "Invalid X-User-Id header"}), 401)

    try:
        return build_context(tenant.uuid, user_id), None
    except ContextError as e:
        return None, (jsonify({"error": str(e)}), 401)


def require_context(f=None, *, user_required: bool = True):
    """
    Establish the request's TenantContext.

    Sets g.ctx (TenantContext) for the route; services receive it explicitly.

    Returns:
    - 409 if this installation has no activated tenant
    - 401 if the X-User-Id header is missing (when required) or names no
      active user of the activated tenant
    """
    def decorator(fn):
        @wraps(fn)
        def decorated_function(*args, **kwargs):
            ctx, error = _context_from_request(user_required)
            if error is not None:
                return error
            g.ctx = ctx
            return fn(*args, **kwargs)
        return decorated_function

    if f is not None:
        return decorator(f)
    return decorator
