# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .roles import Role
from .services import session_service, permission_service, tenant_service
from .services.permission_service import PermissionDeniedError
from .services.tenant_service import AmbiguousOrganizationError, TenantAccessError


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'membership')


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def _authenticate():
    """Return (user, None) or (None, error response)."""
    token = _bearer_token()
    if not token:
        return None, (jsonify({"error": "Authentication required"}), 401)

    user = session_service.validate_session(token)
    if not user:
        return None, (jsonify({"error": "Invalid or expired token"}), 401)
    return user, None


def require_user(f):
    """
    Require a valid session token only.

    Sets g.current_user. No tenant is resolved, so routes that must work for
    a user without a usable tenant (me, switch-organization) use this.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user, error = _authenticate()
        if error:
            return error
        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_auth(f):
    """
    Require authentication and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.org_id: The resolved organization ID (tenant context)
    - g.role: The caller's Role in that organization
    - g.membership: The full MembershipContext

    Tenant and role are resolved from the membership table on every request.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid or expired token, or user no longer exists
    Returns 403 if:
    - The user has no active membership
    - The user has several active memberships and none selected
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user, error = _authenticate()
        if error:
            return error

        try:
            context = tenant_service.resolve_membership(user.id)
        except TenantAccessError as e:
            permission_service.log_security_event(
                user_id=user.id,
                event_type="TENANT_UNRESOLVED",
                success=False,
                resource=request.path,
                action=request.method,
                reason=str(e),
                ip_address=request.remote_addr,
                user_agent=request.headers.get("User-Agent"),
                org_id=None,
            )
            body = {"error": str(e)}
            if isinstance(e, AmbiguousOrganizationError):
                body["organization_ids"] = e.org_ids
            return jsonify(body), 403

        # Store user and tenant context in Flask g for access in routes
        g.current_user = user
        g.org_id = context.org_id
        g.role = context.role
        g.membership = context

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: Role):
    """
    Require the resolved role to be one of roles. Use after @require_auth.

    MULTI-TENANT: Denials are logged to security_events with org_id.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            try:
                permission_service.ensure_role(g.membership, roles)
            except PermissionDeniedError as e:
                permission_service.log_security_event(
                    user_id=g.current_user.id,
                    event_type="ROLE_DENIED",
                    success=False,
                    resource=request.path,
                    action=request.method,
                    reason=str(e),
                    ip_address=request.remote_addr,
                    user_agent=request.headers.get("User-Agent"),
                    org_id=g.org_id,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": e.required_roles,
                    "message": str(e)
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
