# Overview: Service-layer operations for role checks and the security event audit trail.

"""
Role checks and security auditing.

Roles come from the closed Role enum. A check takes an already-resolved
MembershipContext; resolution itself lives in tenant_service.
"""

from __future__ import annotations

from typing import Iterable

from ..extensions import db
from ..models import SecurityEvent
from ..roles import Role
from app.time_utils import utcnow


class PermissionDeniedError(Exception):
    """Raised when the caller's role is not in the allowed set."""

    def __init__(self, message: str, required_roles: Iterable[Role] = ()):
        super().__init__(message)
        self.required_roles = sorted(r.value for r in required_roles)


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    org_id: int | None = None,
) -> SecurityEvent:
    """
    Log security event to audit trail with tenant context.

    Commits immediately: callers must not have unrelated pending writes.

    event_type examples:
    - LOGIN_FAILED / LOGIN_SUCCEEDED
    - ROLE_DENIED
    - TENANT_UNRESOLVED
    - USER_CREATED / PASSWORD_RESET / MEMBERSHIP_UPDATED
    """
    event = SecurityEvent(
        user_id=user_id,
        org_id=org_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent[:512] if user_agent else None,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event


def ensure_role(context, allowed_roles: Iterable[Role]) -> Role:
    """
    Return the caller's role if it is allowed, else raise PermissionDeniedError.

    context is a tenant_service.MembershipContext.
    """
    allowed = frozenset(Role.parse(r) for r in allowed_roles)
    if context.role not in allowed:
        raise PermissionDeniedError(
            f"Role '{context.role.value}' is not permitted to perform this action",
            required_roles=allowed,
        )
    return context.role
