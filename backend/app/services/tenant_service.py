"""
Multi-Tenant Service: Authorization Resolver

WHY: Every request must be scoped to a tenant (organization), and the tenant
is derived from the caller's identity, never from client input. A client
cannot forge an org_id to read another tenant's data because it never gets
to supply one.

RESOLUTION (runs on every authorized request, never cached in the token):
1. users.current_org_id, if it names an ACTIVE membership of the user
2. otherwise the user's single active membership
3. several active memberships and no valid selection -> AmbiguousOrganizationError
4. no active membership -> NoActiveOrganizationError

The selection in (1) is stored explicitly (switch_organization) rather than
inferred from row order.

USAGE:
    context = resolve_membership(user_id)
    context = require_role(user_id, USER_ADMIN_ROLES)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ..extensions import db
from ..models import Membership, Organization, User
from ..roles import Role
from ..validation import NotFoundError
from .permission_service import ensure_role


class TenantAccessError(Exception):
    """Tenant context could not be established for the caller (403)."""


class NoActiveOrganizationError(TenantAccessError):
    pass


class AmbiguousOrganizationError(TenantAccessError):
    def __init__(self, message: str, org_ids: list[int]):
        super().__init__(message)
        self.org_ids = org_ids


@dataclass(frozen=True)
class MembershipContext:
    """Resolved (user, organization, role) for one request."""
    user_id: int
    org_id: int
    role: Role


def list_active_memberships(user_id: int) -> list[Membership]:
    return (
        db.session.query(Membership)
        .filter(Membership.user_id == user_id, Membership.is_active.is_(True))
        .order_by(Membership.org_id.asc())
        .all()
    )


def _to_context(membership: Membership) -> MembershipContext:
    return MembershipContext(
        user_id=membership.user_id,
        org_id=membership.org_id,
        role=membership.role_enum,
    )


def resolve_membership(user_id: int) -> MembershipContext:
    """
    Resolve the caller's current (org_id, role).

    Raises:
        NoActiveOrganizationError: user has no active membership
        AmbiguousOrganizationError: several active memberships, none selected
    """
    user = db.session.get(User, user_id)
    if user is None:
        raise NoActiveOrganizationError("No active organization")

    memberships = list_active_memberships(user_id)
    if not memberships:
        raise NoActiveOrganizationError("No active organization")

    if user.current_org_id is not None:
        for membership in memberships:
            if membership.org_id == user.current_org_id:
                return _to_context(membership)

    if len(memberships) == 1:
        return _to_context(memberships[0])

    raise AmbiguousOrganizationError(
        "Multiple active organizations; select one first",
        org_ids=[m.org_id for m in memberships],
    )


def require_role(user_id: int, allowed_roles: Iterable[Role]) -> MembershipContext:
    """
    Resolve the caller's tenant and check the role in one step.

    Raises TenantAccessError (no/ambiguous tenant) or PermissionDeniedError.
    The returned context carries the role.
    """
    context = resolve_membership(user_id)
    ensure_role(context, allowed_roles)
    return context


def switch_organization(user_id: int, org_id: int) -> MembershipContext:
    """
    Store an explicit current-tenant selection.

    The target must be an active membership of the user; anything else is
    NotFound (a user cannot discover organizations they do not belong to).
    """
    membership = (
        db.session.query(Membership)
        .filter(
            Membership.user_id == user_id,
            Membership.org_id == org_id,
            Membership.is_active.is_(True),
        )
        .first()
    )
    if membership is None:
        raise NotFoundError("Organization not found")

    user = db.session.get(User, user_id)
    user.current_org_id = org_id
    db.session.commit()
    return _to_context(membership)


def get_organization(org_id: int) -> Organization | None:
    return db.session.get(Organization, org_id)
