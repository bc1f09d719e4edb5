from __future__ import annotations

from ..extensions import db
from ..roles import Role
from app.time_utils import to_utc_z

class Organization(db.Model):
    """
    Multi-tenant root: Every tenant is an Organization.

    WHY: Enables shared-database multi-tenancy with strict isolation.
    Products, transactions and settings belong to exactly one organization.
    No data may cross organization boundaries.

    DESIGN:
    - Organizations are the tenant boundary
    - Users reach an organization only through a Membership
    - All queries must be scoped by org_id, taken from the resolved membership,
      never from client input
    """
    __tablename__ = "organizations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Membership(db.Model):
    """
    User x Organization with a role.

    Composite identity (org_id, user_id). A user may be a member of several
    organizations; which one is "current" is resolved per request by
    tenant_service.resolve_membership.
    """
    __tablename__ = "organization_users"
    __table_args__ = (
        db.CheckConstraint(
            "role IN ('owner', 'manager', 'cashier')",
            name="ck_organization_users_role",
        ),
        db.Index("ix_organization_users_user_active", "user_id", "is_active"),
    )

    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), primary_key=True)

    role = db.Column(db.String(16), nullable=False, default=Role.CASHIER.value)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    organization = db.relationship("Organization", backref=db.backref("memberships", lazy=True))
    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("memberships", lazy=True))

    @property
    def role_enum(self) -> Role:
        return Role.parse(self.role)

    def __repr__(self) -> str:
        return f"<Membership org_id={self.org_id} user_id={self.user_id} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "org_id": self.org_id,
            "user_id": self.user_id,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
