from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z

class User(db.Model):
    """
    Operator accounts for authentication and attribution.

    Login names (username) are globally unique: a login identifies one person
    regardless of how many organizations they belong to.

    WHY: Every sale must be attributable. No shared logins.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)

    # Bcrypt hashed password; plaintext is never stored or logged
    password_hash = db.Column(db.String(255), nullable=False)

    # Explicit "current tenant" selection; see tenant_service.resolve_membership
    current_org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    current_organization = db.relationship("Organization", foreign_keys=[current_org_id])

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "username": self.username,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
