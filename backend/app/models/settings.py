from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


class Setting(db.Model):
    """
    Key-value settings per (organization, user).

    Values are opaque strings; the client owns their meaning
    (printer_type, business_name, receipt_footer, ...).
    """
    __tablename__ = "settings"

    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), primary_key=True)
    key = db.Column(db.String(128), primary_key=True)

    value = db.Column(db.Text, nullable=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self):
        return {
            "org_id": self.org_id,
            "user_id": self.user_id,
            "key": self.key,
            "value": self.value,
            "updated_at": to_utc_z(self.updated_at),
        }
