from __future__ import annotations

from ..extensions import db
from ..money import from_cents
from app.time_utils import to_utc_z

class Product(db.Model):
    """
    Product master data.

    MULTI-TENANT: Products belong to exactly one organization (org_id).

    SKU is optional; when present it is unique within the organization.
    stock_quantity is only ever changed by the catalog update path or by an
    atomic relative UPDATE from the sale path (see sales_service), never by a
    read-modify-write of a loaded value. There is deliberately no version_id
    column: concurrent decrements must all succeed, not conflict.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("org_id", "sku", name="uq_products_org_sku"),
        db.Index("ix_products_org_name", "org_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    # Creator attribution
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    # May be negative only when ALLOW_NEGATIVE_STOCK is enabled
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} org_id={self.org_id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "user_id": self.user_id,
            "name": self.name,
            "sku": self.sku,
            "price": from_cents(self.price_cents),
            "price_cents": self.price_cents,
            "stock_quantity": self.stock_quantity,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
