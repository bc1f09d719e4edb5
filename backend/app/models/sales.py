from __future__ import annotations

from ..extensions import db
from ..money import from_cents
from app.time_utils import to_utc_z

class Transaction(db.Model):
    """
    Completed sale header.

    transaction_date is business time (when the sale was rung up, as reported
    by the till); created_at is when the row was written.
    All amounts in cents.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_org_date", "org_id", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    # Cashier who rang it up
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    amount_received_cents = db.Column(db.Integer, nullable=False)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship(
        "TransactionItem",
        backref="transaction",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="TransactionItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "user_id": self.user_id,
            "total_amount": from_cents(self.total_amount_cents),
            "amount_received": from_cents(self.amount_received_cents),
            "change": from_cents(self.change_cents),
            "total_amount_cents": self.total_amount_cents,
            "amount_received_cents": self.amount_received_cents,
            "change_cents": self.change_cents,
            "transaction_date": to_utc_z(self.transaction_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class TransactionItem(db.Model):
    """
    Individual line on a transaction.

    price_at_transaction_cents and product_name are captured at sale time so a
    receipt stays accurate after the catalog changes or the product is removed.
    """
    __tablename__ = "transaction_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_transaction_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(
        db.Integer,
        db.ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price_at_transaction_cents = db.Column(db.Integer, nullable=False)
    product_name = db.Column(db.String(255), nullable=False, default="")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.price_at_transaction_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "price_at_transaction": from_cents(self.price_at_transaction_cents),
            "price_at_transaction_cents": self.price_at_transaction_cents,
            "line_total_cents": self.line_total_cents,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
