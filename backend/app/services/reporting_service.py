# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

from __future__ import annotations

from datetime import date

from sqlalchemy import func

from app.extensions import db
from app.models import Product, Transaction, TransactionItem
from app.money import from_cents
from app.time_utils import business_today, day_bounds, window_start


TOP_SELLING_LIMIT = 5
TOP_SELLING_WINDOW_DAYS = 30


def today_summary(org_id: int, *, today: date | None = None) -> dict:
    """Revenue, sale count and average sale for one business date (UTC)."""
    start, end = day_bounds(today or business_today())

    row = db.session.query(
        func.coalesce(func.sum(Transaction.total_amount_cents), 0).label("revenue_cents"),
        func.count(Transaction.id).label("transactions"),
    ).filter(
        Transaction.org_id == org_id,
        Transaction.transaction_date >= start,
        Transaction.transaction_date < end,
    ).one()

    revenue_cents = int(row.revenue_cents or 0)
    count = int(row.transactions or 0)
    average_cents = round(revenue_cents / count) if count else 0

    return {
        "date": start.date().isoformat(),
        "total_revenue": from_cents(revenue_cents),
        "total_revenue_cents": revenue_cents,
        "total_transactions": count,
        "average_sale_value": from_cents(average_cents),
        "average_sale_value_cents": average_cents,
    }


def top_selling(org_id: int, *, today: date | None = None, limit: int = TOP_SELLING_LIMIT) -> list[dict]:
    """Products by quantity sold over the trailing window, still in the catalog."""
    since = window_start(TOP_SELLING_WINDOW_DAYS, today=today)

    total_qty = func.sum(TransactionItem.quantity).label("total_quantity_sold")
    rows = (
        db.session.query(Product.id, Product.name, total_qty)
        .join(TransactionItem, TransactionItem.product_id == Product.id)
        .join(Transaction, Transaction.id == TransactionItem.transaction_id)
        .filter(
            Product.org_id == org_id,
            Transaction.org_id == org_id,
            Transaction.transaction_date >= since,
        )
        .group_by(Product.id, Product.name)
        .order_by(total_qty.desc(), Product.name.asc())
        .limit(limit)
        .all()
    )
    return [
        {"product_id": row.id, "name": row.name, "total_quantity_sold": int(row.total_quantity_sold or 0)}
        for row in rows
    ]
