"""
Sales Service - transactional sale recording

WHY: A sale is one all-or-nothing unit: the transaction header, every line
item, and every stock decrement commit together or not at all. Nothing a
failed sale touched is visible to later reads.

STAGES (per call, reported on failures):
    RECEIVED -> VALIDATED -> PERSISTED -> STOCK_ADJUSTED -> COMMITTED
    FAILED is reachable from any stage.

CONCURRENCY:
- Stock is decremented with a single relative UPDATE
  (stock_quantity = stock_quantity - n) scoped by (product id, org_id).
  No read-modify-write of a loaded value, so concurrent sales of the same
  product always sum.
- Unless ALLOW_NEGATIVE_STOCK is set, the UPDATE also carries
  "stock_quantity >= n"; zero rows updated means the stock ran out,
  possibly under a concurrent sale, and the whole sale aborts.
- On SQLite the write transaction starts with BEGIN IMMEDIATE.
- Nothing is retried here: lock contention and other storage failures roll
  back and surface as SaleStorageError; resubmitting is the caller's call.

PRICING:
- price_at_transaction defaults to the catalog price at the moment of sale and
  is stored on the line; later catalog changes never rewrite history.
- A supplied price different from the catalog is an override and needs
  allow_price_override (owner/manager at the route layer).
- A supplied header total must match the line sum within
  SALE_TOTAL_TOLERANCE_CENTS.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Product, Transaction, TransactionItem
from ..money import to_cents
from ..validation import MAX_DB_INT, IntegerRangeError, NotFoundError, ValidationError, coerce_int, fits_db_int
from app.time_utils import parse_iso_datetime, utcnow
from .concurrency import begin_write_transaction


class SaleStage(str, Enum):
    RECEIVED = "RECEIVED"
    VALIDATED = "VALIDATED"
    PERSISTED = "PERSISTED"
    STOCK_ADJUSTED = "STOCK_ADJUSTED"
    COMMITTED = "COMMITTED"
    FAILED = "FAILED"


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}
        self.stage: SaleStage | None = None


class InvalidSaleError(SaleError):
    """Malformed header or cart (400)."""


class InvalidQuantityError(InvalidSaleError):
    """Quantity is not a positive integer (400)."""


class UnknownProductError(InvalidSaleError):
    """Product id does not resolve inside the caller's organization (400)."""


class TotalMismatchError(InvalidSaleError):
    """Submitted total disagrees with the sum of the lines (400)."""


class PriceOverrideError(SaleError):
    """Caller may not sell below/above catalog price (403)."""


class InsufficientStockError(SaleError):
    """Sale would take stock below zero (409)."""


class SaleStorageError(SaleError):
    """The storage transaction could not be committed; nothing was written (500)."""


@dataclass(frozen=True)
class SaleHeader:
    amount_received_cents: int
    transaction_date: datetime
    total_amount_cents: int | None = None


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    unit_price_cents: int | None = None


@dataclass
class _Recording:
    org_id: int
    stage: SaleStage = SaleStage.RECEIVED

    def advance(self, stage: SaleStage) -> None:
        current_app.logger.debug("Sale for org %s: %s -> %s", self.org_id, self.stage.value, stage.value)
        self.stage = stage


# =============================================================================
# REQUEST PARSING
# =============================================================================

def _pick(data: dict, *names):
    for name in names:
        if name in data:
            return data[name]
    return None


def parse_sale_request(payload) -> tuple[SaleHeader, list[CartLine]]:
    """
    Parse {transaction: {...}, items: [...]} into typed header and lines.

    Header fields may also sit at the top level next to "items". Both
    snake_case and camelCase keys are accepted.
    """
    if not isinstance(payload, dict):
        raise InvalidSaleError("Invalid JSON payload")

    header_data = payload.get("transaction")
    if header_data is None:
        header_data = payload
    if not isinstance(header_data, dict):
        raise InvalidSaleError("transaction must be an object")

    raw_received = _pick(header_data, "amount_received", "amountReceived")
    if raw_received is None:
        raise InvalidSaleError("amount_received is required")
    try:
        amount_received_cents = to_cents(raw_received, "amount_received")
        raw_total = _pick(header_data, "total_amount", "totalAmount")
        total_amount_cents = to_cents(raw_total, "total_amount") if raw_total is not None else None
    except ValidationError as e:
        raise InvalidSaleError(str(e))

    raw_date = _pick(header_data, "transaction_date", "transactionDate")
    if raw_date is None:
        transaction_date = utcnow()
    else:
        try:
            transaction_date = parse_iso_datetime(raw_date) if isinstance(raw_date, str) else None
        except (ValueError, OverflowError):
            transaction_date = None
        if transaction_date is None:
            raise InvalidSaleError("transaction_date must be an ISO-8601 datetime")

    raw_items = payload.get("items")
    if not isinstance(raw_items, list):
        raise InvalidSaleError("items must be a list")

    lines = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise InvalidSaleError(f"items[{index}] must be an object")
        try:
            product_id = coerce_int(_pick(raw, "product_id", "productId"), "product_id")
        except IntegerRangeError:
            # No stored product can carry this id
            raise UnknownProductError(
                "Unknown product",
                details={"product_ids": [_pick(raw, "product_id", "productId")]},
            )
        except ValidationError:
            raise InvalidSaleError(f"items[{index}].product_id must be an integer")
        try:
            quantity = coerce_int(raw.get("quantity"), "quantity")
        except ValidationError:
            raise InvalidQuantityError(
                f"items[{index}].quantity must be a positive integer",
                details={"index": index},
            )
        raw_price = _pick(raw, "price_at_transaction", "priceAtTransaction", "unit_price", "unitPrice")
        try:
            unit_price_cents = to_cents(raw_price, f"items[{index}].price_at_transaction") if raw_price is not None else None
        except ValidationError as e:
            raise InvalidSaleError(str(e))
        lines.append(CartLine(product_id=product_id, quantity=quantity, unit_price_cents=unit_price_cents))

    return SaleHeader(
        amount_received_cents=amount_received_cents,
        transaction_date=transaction_date,
        total_amount_cents=total_amount_cents,
    ), lines


# =============================================================================
# RECORD SALE
# =============================================================================

def _check_quantities(lines: list[CartLine]) -> None:
    for index, line in enumerate(lines):
        qty = line.quantity
        if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
            raise InvalidQuantityError(
                f"items[{index}].quantity must be a positive integer",
                details={"index": index, "quantity": qty},
            )


def _load_products(org_id: int, lines: list[CartLine]) -> dict[int, Product]:
    ids = {line.product_id for line in lines}
    products = (
        db.session.query(Product)
        .filter(Product.org_id == org_id, Product.id.in_([pid for pid in ids if fits_db_int(pid)]))
        .all()
    )
    found = {p.id: p for p in products}
    missing = sorted(ids - found.keys())
    if missing:
        # Foreign-org ids land here too; the message is the same
        raise UnknownProductError("Unknown product", details={"product_ids": missing})
    return found


def _price_lines(
    lines: list[CartLine],
    products: dict[int, Product],
    allow_price_override: bool,
) -> list[tuple[CartLine, Product, int]]:
    priced = []
    overrides = []
    for index, line in enumerate(lines):
        product = products[line.product_id]
        unit_price = line.unit_price_cents
        if unit_price is None:
            unit_price = product.price_cents
        elif unit_price != product.price_cents:
            overrides.append({
                "index": index,
                "product_id": product.id,
                "catalog_price_cents": product.price_cents,
                "submitted_price_cents": unit_price,
            })
        priced.append((line, product, unit_price))

    if overrides and not allow_price_override:
        raise PriceOverrideError("Price override not permitted for this role", details={"items": overrides})
    return priced


def _check_stock_available(priced: list[tuple[CartLine, Product, int]]) -> None:
    requested: dict[int, int] = {}
    on_hand: dict[int, int] = {}
    for line, product, _ in priced:
        requested[product.id] = requested.get(product.id, 0) + line.quantity
        on_hand[product.id] = product.stock_quantity

    insufficient = [
        {"product_id": pid, "requested_quantity": qty, "on_hand": on_hand[pid]}
        for pid, qty in requested.items()
        if on_hand[pid] < qty
    ]
    if insufficient:
        raise InsufficientStockError("Insufficient stock", details={"items": insufficient})


def _check_totals(header: SaleHeader, computed_total: int) -> None:
    tolerance = current_app.config.get("SALE_TOTAL_TOLERANCE_CENTS", 1)
    if header.total_amount_cents is not None and abs(header.total_amount_cents - computed_total) > tolerance:
        raise TotalMismatchError(
            "total_amount does not match the sum of the items",
            details={
                "submitted_total_cents": header.total_amount_cents,
                "computed_total_cents": computed_total,
            },
        )
    if header.amount_received_cents < computed_total:
        raise InvalidSaleError(
            "amount_received is less than the total",
            details={
                "amount_received_cents": header.amount_received_cents,
                "total_cents": computed_total,
            },
        )


def _persist_item(txn: Transaction, line: CartLine, product: Product, unit_price_cents: int) -> TransactionItem:
    item = TransactionItem(
        transaction_id=txn.id,
        product_id=product.id,
        quantity=line.quantity,
        price_at_transaction_cents=unit_price_cents,
        product_name=product.name,
    )
    db.session.add(item)
    db.session.flush()
    return item


def _decrement_stock(org_id: int, product_id: int, quantity: int, allow_negative: bool) -> None:
    query = db.session.query(Product).filter(Product.id == product_id, Product.org_id == org_id)
    if not allow_negative:
        query = query.filter(Product.stock_quantity >= quantity)

    updated = query.update(
        {
            Product.stock_quantity: Product.stock_quantity - quantity,
            Product.updated_at: utcnow(),
        },
        synchronize_session=False,
    )
    if updated != 1:
        raise InsufficientStockError(
            "Insufficient stock",
            details={"product_id": product_id, "requested_quantity": quantity},
        )


def record_sale(
    org_id: int,
    user_id: int,
    header: SaleHeader,
    lines: list[CartLine],
    *,
    allow_price_override: bool = True,
) -> Transaction:
    """
    Record a completed sale atomically.

    Validation (products in org_id, positive quantities, pricing, totals,
    stock) runs inside the same storage transaction as the writes, so the
    stock it sees cannot change underneath it on SQLite; elsewhere the
    conditional decrement is the final word.

    Raises:
        InvalidSaleError / InvalidQuantityError / UnknownProductError /
        TotalMismatchError: bad cart (nothing written)
        PriceOverrideError: override without permission (nothing written)
        InsufficientStockError: oversell rejected (nothing written)
        SaleStorageError: storage failure; fully rolled back
    """
    recording = _Recording(org_id=org_id)
    allow_negative = current_app.config.get("ALLOW_NEGATIVE_STOCK", False)

    def _op():
        if not lines:
            raise InvalidSaleError("Cannot record a sale with no items")
        _check_quantities(lines)

        begin_write_transaction()

        products = _load_products(org_id, lines)
        priced = _price_lines(lines, products, allow_price_override)
        if not allow_negative:
            _check_stock_available(priced)

        total = sum(line.quantity * unit_price for line, _, unit_price in priced)
        _check_totals(header, total)
        recording.advance(SaleStage.VALIDATED)

        txn = Transaction(
            org_id=org_id,
            user_id=user_id,
            total_amount_cents=total,
            amount_received_cents=header.amount_received_cents,
            change_cents=header.amount_received_cents - total,
            transaction_date=header.transaction_date,
        )
        db.session.add(txn)
        db.session.flush()

        # Caller order is preserved: ids ascend in submission order
        for line, product, unit_price in priced:
            _persist_item(txn, line, product, unit_price)
        recording.advance(SaleStage.PERSISTED)

        for line, product, _ in priced:
            _decrement_stock(org_id, product.id, line.quantity, allow_negative)
        recording.advance(SaleStage.STOCK_ADJUSTED)

        db.session.commit()
        recording.advance(SaleStage.COMMITTED)
        return txn

    try:
        txn = _op()
    except SaleError as exc:
        db.session.rollback()
        exc.stage = recording.stage
        exc.details.setdefault("stage", recording.stage.value)
        recording.advance(SaleStage.FAILED)
        current_app.logger.info(
            "Sale rejected for org %s at stage %s: %s", org_id, exc.stage.value, exc
        )
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        failed_at = recording.stage
        recording.advance(SaleStage.FAILED)
        current_app.logger.exception("Sale aborted for org %s at stage %s", org_id, failed_at.value)
        err = SaleStorageError("Sale could not be recorded", details={"stage": failed_at.value})
        err.stage = failed_at
        raise err from exc

    current_app.logger.info(
        "Recorded transaction %s for org %s (%d items, total %d cents)",
        txn.id, org_id, len(lines), txn.total_amount_cents,
    )
    return txn


# =============================================================================
# READS / DELETE
# =============================================================================

def _scoped(org_id: int):
    return db.session.query(Transaction).filter(Transaction.org_id == org_id)


def list_transactions(org_id: int, page: int | None = None, per_page: int | None = None) -> dict:
    """Newest business date first, with optional pagination."""
    query = _scoped(org_id).order_by(Transaction.transaction_date.desc(), Transaction.id.desc())

    if page is None:
        txns = query.all()
        return {"items": [t.to_dict() for t in txns], "count": len(txns)}

    per_page = max(1, min(per_page or 20, 100))
    # OFFSET must stay a storable integer
    page = max(1, min(page, MAX_DB_INT // per_page))
    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    txns = query.offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [t.to_dict() for t in txns],
        "count": len(txns),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_transaction(org_id: int, transaction_id: int) -> Transaction:
    if not fits_db_int(transaction_id):
        raise NotFoundError("Transaction not found")
    txn = _scoped(org_id).filter(Transaction.id == transaction_id).first()
    if txn is None:
        raise NotFoundError("Transaction not found")
    return txn


def get_transaction_items(org_id: int, transaction_id: int) -> list[dict]:
    """
    Lines of a transaction in submission order, with a display product name.

    The name is the product's current name when it still exists in the
    organization, else the name captured at sale time.
    """
    get_transaction(org_id, transaction_id)

    rows = (
        db.session.query(TransactionItem, Product.name)
        .outerjoin(
            Product,
            db.and_(Product.id == TransactionItem.product_id, Product.org_id == org_id),
        )
        .filter(TransactionItem.transaction_id == transaction_id)
        .order_by(TransactionItem.id.asc())
        .all()
    )

    result = []
    for item, current_name in rows:
        data = item.to_dict()
        data["product_name"] = current_name if current_name is not None else item.product_name
        result.append(data)
    return result


def delete_transaction(org_id: int, transaction_id: int) -> None:
    """
    Delete a transaction and its items, restoring stock for each line.

    The stock increments and the delete commit together. Lines whose
    product has since been removed restore nothing.
    """
    if not fits_db_int(transaction_id):
        raise NotFoundError("Transaction not found")

    def _op():
        begin_write_transaction()
        txn = _scoped(org_id).filter(Transaction.id == transaction_id).first()
        if txn is None:
            raise NotFoundError("Transaction not found")

        for item in txn.items:
            if item.product_id is None:
                continue
            db.session.query(Product).filter(
                Product.id == item.product_id,
                Product.org_id == org_id,
            ).update(
                {
                    Product.stock_quantity: Product.stock_quantity + item.quantity,
                    Product.updated_at: utcnow(),
                },
                synchronize_session=False,
            )

        db.session.delete(txn)
        db.session.commit()

    try:
        _op()
    except NotFoundError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to delete transaction %s for org %s", transaction_id, org_id)
        raise SaleStorageError("Transaction could not be deleted") from exc

    current_app.logger.info("Deleted transaction %s for org %s (stock restored)", transaction_id, org_id)
