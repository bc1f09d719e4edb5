# backend/app/services/products_service.py
"""
Products Service (Catalog Store) with Multi-Tenant Support

MULTI-TENANT: Every operation takes the caller's resolved org_id and filters
on it. A product id that exists in another organization behaves exactly like
a nonexistent id (NotFoundError); existence is never leaked.

Ownership (org_id, user_id) is assigned from the resolved context on create
and is not writable through the payload.
"""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product
from ..validation import ConflictError, NotFoundError, ValidationError, MAX_DB_INT, coerce_int, fits_db_int
from app.time_utils import utcnow

PRODUCT_MUTABLE_FIELDS = {"sku", "name", "price_cents", "stock_quantity"}

MAX_PER_PAGE = 100

SKU_TAKEN = "SKU already exists in this organization."


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _scoped(org_id: int):
    return db.session.query(Product).filter(Product.org_id == org_id)


def _paginate(query, page: int | None, per_page: int | None) -> dict:
    # If no pagination requested, return all items
    if page is None:
        products = query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = max(1, min(per_page or 20, MAX_PER_PAGE))  # Default 20, 1..100
    # OFFSET must stay a storable integer
    page = max(1, min(page, MAX_DB_INT // per_page))

    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def list_products(org_id: int, page: int | None = None, per_page: int | None = None) -> dict:
    """Tenant-scoped product listing ordered by name, with optional pagination."""
    query = _scoped(org_id).order_by(Product.name.asc(), Product.id.asc())
    return _paginate(query, page, per_page)


def _like_pattern(q: str) -> str:
    escaped = q.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def search_products(org_id: int, q: str | None) -> list[Product]:
    """
    Case-insensitive substring match on name or SKU within the organization.

    An empty query returns the full catalog (same as list).
    """
    query = _scoped(org_id)
    q = (q or "").strip()
    if q:
        pattern = _like_pattern(q)
        query = query.filter(
            db.or_(
                Product.name.ilike(pattern, escape="\\"),
                Product.sku.ilike(pattern, escape="\\"),
            )
        )
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def get_product(org_id: int, product_id: int) -> Product:
    if not fits_db_int(product_id):
        raise NotFoundError("Product not found")
    product = _scoped(org_id).filter(Product.id == product_id).first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def _ensure_sku_free(org_id: int, sku: str | None, exclude_id: int | None = None) -> None:
    if sku is None:
        return
    query = _scoped(org_id).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError(SKU_TAKEN)


def create_product(*, patch: dict, org_id: int, user_id: int) -> Product:
    """
    Create product using a validated patch dict.

    Raises:
        ConflictError: If SKU already exists in the organization (also on a
            lost insert race)
    """
    _ensure_sku_free(org_id, patch.get("sku"))

    p = Product(org_id=org_id, user_id=user_id, price_cents=0, stock_quantity=0)
    apply_product_patch(p, patch)

    try:
        db.session.add(p)
        db.session.commit()
    except IntegrityError:
        # uq_products_org_sku caught a concurrent writer the pre-check missed
        db.session.rollback()
        raise ConflictError(SKU_TAKEN)
    return p


def update_product(*, org_id: int, product_id: int, patch: dict, stock_delta=None) -> Product:
    """
    Update a product in the caller's organization.

    stock_quantity in the patch sets an absolute count (a stock take).
    stock_delta applies a relative restock/adjustment as a single atomic
    UPDATE, so it composes with concurrent sales instead of overwriting them.
    """
    p = get_product(org_id, product_id)

    if stock_delta is not None:
        if "stock_quantity" in patch:
            raise ValidationError("Send either stock_quantity or stock_delta, not both")
        stock_delta = coerce_int(stock_delta, "stock_delta")

    if "sku" in patch:
        _ensure_sku_free(org_id, patch["sku"], exclude_id=p.id)

    apply_product_patch(p, patch)
    p.updated_at = utcnow()

    try:
        if stock_delta:
            db.session.flush()
            _scoped(org_id).filter(Product.id == product_id).update(
                {Product.stock_quantity: Product.stock_quantity + stock_delta},
                synchronize_session=False,
            )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(SKU_TAKEN)
    return p


def delete_product(*, org_id: int, product_id: int) -> None:
    """
    Hard-delete a product in the caller's organization.

    Historical transaction items keep their captured name and price.
    """
    if not fits_db_int(product_id):
        raise NotFoundError("Product not found")
    deleted = _scoped(org_id).filter(Product.id == product_id).delete(synchronize_session=False)
    if not deleted:
        db.session.rollback()
        raise NotFoundError("Product not found")
    db.session.commit()
