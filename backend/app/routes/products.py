# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/app/routes/products.py
"""
Product catalog routes with multi-tenant support.

MULTI-TENANT: All product operations are scoped to the caller's organization.
The org_id is derived from g.org_id (set by @require_auth); a product in
another organization answers 404 exactly like a missing one.

SECURITY: All routes require authentication.
- Reads are open to every role
- Writes require owner or manager
"""
from flask import Blueprint, request, g, current_app

from ..services import products_service
from ..models import Product
from ..money import to_cents
from ..roles import CATALOG_WRITE_ROLES
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    ConflictError,
    NotFoundError,
)
from ..decorators import require_auth, require_role

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "price_cents", "stock_quantity"},
    required_on_create={"name", "price_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/v1/products")


def _product_patch(payload, partial: bool):
    """
    Decimal "price" is accepted alongside "price_cents".

    Returns (patch, stock_delta).
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(payload)

    if "price" in payload:
        if "price_cents" in payload:
            raise ValidationError("Send either price or price_cents, not both")
        payload["price_cents"] = to_cents(payload.pop("price"), "price")

    stock_delta = payload.pop("stock_delta", None)

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=partial)
    enforce_rules_product(patch)
    return patch, stock_delta


@products_bp.get("")
@require_auth
def list_products():
    """
    List products in the caller's organization, ordered by name.

    Query params:
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    page = request.args.get("page", type=int)
    per_page = request.args.get("per_page", type=int)
    return products_service.list_products(g.org_id, page=page, per_page=per_page)


@products_bp.get("/search")
@require_auth
def search_products():
    """Case-insensitive substring search on name or SKU (?q=)."""
    products = products_service.search_products(g.org_id, request.args.get("q"))
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@products_bp.get("/<int:product_id>")
@require_auth
def get_product(product_id: int):
    try:
        product = products_service.get_product(g.org_id, product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return product.to_dict()


@products_bp.post("")
@require_auth
@require_role(*CATALOG_WRITE_ROLES)
def create_product_route():
    """
    Create a new product.

    MULTI-TENANT: Owner (org_id, user_id) comes from the resolved context;
    payloads carrying org_id or user_id are rejected.
    """
    payload = request.get_json(silent=True)

    try:
        patch, stock_delta = _product_patch(payload, partial=False)
        if stock_delta is not None:
            raise ValidationError("stock_delta is only valid on update")
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        created = products_service.create_product(patch=patch, org_id=g.org_id, user_id=g.current_user.id)
    except ConflictError as e:
        return {"error": str(e)}, 409

    current_app.logger.info("Created product %s in org %s", created.id, g.org_id)
    return created.to_dict(), 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_role(*CATALOG_WRITE_ROLES)
def update_product_route(product_id: int):
    """
    Update a product.

    stock_quantity sets an absolute count; stock_delta adjusts relative to
    whatever the count is at write time.
    """
    payload = request.get_json(silent=True)

    try:
        patch, stock_delta = _product_patch(payload, partial=True)
        updated = products_service.update_product(
            org_id=g.org_id,
            product_id=product_id,
            patch=patch,
            stock_delta=stock_delta,
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409

    return updated.to_dict(), 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(*CATALOG_WRITE_ROLES)
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(org_id=g.org_id, product_id=product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404

    return "", 204
