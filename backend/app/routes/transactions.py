# Overview: Flask API routes for sale transactions; parses input and returns JSON responses.

# backend/app/routes/transactions.py
"""
Transaction API routes.

Every route is tenant-scoped through @require_auth: a transaction id from
another organization answers 404.

- POST   /api/v1/transactions             record a sale (any role)
- GET    /api/v1/transactions             list (optional page/per_page)
- GET    /api/v1/transactions/<id>        header
- GET    /api/v1/transactions/<id>/items  lines with product name
- DELETE /api/v1/transactions/<id>        delete + restore stock (owner/manager)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..roles import PRICE_OVERRIDE_ROLES, TRANSACTION_DELETE_ROLES
from ..services import sales_service
from ..services.sales_service import (
    InsufficientStockError,
    InvalidSaleError,
    PriceOverrideError,
    SaleError,
    SaleStorageError,
)
from ..validation import NotFoundError
from ..decorators import require_auth, require_role


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/v1/transactions")


def _sale_error_response(e: SaleError):
    if isinstance(e, InvalidSaleError):
        status = 400
    elif isinstance(e, PriceOverrideError):
        status = 403
    elif isinstance(e, InsufficientStockError):
        status = 409
    else:
        status = 500
    return jsonify({"error": str(e), "details": e.details}), status


@transactions_bp.post("")
@require_auth
def create_transaction_route():
    """
    Record a completed sale.

    Body: {"transaction": {"amount_received", "transaction_date"?, "total_amount"?},
           "items": [{"product_id", "quantity", "price_at_transaction"?}]}

    Header, items and stock decrements commit together or not at all.
    """
    try:
        header, lines = sales_service.parse_sale_request(request.get_json(silent=True))
        txn = sales_service.record_sale(
            g.org_id,
            g.current_user.id,
            header,
            lines,
            allow_price_override=g.role in PRICE_OVERRIDE_ROLES,
        )
        body = txn.to_dict()
        body["items"] = [item.to_dict() for item in txn.items]
        return jsonify(body), 201

    except SaleStorageError as e:
        return jsonify({"error": "Sale could not be recorded", "details": e.details}), 500
    except SaleError as e:
        return _sale_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("")
@require_auth
def list_transactions_route():
    page = request.args.get("page", type=int)
    per_page = request.args.get("per_page", type=int)
    return jsonify(sales_service.list_transactions(g.org_id, page=page, per_page=per_page)), 200


@transactions_bp.get("/<int:transaction_id>")
@require_auth
def get_transaction_route(transaction_id: int):
    try:
        txn = sales_service.get_transaction(g.org_id, transaction_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(txn.to_dict()), 200


@transactions_bp.get("/<int:transaction_id>/items")
@require_auth
def get_transaction_items_route(transaction_id: int):
    try:
        items = sales_service.get_transaction_items(g.org_id, transaction_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"items": items, "count": len(items)}), 200


@transactions_bp.delete("/<int:transaction_id>")
@require_auth
@require_role(*TRANSACTION_DELETE_ROLES)
def delete_transaction_route(transaction_id: int):
    """
    Delete a transaction and put its quantities back on the shelf.

    Requires owner or manager.
    """
    try:
        sales_service.delete_transaction(g.org_id, transaction_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except SaleStorageError:
        return jsonify({"error": "Transaction could not be deleted"}), 500

    return "", 204
