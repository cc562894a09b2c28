# Overview: Flask API routes for product sales and stock; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import InvalidLocationError, NotFoundError
from ..models import ProductTransaction
from ..services import inventory_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    enforce_rules_product_transaction,
)
from ..decorators import require_auth, require_role, require_self_or_role


product_transactions_bp = Blueprint("product_transactions", __name__, url_prefix="/api")

PRODUCT_TRANSACTION_POLICY = ModelValidationPolicy(
    writable_fields={"user_id", "product_id", "location_id", "quantity"},
    required_on_create={"user_id", "product_id", "quantity"},
)

STAFF_ROLES = ("operator", "admin")


@product_transactions_bp.post("/product-transactions")
@require_auth
@require_role(*STAFF_ROLES)
def create_product_transaction_route():
    """
    Record a product sale and take the quantity off the location's stock.

    Body: {user_id, product_id, location_id, quantity}
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=ProductTransaction,
            payload=payload,
            policy=PRODUCT_TRANSACTION_POLICY,
            partial=False,
        )
        enforce_rules_product_transaction(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        tx = inventory_service.record_product_transaction(
            user_id=patch["user_id"],
            product_id=patch["product_id"],
            location_id=patch.get("location_id"),
            quantity=patch["quantity"],
        )
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except InvalidLocationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record product transaction")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": "Product transaction created successfully", "transaction": tx.to_dict()}), 201


@product_transactions_bp.post("/product-transactions/bulk")
@require_auth
@require_role(*STAFF_ROLES)
def bulk_create_product_transactions_route():
    """
    Store many product entries at once.

    Body: {"data": [{user_id, product_id, location_id, quantity}, ...]}
    Stock is NOT decremented on this path.
    """
    payload = request.get_json(silent=True) or {}
    entries = payload.get("data")
    if not isinstance(entries, list) or not entries:
        return jsonify({"error": "data must be a non-empty list"}), 400

    cleaned = []
    try:
        for index, entry in enumerate(entries):
            try:
                patch = validate_payload(
                    model=ProductTransaction,
                    payload=entry,
                    policy=PRODUCT_TRANSACTION_POLICY,
                    partial=False,
                )
                enforce_rules_product_transaction(patch)
            except ValidationError as e:
                raise ValidationError(f"data[{index}]: {e}")
            cleaned.append(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        created = inventory_service.bulk_record_product_transactions(cleaned)
    except Exception:
        current_app.logger.exception("Failed to bulk record product transactions")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "message": "Product transaction created successfully",
        "transaction": [tx.to_dict() for tx in created],
    }), 201


@product_transactions_bp.get("/product-transactions/user/<int:user_id>")
@require_auth
@require_self_or_role(*STAFF_ROLES)
def list_customer_product_transactions_route(user_id: int):
    try:
        rows = inventory_service.list_customer_product_transactions(user_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(rows), 200


@product_transactions_bp.get("/products/<int:product_id>/stock")
@require_auth
@require_role(*STAFF_ROLES)
def product_stock_route(product_id: int):
    try:
        levels = inventory_service.get_stock_levels(product_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(levels), 200
