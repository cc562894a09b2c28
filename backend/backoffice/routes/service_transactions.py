# Overview: Flask API routes for the service-minute ledger; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import InsufficientBalanceError, NotFoundError
from ..models import ServiceTransaction, UserProfile
from ..services import balance_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    enforce_rules_service_transaction,
    enforce_rules_credit_minutes,
)
from ..decorators import require_auth, require_role, require_self_or_role


service_transactions_bp = Blueprint("service_transactions", __name__, url_prefix="/api/service-transactions")

SERVICE_TRANSACTION_POLICY = ModelValidationPolicy(
    writable_fields={"user_id", "type", "service_id", "quantity", "location_id"},
    required_on_create={"user_id", "type"},
    allow_null_fields={"quantity"},
)

CREDIT_MINUTES_POLICY = ModelValidationPolicy(
    writable_fields={"user_id", "available_balance"},
    required_on_create={"user_id", "available_balance"},
)

STAFF_ROLES = ("operator", "admin")


@service_transactions_bp.post("")
@require_auth
@require_role(*STAFF_ROLES)
def create_service_transaction_route():
    """
    Record a purchased / used / credit entry.

    Body: {user_id, type, service_id?, quantity?, location_id?}
    For purchased and used the stored quantity is the service's minutes,
    whatever quantity the body carries.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=ServiceTransaction,
            payload=payload,
            policy=SERVICE_TRANSACTION_POLICY,
            partial=False,
        )
        enforce_rules_service_transaction(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        tx = balance_service.record_service_transaction(
            user_id=patch["user_id"],
            type=patch["type"],
            service_id=patch.get("service_id"),
            quantity=patch.get("quantity"),
            location_id=patch.get("location_id"),
        )
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except InsufficientBalanceError as e:
        return jsonify({"error": str(e)}), 422
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record service transaction")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": "Service transaction created successfully", "data": tx.to_dict()}), 201


@service_transactions_bp.get("")
@require_auth
@require_role(*STAFF_ROLES)
def list_service_transactions_route():
    return jsonify(balance_service.list_service_transactions()), 200


@service_transactions_bp.delete("/<int:entry_id>")
@require_auth
@require_role(*STAFF_ROLES)
def reverse_service_transaction_route(entry_id: int):
    try:
        balance_service.reverse_service_transaction(entry_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to reverse service transaction")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": "Service transaction deleted successfully"}), 200


@service_transactions_bp.get("/user/<int:user_id>")
@require_auth
@require_self_or_role(*STAFF_ROLES)
def list_customer_service_transactions_route(user_id: int):
    try:
        history = balance_service.list_customer_service_transactions(user_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(history), 200


@service_transactions_bp.get("/total-spend/<int:user_id>")
@require_auth
@require_role(*STAFF_ROLES)
def total_spend_route(user_id: int):
    """Fold minutes used since the last purchase into the customer's total spend."""
    try:
        total = balance_service.compute_total_spend(user_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to compute total spend")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": "Total spend updated successfully", "total_spend": total}), 200


@service_transactions_bp.post("/credit-minutes")
@require_auth
@require_role(*STAFF_ROLES)
def credit_minutes_route():
    """
    Add minutes directly to a balance without writing a ledger entry.

    Body: {user_id, available_balance} where available_balance is the amount to add.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=UserProfile,
            payload=payload,
            policy=CREDIT_MINUTES_POLICY,
            partial=False,
        )
        enforce_rules_credit_minutes(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        balance = balance_service.credit_minutes(patch["user_id"], patch["available_balance"])
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to credit minutes")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": "Balance updated successfully.", "available_balance": balance}), 200


@service_transactions_bp.get("/minutes-used")
@service_transactions_bp.get("/minutes-used/<int:user_id>")
@require_auth
@require_role(*STAFF_ROLES)
def minutes_used_route(user_id: int | None = None):
    return jsonify({"total_quantity": balance_service.minutes_summary(user_id)}), 200


@service_transactions_bp.get("/available/<int:user_id>")
@require_auth
@require_self_or_role(*STAFF_ROLES)
def available_services_route(user_id: int):
    """Purchased services the customer has not used yet."""
    try:
        available = balance_service.available_services(user_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(available), 200
