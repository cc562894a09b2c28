# Overview: Flask API routes for ledger reports; parses query arguments and returns JSON responses.

from flask import Blueprint, jsonify, request, current_app

from ..decorators import require_auth, require_role
from ..errors import NotFoundError, ReportError
from ..services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")

STAFF_ROLES = ("operator", "admin")


def _int_arg(name: str, default=None):
    raw = request.args.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise ReportError(f"{name} must be an integer")


def _range_args() -> dict:
    return {
        "start": request.args.get("start_date"),
        "end": request.args.get("end_date"),
        "location_id": _int_arg("location_id"),
    }


def _respond(build, failure: str):
    """Run a report builder and map its errors to JSON responses."""
    try:
        return jsonify(build()), 200
    except ReportError as exc:
        return jsonify({"error": str(exc)}), 400
    except NotFoundError as exc:
        return jsonify({"error": str(exc)}), 404
    except Exception:
        current_app.logger.exception(failure)
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/service-purchased")
@require_auth
@require_role(*STAFF_ROLES)
def service_purchased_report():
    return _respond(reporting_service.service_purchased_report, "Failed to build service purchased report")


@reports_bp.get("/service-used")
@require_auth
@require_role(*STAFF_ROLES)
def service_used_report():
    return _respond(reporting_service.service_used_report, "Failed to build service used report")


@reports_bp.get("/service-purchase")
@require_auth
@require_role(*STAFF_ROLES)
def service_purchase_report():
    return _respond(
        lambda: reporting_service.service_purchase_report(**_range_args()),
        "Failed to build service purchase report",
    )


@reports_bp.get("/service-use")
@require_auth
@require_role(*STAFF_ROLES)
def service_use_report():
    return _respond(
        lambda: reporting_service.service_use_report(**_range_args()),
        "Failed to build service use report",
    )


@reports_bp.get("/product-sale")
@require_auth
@require_role(*STAFF_ROLES)
def product_sale_report():
    return _respond(reporting_service.product_sale_report, "Failed to build product sale report")


@reports_bp.get("/product-sales")
@require_auth
@require_role(*STAFF_ROLES)
def product_sales_report():
    return _respond(
        lambda: reporting_service.product_sales_report(**_range_args()),
        "Failed to build product sales report",
    )


@reports_bp.get("/customer-day-usage")
@require_auth
@require_role(*STAFF_ROLES)
def customer_day_usage_report():
    return _respond(
        lambda: {"data": reporting_service.customer_day_usage(**_range_args())},
        "Failed to build customer day usage report",
    )


@reports_bp.get("/customer-date-range")
@require_auth
@require_role(*STAFF_ROLES)
def customer_date_range_report():
    """
    Spend per customer between start_date and end_date (default: this week).

    Query: start_date, end_date, page (default 1), per_page (default 15).
    """
    return _respond(
        lambda: reporting_service.customer_date_range_totals(
            start=request.args.get("start_date"),
            end=request.args.get("end_date"),
            page=_int_arg("page", 1),
            per_page=_int_arg("per_page", 15),
        ),
        "Failed to build customer date range report",
    )


@reports_bp.get("/daily-stats")
@require_auth
@require_role(*STAFF_ROLES)
def daily_stats_report():
    return _respond(
        lambda: reporting_service.daily_stats(_int_arg("location_id", 0)),
        "Failed to build daily stats",
    )
