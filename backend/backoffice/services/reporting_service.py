# Overview: Service-layer operations for reporting; aggregates the ledgers on demand.

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Iterable

from flask import current_app
from sqlalchemy import distinct, func

from ..errors import NotFoundError, ReportError
from ..extensions import db
from ..models import (
    Location,
    Product,
    ProductTransaction,
    Service,
    ServiceTransaction,
    User,
    UserProfile,
)
from ..time_utils import cents_to_units, day_bounds, day_label, parse_report_date, utcnow

"""
Reporting semantics (authoritative)

- Reports are recomputed from the ledgers on every call; nothing is cached.
- Each report reads its ledger rows with a single SELECT, so an entry written
  mid-report is either wholly in or wholly out.
- Date ranges are whole days: start_date 00:00:00 through end_date 23:59:59.
- location_id of None or 0 means "all locations"; any other id must exist.
- Entries whose service/product or location cannot be resolved are dropped
  from the result and counted in a WARNING log line.

Service report price rules (two variants, kept distinct on purpose):
- service_purchased_report / service_used_report (all-time):
    total_price += price * quantity
- service_purchase_report / service_use_report (date range):
    total_price += price              (once per entry)
"""


def _price_times_quantity(price_cents: int, quantity: int) -> int:
    return price_cents * quantity


def _price_per_entry(price_cents: int, quantity: int) -> int:
    return price_cents


def parse_date_range(start: str | None, end: str | None) -> tuple[datetime, datetime]:
    try:
        start_day = parse_report_date(start)
        end_day = parse_report_date(end)
    except ValueError:
        raise ReportError("start_date and end_date must be YYYY-MM-DD dates")
    if end_day < start_day:
        raise ReportError("end_date must not be before start_date")
    return day_bounds(start_day, end_day)


def _by_id(model, ids: Iterable[int | None]) -> dict:
    wanted = {i for i in ids if i is not None}
    if not wanted:
        return {}
    return {row.id: row for row in db.session.query(model).filter(model.id.in_(wanted)).all()}


def _log_dropped(report: str, dropped: int) -> None:
    if dropped:
        current_app.logger.warning(
            "%s: dropped %d ledger entries with unresolvable catalog item or location",
            report, dropped,
        )


def _require_location(location_id: int | None) -> None:
    if location_id and db.session.get(Location, location_id) is None:
        raise NotFoundError("Location not found")


def _aggregate_service_report(
    *,
    report: str,
    tx_type: str,
    price_rule: Callable[[int, int], int],
    name_key: str,
    window: tuple[datetime, datetime] | None = None,
    location_id: int | None = None,
) -> list[dict]:
    _require_location(location_id)
    q = db.session.query(ServiceTransaction).filter(ServiceTransaction.type == tx_type)
    if window is not None:
        q = q.filter(
            ServiceTransaction.created_at >= window[0],
            ServiceTransaction.created_at < window[1],
        )
    if location_id:
        q = q.filter(ServiceTransaction.location_id == location_id)

    transactions = q.order_by(ServiceTransaction.created_at.asc(), ServiceTransaction.id.asc()).all()

    services = _by_id(Service, (t.service_id for t in transactions))
    locations = _by_id(Location, (t.location_id for t in transactions))

    groups: dict[tuple[int, int], dict] = {}
    dropped = 0
    for tx in transactions:
        service = services.get(tx.service_id)
        location = locations.get(tx.location_id)
        if service is None or location is None:
            dropped += 1
            continue

        day = day_label(tx.created_at)
        row = groups.get((location.id, service.id))
        if row is None:
            row = groups[(location.id, service.id)] = {
                "location": location.to_dict(),
                name_key: service.name,
                "total_quantity": 0,
                "total_price_cents": 0,
                "date": day,
            }

        row["total_quantity"] += tx.quantity
        row["total_price_cents"] += price_rule(service.price_cents, tx.quantity)
        # 'YYYY-MM-DD' strings order chronologically
        if day > row["date"]:
            row["date"] = day

    _log_dropped(report, dropped)

    for row in groups.values():
        row["total_price"] = cents_to_units(row["total_price_cents"])
    return list(groups.values())


def service_purchased_report() -> list[dict]:
    """All-time purchases per (location, service); total_price = sum(price * quantity)."""
    return _aggregate_service_report(
        report="service_purchased_report",
        tx_type="purchased",
        price_rule=_price_times_quantity,
        name_key="service_name",
    )


def service_used_report() -> list[dict]:
    """All-time uses per (location, service); total_price = sum(price * quantity)."""
    return _aggregate_service_report(
        report="service_used_report",
        tx_type="used",
        price_rule=_price_times_quantity,
        name_key="service_name",
    )


def service_purchase_report(*, start: str | None, end: str | None, location_id: int | None = None) -> list[dict]:
    """Purchases in a date range per (location, service); total_price = sum(price)."""
    return _aggregate_service_report(
        report="service_purchase_report",
        tx_type="purchased",
        price_rule=_price_per_entry,
        name_key="serviceName",
        window=parse_date_range(start, end),
        location_id=location_id,
    )


def service_use_report(*, start: str | None, end: str | None, location_id: int | None = None) -> list[dict]:
    """Uses in a date range per (location, service); total_price = sum(price)."""
    return _aggregate_service_report(
        report="service_use_report",
        tx_type="used",
        price_rule=_price_per_entry,
        name_key="serviceName",
        window=parse_date_range(start, end),
        location_id=location_id,
    )


def _aggregate_product_report(
    *,
    report: str,
    window: tuple[datetime, datetime] | None = None,
    location_id: int | None = None,
) -> list[dict]:
    _require_location(location_id)
    day_expr = func.date(ProductTransaction.created_at)

    q = db.session.query(
        ProductTransaction.product_id.label("product_id"),
        ProductTransaction.location_id.label("location_id"),
        func.sum(ProductTransaction.quantity).label("total_quantity"),
        day_expr.label("day"),
    )
    if window is not None:
        q = q.filter(
            ProductTransaction.created_at >= window[0],
            ProductTransaction.created_at < window[1],
        )
    if location_id:
        q = q.filter(ProductTransaction.location_id == location_id)

    grouped = q.group_by(
        ProductTransaction.product_id,
        ProductTransaction.location_id,
        day_expr,
    ).order_by(day_expr, ProductTransaction.location_id, ProductTransaction.product_id).all()

    products = _by_id(Product, (r.product_id for r in grouped))
    locations = _by_id(Location, (r.location_id for r in grouped))

    rows = []
    dropped = 0
    for r in grouped:
        product = products.get(r.product_id)
        location = locations.get(r.location_id)
        if product is None or location is None:
            dropped += 1
            continue

        total_quantity = int(r.total_quantity or 0)
        total_price_cents = total_quantity * product.price_cents
        rows.append({
            "location": location.to_dict(),
            "product": product.to_summary_dict(),
            "total_quantity": total_quantity,
            "total_price_cents": total_price_cents,
            "total_price": cents_to_units(total_price_cents),
            "date": str(r.day),
        })

    _log_dropped(report, dropped)
    return rows


def product_sale_report() -> list[dict]:
    """All-time product sales per (product, location, day); total_price = quantity * price."""
    return _aggregate_product_report(report="product_sale_report")


def product_sales_report(*, start: str | None, end: str | None, location_id: int | None = None) -> list[dict]:
    """Product sales in a date range per (product, location, day)."""
    return _aggregate_product_report(
        report="product_sales_report",
        window=parse_date_range(start, end),
        location_id=location_id,
    )


def customer_day_usage(*, start: str | None, end: str | None, location_id: int | None = None) -> list[dict]:
    """
    Distinct customers with a 'used' entry, per (day, location).

    Location names are resolved with one batch lookup; a location that no
    longer exists yields name None rather than dropping the bucket.
    """
    lo, hi = parse_date_range(start, end)
    _require_location(location_id)
    day_expr = func.date(ServiceTransaction.created_at)

    q = db.session.query(
        day_expr.label("day"),
        ServiceTransaction.location_id.label("location_id"),
        func.count(distinct(ServiceTransaction.user_id)).label("user_count"),
    ).filter(
        ServiceTransaction.type == "used",
        ServiceTransaction.created_at >= lo,
        ServiceTransaction.created_at < hi,
    )
    if location_id:
        q = q.filter(ServiceTransaction.location_id == location_id)

    buckets = q.group_by(day_expr, ServiceTransaction.location_id).order_by(
        day_expr, ServiceTransaction.location_id
    ).all()

    names = {loc_id: loc.name for loc_id, loc in _by_id(Location, (b.location_id for b in buckets)).items()}

    return [
        {
            "date": str(b.day),
            "location_id": b.location_id,
            "location": names.get(b.location_id),
            "userCount": int(b.user_count),
        }
        for b in buckets
    ]


def daily_stats(location_id: int | None = None) -> dict:
    """
    Dashboard counters for the current UTC day.

    location_id None/0 gives global figures; otherwise customer counts use the
    preferred location and ledger figures use the entry's location.
    Minutes and unique customers come from today's used entries; service
    revenue is the catalog price of today's purchases.
    """
    _require_location(location_id)
    today = utcnow().date()
    lo, hi = day_bounds(today, today)
    scoped = bool(location_id)

    customers = db.session.query(func.count(distinct(User.id))).join(
        UserProfile, UserProfile.user_id == User.id
    ).filter(User.role == "customer")
    if scoped:
        customers = customers.filter(UserProfile.preferred_location_id == location_id)

    def _today(query, tx_type: str):
        query = query.filter(
            ServiceTransaction.type == tx_type,
            ServiceTransaction.created_at >= lo,
            ServiceTransaction.created_at < hi,
        )
        if scoped:
            query = query.filter(ServiceTransaction.location_id == location_id)
        return query

    minutes_used = _today(
        db.session.query(func.coalesce(func.sum(ServiceTransaction.quantity), 0)),
        "used",
    ).scalar()

    service_revenue_cents = _today(
        db.session.query(func.coalesce(func.sum(Service.price_cents), 0)).select_from(
            ServiceTransaction
        ).join(Service, Service.id == ServiceTransaction.service_id),
        "purchased",
    ).scalar()

    unique_customers = _today(
        db.session.query(func.count(distinct(ServiceTransaction.user_id))),
        "used",
    ).scalar()

    product_q = db.session.query(
        func.coalesce(func.sum(ProductTransaction.quantity * Product.price_cents), 0)
    ).select_from(ProductTransaction).join(
        Product, Product.id == ProductTransaction.product_id
    ).filter(
        ProductTransaction.created_at >= lo,
        ProductTransaction.created_at < hi,
    )
    if scoped:
        product_q = product_q.filter(ProductTransaction.location_id == location_id)
    product_revenue_cents = product_q.scalar()

    return {
        "date": today.isoformat(),
        "location_id": location_id or 0,
        "locations_count": db.session.query(func.count(Location.id)).scalar(),
        "customers_count": int(customers.scalar() or 0),
        "products_count": db.session.query(func.count(Product.id)).scalar(),
        "services_count": db.session.query(func.count(Service.id)).scalar(),
        "service_minutes_used_today": int(minutes_used or 0),
        "service_revenue_today": cents_to_units(int(service_revenue_cents or 0)),
        "product_revenue_today": cents_to_units(int(product_revenue_cents or 0)),
        "unique_customers_today": int(unique_customers or 0),
    }


def _current_week() -> tuple[datetime, datetime]:
    today = utcnow().date()
    monday = today - timedelta(days=today.weekday())
    return day_bounds(monday, monday + timedelta(days=6))


def customer_date_range_totals(
    *,
    start: str | None,
    end: str | None,
    page: int = 1,
    per_page: int = 15,
) -> dict:
    """
    Per-customer spend over a date range, one page of customers at a time.

    Without start/end the range is the current Monday-to-Sunday week.
    Service purchases count the catalog price once per entry; product
    purchases count quantity * price. Entries whose service or product no
    longer exists count as 0.
    """
    if start is None and end is None:
        lo, hi = _current_week()
    else:
        lo, hi = parse_date_range(start, end)
    if page < 1 or per_page < 1:
        raise ReportError("page and per_page must be positive integers")

    customers_q = db.session.query(User).filter(User.role == "customer")
    total = customers_q.count()
    users = customers_q.order_by(User.id).offset((page - 1) * per_page).limit(per_page).all()
    user_ids = [u.id for u in users]

    used_minutes: dict = {}
    service_cents: dict = {}
    product_cents: dict = {}
    if user_ids:
        used_minutes = dict(
            db.session.query(ServiceTransaction.user_id, func.sum(ServiceTransaction.quantity)).filter(
                ServiceTransaction.user_id.in_(user_ids),
                ServiceTransaction.type == "used",
                ServiceTransaction.created_at >= lo,
                ServiceTransaction.created_at < hi,
            ).group_by(ServiceTransaction.user_id).all()
        )
        service_cents = dict(
            db.session.query(ServiceTransaction.user_id, func.sum(Service.price_cents)).join(
                Service, Service.id == ServiceTransaction.service_id
            ).filter(
                ServiceTransaction.user_id.in_(user_ids),
                ServiceTransaction.type == "purchased",
                ServiceTransaction.created_at >= lo,
                ServiceTransaction.created_at < hi,
            ).group_by(ServiceTransaction.user_id).all()
        )
        product_cents = dict(
            db.session.query(
                ProductTransaction.user_id,
                func.sum(ProductTransaction.quantity * Product.price_cents),
            ).join(
                Product, Product.id == ProductTransaction.product_id
            ).filter(
                ProductTransaction.user_id.in_(user_ids),
                ProductTransaction.created_at >= lo,
                ProductTransaction.created_at < hi,
            ).group_by(ProductTransaction.user_id).all()
        )

    rows = []
    for user in users:
        service_total = int(service_cents.get(user.id) or 0)
        product_total = int(product_cents.get(user.id) or 0)
        rows.append({
            "user": user.to_dict(),
            "profile": user.profile.to_dict() if user.profile else None,
            "total_used_minutes": int(used_minutes.get(user.id) or 0),
            "total_service_purchased_price": cents_to_units(service_total),
            "total_product_purchased_price": cents_to_units(product_total),
            "total_price": cents_to_units(service_total + product_total),
        })

    offset = (page - 1) * per_page
    return {
        "data": rows,
        "pagination": {
            "total": total,
            "per_page": per_page,
            "current_page": page,
            "last_page": -(-total // per_page),
            "from": offset + 1 if rows else None,
            "to": offset + len(rows) if rows else None,
        },
    }
