# Overview: Service-layer operations for product sales and per-location stock.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import InvalidLocationError, LedgerError, NotFoundError
from ..extensions import db
from ..models import Location, Product, ProductStock, ProductTransaction, UserProfile
from .concurrency import apply_delta, run_with_retry

"""
Inventory Ledger Invariants (authoritative)

Stock model:
- Stock lives in ProductStock rows keyed by (product_id, location_code).
- A location's legacy location_code selects the row a sale draws from.
- Only codes listed in STOCK_LOCATION_CODES carry stock. A sale at a location
  with any other code (or no code) records the entry and touches no stock.
- There is no floor: stock may go negative.

Write paths:
- record_product_transaction: validates product and location, decrements
  stock, writes one entry.
- bulk_record_product_transactions: writes entries only. It never touches
  stock and does not resolve products or locations.
"""


def _stock_codes() -> tuple[str, ...]:
    return tuple(current_app.config.get("STOCK_LOCATION_CODES", ("01", "02", "03")))


def _decrement_stock(product_id: int, location: Location, quantity: int) -> bool:
    """
    Take quantity off the product's stock for the location's code.

    Returns False (and changes nothing) when the code carries no stock.
    """
    code = location.location_code
    if code not in _stock_codes():
        current_app.logger.info(
            "Location id=%s has code %r with no stock counter; stock unchanged for product_id=%s",
            location.id, code, product_id,
        )
        return False

    updated = apply_delta(
        ProductStock.quantity,
        -quantity,
        ProductStock.product_id == product_id,
        ProductStock.location_code == code,
    )
    if updated == 0:
        try:
            with db.session.begin_nested():
                db.session.add(ProductStock(product_id=product_id, location_code=code, quantity=-quantity))
        except IntegrityError:
            # a concurrent first sale created the row after our UPDATE
            apply_delta(
                ProductStock.quantity,
                -quantity,
                ProductStock.product_id == product_id,
                ProductStock.location_code == code,
            )
    return True


def ensure_stock_rows(product: Product, initial: dict[str, int] | None = None) -> list[ProductStock]:
    """Create any missing stock rows for the configured codes (idempotent)."""
    initial = initial or {}
    existing = {row.location_code: row for row in product.stock_levels}
    for code in _stock_codes():
        if code not in existing:
            row = ProductStock(product_id=product.id, location_code=code, quantity=initial.get(code, 0))
            db.session.add(row)
            product.stock_levels.append(row)
            existing[code] = row
    db.session.flush()
    return list(existing.values())


def record_product_transaction(
    *,
    user_id: int,
    product_id: int,
    location_id: int | None,
    quantity: int,
) -> ProductTransaction:
    """
    Record a product sale and decrement stock at the sale's location.

    Raises:
    - NotFoundError: product does not exist
    - InvalidLocationError: location_id missing or unknown
    """
    def _op():
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found")

        location = db.session.get(Location, location_id) if location_id is not None else None
        if location is None:
            raise InvalidLocationError("Invalid location")

        _decrement_stock(product.id, location, quantity)

        tx = ProductTransaction(
            user_id=user_id,
            product_id=product.id,
            location_id=location.id,
            quantity=quantity,
        )
        db.session.add(tx)
        db.session.commit()
        return tx

    try:
        tx = run_with_retry(_op, attempts=current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3))
    except LedgerError:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Recorded product transaction id=%s product_id=%s location_id=%s quantity=%s",
        tx.id, tx.product_id, tx.location_id, tx.quantity,
    )
    return tx


def bulk_record_product_transactions(entries: list[dict]) -> list[ProductTransaction]:
    """
    Write many product entries in one commit.

    Unlike record_product_transaction this path performs no stock decrement
    and no product/location lookups; each entry is stored as given.
    """
    def _op():
        created = []
        for entry in entries:
            tx = ProductTransaction(
                user_id=entry["user_id"],
                product_id=entry["product_id"],
                location_id=entry.get("location_id"),
                quantity=entry["quantity"],
            )
            db.session.add(tx)
            created.append(tx)
        db.session.commit()
        return created

    created = run_with_retry(_op, attempts=current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3))
    current_app.logger.info("Bulk recorded %d product transactions (stock untouched)", len(created))
    return created


def get_stock_levels(product_id: int) -> dict:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return {
        "product": product.to_summary_dict(),
        "stock": product.stock_by_location(),
    }


def list_customer_product_transactions(user_id: int) -> list[dict]:
    """
    A customer's product entries, oldest first.

    Entries whose product no longer exists are left out.
    """
    profile = db.session.query(UserProfile).filter_by(user_id=user_id).first()
    if profile is None:
        raise NotFoundError("User profile not found")

    transactions = db.session.query(ProductTransaction).filter_by(
        user_id=user_id
    ).order_by(ProductTransaction.created_at.asc(), ProductTransaction.id.asc()).all()

    rows = []
    for tx in transactions:
        if tx.product is None:
            continue
        rows.append({
            **tx.to_dict(),
            "product": tx.product.to_summary_dict(),
            "location": tx.location.to_dict() if tx.location else None,
        })
    return rows
