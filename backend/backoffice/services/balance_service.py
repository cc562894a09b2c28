# Overview: Service-layer operations for the service-minute ledger; balances and total spend.

from __future__ import annotations

from collections import Counter

from flask import current_app
from sqlalchemy import func

from ..errors import InsufficientBalanceError, LedgerError, NotFoundError
from ..extensions import db
from ..models import Service, ServiceTransaction, UserProfile
from ..time_utils import cents_to_units
from ..validation import ValidationError
from .concurrency import apply_delta, run_with_retry

"""
Balance Ledger Invariants (authoritative)

Quantities:
- purchased / used entries take their quantity from Service.minutes_available.
  Any caller-supplied quantity is ignored for these types.
- credit entries take the caller's quantity verbatim and need no service.

Balance:
- purchased and credit add quantity to UserProfile.available_balance.
- used subtracts quantity, and only if available_balance >= quantity.
- The sufficiency check IS the write: a single conditional UPDATE with an
  affected-row check. No read-compare-write in Python, so two concurrent
  'used' entries can never both pass against the same minutes.

Reversal:
- Deleting an entry applies the inverse adjustment for purchased (subtract)
  and used (add back). credit entries are deleted without adjustment.
- Reversal does not re-check the floor; a reversed purchase can leave the
  balance negative if those minutes were already used.

Total spend:
- Cumulative. Each compute adds the minutes used since the latest purchase
  to UserProfile.total_spend; calling it twice counts the same uses twice.
"""


def _retry_attempts() -> int:
    return current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3)


def _require_profile(user_id: int) -> UserProfile:
    profile = db.session.query(UserProfile).filter_by(user_id=user_id).first()
    if profile is None:
        raise NotFoundError("User profile not found")
    return profile


def _read_available_balance(user_id: int) -> int:
    return db.session.query(UserProfile.available_balance).filter(
        UserProfile.user_id == user_id
    ).scalar()


def _adjust_available_balance(user_id: int, delta: int, *, require_sufficient: bool = False) -> bool:
    """
    Add delta to the customer's available balance in one UPDATE.

    With require_sufficient the row is only updated when the balance stays
    non-negative; returns False if that guard rejected the change.
    """
    floor = 0 if require_sufficient else None
    updated = apply_delta(
        UserProfile.available_balance,
        delta,
        UserProfile.user_id == user_id,
        floor=floor,
    )
    return updated == 1


def record_service_transaction(
    *,
    user_id: int,
    type: str,
    service_id: int | None = None,
    quantity: int | None = None,
    location_id: int | None = None,
) -> ServiceTransaction:
    """
    Record a purchased / used / credit entry and move the customer's balance.

    Raises:
    - NotFoundError: service missing (purchased/used) or no profile for user_id
    - InsufficientBalanceError: used entry larger than the available balance
    - ValidationError: unknown type, or credit without a quantity

    Nothing is persisted when any of these is raised.
    """
    if type not in ("purchased", "used", "credit"):
        raise ValidationError("type must be one of: purchased, used, credit")

    def _op():
        if type in ("purchased", "used"):
            service = db.session.get(Service, service_id) if service_id is not None else None
            if service is None:
                raise NotFoundError("Service not found")
            entry_quantity = service.minutes_available
        else:
            if quantity is None:
                raise ValidationError("quantity is required for credit")
            entry_quantity = quantity

        _require_profile(user_id)

        if type == "used":
            if not _adjust_available_balance(user_id, -entry_quantity, require_sufficient=True):
                raise InsufficientBalanceError(user_id, entry_quantity)
        else:
            _adjust_available_balance(user_id, entry_quantity)

        tx = ServiceTransaction(
            user_id=user_id,
            service_id=service_id,
            type=type,
            quantity=entry_quantity,
            location_id=location_id,
        )
        db.session.add(tx)
        db.session.commit()
        return tx

    try:
        tx = run_with_retry(_op, attempts=_retry_attempts())
    except (LedgerError, ValidationError):
        db.session.rollback()
        raise

    current_app.logger.info(
        "Recorded service transaction id=%s user_id=%s type=%s quantity=%s",
        tx.id, tx.user_id, tx.type, tx.quantity,
    )
    return tx


def reverse_service_transaction(entry_id: int) -> None:
    """
    Delete a service ledger entry and undo its balance effect.

    Raises NotFoundError if the entry or the owner's profile is missing.
    """
    def _op():
        tx = db.session.get(ServiceTransaction, entry_id)
        if tx is None:
            raise NotFoundError("Service transaction not found")
        _require_profile(tx.user_id)

        if tx.type == "purchased":
            _adjust_available_balance(tx.user_id, -tx.quantity)
        elif tx.type == "used":
            _adjust_available_balance(tx.user_id, tx.quantity)

        snapshot = (tx.user_id, tx.type, tx.quantity)
        db.session.delete(tx)
        db.session.commit()
        return snapshot

    try:
        user_id, tx_type, tx_quantity = run_with_retry(_op, attempts=_retry_attempts())
    except LedgerError:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Reversed service transaction id=%s user_id=%s type=%s quantity=%s",
        entry_id, user_id, tx_type, tx_quantity,
    )


def compute_total_spend(user_id: int) -> int:
    """
    Add the minutes used since the customer's latest purchase to total_spend.

    Returns the new cumulative total. Raises NotFoundError when the customer
    has no purchased entry or no profile.
    """
    def _op():
        last_purchase = db.session.query(ServiceTransaction).filter_by(
            user_id=user_id,
            type="purchased",
        ).order_by(
            ServiceTransaction.created_at.desc(),
            ServiceTransaction.id.desc(),
        ).first()
        if last_purchase is None:
            raise NotFoundError("No purchase transactions found for this user.")

        used_since = db.session.query(
            func.coalesce(func.sum(ServiceTransaction.quantity), 0)
        ).filter(
            ServiceTransaction.user_id == user_id,
            ServiceTransaction.type == "used",
            ServiceTransaction.created_at >= last_purchase.created_at,
        ).scalar()

        _require_profile(user_id)
        apply_delta(UserProfile.total_spend, int(used_since or 0), UserProfile.user_id == user_id)
        total = db.session.query(UserProfile.total_spend).filter(
            UserProfile.user_id == user_id
        ).scalar()
        db.session.commit()
        return int(total)

    try:
        return run_with_retry(_op, attempts=_retry_attempts())
    except LedgerError:
        db.session.rollback()
        raise


def credit_minutes(user_id: int, amount: int) -> int:
    """
    Add amount minutes straight to the balance. No ledger entry is written.

    Returns the new available balance.
    """
    def _op():
        if not _adjust_available_balance(user_id, amount):
            raise NotFoundError("User not found.")
        balance = _read_available_balance(user_id)
        db.session.commit()
        return int(balance)

    try:
        balance = run_with_retry(_op, attempts=_retry_attempts())
    except LedgerError:
        db.session.rollback()
        raise

    current_app.logger.info("Credited %s minutes to user_id=%s (no ledger entry)", amount, user_id)
    return balance


def minutes_summary(user_id: int | None = None) -> dict:
    """Sum of used and purchased minutes, for one customer or everybody."""
    def _total(tx_type: str) -> int:
        q = db.session.query(
            func.coalesce(func.sum(ServiceTransaction.quantity), 0)
        ).filter(ServiceTransaction.type == tx_type)
        if user_id is not None:
            q = q.filter(ServiceTransaction.user_id == user_id)
        return int(q.scalar() or 0)

    return {
        "totalUsed": _total("used"),
        "totalPurchased": _total("purchased"),
    }


def list_customer_service_transactions(user_id: int) -> dict:
    profile = _require_profile(user_id)

    transactions = db.session.query(ServiceTransaction).filter_by(
        user_id=user_id
    ).order_by(ServiceTransaction.created_at.asc(), ServiceTransaction.id.asc()).all()

    rows = []
    for tx in transactions:
        service = tx.service
        rows.append({
            "service": service.to_dict() if service else {"id": 0, "name": "", "price": 0},
            "transaction": tx.to_dict(),
        })

    return {
        "user_details": profile.to_dict(),
        "transactions": rows,
    }


def _service_summary(service: Service | None) -> dict:
    if service is None:
        return {"id": 0, "name": "", "price": 0}
    return {"id": service.id, "name": service.name, "price": cents_to_units(service.price_cents)}


def list_service_transactions() -> list[dict]:
    """
    Every service ledger entry with its customer, their preferred location
    and the service. Entries of users without a profile are left out.
    """
    rows = db.session.query(ServiceTransaction, UserProfile).join(
        UserProfile, UserProfile.user_id == ServiceTransaction.user_id
    ).order_by(ServiceTransaction.id.asc()).all()

    return [
        {
            "user_details": profile.to_dict(),
            "service": _service_summary(tx.service),
            "transaction": tx.to_dict(),
        }
        for tx, profile in rows
    ]


def available_services(user_id: int) -> list[dict]:
    """
    Purchases not yet matched by a use of the same service.

    Each used entry cancels one purchase of its service, oldest purchase
    first; whatever is left is still available to the customer.
    """
    _require_profile(user_id)

    entries = db.session.query(ServiceTransaction).filter(
        ServiceTransaction.user_id == user_id,
        ServiceTransaction.type.in_(("purchased", "used")),
    ).order_by(ServiceTransaction.created_at.asc(), ServiceTransaction.id.asc()).all()

    unmatched_uses = Counter(e.service_id for e in entries if e.type == "used")

    available = []
    for purchase in (e for e in entries if e.type == "purchased"):
        if unmatched_uses[purchase.service_id] > 0:
            unmatched_uses[purchase.service_id] -= 1
            continue
        if purchase.service is None:
            continue
        available.append({
            "transaction_id": purchase.id,
            "service_id": purchase.service_id,
            "quantity": purchase.quantity,
            "serviceName": purchase.service.name,
        })
    return available
