from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .models import SERVICE_TRANSACTION_TYPES


# Upper bound for a single ledger quantity (minutes or units)
MAX_LEDGER_QUANTITY = 1_000_000


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which columns of a model a request body may touch.

    - writable_fields: keys a client may send; anything else is rejected
    - required_on_create: keys that must be present and non-null on create
    - allow_null_fields: keys that may be null even though the column is NOT
      NULL, because the service fills them in (catalog-derived quantities)
    """
    writable_fields: frozenset[str] | set[str]
    required_on_create: frozenset[str] | set[str] = field(default_factory=frozenset)
    allow_null_fields: frozenset[str] | set[str] = field(default_factory=frozenset)


def _parse_int(key: str, value: Any) -> int:
    # bool is an int subclass; JSON true/false is never a count or an id
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be an integer")

    text = value.strip()
    if "e" in text.lower():
        raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
    if "." in text:
        raise ValidationError(f"{key} must be an integer (no decimals)")
    try:
        return int(text)
    except ValueError:
        raise ValidationError(f"{key} must be an integer")


def _clean_value(col, value: Any):
    if isinstance(col.type, Integer):
        return _parse_int(col.key, value)

    if isinstance(col.type, (String, Text)):
        text = str(value).strip()
        if not text and not col.nullable:
            raise ValidationError(f"{col.key} cannot be blank")
        limit = getattr(col.type, "length", None)
        if limit and len(text) > limit:
            raise ValidationError(f"{col.key} exceeds max length {limit}")
        return text

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Check a JSON body against the policy and the model's column metadata.

    Returns a patch holding only the writable keys, with integers parsed and
    strings stripped. partial=False enforces required_on_create; a required
    key sent as null counts as missing.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(k for k in policy.required_on_create if payload.get(k) is None)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}

    patch: dict = {}
    for key, raw in payload.items():
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        col = columns.get(key)
        if col is None:
            raise ValidationError(f"Unknown field: {key}")

        if raw is None:
            if not (col.nullable or key in policy.allow_null_fields):
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
        else:
            patch[key] = _clean_value(col, raw)

    return patch


def _check_quantity(value, key: str = "quantity") -> None:
    if value is None:
        raise ValidationError(f"{key} is required")
    if not 1 <= value <= MAX_LEDGER_QUANTITY:
        raise ValidationError(f"{key} must be between 1 and {MAX_LEDGER_QUANTITY}")


def enforce_rules_service_transaction(patch: dict) -> None:
    """
    purchased/used need a service_id (quantity comes from the catalog and any
    supplied value is ignored); credit needs an explicit positive quantity.
    """
    tx_type = patch.get("type")
    if tx_type not in SERVICE_TRANSACTION_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(SERVICE_TRANSACTION_TYPES)}")

    if tx_type == "credit":
        _check_quantity(patch.get("quantity"))
    elif patch.get("service_id") is None:
        raise ValidationError(f"service_id is required for {tx_type}")


def enforce_rules_product_transaction(patch: dict) -> None:
    _check_quantity(patch.get("quantity"))


def enforce_rules_credit_minutes(patch: dict) -> None:
    _check_quantity(patch.get("available_balance"), "available_balance")
