from __future__ import annotations
from datetime import datetime
import json
from gymoffice.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime, JSON
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

ITEM_CATEGORIES = ("Supplements", "Apparel", "Equipment", "Accessories", "Beverages")
PLAN_TYPES = ("Free", "Monthly", "Quarterly", "Yearly")
SUPPLIER_STATUSES = ("active", "inactive")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(key: str, value: Any) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def coerce_json_list(key: str, value: Any) -> list:
    """Accept a list, or a JSON-encoded list as sent by multipart forms."""
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            raise ValidationError(f"{key} must be a JSON array")
    if not isinstance(value, list):
        raise ValidationError(f"{key} must be an array")
    return value


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, JSON):
        return coerce_json_list(col.key, value)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _check_price(patch: dict, key: str) -> None:
    if key in patch and patch[key] is not None:
        price = patch[key]
        if price < 0:
            raise ValidationError(f"{key} must be >= 0")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS}")


def enforce_rules_item(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    _check_price(patch, "unit_price_cents")
    if "category" in patch and patch["category"] not in ITEM_CATEGORIES:
        raise ValidationError(f"category must be one of: {', '.join(ITEM_CATEGORIES)}")
    if patch.get("quantity") is not None and patch["quantity"] < 0:
        raise ValidationError("quantity must be >= 0")
    if patch.get("reorder_level") is not None and patch["reorder_level"] < 0:
        raise ValidationError("reorder_level must be >= 0")
    if "sku" in patch and patch["sku"]:
        patch["sku"] = patch["sku"].upper()


def enforce_rules_supplier(patch: dict) -> None:
    if patch.get("email"):
        email = patch["email"].lower()
        if "@" not in email or email.startswith("@") or email.endswith("@"):
            raise ValidationError("email must be a valid email address")
        patch["email"] = email
    if "status" in patch and patch["status"] not in SUPPLIER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(SUPPLIER_STATUSES)}")


def enforce_rules_plan(patch: dict) -> None:
    _check_price(patch, "price_cents")
    if "duration_days" in patch and (patch["duration_days"] is None or patch["duration_days"] <= 0):
        raise ValidationError("duration_days must be > 0")
    if "plan_type" in patch and patch["plan_type"] not in PLAN_TYPES:
        raise ValidationError(f"plan_type must be one of: {', '.join(PLAN_TYPES)}")
    if patch.get("max_members") is not None and patch["max_members"] <= 0:
        raise ValidationError("max_members must be > 0")
    if "features" in patch and patch["features"] is not None:
        if not all(isinstance(f, str) for f in patch["features"]):
            raise ValidationError("features must be a list of strings")
        patch["features"] = [f.strip() for f in patch["features"] if f.strip()]


def parse_document_lines(raw: Any, *, require_price: bool) -> list[dict]:
    """
    Normalize the ``items`` array of a purchase order or sale.

    Each entry needs ``item_id`` and ``quantity`` (>= 1). ``unit_price_cents``
    is mandatory for purchase orders and optional for sales (defaults to the
    item's list price in the service).
    """
    if raw is None:
        raise ValidationError("items are required")
    entries = coerce_json_list("items", raw)
    if not entries:
        raise ValidationError("items must contain at least one line")

    lines = []
    for idx, entry in enumerate(entries, start=1):
        if not isinstance(entry, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        if entry.get("item_id") is None:
            raise ValidationError(f"items[{idx}].item_id is required")
        if entry.get("quantity") is None:
            raise ValidationError(f"items[{idx}].quantity is required")
        item_id = coerce_int(f"items[{idx}].item_id", entry["item_id"])
        quantity = coerce_int(f"items[{idx}].quantity", entry["quantity"])
        if quantity < 1:
            raise ValidationError(f"items[{idx}].quantity must be >= 1")

        unit_price = entry.get("unit_price_cents")
        if unit_price is None:
            if require_price:
                raise ValidationError(f"items[{idx}].unit_price_cents is required")
        else:
            unit_price = coerce_int(f"items[{idx}].unit_price_cents", unit_price)
            if unit_price < 0 or unit_price > MAX_PRICE_CENTS:
                raise ValidationError(f"items[{idx}].unit_price_cents is out of range")

        lines.append({"item_id": item_id, "quantity": quantity, "unit_price_cents": unit_price})
    return lines
