from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta


# Largest quantity accepted for a single loan line or stock correction
MAX_QUANTITY = 1_000_000


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate customer name)."""


class NotFoundError(LookupError):
    """404-level: referenced loan/customer/stock item does not exist."""


class PersistenceError(RuntimeError):
    """500-level: the store refused a write the operation depends on."""


class ImmutableRecordError(PersistenceError):
    """Raised on UPDATE/DELETE of an append-only audit or archive row."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set
    - required_on_create: fields required for POST
    - allow_null_fields: NOT NULL columns the client may leave null/blank
      because the service fills them in (defaults, "now")
    - field_aliases: payload key -> model attribute (the UI speaks Portuguese)
    - timestamp_fields: free-form date/time input that time_utils normalizes
      later, so the storage column length does not apply to the raw text
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    allow_null_fields: set[str] | None = None
    field_aliases: dict[str, str] | None = None
    timestamp_fields: set[str] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    # Keyed by mapped attribute name; Column.key is the (Portuguese) DB column name
    return dict(model.__mapper__.columns.items())


def coerce_int(key: str, value: Any) -> int:
    """Strict integer coercion: rejects floats, bools, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(key: str, col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    # Strings / Text (timestamps are strings too; time_utils normalizes them later)
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

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
    Returns a cleaned patch dict keyed by model attribute.

    Keys outside the allowlist are ignored rather than rejected: the browser
    sends whole form objects, including fields it only displays.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    aliases = policy.field_aliases or {}
    normalized = {}
    for k, v in payload.items():
        normalized[aliases.get(k, k)] = v

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if normalized.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    nullable_overrides = policy.allow_null_fields or set()
    timestamp_fields = policy.timestamp_fields or set()
    patch: dict = {}

    for k, raw in normalized.items():
        if k not in policy.writable_fields or k not in cols:
            continue
        col = cols[k]
        may_be_null = col.nullable or k in nullable_overrides

        if raw is None or (isinstance(raw, str) and not raw.strip() and may_be_null):
            if not may_be_null:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(k, col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if k in timestamp_fields:
            patch[k] = val
            continue

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def require_text(value: Any, field: str) -> str:
    """Non-blank string or ValidationError; used for justification/editor fields."""
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    return str(value).strip()


def enforce_rules_quantities(patch: dict, fields: tuple[str, ...]) -> None:
    """Quantities are non-negative integers within MAX_QUANTITY."""
    for field in fields:
        if field not in patch or patch[field] is None:
            continue
        qty = patch[field]
        if qty < 0:
            raise ValidationError(f"{field} must be >= 0")
        if qty > MAX_QUANTITY:
            raise ValidationError(f"{field} cannot exceed {MAX_QUANTITY}")
