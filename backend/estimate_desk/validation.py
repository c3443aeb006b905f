from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from dataclasses import dataclass
from typing import Any

from flask import current_app, request
from sqlalchemy import JSON, Boolean, Date, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError, ConflictError  # noqa: F401  (re-exported)
from .time_utils import parse_iso_datetime


# Upper bound for rates, discounts and charges; guards Numeric(14, 2) overflow
MAX_AMOUNT = Decimal("999999999999.99")

UOM_CHOICES = ("piece", "kg", "ton", "meter", "sqft", "cft", "liter", "bag", "box", "bundle")
REFERRAL_TYPES = ("customer", "engineer", "mason", "other")
SEND_CHANNELS = ("email", "whatsapp", "print")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - choices: allowed values for enum-like string columns
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    choices: dict[str, tuple] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_decimal(value: Any, field: str) -> Decimal:
    """Accept ints, floats and numeric strings; reject bools and blanks."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number", param=field)
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field} must be a number", param=field)
    if not result.is_finite():
        raise ValidationError(f"{field} must be a number", param=field)
    return result


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - reject floats and bools
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            return int(value.strip())
        raise ValidationError(f"{col.key} must be an integer", param=col.key)

    if isinstance(coltype, Numeric):
        return coerce_decimal(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ("true", "false"):
            return value.lower() == "true"
        raise ValidationError(f"{col.key} must be a boolean", param=col.key)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", param=col.key)
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", param=col.key)
            return dt
        raise ValidationError(f"{col.key} must be a datetime", param=col.key)

    if isinstance(coltype, Date):
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be a valid date", param=col.key)
            if dt is None:
                raise ValidationError(f"{col.key} must be a valid date", param=col.key)
            return dt.date()
        raise ValidationError(f"{col.key} must be a valid date", param=col.key)

    if isinstance(coltype, JSON):
        return value

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{col.key} must be a string", param=col.key)
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

    Keys outside writable_fields are ignored rather than rejected, since
    clients commonly echo back whole records on update.

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
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                errors=[{"param": f, "msg": f"{f} is required"} for f in missing],
            )

    cols = _columns_by_key(model)
    choices = policy.choices or {}

    patch: dict = {}

    for k, raw in payload.items():
        if k not in policy.writable_fields or k not in cols:
            continue
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", param=k)
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", param=k)

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", param=k)

        if k in choices and val not in choices[k]:
            raise ValidationError(f"{k} must be one of: {', '.join(choices[k])}", param=k)

        patch[k] = val

    return patch


def require_non_negative(patch: dict, *fields: str) -> None:
    for field in fields:
        value = patch.get(field)
        if value is None:
            continue
        if value < 0:
            raise ValidationError(f"{field} must be >= 0", param=field)
        if value > MAX_AMOUNT:
            raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT}", param=field)


def normalize_tags(raw: Any, *, field: str = "tags", max_tags: int | None = None, max_length: int = 50) -> list[str]:
    """Trim, drop blanks and de-duplicate (first occurrence wins)."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError(f"{field} must be an array", param=field)

    seen: list[str] = []
    for tag in raw:
        if not isinstance(tag, str):
            raise ValidationError(f"{field} must contain strings", param=field)
        tag = tag.strip()
        if not tag:
            continue
        if len(tag) > max_length:
            raise ValidationError(f"Each tag must be at most {max_length} characters", param=field)
        if tag not in seen:
            seen.append(tag)

    if max_tags is not None and len(seen) > max_tags:
        raise ValidationError(f"Maximum {max_tags} tags allowed", param=field)
    return seen


def normalize_address(raw: Any, *, field: str = "address") -> dict:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValidationError(f"{field} must be an object", param=field)
    return {
        key: str(raw.get(key) or "").strip()
        for key in ("street", "city", "state", "pincode")
        if raw.get(key) not in (None, "")
    }


def parse_pagination(args, *, default_limit: int, max_limit: int) -> tuple[int, int]:
    """Read page/limit query args (1-indexed), clamped to sane bounds."""
    page = args.get("page", default=1, type=int) or 1
    limit = args.get("limit", default=default_limit, type=int) or default_limit
    return max(page, 1), min(max(limit, 1), max_limit)


def page_args(args) -> tuple[int, int]:
    """parse_pagination with the app's DEFAULT_PAGE_SIZE / MAX_PAGE_SIZE."""
    return parse_pagination(
        args,
        default_limit=current_app.config.get("DEFAULT_PAGE_SIZE", 10),
        max_limit=current_app.config.get("MAX_PAGE_SIZE", 100),
    )


def json_body() -> dict:
    """Request JSON object; an empty or missing body reads as {}."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data
