from __future__ import annotations

from datetime import datetime
from typing import Any

from chairbook.errors import ValidationFailed
from chairbook.time_utils import parse_iso_datetime


# Maximum amount: 9,999,999.99 (999,999,999 cents)
# Prevents database overflow issues and nonsensical prices
MAX_AMOUNT_CENTS = 999_999_999


def json_payload(raw: Any) -> dict:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValidationFailed("Invalid JSON payload")
    return raw


def coerce_int(key: str, value: Any) -> int:
    """
    Strict integer coercion: ints and plain digit strings only.
    Floats, booleans and scientific notation are rejected.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationFailed(f"{key} must be an integer")
        if "e" in stripped.lower():
            raise ValidationFailed(f"{key} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationFailed(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationFailed(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationFailed(f"{key} must be an integer, not a decimal")
    raise ValidationFailed(f"{key} must be an integer")


def required_int(payload: dict, key: str) -> int:
    if payload.get(key) is None:
        raise ValidationFailed(f"Missing required field: {key}")
    return coerce_int(key, payload[key])


def optional_int(payload: dict, key: str, default: int | None = None) -> int | None:
    if payload.get(key) is None:
        return default
    return coerce_int(key, payload[key])


def amount_cents(payload: dict, key: str = "amount_cents") -> int | None:
    value = optional_int(payload, key)
    if value is not None and value > MAX_AMOUNT_CENTS:
        raise ValidationFailed(f"{key} cannot exceed {MAX_AMOUNT_CENTS} ({MAX_AMOUNT_CENTS / 100:,.2f})")
    return value


def optional_str(payload: dict, key: str, max_length: int = 255) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    value = str(value).strip()
    if len(value) > max_length:
        raise ValidationFailed(f"{key} exceeds max length {max_length}")
    return value or None


def datetime_arg(args, key: str) -> datetime | None:
    """Parse an ISO-8601 query argument (normalized to naive UTC)."""
    raw = args.get(key)
    if raw is None or raw == "":
        return None
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationFailed(f"{key} must be an ISO-8601 datetime")
