# ecobin/utils/parsing.py
"""Lenient request-body parsers. Blank or malformed values come back as None."""

from __future__ import annotations

from datetime import date, datetime, timezone

from flask import request

from ecobin.errors import ValidationError


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def parse_float(val):
    if isinstance(val, bool):
        return None
    try:
        if val is None or str(val).strip() == "":
            return None
        return float(val)
    except (TypeError, ValueError):
        return None


def parse_int(val):
    if isinstance(val, bool):
        return None
    try:
        if val is None or str(val).strip() == "":
            return None
        return int(val)
    except (TypeError, ValueError):
        return None


def parse_datetime(val) -> datetime | None:
    """Accepts 'YYYY-MM-DD' or a full ISO timestamp; a trailing 'Z' is treated as UTC."""
    if not val or not isinstance(val, str):
        return None
    s = val.strip()
    if s.endswith("Z"):
        s = s[:-1]
    try:
        parsed = datetime.fromisoformat(s)
    except ValueError:
        try:
            d = date.fromisoformat(s)
        except ValueError:
            return None
        return datetime(d.year, d.month, d.day)
    # Stored naive; drop any offset after converting to UTC.
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def require_datetime(val, field: str) -> datetime | None:
    """None stays None; anything else must parse."""
    if val is None or val == "":
        return None
    parsed = parse_datetime(val)
    if parsed is None:
        raise ValidationError(f"'{field}' must be an ISO date or datetime")
    return parsed


def require_int(val, field: str) -> int | None:
    if val is None or val == "":
        return None
    parsed = parse_int(val)
    if parsed is None:
        raise ValidationError(f"'{field}' must be an integer")
    return parsed
