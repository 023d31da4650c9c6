from __future__ import annotations

import math
import re
from typing import Any


# Maximum price accepted from a cart payload: $9,999,999.99
MAX_PRICE = 9_999_999.99

_NUMERIC_NOISE = re.compile(r"[^0-9.\-]")


class ValidationError(ValueError):
    """400-level input problem."""


class ConfigurationError(RuntimeError):
    """A collaborator required by the called operation is not configured."""


def pick_string(*values: Any) -> str | None:
    """First value that is a non-blank string (or finite number), trimmed."""
    for value in values:
        if value is None or isinstance(value, bool):
            continue
        if isinstance(value, str):
            trimmed = value.strip()
            if trimmed:
                return trimmed
        elif isinstance(value, (int, float)) and math.isfinite(value):
            return str(value)
    return None


def coerce_number(value: Any) -> float | None:
    """
    Loose numeric parse used for metadata values.

    "12.50" -> 12.5, "$12.50" -> 12.5, 3 -> 3.0, "" / None / "abc" -> None
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        trimmed = value.strip()
        if not trimmed:
            return None
        try:
            parsed = float(trimmed)
        except ValueError:
            cleaned = _NUMERIC_NOISE.sub("", trimmed)
            if not cleaned or cleaned in {".", "-", "-."}:
                return None
            try:
                parsed = float(cleaned)
            except ValueError:
                return None
        return parsed if math.isfinite(parsed) else None
    return None


def coerce_integer(value: Any) -> int | None:
    parsed = coerce_number(value)
    if parsed is None:
        return None
    return int(parsed)


def coerce_positive_int(value: Any) -> int | None:
    """Positive whole quantity or None; 2.0 is accepted, 2.5 and 0 are not."""
    parsed = coerce_number(value)
    if parsed is None or parsed <= 0 or not float(parsed).is_integer():
        return None
    return int(parsed)


def coerce_positive_number(value: Any) -> float | None:
    parsed = coerce_number(value)
    if parsed is None or parsed <= 0:
        return None
    return parsed


def coerce_price(value: Any, field: str = "price") -> float | None:
    """Non-negative price in major units; raises ValidationError on nonsense."""
    if value is None or value == "":
        return None
    parsed = coerce_number(value)
    if parsed is None:
        raise ValidationError(f"{field} must be a number")
    if parsed < 0:
        raise ValidationError(f"{field} must not be negative")
    if parsed > MAX_PRICE:
        raise ValidationError(f"{field} exceeds maximum allowed value")
    return round(parsed, 2)

