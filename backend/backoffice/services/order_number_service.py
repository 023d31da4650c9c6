# Overview: Service-layer operations for order numbers; resolves collision-free PREFIX-NNNNNN identifiers.

"""
Order number resolution.

WHY: Order numbers are shown to customers and printed on packing slips, so
they must be short, stable and unique across both orders and invoices
(invoices are issued before payment and share the same number space).

RESOLUTION ORDER:
1. Caller-supplied candidates in priority order (metadata order number,
   invoice number, digits of the Stripe session id)
2. Up to 8 random 6-digit numbers
3. current time in ms modulo 1,000,000, checked once more; if even that is
   taken it is returned anyway and a warning is logged

An order that already has a number keeps it; callers never re-resolve.
Database errors during the existence check propagate.
"""

from __future__ import annotations

import random
import re
import time
from typing import Callable, Iterable

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Invoice, Order


RANDOM_ATTEMPTS = 8
DIGITS = 6

_NON_DIGITS = re.compile(r"\D")
_SESSION_PREFIX = re.compile(r"^cs_(?:test|live)_", re.IGNORECASE)


def format_order_number(prefix: str, digits: int | str) -> str:
    return f"{prefix}-{int(digits):06d}"


def sanitize_order_number(value: str | None, prefix: str) -> str | None:
    """
    "ORD-123456"   -> "ORD-123456" (canonical form kept verbatim)
    "inv 00042317" -> "ORD-042317" (last 6 digits)
    "A-12"         -> None (fewer than 6 digits)
    """
    if not value:
        return None
    text = str(value).strip().upper()
    if not text:
        return None
    if re.fullmatch(rf"{re.escape(prefix)}-\d{{{DIGITS}}}", text):
        return text
    digits = _NON_DIGITS.sub("", text)
    if len(digits) < DIGITS:
        return None
    return format_order_number(prefix, digits[-DIGITS:])


def candidate_from_session_id(session_id: str | None, prefix: str) -> str | None:
    if not session_id:
        return None
    core = _SESSION_PREFIX.sub("", str(session_id).strip())
    return sanitize_order_number(core, prefix)


def order_number_exists(candidate: str) -> bool:
    """True when any order or invoice already uses the number."""
    if db.session.query(Order.id).filter(Order.order_number == candidate).first() is not None:
        return True
    invoice = (
        db.session.query(Invoice.id)
        .filter(or_(Invoice.order_number == candidate, Invoice.invoice_number == candidate))
        .first()
    )
    return invoice is not None


def resolve_order_number(
    candidates: Iterable[str | None],
    *,
    prefix: str,
    exists: Callable[[str], bool] = order_number_exists,
    rng: random.Random | None = None,
    clock: Callable[[], float] = time.time,
) -> str:
    rng = rng or random.SystemRandom()
    tried: set[str] = set()

    for raw in candidates:
        candidate = sanitize_order_number(raw, prefix)
        if not candidate or candidate in tried:
            continue
        tried.add(candidate)
        if not exists(candidate):
            return candidate

    for _ in range(RANDOM_ATTEMPTS):
        candidate = format_order_number(prefix, rng.randint(0, 10 ** DIGITS - 1))
        if candidate in tried:
            continue
        tried.add(candidate)
        if not exists(candidate):
            return candidate

    fallback = format_order_number(prefix, int(clock() * 1000) % 10 ** DIGITS)
    if exists(fallback):
        current_app.logger.warning("Order number fallback %s collides with an existing record", fallback)
    return fallback
