# Overview: Service-layer operations for shipping selection; resolves carrier, service, amount and delivery estimate.

"""
Shipping details resolution.

Priority per field:
1. session metadata written by the storefront (shipping_amount, shipping_carrier, ...)
2. the session itself (shipping_cost / total_details, shipping_details)
3. the Stripe shipping rate referenced by the session (best-effort lookup)

Amounts in metadata are major units; amounts on Stripe objects are minor.
A failed rate lookup is logged and ignored.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Any, Mapping

from flask import current_app

from ..integrations.stripe_gateway import PaymentGatewayError
from ..money import format_amount, to_decimal, to_major_units
from ..time_utils import from_unix_timestamp, to_utc_z, utcnow
from ..validation import coerce_integer, coerce_number
from .metadata_service import as_mapping, collect


_DISPLAY_NAME_SPLIT = re.compile(r"[–—-]")


@dataclass
class ShippingDetails:
    amount: Decimal | None = None
    currency: str | None = None
    carrier: str | None = None
    carrier_id: str | None = None
    service_code: str | None = None
    service_name: str | None = None
    delivery_days: int | None = None
    estimated_delivery_date: str | None = None
    rate_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    def selected_service(self) -> dict | None:
        if not (self.carrier or self.service_name or self.service_code):
            return None
        return {
            "carrier": self.carrier,
            "carrier_id": self.carrier_id,
            "service": self.service_name,
            "service_code": self.service_code,
            "amount": float(self.amount) if self.amount is not None else None,
            "currency": self.currency,
            "delivery_days": self.delivery_days,
            "estimated_delivery_date": self.estimated_delivery_date,
        }


def _first(meta: Mapping[str, str], *keys: str) -> str | None:
    for key in keys:
        value = meta.get(key)
        if value:
            return value
    return None


def _currency(value: Any) -> str | None:
    text = (value or "").strip() if isinstance(value, str) else ""
    return text.upper() or None


def _meta_amount(meta: Mapping[str, str], *keys: str) -> Decimal | None:
    parsed = coerce_number(_first(meta, *keys))
    return to_decimal(parsed) if parsed is not None else None


def split_display_name(display_name: str | None) -> tuple[str | None, str | None]:
    """'UPS - Ground' -> ('UPS', 'Ground'); 'Standard' -> (None, 'Standard')."""
    name = (display_name or "").strip()
    if not name:
        return None, None
    parts = [p.strip() for p in _DISPLAY_NAME_SPLIT.split(name) if p.strip()]
    if len(parts) >= 2:
        return parts[0], " - ".join(parts[1:])
    return None, name


def delivery_days_from_estimate(estimate: Mapping[str, Any] | None) -> int | None:
    estimate = as_mapping(estimate)
    for bound in ("maximum", "minimum"):
        value = coerce_number(as_mapping(estimate.get(bound)).get("value"))
        if value is not None:
            return max(0, int(value))
    return None


def _shipping_rate_id(session: Mapping[str, Any]) -> str | None:
    cost_rate = as_mapping(session.get("shipping_cost")).get("shipping_rate")
    if isinstance(cost_rate, str) and cost_rate:
        return cost_rate
    if isinstance(cost_rate, Mapping) and cost_rate.get("id"):
        return cost_rate["id"]
    top_level = session.get("shipping_rate")
    if isinstance(top_level, str) and top_level:
        return top_level
    return None


def _load_shipping_rate(session: Mapping[str, Any], rate_id: str | None, gateway) -> dict | None:
    cost_rate = as_mapping(session.get("shipping_cost")).get("shipping_rate")
    if isinstance(cost_rate, Mapping) and cost_rate.get("id"):
        return dict(cost_rate)
    if not rate_id or gateway is None:
        return None
    try:
        return gateway.retrieve_shipping_rate(rate_id)
    except PaymentGatewayError:
        current_app.logger.warning("Failed to load shipping rate %s", rate_id, exc_info=True)
        return None


def resolve_shipping_details(
    metadata: Mapping[str, Any] | None,
    session: Mapping[str, Any] | None,
    payment_intent: Mapping[str, Any] | None = None,
    fallback_amount: Decimal | None = None,
    gateway=None,
) -> ShippingDetails:
    meta = collect([("session", metadata)]).flat
    session = as_mapping(session)
    payment_intent = as_mapping(payment_intent)

    details = ShippingDetails(
        amount=_meta_amount(meta, "shipping_amount", "shippingAmount"),
        currency=_currency(_first(meta, "shipping_currency", "shippingCurrency")),
        carrier=_first(meta, "shipping_carrier", "shippingCarrier"),
        carrier_id=_first(meta, "shipping_carrier_id", "shippingCarrierId", "shipping_carrier_code"),
        service_name=_first(meta, "shipping_service_name", "shipping_service", "shippingServiceName", "shippingService"),
        service_code=_first(meta, "shipping_service_code", "shippingServiceCode"),
        delivery_days=coerce_integer(_first(meta, "shipping_delivery_days", "shippingDeliveryDays")),
        estimated_delivery_date=_first(meta, "shipping_estimated_delivery_date", "shippingEstimatedDeliveryDate"),
    )
    meta_rate_id = _first(meta, "shipping_rate_id")

    shipping_cost = as_mapping(session.get("shipping_cost"))
    session_minor = shipping_cost.get("amount_total")
    if session_minor is None:
        session_minor = as_mapping(session.get("total_details")).get("amount_shipping")
    if details.amount is None:
        details.amount = to_major_units(session_minor)
        if details.amount is None:
            details.amount = to_decimal(fallback_amount)
    if not details.currency:
        details.currency = _currency(shipping_cost.get("currency") or session.get("currency") or payment_intent.get("currency"))
    if not details.carrier:
        details.carrier = (
            as_mapping(session.get("shipping_details")).get("carrier")
            or as_mapping(payment_intent.get("shipping")).get("carrier")
            or None
        )

    rate_id = _shipping_rate_id(session)
    rate = _load_shipping_rate(session, rate_id, gateway)
    rate_meta: dict[str, str] = {}
    if rate:
        rate_meta = collect([("session", rate.get("metadata"))]).flat
        rate_id = rate_id or rate.get("id")
        details.carrier_id = details.carrier_id or rate.get("id")
        fixed = as_mapping(rate.get("fixed_amount"))
        if details.amount is None:
            details.amount = to_major_units(fixed.get("amount"))
        details.currency = details.currency or _currency(fixed.get("currency"))

        rate_carrier, rate_service = split_display_name(rate.get("display_name"))
        details.carrier = details.carrier or rate_carrier
        details.service_name = details.service_name or rate_service
        details.service_code = details.service_code or rate.get("id")

        if details.amount is None:
            details.amount = _meta_amount(rate_meta, "shipping_amount", "shippingAmount")
        details.currency = details.currency or _currency(_first(rate_meta, "shipping_currency", "shippingCurrency"))
        details.carrier = details.carrier or _first(rate_meta, "shipping_carrier")
        details.carrier_id = details.carrier_id or _first(rate_meta, "shipping_carrier_id", "shipping_carrier_code")
        details.service_name = details.service_name or _first(rate_meta, "shipping_service_name", "shipping_service")
        details.service_code = details.service_code or _first(rate_meta, "shipping_service_code")
        if details.delivery_days is None:
            details.delivery_days = coerce_integer(_first(rate_meta, "shipping_delivery_days"))
        details.estimated_delivery_date = details.estimated_delivery_date or _first(
            rate_meta, "shipping_estimated_delivery_date"
        )

        estimate_days = delivery_days_from_estimate(rate.get("delivery_estimate"))
        if details.delivery_days is None:
            details.delivery_days = estimate_days
        if not details.estimated_delivery_date and estimate_days:
            base = from_unix_timestamp(session.get("created")) or utcnow()
            details.estimated_delivery_date = to_utc_z(base + timedelta(days=estimate_days))

    if not details.service_name and details.service_code:
        details.service_name = details.service_code
    if not details.service_code and details.service_name and rate_id:
        details.service_code = rate_id

    details.rate_id = rate_id or meta_rate_id or _first(rate_meta, "shipping_rate_id")

    doc: dict[str, str] = {}
    if details.amount is not None:
        doc["shipping_amount"] = format_amount(details.amount)
    if details.currency:
        doc["shipping_currency"] = details.currency
    if details.carrier:
        doc["shipping_carrier"] = details.carrier
    if details.carrier_id:
        doc["shipping_carrier_id"] = details.carrier_id
    if details.service_name:
        doc["shipping_service_name"] = details.service_name
    if details.service_code:
        doc["shipping_service_code"] = details.service_code
    if details.delivery_days is not None:
        doc["shipping_delivery_days"] = str(details.delivery_days)
    if details.estimated_delivery_date:
        doc["shipping_estimated_delivery_date"] = details.estimated_delivery_date
    if details.rate_id:
        doc["shipping_rate_id"] = details.rate_id
    for key, value in rate_meta.items():
        doc.setdefault(key, value)
    details.metadata = doc

    return details
