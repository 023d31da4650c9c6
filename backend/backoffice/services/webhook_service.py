# Overview: Service-layer operations for Stripe webhooks; routes verified events to reconciliation and refunds.

from __future__ import annotations

from typing import Any, Mapping

from flask import current_app

from .metadata_service import as_mapping
from .order_service import reconcile_session
from .refund_service import apply_charge_refunded_event


SESSION_EVENTS = (
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
    "checkout.session.async_payment_failed",
    "checkout.session.expired",
)
CHARGE_REFUNDED = "charge.refunded"


def handle_event(event: Mapping[str, Any], *, gateway, settings, shipstation=None) -> dict:
    """
    Dispatch one verified event.

    Unknown event types are acknowledged so Stripe stops retrying them.
    """
    event_type = event.get("type")
    obj = as_mapping(as_mapping(event.get("data")).get("object"))

    if event_type in SESSION_EVENTS:
        session_id = obj.get("id")
        result = reconcile_session(session_id, gateway=gateway, settings=settings, shipstation=shipstation)
        return {
            "received": True,
            "handled": True,
            "type": event_type,
            "order_id": result.order.id,
            "order_number": result.order.order_number,
            "created": result.created,
        }

    if event_type == CHARGE_REFUNDED:
        order = apply_charge_refunded_event(obj)
        return {
            "received": True,
            "handled": order is not None,
            "type": event_type,
            "order_id": order.id if order is not None else None,
        }

    current_app.logger.info("Ignoring Stripe event %s (%s)", event.get("id"), event_type)
    return {"received": True, "handled": False, "type": event_type}
