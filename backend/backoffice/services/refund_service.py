# Overview: Service-layer operations for refunds; issues Stripe refunds and records refund state on orders.

"""
Refund Service

WHY: Refunds are started from the back office or arrive as charge.refunded
webhooks (refunds issued directly in the Stripe dashboard). Both paths write
the same refund fields on the order.

RULES:
- amount_refunded is the cumulative refunded amount in major units
- refunded in full -> payment_status "refunded", status paid -> cancelled
- anything less -> payment_status "partially_refunded"
- Reconciliation never overwrites these fields
"""

from __future__ import annotations

from typing import Any, Mapping

from flask import current_app

from ..extensions import db
from ..models import Order
from ..models.orders import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_PAID,
    PAYMENT_STATUS_PARTIALLY_REFUNDED,
    PAYMENT_STATUS_REFUNDED,
)
from ..money import ZERO, to_major_units, to_minor_units
from ..time_utils import utcnow
from ..validation import ConfigurationError
from .concurrency import run_with_retry
from .metadata_service import as_mapping
from .order_service import get_order


class RefundError(Exception):
    """Raised for refund operation errors."""
    pass


REFUND_REASONS = ("duplicate", "fraudulent", "requested_by_customer")


def apply_refund_to_order(
    order: Order,
    *,
    amount_refunded_cents: int,
    refund_id: str | None,
    refund_status: str | None,
    total_cents: int | None = None,
) -> Order:
    """
    Record cumulative refund state on the order.

    total_cents defaults to the order total; a refund at or above it is full.
    """
    def _op():
        current = db.session.get(Order, order.id)
        total = total_cents if total_cents is not None else (to_minor_units(current.total_amount) or 0)
        refunded = max(0, int(amount_refunded_cents or 0))

        current.amount_refunded = to_major_units(refunded)
        current.last_refund_id = refund_id or current.last_refund_id
        current.last_refund_status = refund_status or current.last_refund_status
        current.last_refunded_at = utcnow()

        if refunded <= 0:
            db.session.commit()
            return current
        if total and refunded >= total:
            current.payment_status = PAYMENT_STATUS_REFUNDED
            if current.status == ORDER_STATUS_PAID:
                current.status = ORDER_STATUS_CANCELLED
        else:
            current.payment_status = PAYMENT_STATUS_PARTIALLY_REFUNDED
        db.session.commit()
        return current

    updated = run_with_retry(_op)
    current_app.logger.info(
        "Order %s refund recorded: %s (%s)", updated.order_number, updated.amount_refunded, updated.payment_status
    )
    return updated


def issue_refund(
    order_id: int,
    *,
    gateway,
    amount_cents: int | None = None,
    reason: str | None = None,
) -> dict:
    """
    Refund an order through Stripe (full when amount_cents is None).

    Raises:
        OrderNotFoundError: unknown order
        RefundError: nothing refundable, or bad amount / reason
        ConfigurationError: Stripe is not configured
        PaymentGatewayError: Stripe rejected the refund
    """
    if gateway is None:
        raise ConfigurationError("Stripe is not configured (set STRIPE_SECRET_KEY)")

    order = get_order(order_id)
    if not order.payment_intent_id and not order.charge_id:
        raise RefundError(f"Order {order.order_number} has no payment to refund")
    if order.payment_status == PAYMENT_STATUS_REFUNDED:
        raise RefundError(f"Order {order.order_number} is already fully refunded")
    if reason and reason not in REFUND_REASONS:
        raise RefundError(f"Invalid refund reason: {reason}. Must be one of {list(REFUND_REASONS)}")

    total_cents = to_minor_units(order.total_amount) or 0
    already_cents = to_minor_units(order.amount_refunded or ZERO) or 0
    remaining = total_cents - already_cents
    if amount_cents is not None:
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
            raise RefundError("amount_cents must be a positive integer")
        if remaining and amount_cents > remaining:
            raise RefundError(f"Refund of {amount_cents} exceeds refundable balance {remaining}")

    refund = gateway.create_refund(
        payment_intent=order.payment_intent_id,
        charge=None if order.payment_intent_id else order.charge_id,
        amount=amount_cents,
        reason=reason,
        metadata={"order_number": order.order_number, "order_id": str(order.id)},
    )
    refund = as_mapping(refund)
    refunded_now = refund.get("amount")
    if not isinstance(refunded_now, int):
        refunded_now = amount_cents if amount_cents is not None else remaining

    updated = apply_refund_to_order(
        order,
        amount_refunded_cents=already_cents + refunded_now,
        refund_id=refund.get("id"),
        refund_status=refund.get("status"),
        total_cents=total_cents,
    )
    return {"refund": dict(refund), "order": updated.to_dict()}


def find_order_for_charge(charge: Mapping[str, Any]) -> Order | None:
    intent = charge.get("payment_intent")
    intent_id = intent.get("id") if isinstance(intent, Mapping) else intent
    if intent_id:
        order = db.session.query(Order).filter(Order.payment_intent_id == intent_id).first()
        if order is not None:
            return order
    if charge.get("id"):
        return db.session.query(Order).filter(Order.charge_id == charge["id"]).first()
    return None


def apply_charge_refunded_event(charge: Mapping[str, Any]) -> Order | None:
    """Handle a charge.refunded payload; None when no order matches the charge."""
    charge = as_mapping(charge)
    order = find_order_for_charge(charge)
    if order is None:
        current_app.logger.warning("charge.refunded for unknown charge %s", charge.get("id"))
        return None

    refunds = as_mapping(charge.get("refunds")).get("data") or []
    latest = refunds[0] if refunds and isinstance(refunds[0], Mapping) else {}
    return apply_refund_to_order(
        order,
        amount_refunded_cents=int(charge.get("amount_refunded") or 0),
        refund_id=latest.get("id"),
        refund_status=latest.get("status") or ("succeeded" if charge.get("refunded") else None),
        total_cents=charge.get("amount") if isinstance(charge.get("amount"), int) else None,
    )
