# Overview: Service-layer operations for orders; reconciles a Stripe checkout session into one canonical order row.

"""
Order Reconciliation Service

WHY: Stripe delivers webhooks at least once, out of order, and staff can
reprocess a session by hand. Every path must converge on exactly one order per
checkout session, with the same order number, without losing refund or
fulfillment state written by other services.

PASS (one session, strictly sequential):
1. Load any existing order for the session id
2. Retrieve session, payment intent and line items from Stripe
3. Map line items -> CartItem, enrich against the catalog, aggregate shipping metrics
4. Resolve shipping details and the order number (existing number always kept)
5. Create the row, or overwrite every computed field on the existing row
6. Run post-commit tasks (packing slip, customer profile, invoice link,
   optional fulfillment), each isolated from the others and from the upsert

FAILURE SEMANTICS:
- Stripe session / line item / payment intent failures propagate
  (PaymentGatewayError); the caller retries the whole pass later.
- Catalog lookup failures degrade to "no enrichment".
- Database errors in the order-number check or the upsert propagate.
- A concurrent first insert for the same session (UNIQUE violation) is
  absorbed by re-reading the winning row and patching it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Order
from ..models.orders import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_EXPIRED,
    ORDER_STATUS_PAID,
    PAYMENT_STATUS_CANCELLED,
    PAYMENT_STATUS_EXPIRED,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PARTIALLY_REFUNDED,
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_REFUNDED,
)
from ..money import non_negative, to_major_units
from ..time_utils import utcnow
from ..validation import ConfigurationError, ValidationError, pick_string
from .cart_item_service import map_line_item
from .catalog_service import enrich_cart_items, slugify
from .concurrency import run_with_retry
from .customer_service import sync_customer_profile
from .fulfillment_service import sync_order
from .invoice_service import link_invoice
from .metadata_service import SOURCE_SESSION, as_mapping, collect
from .order_number_service import candidate_from_session_id, resolve_order_number
from .packing_slip_service import attach_packing_slip
from .post_commit_service import PostCommitTask, TaskOutcome, run_post_commit_tasks
from .shipping_details_service import ShippingDetails, resolve_shipping_details
from .shipping_metrics_service import ShippingMetrics, aggregate


class OrderNotFoundError(Exception):
    """Raised when an order id or session id has no order row."""
    pass


class ReconciliationError(Exception):
    """Raised when a pass cannot produce an order row."""
    pass


# =============================================================================
# STATUS MAPPING TABLES
# =============================================================================

# Raw Stripe status text -> payment status. Anything absent maps to pending.
PAYMENT_STATUS_BY_RAW = {
    "paid": PAYMENT_STATUS_PAID,
    "succeeded": PAYMENT_STATUS_PAID,
    "complete": PAYMENT_STATUS_PAID,
    "no_payment_required": PAYMENT_STATUS_PAID,
    "canceled": PAYMENT_STATUS_CANCELLED,
    "cancelled": PAYMENT_STATUS_CANCELLED,
    "failed": PAYMENT_STATUS_CANCELLED,
    "requires_payment_method": PAYMENT_STATUS_CANCELLED,
    "requires_action": PAYMENT_STATUS_CANCELLED,
    "requires_confirmation": PAYMENT_STATUS_CANCELLED,
    "requires_source": PAYMENT_STATUS_CANCELLED,
    "requires_source_action": PAYMENT_STATUS_CANCELLED,
    "expired": PAYMENT_STATUS_EXPIRED,
}

# Payment status -> persisted order status
ORDER_STATUS_BY_PAYMENT_STATUS = {
    PAYMENT_STATUS_PAID: ORDER_STATUS_PAID,
    PAYMENT_STATUS_PENDING: ORDER_STATUS_PAID,
    PAYMENT_STATUS_CANCELLED: ORDER_STATUS_CANCELLED,
    PAYMENT_STATUS_EXPIRED: ORDER_STATUS_EXPIRED,
    PAYMENT_STATUS_PARTIALLY_REFUNDED: ORDER_STATUS_PAID,
    PAYMENT_STATUS_REFUNDED: ORDER_STATUS_CANCELLED,
}

REFUND_PAYMENT_STATUSES = (PAYMENT_STATUS_REFUNDED, PAYMENT_STATUS_PARTIALLY_REFUNDED)

EMAIL_METADATA_KEYS = ("customer_email", "customerEmail", "email", "customer_email_address")
NAME_METADATA_KEYS = ("customer_name", "customerName", "bill_to_name", "ship_to_name")
USER_ID_METADATA_KEYS = ("user_id", "userId")
ORDER_NUMBER_METADATA_KEYS = ("order_number", "orderNumber", "orderNo", "website_order_number")
INVOICE_NUMBER_METADATA_KEYS = ("invoice_number", "invoiceNumber", "sanity_invoice_number")
INVOICE_ID_METADATA_KEYS = ("invoice_id", "invoiceId", "sanity_invoice_id")


def map_payment_status(
    session_status: str | None,
    payment_intent_status: str | None = None,
    session_payment_status: str | None = None,
) -> str:
    """
    An expired session wins; otherwise the first recognised value among the
    payment intent status and the session payment status. The session status
    only signals expiry: a "complete" session can still be awaiting an async
    payment or have had one fail.
    """
    if (session_status or "").strip().lower() == "expired":
        return PAYMENT_STATUS_EXPIRED
    for raw in (payment_intent_status, session_payment_status):
        mapped = PAYMENT_STATUS_BY_RAW.get((raw or "").strip().lower())
        if mapped:
            return mapped
    return PAYMENT_STATUS_PENDING


def map_order_status(payment_status: str) -> str:
    return ORDER_STATUS_BY_PAYMENT_STATUS.get(payment_status, ORDER_STATUS_PAID)


# =============================================================================
# FIELD DERIVATION
# =============================================================================

def _object_id(value: Any) -> str | None:
    if isinstance(value, str):
        return value or None
    if isinstance(value, Mapping):
        return pick_string(value.get("id"))
    return None


def extract_charge(payment_intent: Mapping[str, Any]) -> Mapping[str, Any]:
    latest = payment_intent.get("latest_charge")
    if isinstance(latest, Mapping):
        return latest
    data = as_mapping(payment_intent.get("charges")).get("data") or []
    if data and isinstance(data[0], Mapping):
        return data[0]
    return {}


def resolve_email(metadata: Mapping[str, str], session: Mapping[str, Any], payment_intent: Mapping[str, Any]) -> str | None:
    details = as_mapping(session.get("customer_details"))
    billing = as_mapping(extract_charge(payment_intent).get("billing_details"))
    email = pick_string(
        *(metadata.get(key) for key in EMAIL_METADATA_KEYS),
        details.get("email"),
        session.get("customer_email"),
        payment_intent.get("receipt_email"),
        billing.get("email"),
    )
    return email.lower() if email else None


def resolve_name(
    metadata: Mapping[str, str],
    session: Mapping[str, Any],
    payment_intent: Mapping[str, Any],
    email: str | None = None,
) -> str | None:
    details = as_mapping(session.get("customer_details"))
    billing = as_mapping(extract_charge(payment_intent).get("billing_details"))
    return pick_string(
        *(metadata.get(key) for key in NAME_METADATA_KEYS),
        details.get("name"),
        billing.get("name"),
        email,
    )


def extract_shipping_address(session: Mapping[str, Any], payment_intent: Mapping[str, Any]) -> dict | None:
    collected = as_mapping(session.get("collected_information"))
    shipping = (
        as_mapping(session.get("shipping_details"))
        or as_mapping(collected.get("shipping_details"))
        or as_mapping(payment_intent.get("shipping"))
    )
    details = as_mapping(session.get("customer_details"))
    address = as_mapping(shipping.get("address")) or as_mapping(details.get("address"))
    if not address:
        return None
    return {
        "name": pick_string(shipping.get("name"), details.get("name")),
        "phone": pick_string(shipping.get("phone"), details.get("phone")),
        "email": pick_string(details.get("email"), session.get("customer_email")),
        "address_line1": pick_string(address.get("line1")),
        "address_line2": pick_string(address.get("line2")),
        "city": pick_string(address.get("city")),
        "state": pick_string(address.get("state")),
        "postal_code": pick_string(address.get("postal_code")),
        "country": pick_string(address.get("country")),
    }


def order_number_candidates(metadata: Mapping[str, str], session_id: str, prefix: str) -> list[str | None]:
    return [
        *(metadata.get(key) for key in ORDER_NUMBER_METADATA_KEYS),
        *(metadata.get(key) for key in INVOICE_NUMBER_METADATA_KEYS),
        candidate_from_session_id(session_id, prefix),
    ]


def build_order_fields(
    *,
    session: Mapping[str, Any],
    payment_intent: Mapping[str, Any],
    metadata: Mapping[str, str],
    cart: list[dict],
    metrics: ShippingMetrics,
    shipping: ShippingDetails,
) -> dict:
    """
    Every computed field of the order row.

    Fields outside this dict (order number, fulfillment, refunds, packing
    slip, links, notes) are never touched by a reconciliation patch.
    """
    charge = extract_charge(payment_intent)
    card = as_mapping(as_mapping(charge.get("payment_method_details")).get("card"))
    total_details = as_mapping(session.get("total_details"))

    payment_status = map_payment_status(
        session.get("status"),
        payment_intent.get("status"),
        session.get("payment_status"),
    )
    email = resolve_email(metadata, session, payment_intent)

    total = to_major_units(session.get("amount_total"))
    if total is None:
        total = to_major_units(payment_intent.get("amount_received"))

    currency = pick_string(session.get("currency"), payment_intent.get("currency"), shipping.currency)

    return {
        "customer_email": email,
        "customer_name": resolve_name(metadata, session, payment_intent, email),
        "user_id": pick_string(*(metadata.get(key) for key in USER_ID_METADATA_KEYS)),
        "status": map_order_status(payment_status),
        "payment_status": payment_status,
        "stripe_checkout_status": pick_string(session.get("status")),
        "stripe_checkout_mode": pick_string(session.get("mode")),
        "stripe_payment_intent_status": pick_string(payment_intent.get("status")),
        "checkout_draft": payment_status != PAYMENT_STATUS_PAID,
        "currency": currency.lower() if currency else None,
        "amount_subtotal": non_negative(to_major_units(session.get("amount_subtotal"))),
        "amount_tax": non_negative(to_major_units(total_details.get("amount_tax"))),
        "amount_shipping": non_negative(shipping.amount),
        "total_amount": non_negative(total),
        "payment_intent_id": pick_string(payment_intent.get("id"), _object_id(session.get("payment_intent"))),
        "charge_id": pick_string(charge.get("id"), _object_id(payment_intent.get("latest_charge"))),
        "card_brand": pick_string(card.get("brand")),
        "card_last4": pick_string(card.get("last4")),
        "receipt_url": pick_string(charge.get("receipt_url")),
        "cart": cart,
        "shipping_address": extract_shipping_address(session, payment_intent),
        "weight": metrics.weight_dict(),
        "dimensions": metrics.dimensions.to_dict(),
        "shipping_carrier": shipping.carrier,
        "selected_service": shipping.selected_service(),
        "shipping_service_code": shipping.service_code,
        "shipping_service_name": shipping.service_name,
        "shipping_delivery_days": shipping.delivery_days,
        "shipping_estimated_delivery_date": shipping.estimated_delivery_date,
        "shipping_metadata": shipping.metadata or None,
    }


def _apply_fields(order: Order, fields: Mapping[str, Any]) -> None:
    refund_status = order.payment_status if order.payment_status in REFUND_PAYMENT_STATUSES else None
    for name, value in fields.items():
        setattr(order, name, value)
    # Refund state is owned by refund_service
    if refund_status is not None:
        order.payment_status = refund_status
        order.status = map_order_status(refund_status)
        order.checkout_draft = False
    order.slug = slugify(order.order_number) or slugify(order.stripe_session_id)
    order.stripe_last_synced_at = utcnow()


# =============================================================================
# RESULT
# =============================================================================

@dataclass
class ReconcileResult:
    order: Order
    created: bool
    tasks: list[TaskOutcome] = field(default_factory=list)
    catalog_degraded: bool = False

    def to_dict(self) -> dict:
        return {
            "order": self.order.to_dict(),
            "created": self.created,
            "catalog_degraded": self.catalog_degraded,
            "tasks": [t.to_dict() for t in self.tasks],
        }


# =============================================================================
# QUERIES
# =============================================================================

def get_order_by_session(session_id: str) -> Order | None:
    return db.session.query(Order).filter(Order.stripe_session_id == session_id).first()


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise OrderNotFoundError(f"Order {order_id} not found")
    return order


def require_order_by_session(session_id: str) -> Order:
    order = get_order_by_session(session_id)
    if order is None:
        raise OrderNotFoundError(f"No order for session {session_id}")
    return order


# =============================================================================
# RECONCILIATION
# =============================================================================

def _upsert(session_id: str, order_number: str, fields: Mapping[str, Any]) -> tuple[Order, bool]:
    def _op():
        current = get_order_by_session(session_id)
        if current is not None:
            _apply_fields(current, fields)
            db.session.commit()
            return current, False

        order = Order(
            stripe_session_id=session_id,
            order_number=order_number,
            webhook_notified=True,
        )
        _apply_fields(order, fields)
        db.session.add(order)
        db.session.commit()
        return order, True

    return run_with_retry(_op)


def reconcile_session(
    session_id: str,
    *,
    gateway,
    settings,
    shipstation=None,
    auto_fulfill: bool = False,
) -> ReconcileResult:
    """
    Reconcile one checkout session into its order row.

    Args:
        session_id: Stripe checkout session id (natural key)
        gateway: StripeGateway (or a fake exposing the same methods)
        settings: IntegrationSettings (prefix, package defaults, public URL)
        shipstation: ShipStationClient, required only when auto_fulfill is set
        auto_fulfill: push the order to ShipStation after the upsert

    Returns:
        ReconcileResult with the order, whether it was created, and one
        outcome per post-commit task

    Raises:
        ValidationError: blank session id
        ConfigurationError: Stripe is not configured
        PaymentGatewayError: Stripe calls failed
        ReconciliationError: the row could not be written after a number collision
    """
    session_id = (session_id or "").strip()
    if not session_id:
        raise ValidationError("session_id is required")
    if gateway is None:
        raise ConfigurationError("Stripe is not configured (set STRIPE_SECRET_KEY)")

    existing = get_order_by_session(session_id)

    session = as_mapping(gateway.retrieve_session(session_id))
    raw_metadata = as_mapping(session.get("metadata"))
    metadata = collect([(SOURCE_SESSION, raw_metadata)]).flat

    payment_intent: Mapping[str, Any] = {}
    raw_intent = session.get("payment_intent")
    if isinstance(raw_intent, Mapping) and raw_intent.get("status"):
        payment_intent = raw_intent
    else:
        intent_id = _object_id(raw_intent)
        if intent_id:
            payment_intent = as_mapping(gateway.retrieve_payment_intent(intent_id))

    items = [map_line_item(line_item, raw_metadata) for line_item in gateway.list_line_items(session_id)]
    enrichment = enrich_cart_items(items)
    metrics = aggregate(enrichment.items, enrichment.products_by_id, settings.package_defaults)
    shipping = resolve_shipping_details(raw_metadata, session, payment_intent, gateway=gateway)

    fields = build_order_fields(
        session=session,
        payment_intent=payment_intent,
        metadata=metadata,
        cart=[item.to_dict() for item in enrichment.items],
        metrics=metrics,
        shipping=shipping,
    )

    prefix = settings.order_number_prefix
    if existing is not None:
        order_number = existing.order_number
    else:
        order_number = resolve_order_number(order_number_candidates(metadata, session_id, prefix), prefix=prefix)

    try:
        order, created = _upsert(session_id, order_number, fields)
    except IntegrityError:
        db.session.rollback()
        if get_order_by_session(session_id) is None:
            # Lost a race on the order number, not the session
            order_number = resolve_order_number([], prefix=prefix)
        try:
            order, created = _upsert(session_id, order_number, fields)
        except IntegrityError as exc:
            db.session.rollback()
            raise ReconciliationError(f"Could not store order for session {session_id}") from exc

    if created:
        current_app.logger.info("Created order %s for session %s", order.order_number, session_id)
    else:
        current_app.logger.info("Patched order %s for session %s", order.order_number, session_id)

    invoice_hint = pick_string(*(metadata.get(key) for key in INVOICE_ID_METADATA_KEYS))
    tasks = [
        PostCommitTask("packing_slip", lambda: attach_packing_slip(order, settings.public_base_url)),
        PostCommitTask("customer_profile", lambda: sync_customer_profile(order)),
        PostCommitTask("invoice_link", lambda: link_invoice(order, invoice_hint)),
    ]
    if auto_fulfill:
        tasks.append(PostCommitTask(
            "fulfillment",
            lambda: sync_order(order, shipstation, purchase_label_after=True),
        ))
    outcomes = run_post_commit_tasks(tasks)

    return ReconcileResult(
        order=order,
        created=created,
        tasks=outcomes,
        catalog_degraded=enrichment.degraded,
    )
