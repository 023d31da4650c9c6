from __future__ import annotations

from ..extensions import db
from ..money import money_to_float
from ..time_utils import to_utc_z


# Order status vocabulary (persisted `status`)
ORDER_STATUS_PAID = "paid"
ORDER_STATUS_CANCELLED = "cancelled"
ORDER_STATUS_EXPIRED = "expired"

# Payment status vocabulary (persisted `payment_status`)
PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_CANCELLED = "cancelled"
PAYMENT_STATUS_EXPIRED = "expired"
PAYMENT_STATUS_REFUNDED = "refunded"
PAYMENT_STATUS_PARTIALLY_REFUNDED = "partially_refunded"

# Fulfillment workflow stages
FULFILLMENT_UNFULFILLED = "unfulfilled"
FULFILLMENT_AWAITING_SHIPMENT = "awaiting_shipment"
FULFILLMENT_LABEL_CREATED = "label_created"


class Order(db.Model):
    """
    Canonical order record, one per Stripe checkout session.

    WHY: The order is a derived cache of the payment session. Reconciliation
    recomputes every computed field on each pass; fulfillment and refund fields
    are owned by their own services and are never overwritten by reconciliation.

    IDENTITY:
    - stripe_session_id: natural key (UNIQUE) used for idempotent upsert
    - order_number: human-readable PREFIX-NNNNNN, immutable once assigned
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("stripe_session_id", name="uq_orders_stripe_session"),
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    stripe_session_id = db.Column(db.String(255), nullable=False)
    order_number = db.Column(db.String(16), nullable=False)
    slug = db.Column(db.String(96), nullable=True)

    # Customer contact
    customer_name = db.Column(db.String(255), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    user_id = db.Column(db.String(255), nullable=True)

    # Status
    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PAID, index=True)
    payment_status = db.Column(db.String(32), nullable=False, default=PAYMENT_STATUS_PENDING)
    stripe_checkout_status = db.Column(db.String(32), nullable=True)
    stripe_checkout_mode = db.Column(db.String(32), nullable=True)
    stripe_payment_intent_status = db.Column(db.String(32), nullable=True)
    checkout_draft = db.Column(db.Boolean, nullable=False, default=False)

    # Money (major units)
    currency = db.Column(db.String(8), nullable=True)
    amount_subtotal = db.Column(db.Numeric(12, 2), nullable=True)
    amount_tax = db.Column(db.Numeric(12, 2), nullable=True)
    amount_shipping = db.Column(db.Numeric(12, 2), nullable=True)
    total_amount = db.Column(db.Numeric(12, 2), nullable=True)

    # Payment identifiers
    payment_intent_id = db.Column(db.String(255), nullable=True, index=True)
    charge_id = db.Column(db.String(255), nullable=True, index=True)
    card_brand = db.Column(db.String(32), nullable=True)
    card_last4 = db.Column(db.String(4), nullable=True)
    receipt_url = db.Column(db.String(1024), nullable=True)

    # Cart and shipping (denormalized document fields)
    cart = db.Column(db.JSON, nullable=False, default=list)
    shipping_address = db.Column(db.JSON, nullable=True)
    weight = db.Column(db.JSON, nullable=True)
    dimensions = db.Column(db.JSON, nullable=True)
    shipping_carrier = db.Column(db.String(64), nullable=True)
    selected_service = db.Column(db.JSON, nullable=True)
    shipping_service_code = db.Column(db.String(128), nullable=True)
    shipping_service_name = db.Column(db.String(255), nullable=True)
    shipping_delivery_days = db.Column(db.Integer, nullable=True)
    shipping_estimated_delivery_date = db.Column(db.String(32), nullable=True)
    shipping_metadata = db.Column(db.JSON, nullable=True)

    # Refund state (owned by refund_service)
    amount_refunded = db.Column(db.Numeric(12, 2), nullable=True)
    last_refund_id = db.Column(db.String(255), nullable=True)
    last_refund_status = db.Column(db.String(32), nullable=True)
    last_refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Fulfillment state (owned by fulfillment_service)
    ship_station_order_id = db.Column(db.String(64), nullable=True)
    tracking_number = db.Column(db.String(128), nullable=True)
    shipping_label_url = db.Column(db.String(1024), nullable=True)
    fulfillment_status = db.Column(db.String(32), nullable=False, default=FULFILLMENT_UNFULFILLED)
    fulfillment_notes = db.Column(db.Text, nullable=True)

    # Post-commit artifacts
    packing_slip_url = db.Column(db.String(1024), nullable=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)

    webhook_notified = db.Column(db.Boolean, nullable=False, default=False)
    stripe_last_synced_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    invoice = db.relationship("Invoice", foreign_keys=[invoice_id])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stripe_session_id": self.stripe_session_id,
            "order_number": self.order_number,
            "slug": self.slug,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_id": self.customer_id,
            "user_id": self.user_id,
            "status": self.status,
            "payment_status": self.payment_status,
            "stripe_checkout_status": self.stripe_checkout_status,
            "stripe_checkout_mode": self.stripe_checkout_mode,
            "stripe_payment_intent_status": self.stripe_payment_intent_status,
            "checkout_draft": self.checkout_draft,
            "currency": self.currency,
            "amount_subtotal": money_to_float(self.amount_subtotal),
            "amount_tax": money_to_float(self.amount_tax),
            "amount_shipping": money_to_float(self.amount_shipping),
            "total_amount": money_to_float(self.total_amount),
            "payment_intent_id": self.payment_intent_id,
            "charge_id": self.charge_id,
            "card_brand": self.card_brand,
            "card_last4": self.card_last4,
            "receipt_url": self.receipt_url,
            "cart": list(self.cart or []),
            "shipping_address": self.shipping_address,
            "weight": self.weight,
            "dimensions": self.dimensions,
            "shipping_carrier": self.shipping_carrier,
            "selected_service": self.selected_service,
            "shipping_service_code": self.shipping_service_code,
            "shipping_service_name": self.shipping_service_name,
            "shipping_delivery_days": self.shipping_delivery_days,
            "shipping_estimated_delivery_date": self.shipping_estimated_delivery_date,
            "shipping_metadata": self.shipping_metadata,
            "amount_refunded": money_to_float(self.amount_refunded),
            "last_refund_id": self.last_refund_id,
            "last_refund_status": self.last_refund_status,
            "last_refunded_at": to_utc_z(self.last_refunded_at) if self.last_refunded_at else None,
            "ship_station_order_id": self.ship_station_order_id,
            "tracking_number": self.tracking_number,
            "shipping_label_url": self.shipping_label_url,
            "fulfillment_status": self.fulfillment_status,
            "fulfillment_notes": self.fulfillment_notes,
            "packing_slip_url": self.packing_slip_url,
            "invoice_id": self.invoice_id,
            "webhook_notified": self.webhook_notified,
            "stripe_last_synced_at": to_utc_z(self.stripe_last_synced_at) if self.stripe_last_synced_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
