# Overview: Service-layer operations for customers; keeps the profile snapshot in step with reconciled orders.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Order
from ..models.orders import ORDER_STATUS_PAID
from ..money import ZERO, to_decimal
from .concurrency import run_with_retry


def split_name(full_name: str | None) -> tuple[str | None, str | None]:
    """'Ada Lovelace King' -> ('Ada', 'Lovelace King')."""
    parts = (full_name or "").split()
    if not parts:
        return None, None
    return parts[0], " ".join(parts[1:]) or None


def find_customer_by_email(email: str) -> Customer | None:
    return (
        db.session.query(Customer)
        .filter(func.lower(Customer.email) == email.strip().lower())
        .first()
    )


def sync_customer_profile(order: Order) -> dict | None:
    """
    Find-or-create the customer for order.customer_email and refresh its
    snapshot: name, address, order count, lifetime spend, last order.

    Returns None when the order has no email.
    """
    email = (order.customer_email or "").strip().lower()
    if not email:
        return None

    def _op():
        customer = find_customer_by_email(email)
        if customer is None:
            customer = Customer(email=email, order_count=0, lifetime_spend=ZERO)
            db.session.add(customer)

        if order.customer_name and order.customer_name != email:
            first, last = split_name(order.customer_name)
            customer.name = order.customer_name
            customer.first_name = first
            customer.last_name = last
        address = order.shipping_address or {}
        if address.get("address_line1"):
            customer.shipping_address = dict(address)
        if address.get("phone"):
            customer.phone = address["phone"]

        email_match = func.lower(Order.customer_email) == email
        customer.order_count = db.session.query(func.count(Order.id)).filter(email_match).scalar() or 0
        spend = (
            db.session.query(func.coalesce(func.sum(Order.total_amount), 0))
            .filter(email_match, Order.status == ORDER_STATUS_PAID)
            .scalar()
        )
        customer.lifetime_spend = to_decimal(spend) or ZERO
        customer.last_order_number = order.order_number
        customer.last_order_date = order.created_at
        db.session.flush()

        current = db.session.get(Order, order.id)
        if current.customer_id != customer.id:
            current.customer_id = customer.id
        db.session.commit()
        return customer.id

    customer_id = run_with_retry(_op)
    return {"customer_id": customer_id}
