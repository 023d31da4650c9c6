# Overview: Service-layer operations for packing slips; attaches the slip reference and renders its JSON view.

from __future__ import annotations

from ..extensions import db
from ..models import Order
from ..money import format_amount
from ..time_utils import to_utc_z
from .concurrency import run_with_retry


def packing_slip_url_for(order: Order, public_base_url: str) -> str:
    return f"{public_base_url.rstrip('/')}/api/orders/{order.id}/packing-slip"


def attach_packing_slip(order: Order, public_base_url: str) -> str | None:
    """Store the slip reference once; returns None when the order already has one."""
    if order.packing_slip_url:
        return None

    url = packing_slip_url_for(order, public_base_url)

    def _op():
        current = db.session.get(Order, order.id)
        if current.packing_slip_url:
            return None
        current.packing_slip_url = url
        db.session.commit()
        return url

    return run_with_retry(_op)


def build_packing_slip(order: Order) -> dict:
    address = order.shipping_address or {}
    items = []
    for item in order.cart or []:
        items.append({
            "name": item.get("name") or item.get("product_name") or "Item",
            "sku": item.get("sku"),
            "quantity": item.get("quantity") or 1,
            "options": item.get("option_summary"),
            "upgrades": list(item.get("upgrades") or []),
        })

    service = order.selected_service or {}
    return {
        "order_number": order.order_number,
        "order_date": to_utc_z(order.created_at),
        "customer_name": order.customer_name,
        "customer_email": order.customer_email,
        "ship_to": {
            "name": address.get("name") or order.customer_name,
            "address_line1": address.get("address_line1"),
            "address_line2": address.get("address_line2"),
            "city": address.get("city"),
            "state": address.get("state"),
            "postal_code": address.get("postal_code"),
            "country": address.get("country"),
            "phone": address.get("phone"),
        },
        "items": items,
        "shipping": {
            "carrier": order.shipping_carrier or service.get("carrier"),
            "service": order.shipping_service_name or service.get("service"),
            "weight": order.weight,
            "dimensions": order.dimensions,
            "tracking_number": order.tracking_number,
        },
        "totals": {
            "subtotal": format_amount(order.amount_subtotal),
            "tax": format_amount(order.amount_tax),
            "shipping": format_amount(order.amount_shipping),
            "total": format_amount(order.total_amount),
            "currency": (order.currency or "usd").upper(),
        },
    }
