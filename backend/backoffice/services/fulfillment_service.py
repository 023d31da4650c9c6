# Overview: Service-layer operations for fulfillment; pushes orders to ShipStation and purchases labels.

"""
Fulfillment sync.

WHY: Paid orders must reach the shipping system exactly once, with an address
ShipStation will accept and, where possible, carrier/service codes it knows.

DESIGN:
- sync_order() is idempotent: an order that already has ship_station_order_id
  returns it without calling ShipStation.
- Address problems are hard errors naming the missing ShipStation fields
  (street1, city, state, postalCode, country); nothing is written.
- Carrier/service free text is normalized through fixed substring tables.
  An unmapped combination leaves the code as None: the order is still
  created in ShipStation, but a label cannot be bought automatically.
- Label purchase is optional and never fails sync_order(); its errors are
  logged and dropped.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..integrations.shipstation import FulfillmentProviderError
from ..models import Order
from ..models.orders import FULFILLMENT_AWAITING_SHIPMENT, FULFILLMENT_LABEL_CREATED
from ..money import money_to_float
from ..time_utils import to_utc_z, utcnow
from ..validation import ConfigurationError
from .concurrency import run_with_retry


class FulfillmentValidationError(ValueError):
    def __init__(self, message: str, missing_fields: list[str] | None = None):
        super().__init__(message)
        self.missing_fields = list(missing_fields or [])


# ShipStation field -> stored address key
REQUIRED_ADDRESS_FIELDS = (
    ("street1", "address_line1"),
    ("city", "city"),
    ("state", "state"),
    ("postalCode", "postal_code"),
    ("country", "country"),
)

# Order matters: "usps" contains "ups"
CARRIER_CODES = (
    ("usps", "usps"),
    ("ups", "ups"),
    ("fedex", "fedex"),
    ("dhl", "dhl_express"),
)

# (carrier code, all substrings that must appear, service code); first hit wins
SERVICE_CODES = (
    ("ups", ("next day", "saver"), "ups_next_day_air_saver"),
    ("ups", ("next day",), "ups_next_day_air"),
    ("ups", ("2nd day",), "ups_2nd_day_air"),
    ("ups", ("second day",), "ups_2nd_day_air"),
    ("ups", ("3 day",), "ups_3_day_select"),
    ("ups", ("ground",), "ups_ground"),
    ("fedex", ("express saver",), "fedex_express_saver"),
    ("fedex", ("2day",), "fedex_2day"),
    ("fedex", ("2 day",), "fedex_2day"),
    ("fedex", ("overnight",), "fedex_standard_overnight"),
    ("fedex", ("home",), "fedex_home_delivery"),
    ("fedex", ("ground",), "fedex_ground"),
    ("usps", ("priority", "express"), "usps_priority_mail_express"),
    ("usps", ("priority",), "usps_priority_mail"),
    ("usps", ("ground advantage",), "usps_ground_advantage"),
    ("usps", ("first class",), "usps_first_class_mail"),
    ("dhl_express", ("express",), "dhl_express_worldwide"),
)

KNOWN_SERVICE_CODES = {code for _, _, code in SERVICE_CODES}

WEIGHT_UNITS = {
    "pound": "pounds", "pounds": "pounds", "lb": "pounds", "lbs": "pounds",
    "ounce": "ounces", "ounces": "ounces", "oz": "ounces",
    "gram": "grams", "grams": "grams", "g": "grams",
    "kilogram": "kilograms", "kilograms": "kilograms", "kg": "kilograms",
}


# =============================================================================
# Normalization
# =============================================================================

def _text(value: Any) -> str:
    return str(value or "").strip().lower().replace("_", " ").replace("-", " ")


def normalize_carrier_code(*texts: str | None) -> str | None:
    for text in texts:
        lowered = _text(text)
        if not lowered:
            continue
        for needle, code in CARRIER_CODES:
            if needle in lowered:
                return code
    return None


def normalize_service_code(carrier_code: str | None, service_text: str | None) -> str | None:
    """('fedex', 'FedEx Ground') -> 'fedex_ground'; unmapped -> None."""
    raw = (service_text or "").strip().lower()
    if raw in KNOWN_SERVICE_CODES:
        return raw
    lowered = _text(service_text)
    if not carrier_code or not lowered:
        return None
    for carrier, needles, code in SERVICE_CODES:
        if carrier == carrier_code and all(n in lowered for n in needles):
            return code
    return None


def resolve_shipping_codes(order: Order) -> tuple[str | None, str | None]:
    service = order.selected_service or {}
    service_text = service.get("service_code") or service.get("service") or order.shipping_service_name
    carrier_code = normalize_carrier_code(
        order.shipping_carrier,
        service.get("carrier"),
        service_text,
        service.get("service"),
    )
    service_code = normalize_service_code(carrier_code, service_text)
    if service_code is None and service.get("service"):
        service_code = normalize_service_code(carrier_code, service.get("service"))
    return carrier_code, service_code


def normalize_weight(weight: Mapping[str, Any] | None) -> dict | None:
    weight = weight or {}
    value = weight.get("value")
    if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
        return None
    unit = WEIGHT_UNITS.get(str(weight.get("unit") or "pound").lower(), "pounds")
    return {"value": value, "units": unit}


def normalize_dimensions(dimensions: Mapping[str, Any] | None) -> dict | None:
    if not dimensions:
        return None
    return {
        "units": "inches",
        "length": float(dimensions.get("length") or 0),
        "width": float(dimensions.get("width") or 0),
        "height": float(dimensions.get("height") or 0),
    }


# =============================================================================
# Payload
# =============================================================================

def missing_address_fields(address: Mapping[str, Any] | None) -> list[str]:
    address = address or {}
    return [
        remote for remote, local in REQUIRED_ADDRESS_FIELDS
        if not str(address.get(local) or "").strip()
    ]


def to_shipstation_address(order: Order) -> dict:
    address = order.shipping_address or {}
    return {
        "name": address.get("name") or order.customer_name or address.get("email") or "Customer",
        "street1": address.get("address_line1") or "",
        "street2": address.get("address_line2") or "",
        "city": address.get("city") or "",
        "state": address.get("state") or "",
        "postalCode": address.get("postal_code") or "",
        "country": (address.get("country") or "US").upper(),
        "phone": address.get("phone") or "",
        "email": address.get("email") or order.customer_email or "",
    }


def build_line_items(order: Order) -> list[dict]:
    cart = order.cart or []
    if not cart:
        return [{
            "lineItemKey": f"{order.id}-line-0",
            "sku": None,
            "name": "Order Item",
            "quantity": 1,
            "unitPrice": money_to_float(order.total_amount or order.amount_subtotal),
        }]
    items = []
    for idx, item in enumerate(cart):
        items.append({
            "lineItemKey": item.get("line_item_id") or f"{order.id}-line-{idx}",
            "sku": item.get("sku"),
            "name": item.get("name") or item.get("sku") or "Line Item",
            "quantity": int(item.get("quantity") or 1),
            "unitPrice": item.get("price"),
        })
    return items


def build_order_payload(order: Order, carrier_code: str | None, service_code: str | None) -> dict:
    ship_to = to_shipstation_address(order)
    service = order.selected_service or {}
    order_date = to_utc_z(order.created_at) or to_utc_z(utcnow())
    return {
        "orderNumber": order.order_number,
        "orderKey": order.stripe_session_id,
        "orderDate": order_date,
        "paymentDate": order_date,
        "orderStatus": "awaiting_shipment",
        "customerEmail": order.customer_email,
        "customerUsername": order.customer_email,
        "amountPaid": money_to_float(order.total_amount),
        "taxAmount": money_to_float(order.amount_tax),
        "shippingAmount": money_to_float(order.amount_shipping),
        "requestedShippingService": service.get("service") or service.get("service_code"),
        "carrierCode": carrier_code,
        "serviceCode": service_code,
        "billTo": ship_to,
        "shipTo": ship_to,
        "items": build_line_items(order),
        "weight": normalize_weight(order.weight),
        "dimensions": normalize_dimensions(order.dimensions),
        "internalNotes": order.fulfillment_notes or "",
        "advancedOptions": {
            "customField1": str(order.id),
            "customField2": order.stripe_session_id,
        },
    }


# =============================================================================
# Sync
# =============================================================================

@dataclass(frozen=True)
class LabelResult:
    shipment_id: str | None
    tracking_number: str | None
    label_url: str | None

    def to_dict(self) -> dict:
        return {
            "shipment_id": self.shipment_id,
            "tracking_number": self.tracking_number,
            "label_url": self.label_url,
        }


def sync_order(order: Order, client, *, purchase_label_after: bool = False) -> str:
    """Create the ShipStation order once; returns the ShipStation order id."""
    if order.ship_station_order_id:
        return order.ship_station_order_id
    if client is None:
        raise ConfigurationError(
            "Missing ShipStation credentials (set SHIPSTATION_API_KEY and SHIPSTATION_API_SECRET)"
        )

    missing = missing_address_fields(order.shipping_address)
    if missing:
        raise FulfillmentValidationError(
            f"Order {order.order_number} shipping address is missing required fields: {', '.join(missing)}",
            missing_fields=missing,
        )

    carrier_code, service_code = resolve_shipping_codes(order)
    response = client.create_order(build_order_payload(order, carrier_code, service_code))
    remote_id = response.get("orderId") or response.get("orderKey")
    if not remote_id:
        raise FulfillmentProviderError("ShipStation did not return an order id", body=response)
    remote_id = str(remote_id)

    def _persist():
        current = db.session.get(Order, order.id)
        if current.ship_station_order_id:
            return current.ship_station_order_id
        current.ship_station_order_id = remote_id
        current.fulfillment_status = FULFILLMENT_AWAITING_SHIPMENT
        db.session.commit()
        return remote_id

    shipment_id = run_with_retry(_persist)
    current_app.logger.info("Order %s synced to ShipStation as %s", order.order_number, shipment_id)

    if purchase_label_after:
        if carrier_code and service_code:
            try:
                purchase_label(order, client)
            except (FulfillmentProviderError, FulfillmentValidationError, SQLAlchemyError):
                db.session.rollback()
                current_app.logger.warning("Label purchase failed for order %s", order.order_number, exc_info=True)
        else:
            current_app.logger.warning(
                "Order %s has no mappable carrier/service; label needs manual purchase", order.order_number
            )

    return shipment_id


def purchase_label(order: Order, client) -> LabelResult:
    if client is None:
        raise ConfigurationError("ShipStation is not configured")
    if not order.ship_station_order_id:
        raise FulfillmentValidationError(f"Order {order.order_number} has not been synced to ShipStation")
    carrier_code, service_code = resolve_shipping_codes(order)
    missing = [name for name, value in (("carrierCode", carrier_code), ("serviceCode", service_code)) if not value]
    if missing:
        raise FulfillmentValidationError(
            f"Cannot purchase a label for {order.order_number}: unresolved {', '.join(missing)}",
            missing_fields=missing,
        )

    payload = {
        "orderId": int(order.ship_station_order_id) if order.ship_station_order_id.isdigit() else order.ship_station_order_id,
        "carrierCode": carrier_code,
        "serviceCode": service_code,
        "packageCode": "package",
        "confirmation": "none",
        "shipDate": utcnow().date().isoformat(),
        "weight": normalize_weight(order.weight),
        "dimensions": normalize_dimensions(order.dimensions),
        "testLabel": False,
    }
    response = client.create_label(payload)
    download = response.get("labelDownload") if isinstance(response.get("labelDownload"), Mapping) else {}
    result = LabelResult(
        shipment_id=str(response["shipmentId"]) if response.get("shipmentId") else None,
        tracking_number=response.get("trackingNumber"),
        label_url=response.get("labelUrl") or download.get("pdf") or download.get("href"),
    )

    def _persist():
        current = db.session.get(Order, order.id)
        current.tracking_number = result.tracking_number or current.tracking_number
        current.shipping_label_url = result.label_url or current.shipping_label_url
        current.fulfillment_status = FULFILLMENT_LABEL_CREATED
        db.session.commit()

    run_with_retry(_persist)
    current_app.logger.info("Label created for order %s (tracking %s)", order.order_number, result.tracking_number)
    return result
