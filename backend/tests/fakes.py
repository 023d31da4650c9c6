"""
In-memory stand-ins for the Stripe and ShipStation collaborators, plus
builders for the Stripe objects the reconciler reads.
"""

import copy
import itertools

from backoffice.integrations.shipstation import FulfillmentProviderError
from backoffice.integrations.stripe_gateway import PaymentGatewayError


class FakeStripeGateway:
    def __init__(self):
        self.sessions = {}
        self.line_items = {}
        self.payment_intents = {}
        self.shipping_rates = {}
        self.created_sessions = []
        self.refunds = []
        self.calls = []
        self._ids = itertools.count(1)

    def add_session(self, session, line_items=(), payment_intent=None):
        self.sessions[session["id"]] = copy.deepcopy(session)
        self.line_items[session["id"]] = copy.deepcopy(list(line_items))
        if payment_intent is not None:
            self.payment_intents[payment_intent["id"]] = copy.deepcopy(payment_intent)

    def create_session(self, line_items, *, metadata=None, customer_email=None, shipping_options=None):
        self.calls.append(("create_session", None))
        session_id = f"cs_test_fake{next(self._ids):04d}"
        self.created_sessions.append({
            "id": session_id,
            "line_items": copy.deepcopy(list(line_items)),
            "metadata": dict(metadata or {}),
            "customer_email": customer_email,
            "shipping_options": shipping_options,
        })
        return {"id": session_id, "url": f"https://checkout.stripe.test/{session_id}"}

    def retrieve_session(self, session_id):
        self.calls.append(("retrieve_session", session_id))
        if session_id not in self.sessions:
            raise PaymentGatewayError(f"No such checkout session: {session_id}")
        return copy.deepcopy(self.sessions[session_id])

    def list_line_items(self, session_id):
        self.calls.append(("list_line_items", session_id))
        return copy.deepcopy(self.line_items.get(session_id, []))

    def retrieve_payment_intent(self, payment_intent_id):
        self.calls.append(("retrieve_payment_intent", payment_intent_id))
        if payment_intent_id not in self.payment_intents:
            raise PaymentGatewayError(f"No such payment intent: {payment_intent_id}")
        return copy.deepcopy(self.payment_intents[payment_intent_id])

    def retrieve_shipping_rate(self, shipping_rate_id):
        self.calls.append(("retrieve_shipping_rate", shipping_rate_id))
        if shipping_rate_id not in self.shipping_rates:
            raise PaymentGatewayError(f"No such shipping rate: {shipping_rate_id}")
        return copy.deepcopy(self.shipping_rates[shipping_rate_id])

    def create_refund(self, *, payment_intent=None, charge=None, amount=None, reason=None, metadata=None):
        refund = {
            "id": f"re_{next(self._ids):04d}",
            "object": "refund",
            "payment_intent": payment_intent,
            "charge": charge,
            "reason": reason,
            "status": "succeeded",
            "metadata": dict(metadata or {}),
        }
        if amount is not None:
            refund["amount"] = amount
        self.refunds.append(refund)
        return dict(refund)


class FakeShipStationClient:
    def __init__(self, *, fail_orders=False, fail_labels=False):
        self.orders = []
        self.labels = []
        self.fail_orders = fail_orders
        self.fail_labels = fail_labels
        self._ids = itertools.count(9001)

    def create_order(self, payload):
        if self.fail_orders:
            raise FulfillmentProviderError("ShipStation request failed (500)", status_code=500, body={})
        self.orders.append(copy.deepcopy(payload))
        return {"orderId": next(self._ids), "orderNumber": payload.get("orderNumber")}

    def create_label(self, payload):
        if self.fail_labels:
            raise FulfillmentProviderError("ShipStation request failed (400)", status_code=400, body={})
        self.labels.append(copy.deepcopy(payload))
        return {
            "shipmentId": 7001,
            "trackingNumber": "1Z999AA10123456784",
            "labelDownload": {"pdf": "https://labels.shipstation.test/7001.pdf"},
        }


# =============================================================================
# Stripe object builders
# =============================================================================

def make_address(**overrides):
    address = {
        "line1": "12 Analytical Way",
        "line2": None,
        "city": "London",
        "state": "CA",
        "postal_code": "94016",
        "country": "US",
    }
    address.update(overrides)
    return address


def make_session(session_id="cs_test_a1B2c3D4e5F6g7H8", **overrides):
    session = {
        "id": session_id,
        "object": "checkout.session",
        "status": "complete",
        "payment_status": "paid",
        "mode": "payment",
        "currency": "usd",
        "amount_subtotal": 7500,
        "amount_total": 8700,
        "total_details": {"amount_tax": 0, "amount_shipping": 1200, "amount_discount": 0},
        "shipping_cost": {"amount_total": 1200, "shipping_rate": "shr_ground"},
        "customer_details": {
            "email": "Ada@Example.com",
            "name": "Ada Lovelace",
            "phone": "+15555550100",
            "address": make_address(),
        },
        "shipping_details": {"name": "Ada Lovelace", "address": make_address()},
        "payment_intent": "pi_123",
        "metadata": {},
        "created": 1760000000,
    }
    session.update(overrides)
    return session


def make_payment_intent(payment_intent_id="pi_123", **overrides):
    intent = {
        "id": payment_intent_id,
        "object": "payment_intent",
        "status": "succeeded",
        "amount_received": 8700,
        "currency": "usd",
        "latest_charge": {
            "id": "ch_123",
            "receipt_url": "https://pay.stripe.test/receipts/ch_123",
            "billing_details": {"email": "ada@example.com", "name": "Ada Lovelace"},
            "payment_method_details": {"card": {"brand": "visa", "last4": "4242"}},
        },
    }
    intent.update(overrides)
    return intent


def make_line_item(line_item_id, *, name, unit_amount, quantity=1, price_id=None, product_id=None,
                   product_metadata=None, line_metadata=None):
    return {
        "id": line_item_id,
        "object": "item",
        "description": name,
        "quantity": quantity,
        "metadata": dict(line_metadata or {}),
        "price": {
            "id": price_id or f"price_{line_item_id}",
            "unit_amount": unit_amount,
            "metadata": {},
            "product": {
                "id": product_id or f"prod_{line_item_id}",
                "name": name,
                "images": [],
                "metadata": dict(product_metadata or {}),
            },
        },
    }


def make_shipping_rate(rate_id="shr_ground", display_name="UPS - Ground", amount=1200, days=5):
    return {
        "id": rate_id,
        "object": "shipping_rate",
        "display_name": display_name,
        "fixed_amount": {"amount": amount, "currency": "usd"},
        "delivery_estimate": {"maximum": {"unit": "business_day", "value": days}},
        "metadata": {},
    }


BRAKE_KIT_SESSION_ID = "cs_test_a1B2c3D4e5F6g7H8"


def seed_brake_kit_checkout(gateway, session_id=BRAKE_KIT_SESSION_ID, **session_overrides):
    """
    Paid session: Brake Kit (BRK-001, $25.01) + Pad Set ($49.99), $12.00 UPS
    Ground shipping, $87.00 total.
    """
    line_items = [
        make_line_item(
            "li_brake",
            name="Brake Kit",
            unit_amount=2501,
            price_id="price_brk_checkout",
            product_metadata={"sku": "BRK-001"},
        ),
        make_line_item("li_pads", name="Pad Set", unit_amount=4999),
    ]
    gateway.add_session(
        make_session(session_id, **session_overrides),
        line_items=line_items,
        payment_intent=make_payment_intent(),
    )
    gateway.shipping_rates["shr_ground"] = make_shipping_rate()
    return session_id
