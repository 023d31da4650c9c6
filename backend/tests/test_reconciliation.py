# Overview: Pytest coverage for checkout session reconciliation into canonical orders.

"""
Order Reconciliation Tests

Proves that:
1. A paid session produces one enriched order with shipping metrics
2. Reprocessing the same session patches the row instead of duplicating it
3. Refund and fulfillment state survive later passes
4. Post-commit tasks (packing slip, customer, invoice, fulfillment) are isolated
5. Stripe failures propagate, catalog failures degrade
"""

import re

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from backoffice.integrations.stripe_gateway import PaymentGatewayError
from backoffice.models import Customer, Invoice, Order
from backoffice.services import catalog_service, order_service
from backoffice.services.order_service import (
    ReconciliationError,
    map_order_status,
    map_payment_status,
    reconcile_session,
)
from backoffice.services.refund_service import apply_refund_to_order
from backoffice.validation import ConfigurationError, ValidationError

from fakes import BRAKE_KIT_SESSION_ID, make_payment_intent, seed_brake_kit_checkout


def _reconcile(gateway, settings, session_id=BRAKE_KIT_SESSION_ID, **kwargs):
    return reconcile_session(session_id, gateway=gateway, settings=settings, **kwargs)


def _task(result, name):
    return next(t for t in result.tasks if t.name == name)


class TestStatusMapping:
    def test_expired_session_wins(self):
        assert map_payment_status("expired", "succeeded", "paid") == "expired"

    def test_payment_intent_status_first(self):
        assert map_payment_status("complete", "canceled", "unpaid") == "cancelled"

    def test_session_payment_status_next(self):
        assert map_payment_status("complete", None, "paid") == "paid"

    def test_unknown_is_pending(self):
        assert map_payment_status("open", "processing", "unpaid") == "pending"

    def test_complete_session_awaiting_async_payment_is_pending(self):
        assert map_payment_status("complete", "processing", "unpaid") == "pending"

    def test_failed_async_payment_is_cancelled(self):
        assert map_payment_status("complete", "requires_payment_method", "unpaid") == "cancelled"

    def test_free_checkout_is_paid(self):
        assert map_payment_status("complete", None, "no_payment_required") == "paid"

    def test_order_status_table(self):
        assert map_order_status("paid") == "paid"
        assert map_order_status("pending") == "paid"
        assert map_order_status("cancelled") == "cancelled"
        assert map_order_status("refunded") == "cancelled"
        assert map_order_status("partially_refunded") == "paid"
        assert map_order_status("expired") == "expired"


class TestReconcileCreate:
    """First pass over a paid session."""

    def test_brake_kit_session_end_to_end(self, brake_kit, gateway, settings):
        seed_brake_kit_checkout(gateway)

        result = _reconcile(gateway, settings)
        order = result.to_dict()["order"]

        assert result.created is True
        assert re.match(r"^[A-Z]{3}-\d{6}$", order["order_number"])
        assert order["order_number"] == "ORD-345678"
        assert order["stripe_session_id"] == BRAKE_KIT_SESSION_ID
        assert order["status"] == "paid"
        assert order["payment_status"] == "paid"
        assert order["checkout_draft"] is False
        assert order["customer_email"] == "ada@example.com"
        assert order["customer_name"] == "Ada Lovelace"
        assert order["currency"] == "usd"
        assert order["amount_subtotal"] == 75.0
        assert order["amount_shipping"] == 12.0
        assert order["total_amount"] == 87.0
        assert order["payment_intent_id"] == "pi_123"
        assert order["charge_id"] == "ch_123"
        assert order["card_brand"] == "visa"
        assert order["card_last4"] == "4242"
        assert order["webhook_notified"] is True
        assert order["slug"] == "ord-345678"

    def test_cart_is_enriched_from_catalog(self, brake_kit, gateway, settings):
        seed_brake_kit_checkout(gateway)

        order = _reconcile(gateway, settings).order

        assert len(order.cart) == 2
        brake, pads = order.cart
        assert brake["sku"] == "BRK-001"
        assert brake["product_ref"] == "product-brk-001"
        assert brake["price"] == 25.01
        assert brake["line_total"] == 25.01
        assert pads["product_ref"] is None
        assert pads["price"] == 49.99
        assert {"key": "sku", "value": "BRK-001", "source": "product"} in brake["metadata"]

    def test_shipping_metrics_come_from_matched_products(self, brake_kit, gateway, settings):
        seed_brake_kit_checkout(gateway)

        order = _reconcile(gateway, settings).order

        assert order.weight == {"value": 4.0, "unit": "pound"}
        assert order.dimensions == {"length": 10.0, "width": 6.0, "height": 3.0, "unit": "inch"}

    def test_shipping_selection_from_rate(self, brake_kit, gateway, settings):
        seed_brake_kit_checkout(gateway)

        order = _reconcile(gateway, settings).order

        assert order.shipping_carrier == "UPS"
        assert order.shipping_service_name == "Ground"
        assert order.shipping_service_code == "shr_ground"
        assert order.shipping_delivery_days == 5
        # Session created 2025-10-09T08:53:20Z plus five days
        assert order.shipping_estimated_delivery_date == "2025-10-14T08:53:20Z"
        assert order.selected_service["amount"] == 12.0
        assert order.shipping_metadata["shipping_amount"] == "12.00"

    def test_metadata_order_number_is_preferred(self, gateway, settings, db_session):
        seed_brake_kit_checkout(gateway, metadata={"order_number": "ord-777777"})

        order = _reconcile(gateway, settings).order

        assert order.order_number == "ORD-777777"

    def test_colliding_session_digits_get_another_number(self, gateway, settings, db_session):
        db_session.add(Order(stripe_session_id="cs_test_other", order_number="ORD-345678", cart=[]))
        db_session.commit()
        seed_brake_kit_checkout(gateway)

        order = _reconcile(gateway, settings).order

        assert order.order_number != "ORD-345678"
        assert re.match(r"^ORD-\d{6}$", order.order_number)

    def test_expired_session(self, gateway, settings, db_session):
        seed_brake_kit_checkout(gateway, status="expired", payment_status="unpaid")
        gateway.payment_intents["pi_123"] = make_payment_intent(status="requires_payment_method")

        order = _reconcile(gateway, settings).order

        assert order.payment_status == "expired"
        assert order.status == "expired"
        assert order.checkout_draft is True

    def test_async_payment_pending(self, gateway, settings, db_session):
        seed_brake_kit_checkout(gateway, status="open", payment_status="unpaid")
        gateway.payment_intents["pi_123"] = make_payment_intent(status="processing")

        order = _reconcile(gateway, settings).order

        assert order.payment_status == "pending"
        assert order.status == "paid"
        assert order.checkout_draft is True

    def test_completed_session_with_processing_payment_stays_pending(self, gateway, settings, db_session):
        seed_brake_kit_checkout(gateway, status="complete", payment_status="unpaid")
        gateway.payment_intents["pi_123"] = make_payment_intent(status="processing")

        order = _reconcile(gateway, settings).order

        assert order.payment_status == "pending"
        assert order.checkout_draft is True

    def test_failed_async_payment_cancels_order(self, gateway, settings, db_session):
        seed_brake_kit_checkout(gateway, status="complete", payment_status="unpaid")
        gateway.payment_intents["pi_123"] = make_payment_intent(status="requires_payment_method")

        order = _reconcile(gateway, settings).order

        assert order.payment_status == "cancelled"
        assert order.status == "cancelled"
        assert order.checkout_draft is True

    def test_embedded_payment_intent_is_not_refetched(self, gateway, settings, db_session):
        seed_brake_kit_checkout(gateway, payment_intent=make_payment_intent())

        _reconcile(gateway, settings)

        assert not [c for c in gateway.calls if c[0] == "retrieve_payment_intent"]


class TestReconcileIdempotence:
    """Reprocessing converges on one row."""

    def test_second_pass_patches_same_row(self, brake_kit, gateway, settings, db_session):
        seed_brake_kit_checkout(gateway)

        first = _reconcile(gateway, settings)
        first_id, first_number, first_version = first.order.id, first.order.order_number, first.order.version_id
        second = _reconcile(gateway, settings)

        assert second.created is False
        assert second.order.id == first_id
        assert second.order.order_number == first_number
        assert second.order.version_id > first_version
        assert db_session.query(Order).count() == 1

    def test_patch_refreshes_computed_fields(self, brake_kit, gateway, settings, db_session):
        seed_brake_kit_checkout(gateway, status="open", payment_status="unpaid")
        gateway.payment_intents["pi_123"] = make_payment_intent(status="processing")
        assert _reconcile(gateway, settings).order.payment_status == "pending"

        gateway.payment_intents["pi_123"] = make_payment_intent(status="succeeded")
        gateway.sessions[BRAKE_KIT_SESSION_ID].update(status="complete", payment_status="paid")
        order = _reconcile(gateway, settings).order

        assert order.payment_status == "paid"
        assert order.checkout_draft is False

    def test_order_number_is_kept_when_metadata_changes(self, gateway, settings, db_session):
        seed_brake_kit_checkout(gateway)
        number = _reconcile(gateway, settings).order.order_number

        gateway.sessions[BRAKE_KIT_SESSION_ID]["metadata"] = {"order_number": "ORD-999999"}
        order = _reconcile(gateway, settings).order

        assert order.order_number == number

    def test_refund_state_survives_reprocessing(self, brake_kit, gateway, settings, db_session):
        seed_brake_kit_checkout(gateway)
        order = _reconcile(gateway, settings).order
        apply_refund_to_order(order, amount_refunded_cents=8700, refund_id="re_1", refund_status="succeeded")

        order = _reconcile(gateway, settings).order

        assert order.payment_status == "refunded"
        assert order.status == "cancelled"
        assert order.last_refund_id == "re_1"
        assert float(order.amount_refunded) == 87.0

    def test_fulfillment_state_survives_reprocessing(self, brake_kit, gateway, settings, db_session):
        seed_brake_kit_checkout(gateway)
        order = _reconcile(gateway, settings).order
        order.ship_station_order_id = "9001"
        order.tracking_number = "1Z"
        order.fulfillment_status = "label_created"
        order.fulfillment_notes = "Fragile"
        db_session.commit()

        order = _reconcile(gateway, settings).order

        assert order.ship_station_order_id == "9001"
        assert order.tracking_number == "1Z"
        assert order.fulfillment_status == "label_created"
        assert order.fulfillment_notes == "Fragile"

    def test_unresolvable_write_raises(self, gateway, settings, db_session, monkeypatch):
        seed_brake_kit_checkout(gateway)

        def always_conflicts(session_id, order_number, fields):
            raise IntegrityError("INSERT INTO orders", {}, Exception("UNIQUE constraint failed"))

        monkeypatch.setattr(order_service, "_upsert", always_conflicts)

        with pytest.raises(ReconciliationError):
            _reconcile(gateway, settings)


class TestPostCommitTasks:
    """Follow-up work after the upsert."""

    def test_packing_slip_attached_once(self, gateway, settings, db_session):
        seed_brake_kit_checkout(gateway)

        first = _reconcile(gateway, settings)
        second = _reconcile(gateway, settings)

        expected = f"https://backoffice.test/api/orders/{first.order.id}/packing-slip"
        assert first.order.packing_slip_url == expected
        assert _task(first, "packing_slip").status == "ok"
        assert _task(second, "packing_slip").status == "skipped"

    def test_customer_profile_is_synced(self, gateway, settings, db_session):
        seed_brake_kit_checkout(gateway)

        order = _reconcile(gateway, settings).order

        customer = db_session.query(Customer).filter_by(email="ada@example.com").one()
        assert order.customer_id == customer.id
        assert customer.first_name == "Ada"
        assert customer.last_name == "Lovelace"
        assert customer.order_count == 1
        assert float(customer.lifetime_spend) == 87.0
        assert customer.last_order_number == order.order_number

    def test_invoice_linked_by_session(self, gateway, settings, db_session):
        invoice = Invoice(invoice_number="INV-1001", stripe_session_id=BRAKE_KIT_SESSION_ID, status="sent")
        db_session.add(invoice)
        db_session.commit()
        seed_brake_kit_checkout(gateway)

        result = _reconcile(gateway, settings)

        db_session.expire_all()
        invoice = db_session.get(Invoice, invoice.id)
        assert result.order.invoice_id == invoice.id
        assert invoice.order_id == result.order.id
        assert invoice.status == "paid"
        assert invoice.order_number == result.order.order_number

    def test_no_invoice_is_skipped(self, gateway, settings, db_session):
        seed_brake_kit_checkout(gateway)

        result = _reconcile(gateway, settings)

        assert _task(result, "invoice_link").status == "skipped"

    def test_auto_fulfill_syncs_and_buys_label(self, brake_kit, gateway, shipstation, settings):
        seed_brake_kit_checkout(gateway)

        result = _reconcile(gateway, settings, shipstation=shipstation, auto_fulfill=True)

        assert _task(result, "fulfillment").status == "ok"
        assert result.order.ship_station_order_id == "9001"
        assert result.order.fulfillment_status == "label_created"
        assert shipstation.labels[0]["carrierCode"] == "ups"
        assert shipstation.labels[0]["serviceCode"] == "ups_ground"

    def test_failed_task_does_not_undo_order(self, gateway, settings, db_session):
        seed_brake_kit_checkout(gateway)

        result = _reconcile(gateway, settings, shipstation=None, auto_fulfill=True)

        fulfillment = _task(result, "fulfillment")
        assert fulfillment.status == "failed"
        assert "ShipStation" in fulfillment.error
        assert _task(result, "packing_slip").status == "ok"
        assert db_session.query(Order).filter_by(stripe_session_id=BRAKE_KIT_SESSION_ID).count() == 1


class TestReconcileFailures:
    def test_blank_session_id(self, gateway, settings, db_session):
        with pytest.raises(ValidationError):
            _reconcile(gateway, settings, session_id="  ")

    def test_missing_gateway(self, settings, db_session):
        with pytest.raises(ConfigurationError):
            reconcile_session(BRAKE_KIT_SESSION_ID, gateway=None, settings=settings)

    def test_unknown_session_propagates(self, gateway, settings, db_session):
        with pytest.raises(PaymentGatewayError):
            _reconcile(gateway, settings, session_id="cs_test_missing")

        assert db_session.query(Order).count() == 0

    def test_catalog_failure_degrades(self, brake_kit, gateway, settings, monkeypatch):
        def broken_lookup(items):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(catalog_service, "fetch_products_for_cart", broken_lookup)
        seed_brake_kit_checkout(gateway)

        result = _reconcile(gateway, settings)

        assert result.catalog_degraded is True
        assert len(result.order.cart) == 2
        assert result.order.cart[0]["product_ref"] is None
        assert result.order.weight == {"value": 5.0, "unit": "pound"}

    def test_missing_shipping_rate_is_tolerated(self, gateway, settings, db_session):
        seed_brake_kit_checkout(gateway)
        gateway.shipping_rates.clear()

        order = _reconcile(gateway, settings).order

        assert order.amount_shipping is not None
        assert float(order.amount_shipping) == 12.0
        assert order.shipping_carrier is None
