# Overview: Pytest coverage for cart validation and checkout session creation endpoints.

"""
Checkout Tests

Covers:
- Catalog price ids are reused when the cart price agrees with the catalog
- Overridden prices and unmatched items are billed through price_data
- Upgrades are billed as one extra line
- Carts with missing required selections are refused (409)
"""

import pytest

from backoffice.services.cart_item_service import map_line_item
from backoffice.services.catalog_service import enrich_cart_items
from backoffice.services.checkout_service import CheckoutValidationError, create_checkout_session, validate_cart
from backoffice.validation import ValidationError

from fakes import make_line_item


class TestValidateCart:
    def test_empty_cart_is_rejected(self, db_session):
        with pytest.raises(ValidationError):
            validate_cart([])

    def test_oversized_cart_is_rejected(self, db_session):
        with pytest.raises(ValidationError):
            validate_cart([{"sku": "X", "price": 1}] * 101)

    def test_unmatched_item_without_price(self, db_session):
        cart = validate_cart([{"name": "Mystery"}])

        assert cart.is_ready is False
        assert cart.issues[0]["issues"] == ["Missing price for Mystery"]

    def test_catalog_item_is_ready(self, brake_kit):
        cart = validate_cart([{"sku": "BRK-001", "quantity": 2}])

        assert cart.is_ready is True
        assert cart.items[0].product_ref == "product-brk-001"


class TestCreateCheckoutSession:
    def test_catalog_price_id_is_reused(self, brake_kit, gateway):
        session = create_checkout_session([{"sku": "BRK-001", "quantity": 2}], gateway=gateway)

        sent = gateway.created_sessions[0]
        assert session["id"] == sent["id"]
        assert sent["line_items"] == [{"price": "price_brk", "quantity": 2}]

    def test_overridden_price_uses_price_data(self, brake_kit, gateway):
        create_checkout_session(
            [{"sku": "BRK-001", "price": 30, "options": {"Rotor": "Drilled"}}],
            gateway=gateway,
        )

        line = gateway.created_sessions[0]["line_items"][0]
        assert line["price_data"]["unit_amount"] == 3000
        assert line["price_data"]["currency"] == "usd"
        assert line["price_data"]["product_data"]["metadata"]["sku"] == "BRK-001"
        assert line["price_data"]["product_data"]["metadata"]["option_summary"] == "Rotor: Drilled"

    def test_upgrades_become_their_own_line(self, db_session, gateway):
        create_checkout_session(
            [{"name": "Custom Kit", "price": 10, "upgrades": ["Pads"], "upgrades_total": 4.5}],
            gateway=gateway,
        )

        lines = gateway.created_sessions[0]["line_items"]
        assert len(lines) == 2
        assert lines[1]["price_data"]["unit_amount"] == 450
        assert lines[1]["price_data"]["product_data"]["name"] == "Upgrades: Pads"

    def test_customer_email_is_copied_into_metadata(self, brake_kit, gateway):
        create_checkout_session(
            [{"sku": "BRK-001"}],
            gateway=gateway,
            customer_email="ada@example.com",
            metadata={"user_id": 42, "blank": ""},
        )

        sent = gateway.created_sessions[0]
        assert sent["metadata"] == {"user_id": "42", "customer_email": "ada@example.com"}
        assert sent["customer_email"] == "ada@example.com"

    def test_missing_selection_blocks_session(self, sized_tee, gateway):
        with pytest.raises(CheckoutValidationError) as exc_info:
            create_checkout_session([{"sku": "TEE-1"}], gateway=gateway)

        assert exc_info.value.issues[0]["issues"] == [
            "Missing selection for Size",
            "Missing customization: Name on back",
        ]
        assert gateway.created_sessions == []


class TestCheckoutRoutes:
    def test_create_session_route(self, client, brake_kit, gateway):
        response = client.post("/api/checkout/sessions", json={"items": [{"sku": "BRK-001"}]})

        assert response.status_code == 201
        assert response.get_json()["url"].startswith("https://checkout.stripe.test/")

    def test_incomplete_cart_returns_409(self, client, sized_tee, gateway):
        response = client.post(
            "/api/checkout/sessions",
            json={"items": [{"sku": "TEE-1", "options": {"Size": "M"}}]},
        )

        assert response.status_code == 409
        body = response.get_json()
        assert body["issues"][0]["issues"] == ["Missing customization: Name on back"]

    def test_complete_cart_passes(self, client, sized_tee, gateway):
        response = client.post(
            "/api/checkout/sessions",
            json={"items": [{"sku": "TEE-1", "options": {"Size": "M"}, "customizations": {"Name on back": "ADA"}}]},
        )

        assert response.status_code == 201

    def test_empty_items_returns_400(self, client, gateway):
        response = client.post("/api/checkout/sessions", json={"items": []})

        assert response.status_code == 400

    def test_bad_metadata_returns_400(self, client, gateway):
        response = client.post("/api/checkout/sessions", json={"items": [{"sku": "X"}], "metadata": ["no"]})

        assert response.status_code == 400

    def test_unconfigured_stripe_returns_503(self, client, collaborators, brake_kit):
        collaborators.gateway = None

        response = client.post("/api/checkout/sessions", json={"items": [{"sku": "BRK-001"}]})

        assert response.status_code == 503

    def test_validate_route_reports_issues(self, client, sized_tee):
        response = client.post("/api/checkout/validate", json={"items": [{"sku": "TEE-1"}]})

        body = response.get_json()
        assert response.status_code == 200
        assert body["ready"] is False
        assert body["items"][0]["validation_issues"] == [
            "Missing selection for Size",
            "Missing customization: Name on back",
        ]


class TestCheckoutRoundTrip:
    """Product metadata written at checkout is read back when the session is reconciled."""

    def test_selections_survive_into_the_paid_line_item(self, sized_tee, gateway):
        create_checkout_session(
            [{"sku": "TEE-1", "options": {"Size": "Large"}, "customizations": {"Name on back": "ADA"}}],
            gateway=gateway,
        )
        sent = gateway.created_sessions[0]["line_items"][0]["price_data"]
        line_item = make_line_item(
            "li_tee",
            name=sent["product_data"]["name"],
            unit_amount=sent["unit_amount"],
            product_metadata=sent["product_data"]["metadata"],
        )

        item = map_line_item(line_item)
        result = enrich_cart_items([item])

        assert item.option_details == ["Size: Large"]
        assert item.customizations == ["Name on back: ADA"]
        assert result.items[0].product_ref == "product-tee"
        assert result.items[0].validation_issues == []

    def test_configured_catalog_item_skips_price_id(self, brake_kit, gateway):
        create_checkout_session([{"sku": "BRK-001", "options": {"Rotor": "Drilled"}}], gateway=gateway)

        line = gateway.created_sessions[0]["line_items"][0]
        assert "price" not in line
        assert line["price_data"]["product_data"]["metadata"]["option_summary"] == "Rotor: Drilled"
