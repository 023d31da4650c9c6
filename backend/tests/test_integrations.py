# Overview: Pytest coverage for the ShipStation HTTP client and the Flask CLI commands.

import base64
import json

import httpx
import pytest

from backoffice.integrations.shipstation import FulfillmentProviderError, ShipStationClient
from backoffice.integrations.stripe_gateway import to_plain
from backoffice.models import Order, Product
from backoffice.validation import ConfigurationError

from fakes import BRAKE_KIT_SESSION_ID, seed_brake_kit_checkout


def _client(handler):
    return ShipStationClient(
        "key",
        "secret",
        base_url="https://ssapi.test/",
        transport=httpx.MockTransport(handler),
    )


class TestShipStationClient:
    def test_create_order_posts_json_with_basic_auth(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"orderId": 55, "orderNumber": "ORD-1"})

        result = _client(handler).create_order({"orderNumber": "ORD-1"})

        expected_auth = "Basic " + base64.b64encode(b"key:secret").decode()
        assert result == {"orderId": 55, "orderNumber": "ORD-1"}
        assert seen["url"] == "https://ssapi.test/orders/createorder"
        assert seen["auth"] == expected_auth
        assert seen["body"] == {"orderNumber": "ORD-1"}

    def test_create_label_path(self):
        def handler(request):
            assert request.url.path == "/orders/createlabelfororder"
            return httpx.Response(200, json={"shipmentId": 1, "trackingNumber": "T"})

        assert _client(handler).create_label({"orderId": 1})["trackingNumber"] == "T"

    def test_error_status_raises(self):
        def handler(request):
            return httpx.Response(400, json={"Message": "The request is invalid."})

        with pytest.raises(FulfillmentProviderError) as exc_info:
            _client(handler).create_order({})

        assert exc_info.value.status_code == 400
        assert exc_info.value.body == {"Message": "The request is invalid."}

    def test_non_json_error_body(self):
        def handler(request):
            return httpx.Response(502, text="Bad gateway")

        with pytest.raises(FulfillmentProviderError) as exc_info:
            _client(handler).create_order({})

        assert exc_info.value.body == "Bad gateway"

    def test_network_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(FulfillmentProviderError):
            _client(handler).create_order({})

    def test_missing_credentials(self):
        with pytest.raises(ConfigurationError):
            ShipStationClient("key", None)


class TestStripePlainConversion:
    def test_nested_mappings_and_lists(self):
        value = {"a": [{"b": 1}], "c": None}

        assert to_plain(value) == {"a": [{"b": 1}], "c": None}
        assert to_plain(None) is None


class TestCli:
    """Flask CLI commands run against the same app and collaborators."""

    def test_reprocess_command(self, app, gateway, db_session):
        seed_brake_kit_checkout(gateway)
        runner = app.test_cli_runner()

        result = runner.invoke(args=["orders", "reprocess", BRAKE_KIT_SESSION_ID])

        assert result.exit_code == 0, result.output
        assert "PASS Created order ORD-345678" in result.output
        assert db_session.query(Order).count() == 1

    def test_reprocess_unknown_session_fails(self, app, gateway, db_session):
        result = app.test_cli_runner().invoke(args=["orders", "reprocess", "cs_test_missing"])

        assert result.exit_code != 0
        assert "cs_test_missing" in result.output

    def test_show_unknown_order(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["orders", "show", "ORD-000000"])

        assert result.exit_code != 0
        assert "not found" in result.output

    def test_sync_fulfillment_command(self, app, gateway, shipstation, db_session):
        seed_brake_kit_checkout(gateway)
        runner = app.test_cli_runner()
        runner.invoke(args=["orders", "reprocess", BRAKE_KIT_SESSION_ID])
        order_id = db_session.query(Order.id).scalar()

        result = runner.invoke(args=["orders", "sync-fulfillment", str(order_id)])

        assert result.exit_code == 0, result.output
        assert "ShipStation order 9001" in result.output

    def test_catalog_import_command(self, app, db_session, tmp_path):
        export = tmp_path / "products.json"
        export.write_text(json.dumps([
            {"title": "Brake Kit", "sku": "BRK-001", "price": 25.01, "shipping_weight": 4},
            {"sku": "NO-TITLE"},
        ]))

        result = app.test_cli_runner().invoke(args=["catalog", "import", str(export)])

        assert result.exit_code == 0, result.output
        assert "1 created, 0 updated" in result.output
        assert "WARN  Record 1: title is required" in result.output
        assert db_session.query(Product).filter_by(sku="BRK-001").count() == 1
