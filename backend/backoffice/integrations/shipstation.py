# Overview: ShipStation collaborator; creates fulfillment orders and purchases labels over HTTP.

from __future__ import annotations

from typing import Any, Mapping

import httpx

from ..validation import ConfigurationError


class FulfillmentProviderError(Exception):
    """ShipStation rejected a request or could not be reached."""

    def __init__(self, message: str, *, status_code: int | None = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ShipStationClient:
    """
    Thin JSON client for the ShipStation v1 API.

    Authentication is HTTP basic (API key / secret). A custom `transport`
    can be injected (httpx.MockTransport in tests).
    """

    CREATE_ORDER_PATH = "/orders/createorder"
    CREATE_LABEL_PATH = "/orders/createlabelfororder"

    def __init__(
        self,
        api_key: str | None,
        api_secret: str | None,
        *,
        base_url: str = "https://ssapi.shipstation.com",
        timeout_seconds: float = 20.0,
        transport: httpx.BaseTransport | None = None,
    ):
        if not api_key or not api_secret:
            raise ConfigurationError(
                "Missing ShipStation credentials (set SHIPSTATION_API_KEY and SHIPSTATION_API_SECRET)"
            )
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            auth=(api_key, api_secret),
            timeout=timeout_seconds,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings, *, transport: httpx.BaseTransport | None = None) -> "ShipStationClient":
        return cls(
            settings.shipstation_api_key,
            settings.shipstation_api_secret,
            base_url=settings.shipstation_api_base,
            timeout_seconds=settings.timeout_seconds,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _post(self, path: str, payload: Mapping[str, Any]) -> dict:
        try:
            response = self._client.post(path, json=dict(payload))
        except httpx.HTTPError as exc:
            raise FulfillmentProviderError(f"ShipStation request to {path} failed: {exc}") from exc

        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = response.text

        if response.is_error:
            snippet = data[:200] if isinstance(data, str) else data
            raise FulfillmentProviderError(
                f"ShipStation request failed ({response.status_code}) {snippet}",
                status_code=response.status_code,
                body=data,
            )
        return data if isinstance(data, dict) else {}

    def create_order(self, payload: Mapping[str, Any]) -> dict:
        return self._post(self.CREATE_ORDER_PATH, payload)

    def create_label(self, payload: Mapping[str, Any]) -> dict:
        return self._post(self.CREATE_LABEL_PATH, payload)
