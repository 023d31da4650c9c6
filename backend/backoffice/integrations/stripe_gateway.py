# Overview: Stripe collaborator; checkout sessions, line items, payment intents, refunds and webhook verification.

"""
Payment gateway.

Built once per process from IntegrationSettings and handed to services
explicitly. Every call passes the API key per request and returns plain dicts
(StripeObject -> dict) so services and tests never depend on Stripe types.
Amounts at this boundary are always integer minor units.

Stripe failures (API errors, network errors, timeouts) surface as
PaymentGatewayError.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import stripe

from ..validation import ConfigurationError


class PaymentGatewayError(Exception):
    pass


class WebhookSignatureError(PaymentGatewayError):
    pass


def to_plain(obj: Any) -> Any:
    """StripeObject (or list of them) -> plain dicts/lists."""
    if obj is None:
        return None
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, Mapping):
        return {k: to_plain(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_plain(v) for v in obj]
    return obj


class StripeGateway:
    LINE_ITEM_PAGE_SIZE = 100

    def __init__(
        self,
        secret_key: str | None,
        *,
        success_url: str = "",
        cancel_url: str = "",
        timeout_seconds: float = 20.0,
    ):
        if not secret_key:
            raise ConfigurationError("STRIPE_SECRET_KEY is not configured")
        self.secret_key = secret_key
        self.success_url = success_url
        self.cancel_url = cancel_url
        self.timeout_seconds = timeout_seconds
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout_seconds)

    @classmethod
    def from_settings(cls, settings) -> "StripeGateway":
        return cls(
            settings.stripe_secret_key,
            success_url=settings.checkout_success_url,
            cancel_url=settings.checkout_cancel_url,
            timeout_seconds=settings.timeout_seconds,
        )

    # -------------------------------------------------------------------------
    # Checkout sessions
    # -------------------------------------------------------------------------

    def create_session(
        self,
        line_items: Sequence[Mapping[str, Any]],
        *,
        metadata: Mapping[str, str] | None = None,
        customer_email: str | None = None,
        shipping_options: Sequence[Mapping[str, Any]] | None = None,
    ) -> dict:
        params: dict[str, Any] = {
            "mode": "payment",
            "line_items": list(line_items),
            "success_url": self.success_url,
            "cancel_url": self.cancel_url,
            "metadata": dict(metadata or {}),
        }
        if customer_email:
            params["customer_email"] = customer_email
        if shipping_options:
            params["shipping_options"] = list(shipping_options)
            params["shipping_address_collection"] = {"allowed_countries": ["US", "CA"]}
        try:
            session = stripe.checkout.Session.create(api_key=self.secret_key, **params)
        except stripe.StripeError as exc:
            raise PaymentGatewayError(f"Failed to create checkout session: {exc}") from exc
        return {"id": session["id"], "url": session.get("url")}

    def retrieve_session(self, session_id: str) -> dict:
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.secret_key)
        except stripe.StripeError as exc:
            raise PaymentGatewayError(f"Failed to retrieve checkout session {session_id}: {exc}") from exc
        return to_plain(session)

    def list_line_items(self, session_id: str) -> list[dict]:
        try:
            page = stripe.checkout.Session.list_line_items(
                session_id,
                api_key=self.secret_key,
                limit=self.LINE_ITEM_PAGE_SIZE,
                expand=["data.price.product"],
            )
            return [to_plain(item) for item in page.auto_paging_iter()]
        except stripe.StripeError as exc:
            raise PaymentGatewayError(f"Failed to list line items for {session_id}: {exc}") from exc

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    def retrieve_payment_intent(self, payment_intent_id: str) -> dict:
        try:
            intent = stripe.PaymentIntent.retrieve(
                payment_intent_id,
                api_key=self.secret_key,
                expand=["latest_charge"],
            )
        except stripe.StripeError as exc:
            raise PaymentGatewayError(f"Failed to retrieve payment intent {payment_intent_id}: {exc}") from exc
        return to_plain(intent)

    def retrieve_shipping_rate(self, shipping_rate_id: str) -> dict:
        try:
            rate = stripe.ShippingRate.retrieve(shipping_rate_id, api_key=self.secret_key)
        except stripe.StripeError as exc:
            raise PaymentGatewayError(f"Failed to retrieve shipping rate {shipping_rate_id}: {exc}") from exc
        return to_plain(rate)

    def create_refund(
        self,
        *,
        payment_intent: str | None = None,
        charge: str | None = None,
        amount: int | None = None,
        reason: str | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> dict:
        if not payment_intent and not charge:
            raise PaymentGatewayError("A payment intent or charge is required to refund")
        params: dict[str, Any] = {"metadata": dict(metadata or {})}
        if payment_intent:
            params["payment_intent"] = payment_intent
        else:
            params["charge"] = charge
        if amount is not None:
            params["amount"] = int(amount)
        if reason:
            params["reason"] = reason
        try:
            refund = stripe.Refund.create(api_key=self.secret_key, **params)
        except stripe.StripeError as exc:
            raise PaymentGatewayError(f"Refund failed: {exc}") from exc
        return to_plain(refund)


def construct_webhook_event(payload: bytes, signature: str | None, secret: str | None) -> dict:
    """
    Verify a webhook delivery and return the event as a dict.

    Only the signing secret is needed, so webhooks verify even on a process
    that has no API key configured.
    """
    if not secret:
        raise ConfigurationError("STRIPE_WEBHOOK_SECRET is not configured")
    try:
        event = stripe.Webhook.construct_event(payload, signature or "", secret)
    except (ValueError, stripe.SignatureVerificationError) as exc:
        raise WebhookSignatureError(f"Invalid webhook payload: {exc}") from exc
    return to_plain(event)
