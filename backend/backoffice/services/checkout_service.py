# Overview: Service-layer operations for checkout; validates storefront carts and opens Stripe checkout sessions.

"""
Checkout Service

WHY: A session must never be opened for a cart the catalog says is
incomplete (a required size or engraving text missing). The same enrichment
used by reconciliation decides checkout-readiness here.

LINE ITEM PRICING:
- Matched product with a Stripe price id and no overriding cart price -> `price`
- Otherwise `price_data` with unit_amount in minor units
- upgrades_total is billed as one extra "Upgrades" line so the session total
  equals the sum of cart line totals
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from flask import current_app

from ..money import to_minor_units
from ..validation import ConfigurationError, ValidationError
from .cart_item_service import CartItem, map_raw_cart_item
from .catalog_service import CatalogProductSnapshot, EnrichmentResult, enrich_cart_items
from .metadata_service import coerce_metadata_value


class CheckoutValidationError(Exception):
    """Raised when cart items have unmet catalog requirements."""

    def __init__(self, message: str, issues: list[dict]):
        super().__init__(message)
        self.issues = issues


STRIPE_METADATA_VALUE_LIMIT = 500
MAX_CART_ITEMS = 100


@dataclass
class ValidatedCart:
    enrichment: EnrichmentResult
    issues: list[dict]

    @property
    def items(self) -> list[CartItem]:
        return self.enrichment.items

    @property
    def is_ready(self) -> bool:
        return not self.issues

    def to_dict(self) -> dict:
        return {
            "ready": self.is_ready,
            "catalog_degraded": self.enrichment.degraded,
            "items": [item.to_dict() for item in self.items],
            "issues": self.issues,
        }


def _matched_products(enrichment: EnrichmentResult) -> list[CatalogProductSnapshot | None]:
    if not enrichment.matches:
        return [None] * len(enrichment.items)
    return [match.product if match else None for match in enrichment.matches]


def validate_cart(raw_items: Sequence[Mapping[str, Any]]) -> ValidatedCart:
    """Map, enrich and collect per-item issues. Never raises for item problems."""
    if not isinstance(raw_items, (list, tuple)) or not raw_items:
        raise ValidationError("items must be a non-empty list")
    if len(raw_items) > MAX_CART_ITEMS:
        raise ValidationError(f"A cart may hold at most {MAX_CART_ITEMS} items")

    items = [map_raw_cart_item(raw) for raw in raw_items]
    enrichment = enrich_cart_items(items)
    products = _matched_products(enrichment)

    issues: list[dict] = []
    for index, (item, product) in enumerate(zip(enrichment.items, products)):
        messages = list(item.validation_issues)
        if not (item.name or item.product_name or (product and product.title)):
            messages.append("Missing item name")
        if item.price is None and not (product and (product.price is not None or product.all_price_ids())):
            messages.append(f"Missing price for {item.name or item.sku or 'item'}")
        if messages:
            issues.append({"index": index, "item": item.name or item.sku or item.id, "issues": messages})
    return ValidatedCart(enrichment=enrichment, issues=issues)


def _metadata_value(value: Any) -> str | None:
    text = coerce_metadata_value(value)
    if text is None:
        return None
    return text[:STRIPE_METADATA_VALUE_LIMIT]


def _product_metadata(item: CartItem, product: CatalogProductSnapshot | None) -> dict[str, str]:
    raw = {
        "sku": item.sku,
        "product_id": product.id if product else item.id,
        "product_slug": item.product_slug,
        "option_summary": item.option_summary,
        "upgrades": ", ".join(item.upgrades) if item.upgrades else None,
        "customizations": "; ".join(item.customizations) if item.customizations else None,
    }
    meta = {}
    for key, value in raw.items():
        text = _metadata_value(value)
        if text:
            meta[key] = text
    return meta


def build_line_items(items: Sequence[CartItem], products: Sequence[CatalogProductSnapshot | None]) -> list[dict]:
    line_items: list[dict] = []
    for item, product in zip(items, products):
        quantity = item.effective_quantity
        price_ids = product.all_price_ids() if product else []
        # Price-id lines carry no product metadata, so selections need price_data
        configured = bool(item.option_details or item.customizations)
        use_price_id = bool(price_ids) and not configured and (
            item.price is None or (product.price is not None and round(product.price, 2) == round(item.price, 2))
        )
        if use_price_id:
            line_items.append({"price": price_ids[0], "quantity": quantity})
        else:
            unit_price = item.price if item.price is not None else product.price
            product_data: dict[str, Any] = {
                "name": item.name or item.product_name or (product.title if product else None) or "Item",
                "metadata": _product_metadata(item, product),
            }
            if item.images:
                product_data["images"] = item.images[:8]
            line_items.append({
                "price_data": {
                    "currency": "usd",
                    "unit_amount": to_minor_units(unit_price),
                    "product_data": product_data,
                },
                "quantity": quantity,
            })

        if item.upgrades_total:
            line_items.append({
                "price_data": {
                    "currency": "usd",
                    "unit_amount": to_minor_units(item.upgrades_total),
                    "product_data": {
                        "name": f"Upgrades: {', '.join(item.upgrades) or item.name or 'item'}"[:250],
                        "metadata": {"upgrade_for": _metadata_value(item.sku or item.id) or ""},
                    },
                },
                "quantity": 1,
            })
    return line_items


def create_checkout_session(
    raw_cart: Sequence[Mapping[str, Any]],
    *,
    gateway,
    customer_email: str | None = None,
    metadata: Mapping[str, Any] | None = None,
    shipping_options: Sequence[Mapping[str, Any]] | None = None,
) -> dict:
    """
    Open a Stripe checkout session for a storefront cart.

    Raises:
        ValidationError: empty or oversized cart
        CheckoutValidationError: one or more items fail catalog requirements
        ConfigurationError: Stripe is not configured
        PaymentGatewayError: Stripe rejected the session
    """
    if gateway is None:
        raise ConfigurationError("Stripe is not configured (set STRIPE_SECRET_KEY)")

    cart = validate_cart(raw_cart)
    if not cart.is_ready:
        raise CheckoutValidationError("Cart has items with missing selections", cart.issues)

    session_metadata = {}
    for key, value in (metadata or {}).items():
        text = _metadata_value(value)
        if text and isinstance(key, str):
            session_metadata[key] = text
    if customer_email:
        session_metadata.setdefault("customer_email", customer_email)

    line_items = build_line_items(cart.items, _matched_products(cart.enrichment))
    session = gateway.create_session(
        line_items,
        metadata=session_metadata,
        customer_email=customer_email,
        shipping_options=shipping_options,
    )
    current_app.logger.info("Opened checkout session %s with %d line items", session.get("id"), len(line_items))
    return session
