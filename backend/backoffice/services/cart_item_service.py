# Overview: Service-layer operations for cart items; maps Stripe line items and storefront carts into CartItem records.

"""
Cart item mapping.

WHY: The same purchasable line arrives in two shapes. Completed sessions give
us Stripe line items (price/product expanded, metadata scattered across four
bags); the storefront posts a loosely typed cart payload at checkout. Both are
mapped into one CartItem so enrichment, validation and shipping aggregation
only ever see a single shape.

Mapping never raises. Fields that cannot be resolved are left as None and the
catalog enricher decides what is missing.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from ..validation import coerce_number, coerce_positive_int, pick_string
from .metadata_service import (
    SOURCE_LINE_ITEM,
    SOURCE_PRICE,
    SOURCE_PRODUCT,
    SOURCE_SESSION,
    MetadataCollection,
    as_mapping,
    coerce_metadata_value,
    collect,
)
from .selection_service import build_detail_lines


SKU_KEYS = ("sku", "SKU", "product_sku", "productSku", "item_sku", "variant_sku", "inventory_sku")
SLUG_KEYS = ("catalog_slug", "product_slug", "productSlug", "slug", "handle")
STRIPE_PRODUCT_KEYS = ("stripe_product_id", "stripeProductId")
STRIPE_PRICE_KEYS = ("stripe_price_id", "stripePriceId", "price_id")
CATALOG_ID_KEYS = ("product_id", "productId", "catalog_product_id", "catalogProductId", "item_id", "itemId")
NAME_KEYS = ("line_item_name", "item_name", "name")
PRICE_KEYS = ("unit_price", "price", "base_price")

OPTION_KEYWORDS = ("option", "vehicle", "fitment", "model", "variant", "trim", "package", "selection", "config")
UPGRADE_KEYWORDS = ("upgrade", "addon", "add_on", "add-on", "accessory")
IGNORE_OPTION_KEYS = ("shipping_option", "shipping_options", "shippingoption")
# Keys that already hold "Label: value" lists, as written by checkout.
SUMMARY_KEYS = ("option_summary", "optionsummary", "option_details", "optiondetails", "selected_options", "selectedoptions")
CUSTOMIZATION_KEYS = ("customizations", "customization", "personalization", "personalizations")
CATEGORY_KEYS = ("categories", "category")

NAME_SEPARATOR = " • "

_OPTION_PAIR = re.compile(r"^option(?:[_-]?|)([a-z0-9]+)?[_-]?(name|value)$")
_LIST_SPLIT = re.compile(r"[,;|]")
_HUMANIZE_SEPARATORS = re.compile(r"[_\-.]+")
_CAMEL_BOUNDARY = re.compile(r"([a-z])([A-Z])")


@dataclass
class CartItem:
    line_item_id: str | None = None
    id: str | None = None
    product_slug: str | None = None
    stripe_product_id: str | None = None
    stripe_price_id: str | None = None
    sku: str | None = None
    name: str | None = None
    product_name: str | None = None
    description: str | None = None
    quantity: int | None = None
    price: float | None = None
    images: list[str] = field(default_factory=list)
    option_summary: str | None = None
    option_details: list[str] = field(default_factory=list)
    upgrades: list[str] = field(default_factory=list)
    upgrades_total: float | None = None
    customizations: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    line_total: float | None = None
    product_ref: str | None = None
    validation_issues: list[str] = field(default_factory=list)
    metadata: MetadataCollection = field(default_factory=MetadataCollection)

    @property
    def effective_quantity(self) -> int:
        return self.quantity or 1

    def to_dict(self) -> dict:
        return {
            "line_item_id": self.line_item_id,
            "id": self.id,
            "product_slug": self.product_slug,
            "stripe_product_id": self.stripe_product_id,
            "stripe_price_id": self.stripe_price_id,
            "sku": self.sku,
            "name": self.name,
            "product_name": self.product_name,
            "description": self.description,
            "quantity": self.quantity,
            "price": self.price,
            "images": list(self.images),
            "option_summary": self.option_summary,
            "option_details": list(self.option_details),
            "upgrades": list(self.upgrades),
            "upgrades_total": self.upgrades_total,
            "customizations": list(self.customizations),
            "categories": list(self.categories),
            "line_total": self.line_total,
            "product_ref": self.product_ref,
            "validation_issues": list(self.validation_issues),
            "metadata": self.metadata.entries_to_list(),
        }


# =============================================================================
# Text helpers
# =============================================================================

def humanize(text: str) -> str:
    """'vehicle_model' -> 'Vehicle Model', 'optionColor' -> 'Option Color'."""
    if not text:
        return ""
    spaced = _HUMANIZE_SEPARATORS.sub(" ", text)
    spaced = _CAMEL_BOUNDARY.sub(r"\1 \2", spaced)
    return " ".join(part[:1].upper() + part[1:] for part in spaced.split(" ") if part)


def _unique(values) -> list[str]:
    seen = []
    for value in values:
        text = (value or "").strip()
        if text and text not in seen:
            seen.append(text)
    return seen


def _parse_json(text: str):
    stripped = text.strip()
    if not stripped or stripped[0] not in "[{":
        return None
    try:
        return json.loads(stripped)
    except ValueError:
        return None


def expand_option_value(value: str) -> list[str]:
    """
    Expand a JSON-encoded option value into display segments.

    '[{"name": "Size", "value": "L"}]' -> ["Size: L"]
    '{"color": "red"}'                 -> ["Color: red"]
    'Large'                            -> ["Large"]
    """
    trimmed = (value or "").strip()
    if not trimmed:
        return []
    parsed = _parse_json(trimmed)
    segments: list[str] = []
    if isinstance(parsed, list):
        for item in parsed:
            if isinstance(item, str):
                if item.strip():
                    segments.append(item.strip())
            elif isinstance(item, Mapping):
                label = pick_string(item.get("name"), item.get("label"))
                val = coerce_metadata_value(item.get("value"))
                if label and val:
                    segments.append(f"{label}: {val}")
                else:
                    fallback = coerce_metadata_value(item)
                    if fallback:
                        segments.append(fallback)
    elif isinstance(parsed, Mapping):
        for key, raw in parsed.items():
            val = coerce_metadata_value(raw)
            if not val:
                continue
            label = humanize(str(key))
            segments.append(f"{label}: {val}" if label else val)
    return segments or [trimmed]


def split_list_value(value: str) -> list[str]:
    """Split 'a, b; c|d' or a JSON array into trimmed tokens."""
    trimmed = (value or "").strip()
    if not trimmed:
        return []
    parsed = _parse_json(trimmed)
    if isinstance(parsed, list):
        tokens = []
        for item in parsed:
            if isinstance(item, Mapping):
                token = pick_string(item.get("name"), item.get("value"), item.get("label"))
            else:
                token = coerce_metadata_value(item)
            if token:
                tokens.append(token)
        if tokens:
            return tokens
    return [part.strip() for part in _LIST_SPLIT.split(trimmed) if part.strip()]


# =============================================================================
# Metadata-derived fields
# =============================================================================

def extract_option_details(flat: Mapping[str, str]) -> tuple[str | None, list[str]]:
    """Return (summary, detail lines) from option-like metadata keys."""
    pairs: dict[str, dict[str, str]] = {}
    consumed: set[str] = set()

    for key, value in flat.items():
        match = _OPTION_PAIR.match(key.lower())
        if not match:
            continue
        slot = match.group(1) or ""
        pairs.setdefault(slot, {})[match.group(2)] = value
        consumed.add(key)

    details: list[str] = []
    for slot, pair in pairs.items():
        value = (pair.get("value") or "").strip()
        if not value:
            continue
        label = (pair.get("name") or (humanize(slot) if slot else "")).strip()
        details.append(f"{label}: {value}" if label else value)

    for key, value in flat.items():
        lower = key.lower()
        if key in consumed:
            continue
        if lower in SUMMARY_KEYS:
            details.extend(split_summary_value(value))
            continue
        if any(ignored in lower for ignored in IGNORE_OPTION_KEYS):
            continue
        if not any(keyword in lower for keyword in OPTION_KEYWORDS):
            continue
        label = humanize(key)
        if isinstance(_parse_json(value), (list, Mapping)):
            details.extend(
                segment if ":" in segment else f"{label}: {segment}"
                for segment in expand_option_value(value)
            )
        else:
            details.append(f"{label}: {value}")

    unique = _unique(details)
    return (", ".join(unique) if unique else None), unique


def split_summary_value(value: str) -> list[str]:
    """'Size: Large, Color: Red' (or its JSON form) -> ['Size: Large', 'Color: Red']."""
    if isinstance(_parse_json(value or ""), (list, Mapping)):
        return expand_option_value(value)
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def extract_customizations(flat: Mapping[str, str]) -> list[str]:
    """
    Customization lines from metadata: "; "-joined text as written by
    checkout, or a JSON list or object.
    """
    entries: list[str] = []
    for key, value in flat.items():
        if key.lower() not in CUSTOMIZATION_KEYS:
            continue
        parsed = _parse_json(value)
        if isinstance(parsed, Mapping):
            entries.extend(build_detail_lines(parsed))
        elif isinstance(parsed, list):
            entries.extend(expand_option_value(value))
        else:
            entries.extend(part.strip() for part in value.split(";"))
    return _unique(entries)


def extract_upgrades(flat: Mapping[str, str]) -> list[str]:
    upgrades: list[str] = []
    for key, value in flat.items():
        lower = key.lower()
        if not any(keyword in lower for keyword in UPGRADE_KEYWORDS):
            continue
        if "total" in lower or "price" in lower:
            continue
        tokens = split_list_value(value)
        upgrades.extend(tokens or [value.strip()])
    return _unique(upgrades)


def extract_upgrades_total(flat: Mapping[str, str]) -> float | None:
    for key in ("upgrades_total", "upgrade_total", "addons_total"):
        amount = coerce_number(flat.get(key))
        if amount is not None and amount >= 0:
            return round(amount, 2)
    return None


def extract_categories(*bags: Mapping[str, Any]) -> list[str]:
    categories: list[str] = []
    for bag in bags:
        raw = None
        for key in CATEGORY_KEYS:
            raw = coerce_metadata_value(as_mapping(bag).get(key))
            if raw:
                break
        if not raw:
            continue
        parsed = _parse_json(raw)
        if isinstance(parsed, list):
            categories.extend(coerce_metadata_value(item) or "" for item in parsed)
        else:
            categories.extend(part.strip() for part in raw.split(","))
    return _unique(categories)


def compose_display_name(base: str | None, option_summary: str | None, upgrades: list[str]) -> str | None:
    parts = [base] if base else []
    lowered = (base or "").lower()
    if option_summary and option_summary.lower() not in lowered:
        parts.append(option_summary)
    if upgrades:
        label = f"Upgrades: {', '.join(upgrades)}"
        if label.lower() not in lowered:
            parts.append(label)
    return NAME_SEPARATOR.join(parts) or None


# =============================================================================
# Mappers
# =============================================================================

def _minor_to_major(value: Any) -> float | None:
    amount = coerce_number(value)
    if amount is None:
        return None
    return round(amount / 100, 2)


def map_line_item(line_item: Mapping[str, Any], session_metadata: Mapping[str, Any] | None = None) -> CartItem:
    """
    Map one Stripe checkout line item into a CartItem.

    Metadata priority: line item, then price, then product, then session.
    Categories come only from the line item and product bags.
    """
    line_item = as_mapping(line_item)
    raw_price = line_item.get("price")
    price_obj = raw_price if isinstance(raw_price, Mapping) else {}
    raw_product = price_obj.get("product")
    product_obj = raw_product if isinstance(raw_product, Mapping) else {}

    metadata = collect([
        (SOURCE_LINE_ITEM, line_item.get("metadata")),
        (SOURCE_PRICE, price_obj.get("metadata")),
        (SOURCE_PRODUCT, product_obj.get("metadata")),
        (SOURCE_SESSION, session_metadata),
    ])

    sku = metadata.get(*SKU_KEYS)
    slug = metadata.get(*SLUG_KEYS)
    stripe_product_id = pick_string(
        product_obj.get("id"),
        raw_product if isinstance(raw_product, str) else None,
        metadata.get(*STRIPE_PRODUCT_KEYS),
    )
    stripe_price_id = pick_string(
        raw_price if isinstance(raw_price, str) else price_obj.get("id"),
        metadata.get(*STRIPE_PRICE_KEYS),
    )
    catalog_id = metadata.get(*CATALOG_ID_KEYS) or slug or stripe_product_id

    price = _minor_to_major(price_obj.get("unit_amount"))
    if price is None or price <= 0:
        unit_price = as_mapping(line_item.get("unit_price"))
        price = _minor_to_major(unit_price.get("amount_total"))
    if price is None:
        fallback = coerce_number(metadata.get(*PRICE_KEYS))
        price = round(fallback, 2) if fallback is not None and fallback >= 0 else None

    description = pick_string(line_item.get("description"))
    product_name = pick_string(product_obj.get("name"))
    base_name = description or metadata.get(*NAME_KEYS) or product_name

    option_summary, option_details = extract_option_details(metadata.flat)
    upgrades = extract_upgrades(metadata.flat)

    images = [img for img in (product_obj.get("images") or []) if isinstance(img, str) and img]

    return CartItem(
        line_item_id=pick_string(line_item.get("id")),
        id=catalog_id,
        product_slug=slug,
        stripe_product_id=stripe_product_id,
        stripe_price_id=stripe_price_id,
        sku=sku,
        name=compose_display_name(base_name, option_summary, upgrades),
        product_name=product_name,
        description=description,
        quantity=coerce_positive_int(line_item.get("quantity")),
        price=price,
        images=images,
        option_summary=option_summary,
        option_details=option_details,
        upgrades=upgrades,
        upgrades_total=extract_upgrades_total(metadata.flat),
        customizations=extract_customizations(metadata.flat),
        categories=extract_categories(line_item.get("metadata"), product_obj.get("metadata")),
        metadata=metadata,
    )


def map_raw_cart_item(payload: Mapping[str, Any]) -> CartItem:
    """
    Map a storefront cart entry into a CartItem.

    Accepted keys: id, sku, slug, name, price, quantity, options (map or list
    of "Label: value" strings), upgrades, upgrades_total, customizations,
    images, categories, stripe_price_id, metadata.
    """
    payload = as_mapping(payload)
    metadata = collect([
        (SOURCE_LINE_ITEM, payload.get("metadata")),
    ])

    details: list[str] = []
    options = payload.get("options")
    if isinstance(options, Mapping):
        details.extend(build_detail_lines(options, fallback_label="Option"))
    elif isinstance(options, (list, tuple)):
        details.extend(coerce_metadata_value(entry) or "" for entry in options)
    elif isinstance(options, str):
        details.extend(part.strip() for part in options.split(","))
    meta_summary, meta_details = extract_option_details(metadata.flat)
    details = _unique(details + meta_details)
    option_summary = pick_string(payload.get("option_summary")) or (", ".join(details) if details else meta_summary)

    raw_upgrades = payload.get("upgrades")
    if isinstance(raw_upgrades, str):
        upgrades = split_list_value(raw_upgrades)
    elif isinstance(raw_upgrades, (list, tuple)):
        upgrades = _unique(
            pick_string(u.get("name"), u.get("label")) if isinstance(u, Mapping) else coerce_metadata_value(u)
            for u in raw_upgrades
        )
    else:
        upgrades = extract_upgrades(metadata.flat)

    raw_custom = payload.get("customizations")
    if isinstance(raw_custom, Mapping):
        customizations = _unique(build_detail_lines(raw_custom))
    elif isinstance(raw_custom, (list, tuple)):
        customizations = _unique(coerce_metadata_value(entry) for entry in raw_custom)
    elif isinstance(raw_custom, str):
        customizations = _unique([raw_custom])
    else:
        customizations = []

    price = coerce_number(payload.get("price"))
    upgrades_total = coerce_number(payload.get("upgrades_total"))
    raw_categories = payload.get("categories")
    categories = (
        _unique(coerce_metadata_value(c) for c in raw_categories)
        if isinstance(raw_categories, (list, tuple))
        else extract_categories({"categories": raw_categories} if raw_categories else {}, metadata.flat)
    )
    raw_images = payload.get("images")
    images = [img for img in (raw_images or []) if isinstance(img, str) and img] if isinstance(raw_images, (list, tuple)) else []
    slug = pick_string(payload.get("slug"), payload.get("product_slug"), metadata.get(*SLUG_KEYS))

    return CartItem(
        id=pick_string(payload.get("id"), payload.get("product_id"), metadata.get(*CATALOG_ID_KEYS)),
        product_slug=slug,
        stripe_product_id=pick_string(payload.get("stripe_product_id"), metadata.get(*STRIPE_PRODUCT_KEYS)),
        stripe_price_id=pick_string(payload.get("stripe_price_id"), metadata.get(*STRIPE_PRICE_KEYS)),
        sku=pick_string(payload.get("sku"), metadata.get(*SKU_KEYS)),
        name=pick_string(payload.get("name"), payload.get("title"), metadata.get(*NAME_KEYS)),
        product_name=pick_string(payload.get("product_name"), payload.get("name")),
        quantity=coerce_positive_int(payload.get("quantity")),
        price=round(price, 2) if price is not None and price >= 0 else None,
        images=images,
        option_summary=option_summary,
        option_details=details,
        upgrades=upgrades,
        upgrades_total=round(upgrades_total, 2) if upgrades_total is not None and upgrades_total >= 0 else None,
        customizations=customizations,
        categories=categories,
        metadata=metadata,
    )
