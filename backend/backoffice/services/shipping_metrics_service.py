# Overview: Pure shipping-metric aggregation; derives order weight and package dimensions from enriched items.

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Mapping

from ..config import PackageDefaults
from ..validation import coerce_positive_number
from .cart_item_service import CartItem
from .catalog_service import CatalogProductSnapshot


WEIGHT_UNIT = "pound"
DIMENSION_UNIT = "inch"

_BOX_DIMENSIONS = re.compile(
    r"(\d+(?:\.\d+)?)\s*(?:x|×)\s*(\d+(?:\.\d+)?)\s*(?:x|×)\s*(\d+(?:\.\d+)?)",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Dimensions:
    length: float
    width: float
    height: float

    def to_dict(self) -> dict:
        return {"length": self.length, "width": self.width, "height": self.height, "unit": DIMENSION_UNIT}


@dataclass(frozen=True)
class ShippingMetrics:
    weight: float
    dimensions: Dimensions
    weight_unit: str = WEIGHT_UNIT

    def weight_dict(self) -> dict:
        return {"value": self.weight, "unit": self.weight_unit}


def parse_box_dimensions(text: str | None) -> Dimensions | None:
    """'12 x 9 x 4 in' -> Dimensions(12, 9, 4); zero or unparseable -> None."""
    if not text:
        return None
    match = _BOX_DIMENSIONS.search(str(text))
    if not match:
        return None
    length, width, height = (float(g) for g in match.groups())
    if length <= 0 or width <= 0 or height <= 0:
        return None
    return Dimensions(length, width, height)


def product_weight(product: CatalogProductSnapshot) -> float | None:
    return coerce_positive_number(product.shipping_weight)


def product_dimensions(product: CatalogProductSnapshot) -> Dimensions | None:
    length = coerce_positive_number(product.shipping_length)
    width = coerce_positive_number(product.shipping_width)
    height = coerce_positive_number(product.shipping_height)
    if length and width and height:
        return Dimensions(length, width, height)
    return parse_box_dimensions(product.box_dimensions)


def is_shippable(product: CatalogProductSnapshot) -> bool:
    if (product.product_type or "").strip().lower() == "service":
        return False
    if product.requires_shipping is False:
        return False
    if "install" in (product.shipping_class or "").lower():
        return False
    return True


def aggregate(
    items: Iterable[CartItem],
    products_by_id: Mapping[str, CatalogProductSnapshot],
    defaults: PackageDefaults | None = None,
) -> ShippingMetrics:
    """
    Order-level weight and package size.

    weight = sum(product weight x quantity) over shippable matched items
    length/width = largest single item; height = stacked (height x quantity)

    Falls back to `defaults` when no item contributes weight or dimensions.
    Unmatched items contribute nothing.
    """
    defaults = defaults or PackageDefaults()

    total_weight = 0.0
    max_length = 0.0
    max_width = 0.0
    stacked_height = 0.0
    has_dimensions = False

    for item in items:
        product = products_by_id.get(item.product_ref) if item.product_ref else None
        if product is None or not is_shippable(product):
            continue

        quantity = item.effective_quantity
        weight = product_weight(product)
        if weight:
            total_weight += weight * quantity

        dims = product_dimensions(product)
        if dims:
            has_dimensions = True
            max_length = max(max_length, dims.length)
            max_width = max(max_width, dims.width)
            stacked_height += dims.height * quantity

    weight = total_weight if total_weight > 0 else defaults.weight

    if has_dimensions:
        dimensions = Dimensions(
            length=round(max_length if max_length > 0 else defaults.length, 2),
            width=round(max_width if max_width > 0 else defaults.width, 2),
            height=round(stacked_height if stacked_height > 0 else defaults.height, 2),
        )
    else:
        dimensions = Dimensions(
            length=round(defaults.length, 2),
            width=round(defaults.width, 2),
            height=round(defaults.height, 2),
        )

    return ShippingMetrics(weight=round(weight, 2), dimensions=dimensions)
