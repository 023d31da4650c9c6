# Overview: Service-layer operations for catalog enrichment; matches cart items to products and backfills them.

"""
Catalog enrichment.

WHY: Cart items come from metadata the storefront (or an old storefront)
happened to write. The catalog is authoritative for identifiers, shipping
metrics and required selections, so every reconciliation pass re-resolves
each item against it.

DESIGN:
- ONE query per pass, keyed on the union of every candidate identifier in
  the cart (skus, slugs, titles, catalog ids, Stripe price/product ids).
- Matching is an ordered list of strategies; first hit wins:
    1. sku (case-insensitive)
    2. Stripe price id (price id, default price id, price snapshots)
    3. Stripe product id
    4. slug (explicit slug, slugified product name, slugified display name)
    5. catalog id, only when it looks like one
    6. title (case-insensitive; product name, then display name)
- Database failures degrade to "no enrichment": items are returned as-is.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Sequence

from flask import current_app
from sqlalchemy import String, cast, func, or_
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Product
from .cart_item_service import CartItem
from .selection_service import validate_selections


SLUG_MAX_LENGTH = 96

_SLUG_NOISE = re.compile(r"[^a-z0-9]+")
_CATALOG_ID_PATTERN = re.compile(r"^[a-zA-Z0-9]{1,2}[-a-zA-Z0-9]{8,}")


# =============================================================================
# Snapshot
# =============================================================================

@dataclass(frozen=True)
class CatalogProductSnapshot:
    """Read-only projection of a Product used during one enrichment pass."""
    id: str
    title: str | None = None
    sku: str | None = None
    slug: str | None = None
    stripe_product_id: str | None = None
    stripe_price_id: str | None = None
    stripe_default_price_id: str | None = None
    stripe_price_ids: tuple[str, ...] = ()
    price: float | None = None
    product_type: str | None = None
    categories: tuple[str, ...] = ()
    shipping_weight: float | None = None
    shipping_length: float | None = None
    shipping_width: float | None = None
    shipping_height: float | None = None
    box_dimensions: str | None = None
    shipping_class: str | None = None
    requires_shipping: bool | None = None
    option_requirements: tuple = ()
    customization_requirements: tuple = ()

    @classmethod
    def from_model(cls, product: Product) -> "CatalogProductSnapshot":
        return cls(
            id=product.id,
            title=product.title,
            sku=product.sku,
            slug=product.slug,
            stripe_product_id=product.stripe_product_id,
            stripe_price_id=product.stripe_price_id,
            stripe_default_price_id=product.stripe_default_price_id,
            stripe_price_ids=tuple(str(p) for p in (product.stripe_price_ids or []) if p),
            price=float(product.price) if product.price is not None else None,
            product_type=product.product_type,
            categories=tuple(_clean_categories(product.categories)),
            shipping_weight=product.shipping_weight,
            shipping_length=product.shipping_length,
            shipping_width=product.shipping_width,
            shipping_height=product.shipping_height,
            box_dimensions=product.box_dimensions,
            shipping_class=product.shipping_class,
            requires_shipping=product.requires_shipping,
            option_requirements=tuple(_clean_requirements(product.option_requirements, default_required=True)),
            customization_requirements=tuple(
                _clean_requirements(product.customization_requirements, default_required=False)
            ),
        )

    def all_price_ids(self) -> list[str]:
        return [p for p in (self.stripe_price_id, self.stripe_default_price_id, *self.stripe_price_ids) if p]


def _clean_categories(raw: Any) -> list[str]:
    result: list[str] = []
    for entry in raw or []:
        if isinstance(entry, Mapping):
            entry = entry.get("title")
        if isinstance(entry, str) and entry.strip() and entry.strip() not in result:
            result.append(entry.strip())
    return result


def _clean_requirements(raw: Any, *, default_required: bool) -> list[dict]:
    cleaned = []
    for entry in raw or []:
        if isinstance(entry, str):
            name, required = entry, default_required
        elif isinstance(entry, Mapping):
            name = entry.get("name") or entry.get("title")
            flag = entry.get("required")
            required = flag is not False if default_required else flag is True
        else:
            continue
        if isinstance(name, str) and name.strip():
            cleaned.append({"name": name.strip(), "required": required})
    return cleaned


# =============================================================================
# Identifier helpers
# =============================================================================

def slugify(value: str | None) -> str | None:
    if not value or not value.strip():
        return None
    slug = _SLUG_NOISE.sub("-", value.strip().lower()).strip("-")[:SLUG_MAX_LENGTH]
    return slug or None


def looks_like_catalog_id(value: str | None) -> bool:
    """Structural heuristic only: "product-..." or a long dashed token."""
    if not value:
        return False
    return bool(_CATALOG_ID_PATTERN.match(value)) or value.startswith("product-")


def _lower(value: str | None) -> str:
    return (value or "").strip().lower()


def _slug_candidates(item: CartItem) -> list[str]:
    candidates = [item.product_slug, slugify(item.product_name), slugify(item.name)]
    return [c.strip() for c in candidates if c and c.strip()]


# =============================================================================
# Match strategies
# =============================================================================

MatchStrategy = Callable[[CartItem, Sequence[CatalogProductSnapshot]], "CatalogProductSnapshot | None"]


def match_by_sku(item, products):
    sku = _lower(item.sku)
    if not sku:
        return None
    return next((p for p in products if _lower(p.sku) == sku), None)


def match_by_price_id(item, products):
    price_id = _lower(item.stripe_price_id)
    if not price_id:
        return None
    direct = next(
        (p for p in products if price_id in (_lower(p.stripe_price_id), _lower(p.stripe_default_price_id))),
        None,
    )
    if direct:
        return direct
    return next((p for p in products if price_id in {_lower(pid) for pid in p.stripe_price_ids}), None)


def match_by_product_id(item, products):
    product_id = _lower(item.stripe_product_id)
    if not product_id:
        return None
    return next((p for p in products if _lower(p.stripe_product_id) == product_id), None)


def match_by_slug(item, products):
    for slug in _slug_candidates(item):
        match = next((p for p in products if _lower(p.slug) == slug.lower()), None)
        if match:
            return match
    return None


def match_by_catalog_id(item, products):
    if not looks_like_catalog_id(item.id):
        return None
    return next((p for p in products if p.id == item.id), None)


def match_by_title(item, products):
    for title in (item.product_name, item.name):
        wanted = _lower(title)
        if not wanted:
            continue
        match = next((p for p in products if _lower(p.title) == wanted), None)
        if match:
            return match
    return None


MATCH_STRATEGIES: tuple[tuple[str, MatchStrategy], ...] = (
    ("sku", match_by_sku),
    ("price_id", match_by_price_id),
    ("product_id", match_by_product_id),
    ("slug", match_by_slug),
    ("catalog_id", match_by_catalog_id),
    ("title", match_by_title),
)


@dataclass(frozen=True)
class ProductMatch:
    product: CatalogProductSnapshot
    strategy: str


def find_product_for_item(item: CartItem, products: Sequence[CatalogProductSnapshot]) -> ProductMatch | None:
    if not products:
        return None
    for name, strategy in MATCH_STRATEGIES:
        product = strategy(item, products)
        if product is not None:
            return ProductMatch(product=product, strategy=name)
    return None


# =============================================================================
# Batched lookup
# =============================================================================

@dataclass
class CatalogLookup:
    slugs: set[str] = field(default_factory=set)
    skus: set[str] = field(default_factory=set)
    titles: set[str] = field(default_factory=set)
    ids: set[str] = field(default_factory=set)
    price_ids: set[str] = field(default_factory=set)
    product_ids: set[str] = field(default_factory=set)

    def is_empty(self) -> bool:
        return not (self.slugs or self.skus or self.titles or self.ids or self.price_ids or self.product_ids)


def collect_product_queries(items: Iterable[CartItem]) -> CatalogLookup:
    lookup = CatalogLookup()
    for item in items:
        lookup.slugs.update(s.lower() for s in _slug_candidates(item))
        if item.sku and item.sku.strip():
            lookup.skus.add(item.sku.strip().lower())
        if item.stripe_price_id:
            lookup.price_ids.add(item.stripe_price_id.strip())
        if item.stripe_product_id:
            lookup.product_ids.add(item.stripe_product_id.strip())
        for title in (item.product_name, item.name):
            if title and title.strip():
                lookup.titles.add(title.strip().lower())
        if looks_like_catalog_id(item.id):
            lookup.ids.add(item.id)
    return lookup


def fetch_products_for_cart(items: Sequence[CartItem]) -> list[CatalogProductSnapshot]:
    """
    Load every product any item could match, in a single query.

    Raises SQLAlchemyError; enrich_cart_items() owns the degrade policy.
    """
    lookup = collect_product_queries(items)
    if lookup.is_empty():
        return []

    clauses = []
    if lookup.slugs:
        clauses.append(func.lower(Product.slug).in_(sorted(lookup.slugs)))
    if lookup.skus:
        clauses.append(func.lower(Product.sku).in_(sorted(lookup.skus)))
    if lookup.titles:
        clauses.append(func.lower(Product.title).in_(sorted(lookup.titles)))
    if lookup.ids:
        clauses.append(Product.id.in_(sorted(lookup.ids)))
    if lookup.price_ids:
        clauses.append(Product.stripe_price_id.in_(sorted(lookup.price_ids)))
        clauses.append(Product.stripe_default_price_id.in_(sorted(lookup.price_ids)))
        # Price snapshots are a JSON list; match on its text, the matcher re-checks exactly
        clauses.extend(cast(Product.stripe_price_ids, String).contains(pid) for pid in sorted(lookup.price_ids))
    if lookup.product_ids:
        clauses.append(Product.stripe_product_id.in_(sorted(lookup.product_ids)))

    rows = (
        db.session.query(Product)
        .filter(Product.is_active.is_(True))
        .filter(or_(*clauses))
        .order_by(Product.id.asc())
        .all()
    )
    return [CatalogProductSnapshot.from_model(row) for row in rows]


# =============================================================================
# Enrichment
# =============================================================================

@dataclass
class EnrichmentResult:
    items: list[CartItem]
    products: list[CatalogProductSnapshot] = field(default_factory=list)
    matches: list[ProductMatch | None] = field(default_factory=list)
    degraded: bool = False

    @property
    def products_by_id(self) -> dict[str, CatalogProductSnapshot]:
        return {p.id: p for p in self.products}

    @property
    def has_validation_issues(self) -> bool:
        return any(item.validation_issues for item in self.items)


def compute_line_total(item: CartItem) -> float:
    base = item.price if item.price is not None else 0.0
    upgrades = item.upgrades_total if item.upgrades_total is not None else 0.0
    return round(item.effective_quantity * base + upgrades, 2)


def apply_product_match(item: CartItem, product: CatalogProductSnapshot) -> None:
    if product.sku:
        item.sku = product.sku
        item.metadata.add_derived("catalog_sku", product.sku)

    if not (item.product_slug or "").strip() and product.slug:
        item.product_slug = product.slug
        item.metadata.add_derived("catalog_slug", product.slug)

    if not item.id or item.id in (item.stripe_product_id, item.stripe_price_id):
        item.id = product.slug or product.id

    item.product_ref = product.id
    item.metadata.add_derived("catalog_product_ref", product.id)

    if not item.categories and product.categories:
        item.categories = list(product.categories)

    issues = validate_selections(
        option_requirements=product.option_requirements,
        customization_requirements=product.customization_requirements,
        option_summary=item.option_summary,
        option_details=item.option_details,
        customizations=item.customizations,
    )
    messages: list[str] = []
    for issue in issues:
        if issue.message not in messages:
            messages.append(issue.message)
    item.validation_issues = messages
    for message in messages:
        item.metadata.add_derived("validation_issue", message)


def enrich_cart_items(items: list[CartItem]) -> EnrichmentResult:
    """
    Resolve each item against the catalog and backfill it in place.

    Never raises for catalog problems: a failed lookup logs a warning and
    returns the items untouched with `degraded=True`.
    """
    if not items:
        return EnrichmentResult(items=items)

    try:
        products = fetch_products_for_cart(items)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Catalog lookup failed; continuing without enrichment", exc_info=True)
        return EnrichmentResult(items=items, degraded=True)

    matches: list[ProductMatch | None] = []
    for item in items:
        match = find_product_for_item(item, products)
        matches.append(match)
        if match is not None:
            apply_product_match(item, match.product)
        else:
            item.product_ref = item.product_ref or item.metadata.get("catalog_product_ref")
        if item.line_total is None:
            item.line_total = compute_line_total(item)

    return EnrichmentResult(items=items, products=products, matches=matches)
