# Overview: Service-layer operations for catalog imports; upserts product records from exported JSON.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from sqlalchemy import func

from ..extensions import db
from ..models import Product
from ..money import to_decimal
from ..validation import ValidationError, coerce_number, coerce_price, pick_string
from .catalog_service import slugify


class CatalogImportError(ValueError):
    """Raised when a catalog export cannot be imported."""


STRING_FIELDS = (
    "title", "sku", "slug", "description", "stripe_product_id", "stripe_price_id",
    "stripe_default_price_id", "product_type", "box_dimensions", "shipping_class",
)
FLOAT_FIELDS = ("shipping_weight", "shipping_length", "shipping_width", "shipping_height")
JSON_LIST_FIELDS = ("stripe_price_ids", "categories", "option_requirements", "customization_requirements")


@dataclass
class ImportSummary:
    created: int = 0
    updated: int = 0
    errors: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"created": self.created, "updated": self.updated, "errors": self.errors}


def _find_existing(record_id: str | None, sku: str | None) -> Product | None:
    if record_id:
        product = db.session.get(Product, record_id)
        if product is not None:
            return product
    if sku:
        return db.session.query(Product).filter(func.lower(Product.sku) == sku.lower()).first()
    return None


def _apply_record(product: Product, record: Mapping[str, Any]) -> None:
    # Validated before any attribute changes
    price = to_decimal(coerce_price(record.get("price"))) if "price" in record else None

    for name in STRING_FIELDS:
        if name in record:
            setattr(product, name, pick_string(record.get(name)))
    for name in FLOAT_FIELDS:
        if name in record:
            value = coerce_number(record.get(name))
            setattr(product, name, value if value is not None and value >= 0 else None)
    for name in JSON_LIST_FIELDS:
        if name in record:
            value = record.get(name)
            setattr(product, name, list(value) if isinstance(value, (list, tuple)) else None)
    if "price" in record:
        product.price = price
    if "requires_shipping" in record:
        flag = record.get("requires_shipping")
        product.requires_shipping = flag if isinstance(flag, bool) else None
    if "is_active" in record:
        product.is_active = record.get("is_active") is not False
    if not product.slug and product.title:
        product.slug = slugify(product.title)


def import_products(records: Sequence[Mapping[str, Any]]) -> ImportSummary:
    """
    Upsert catalog products by id, else by SKU.

    A record without an id gets "product-<slug>"; a record without a title is
    reported and skipped. All accepted rows commit together.
    """
    if not isinstance(records, (list, tuple)):
        raise CatalogImportError("Catalog export must be a JSON list of products")

    summary = ImportSummary()
    for index, record in enumerate(records):
        if not isinstance(record, Mapping):
            summary.errors.append({"index": index, "error": "record must be an object"})
            continue
        record_id = pick_string(record.get("id"), record.get("_id"))
        sku = pick_string(record.get("sku"))
        existing = _find_existing(record_id, sku)

        if existing is None:
            title = pick_string(record.get("title"), record.get("name"))
            if not title:
                summary.errors.append({"index": index, "error": "title is required"})
                continue
            new_id = record_id or f"product-{slugify(record.get('slug') or title)}"
            product = Product(id=new_id[:96], title=title, is_active=True)
            try:
                _apply_record(product, record)
            except ValidationError as e:
                summary.errors.append({"index": index, "error": str(e)})
                continue
            product.title = product.title or title
            db.session.add(product)
            db.session.flush()
            summary.created += 1
        else:
            try:
                _apply_record(existing, record)
            except ValidationError as e:
                summary.errors.append({"index": index, "error": str(e)})
                continue
            if not existing.title:
                existing.title = pick_string(record.get("name")) or existing.sku or existing.id
            summary.updated += 1

    db.session.commit()
    return summary
