from __future__ import annotations

from ..extensions import db
from ..money import money_to_float
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Authoritative catalog record.

    WHY: Storefront carts and payment line items carry only loosely typed
    metadata. The catalog row is the source of truth for identifiers,
    shipping metrics and required option/customization selections.

    IDENTIFIERS (any of them may be used to match a cart line):
    - id: catalog id, e.g. "product-3f9a1c2e" (string, assigned by the catalog import)
    - sku: merchant SKU, matched case-insensitively
    - slug: URL slug
    - stripe_product_id / stripe_price_id / stripe_default_price_id / stripe_price_ids
    - title: display title, matched case-insensitively as a last resort

    REQUIREMENT LISTS (JSON):
    - option_requirements: [{"name": "Size", "required": true}, ...]
      An option is required unless "required" is explicitly false.
    - customization_requirements: [{"name": "Engraving", "required": true}, ...]
      A customization is required only when "required" is explicitly true.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_sku", "sku"),
        db.Index("ix_products_slug", "slug"),
        db.Index("ix_products_stripe_price", "stripe_price_id"),
        db.Index("ix_products_stripe_product", "stripe_product_id"),
    )

    id = db.Column(db.String(96), primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True)
    slug = db.Column(db.String(96), nullable=True)
    description = db.Column(db.Text, nullable=True)

    stripe_product_id = db.Column(db.String(255), nullable=True)
    stripe_price_id = db.Column(db.String(255), nullable=True)
    stripe_default_price_id = db.Column(db.String(255), nullable=True)
    stripe_price_ids = db.Column(db.JSON, nullable=True)

    price = db.Column(db.Numeric(12, 2), nullable=True)
    product_type = db.Column(db.String(32), nullable=True)  # physical, service, bundle
    categories = db.Column(db.JSON, nullable=True)

    # Shipping metrics (pounds / inches)
    shipping_weight = db.Column(db.Float, nullable=True)
    shipping_length = db.Column(db.Float, nullable=True)
    shipping_width = db.Column(db.Float, nullable=True)
    shipping_height = db.Column(db.Float, nullable=True)
    box_dimensions = db.Column(db.String(64), nullable=True)  # free text, e.g. "12 x 9 x 4"
    shipping_class = db.Column(db.String(64), nullable=True)
    requires_shipping = db.Column(db.Boolean, nullable=True)

    option_requirements = db.Column(db.JSON, nullable=True)
    customization_requirements = db.Column(db.JSON, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "sku": self.sku,
            "slug": self.slug,
            "description": self.description,
            "stripe_product_id": self.stripe_product_id,
            "stripe_price_id": self.stripe_price_id,
            "stripe_default_price_id": self.stripe_default_price_id,
            "stripe_price_ids": list(self.stripe_price_ids or []),
            "price": money_to_float(self.price),
            "product_type": self.product_type,
            "categories": list(self.categories or []),
            "shipping_weight": self.shipping_weight,
            "shipping_length": self.shipping_length,
            "shipping_width": self.shipping_width,
            "shipping_height": self.shipping_height,
            "box_dimensions": self.box_dimensions,
            "shipping_class": self.shipping_class,
            "requires_shipping": self.requires_shipping,
            "option_requirements": list(self.option_requirements or []),
            "customization_requirements": list(self.customization_requirements or []),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
