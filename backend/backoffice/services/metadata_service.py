# Overview: Service-layer operations for metadata bags; flattens provider metadata into provenance-tagged entries.

"""
Metadata normalization.

WHY: Stripe line items, prices, products and sessions each carry their own
free-form string map. Cart details (SKU, options, upgrades) may appear in any
of them depending on which storefront version created the session.

DESIGN:
- Callers pass an explicit ordered list of (source, bag) pairs; the order IS
  the priority. Line-item metadata goes before session metadata.
- Every (key, value, source) triple is kept in `entries` for audit.
- `flat` keeps only the first value seen per key.
- Values are coerced to strings: numbers/booleans stringified, lists/dicts
  JSON-serialized, None and blank strings dropped.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping


SOURCE_LINE_ITEM = "line_item"
SOURCE_PRICE = "price"
SOURCE_PRODUCT = "product"
SOURCE_SESSION = "session"
SOURCE_DERIVED = "derived"
SOURCE_LEGACY = "legacy"

SOURCES = (
    SOURCE_LINE_ITEM,
    SOURCE_PRICE,
    SOURCE_PRODUCT,
    SOURCE_SESSION,
    SOURCE_DERIVED,
    SOURCE_LEGACY,
)


@dataclass(frozen=True)
class MetadataEntry:
    key: str
    value: str
    source: str

    def to_dict(self) -> dict:
        return {"key": self.key, "value": self.value, "source": self.source}


@dataclass
class MetadataCollection:
    flat: dict[str, str] = field(default_factory=dict)
    entries: list[MetadataEntry] = field(default_factory=list)

    def get(self, *keys: str) -> str | None:
        """First non-empty value among keys, in the order given."""
        for key in keys:
            value = self.flat.get(key)
            if value:
                return value
        return None

    def add(self, key: str, value: Any, source: str) -> None:
        text = coerce_metadata_value(value)
        if not key or text is None:
            return
        entry = MetadataEntry(key=key, value=text, source=source)
        if source == SOURCE_DERIVED and entry in self.entries:
            return
        self.entries.append(entry)
        self.flat.setdefault(key, text)

    def add_derived(self, key: str, value: Any) -> None:
        self.add(key, value, SOURCE_DERIVED)

    def items(self) -> Iterable[tuple[str, str]]:
        return self.flat.items()

    def entries_to_list(self) -> list[dict]:
        return [entry.to_dict() for entry in self.entries]


def coerce_metadata_value(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        trimmed = value.strip()
        return trimmed or None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return str(value)
    try:
        serialized = json.dumps(value, sort_keys=False, default=str)
    except (TypeError, ValueError):
        return None
    return serialized if serialized not in ("", "null") else None


def as_mapping(value: Any) -> Mapping[str, Any]:
    """Tolerate None, dict-like objects and StripeObjects (which are dicts)."""
    if isinstance(value, Mapping):
        return value
    return {}


def collect(sources: Iterable[tuple[str, Mapping[str, Any] | None]]) -> MetadataCollection:
    """
    Flatten ordered metadata bags into one collection.

    >>> result = collect([("line_item", {"sku": "A"}), ("session", {"sku": "B"})])
    >>> result.flat["sku"]
    'A'
    >>> [(e.value, e.source) for e in result.entries]
    [('A', 'line_item'), ('B', 'session')]
    """
    collection = MetadataCollection()
    for source, bag in sources:
        for raw_key, raw_value in as_mapping(bag).items():
            if not isinstance(raw_key, str):
                continue
            key = raw_key.strip()
            collection.add(key, raw_value, source)
    return collection
