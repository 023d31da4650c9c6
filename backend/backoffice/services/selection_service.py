# Overview: Service-layer operations for cart selections; checks required options and customizations.

"""
Selection validation.

WHY: Products can require choices (size, fitment) or customizations
(engraving text). The storefront does not always enforce them, so every cart
is re-checked against the catalog before checkout and during reconciliation.

MATCHING:
- Option text is split on "," and each part on its first ":" into label/value.
- Labels are normalized: lowercased, filler words dropped (option, selected,
  selection, value, display, name, field, attribute, choice, custom),
  non-alphanumeric runs collapsed to one space.
- A value is meaningful when non-blank and not none / n/a / no / false.
- Parts without a label are pooled; that pool satisfies a requirement only
  when the product has exactly one required option.

Issues are returned as data. Callers decide whether to block or warn.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping


ISSUE_OPTION = "option"
ISSUE_CUSTOMIZATION = "customization"

_UNLABELED = "__unlabeled__"
_FILLER_WORDS = re.compile(
    r"\b(option|selected|selection|value|display|name|field|attribute|choice|custom)\b",
    re.IGNORECASE,
)
_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_PLACEHOLDER_VALUES = {"none", "n/a", "no", "false"}


@dataclass(frozen=True)
class SelectionIssue:
    type: str
    field: str
    message: str

    def to_dict(self) -> dict:
        return {"type": self.type, "field": self.field, "message": self.message}


def normalize_label(label: str | None) -> str:
    if not label:
        return ""
    text = _FILLER_WORDS.sub("", label.lower())
    return _NON_ALNUM.sub(" ", text).strip()


def is_meaningful(value: str | None) -> bool:
    if not value:
        return False
    trimmed = value.strip()
    return bool(trimmed) and trimmed.lower() not in _PLACEHOLDER_VALUES


def parse_detail_entry(detail: str) -> tuple[str | None, str | None]:
    trimmed = detail.strip()
    if not trimmed:
        return None, None
    label, sep, rest = trimmed.partition(":")
    if not sep:
        return None, label.strip()
    return label.strip(), rest.strip()


def _split_parts(texts: Iterable[str | None]) -> list[tuple[str | None, str | None]]:
    parsed = []
    for text in texts:
        if not text:
            continue
        for part in text.split(","):
            if part.strip():
                parsed.append(parse_detail_entry(part))
    return parsed


def collect_option_selections(summary: str | None, details: Iterable[str] | None) -> dict[str, list[str]]:
    selections: dict[str, list[str]] = {}
    for label, value in _split_parts([summary, *(details or [])]):
        key = normalize_label(label)
        if key:
            selections.setdefault(key, []).append(value or "")
        elif value:
            selections.setdefault(_UNLABELED, []).append(value)
    return selections


def collect_customization_selections(customizations: Iterable[str] | None) -> dict[str, list[str]]:
    selections: dict[str, list[str]] = {}
    for label, value in _split_parts(customizations or []):
        key = normalize_label(label)
        if key:
            selections.setdefault(key, []).append(value or "")
    return selections


def _requirement_name(requirement: Any) -> str | None:
    if isinstance(requirement, str):
        return requirement.strip() or None
    if isinstance(requirement, Mapping):
        name = requirement.get("name")
        if isinstance(name, str) and name.strip():
            return name.strip()
    return None


def required_options(requirements: Iterable[Any] | None) -> list[str]:
    """Options count as required unless `required` is explicitly False."""
    names = []
    for requirement in requirements or []:
        name = _requirement_name(requirement)
        if not name:
            continue
        if isinstance(requirement, Mapping) and requirement.get("required") is False:
            continue
        names.append(name)
    return names


def required_customizations(requirements: Iterable[Any] | None) -> list[str]:
    """Customizations are required only when `required` is explicitly True."""
    names = []
    for requirement in requirements or []:
        name = _requirement_name(requirement)
        if name and isinstance(requirement, Mapping) and requirement.get("required") is True:
            names.append(name)
    return names


def validate_selections(
    *,
    option_requirements: Iterable[Any] | None,
    customization_requirements: Iterable[Any] | None,
    option_summary: str | None,
    option_details: Iterable[str] | None,
    customizations: Iterable[str] | None,
) -> list[SelectionIssue]:
    issues: list[SelectionIssue] = []

    options = required_options(option_requirements)
    if options:
        selections = collect_option_selections(option_summary, option_details)
        unlabeled = selections.get(_UNLABELED, [])
        for name in options:
            key = normalize_label(name)
            if not key:
                continue
            if any(is_meaningful(v) for v in selections.get(key, [])):
                continue
            if len(options) == 1 and any(is_meaningful(v) for v in unlabeled):
                continue
            issues.append(SelectionIssue(ISSUE_OPTION, name, f"Missing selection for {name}"))

    required_custom = required_customizations(customization_requirements)
    if required_custom:
        selections = collect_customization_selections(customizations)
        for name in required_custom:
            key = normalize_label(name)
            if not key:
                continue
            if any(is_meaningful(v) for v in selections.get(key, [])):
                continue
            issues.append(SelectionIssue(ISSUE_CUSTOMIZATION, name, f"Missing customization: {name}"))

    return issues


def meaningful_strings(value: Any) -> list[str]:
    """Flatten a selection value (str, number, list, {"value": ...}) into meaningful strings."""
    if isinstance(value, (list, tuple)):
        return [text for entry in value for text in meaningful_strings(entry)]
    if isinstance(value, Mapping):
        for key in ("value", "label", "title"):
            if key in value:
                return meaningful_strings(value[key])
        return []
    if isinstance(value, bool) or isinstance(value, (int, float)):
        text = str(value).lower() if isinstance(value, bool) else str(value)
        return [text] if is_meaningful(text) else []
    if isinstance(value, str):
        return [value.strip()] if is_meaningful(value) else []
    return []


def build_detail_lines(selections: Mapping[str, Any] | None, fallback_label: str | None = None) -> list[str]:
    """{"Size": "Large", "Color": ["Red", "Blue"]} -> ["Size: Large", "Color: Red, Blue"]"""
    lines: list[str] = []
    for raw_label, raw_value in (selections or {}).items():
        values = meaningful_strings(raw_value)
        if not values:
            continue
        label = str(raw_label or "").strip() or (fallback_label or "")
        if label:
            lines.append(f"{label}: {', '.join(values)}")
        else:
            lines.extend(values)
    return lines
