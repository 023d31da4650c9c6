# Overview: Pytest coverage for metadata flattening, cart item mapping and selection checks.

"""
Cart Normalization Tests

Pure-function tests (no database) for:
1. Metadata priority and provenance
2. Stripe line item -> CartItem mapping
3. Storefront cart payload -> CartItem mapping
4. Required option / customization validation
"""

import json

from backoffice.services.cart_item_service import (
    compose_display_name,
    expand_option_value,
    extract_option_details,
    extract_upgrades,
    humanize,
    map_line_item,
    map_raw_cart_item,
    split_list_value,
)
from backoffice.services.metadata_service import collect, coerce_metadata_value
from backoffice.services.selection_service import build_detail_lines, normalize_label, validate_selections

from fakes import make_line_item


class TestMetadataCollection:
    """Ordered metadata bags flatten with first-wins semantics."""

    def test_line_item_value_beats_session_value(self):
        result = collect([("line_item", {"sku": "A"}), ("session", {"sku": "B"})])

        assert result.flat["sku"] == "A"
        assert [(e.value, e.source) for e in result.entries] == [("A", "line_item"), ("B", "session")]

    def test_blank_and_none_values_are_dropped(self):
        result = collect([("session", {"a": "  ", "b": None, "c": " x "})])

        assert result.flat == {"c": "x"}
        assert len(result.entries) == 1

    def test_non_string_values_are_coerced(self):
        assert coerce_metadata_value(3) == "3"
        assert coerce_metadata_value(True) == "true"
        assert coerce_metadata_value(["a", "b"]) == '["a", "b"]'
        assert coerce_metadata_value(float("nan")) is None

    def test_missing_bags_are_tolerated(self):
        result = collect([("line_item", None), ("price", "not a dict"), ("session", {"k": "v"})])

        assert result.flat == {"k": "v"}

    def test_derived_entries_are_not_duplicated(self):
        result = collect([])
        result.add_derived("catalog_sku", "BRK-001")
        result.add_derived("catalog_sku", "BRK-001")

        assert len(result.entries) == 1


class TestTextHelpers:
    """Helpers used to build display names."""

    def test_humanize(self):
        assert humanize("vehicle_model") == "Vehicle Model"
        assert humanize("optionColor") == "Option Color"

    def test_expand_option_value_json_list(self):
        value = json.dumps([{"name": "Size", "value": "L"}, "Matte"])

        assert expand_option_value(value) == ["Size: L", "Matte"]

    def test_expand_option_value_plain_text(self):
        assert expand_option_value("Large") == ["Large"]

    def test_split_list_value(self):
        assert split_list_value("a, b; c|d") == ["a", "b", "c", "d"]
        assert split_list_value('["x", "y"]') == ["x", "y"]

    def test_compose_display_name(self):
        name = compose_display_name("Brake Kit", "Size: Large", ["Ceramic Pads"])

        assert name == "Brake Kit • Size: Large • Upgrades: Ceramic Pads"

    def test_compose_display_name_skips_repeated_summary(self):
        assert compose_display_name("Brake Kit Size: Large", "Size: Large", []) == "Brake Kit Size: Large"


class TestOptionExtraction:
    """Option and upgrade keys in flattened metadata."""

    def test_option_name_value_pairs(self):
        summary, details = extract_option_details({"option1_name": "Size", "option1_value": "Large"})

        assert summary == "Size: Large"
        assert details == ["Size: Large"]

    def test_keyword_keys_become_labelled_details(self):
        summary, details = extract_option_details({"vehicle_model": "Model 3", "sku": "X"})

        assert details == ["Vehicle Model: Model 3"]

    def test_shipping_option_keys_are_ignored(self):
        summary, details = extract_option_details({"shipping_option": "ground"})

        assert summary is None
        assert details == []

    def test_upgrades_skip_total_keys(self):
        upgrades = extract_upgrades({"upgrades": "Pads, Rotors", "upgrades_total": "40.00"})

        assert upgrades == ["Pads", "Rotors"]


class TestMapLineItem:
    """Stripe line item mapping."""

    def test_maps_price_product_and_options(self):
        line_item = make_line_item(
            "li_1",
            name="Brake Kit",
            unit_amount=2501,
            quantity=2,
            price_id="price_brk",
            product_id="prod_brk",
            product_metadata={"sku": "BRK-001", "option1_name": "Size", "option1_value": "Large"},
        )

        item = map_line_item(line_item, {"customer_email": "ada@example.com"})

        assert item.line_item_id == "li_1"
        assert item.sku == "BRK-001"
        assert item.stripe_price_id == "price_brk"
        assert item.stripe_product_id == "prod_brk"
        assert item.price == 25.01
        assert item.quantity == 2
        assert item.option_summary == "Size: Large"
        assert item.name == "Brake Kit • Size: Large"

    def test_line_item_metadata_wins_over_session_metadata(self):
        line_item = make_line_item("li_1", name="Kit", unit_amount=100, line_metadata={"sku": "A"})

        item = map_line_item(line_item, {"sku": "B"})

        assert item.sku == "A"
        sources = [entry["source"] for entry in item.to_dict()["metadata"] if entry["key"] == "sku"]
        assert sources == ["line_item", "session"]

    def test_missing_fields_are_none_not_errors(self):
        item = map_line_item({"id": "li_x"})

        assert item.sku is None
        assert item.price is None
        assert item.quantity is None
        assert item.effective_quantity == 1

    def test_price_falls_back_to_metadata(self):
        line_item = {"id": "li_2", "description": "Gift", "metadata": {"unit_price": "12.5"}}

        item = map_line_item(line_item)

        assert item.price == 12.5

    def test_summary_metadata_keeps_its_own_labels(self):
        line_item = make_line_item(
            "li_3",
            name="Shop Tee",
            unit_amount=2000,
            product_metadata={"option_summary": "Size: Large, Color: Red"},
        )

        item = map_line_item(line_item)

        assert item.option_details == ["Size: Large", "Color: Red"]
        assert item.option_summary == "Size: Large, Color: Red"

    def test_customizations_metadata_is_read_back(self):
        line_item = make_line_item(
            "li_4",
            name="Shop Tee",
            unit_amount=2000,
            product_metadata={"customizations": "Name on back: ADA, JR; Number: 7"},
        )

        item = map_line_item(line_item)

        assert item.customizations == ["Name on back: ADA, JR", "Number: 7"]

    def test_session_category_does_not_tag_items(self):
        line_item = make_line_item("li_5", name="Kit", unit_amount=100, product_metadata={"category": "Brakes"})

        item = map_line_item(line_item, {"category": "Promo"})

        assert item.categories == ["Brakes"]


class TestMapRawCartItem:
    """Storefront cart payload mapping."""

    def test_options_mapping_becomes_detail_lines(self):
        item = map_raw_cart_item({
            "sku": "BRK-001",
            "name": "Brake Kit",
            "price": "25.01",
            "quantity": 1,
            "options": {"Size": "Large", "Finish": ""},
            "upgrades": [{"name": "Ceramic Pads"}],
            "upgrades_total": 40,
        })

        assert item.option_details == ["Size: Large"]
        assert item.option_summary == "Size: Large"
        assert item.upgrades == ["Ceramic Pads"]
        assert item.upgrades_total == 40.0
        assert item.price == 25.01

    def test_fractional_quantity_is_rejected(self):
        item = map_raw_cart_item({"sku": "X", "quantity": 2.5})

        assert item.quantity is None

    def test_negative_price_is_dropped(self):
        item = map_raw_cart_item({"sku": "X", "price": -3})

        assert item.price is None


class TestSelectionValidation:
    """Required options and customizations."""

    def test_missing_required_option(self):
        issues = validate_selections(
            option_requirements=[{"name": "Size"}],
            customization_requirements=[],
            option_summary=None,
            option_details=[],
            customizations=[],
        )

        assert [i.message for i in issues] == ["Missing selection for Size"]

    def test_labelled_selection_satisfies_requirement(self):
        issues = validate_selections(
            option_requirements=[{"name": "Size"}, {"name": "Color"}],
            customization_requirements=[],
            option_summary="Size Option: Large, Color: Red",
            option_details=[],
            customizations=[],
        )

        assert issues == []

    def test_placeholder_value_does_not_count(self):
        issues = validate_selections(
            option_requirements=[{"name": "Size"}],
            customization_requirements=[],
            option_summary="Size: n/a",
            option_details=[],
            customizations=[],
        )

        assert len(issues) == 1

    def test_unlabelled_value_satisfies_single_requirement_only(self):
        single = validate_selections(
            option_requirements=["Size"],
            customization_requirements=None,
            option_summary="Large",
            option_details=None,
            customizations=None,
        )
        double = validate_selections(
            option_requirements=["Size", "Color"],
            customization_requirements=None,
            option_summary="Large",
            option_details=None,
            customizations=None,
        )

        assert single == []
        assert len(double) == 2

    def test_optional_option_is_not_required(self):
        issues = validate_selections(
            option_requirements=[{"name": "Size", "required": False}],
            customization_requirements=[],
            option_summary=None,
            option_details=[],
            customizations=[],
        )

        assert issues == []

    def test_customization_required_only_when_flagged(self):
        issues = validate_selections(
            option_requirements=[],
            customization_requirements=[{"name": "Engraving", "required": True}, {"name": "Note"}],
            option_summary=None,
            option_details=[],
            customizations=["Note: hi"],
        )

        assert [i.message for i in issues] == ["Missing customization: Engraving"]

    def test_normalize_label_drops_filler_words(self):
        assert normalize_label("Size Option") == "size"
        assert normalize_label("Selected-Color") == "color"

    def test_build_detail_lines(self):
        lines = build_detail_lines({"Size": "Large", "Color": ["Red", "Blue"], "Empty": "none"})

        assert lines == ["Size: Large", "Color: Red, Blue"]
