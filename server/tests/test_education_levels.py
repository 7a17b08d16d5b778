"""Tests for the education level catalog."""

import pytest
from app.services.education_levels import (
    DEFAULT_LEVEL,
    EDUCATION_CATEGORIES,
    all_categories,
    level_menu_text,
    resolve_demo_level,
    resolve_level,
)


class TestResolveLevel:
    @pytest.mark.parametrize("digit", ["1", "2", "3", "4", "5", "6", "7"])
    def test_valid_digits_resolve_to_their_category(self, digit):
        assert resolve_level(digit).id == digit

    @pytest.mark.parametrize("value", [None, "", "0", "8", "9", "*", "#", "12", "abc"])
    def test_invalid_values_fall_back_to_default(self, value):
        assert resolve_level(value).id == DEFAULT_LEVEL

    def test_int_and_padded_values_are_accepted(self):
        assert resolve_level(3).id == "3"
        assert resolve_level(" 4 ").id == "4"

    def test_resolution_is_idempotent(self):
        for value in ["1", "9", None, "6"]:
            once = resolve_level(value)
            assert resolve_level(once.id) == once


class TestDemoLevels:
    def test_named_levels_map_to_catalog(self):
        assert resolve_demo_level("elementary").id == "1"
        assert resolve_demo_level("high_school").id == "2"
        assert resolve_demo_level("graduate").id == "4"

    def test_plain_digit_and_unknown_name(self):
        assert resolve_demo_level("7").id == "7"
        assert resolve_demo_level("kindergarten").id == DEFAULT_LEVEL


def test_catalog_has_seven_levels_with_prompts():
    categories = all_categories()
    assert [c.id for c in categories] == ["1", "2", "3", "4", "5", "6", "7"]
    assert all(c.prompt.strip() and c.name and c.tone for c in categories)


def test_menu_mentions_every_digit():
    menu = level_menu_text()
    for category_id in EDUCATION_CATEGORIES:
        assert f"Press {category_id} for" in menu
    assert "Class 1 to 5" in menu
