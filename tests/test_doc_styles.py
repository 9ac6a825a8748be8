"""Tests for inline-style → ``doc-*`` class translation."""

from __future__ import annotations

import pytest
from bs4 import BeautifulSoup

from lesson_reader.content.doc_styles import (
    apply_doc_class_styles,
    extract_doc_style_classes,
    merge_class_names,
    parse_css_length,
    round_px,
    split_class_names,
    strip_inline_style,
)


# ---------------------------------------------------------------------------
# parse_css_length
# ---------------------------------------------------------------------------

class TestParseCssLength:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("24px", 24.0),
            ("12pt", 16.0),
            ("1.5rem", 24.0),
            ("2em", 32.0),
            ("10", 10.0),
            (" 36pt ", 48.0),
        ],
    )
    def test_supported_units(self, value: str, expected: float) -> None:
        assert parse_css_length(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", ["auto", "50%", "", "1in", "px"])
    def test_unsupported_values_return_none(self, value: str) -> None:
        assert parse_css_length(value) is None


def test_round_px_rounds_halves_up() -> None:
    assert round_px(2.5) == 3
    assert round_px(2.49) == 2
    assert round_px(0.5) == 1


# ---------------------------------------------------------------------------
# extract_doc_style_classes
# ---------------------------------------------------------------------------

class TestExtractDocStyleClasses:
    def test_bold_italic_underline(self) -> None:
        style = "font-weight:700;font-style:italic;text-decoration:underline"
        assert extract_doc_style_classes(style) == ["doc-bold", "doc-italic", "doc-underline"]

    def test_bold_keywords_and_threshold(self) -> None:
        assert extract_doc_style_classes("font-weight: bold") == ["doc-bold"]
        assert extract_doc_style_classes("font-weight: 600") == ["doc-bold"]
        assert extract_doc_style_classes("font-weight: 400") == []
        assert extract_doc_style_classes("font-weight: normal") == []

    def test_case_insensitive(self) -> None:
        assert extract_doc_style_classes("FONT-STYLE: ITALIC") == ["doc-italic"]

    def test_text_decoration_line(self) -> None:
        assert extract_doc_style_classes("text-decoration-line: underline") == ["doc-underline"]

    def test_indent_from_points(self) -> None:
        # 36pt = 48px = two indent steps
        assert extract_doc_style_classes("margin-left: 36pt") == ["doc-indent-2"]

    def test_indent_rounds_half_up(self) -> None:
        assert extract_doc_style_classes("padding-left: 60px") == ["doc-indent-3"]

    def test_indent_uses_largest_property(self) -> None:
        style = "margin-left: 24px; text-indent: 72px"
        assert extract_doc_style_classes(style) == ["doc-indent-3"]

    def test_indent_clamped(self) -> None:
        assert extract_doc_style_classes("margin-left: 400px") == ["doc-indent-4"]
        assert extract_doc_style_classes("margin-left: 4px") == ["doc-indent-1"]

    def test_zero_or_negative_indent_ignored(self) -> None:
        assert extract_doc_style_classes("margin-left: 0; text-indent: -36pt") == []

    def test_vendor_prefixed_property_ignored(self) -> None:
        assert extract_doc_style_classes("-webkit-margin-left: 48px") == []

    def test_empty_style(self) -> None:
        assert extract_doc_style_classes("") == []


# ---------------------------------------------------------------------------
# Class helpers
# ---------------------------------------------------------------------------

class TestClassHelpers:
    def test_split_accepts_strings_and_lists(self) -> None:
        assert split_class_names("a  b ") == ["a", "b"]
        assert split_class_names(["a", "", "b"]) == ["a", "b"]
        assert split_class_names(None) == []

    def test_merge_preserves_order_without_duplicates(self) -> None:
        assert merge_class_names("a b", ["b", "c"]) == ["a", "b", "c"]

    def test_strip_inline_style_keeps_derived_classes(self) -> None:
        attrs = {"class": ["c1"], "style": "font-weight:bold", "id": "x"}
        result = strip_inline_style(attrs)

        assert result == {"class": ["c1", "doc-bold"], "id": "x"}
        assert "style" in attrs, "input must not be mutated"

    def test_strip_inline_style_without_derived_classes(self) -> None:
        assert strip_inline_style({"style": "color: red"}) == {}

    def test_apply_doc_class_styles(self) -> None:
        soup = BeautifulSoup('<p class="c1">x</p><p class="other">y</p>', "html.parser")
        apply_doc_class_styles(soup, {"c1": {"doc-italic", "doc-bold"}})

        first, second = soup.find_all("p")
        assert first["class"] == ["c1", "doc-bold", "doc-italic"]
        assert second["class"] == ["other"]

    def test_apply_doc_class_styles_includes_root(self) -> None:
        soup = BeautifulSoup('<div class="c1"><span>x</span></div>', "html.parser")
        root = soup.div
        apply_doc_class_styles(root, {"c1": {"doc-underline"}})

        assert root["class"] == ["c1", "doc-underline"]
