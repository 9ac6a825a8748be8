"""Translate inline CSS declarations into ``doc-*`` semantic classes."""

from __future__ import annotations

import math
import re
from typing import Dict, Iterable, List, Optional, Set

from bs4 import Tag

INDENT_STEP_PX = 24
MAX_INDENT_LEVEL = 4

DOC_BOLD = "doc-bold"
DOC_ITALIC = "doc-italic"
DOC_UNDERLINE = "doc-underline"

_LENGTH_RE = re.compile(r"^(-?\d*\.?\d+)(px|pt|rem|em)?$")
_FONT_WEIGHT_RE = re.compile(r"font-weight\s*:\s*([^;]+)")
_FONT_STYLE_RE = re.compile(r"font-style\s*:\s*([^;]+)")
_TEXT_DECORATION_RE = re.compile(r"text-decoration(?:-line)?\s*:\s*([^;]+)")
_INDENT_PROPERTIES = ("margin-left", "padding-left", "text-indent")


def parse_css_length(value: str) -> Optional[float]:
    """Parse a CSS length into pixels.

    Supports ``px``, ``pt``, ``rem`` and ``em`` (unitless values are taken
    as pixels).  Returns ``None`` for anything else, e.g. ``auto`` or ``50%``.
    """
    match = _LENGTH_RE.match(value.strip())
    if not match:
        return None

    numeric = float(match.group(1))
    unit = match.group(2) or "px"
    if unit == "pt":
        return numeric * (4 / 3)
    if unit in ("rem", "em"):
        return numeric * 16
    return numeric


def round_px(value: float) -> int:
    """Round to whole pixels with halves going up (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def _declaration_value(style: str, prop: str) -> Optional[str]:
    # Match at a declaration boundary only, so "margin-left" never hits
    # "-webkit-margin-left".
    match = re.search(rf"(?:^|[;\s]){re.escape(prop)}\s*:\s*([^;]+)", style)
    return match.group(1) if match else None


def _indent_class(style: str) -> Optional[str]:
    candidates: List[float] = []
    for prop in _INDENT_PROPERTIES:
        raw = _declaration_value(style, prop)
        if raw is None:
            continue
        parsed = parse_css_length(raw)
        if parsed is not None and parsed > 0:
            candidates.append(parsed)

    if not candidates:
        return None

    level = min(MAX_INDENT_LEVEL, max(1, round_px(max(candidates) / INDENT_STEP_PX)))
    return f"doc-indent-{level}"


def extract_doc_style_classes(style: str) -> List[str]:
    """Convert inline style declarations into ``doc-*`` class names.

    >>> extract_doc_style_classes("font-weight:700;font-style:italic")
    ['doc-bold', 'doc-italic']
    """
    normalized = style.lower()
    classes: List[str] = []

    weight_match = _FONT_WEIGHT_RE.search(normalized)
    if weight_match:
        weight = weight_match.group(1).strip()
        numeric = re.match(r"\d+", weight)
        if weight in ("bold", "bolder") or (numeric and int(numeric.group(0)) >= 600):
            classes.append(DOC_BOLD)

    style_match = _FONT_STYLE_RE.search(normalized)
    if style_match and re.search(r"italic|oblique", style_match.group(1)):
        classes.append(DOC_ITALIC)

    decoration_match = _TEXT_DECORATION_RE.search(normalized)
    if decoration_match and "underline" in decoration_match.group(1):
        classes.append(DOC_UNDERLINE)

    indent = _indent_class(normalized)
    if indent:
        classes.append(indent)

    return classes


def split_class_names(value) -> List[str]:
    """Normalise a ``class`` attribute (string or BeautifulSoup list) to a list."""
    if not value:
        return []
    if isinstance(value, str):
        value = value.split()
    return [name.strip() for name in value if name and name.strip()]


def merge_class_names(existing, additions: Iterable[str]) -> List[str]:
    """Merge *additions* into *existing* class names, preserving order."""
    merged = split_class_names(existing)
    for addition in additions:
        if addition not in merged:
            merged.append(addition)
    return merged


def strip_inline_style(attrs: Dict[str, object]) -> Dict[str, object]:
    """Return a copy of *attrs* without ``style``, keeping style-derived classes."""
    next_attrs = dict(attrs)
    style = next_attrs.pop("style", None)
    if not style:
        return next_attrs

    classes = extract_doc_style_classes(str(style))
    if classes:
        next_attrs["class"] = merge_class_names(next_attrs.get("class"), classes)
    return next_attrs


def add_classes(element: Tag, additions: Iterable[str]) -> None:
    additions = list(additions)
    if not additions:
        return
    element["class"] = merge_class_names(element.get("class"), additions)


def apply_doc_class_styles(root: Tag, class_style_map: Dict[str, Set[str]]) -> None:
    """Add mapped ``doc-*`` classes to every element carrying a mapped class."""
    if not class_style_map:
        return

    elements = [root] if root.get("class") else []
    elements.extend(root.find_all(class_=True))

    for element in elements:
        additions: List[str] = []
        for class_name in split_class_names(element.get("class")):
            for doc_class in sorted(class_style_map.get(class_name, ())):
                if doc_class not in additions:
                    additions.append(doc_class)
        add_classes(element, additions)
