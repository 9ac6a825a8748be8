"""Build class lookup tables from a document's ``<style>`` blocks."""

from __future__ import annotations

import re

from bs4 import BeautifulSoup

from lesson_reader.content.doc_styles import extract_doc_style_classes
from lesson_reader.content.images import (
    extract_background_image,
    extract_css_length_value,
    is_allowed_image_src,
)
from lesson_reader.content.models import BackgroundImageStyle, DocStyleMaps

_RULE_RE = re.compile(r"([^{}]+)\{([^}]+)\}")
_CLASS_SELECTOR_RE = re.compile(r"\.([a-zA-Z0-9_-]+)")
_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)


def extract_style_maps(soup: BeautifulSoup) -> DocStyleMaps:
    """Map CSS class names to ``doc-*`` classes and allowed background images.

    Every class named in a rule's selector receives the rule's derived
    classes; selectors are not otherwise interpreted.
    """
    style_nodes = soup.find_all("style")
    maps = DocStyleMaps(style_nodes=list(style_nodes))
    if not style_nodes:
        return maps

    css_text = _COMMENT_RE.sub("", "\n".join(node.get_text() for node in style_nodes))
    for match in _RULE_RE.finditer(css_text):
        selectors, declarations = match.group(1), match.group(2)
        doc_classes = extract_doc_style_classes(declarations)
        background = extract_background_image(declarations)
        allowed_background = background if is_allowed_image_src(background) else None
        if not doc_classes and not allowed_background:
            continue

        width = extract_css_length_value(declarations, "width")
        height = extract_css_length_value(declarations, "height")
        for selector in selectors.split(","):
            for class_name in _CLASS_SELECTOR_RE.findall(selector):
                if doc_classes:
                    maps.class_style_map.setdefault(class_name, set()).update(doc_classes)
                if allowed_background:
                    maps.background_image_map[class_name] = BackgroundImageStyle(
                        src=allowed_background, width=width, height=height
                    )

    return maps
