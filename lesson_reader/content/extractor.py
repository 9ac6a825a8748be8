"""Content extraction: turns a published Google Doc page into lesson HTML.

The steps in :func:`extract_lesson_html` run in a fixed order; several of
them rely on earlier ones (e.g. background images are resolved before the
banner-image pass so synthesized images are considered too).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Union

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

from lesson_reader.config import Settings, settings
from lesson_reader.content.doc_styles import (
    DOC_BOLD,
    add_classes,
    apply_doc_class_styles,
    round_px,
)
from lesson_reader.content.images import (
    apply_background_images,
    extract_css_length_value,
    has_media,
)
from lesson_reader.content.style_maps import extract_style_maps

GOOGLE_DOCS_BANNER_PHRASES = (
    "Published using Google Docs",
    "Report abuse",
    "Updated automatically every 5 minutes",
)

LESSON_FOOTER_PHRASES = ("questions? reach out", "author:", "last updated")

# How many trailing blocks are scanned for footer markers.
FOOTER_SCAN_WINDOW = 12

HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]

NON_CONTENT_TAGS = ("style", "script", "head", "title", "meta", "link")

BLOCK_TAGS = [
    "p", "div", "li", "ul", "ol", "table", "blockquote", "pre", "section",
    "article", "figure", *HEADING_TAGS,
]

_WHITESPACE_RE = re.compile(r"\s+")
_DIVIDER_RE = re.compile(r"[\s\-–—_•·.]+")

Node = Union[Tag, NavigableString]


@dataclass(frozen=True)
class BannerImageRule:
    """Thresholds for deciding that an image is a decorative banner."""

    min_width: int = 520
    max_height: int = 280
    min_aspect_ratio: float = 2.0

    @classmethod
    def from_settings(cls, config: Settings) -> "BannerImageRule":
        return cls(
            min_width=config.banner_min_width,
            max_height=config.banner_max_height,
            min_aspect_ratio=config.banner_min_aspect_ratio,
        )

    def matches(self, width: Optional[int], height: Optional[int]) -> bool:
        if not width or not height:
            return False
        return (
            width >= self.min_width
            and height <= self.max_height
            and width / height >= self.min_aspect_ratio
        )


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

def normalize_text(text: Optional[str]) -> str:
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def _text(node: Node) -> str:
    if isinstance(node, Tag):
        return normalize_text(node.get_text())
    return normalize_text(str(node))


def has_meaningful_text(node: Node) -> bool:
    return _text(node) != ""


def _is_empty(element: Tag) -> bool:
    return not has_meaningful_text(element) and not has_media(element)


def _element_children(element: Tag) -> List[Tag]:
    return [
        child
        for child in element.children
        if isinstance(child, Tag) and child.name not in NON_CONTENT_TAGS
    ]


def _previous_element(element: Tag) -> Optional[Tag]:
    sibling = element.previous_sibling
    while sibling is not None and not isinstance(sibling, Tag):
        sibling = sibling.previous_sibling
    return sibling


def _is_divider(element: Tag) -> bool:
    if element.name == "hr":
        return True
    text = _text(element)
    return bool(text) and _DIVIDER_RE.fullmatch(text) is not None


# ---------------------------------------------------------------------------
# Pipeline steps
# ---------------------------------------------------------------------------

def find_content_root(soup: BeautifulSoup) -> Tag:
    return soup.find(id="contents") or soup.select_one(".doc-content") or soup.body or soup


def _find_title_element(root: Tag) -> Optional[Tag]:
    candidate = root.select_one(".doc-title, .title")
    if candidate is not None and has_meaningful_text(candidate):
        return candidate

    for child in _element_children(root):
        if has_meaningful_text(child):
            return child if child.name == "h1" else None
    return None


def remove_lesson_title(root: Tag) -> None:
    title = _find_title_element(root)
    if title is None:
        return

    parent = title.parent
    title.decompose()
    if parent is not None and parent is not root and _is_empty(parent):
        parent.decompose()


def _exclusive_wrapper(node: Node, root: Tag) -> Node:
    """Climb from *node* while each ancestor holds nothing but *node*'s text."""
    text = _text(node)
    current: Node = node
    while current.parent is not None and current.parent is not root:
        if _text(current.parent) != text or has_media(current.parent):
            break
        current = current.parent
    return current


def strip_google_docs_banner(root: Tag) -> None:
    """Remove Google Docs publishing banners and a duplicated leading block."""
    for string in list(root.find_all(string=True)):
        if isinstance(string, PreformattedString) or string.parent is None:
            continue
        text = normalize_text(str(string))
        if text and any(phrase in text for phrase in GOOGLE_DOCS_BANNER_PHRASES):
            _exclusive_wrapper(string, root).extract()

    # Phrases split across inline elements, e.g. "Published using <a>Google Docs</a>".
    matches = [
        element
        for element in root.find_all(True)
        if any(phrase in _text(element) for phrase in GOOGLE_DOCS_BANNER_PHRASES)
    ]
    for element in matches:
        innermost = not any(
            other is not element and any(parent is element for parent in other.parents)
            for other in matches
        )
        if innermost and element.parent is not None:
            _exclusive_wrapper(element, root).extract()

    children = _element_children(root)
    if len(children) >= 2:
        first, second = _text(children[0]), _text(children[1])
        if first and first == second:
            children[0].decompose()


def strip_lesson_footer(root: Tag) -> None:
    """Remove the trailing contact/author/last-updated region."""
    blocks = root.find_all(["p", "li", "hr"])
    if not blocks:
        return

    tail = blocks[max(0, len(blocks) - FOOTER_SCAN_WINDOW):]
    footer_start = next(
        (
            block
            for block in tail
            if any(phrase in _text(block).lower() for phrase in LESSON_FOOTER_PHRASES)
        ),
        None,
    )
    if footer_start is None:
        return

    start = footer_start
    previous = _previous_element(start)
    while previous is not None and (_is_divider(previous) or _is_empty(previous)):
        start = previous
        previous = _previous_element(start)

    parent = start.parent
    if parent is None:
        return

    doomed: List[Node] = [start, *start.next_siblings]
    for node in doomed:
        node.extract()

    cleanup: Optional[Tag] = parent
    while cleanup is not None and cleanup is not root:
        if not _is_empty(cleanup):
            break
        next_parent = cleanup.parent
        cleanup.decompose()
        cleanup = next_parent


def strip_horizontal_rules(root: Tag) -> None:
    for rule in root.find_all("hr"):
        if not rule.decomposed:
            rule.decompose()


def _trim_leading_whitespace_nodes(cell: Tag) -> None:
    for node in list(cell.children):
        if isinstance(node, PreformattedString):
            node.extract()
            continue
        if isinstance(node, NavigableString):
            if has_meaningful_text(node):
                return
            node.extract()
            continue
        if node.name == "br" or _is_empty(node):
            node.decompose()
            continue
        return


def trim_table_cell_whitespace(root: Tag) -> None:
    for cell in root.find_all(["td", "th"]):
        if not cell.decomposed:
            _trim_leading_whitespace_nodes(cell)


def _image_dimensions(img: Tag):
    def _attr(name: str) -> Optional[int]:
        raw = img.get(name)
        if raw is None:
            return None
        # Percentages are relative to the container and say nothing about pixels.
        match = re.fullmatch(r"\s*(\d+(?:\.\d+)?)\s*(?:px)?\s*", str(raw))
        return round_px(float(match.group(1))) if match else None

    style = img.get("style")
    width = _attr("width") or extract_css_length_value(style, "width")
    height = _attr("height") or extract_css_length_value(style, "height")
    return width, height


def _containing_block(img: Tag, root: Tag) -> Tag:
    block = img
    for parent in img.parents:
        if parent is root or parent is None:
            break
        block = parent
        if parent.name in BLOCK_TAGS:
            break
    return block


def strip_banner_images(root: Tag, rule: BannerImageRule) -> None:
    """Drop wide, short images that sit above the first real text block."""
    positions = {id(node): index for index, node in enumerate(root.descendants)}
    first_text_position = next(
        (
            positions[id(node)]
            for node in root.descendants
            if isinstance(node, NavigableString)
            and not isinstance(node, PreformattedString)
            and node.parent.name not in NON_CONTENT_TAGS
            and has_meaningful_text(node)
        ),
        None,
    )

    for img in root.find_all("img"):
        if img.decomposed:
            continue
        if first_text_position is not None and positions[id(img)] > first_text_position:
            break
        if not rule.matches(*_image_dimensions(img)):
            continue

        block = _containing_block(img, root)
        if has_meaningful_text(block):
            continue
        img.decompose()
        if block is not img and _is_empty(block):
            block.decompose()


def strip_style_nodes(style_nodes: List[Tag]) -> None:
    for node in style_nodes:
        if not node.decomposed:
            node.decompose()


def strip_empty_anchors(root: Tag) -> None:
    for anchor in root.find_all("a"):
        if anchor.decomposed:
            continue
        if anchor.has_attr("id") or anchor.has_attr("name"):
            continue
        if not has_meaningful_text(anchor) and anchor.find(["img", "svg"]) is None:
            anchor.decompose()


def remove_empty_headings(root: Tag) -> None:
    for heading in root.find_all(HEADING_TAGS):
        if not heading.decomposed and not has_meaningful_text(heading):
            heading.decompose()


def normalize_heading_levels(root: Tag) -> None:
    """Re-tag headings so none jumps more than one level below the previous."""
    current_level = 1
    for heading in root.find_all(HEADING_TAGS):
        level = int(heading.name[1])
        target_level = min(level, current_level + 1)
        if target_level != level:
            heading.name = f"h{target_level}"
        current_level = target_level


def bolden_primary_headings(root: Tag) -> None:
    for heading in root.find_all("h1"):
        add_classes(heading, [DOC_BOLD])


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_lesson_html(raw_html: str, banner_rule: Optional[BannerImageRule] = None) -> str:
    """Extract the lesson body from a published document page.

    Returns the inner markup of the content root.  The result is not yet
    safe to render: it still carries inline styles and arbitrary tags until
    it goes through the sanitizer.
    """
    banner_rule = banner_rule or BannerImageRule.from_settings(settings)
    soup = BeautifulSoup(raw_html, "html.parser")
    root = find_content_root(soup)
    style_maps = extract_style_maps(soup)

    remove_lesson_title(root)
    strip_google_docs_banner(root)
    strip_lesson_footer(root)
    strip_horizontal_rules(root)
    trim_table_cell_whitespace(root)
    apply_doc_class_styles(root, style_maps.class_style_map)
    apply_background_images(root, soup, style_maps.background_image_map)
    strip_banner_images(root, banner_rule)
    strip_style_nodes(style_maps.style_nodes)
    strip_empty_anchors(root)
    remove_empty_headings(root)
    normalize_heading_levels(root)
    bolden_primary_headings(root)

    return root.decode_contents()
