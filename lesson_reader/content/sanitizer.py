"""Allowlist sanitizer for lesson HTML.

Tag-specific transforms run first on a BeautifulSoup tree (they need the
inline ``style`` values before those are dropped), then ``bleach`` enforces
the tag and attribute allowlist on the result.
"""

from __future__ import annotations

from typing import List, Optional
from urllib.parse import urlsplit

import bleach
from bs4 import BeautifulSoup, Tag

from lesson_reader.content.doc_styles import split_class_names, strip_inline_style
from lesson_reader.content.images import (
    IMAGE_DEFAULT_ATTRS,
    build_image_tag,
    extract_background_image,
    extract_css_length_value,
    is_allowed_image_src,
)

ALLOWED_TAGS = bleach.sanitizer.ALLOWED_TAGS.union(
    {
        "address", "article", "aside", "footer", "header", "main", "nav", "section",
        "h1", "h2", "h3", "h4", "h5", "h6", "hgroup",
        "dd", "div", "dl", "dt", "figcaption", "figure", "hr", "p", "pre",
        "bdi", "bdo", "br", "cite", "data", "dfn", "kbd", "mark", "q",
        "rb", "rp", "rt", "rtc", "ruby", "s", "samp", "small", "span",
        "sub", "sup", "time", "u", "var", "wbr",
        "caption", "col", "colgroup", "table", "tbody", "td", "tfoot", "th", "thead", "tr",
        "img",
    }
)

ALLOWED_ATTRS = {
    "*": ["class", "id"],
    "a": ["href", "name", "target", "rel", "title"],
    "img": ["src", "alt", "title", "width", "height", "loading", "decoding", "referrerpolicy"],
    "ol": ["start"],
    "li": ["value"],
    "table": ["border", "cellpadding", "cellspacing", "width"],
    "th": ["colspan", "rowspan", "scope", "width", "height", "valign"],
    "td": ["colspan", "rowspan", "width", "height", "valign"],
    "colgroup": ["span", "width"],
    "col": ["span", "width"],
    "abbr": ["title"],
    "acronym": ["title"],
}

ALLOWED_PROTOCOLS = ["http", "https", "ftp", "mailto", "tel"]

# Elements whose contents are dropped together with the element.
DISCARDED_TAGS = ["script", "style", "textarea", "option", "noscript", "template", "head", "title"]

_INTERNAL_PREFIXES = ("#", "/", "./", "../", "mailto:", "tel:", "sms:")
_EXTERNAL_REL = ("noopener", "noreferrer")


def is_external_href(href: Optional[str]) -> bool:
    """Return ``True`` if *href* leaves the app (absolute http(s) or ``//host``)."""
    if not href:
        return False
    trimmed = href.strip()
    if not trimmed:
        return False
    if trimmed.startswith("//"):
        return True
    if trimmed.startswith(_INTERNAL_PREFIXES):
        return False
    try:
        parts = urlsplit(trimmed)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def _transform_anchor(tag: Tag) -> None:
    attrs = strip_inline_style(tag.attrs)
    if is_external_href(attrs.get("href")):
        attrs["target"] = "_blank"
        rel: List[str] = split_class_names(attrs.get("rel"))
        for value in _EXTERNAL_REL:
            if value not in rel:
                rel.append(value)
        attrs["rel"] = " ".join(rel)
    else:
        attrs.pop("target", None)
        attrs.pop("rel", None)
    tag.attrs = attrs


def _transform_image(tag: Tag, soup: BeautifulSoup) -> None:
    if not is_allowed_image_src(tag.get("src")):
        # Swap in an empty placeholder instead of dropping the node.
        tag.replace_with(soup.new_tag("span"))
        return

    style = tag.get("style")
    attrs = strip_inline_style(tag.attrs)
    width = extract_css_length_value(style, "width")
    height = extract_css_length_value(style, "height")
    if width and not attrs.get("width"):
        attrs["width"] = str(width)
    if height and not attrs.get("height"):
        attrs["height"] = str(height)
    if not attrs.get("alt"):
        attrs["alt"] = ""
    for name, value in IMAGE_DEFAULT_ATTRS.items():
        attrs.setdefault(name, value)
    tag.attrs = attrs


def _transform_span(tag: Tag, soup: BeautifulSoup) -> None:
    style = tag.get("style")
    background = extract_background_image(style)
    if background and is_allowed_image_src(background):
        width = extract_css_length_value(style, "width")
        height = extract_css_length_value(style, "height")
        tag.replace_with(build_image_tag(soup, background, width, height))
        return
    tag.attrs = strip_inline_style(tag.attrs)


def _transform_table_cell(tag: Tag) -> None:
    attrs = strip_inline_style(tag.attrs)
    attrs["valign"] = "top"
    tag.attrs = attrs


def _apply_transforms(soup: BeautifulSoup) -> None:
    for tag in soup.find_all(DISCARDED_TAGS):
        if not tag.decomposed:
            tag.decompose()

    for tag in soup.find_all(True):
        if tag.parent is None:
            continue
        if tag.name == "a":
            _transform_anchor(tag)
        elif tag.name == "img":
            _transform_image(tag, soup)
        elif tag.name == "span":
            _transform_span(tag, soup)
        elif tag.name in ("td", "th"):
            _transform_table_cell(tag)
        else:
            tag.attrs = strip_inline_style(tag.attrs)


def sanitize_lesson_html(html: str) -> str:
    """Sanitize lesson HTML against the allowlist.

    External links open in a new tab with ``rel="noopener noreferrer"``,
    images from unknown hosts are blanked, and inline styles are replaced by
    their ``doc-*`` class equivalents.  Sanitizing sanitized output is a
    no-op.
    """
    if not html:
        return ""

    soup = BeautifulSoup(html, "html.parser")
    _apply_transforms(soup)

    return bleach.clean(
        soup.decode(),
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRS,
        protocols=ALLOWED_PROTOCOLS,
        strip=True,
        strip_comments=True,
    )
