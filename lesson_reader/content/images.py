"""Image host allowlist and CSS background-image handling."""

from __future__ import annotations

import re
from typing import Dict, Optional
from urllib.parse import urlsplit

from bs4 import BeautifulSoup, Tag

from lesson_reader.content.doc_styles import parse_css_length, round_px, split_class_names
from lesson_reader.content.models import BackgroundImageStyle

ALLOWED_IMAGE_HOSTS = ("docs.google.com", "googleusercontent.com", "gstatic.com")

# Attributes every image emitted by the pipeline carries.
IMAGE_DEFAULT_ATTRS = {
    "loading": "lazy",
    "decoding": "async",
    "referrerpolicy": "no-referrer",
}

_BACKGROUND_RE = re.compile(
    r"background(?:-image)?\s*:\s*[^;]*url\(\s*['\"]?([^'\")]+)['\"]?\s*\)", re.IGNORECASE
)
_URL_RE = re.compile(r"url\(\s*['\"]?([^'\")]+)['\"]?\s*\)", re.IGNORECASE)
_MEDIA_TAGS = ["img", "svg", "video", "iframe"]


def is_allowed_image_host(hostname: str) -> bool:
    hostname = hostname.lower()
    return any(hostname == host or hostname.endswith(f".{host}") for host in ALLOWED_IMAGE_HOSTS)


def is_allowed_image_src(src: Optional[str]) -> bool:
    """Return ``True`` if *src* is an https URL on an allowed image host.

    Protocol-relative sources (``//host/path``) are treated as https.
    """
    if not src:
        return False
    trimmed = src.strip()
    if not trimmed:
        return False
    if trimmed.startswith("//"):
        trimmed = f"https:{trimmed}"

    try:
        parts = urlsplit(trimmed)
    except ValueError:
        return False
    if parts.scheme != "https" or not parts.hostname:
        return False
    return is_allowed_image_host(parts.hostname)


def extract_css_length_value(style: Optional[str], prop: str) -> Optional[int]:
    """Extract *prop* from a declaration block as rounded pixels.

    Only the exact property matches: ``width`` does not pick up
    ``max-width`` or ``border-width``.
    """
    if not style:
        return None
    match = re.search(rf"(?:^|[;{{\s]){re.escape(prop)}\s*:\s*([^;]+)", style, re.IGNORECASE)
    if not match:
        return None
    value = parse_css_length(match.group(1))
    return None if value is None else round_px(value)


def extract_background_image(style: Optional[str]) -> Optional[str]:
    """Return the first ``url(...)`` of a background declaration, if any."""
    if not style:
        return None
    match = _BACKGROUND_RE.search(style)
    if match:
        return match.group(1).strip()
    fallback = _URL_RE.search(style)
    return fallback.group(1).strip() if fallback else None


def has_media(element: Tag) -> bool:
    return element.name in _MEDIA_TAGS or element.find(_MEDIA_TAGS) is not None


def build_image_tag(
    soup: BeautifulSoup,
    src: str,
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> Tag:
    """Create an ``<img>`` with the pipeline's standard attributes."""
    img = soup.new_tag("img")
    img["src"] = src
    img["alt"] = ""
    for name, value in IMAGE_DEFAULT_ATTRS.items():
        img[name] = value
    if width:
        img["width"] = str(width)
    if height:
        img["height"] = str(height)
    return img


def _resolve_background(
    element: Tag, background_image_map: Dict[str, BackgroundImageStyle]
) -> Optional[BackgroundImageStyle]:
    matched: Optional[BackgroundImageStyle] = None
    for class_name in split_class_names(element.get("class")):
        matched = background_image_map.get(class_name)
        if matched:
            break

    inline_style = element.get("style")
    if matched is None:
        inline_src = extract_background_image(inline_style)
        if inline_src and is_allowed_image_src(inline_src):
            return BackgroundImageStyle(
                src=inline_src,
                width=extract_css_length_value(inline_style, "width"),
                height=extract_css_length_value(inline_style, "height"),
            )
        return None

    if inline_style and (matched.width is None or matched.height is None):
        matched = BackgroundImageStyle(
            src=matched.src,
            width=matched.width or extract_css_length_value(inline_style, "width"),
            height=matched.height or extract_css_length_value(inline_style, "height"),
        )
    return matched


def apply_background_images(
    root: Tag,
    soup: BeautifulSoup,
    background_image_map: Dict[str, BackgroundImageStyle],
) -> None:
    """Replace empty elements painted with an allowed background image by ``<img>``.

    The image source comes from the element's mapped class first, then from
    its own inline ``style``.  Elements with any text, or that already hold
    media, are left alone.  A painted ``root`` keeps its place and receives
    the image as its only child.
    """
    elements = [] if isinstance(root, BeautifulSoup) else [root]
    elements.extend(root.find_all(True))
    for element in elements:
        if element.name == "img" or element.parent is None:
            continue
        if element.get_text().strip() or has_media(element):
            continue

        background = _resolve_background(element, background_image_map)
        if background is None:
            continue

        image = build_image_tag(soup, background.src, background.width, background.height)
        if element is root:
            root.clear()
            root.append(image)
        else:
            element.replace_with(image)
