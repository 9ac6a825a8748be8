"""Rewrite links between lesson documents into in-app navigation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import parse_qs, urlsplit

from bs4 import BeautifulSoup

from lesson_reader.content.models import LessonDocIdMap

# How many redirect-service wrappers are peeled off before giving up.
MAX_UNWRAP_ATTEMPTS = 3

# Published-to-web documents (/document/d/e/...) are not editable docs and
# never identify a lesson.
_PUBLISHED_SEGMENT = "e"


@dataclass(frozen=True)
class ParsedDocLink:
    doc_id: str
    fragment: str


def _doc_id_from_segments(
    segments: List[str], marker: str, disallowed: frozenset = frozenset()
) -> Optional[str]:
    if marker not in segments:
        return None
    marker_index = segments.index(marker)
    try:
        d_index = segments.index("d", marker_index + 1)
    except ValueError:
        return None

    if d_index + 1 >= len(segments):
        return None
    candidate = segments[d_index + 1]
    if not candidate or candidate in disallowed:
        return None
    return candidate


def _query_param(query: str, *names: str) -> Optional[str]:
    params = parse_qs(query)
    for name in names:
        values = params.get(name)
        if values and values[0]:
            return values[0]
    return None


def parse_doc_link(href: Optional[str]) -> Optional[ParsedDocLink]:
    """Resolve *href* to a Google Doc id, unwrapping ``google.com/url`` links.

    Returns ``None`` for anything that is not a docs/drive document link.
    """
    if not href:
        return None
    current = href.strip()
    if not current:
        return None

    seen = set()
    for _attempt in range(MAX_UNWRAP_ATTEMPTS):
        if current in seen:
            return None
        seen.add(current)

        try:
            parts = urlsplit(current)
            host = (parts.hostname or "").lower()
        except ValueError:
            return None
        if not parts.scheme or not host:
            return None
        if host.startswith("www."):
            host = host[len("www."):]

        if host == "google.com" and parts.path == "/url":
            target = _query_param(parts.query, "q", "url")
            if target and target != current:
                current = target
                continue

        segments = [segment for segment in parts.path.split("/") if segment]
        doc_id: Optional[str] = None
        if host == "docs.google.com":
            doc_id = _doc_id_from_segments(
                segments, "document", frozenset({_PUBLISHED_SEGMENT})
            )
        elif host == "drive.google.com":
            doc_id = _doc_id_from_segments(segments, "file") or _query_param(parts.query, "id")

        if not doc_id:
            return None
        return ParsedDocLink(doc_id=doc_id, fragment=parts.fragment)

    return None


def extract_doc_id_from_url(href: Optional[str]) -> Optional[str]:
    """Return the Google Doc id referenced by *href*, or ``None``."""
    parsed = parse_doc_link(href)
    return parsed.doc_id if parsed else None


def rewrite_lesson_doc_links(html: str, doc_id_map: Optional[LessonDocIdMap]) -> str:
    """Point links to known lesson documents at ``/lesson/{slug}``.

    Internal links lose ``target``/``rel`` so they stay in the reader.  The
    input string is returned untouched when nothing changed.
    """
    if not html or not doc_id_map:
        return html

    soup = BeautifulSoup(html, "html.parser")
    changed = False

    for anchor in soup.find_all("a", href=True):
        parsed = parse_doc_link(anchor["href"])
        if parsed is None:
            continue
        slug = doc_id_map.get(parsed.doc_id)
        if not slug:
            continue

        next_href = f"/lesson/{slug}#{parsed.fragment}" if parsed.fragment else f"/lesson/{slug}"
        if anchor["href"] != next_href:
            anchor["href"] = next_href
            anchor.attrs.pop("target", None)
            anchor.attrs.pop("rel", None)
            changed = True

    return soup.decode_contents() if changed else html
