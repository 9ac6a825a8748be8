"""Data models for the lesson content pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from bs4 import Tag

# Google Doc id -> internal lesson slug.
LessonDocIdMap = Dict[str, str]


@dataclass(frozen=True)
class LessonSource:
    """Identity and published location of one lesson document."""

    id: str
    published_url: str


@dataclass(frozen=True)
class LessonContentResult:
    """Sanitized lesson HTML plus whether it was served from cache."""

    lesson_id: str
    html: str
    cached: bool

    def to_dict(self) -> dict:
        return {"lessonId": self.lesson_id, "html": self.html, "cached": self.cached}


@dataclass(frozen=True)
class BackgroundImageStyle:
    """A CSS background image that can be turned into a real ``<img>``."""

    src: str
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass
class DocStyleMaps:
    """Lookup tables derived from a document's ``<style>`` blocks."""

    class_style_map: Dict[str, Set[str]] = field(default_factory=dict)
    background_image_map: Dict[str, BackgroundImageStyle] = field(default_factory=dict)
    style_nodes: List[Tag] = field(default_factory=list)
