"""Build the Google Doc id → lesson slug map used for link rewriting."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional

from lesson_reader.content.links import extract_doc_id_from_url
from lesson_reader.content.models import LessonDocIdMap

LESSON_DOC_LINK_MAP_TTL = 60 * 60  # seconds


@dataclass(frozen=True)
class SupersedingLesson:
    slug: str
    is_archived: bool = False


@dataclass(frozen=True)
class LessonLinkRecord:
    """The catalog fields needed to map a lesson document to its slug."""

    slug: str
    published_url: str
    google_doc_id: Optional[str] = None
    is_archived: bool = False
    superseded_by: Optional[SupersedingLesson] = None


def resolve_lesson_slug(lesson: LessonLinkRecord) -> Optional[str]:
    """Archived lessons point at their live successor, or nowhere."""
    if not lesson.is_archived:
        return lesson.slug
    if lesson.superseded_by and not lesson.superseded_by.is_archived:
        return lesson.superseded_by.slug
    return None


def build_lesson_doc_id_map(lessons: Iterable[LessonLinkRecord]) -> LessonDocIdMap:
    doc_id_map: LessonDocIdMap = {}
    for lesson in lessons:
        doc_id = lesson.google_doc_id or extract_doc_id_from_url(lesson.published_url)
        if not doc_id:
            continue
        slug = resolve_lesson_slug(lesson)
        if slug:
            doc_id_map[doc_id] = slug
    return doc_id_map


class LessonDocIdMapCache:
    """Caches the map produced by *loader* with a TTL and coalesced reloads."""

    def __init__(
        self,
        loader: Callable[[], Awaitable[Iterable[LessonLinkRecord]]],
        *,
        ttl: float = LESSON_DOC_LINK_MAP_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._loader = loader
        self._ttl = ttl
        self._clock = clock
        self._map: Optional[LessonDocIdMap] = None
        self._expires_at = 0.0
        self._in_flight: Optional["asyncio.Future[LessonDocIdMap]"] = None

    async def _build(self) -> LessonDocIdMap:
        return build_lesson_doc_id_map(await self._loader())

    async def get(self, *, bypass_cache: bool = False) -> LessonDocIdMap:
        if bypass_cache:
            return await self._build()

        if self._map is not None and self._expires_at > self._clock():
            return self._map
        if self._in_flight is not None:
            return await asyncio.shield(self._in_flight)

        started_at = self._clock()
        task = asyncio.ensure_future(self._build())
        self._in_flight = task
        try:
            doc_id_map = await asyncio.shield(task)
        finally:
            if self._in_flight is task:
                self._in_flight = None

        self._map = doc_id_map
        self._expires_at = started_at + self._ttl
        return doc_id_map

    def clear(self) -> None:
        self._map = None
        self._expires_at = 0.0
