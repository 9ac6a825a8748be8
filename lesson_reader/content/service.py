"""Lesson content orchestration: cache → fetch → extract → rewrite → sanitize.

Concurrent requests for the same uncached lesson share one pipeline run.
The in-flight marker is cleared when that run finishes, successfully or
not, so a failure never blocks later retries and is never cached.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Optional

import httpx

from lesson_reader.config import Settings, settings as default_settings
from lesson_reader.content.cache import LessonContentCache
from lesson_reader.content.extractor import BannerImageRule, extract_lesson_html
from lesson_reader.content.fetcher import assert_allowed_lesson_url, fetch_lesson_html
from lesson_reader.content.kv import KeyValueStore, build_key_value_store
from lesson_reader.content.links import rewrite_lesson_doc_links
from lesson_reader.content.models import LessonContentResult, LessonDocIdMap, LessonSource
from lesson_reader.content.sanitizer import sanitize_lesson_html

logger = logging.getLogger(__name__)


def _retrieve_exception(task: "asyncio.Future[LessonContentResult]") -> None:
    # Failures are logged by _load; mark them retrieved even if every waiter
    # was cancelled.
    if not task.cancelled():
        task.exception()


class LessonContentService:
    """Long-lived service owning the lesson content cache and in-flight map."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        *,
        store: Optional[KeyValueStore] = None,
        cache: Optional[LessonContentCache] = None,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or default_settings
        if cache is None:
            if store is None:
                store = build_key_value_store(self.config)
            cache = LessonContentCache(store, ttl=self.config.cache_ttl, clock=clock)
        self.cache = cache
        self._client = client
        self._banner_rule = BannerImageRule.from_settings(self.config)
        self._in_flight: Dict[str, "asyncio.Future[LessonContentResult]"] = {}

    async def fetch_lesson_content(
        self,
        lesson: LessonSource,
        *,
        bypass_cache: bool = False,
        doc_id_map: Optional[LessonDocIdMap] = None,
        log_errors: bool = True,
    ) -> LessonContentResult:
        """Return sanitized HTML for *lesson*, from cache when possible.

        Raises:
            LessonContentError: Any fetch or validation failure, unchanged.
        """

        def rewrite(html: str) -> str:
            return rewrite_lesson_doc_links(html, doc_id_map) if doc_id_map else html

        if not bypass_cache:
            cached_html = await self.cache.get(lesson.id)
            if cached_html is not None:
                logger.debug("Lesson content cache hit for %s", lesson.id)
                rewritten = rewrite(cached_html)
                if rewritten != cached_html:
                    await self.cache.set(lesson.id, rewritten)
                return LessonContentResult(lesson_id=lesson.id, html=rewritten, cached=True)

            in_flight = self._in_flight.get(lesson.id)
            if in_flight is not None:
                logger.debug("Joining in-flight lesson content fetch for %s", lesson.id)
                return await asyncio.shield(in_flight)

        logger.debug("Lesson content cache miss for %s", lesson.id)
        task = asyncio.ensure_future(self._load(lesson, rewrite, log_errors))
        if not bypass_cache:
            self._in_flight[lesson.id] = task
            task.add_done_callback(lambda done: self._release(lesson.id, done))
        task.add_done_callback(_retrieve_exception)
        return await asyncio.shield(task)

    def _release(self, lesson_id: str, task: "asyncio.Future[LessonContentResult]") -> None:
        if self._in_flight.get(lesson_id) is task:
            del self._in_flight[lesson_id]

    async def _load(
        self,
        lesson: LessonSource,
        rewrite: Callable[[str], str],
        log_errors: bool,
    ) -> LessonContentResult:
        try:
            validated_url = assert_allowed_lesson_url(lesson.published_url)
            if self.config.mock_html_enabled:
                html = sanitize_lesson_html(rewrite(self.config.lesson_content_mock_html or ""))
            else:
                raw_html = await fetch_lesson_html(
                    validated_url,
                    client=self._client,
                    max_redirects=self.config.max_redirects,
                    timeout=self.config.fetch_timeout,
                )
                extracted = extract_lesson_html(raw_html, self._banner_rule)
                html = sanitize_lesson_html(rewrite(extracted))
        except Exception:
            if log_errors:
                logger.error(
                    "Lesson content fetch failed: lesson_id=%s published_url=%s",
                    lesson.id,
                    lesson.published_url,
                    exc_info=True,
                )
            raise

        await self.cache.set(lesson.id, html)
        return LessonContentResult(lesson_id=lesson.id, html=html, cached=False)

    def clear(self) -> None:
        """Forget cached content (test hook); in-flight runs are left alone."""
        self.cache.clear()
