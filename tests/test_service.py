"""Tests for the lesson content service (cache + pipeline orchestration).

Mocking strategy:
- ``respx`` serves the published document for end-to-end pipeline tests.
- The coalescing tests swap ``fetch_lesson_html`` for a counting coroutine so
  overlapping requests can be observed without a network.
"""

from __future__ import annotations

import asyncio
import gc
import logging

import httpx
import pytest
import respx

from lesson_reader.config import Settings
from lesson_reader.content.kv import InMemoryKeyValueStore
from lesson_reader.content.models import LessonSource
from lesson_reader.content.service import LessonContentService
from lesson_reader.errors import (
    InvalidSourceError,
    TooManyRedirectsError,
    UpstreamFetchFailedError,
)

_URL = "https://docs.google.com/document/d/e/2PACX-lesson/pub"
_LESSON = LessonSource(id="lesson-1", published_url=_URL)

_PAGE = (
    "<html><head><style>.c1{font-weight:700}</style></head><body>"
    '<div id="contents">'
    '<p class="title">Lesson One</p>'
    '<p><span class="c1">Hello</span> <a href="https://docs.google.com/document/d/doc2/edit">next</a></p>'
    "<div>Published using Google Docs</div>"
    "</div></body></html>"
)

_REWRITTEN = '<p><span class="c1 doc-bold">Hello</span> <a href="/lesson/lesson-two">next</a></p>'


def _settings(**overrides) -> Settings:
    values = {
        "app_env": "production",
        "lesson_content_mock_html": None,
        "upstash_redis_rest_url": None,
        "upstash_redis_rest_token": None,
    }
    values.update(overrides)
    return Settings(**values)


class _CountingFetch:
    """Async stand-in for ``fetch_lesson_html`` that records each call."""

    def __init__(self, html: str = _PAGE, delay: float = 0.01) -> None:
        self.html = html
        self.delay = delay
        self.calls = 0

    async def __call__(self, url: str, **kwargs) -> str:
        self.calls += 1
        await asyncio.sleep(self.delay)
        return self.html


@pytest.fixture
def counting_fetch(monkeypatch):
    fake = _CountingFetch()
    monkeypatch.setattr("lesson_reader.content.service.fetch_lesson_html", fake)
    return fake


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class TestPipeline:
    async def test_full_pipeline_with_link_rewrite(self, clock) -> None:
        service = LessonContentService(_settings(), store=InMemoryKeyValueStore(clock), clock=clock)

        with respx.mock:
            respx.get(_URL).mock(return_value=httpx.Response(200, text=_PAGE))
            result = await service.fetch_lesson_content(
                _LESSON, doc_id_map={"doc2": "lesson-two"}
            )

        assert result.lesson_id == "lesson-1"
        assert result.cached is False
        assert result.html == _REWRITTEN

    async def test_second_read_is_cached(self, clock, counting_fetch) -> None:
        service = LessonContentService(_settings(), store=InMemoryKeyValueStore(clock), clock=clock)

        first = await service.fetch_lesson_content(_LESSON)
        second = await service.fetch_lesson_content(_LESSON)

        assert first.cached is False
        assert second.cached is True
        assert second.html == first.html
        assert counting_fetch.calls == 1

    async def test_external_links_open_in_new_tab_without_map(self, clock, counting_fetch) -> None:
        service = LessonContentService(_settings(), store=InMemoryKeyValueStore(clock), clock=clock)

        result = await service.fetch_lesson_content(_LESSON)

        assert 'href="https://docs.google.com/document/d/doc2/edit"' in result.html
        assert 'target="_blank"' in result.html

    async def test_follows_redirects(self, clock) -> None:
        moved = "https://docs.google.com/document/d/e/2PACX-moved/pub"
        service = LessonContentService(_settings(), store=InMemoryKeyValueStore(clock), clock=clock)

        with respx.mock:
            respx.get(_URL).mock(return_value=httpx.Response(302, headers={"Location": moved}))
            respx.get(moved).mock(return_value=httpx.Response(200, text=_PAGE))
            result = await service.fetch_lesson_content(_LESSON)

        assert "Hello" in result.html

    async def test_cache_expires_after_configured_ttl(self, clock, counting_fetch) -> None:
        service = LessonContentService(
            _settings(cache_ttl=10), store=InMemoryKeyValueStore(clock), clock=clock
        )

        await service.fetch_lesson_content(_LESSON)
        clock.advance(11)
        result = await service.fetch_lesson_content(_LESSON)

        assert result.cached is False
        assert counting_fetch.calls == 2


# ---------------------------------------------------------------------------
# Mock mode
# ---------------------------------------------------------------------------

class TestMockMode:
    async def test_mock_html_replaces_fetch(self, clock, counting_fetch) -> None:
        config = _settings(app_env="test", lesson_content_mock_html='<p style="font-style:italic">Mock</p>')
        service = LessonContentService(config, store=InMemoryKeyValueStore(clock), clock=clock)

        result = await service.fetch_lesson_content(_LESSON)

        assert result.html == '<p class="doc-italic">Mock</p>'
        assert counting_fetch.calls == 0

    async def test_mock_html_still_validates_source(self, clock) -> None:
        config = _settings(app_env="local", lesson_content_mock_html="<p>Mock</p>")
        service = LessonContentService(config, store=InMemoryKeyValueStore(clock), clock=clock)

        with pytest.raises(InvalidSourceError):
            await service.fetch_lesson_content(
                LessonSource(id="x", published_url="https://evil.example.com/doc"),
                log_errors=False,
            )

    async def test_mock_html_ignored_outside_local_and_test(self, clock, counting_fetch) -> None:
        config = _settings(app_env="preview", lesson_content_mock_html="<p>Mock</p>")
        service = LessonContentService(config, store=InMemoryKeyValueStore(clock), clock=clock)

        result = await service.fetch_lesson_content(_LESSON)

        assert "Mock" not in result.html
        assert counting_fetch.calls == 1


# ---------------------------------------------------------------------------
# Coalescing and bypass
# ---------------------------------------------------------------------------

class TestCoalescing:
    async def test_concurrent_requests_share_one_fetch(self, clock, counting_fetch) -> None:
        service = LessonContentService(_settings(), store=InMemoryKeyValueStore(clock), clock=clock)

        results = await asyncio.gather(
            *(service.fetch_lesson_content(_LESSON) for _ in range(5))
        )

        assert counting_fetch.calls == 1
        assert len({result.html for result in results}) == 1

    async def test_different_lessons_fetch_independently(self, clock, counting_fetch) -> None:
        service = LessonContentService(_settings(), store=InMemoryKeyValueStore(clock), clock=clock)
        other = LessonSource(id="lesson-2", published_url=_URL)

        await asyncio.gather(
            service.fetch_lesson_content(_LESSON),
            service.fetch_lesson_content(other),
        )

        assert counting_fetch.calls == 2

    async def test_bypass_cache_refetches(self, clock, counting_fetch) -> None:
        service = LessonContentService(_settings(), store=InMemoryKeyValueStore(clock), clock=clock)

        await service.fetch_lesson_content(_LESSON)
        result = await service.fetch_lesson_content(_LESSON, bypass_cache=True)

        assert result.cached is False
        assert counting_fetch.calls == 2

    async def test_instances_share_the_distributed_tier(self, clock, counting_fetch) -> None:
        store = InMemoryKeyValueStore(clock)
        first = LessonContentService(_settings(), store=store, clock=clock)
        second = LessonContentService(_settings(), store=store, clock=clock)

        await first.fetch_lesson_content(_LESSON)
        result = await second.fetch_lesson_content(_LESSON)

        assert result.cached is True
        assert counting_fetch.calls == 1

    async def test_clear_forgets_local_entries(self, clock, counting_fetch) -> None:
        store = InMemoryKeyValueStore(clock)
        service = LessonContentService(_settings(), store=store, clock=clock)

        await service.fetch_lesson_content(_LESSON)
        service.clear()
        store.clear()
        await service.fetch_lesson_content(_LESSON)

        assert counting_fetch.calls == 2


# ---------------------------------------------------------------------------
# Link rewriting on cache hits
# ---------------------------------------------------------------------------

async def test_cache_hit_rewrites_links_and_restores(clock, counting_fetch) -> None:
    service = LessonContentService(_settings(), store=InMemoryKeyValueStore(clock), clock=clock)

    await service.fetch_lesson_content(_LESSON)
    hit = await service.fetch_lesson_content(_LESSON, doc_id_map={"doc2": "lesson-two"})

    assert hit.cached is True
    assert 'href="/lesson/lesson-two"' in hit.html
    assert 'target="_blank"' not in hit.html
    assert service.cache.get_local(_LESSON.id) == hit.html
    assert counting_fetch.calls == 1


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class TestErrors:
    async def test_upstream_failure_is_not_cached(self, clock) -> None:
        service = LessonContentService(_settings(), store=InMemoryKeyValueStore(clock), clock=clock)

        with respx.mock:
            route = respx.get(_URL).mock(
                side_effect=[httpx.Response(500), httpx.Response(200, text=_PAGE)]
            )
            with pytest.raises(UpstreamFetchFailedError):
                await service.fetch_lesson_content(_LESSON, log_errors=False)
            assert service.cache.get_local(_LESSON.id) is None

            result = await service.fetch_lesson_content(_LESSON)

        assert result.cached is False
        assert route.call_count == 2

    async def test_concurrent_callers_all_see_the_error(self, clock, monkeypatch) -> None:
        calls = 0

        async def failing_fetch(url: str, **kwargs) -> str:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            raise TooManyRedirectsError(3)

        monkeypatch.setattr("lesson_reader.content.service.fetch_lesson_html", failing_fetch)
        service = LessonContentService(_settings(), store=InMemoryKeyValueStore(clock), clock=clock)

        results = await asyncio.gather(
            *(service.fetch_lesson_content(_LESSON, log_errors=False) for _ in range(3)),
            return_exceptions=True,
        )

        assert calls == 1
        assert all(isinstance(result, TooManyRedirectsError) for result in results)

    async def test_errors_logged_with_context(self, clock, caplog) -> None:
        service = LessonContentService(_settings(), store=InMemoryKeyValueStore(clock), clock=clock)
        bad = LessonSource(id="bad-lesson", published_url="https://evil.example.com/doc")

        with caplog.at_level(logging.ERROR, logger="lesson_reader.content.service"):
            with pytest.raises(InvalidSourceError):
                await service.fetch_lesson_content(bad)

        assert len(caplog.records) == 1
        message = caplog.records[0].getMessage()
        assert "bad-lesson" in message
        assert "https://evil.example.com/doc" in message
        assert caplog.records[0].exc_info is not None

    async def test_error_logging_can_be_disabled(self, clock, caplog) -> None:
        service = LessonContentService(_settings(), store=InMemoryKeyValueStore(clock), clock=clock)
        bad = LessonSource(id="bad-lesson", published_url="http://docs.google.com/x")

        with caplog.at_level(logging.ERROR, logger="lesson_reader.content.service"):
            with pytest.raises(InvalidSourceError):
                await service.fetch_lesson_content(bad, log_errors=False)

        assert caplog.records == []

    async def test_failure_with_every_waiter_cancelled_is_not_reported(
        self, clock, monkeypatch
    ) -> None:
        async def failing_fetch(url: str, **kwargs) -> str:
            await asyncio.sleep(0.01)
            raise UpstreamFetchFailedError(url=url, status_code=502)

        monkeypatch.setattr("lesson_reader.content.service.fetch_lesson_html", failing_fetch)
        service = LessonContentService(_settings(), store=InMemoryKeyValueStore(clock), clock=clock)
        loop = asyncio.get_running_loop()
        reported = []
        loop.set_exception_handler(lambda _loop, context: reported.append(context))
        try:
            waiter = asyncio.ensure_future(service.fetch_lesson_content(_LESSON, log_errors=False))
            await asyncio.sleep(0)
            waiter.cancel()
            with pytest.raises(asyncio.CancelledError):
                await waiter

            await asyncio.sleep(0.05)
            gc.collect()
        finally:
            loop.set_exception_handler(None)

        assert reported == []
