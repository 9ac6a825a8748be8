"""HTTP fetcher for published lesson documents.

Redirects are followed by hand so every hop can be re-checked against the
source host allowlist before it is requested.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional
from urllib.parse import urljoin, urlsplit

import httpx

from lesson_reader.config import settings
from lesson_reader.errors import (
    FetchTimeoutError,
    InvalidSourceError,
    TooManyRedirectsError,
    UpstreamFetchFailedError,
)

logger = logging.getLogger(__name__)

ALLOWED_LESSON_HOSTS = frozenset({"docs.google.com", "drive.google.com"})

_DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; LessonReader/1.0)",
    "Cache-Control": "no-store",
}


def assert_allowed_lesson_url(published_url: str) -> str:
    """Validate *published_url* against the allowlist and return it.

    Raises:
        InvalidSourceError: If the URL cannot be parsed, is not https, or its
            host is not one of :data:`ALLOWED_LESSON_HOSTS`.
    """
    try:
        parts = urlsplit((published_url or "").strip())
        hostname = parts.hostname
    except ValueError as exc:
        raise InvalidSourceError("Lesson URL is invalid.", url=published_url) from exc

    if not parts.scheme or not hostname:
        raise InvalidSourceError("Lesson URL is invalid.", url=published_url)
    if parts.scheme != "https" or hostname not in ALLOWED_LESSON_HOSTS:
        raise InvalidSourceError("Lesson URL is not allowed.", url=published_url)

    return parts.geturl()


async def _get(client: httpx.AsyncClient, url: str, timeout: float) -> httpx.Response:
    # httpx timeouts bound each phase separately; the deadline bounds the
    # whole request including the body read.
    try:
        return await asyncio.wait_for(
            client.get(url, timeout=timeout, follow_redirects=False), timeout
        )
    except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
        raise FetchTimeoutError(url=url) from exc
    except httpx.TransportError as exc:
        raise UpstreamFetchFailedError(url=url) from exc


async def _fetch(
    client: httpx.AsyncClient, url: str, max_redirects: int, timeout: float
) -> str:
    current_url = assert_allowed_lesson_url(url)

    for _attempt in range(max_redirects + 1):
        response = await _get(client, current_url, timeout)
        location = response.headers.get("location")

        if 300 <= response.status_code < 400 and location:
            redirect_url = urljoin(current_url, location)
            current_url = assert_allowed_lesson_url(redirect_url)
            logger.debug("Following lesson redirect to %s", current_url)
            continue

        if not response.is_success:
            raise UpstreamFetchFailedError(status_code=response.status_code, url=current_url)

        return response.text

    raise TooManyRedirectsError(max_redirects)


async def fetch_lesson_html(
    url: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    max_redirects: Optional[int] = None,
    timeout: Optional[float] = None,
) -> str:
    """Fetch published lesson HTML, following safe redirects up to the limit.

    At most ``max_redirects + 1`` requests are made.  When *client* is
    omitted a short-lived :class:`httpx.AsyncClient` is created for the call.

    Raises:
        InvalidSourceError: The URL or any redirect target is not allowed.
        FetchTimeoutError: A request exceeded *timeout* seconds.
        TooManyRedirectsError: The redirect chain is longer than allowed.
        UpstreamFetchFailedError: A non-2xx terminal response or transport error.
    """
    max_redirects = settings.max_redirects if max_redirects is None else max_redirects
    timeout = settings.fetch_timeout if timeout is None else timeout

    if client is not None:
        return await _fetch(client, url, max_redirects, timeout)

    async with httpx.AsyncClient(
        headers=_DEFAULT_HEADERS,
        timeout=timeout,
        follow_redirects=False,
    ) as owned_client:
        return await _fetch(owned_client, url, max_redirects, timeout)
