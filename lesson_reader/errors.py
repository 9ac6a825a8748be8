"""Exceptions raised by the lesson content pipeline."""

from __future__ import annotations

from typing import Optional


class LessonContentError(Exception):
    """Base class for every failure that aborts a lesson content request."""


class InvalidSourceError(LessonContentError):
    """The source URL is malformed, not https, or not on the host allowlist."""

    def __init__(self, message: str = "Lesson URL is not allowed.", url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class FetchTimeoutError(LessonContentError):
    """The upstream request did not complete within the fetch timeout."""

    def __init__(self, url: Optional[str] = None):
        super().__init__("Timed out fetching lesson content.")
        self.url = url


class TooManyRedirectsError(LessonContentError):
    """The redirect chain exceeded the configured maximum."""

    def __init__(self, max_redirects: int):
        super().__init__("Too many redirects while fetching lesson content.")
        self.max_redirects = max_redirects


class UpstreamFetchFailedError(LessonContentError):
    """The upstream host answered with a non-2xx terminal response, or the
    connection itself failed (``status_code`` is then ``None``)."""

    def __init__(self, status_code: Optional[int] = None, url: Optional[str] = None):
        super().__init__("Failed to fetch lesson content.")
        self.status_code = status_code
        self.url = url


class KeyValueStoreError(Exception):
    """A distributed cache backend could not complete a read or write."""
