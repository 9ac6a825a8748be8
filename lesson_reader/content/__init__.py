"""Lesson content package — fetch, extract, rewrite, sanitize and cache."""

from lesson_reader.content.cache import LessonContentCache
from lesson_reader.content.extractor import BannerImageRule, extract_lesson_html
from lesson_reader.content.fetcher import assert_allowed_lesson_url, fetch_lesson_html
from lesson_reader.content.links import extract_doc_id_from_url, rewrite_lesson_doc_links
from lesson_reader.content.models import LessonContentResult, LessonDocIdMap, LessonSource
from lesson_reader.content.sanitizer import sanitize_lesson_html
from lesson_reader.content.service import LessonContentService

__all__ = [
    "BannerImageRule",
    "LessonContentCache",
    "LessonContentResult",
    "LessonContentService",
    "LessonDocIdMap",
    "LessonSource",
    "assert_allowed_lesson_url",
    "extract_doc_id_from_url",
    "extract_lesson_html",
    "fetch_lesson_html",
    "rewrite_lesson_doc_links",
    "sanitize_lesson_html",
]
