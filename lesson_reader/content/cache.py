"""Two-tier cache for sanitized lesson HTML.

Reads hit the in-process dict first and fall back to the shared key-value
store when the local entry is missing or expired.  Writes go to both tiers.
A failing shared store only costs cache hits: it is logged and skipped.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from lesson_reader.content.kv import KeyValueStore
from lesson_reader.errors import KeyValueStoreError

logger = logging.getLogger(__name__)

LESSON_CONTENT_CACHE_TTL = 60 * 60  # seconds
CACHE_KEY_PREFIX = "lesson-content:"


@dataclass(frozen=True)
class CacheEntry:
    html: str
    expires_at: float


class LessonContentCache:
    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        *,
        ttl: float = LESSON_CONTENT_CACHE_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl = ttl
        self._store = store
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    @staticmethod
    def _key(lesson_id: str) -> str:
        return f"{CACHE_KEY_PREFIX}{lesson_id}"

    def get_local(self, lesson_id: str) -> Optional[str]:
        """Return fresh in-process HTML for *lesson_id*, evicting it if expired."""
        entry = self._entries.get(lesson_id)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[lesson_id]
            return None
        return entry.html

    async def get(self, lesson_id: str) -> Optional[str]:
        html = self.get_local(lesson_id)
        if html is not None or self._store is None:
            return html

        try:
            raw = await self._store.get(self._key(lesson_id))
        except KeyValueStoreError:
            logger.warning("Shared cache read failed for lesson %s", lesson_id, exc_info=True)
            return None

        entry = self._decode(raw)
        if entry is None or entry.expires_at <= self._clock():
            return None

        self._entries[lesson_id] = entry
        return entry.html

    async def set(self, lesson_id: str, html: str, ttl: Optional[float] = None) -> None:
        ttl = self.ttl if ttl is None else ttl
        entry = CacheEntry(html=html, expires_at=self._clock() + ttl)
        self._entries[lesson_id] = entry
        if self._store is None:
            return

        payload = json.dumps({"html": entry.html, "expiresAt": entry.expires_at})
        try:
            await self._store.set(self._key(lesson_id), payload, ttl)
        except KeyValueStoreError:
            logger.warning("Shared cache write failed for lesson %s", lesson_id, exc_info=True)

    def clear(self) -> None:
        """Drop every in-process entry; the shared tier expires on its own."""
        self._entries.clear()

    @staticmethod
    def _decode(raw: Optional[str]) -> Optional[CacheEntry]:
        if not raw:
            return None
        try:
            data = json.loads(raw)
            return CacheEntry(html=str(data["html"]), expires_at=float(data["expiresAt"]))
        except (ValueError, KeyError, TypeError):
            logger.warning("Ignoring malformed shared cache entry")
            return None
