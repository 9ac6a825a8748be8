"""Distributed key-value backends for the lesson content cache.

The shared tier lets several server instances converge on the same cached
lesson HTML.  Production uses Upstash Redis through its REST API so no
persistent connection is needed; tests and single-process runs use the
in-memory store.
"""

from __future__ import annotations

import time
from typing import Callable, Dict, Optional, Protocol, Tuple

import httpx

from lesson_reader.config import Settings
from lesson_reader.errors import KeyValueStoreError

Clock = Callable[[], float]


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl_seconds: float) -> None: ...

    async def delete(self, key: str) -> None: ...


class InMemoryKeyValueStore:
    """TTL-aware dict standing in for a shared store."""

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._data: Dict[str, Tuple[str, float]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._data[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: float) -> None:
        self._data[key] = (value, self._clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()


class UpstashKeyValueStore:
    """Upstash Redis over its REST API.

    Commands are posted as JSON arrays, e.g. ``["SET", key, value, "PX", ms]``;
    the response body is ``{"result": ...}`` or ``{"error": "..."}``.
    """

    def __init__(
        self,
        url: str,
        token: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 2.0,
    ) -> None:
        self._url = url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {token}"}
        self._client = client
        self._timeout = timeout

    async def _command(self, *args: object) -> object:
        payload = [str(arg) for arg in args]
        try:
            if self._client is not None:
                response = await self._client.post(
                    self._url, json=payload, headers=self._headers, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._url, json=payload, headers=self._headers)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise KeyValueStoreError(f"Upstash {args[0]} failed: {exc}") from exc

        if isinstance(body, dict) and body.get("error"):
            raise KeyValueStoreError(f"Upstash {args[0]} failed: {body['error']}")
        return body.get("result") if isinstance(body, dict) else None

    async def get(self, key: str) -> Optional[str]:
        result = await self._command("GET", key)
        return result if isinstance(result, str) else None

    async def set(self, key: str, value: str, ttl_seconds: float) -> None:
        await self._command("SET", key, value, "PX", max(1, int(ttl_seconds * 1000)))

    async def delete(self, key: str) -> None:
        await self._command("DEL", key)


def build_key_value_store(config: Settings) -> Optional[KeyValueStore]:
    """Return the Upstash store when credentials are configured, else ``None``."""
    if config.upstash_redis_rest_url and config.upstash_redis_rest_token:
        return UpstashKeyValueStore(config.upstash_redis_rest_url, config.upstash_redis_rest_token)
    return None
