"""Centralised settings for the lesson reader.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env from the project root (one level up from this package)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)

APP_ENVS = ("local", "preview", "production", "test")


def _resolve_app_env(value: Optional[str]) -> str:
    normalized = (value or "").strip().lower()
    if normalized in APP_ENVS:
        return normalized
    return "local"


def _optional_env(name: str) -> Optional[str]:
    value = os.environ.get(name)
    return value if value else None


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------
    app_env: str = field(
        default_factory=lambda: _resolve_app_env(os.environ.get("APP_ENV"))
    )
    lesson_content_mock_html: Optional[str] = field(
        default_factory=lambda: _optional_env("LESSON_CONTENT_MOCK_HTML")
    )
    log_level_override: Optional[str] = field(
        default_factory=lambda: _optional_env("LOG_LEVEL")
    )

    # ------------------------------------------------------------------
    # Fetcher
    # ------------------------------------------------------------------
    fetch_timeout: float = field(
        default_factory=lambda: float(os.environ.get("LESSON_FETCH_TIMEOUT", "8.0"))
    )
    max_redirects: int = field(
        default_factory=lambda: int(os.environ.get("LESSON_FETCH_MAX_REDIRECTS", "3"))
    )

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------
    cache_ttl: float = field(
        default_factory=lambda: float(os.environ.get("LESSON_CONTENT_CACHE_TTL", "3600"))
    )
    upstash_redis_rest_url: Optional[str] = field(
        default_factory=lambda: _optional_env("UPSTASH_REDIS_REST_URL")
    )
    upstash_redis_rest_token: Optional[str] = field(
        default_factory=lambda: _optional_env("UPSTASH_REDIS_REST_TOKEN")
    )

    # ------------------------------------------------------------------
    # Banner image heuristic
    # ------------------------------------------------------------------
    banner_min_width: int = field(
        default_factory=lambda: int(os.environ.get("BANNER_IMAGE_MIN_WIDTH", "520"))
    )
    banner_max_height: int = field(
        default_factory=lambda: int(os.environ.get("BANNER_IMAGE_MAX_HEIGHT", "280"))
    )
    banner_min_aspect_ratio: float = field(
        default_factory=lambda: float(os.environ.get("BANNER_IMAGE_MIN_ASPECT", "2.0"))
    )

    @property
    def is_local(self) -> bool:
        return self.app_env == "local"

    @property
    def is_preview(self) -> bool:
        return self.app_env == "preview"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def mock_html_enabled(self) -> bool:
        """True when mock HTML should replace the network fetch."""
        return bool(self.lesson_content_mock_html) and (self.is_local or self.is_test)

    @property
    def log_level(self) -> str:
        """Effective log level name, defaulting by environment."""
        if self.log_level_override:
            return self.log_level_override.upper()
        if self.is_local:
            return "DEBUG"
        if self.is_test:
            return "WARNING"
        return "INFO"


# Module-level singleton; import this everywhere:
#   from lesson_reader.config import settings
settings = Settings()
