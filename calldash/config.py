from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from zoneinfo import ZoneInfo


DEFAULT_FEED_URL = (
    "https://docs.google.com/spreadsheets/d/e/"
    "2PACX-1vQOUJvjJQe0qxRhYvRiXBGM9UwUE73Mpl-o7W0xdrZPxHA960-wZtgZg3LKLQPr7qchONmBboJhKz6Z"
    "/pub?gid=171725172&single=true&output=csv"
)
DEFAULT_CACHE_DIR = Path.home() / ".cache" / "calldash"


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the feed, cache and refresh schedule."""

    feed_url: str = DEFAULT_FEED_URL
    cache_dir: Path = DEFAULT_CACHE_DIR
    timezone: str = "Asia/Karachi"
    freshness_window: timedelta = timedelta(minutes=5)
    default_refresh_minutes: int = 1
    countdown_tick_seconds: float = 1.0
    past_days: int = 30
    http_timeout: int = 30
    max_retries: int = 3
    retry_backoff: float = 0.5

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def cache_path(self) -> Path:
        return self.cache_dir / "call_data_cache.json"

    @property
    def preferences_path(self) -> Path:
        return self.cache_dir / "preferences.json"

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables."""
        freshness = os.getenv("CALLDASH_CACHE_MINUTES")
        return cls(
            feed_url=os.getenv("CALLDASH_FEED_URL", DEFAULT_FEED_URL),
            cache_dir=Path(os.getenv("CALLDASH_CACHE_DIR", str(DEFAULT_CACHE_DIR))).expanduser(),
            timezone=os.getenv("CALLDASH_TIMEZONE", cls.timezone),
            freshness_window=timedelta(minutes=float(freshness)) if freshness else cls.freshness_window,
            http_timeout=int(os.getenv("CALLDASH_HTTP_TIMEOUT", cls.http_timeout)),
        )
