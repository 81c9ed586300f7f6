from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from pathlib import Path
from typing import Callable, Optional

import pandas as pd

from calldash.records import Record, frame_to_records, records_to_frame


logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _atomic_write(path: Path, data: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f"{path.name}.{os.getpid()}.{int(time.time()*1000)}.tmp")
    try:
        tmp.write_text(data, encoding="utf-8")
        tmp.replace(path)
    finally:
        if tmp.exists():
            tmp.unlink()


@dataclass(frozen=True)
class CacheEntry:
    records: pd.DataFrame
    fetched_at: datetime

    def age(self, now: datetime) -> timedelta:
        return now - self.fetched_at


class CacheStore:
    """Single-entry durable cache of the last successful record set.

    Storage failures are logged and read as a miss; they never propagate.
    """

    def __init__(self, path: Path, tz: tzinfo, *, freshness_window: timedelta = timedelta(minutes=5), clock: Clock = utc_now):
        self.path = Path(path)
        self.tz = tz
        self.freshness_window = freshness_window
        self.clock = clock

    def read_any(self) -> Optional[CacheEntry]:
        """Return the stored entry regardless of age."""
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            fetched_at = datetime.fromisoformat(raw["fetched_at"])
            records = [Record.from_dict(r) for r in raw["records"]]
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.error("Error loading cached data: %s", exc)
            return None
        return CacheEntry(records=records_to_frame(records, self.tz), fetched_at=fetched_at)

    def read(self) -> Optional[CacheEntry]:
        """Return the stored entry only while it is within the freshness window."""
        entry = self.read_any()
        if entry is None:
            return None
        if entry.age(self.clock()) > self.freshness_window:
            logger.debug("Cached data is stale (fetched %s)", entry.fetched_at.isoformat())
            return None
        return entry

    def write(self, records: pd.DataFrame) -> Optional[CacheEntry]:
        fetched_at = self.clock()
        payload = {
            "fetched_at": fetched_at.isoformat(),
            "records": [r.to_dict() for r in frame_to_records(records)],
        }
        try:
            _atomic_write(self.path, json.dumps(payload))
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Error saving data to cache: %s", exc)
            return None
        return CacheEntry(records=records, fetched_at=fetched_at)

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.error("Error clearing cache: %s", exc)


@dataclass
class Preferences:
    auto_refresh_enabled: bool = True
    refresh_interval_minutes: int = 1


class PreferenceStore:
    """Persisted auto-refresh flag and interval (in minutes)."""

    def __init__(self, path: Path, *, default_interval_minutes: int = 1):
        self.path = Path(path)
        self.default_interval_minutes = default_interval_minutes

    def load(self) -> Preferences:
        prefs = Preferences(refresh_interval_minutes=self.default_interval_minutes)
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return prefs
        except (OSError, ValueError) as exc:
            logger.error("Error loading preferences: %s", exc)
            return prefs
        if not isinstance(raw, dict):
            return prefs
        if "auto_refresh_enabled" in raw:
            prefs.auto_refresh_enabled = bool(raw["auto_refresh_enabled"])
        try:
            minutes = int(raw.get("refresh_interval_minutes", prefs.refresh_interval_minutes))
        except (TypeError, ValueError):
            minutes = prefs.refresh_interval_minutes
        prefs.refresh_interval_minutes = max(1, minutes)
        return prefs

    def save(self, prefs: Preferences) -> None:
        try:
            _atomic_write(self.path, json.dumps(asdict(prefs)))
        except OSError as exc:
            logger.error("Error saving preferences: %s", exc)
