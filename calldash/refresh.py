from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Union

import pandas as pd

from calldash.cache import CacheStore, Clock, PreferenceStore, utc_now
from calldash.config import Settings
from calldash.errors import EmptyResultError, FeedError
from calldash.records import empty_frame


logger = logging.getLogger(__name__)

FAILURE_MESSAGE = "Failed to load data. Please check if the call feed is published and accessible."

# bypass_cache -> records; raises FeedError subclasses
Fetcher = Callable[[bool], pd.DataFrame]
SeedLoader = Callable[[], pd.DataFrame]
Subscriber = Callable[[pd.DataFrame], None]


class Source(str, Enum):
    NETWORK = "network"
    CACHE = "cache"
    STALE_CACHE = "stale_cache"
    SEED = "seed"


# ---------------- States ----------------
@dataclass(frozen=True)
class Idle:
    name = "idle"


@dataclass(frozen=True)
class Fetching:
    forced: bool = False
    name = "fetching"


@dataclass(frozen=True)
class Success:
    source: Source
    record_count: int
    at: datetime
    name = "success"


@dataclass(frozen=True)
class Failure:
    error: str
    recovered_from: Optional[Source] = None
    name = "failure"


RefreshState = Union[Idle, Fetching, Success, Failure]


# ---------------- Events ----------------
@dataclass(frozen=True)
class Started:
    forced: bool


@dataclass(frozen=True)
class Loaded:
    source: Source
    record_count: int
    at: datetime


@dataclass(frozen=True)
class Failed:
    error: str


@dataclass(frozen=True)
class Recovered:
    source: Source


RefreshEvent = Union[Started, Loaded, Failed, Recovered]


class InvalidTransition(RuntimeError):
    pass


def transition(state: RefreshState, event: RefreshEvent) -> RefreshState:
    """Pure transition function for one refresh cycle: Idle -> Fetching -> {Success, Failure}."""
    if isinstance(event, Started) and not isinstance(state, Fetching):
        return Fetching(forced=event.forced)
    if isinstance(event, Loaded) and isinstance(state, Fetching):
        return Success(source=event.source, record_count=event.record_count, at=event.at)
    if isinstance(event, Failed) and isinstance(state, Fetching):
        return Failure(error=event.error)
    if isinstance(event, Recovered) and isinstance(state, Failure):
        return Failure(error=state.error, recovered_from=event.source)
    raise InvalidTransition(f"{type(event).__name__} not allowed in state {state.name!r}")


class RefreshController:
    """
    Owns the record set, the refresh schedule and the fallback chain.

    One fetch at a time: a refresh requested while another is in flight returns
    None without touching the network. Non-forced refreshes are served from a
    fresh cache entry when one exists. On failure the controller recovers from
    any cache entry (stale or not), then from the bundled seed records.

    Example:
        controller = RefreshController(fetcher, cache, prefs, seed_loader=lambda: load_seed_records(tz))
        await controller.refresh()
        controller.start()
        ...
        await controller.close()
    """

    def __init__(
        self,
        fetcher: Fetcher,
        cache: CacheStore,
        prefs: PreferenceStore,
        *,
        settings: Optional[Settings] = None,
        seed_loader: Optional[SeedLoader] = None,
        clock: Clock = utc_now,
        refresh_interval: Optional[timedelta] = None,
    ):
        self.fetcher = fetcher
        self.cache = cache
        self.prefs = prefs
        self.settings = settings or Settings()
        self.seed_loader = seed_loader
        self.clock = clock

        stored = prefs.load()
        self.auto_refresh_enabled = stored.auto_refresh_enabled
        self.refresh_interval = refresh_interval or timedelta(minutes=stored.refresh_interval_minutes)
        self.next_refresh_in = self.refresh_interval

        self.records: pd.DataFrame = empty_frame(cache.tz)
        self.loading = False
        self.error: Optional[str] = None
        self.last_refreshed: Optional[datetime] = None
        self.state: RefreshState = Idle()

        self._fetching = False
        self._closed = False
        self._started = False
        self._schedule_task: Optional[asyncio.Task] = None
        self._countdown_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()
        self._subscribers: List[Subscriber] = []

    # ---------------- data ----------------
    def subscribe(self, callback: Subscriber) -> None:
        self._subscribers.append(callback)

    @property
    def is_fetching(self) -> bool:
        return self._fetching

    @property
    def closed(self) -> bool:
        return self._closed

    def _apply(self, event: RefreshEvent) -> None:
        self.state = transition(self.state, event)
        logger.debug("Refresh state -> %s", self.state)

    def _publish(self, records: pd.DataFrame, last_refreshed: Optional[datetime]) -> None:
        self.records = records
        self.last_refreshed = last_refreshed
        for callback in self._subscribers:
            callback(records)

    async def refresh(self, force: bool = False, *, show_loading: bool = True) -> Optional[pd.DataFrame]:
        """Run one refresh cycle. Returns the adopted records, or None if skipped or nothing could be loaded."""
        if self._fetching or self._closed:
            return None
        self._fetching = True
        try:
            self._apply(Started(forced=force))

            if not force:
                cached = self.cache.read()
                if cached is not None:
                    self._apply(Loaded(Source.CACHE, len(cached.records), cached.fetched_at))
                    self._publish(cached.records, cached.fetched_at)
                    self.error = None
                    logger.info("Serving %d cached records from %s", len(cached.records), cached.fetched_at.isoformat())
                    return cached.records

            if show_loading:
                self.loading = True
            self.error = None
            try:
                records = await asyncio.to_thread(self.fetcher, force)
                if records is None or records.empty:
                    raise EmptyResultError("No data returned from the source")
            except FeedError as exc:
                if self._closed:
                    logger.info("Controller closed during fetch; discarding failure")
                    return None
                return self._recover(exc)

            if self._closed:
                logger.info("Controller closed during fetch; discarding %d records", len(records))
                return None
            now = self.clock()
            self.cache.write(records)
            self._apply(Loaded(Source.NETWORK, len(records), now))
            self._publish(records, now)
            logger.info("Refreshed %d records from feed", len(records))
            return records
        finally:
            if isinstance(self.state, Fetching):
                self._apply(Failed("Refresh interrupted"))
            if show_loading:
                self.loading = False
            self._fetching = False

    def _recover(self, exc: FeedError) -> Optional[pd.DataFrame]:
        logger.error("Error loading data: %s", exc)
        self._apply(Failed(str(exc)))
        self.error = FAILURE_MESSAGE

        stale = self.cache.read_any()
        if stale is not None and not stale.records.empty:
            logger.warning("Recovered %d records from cache written %s", len(stale.records), stale.fetched_at.isoformat())
            self._apply(Recovered(Source.STALE_CACHE))
            self._publish(stale.records, stale.fetched_at)
            return stale.records

        if not self.records.empty:
            logger.warning("No cache to recover from; keeping %d records already loaded", len(self.records))
            return self.records

        if self.seed_loader is not None:
            seed = self.seed_loader()
            if not seed.empty:
                self._apply(Recovered(Source.SEED))
                self._publish(seed, self.last_refreshed)
                return seed
        return None

    async def manual_refresh(self) -> Optional[pd.DataFrame]:
        """User-triggered refresh: bypasses the cache and, on success, resets the countdown, not the cadence."""
        result = await self.refresh(force=True)
        if isinstance(self.state, Success) and self.auto_refresh_enabled:
            self.next_refresh_in = self.refresh_interval
        return result

    # ---------------- schedule ----------------
    def start(self) -> None:
        """Start the auto-refresh timers (if enabled). Must be called from the running event loop."""
        self._started = True
        if self.auto_refresh_enabled:
            self._start_timers()

    def _start_timers(self) -> None:
        self._cancel_timers()
        loop = asyncio.get_running_loop()
        self.next_refresh_in = self.refresh_interval
        self._schedule_task = loop.create_task(self._schedule_loop())
        self._countdown_task = loop.create_task(self._countdown_loop())

    def _cancel_timers(self) -> List[asyncio.Task]:
        cancelled = []
        for task in (self._schedule_task, self._countdown_task):
            if task is not None and not task.done():
                task.cancel()
                cancelled.append(task)
        self._schedule_task = None
        self._countdown_task = None
        return cancelled

    @property
    def timers_running(self) -> bool:
        return any(t is not None and not t.done() for t in (self._schedule_task, self._countdown_task))

    async def _schedule_loop(self) -> None:
        period = self.refresh_interval.total_seconds()
        while True:
            await asyncio.sleep(period)
            self.next_refresh_in = self.refresh_interval
            task = asyncio.get_running_loop().create_task(self.refresh(show_loading=False))
            self._background.add(task)
            task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Scheduled refresh failed", exc_info=exc)

    async def _countdown_loop(self) -> None:
        tick = self.settings.countdown_tick_seconds
        while True:
            await asyncio.sleep(tick)
            self.next_refresh_in = max(timedelta(0), self.next_refresh_in - timedelta(seconds=tick))

    def _save_prefs(self) -> None:
        prefs = self.prefs.load()
        prefs.auto_refresh_enabled = self.auto_refresh_enabled
        prefs.refresh_interval_minutes = self.refresh_interval_minutes
        self.prefs.save(prefs)

    def set_auto_refresh(self, enabled: bool) -> None:
        self.auto_refresh_enabled = bool(enabled)
        self._save_prefs()
        if not self.auto_refresh_enabled:
            self._cancel_timers()
        elif self._started and not self._closed:
            self._start_timers()

    def toggle_auto_refresh(self) -> bool:
        self.set_auto_refresh(not self.auto_refresh_enabled)
        return self.auto_refresh_enabled

    def set_refresh_interval(self, minutes: int) -> None:
        if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes < 1:
            raise ValueError(f"Refresh interval must be a whole number of minutes >= 1, got {minutes!r}")
        self.refresh_interval = timedelta(minutes=minutes)
        self.next_refresh_in = self.refresh_interval
        self._save_prefs()
        if self.auto_refresh_enabled and self._started and not self._closed:
            self._start_timers()

    @property
    def refresh_interval_minutes(self) -> int:
        return max(1, int(self.refresh_interval.total_seconds() // 60))

    def countdown_text(self) -> str:
        if not self.auto_refresh_enabled:
            return "Paused"
        seconds = max(0, math.ceil(self.next_refresh_in.total_seconds()))
        return f"{seconds // 60}:{seconds % 60:02d}"

    def snapshot(self) -> Dict[str, Any]:
        source = getattr(self.state, "source", None) or getattr(self.state, "recovered_from", None)
        return {
            "state": self.state.name,
            "source": source.value if source is not None else None,
            "loading": self.loading,
            "error": self.error,
            "last_refreshed": self.last_refreshed.isoformat() if self.last_refreshed else None,
            "record_count": int(len(self.records)),
            "auto_refresh_enabled": self.auto_refresh_enabled,
            "refresh_interval_minutes": self.refresh_interval_minutes,
            "next_refresh_in": self.countdown_text(),
        }

    async def close(self) -> None:
        """Cancel both timers and wait out scheduled refreshes still in flight; their results are dropped."""
        self._closed = True
        cancelled = self._cancel_timers()
        if cancelled:
            await asyncio.gather(*cancelled, return_exceptions=True)
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
