"""
Remote call-feed client.

Fetches the published CSV export of the call sheet over HTTP and hands the
text to the parser. Transient upstream failures (429/5xx) are retried by the
session adapter; anything left over surfaces as FetchError.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from calldash.config import Settings
from calldash.errors import EmptyResultError, FetchError
from calldash.parser import ParseResult, parse_feed


logger = logging.getLogger(__name__)


class CallFeedClient:
    """
    Client for the delimited call-record feed.

    Example:
        client = CallFeedClient(Settings.from_env())
        result = client.fetch(bypass_cache=True)
        print(len(result.records))
    """

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        self.settings = settings or Settings.from_env()
        self.session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        """Create a requests session with retry logic."""
        session = requests.Session()

        retry_strategy = Retry(
            total=self.settings.max_retries,
            backoff_factor=self.settings.retry_backoff,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers.update({"Accept": "text/csv, text/plain;q=0.9, */*;q=0.1"})

        return session

    def fetch_text(self, *, bypass_cache: bool = False) -> str:
        """GET the raw feed text. A cache-busting ``_ts`` parameter is added when bypassing caches."""
        params = {"_ts": str(int(time.time() * 1000))} if bypass_cache else None
        logger.debug("Fetching feed: %s", self.settings.feed_url)
        try:
            response = self.session.get(self.settings.feed_url, params=params, timeout=self.settings.http_timeout)
            response.raise_for_status()
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise FetchError(f"Failed to fetch data: HTTP {status}", status_code=status) from exc
        except requests.RequestException as exc:
            raise FetchError(f"Failed to fetch data: {exc}") from exc
        response.encoding = response.encoding or "utf-8"
        return response.text

    def fetch(self, *, bypass_cache: bool = False) -> ParseResult:
        """Fetch and parse the feed. Raises FetchError, SchemaError or EmptyResultError."""
        text = self.fetch_text(bypass_cache=bypass_cache)
        if not text.strip():
            raise EmptyResultError("CSV data is empty")
        result = parse_feed(text, self.settings.tzinfo)
        if result.records.empty:
            raise EmptyResultError("No data returned from the source")
        logger.info("Fetched %d records from feed", len(result.records))
        return result
