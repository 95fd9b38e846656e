"""HTTP fetching with browser-like headers and exponential backoff."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

import requests
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import BROWSER_HEADERS

logger = logging.getLogger("shotpipe")

MAX_BACKOFF_SECONDS = 30.0


class FetchError(Exception):
    """Raised when a URL could not be fetched within the retry budget."""


class BadStatusError(Exception):
    """Non-2xx response; retried like a network error."""


class PageFetcher:
    """Fetch pages as text, retrying transient failures with backoff.

    ``requests`` is blocking, so each attempt runs in a worker thread and the
    caller can fan out several fetches with ``asyncio.gather``.
    """

    def __init__(
        self,
        max_retries: int = 3,
        timeout: float = 30.0,
        backoff_base: float = 1.0,
        session: Optional[requests.Session] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.max_retries = max(1, max_retries)
        self.timeout = timeout
        self.backoff_base = backoff_base
        self.headers = dict(headers or BROWSER_HEADERS)
        self._session = session or requests.Session()

    def _get(self, url: str) -> str:
        resp = self._session.get(url, headers=self.headers, timeout=self.timeout)
        if not resp.ok:
            raise BadStatusError(f"HTTP {resp.status_code}")
        return resp.text

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.backoff_base, max=MAX_BACKOFF_SECONDS),
            retry=retry_if_exception_type((requests.RequestException, BadStatusError)),
            before_sleep=before_sleep_log(logger, logging.INFO),
            reraise=True,
        )

    async def fetch_text(self, url: str) -> str:
        """Return the body of ``url`` or raise ``FetchError``."""
        try:
            return await self._retrying()(asyncio.to_thread, self._get, url)
        except (requests.RequestException, BadStatusError) as exc:
            raise FetchError(
                f"Failed after {self.max_retries} attempts: {url} ({exc})"
            ) from exc

    def close(self) -> None:
        self._session.close()
