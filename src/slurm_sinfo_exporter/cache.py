"""Thread-safe cache with throttling for node inventory fetches.

Wraps a fetcher so that at most one fetch is in flight at any time and
fetch attempts happen at most once per throttle window, no matter how many
scrapes arrive concurrently.
"""

import time
from threading import Lock

import structlog

from .errors import FetchFailure
from .fetchers import Fetcher

logger = structlog.get_logger(__name__)


class AtomicThrottledCache:
    """Thread-safe cache with throttling to prevent excessive data source queries.

    The lock is held for the duration of a fetch, so callers arriving while a
    fetch is in flight wait for it and then receive its result from the cache.
    Both successful and failed attempts start a new throttle window. A failed
    fetch never discards the last good payload.
    """

    def __init__(self, fetcher: Fetcher, limit: float, serve_stale: bool = False):
        """Initialize the cache.

        Args:
            fetcher: Zero-argument callable returning the raw payload.
            limit: Minimum seconds between fetch attempts.
            serve_stale: Return the last good payload instead of failing when
                a fetch fails and one is available.
        """
        self._fetcher = fetcher
        self._lock = Lock()
        self._limit = limit
        self._serve_stale = serve_stale
        self._last_attempt: float | None = None
        self._last_error: Exception | None = None
        self._cache: bytes | None = None

    def get(self) -> tuple[bytes, float | None]:
        """Return the node inventory payload, fetching it if the window has passed.

        Returns:
            Tuple of (payload, fetch_duration) where:
            - payload: Cached or freshly fetched raw bytes
            - fetch_duration: Duration in seconds if fetched, None if served
              from cache

        Raises:
            FetchFailure: If the fetch failed (now or earlier in the current
                window) and no stale payload may be served.
        """
        with self._lock:
            now = time.monotonic()
            if self._last_attempt is not None and now - self._last_attempt < self._limit:
                return self._throttled(now - self._last_attempt)

            self._last_attempt = now
            try:
                data = self._fetcher()
            except Exception as exc:
                self._last_error = exc
                logger.warning(
                    "Fetch failed",
                    error=str(exc),
                    have_stale=self._cache is not None,
                )
                if self._serve_stale and self._cache is not None:
                    return self._cache, None
                if isinstance(exc, FetchFailure):
                    raise
                msg = str(exc) or type(exc).__name__
                raise FetchFailure(msg) from exc

            duration = time.monotonic() - now
            self._cache = data
            self._last_error = None
            logger.debug("Fetched fresh data", duration_seconds=duration)
            return data, duration

    def _throttled(self, elapsed: float) -> tuple[bytes, None]:
        if self._last_error is None and self._cache is not None:
            logger.debug("Using cached data", age_seconds=round(elapsed, 2))
            return self._cache, None
        if self._serve_stale and self._cache is not None:
            logger.debug("Using stale data", age_seconds=round(elapsed, 2))
            return self._cache, None
        msg = f"last fetch failed {elapsed:.2f}s ago: {self._last_error}"
        raise FetchFailure(msg) from self._last_error
