"""
Per-provider sliding-window rate limiter.

Each provider key keeps the timestamps of the requests admitted within the
current window. Old timestamps are pruned lazily on every check, so a key's
state never grows beyond max_requests entries.

The limiter is an explicit object passed to every client; get_rate_limiter()
only exists so the API process and the worker each share one instance.
"""

import asyncio
import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Any

from app.core.api_errors import RateLimitTimeout

logger = logging.getLogger(__name__)

DEFAULT_MAX_WAIT_MS = 10000
POLL_INTERVAL_MS = 100
SWEEP_INTERVAL_MS = 60000


def _now_ms() -> float:
    return time.monotonic() * 1000


class RateLimiter:
    """
    Sliding-window admission control keyed by provider.

    All reads and writes of the timestamp map happen under one lock, so the
    limiter is safe to share between the event loop and threadpool callers.
    """

    def __init__(self, clock: Callable[[], float] = _now_ms):
        self._clock = clock
        self._windows: Dict[str, List[float]] = {}
        self._window_sizes: Dict[str, int] = {}
        self._last_sweep = clock()
        self._lock = threading.Lock()

    def _prune(self, key: str, window_ms: int, now: float) -> List[float]:
        window_start = now - window_ms
        timestamps = [ts for ts in self._windows.get(key, []) if ts > window_start]
        if timestamps:
            self._windows[key] = timestamps
        else:
            # idle keys (one per inbound client) must not accumulate
            self._windows.pop(key, None)
            self._window_sizes.pop(key, None)
        return timestamps

    def _sweep(self, now: float) -> None:
        """Drop every key whose window has emptied, at most once per SWEEP_INTERVAL_MS."""
        if now - self._last_sweep < SWEEP_INTERVAL_MS:
            return
        self._last_sweep = now
        for key, window_ms in list(self._window_sizes.items()):
            self._prune(key, window_ms, now)

    def check_limit(self, key: str, max_requests: int, window_ms: int) -> bool:
        """
        Try to admit one request for key without blocking.

        Returns:
            True if the request was admitted (and recorded), False otherwise
        """
        with self._lock:
            now = self._clock()
            self._sweep(now)
            timestamps = self._prune(key, window_ms, now)
            if len(timestamps) >= max_requests:
                return False
            timestamps.append(now)
            self._windows[key] = timestamps
            self._window_sizes[key] = window_ms
            return True

    async def wait_for_slot(
        self,
        key: str,
        max_requests: int,
        window_ms: int,
        max_wait_ms: int = DEFAULT_MAX_WAIT_MS,
    ) -> None:
        """
        Block until a request for key is admitted.

        Polls check_limit every 100ms.

        Raises:
            RateLimitTimeout: If no slot opened within max_wait_ms
        """
        start = self._clock()
        while not self.check_limit(key, max_requests, window_ms):
            elapsed = self._clock() - start
            if elapsed >= max_wait_ms:
                logger.warning(f"Rate limit wait for '{key}' timed out after {elapsed:.0f}ms")
                raise RateLimitTimeout(key, waited_ms=int(elapsed))
            await asyncio.sleep(POLL_INTERVAL_MS / 1000)

    def get_time_until_reset(self, key: str, window_ms: int) -> int:
        """Milliseconds until the oldest recorded request leaves the window."""
        with self._lock:
            timestamps = self._windows.get(key)
            if not timestamps:
                return 0
            remaining = min(timestamps) + window_ms - self._clock()
            return max(0, int(remaining))

    def get_request_count(self, key: str, window_ms: int) -> int:
        """Requests currently counted against key within the window."""
        with self._lock:
            return len(self._prune(key, window_ms, self._clock()))

    def get_stats(self) -> Dict[str, Any]:
        """Raw per-key timestamp counts (not pruned)."""
        with self._lock:
            return {key: len(timestamps) for key, timestamps in self._windows.items()}

    def reset(self, key: str) -> None:
        """Forget every recorded request for key."""
        with self._lock:
            self._windows.pop(key, None)
            self._window_sizes.pop(key, None)

    def reset_all(self) -> None:
        """Forget every recorded request for every key."""
        with self._lock:
            self._windows.clear()
            self._window_sizes.clear()


# =============================================================================
# Process-wide instance
# =============================================================================

_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get the process-wide rate limiter instance."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter()
    return _rate_limiter


def reset_rate_limiter() -> None:
    """Drop the process-wide rate limiter (for testing)."""
    global _rate_limiter
    _rate_limiter = None
