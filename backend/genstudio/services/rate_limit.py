import threading
import time
from typing import Callable, Dict, List

MAX_TRACKED_KEYS = 10_000


class RateLimiter:
    """
    Sliding-window request counter keyed by caller address.

    Process-wide and lock-protected; each instance of the API keeps its own
    counters, so multi-instance deployments need an external limiter.
    """

    def __init__(self, limit: int = 10, window_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, List[float]] = {}
        self._lock = threading.Lock()

    def allow(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            if len(self._hits) >= MAX_TRACKED_KEYS:
                self._prune(now)
            recent = self._recent(key, now)
            if len(recent) >= self.limit:
                self._hits[key] = recent
                return False
            recent.append(now)
            self._hits[key] = recent
            return True

    def retry_after(self, key: str) -> float:
        """Seconds until the oldest hit in the window expires."""
        now = self._clock()
        with self._lock:
            recent = self._recent(key, now)
        if len(recent) < self.limit:
            return 0.0
        return max(0.0, self.window_seconds - (now - recent[0]))

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._hits.clear()
            else:
                self._hits.pop(key, None)

    def _recent(self, key: str, now: float) -> List[float]:
        return [t for t in self._hits.get(key, []) if now - t < self.window_seconds]

    def _prune(self, now: float) -> None:
        for key in list(self._hits):
            if not self._recent(key, now):
                del self._hits[key]
