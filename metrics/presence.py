"""Sliding-window presence tracking for active users"""
import threading
import time
from typing import Dict, Optional

DEFAULT_WINDOW_MS = 300_000


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class PresenceTracker:
    """Last-seen timestamps keyed by session token.

    Timestamps come from the monotonic clock in milliseconds. Counting is a
    linear scan over all tracked tokens at call time and nothing is cached.
    Entries only disappear through ``remove`` or ``sweep``.
    """

    def __init__(self):
        self._last_seen: Dict[str, float] = {}
        self._lock = threading.Lock()

    def touch(self, token: str, now_ms: Optional[float] = None) -> None:
        """Record activity for ``token``"""
        if not token:
            return
        now_ms = monotonic_ms() if now_ms is None else now_ms
        with self._lock:
            self._last_seen[token] = now_ms

    def refresh(self, token: str, now_ms: Optional[float] = None) -> bool:
        """Update ``token`` only if it is already tracked; returns whether it was"""
        if not token:
            return False
        now_ms = monotonic_ms() if now_ms is None else now_ms
        with self._lock:
            if token not in self._last_seen:
                return False
            self._last_seen[token] = now_ms
            return True

    def remove(self, token: str) -> None:
        """Forget ``token`` (logout)"""
        with self._lock:
            self._last_seen.pop(token, None)

    def count_active(self, window_ms: int = DEFAULT_WINDOW_MS, now_ms: Optional[float] = None) -> int:
        """Count tokens seen within ``window_ms`` of ``now_ms``, boundary included"""
        now_ms = monotonic_ms() if now_ms is None else now_ms
        with self._lock:
            return sum(1 for seen in self._last_seen.values() if now_ms - seen <= window_ms)

    def sweep(self, older_than_ms: int, now_ms: Optional[float] = None) -> int:
        """Drop entries last seen more than ``older_than_ms`` ago; returns how many were dropped"""
        now_ms = monotonic_ms() if now_ms is None else now_ms
        with self._lock:
            stale = [token for token, seen in self._last_seen.items() if now_ms - seen > older_than_ms]
            for token in stale:
                del self._last_seen[token]
        return len(stale)

    def tracked_count(self) -> int:
        with self._lock:
            return len(self._last_seen)

    def last_seen(self, token: str) -> Optional[float]:
        with self._lock:
            return self._last_seen.get(token)
