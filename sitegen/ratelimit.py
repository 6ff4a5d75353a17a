from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Tuple


class FixedWindowLimiter:
    """In-process fixed-window request counter keyed by (bucket, client)."""

    def __init__(self, window_seconds: int, max_requests: int, clock: Callable[[], float] = time.time):
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock = clock
        self._store: Dict[Tuple[str, str], Dict[str, int]] = {}
        self._lock = threading.Lock()

    def _now(self) -> int:
        return int(self._clock())

    def _entry(self, bucket: str, key: str) -> Dict[str, int]:
        k = (bucket or "default", key or "anon")
        now = self._now()
        entry = self._store.get(k)
        if entry is None or now >= entry["reset_ts"]:
            entry = {"count": 0, "reset_ts": now + self.window_seconds}
            self._store[k] = entry
        return entry

    def allow_request(self, bucket: str, key: str) -> Tuple[bool, int, int]:
        """
        Returns (allowed, remaining, reset_ts).
        A non-positive max_requests disables limiting.
        """
        if self.max_requests <= 0:
            return True, 0, self._now()
        with self._lock:
            entry = self._entry(bucket, key)
            if entry["count"] < self.max_requests:
                entry["count"] += 1
                return True, max(0, self.max_requests - entry["count"]), entry["reset_ts"]
            return False, 0, entry["reset_ts"]

    def retry_after(self, reset_ts: int) -> int:
        return max(1, reset_ts - self._now())

    def _reset(self) -> None:
        """Used by tests to clear state."""
        with self._lock:
            self._store.clear()
