"""
Per-caller request limits for reader operations.

Each caller keeps a sliding window of request timestamps covering the
last hour; a request is refused when either the per-minute or the
per-hour window is full.
"""

import math
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

MINUTE = 60.0
HOUR = 3600.0

DEFAULT_PER_MINUTE = 100
DEFAULT_PER_HOUR = 500


class RateLimiter:
    """
    Sliding-window limiter keyed by caller.

    A limit of 0 turns that window off. Thread-safe.
    """

    def __init__(
        self,
        per_minute: int = DEFAULT_PER_MINUTE,
        per_hour: int = DEFAULT_PER_HOUR,
        clock: Callable[[], float] = time.monotonic,
    ):
        if per_minute < 0 or per_hour < 0:
            raise ValueError("Rate limits cannot be negative")

        self.per_minute = per_minute
        self.per_hour = per_hour
        self._clock = clock
        self._requests: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self.per_minute or self.per_hour)

    def acquire(self, caller: str) -> Optional[int]:
        """
        Record a request for caller if the limits allow it.

        Returns:
            None when the request is allowed, otherwise the number of
            seconds until a slot frees up
        """
        if not self.enabled:
            return None

        now = self._clock()
        with self._lock:
            window = self._requests.setdefault(caller, deque())
            while window and window[0] <= now - HOUR:
                window.popleft()

            if self.per_minute:
                recent = [t for t in window if t > now - MINUTE]
                if len(recent) >= self.per_minute:
                    return max(1, math.ceil(recent[0] + MINUTE - now))

            if self.per_hour and len(window) >= self.per_hour:
                return max(1, math.ceil(window[0] + HOUR - now))

            window.append(now)
            return None

    def remaining(self, caller: str) -> Optional[int]:
        """Requests caller may still make right now; None when unlimited."""
        if not self.enabled:
            return None

        now = self._clock()
        with self._lock:
            window = self._requests.get(caller, ())
            counts = []
            if self.per_minute:
                counts.append(self.per_minute - sum(1 for t in window if t > now - MINUTE))
            if self.per_hour:
                counts.append(self.per_hour - sum(1 for t in window if t > now - HOUR))
        return max(0, min(counts))

    def reset(self, caller: Optional[str] = None) -> None:
        """Forget the history of one caller, or of everyone."""
        with self._lock:
            if caller is None:
                self._requests.clear()
            else:
                self._requests.pop(caller, None)
