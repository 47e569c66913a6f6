from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from typing import Callable


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


class WallClock:
    """Wall-clock nanoseconds that never step backwards within a process."""

    def __init__(self, source: Callable[[], int] = time.time_ns) -> None:
        self._source = source
        self._lock = threading.Lock()
        self._last = 0

    def now_ns(self) -> int:
        t = self._source()
        with self._lock:
            if t < self._last:
                t = self._last
            self._last = t
        return t


_clock = WallClock()


def now_ns() -> int:
    return _clock.now_ns()
