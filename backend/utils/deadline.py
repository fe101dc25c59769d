"""Caller-supplied query deadlines measured on a monotonic clock."""

from __future__ import annotations

import time
from typing import Callable, Optional


class Deadline:
    """Tracks the time left for one query; ``None`` seconds means unbounded."""

    def __init__(
        self,
        seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if seconds is not None and seconds < 0:
            raise ValueError("deadline seconds must be >= 0")
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds

    @property
    def bounded(self) -> bool:
        return self._expires_at is not None

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        return self._expires_at is not None and self._clock() >= self._expires_at
