from __future__ import annotations

import time
from typing import Callable, Optional


class Throttle:
    """Client side pacing of outbound requests to a single provider.

    ``acquire`` sleeps until ``min_interval`` seconds have passed since the
    last recorded request and then records the new one. Adapters call
    ``touch`` once a response has arrived so the spacing is measured from the
    completion of the previous request.
    """

    def __init__(
        self,
        min_interval: float,
        time_func: Callable[[], float] = time.monotonic,
        sleep_func: Callable[[float], None] = time.sleep,
    ) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must not be negative")
        self.min_interval = min_interval
        self._time_func = time_func
        self._sleep_func = sleep_func
        self._last: Optional[float] = None

    def acquire(self) -> float:
        """Block until the next request may go out; returns the time slept."""
        waited = 0.0
        if self._last is not None:
            elapsed = self._time_func() - self._last
            if elapsed < self.min_interval:
                waited = self.min_interval - elapsed
                self._sleep_func(waited)
        self._last = self._time_func()
        return waited

    def touch(self) -> None:
        self._last = self._time_func()


__all__ = ["Throttle"]
