from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Iterable, Optional, Tuple

from weather_core.entities import Observation


class DestinationError(RuntimeError):
    """Raised by a destination that failed to persist a point."""

    def __init__(self, message: str, *, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


class Destination:
    """Base class for observation writers.

    ``report`` keeps every point it could not write yet and retries them, in
    order, on the next call. Only retryable failures keep points pending.
    """

    name = "destination"
    max_pending = 100

    def __init__(
        self,
        fields: Iterable[str] = (),
        *,
        service: Optional[str] = None,
        max_pending: Optional[int] = None,
    ) -> None:
        self.fields: Tuple[str, ...] = tuple(fields)
        self.service = service
        if max_pending is not None:
            if max_pending < 1:
                raise ValueError("max_pending must be at least 1")
            self.max_pending = max_pending
        self._pending: Deque[Observation] = deque()
        self._log = logging.getLogger(self.__class__.__name__)

    # Public API ---------------------------------------------------------
    def report(self, observation: Observation) -> int:
        point = observation.select(self.fields)
        if len(self._pending) >= self.max_pending:
            dropped = self._pending.popleft()
            self._log.warning("%s: pending queue full, dropping point from %s", self.name, dropped.timestamp)
        self._pending.append(point)
        return self.flush()

    def flush(self) -> int:
        """Write pending points oldest first; returns how many were written."""
        written = 0
        while self._pending:
            point = self._pending[0]
            try:
                self.write(point)
            except DestinationError as exc:
                if exc.retryable:
                    self._log.warning("%s: write failed, %d point(s) kept for retry: %s", self.name, len(self._pending), exc)
                    return written
                self._pending.popleft()
                raise
            self._pending.popleft()
            written += 1
        return written

    @property
    def pending(self) -> int:
        return len(self._pending)

    def write(self, observation: Observation) -> None:
        raise NotImplementedError

    def close(self) -> None:
        """Release resources held by the destination."""


__all__ = ["Destination", "DestinationError"]
