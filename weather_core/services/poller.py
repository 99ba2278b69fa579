from __future__ import annotations

import logging
import threading
from typing import Any, Iterable, List, Optional

from ..entities import Location, Observation
from ..providers.base import ErrorClass, ProviderError, WeatherProvider


class ServicePoller:
    """Polls one provider for one location and forwards the observations.

    The poller owns the retry policy: adapters only classify failures. A
    fatal classification ends the loop for this service; every other failure
    is retried after a back-off that depends on the error class.
    """

    RETRY_BASE = 10.0
    MAX_BACKOFF = 60 * 60.0

    def __init__(
        self,
        name: str,
        provider: WeatherProvider,
        location: Location,
        interval: float,
        destinations: Iterable[Any] = (),
        *,
        retry_base: Optional[float] = None,
        max_backoff: Optional[float] = None,
        health: Optional[Any] = None,
        stop_event: Optional[threading.Event] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.provider = provider
        self.location = location
        self.interval = float(interval)
        self.destinations: List[Any] = list(destinations)
        self.retry_base = self.RETRY_BASE if retry_base is None else retry_base
        self.max_backoff = self.MAX_BACKOFF if max_backoff is None else max_backoff
        self.health = health
        self.failures = 0
        self.fatal_error: Optional[ProviderError] = None
        self._stop = stop_event or threading.Event()
        self._log = logger or logging.getLogger(self.__class__.__name__)

    # Public API ---------------------------------------------------------
    def poll_once(self) -> Observation:
        try:
            observation = self.provider.query(self.location)
        except ProviderError as exc:
            self._record_error(exc)
            raise
        self.failures = 0
        if self.health is not None:
            self.health.record_success(self.name, observation.timestamp)
        self._report(observation)
        return observation

    def run(self) -> None:
        self._log.info("service %s started, polling %s every %ss", self.name, self.provider.name, self.interval)
        while not self._stop.is_set():
            error: Optional[ProviderError] = None
            try:
                self.poll_once()
            except ProviderError as exc:
                if exc.fatal:
                    self.fatal_error = exc
                    self._log.error("service %s stopped after fatal error from %s: %s", self.name, self.provider.name, exc)
                    break
                error = exc
            delay = self.next_delay(error)
            if error is not None:
                self._log.warning(
                    "service %s: %s failed (%s), retrying in %.0fs",
                    self.name,
                    self.provider.name,
                    error,
                    delay,
                )
            self._stop.wait(delay)
        self._log.info("service %s finished", self.name)

    def stop(self) -> None:
        self._stop.set()

    def next_delay(self, error: Optional[ProviderError]) -> float:
        if error is None:
            return self.interval
        if error.error_class is ErrorClass.CLIENT_RETRYABLE:
            return min(self.max_backoff, max(self.interval, self.retry_base * 2 ** self.failures))
        return min(self.interval, self.retry_base * 2 ** max(self.failures - 1, 0))

    # Helpers ------------------------------------------------------------
    def _record_error(self, exc: ProviderError) -> None:
        self.failures += 1
        if self.health is not None:
            self.health.record_error(self.name, exc.error_class.value, fatal=exc.fatal)

    def _report(self, observation: Observation) -> None:
        for destination in self.destinations:
            try:
                destination.report(observation)
            except Exception as exc:  # noqa: BLE001 - a destination must not stop polling
                self._log.error(
                    "service %s: destination %s failed: %s",
                    self.name,
                    getattr(destination, "name", destination.__class__.__name__),
                    exc,
                )


__all__ = ["ServicePoller"]
