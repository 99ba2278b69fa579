"""Wire configured services to provider adapters, destinations and pollers."""
from __future__ import annotations

import json
import logging
import signal
import threading
from typing import List, Optional, Sequence

from weather_core.entities import Location
from weather_core.providers.base import ProviderError, WeatherProvider
from weather_core.providers.registry import UnknownProvider, create_provider
from weather_core.services.poller import ServicePoller

from .config import ServiceConfig
from .destinations.base import Destination
from .destinations.registry import UnknownDestination, create_destination
from .health import HealthRegistry
from .settings import ImproperlyConfigured, Settings

logger = logging.getLogger(__name__)


def build_provider(config: ServiceConfig, settings: Settings) -> WeatherProvider:
    source = config.source
    try:
        return create_provider(source.name, request_config=settings.request_config(), **source.options)
    except UnknownProvider as exc:
        raise ImproperlyConfigured(f"{exc}, config: {config.source_path}") from exc
    except (TypeError, ValueError) as exc:
        raise ImproperlyConfigured(f"failed to initialize data source {source.name}: {exc}") from exc


def build_destinations(config: ServiceConfig) -> List[Destination]:
    destinations: List[Destination] = []
    for destination in config.destinations:
        options = dict(destination.options)
        options.setdefault("service", config.name)
        try:
            destinations.append(create_destination(destination.name, destination.measurement_fields, **options))
        except UnknownDestination as exc:
            raise ImproperlyConfigured(f"{exc}, config: {config.source_path}") from exc
        except (TypeError, ValueError) as exc:
            raise ImproperlyConfigured(f"failed to initialize destination {destination.name}: {exc}") from exc
    return destinations


class Reporter:
    """Runs one poller per configured service."""

    def __init__(
        self,
        services: Sequence[ServiceConfig],
        settings: Settings,
        health: Optional[HealthRegistry] = None,
    ) -> None:
        if not services:
            raise ImproperlyConfigured("no services configured")
        self.settings = settings
        self.health = health or HealthRegistry()
        self.stop_event = threading.Event()
        self.pollers: List[ServicePoller] = []
        for config in services:
            logger.info("starting service: %s", config.name)
            source = config.source
            self.pollers.append(
                ServicePoller(
                    config.name,
                    build_provider(config, settings),
                    Location(source.latitude, source.longitude, source.altitude),
                    source.poll_interval,
                    build_destinations(config),
                    retry_base=settings.retry_base,
                    max_backoff=settings.max_backoff,
                    health=self.health,
                    stop_event=self.stop_event,
                )
            )
        self._threads: List[threading.Thread] = []

    # Public API ---------------------------------------------------------
    def run_once(self) -> bool:
        """Poll every service a single time; returns ``True`` when all succeeded."""
        ok = True
        for poller in self.pollers:
            try:
                poller.poll_once()
            except ProviderError as exc:
                logger.error("service %s failed: %s", poller.name, exc)
                ok = False
        self._finish()
        return ok

    def start(self) -> None:
        for poller in self.pollers:
            thread = threading.Thread(target=poller.run, name=f"service-{poller.name}", daemon=True)
            thread.start()
            self._threads.append(thread)

    def wait(self, poll: float = 0.5) -> None:
        while any(thread.is_alive() for thread in self._threads):
            for thread in self._threads:
                thread.join(timeout=poll)
        self._finish()

    def run_forever(self, install_signal_handlers: bool = True) -> None:
        if install_signal_handlers:
            self._install_signal_handlers()
        self.start()
        self.wait()

    def stop(self) -> None:
        logger.info("stopping services")
        self.stop_event.set()

    @property
    def failed_services(self) -> List[str]:
        return [poller.name for poller in self.pollers if poller.fatal_error is not None]

    # Helpers ------------------------------------------------------------
    def _finish(self) -> None:
        for poller in self.pollers:
            self.health.set_cache_stats(poller.name, poller.provider.cache.stats())
            for destination in poller.destinations:
                try:
                    destination.close()
                except Exception:  # noqa: BLE001 - closing must not hide the other destinations
                    logger.exception("failed to close destination %s", destination.name)
        logger.info("health: %s", json.dumps(self.health.snapshot(), sort_keys=True))

    def _install_signal_handlers(self) -> None:
        def _handle_signal(signum, frame):
            logger.info("received signal %s, shutting down", signum)
            self.stop()

        signal.signal(signal.SIGINT, _handle_signal)
        signal.signal(signal.SIGTERM, _handle_signal)


__all__ = ["Reporter", "build_destinations", "build_provider"]
