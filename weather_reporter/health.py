"""In-memory health registry for the running services.

Pollers record successes and classified failures here; the registry is
logged when the reporter shuts down or finishes a single run.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, Mapping, Optional


@dataclass(frozen=True)
class CacheStats:
    """Simple container for cache related counters."""

    hits: int = 0
    misses: int = 0
    keys: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {"hits": self.hits, "misses": self.misses, "keys": self.keys}


class HealthRegistry:
    """Stores last success, error counters and cache stats per service."""

    def __init__(self) -> None:
        self._last_success: Dict[str, str] = {}
        self._errors: Dict[str, Dict[str, int]] = {}
        self._fatal: Dict[str, bool] = {}
        self._cache_stats: Dict[str, CacheStats] = {}
        self._lock = Lock()

    # -- Poll results -------------------------------------------------------
    def record_success(self, service: str, when: Optional[datetime] = None) -> None:
        if not service:
            raise ValueError("service must be provided")
        when = when or datetime.now(timezone.utc)
        with self._lock:
            self._last_success[service] = self._format_datetime(when)

    def record_error(self, service: str, error_class: str, *, fatal: bool = False) -> None:
        if not service:
            raise ValueError("service must be provided")
        with self._lock:
            counters = self._errors.setdefault(service, {})
            counters[error_class] = counters.get(error_class, 0) + 1
            if fatal:
                self._fatal[service] = True

    def is_fatal(self, service: str) -> bool:
        with self._lock:
            return self._fatal.get(service, False)

    # -- Cache stats --------------------------------------------------------
    def set_cache_stats(self, provider: str, stats: Optional[Mapping[str, int]]) -> None:
        if not stats:
            value = CacheStats()
        else:
            value = CacheStats(
                hits=int(stats.get("hits", 0)),
                misses=int(stats.get("misses", 0)),
                keys=int(stats.get("keys", 0)),
            )
        with self._lock:
            self._cache_stats[provider] = value

    # -- Snapshot -----------------------------------------------------------
    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            return {
                "last_success": dict(self._last_success),
                "errors": {service: dict(counters) for service, counters in self._errors.items()},
                "fatal": sorted(service for service, fatal in self._fatal.items() if fatal),
                "cache": {provider: stats.as_dict() for provider, stats in self._cache_stats.items()},
            }

    @staticmethod
    def _format_datetime(value: datetime) -> str:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
