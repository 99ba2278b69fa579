"""Static name to constructor map for the provider adapters."""
from __future__ import annotations

from typing import Any, Callable, Dict

from .base import WeatherProvider
from .metno import MetNoProvider
from .openweathermap import OpenWeatherMapProvider


ProviderFactory = Callable[..., WeatherProvider]

PROVIDERS: Dict[str, ProviderFactory] = {
    MetNoProvider.name: MetNoProvider,
    OpenWeatherMapProvider.name: OpenWeatherMapProvider,
}


class UnknownProvider(LookupError):
    """Raised when a configuration names a provider that is not registered."""


def create_provider(name: str, **options: Any) -> WeatherProvider:
    """Build a fresh adapter; every call gets its own cache and throttle."""
    try:
        factory = PROVIDERS[name]
    except KeyError:
        raise UnknownProvider(f"no source integration with name: {name}") from None
    return factory(**options)


__all__ = ["PROVIDERS", "UnknownProvider", "create_provider"]
