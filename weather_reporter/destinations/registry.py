"""Static name to constructor map for destination writers."""
from __future__ import annotations

from typing import Any, Callable, Dict, Iterable

from .base import Destination
from .log import LogDestination
from .mqtt import MQTTDestination
from .sqlite import SqliteDestination


DestinationFactory = Callable[..., Destination]

DESTINATIONS: Dict[str, DestinationFactory] = {
    LogDestination.name: LogDestination,
    SqliteDestination.name: SqliteDestination,
    MQTTDestination.name: MQTTDestination,
}


class UnknownDestination(LookupError):
    """Raised when a configuration names a destination that is not registered."""


def create_destination(name: str, fields: Iterable[str] = (), **options: Any) -> Destination:
    try:
        factory = DESTINATIONS[name]
    except KeyError:
        raise UnknownDestination(f"no destination integration with name: {name}") from None
    return factory(fields, **options)


__all__ = ["DESTINATIONS", "UnknownDestination", "create_destination"]
