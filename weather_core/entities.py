from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Iterable, Optional, Tuple

# Measurement names shared by every provider and destination.
TEMPERATURE = "temperature"
FEELS_LIKE = "feels_like"
RELATIVE_HUMIDITY = "relative_humidity"
PRESSURE = "pressure"
PRECIPITATION = "precipitation"
WIND_SPEED = "wind_speed"
WIND_DIRECTION = "wind_direction"
CLOUD_COVER = "cloud_cover"

CELSIUS = "celsius"
PERCENT = "%"
DEGREES = "degrees"
MILLIMETERS = "mm"
METERS_PER_SECOND = "m/s"
HECTOPASCAL = "hPa"


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    altitude: float = 0.0


@dataclass(frozen=True)
class CacheKey:
    """Quantized projection of a :class:`Location`.

    Latitude and longitude are truncated to one decimal degree. Altitude is
    bucketed to ``altitude_resolution`` metres, or ignored when the provider
    does not take altitude into account. Nearby locations deliberately share
    one key.
    """

    lat_decidegrees: int
    lon_decidegrees: int
    altitude_bucket: Optional[int] = None

    @classmethod
    def from_location(cls, location: Location, altitude_resolution: Optional[int] = None) -> "CacheKey":
        bucket = None
        if altitude_resolution:
            bucket = int(location.altitude / altitude_resolution)
        return cls(
            lat_decidegrees=int(location.latitude * 10),
            lon_decidegrees=int(location.longitude * 10),
            altitude_bucket=bucket,
        )

    def __str__(self) -> str:
        if self.altitude_bucket is None:
            return f"{self.lat_decidegrees}-{self.lon_decidegrees}"
        return f"{self.lat_decidegrees}-{self.lon_decidegrees}-{self.altitude_bucket}"


@dataclass(frozen=True)
class Measurement:
    name: str
    value: float
    unit: str


@dataclass(frozen=True)
class Observation:
    """Normalized weather observation.

    Values are stored in metric units so providers are interchangeable:
    - temperature in Celsius
    - pressure in hectopascal (hPa)
    - wind speed in metres per second (m/s)
    - precipitation in millimetres (mm)
    """

    timestamp: datetime
    location: Location
    measurements: Tuple[Measurement, ...] = field(default_factory=tuple)
    source: str = ""

    def get(self, name: str) -> Optional[Measurement]:
        for measurement in self.measurements:
            if measurement.name == name:
                return measurement
        return None

    def names(self) -> Tuple[str, ...]:
        return tuple(m.name for m in self.measurements)

    def select(self, names: Iterable[str]) -> "Observation":
        """Return a copy restricted to ``names``; an empty selection keeps everything."""
        wanted = set(names)
        if not wanted:
            return self
        return replace(self, measurements=tuple(m for m in self.measurements if m.name in wanted))

    def as_dict(self) -> dict:
        timestamp = self.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return {
            "timestamp": timestamp.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
            "source": self.source,
            "location": {
                "latitude": self.location.latitude,
                "longitude": self.location.longitude,
                "altitude": self.location.altitude,
            },
            "measurements": [
                {"name": m.name, "value": m.value, "unit": m.unit} for m in self.measurements
            ],
        }


__all__ = [
    "CacheKey",
    "Location",
    "Measurement",
    "Observation",
]
