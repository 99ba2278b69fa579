"""MET Norway locationforecast provider.

How-to: https://api.met.no/doc/locationforecast/HowTO
Terms of service require client side caching, conditional requests and an
identifying User-Agent.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .base import WeatherProvider
from .. import entities
from ..entities import Location, Measurement, Observation


class InstantDetails(BaseModel):
    air_pressure_at_sea_level: Optional[float] = None
    air_temperature: Optional[float] = None
    cloud_area_fraction: Optional[float] = None
    relative_humidity: Optional[float] = None
    wind_from_direction: Optional[float] = None
    wind_speed: Optional[float] = None


class Instant(BaseModel):
    details: InstantDetails = Field(default_factory=InstantDetails)


class PeriodSummary(BaseModel):
    symbol_code: Optional[str] = None


class PeriodDetails(BaseModel):
    precipitation_amount: Optional[float] = None


class Period(BaseModel):
    summary: PeriodSummary = Field(default_factory=PeriodSummary)
    details: PeriodDetails = Field(default_factory=PeriodDetails)


class TimeseriesData(BaseModel):
    instant: Instant
    next_1_hours: Optional[Period] = None
    next_6_hours: Optional[Period] = None
    next_12_hours: Optional[Period] = None


class TimeseriesStep(BaseModel):
    time: datetime
    data: TimeseriesData


class Meta(BaseModel):
    updated_at: Optional[datetime] = None
    units: Dict[str, str] = Field(default_factory=dict)


class Properties(BaseModel):
    meta: Meta = Field(default_factory=Meta)
    timeseries: List[TimeseriesStep] = Field(min_length=1)


class Geometry(BaseModel):
    type: str = "Point"
    # GeoJSON order: longitude, latitude, altitude
    coordinates: List[float] = Field(min_length=2)


class MetNoResponse(BaseModel):
    type: str = "Feature"
    geometry: Geometry
    properties: Properties


class MetNoProvider(WeatherProvider[MetNoResponse]):
    name = "metno"
    base_url = "https://api.met.no/weatherapi/locationforecast/2.0/compact"
    response_model = MetNoResponse
    # 20 requests/second is considered heavy load
    min_interval = 0.05
    altitude_resolution = 20
    rate_limit_fatal = False

    def build_params(self, location: Location) -> Dict[str, Any]:
        return {
            "lat": f"{location.latitude:.4f}",
            "lon": f"{location.longitude:.4f}",
            "altitude": str(int(location.altitude)),
        }

    def to_observation(self, result: MetNoResponse, location: Location) -> Observation:
        step = result.properties.timeseries[0]
        details = step.data.instant.details
        next_hour = step.data.next_1_hours

        coordinates = result.geometry.coordinates
        reported = Location(
            latitude=coordinates[1],
            longitude=coordinates[0],
            altitude=coordinates[2] if len(coordinates) > 2 else location.altitude,
        )

        values = [
            (entities.TEMPERATURE, details.air_temperature, entities.CELSIUS),
            (entities.RELATIVE_HUMIDITY, details.relative_humidity, entities.PERCENT),
            (entities.PRESSURE, details.air_pressure_at_sea_level, entities.HECTOPASCAL),
            (
                entities.PRECIPITATION,
                next_hour.details.precipitation_amount if next_hour else None,
                entities.MILLIMETERS,
            ),
            (entities.WIND_SPEED, details.wind_speed, entities.METERS_PER_SECOND),
            (entities.CLOUD_COVER, details.cloud_area_fraction, entities.PERCENT),
            (entities.WIND_DIRECTION, details.wind_from_direction, entities.DEGREES),
        ]
        return Observation(
            timestamp=step.time,
            location=reported,
            measurements=tuple(Measurement(name, float(value), unit) for name, value, unit in values if value is not None),
            source=self.name,
        )


__all__ = ["MetNoProvider", "MetNoResponse"]
