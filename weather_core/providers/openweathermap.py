"""OpenWeatherMap current weather provider.

API reference: https://openweathermap.org/current
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from requests import Response

from .base import WeatherProvider
from .. import entities
from ..entities import Location, Measurement, Observation


class Coord(BaseModel):
    lon: float
    lat: float


class Condition(BaseModel):
    id: Optional[int] = None
    main: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None


class Main(BaseModel):
    temp: float
    feels_like: Optional[float] = None
    temp_min: Optional[float] = None
    temp_max: Optional[float] = None
    pressure: Optional[float] = None
    humidity: Optional[float] = None


class Wind(BaseModel):
    speed: Optional[float] = None
    deg: Optional[float] = None
    gust: Optional[float] = None


class Clouds(BaseModel):
    all: Optional[float] = None


class Rain(BaseModel):
    one_hour: Optional[float] = Field(default=None, alias="1h")
    three_hours: Optional[float] = Field(default=None, alias="3h")


class OpenWeatherResponse(BaseModel):
    coord: Coord
    weather: List[Condition] = Field(default_factory=list)
    main: Main
    visibility: Optional[float] = None
    wind: Wind = Field(default_factory=Wind)
    clouds: Clouds = Field(default_factory=Clouds)
    rain: Optional[Rain] = None
    dt: int
    timezone: Optional[int] = None
    id: Optional[int] = None
    name: Optional[str] = None
    cod: Optional[int] = None


class OpenWeatherMapProvider(WeatherProvider[OpenWeatherResponse]):
    name = "openweathermap"
    # the endpoint for paid subscription plans is different
    base_url = "https://api.openweathermap.org/data/2.5/weather"
    response_model = OpenWeatherResponse
    # free tier allows 60 calls per minute
    min_interval = 1.0
    altitude_resolution = None
    # exceeding the subscription limit temporarily blocks the account
    rate_limit_fatal = True
    forbidden_hint = "check that the api key is valid for this endpoint"
    rate_limit_hint = (
        "your OpenWeatherMap account is temporarily blocked for exceeding "
        "the request limit of your subscription"
    )

    def __init__(self, api_key: str, lang: str = "en", **kwargs) -> None:
        super().__init__(**kwargs)
        if not api_key:
            raise ValueError("OpenWeatherMap requires an api_key")
        self.api_key = api_key
        self.lang = lang

    def build_params(self, location: Location) -> Dict[str, Any]:
        return {
            "lat": f"{location.latitude:.4f}",
            "lon": f"{location.longitude:.4f}",
            "units": "metric",
            "lang": self.lang,
            "appid": self.api_key,
        }

    def to_observation(self, result: OpenWeatherResponse, location: Location) -> Observation:
        precipitation = 0.0
        if result.rain is not None and result.rain.one_hour is not None:
            precipitation = result.rain.one_hour

        values = [
            (entities.TEMPERATURE, result.main.temp, entities.CELSIUS),
            (entities.FEELS_LIKE, result.main.feels_like, entities.CELSIUS),
            (entities.RELATIVE_HUMIDITY, result.main.humidity, entities.PERCENT),
            (entities.PRESSURE, result.main.pressure, entities.HECTOPASCAL),
            (entities.WIND_SPEED, result.wind.speed, entities.METERS_PER_SECOND),
            (entities.WIND_DIRECTION, result.wind.deg, entities.DEGREES),
            (entities.CLOUD_COVER, result.clouds.all, entities.PERCENT),
            (entities.PRECIPITATION, precipitation, entities.MILLIMETERS),
        ]
        return Observation(
            timestamp=datetime.fromtimestamp(result.dt, tz=timezone.utc),
            location=Location(
                latitude=result.coord.lat,
                longitude=result.coord.lon,
                altitude=location.altitude,
            ),
            measurements=tuple(Measurement(name, float(value), unit) for name, value, unit in values if value is not None),
            source=self.name,
        )

    def _log_client_error(self, response: Response) -> None:
        super()._log_client_error(response)
        self._log.error("%s", response.text[:500])
        self._log.error("note: if you recently created the OpenWeatherMap api key, try again in a few minutes")


__all__ = ["OpenWeatherMapProvider", "OpenWeatherResponse"]
