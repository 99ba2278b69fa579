from __future__ import annotations

import copy
from datetime import datetime, timedelta, timezone

import pytest

from requests_mock import Mocker

from weather_core.cache import ConditionalCache
from weather_core.throttle import Throttle


class Clock:
    """Wall clock for the conditional cache, advanced by hand."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)

    def __call__(self) -> datetime:
        return self.now


class TimeController:
    """Monotonic clock plus a sleep that only moves the clock forward."""

    def __init__(self) -> None:
        self.now = 1000.0
        self.sleeps = []

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def requests_mock():
    with Mocker() as mock:
        yield mock


@pytest.fixture
def clock() -> Clock:
    return Clock(datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def time_controller() -> TimeController:
    return TimeController()


@pytest.fixture
def cache(clock) -> ConditionalCache:
    return ConditionalCache(clock=clock)


@pytest.fixture
def make_throttle(time_controller):
    def _make(min_interval: float) -> Throttle:
        return Throttle(min_interval, time_func=time_controller, sleep_func=time_controller.sleep)

    return _make


METNO_URL = "https://metno.test/compact"
OWM_URL = "https://owm.test/weather"

METNO_BODY = {
    "type": "Feature",
    "geometry": {"type": "Point", "coordinates": [10.7461, 59.9127, 14]},
    "properties": {
        "meta": {
            "updated_at": "2024-05-01T11:35:12Z",
            "units": {"air_temperature": "celsius", "air_pressure_at_sea_level": "hPa"},
        },
        "timeseries": [
            {
                "time": "2024-05-01T12:00:00Z",
                "data": {
                    "instant": {
                        "details": {
                            "air_pressure_at_sea_level": 1012.3,
                            "air_temperature": 15.0,
                            "cloud_area_fraction": 40.0,
                            "relative_humidity": 70.5,
                            "wind_from_direction": 182.1,
                            "wind_speed": 3.4,
                        }
                    },
                    "next_1_hours": {
                        "summary": {"symbol_code": "cloudy"},
                        "details": {"precipitation_amount": 0.2},
                    },
                },
            }
        ],
    },
}

OWM_BODY = {
    "coord": {"lon": -75.6972, "lat": 45.4215},
    "weather": [{"id": 803, "main": "Clouds", "description": "broken clouds", "icon": "04d"}],
    "base": "stations",
    "main": {
        "temp": 15.0,
        "feels_like": 14.2,
        "temp_min": 13.9,
        "temp_max": 16.1,
        "pressure": 1016,
        "humidity": 62,
    },
    "visibility": 10000,
    "wind": {"speed": 4.1, "deg": 250},
    "clouds": {"all": 75},
    "rain": {"1h": 0.35},
    "dt": 1714564800,
    "timezone": -14400,
    "id": 6094817,
    "name": "Ottawa",
    "cod": 200,
}


@pytest.fixture
def metno_body() -> dict:
    return copy.deepcopy(METNO_BODY)


@pytest.fixture
def owm_body() -> dict:
    return copy.deepcopy(OWM_BODY)
