from __future__ import annotations

import io
import json
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from weather_core.entities import Location, Measurement, Observation
from weather_reporter.destinations.base import Destination, DestinationError
from weather_reporter.destinations.log import LogDestination
from weather_reporter.destinations.mqtt import MQTTDestination
from weather_reporter.destinations.registry import UnknownDestination, create_destination
from weather_reporter.destinations.sqlite import SqliteDestination


def make_observation(hour: int = 12, temp: float = 15.0) -> Observation:
    return Observation(
        timestamp=datetime(2024, 5, 1, hour, tzinfo=timezone.utc),
        location=Location(59.9127, 10.7461, 14),
        measurements=(
            Measurement("temperature", temp, "celsius"),
            Measurement("pressure", 1012.3, "hPa"),
            Measurement("wind_speed", 3.4, "m/s"),
        ),
        source="metno",
    )


class FlakyDestination(Destination):
    name = "flaky"

    def __init__(self, fields=(), **kwargs) -> None:
        super().__init__(fields, **kwargs)
        self.failing = True
        self.retryable = True
        self.written = []

    def write(self, observation: Observation) -> None:
        if self.failing:
            raise DestinationError("unavailable", retryable=self.retryable)
        self.written.append(observation)


class FakeMQTTClient:
    def __init__(self, refuse: bool = False, rc: int = 0) -> None:
        self.refuse = refuse
        self.rc = rc
        self.connects = 0
        self.published = []
        self.on_disconnect = None
        self.disconnected = False

    def connect(self, host, port, keepalive):
        if self.refuse:
            raise ConnectionRefusedError("connection refused")
        self.connects += 1

    def loop_start(self):
        pass

    def loop_stop(self):
        pass

    def disconnect(self):
        self.disconnected = True

    def publish(self, topic, payload, qos=0, retain=False):
        self.published.append((topic, json.loads(payload), qos, retain))
        return SimpleNamespace(rc=self.rc)


def test_report_filters_measurements_to_configured_fields():
    destination = FlakyDestination(["temperature", "wind_speed"])
    destination.failing = False

    destination.report(make_observation())

    assert destination.written[0].names() == ("temperature", "wind_speed")


def test_empty_field_list_keeps_every_measurement():
    destination = FlakyDestination([])
    destination.failing = False

    destination.report(make_observation())

    assert destination.written[0].names() == ("temperature", "pressure", "wind_speed")


def test_retryable_failure_keeps_points_for_next_report():
    destination = FlakyDestination()

    assert destination.report(make_observation(hour=12)) == 0
    assert destination.report(make_observation(hour=13)) == 0
    assert destination.pending == 2

    destination.failing = False
    assert destination.report(make_observation(hour=14)) == 3
    assert [point.timestamp.hour for point in destination.written] == [12, 13, 14]
    assert destination.pending == 0


def test_pending_queue_is_bounded():
    destination = FlakyDestination(max_pending=2)

    for hour in (10, 11, 12):
        destination.report(make_observation(hour=hour))

    assert destination.pending == 2
    destination.failing = False
    destination.flush()
    assert [point.timestamp.hour for point in destination.written] == [11, 12]


def test_non_retryable_failure_drops_point_and_raises():
    destination = FlakyDestination()
    destination.retryable = False

    with pytest.raises(DestinationError):
        destination.report(make_observation())
    assert destination.pending == 0


def test_log_destination_writes_json_to_stdout():
    stdout = io.StringIO()
    destination = LogDestination(["temperature"], stream="stdout", stdout=stdout, service="home")

    destination.report(make_observation())

    document = json.loads(stdout.getvalue())
    assert document["service"] == "home"
    assert document["timestamp"] == "2024-05-01T12:00:00Z"
    assert document["measurements"] == [{"name": "temperature", "value": 15.0, "unit": "celsius"}]


def test_log_destination_rejects_unknown_stream():
    with pytest.raises(ValueError):
        LogDestination(stream="syslog")


def test_sqlite_destination_stores_and_deduplicates(tmp_path):
    destination = SqliteDestination(["temperature", "pressure"], path=str(tmp_path / "weather.db"), service="home")

    destination.report(make_observation())
    destination.report(make_observation())
    destination.report(make_observation(hour=13, temp=16.5))

    assert destination.count_measurements() == 4
    rows = destination.fetch_measurements("temperature")
    assert [row["value"] for row in rows] == [15.0, 16.5]
    assert rows[0]["ts_utc"] == "2024-05-01T12:00:00+00:00"
    assert rows[0]["unit"] == "celsius"
    destination.close()


def test_sqlite_relative_path_resolves_against_working_directory(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    destination = SqliteDestination(path="relative.db")

    destination.report(make_observation())
    destination.close()

    assert (tmp_path / "relative.db").exists()


def test_mqtt_destination_publishes_observation():
    client = FakeMQTTClient()
    destination = MQTTDestination(["temperature"], client_factory=lambda: client, service="home")

    destination.report(make_observation())

    assert client.connects == 1
    topic, payload, qos, retain = client.published[0]
    assert topic == "weather/home/observations"
    assert payload["service"] == "home"
    assert payload["measurements"] == [{"name": "temperature", "value": 15.0, "unit": "celsius"}]
    assert (qos, retain) == (1, False)


def test_mqtt_destination_expands_field_topics():
    client = FakeMQTTClient()
    destination = MQTTDestination(
        ["temperature", "pressure"],
        topic="weather/home/${field}",
        retain=True,
        client_factory=lambda: client,
    )

    destination.report(make_observation())

    assert [(topic, payload["value"]) for topic, payload, _, _ in client.published] == [
        ("weather/home/temperature", 15.0),
        ("weather/home/pressure", 1012.3),
    ]
    assert all(retain for _, _, _, retain in client.published)


def test_mqtt_connection_failure_keeps_points_pending():
    client = FakeMQTTClient(refuse=True)
    destination = MQTTDestination(client_factory=lambda: client)

    destination.report(make_observation(hour=12))
    assert destination.pending == 1

    client.refuse = False
    destination.report(make_observation(hour=13))
    assert destination.pending == 0
    assert len(client.published) == 2

    destination.close()
    assert client.disconnected


def test_mqtt_publish_failure_is_retryable():
    client = FakeMQTTClient(rc=4)
    destination = MQTTDestination(client_factory=lambda: client)

    destination.report(make_observation())

    assert destination.pending == 1


def test_registry_builds_destinations(tmp_path):
    destination = create_destination("sqlite", ["temperature"], path=str(tmp_path / "w.db"))

    assert isinstance(destination, SqliteDestination)
    assert destination.fields == ("temperature",)
    destination.close()

    with pytest.raises(UnknownDestination):
        create_destination("influxdb")
