"""MQTT publisher that forwards observations to a broker."""
from __future__ import annotations

import json
from typing import Any, Callable, Iterable, Optional
from uuid import uuid4

import paho.mqtt.client as mqtt

from weather_core.entities import Observation

from .base import Destination, DestinationError

FIELD_PLACEHOLDER = "${field}"


class MQTTDestination(Destination):
    """Publishes one JSON message per observation.

    When the topic contains ``${field}`` every measurement is published on its
    own topic instead, e.g. ``weather/home/${field}`` → ``weather/home/temperature``.
    """

    name = "mqtt"

    def __init__(
        self,
        fields: Iterable[str] = (),
        *,
        host: str = "localhost",
        port: int = 1883,
        topic: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        keepalive: int = 60,
        qos: int = 1,
        retain: bool = False,
        client_id: Optional[str] = None,
        client_factory: Optional[Callable[[], Any]] = None,
        **kwargs,
    ) -> None:
        super().__init__(fields, **kwargs)
        self.host = host
        self.port = int(port)
        self.topic = topic or f"weather/{self.service or 'default'}/observations"
        self.username = username
        self.password = password
        self.keepalive = int(keepalive)
        self.qos = int(qos)
        self.retain = bool(retain)
        self.client_id = client_id or f"weather-reporter-{uuid4().hex[:8]}"
        self.client = (client_factory or self._build_client)()
        self.client.on_disconnect = self._on_disconnect
        self._connected = False

    def _build_client(self) -> mqtt.Client:
        client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=self.client_id)
        if self.username:
            client.username_pw_set(self.username, self.password)
        return client

    # -- MQTT callbacks -------------------------------------------------
    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._log.warning("disconnected from MQTT broker %s:%s (%s)", self.host, self.port, reason_code)
        self._connected = False

    # -- Destination ----------------------------------------------------
    def write(self, observation: Observation) -> None:
        self._ensure_connected()
        for topic, payload in self._messages(observation):
            info = self.client.publish(topic, json.dumps(payload), qos=self.qos, retain=self.retain)
            if info.rc != mqtt.MQTT_ERR_SUCCESS:
                self._connected = False
                raise DestinationError(f"publish to {topic} failed: rc={info.rc}")

    def _messages(self, observation: Observation):
        document = observation.as_dict()
        if self.service:
            document["service"] = self.service
        if FIELD_PLACEHOLDER not in self.topic:
            yield self.topic, document
            return
        for measurement in document["measurements"]:
            yield self.topic.replace(FIELD_PLACEHOLDER, measurement["name"]), {
                "timestamp": document["timestamp"],
                "value": measurement["value"],
                "unit": measurement["unit"],
            }

    def _ensure_connected(self) -> None:
        if self._connected:
            return
        try:
            self.client.connect(self.host, self.port, self.keepalive)
        except OSError as exc:
            raise DestinationError(f"failed to connect to MQTT broker {self.host}:{self.port}: {exc}") from exc
        self.client.loop_start()
        self._connected = True
        self._log.info("connected to MQTT broker %s:%s", self.host, self.port)

    def close(self) -> None:
        if not self._connected:
            return
        self.client.loop_stop()
        self.client.disconnect()
        self._connected = False


__all__ = ["MQTTDestination"]
