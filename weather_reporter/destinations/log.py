"""Destination that prints observations as JSON documents."""
from __future__ import annotations

import json
import logging
import sys
from typing import Iterable, Optional, TextIO

from weather_core.entities import Observation

from .base import Destination, DestinationError


logger = logging.getLogger("weather_reporter.observations")


class LogDestination(Destination):
    name = "log"

    def __init__(
        self,
        fields: Iterable[str] = (),
        *,
        stream: str = "log",
        stdout: Optional[TextIO] = None,
        **kwargs,
    ) -> None:
        super().__init__(fields, **kwargs)
        if stream not in ("log", "stdout"):
            raise ValueError(f"unsupported stream {stream!r}, expected 'log' or 'stdout'")
        self.stream = stream
        self.stdout = stdout or sys.stdout

    def write(self, observation: Observation) -> None:
        payload = observation.as_dict()
        if self.service:
            payload["service"] = self.service
        document = json.dumps(payload)
        if self.stream == "log":
            logger.info("%s", document)
            return
        try:
            self.stdout.write(document + "\n")
            self.stdout.flush()
        except OSError as exc:
            raise DestinationError(f"failed to write to stdout: {exc}") from exc


__all__ = ["LogDestination"]
