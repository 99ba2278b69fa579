"""Lightweight sqlite writer for normalized observations."""
from __future__ import annotations

import os
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterable, Iterator, List, Optional

from weather_core.entities import Location, Observation

from .base import Destination, DestinationError


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def create_connection(path: str) -> sqlite3.Connection:
    if path != ":memory:" and not os.path.isabs(path):
        path = os.path.abspath(path)
    connection = sqlite3.connect(
        path,
        detect_types=sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES,
        check_same_thread=False,
    )
    connection.row_factory = sqlite3.Row
    connection.execute("PRAGMA foreign_keys=ON")
    return connection


class SqliteDestination(Destination):
    """Stores measurements in a local sqlite database.

    Points are keyed by (location, timestamp, measurement name), so writing
    the same cached observation twice does not create duplicate rows.
    """

    name = "sqlite"

    def __init__(self, fields: Iterable[str] = (), *, path: str = "weather.db", **kwargs) -> None:
        super().__init__(fields, **kwargs)
        self.path = path
        self._lock = threading.Lock()
        self.connection = create_connection(path)
        self.run_migrations()

    @contextmanager
    def session_scope(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self.connection
                self.connection.commit()
            except Exception:
                self.connection.rollback()
                raise

    def run_migrations(self) -> None:
        with self.session_scope() as session:
            session.execute(
                """
                CREATE TABLE IF NOT EXISTS locations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    service VARCHAR(255),
                    latitude REAL NOT NULL,
                    longitude REAL NOT NULL,
                    altitude REAL NOT NULL,
                    created_at TEXT NOT NULL,
                    UNIQUE (service, latitude, longitude, altitude)
                )
                """
            )
            session.execute(
                """
                CREATE TABLE IF NOT EXISTS measurements (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    location_id INTEGER NOT NULL,
                    ts_utc TEXT NOT NULL,
                    source VARCHAR(64),
                    name VARCHAR(64) NOT NULL,
                    value REAL NOT NULL,
                    unit VARCHAR(16) NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(location_id) REFERENCES locations(id) ON DELETE CASCADE
                )
                """
            )
            session.execute(
                """
                CREATE UNIQUE INDEX IF NOT EXISTS uniq_measurement_location_ts_name
                ON measurements (location_id, ts_utc, name)
                """
            )

    def write(self, observation: Observation) -> None:
        try:
            with self.session_scope() as session:
                location_id = self._get_or_create_location(session, observation.location)
                now = utcnow_iso()
                ts_utc = _iso(observation.timestamp)
                session.executemany(
                    """
                    INSERT OR IGNORE INTO measurements (
                        location_id, ts_utc, source, name, value, unit, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (location_id, ts_utc, observation.source, m.name, m.value, m.unit, now)
                        for m in observation.measurements
                    ],
                )
        except sqlite3.OperationalError as exc:
            # locked or unavailable database, worth another try
            raise DestinationError(f"sqlite write failed: {exc}") from exc
        except sqlite3.Error as exc:
            raise DestinationError(f"sqlite write failed: {exc}", retryable=False) from exc

    def _get_or_create_location(self, session: sqlite3.Connection, location: Location) -> int:
        params = (self.service, location.latitude, location.longitude, location.altitude)
        row = session.execute(
            "SELECT id FROM locations WHERE service IS ? AND latitude = ? AND longitude = ? AND altitude = ?",
            params,
        ).fetchone()
        if row:
            return int(row["id"])
        cursor = session.execute(
            "INSERT INTO locations (service, latitude, longitude, altitude, created_at) VALUES (?, ?, ?, ?, ?)",
            params + (utcnow_iso(),),
        )
        return int(cursor.lastrowid)

    def fetch_measurements(self, name: Optional[str] = None) -> List[sqlite3.Row]:
        sql = "SELECT * FROM measurements"
        params: tuple = ()
        if name is not None:
            sql += " WHERE name = ?"
            params = (name,)
        with self._lock:
            return self.connection.execute(sql + " ORDER BY ts_utc, name", params).fetchall()

    def count_measurements(self) -> int:
        with self._lock:
            row = self.connection.execute("SELECT COUNT(*) AS cnt FROM measurements").fetchone()
        return int(row["cnt"])

    def close(self) -> None:
        with self._lock:
            self.connection.close()


__all__ = ["SqliteDestination"]
