"""Telemetry snapshot and request statistics kept by the protocol engine."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, Optional


@dataclass(frozen=True)
class Reading:
    value: float
    last_update: float


class TelemetrySnapshot:
    """Last decoded value per channel.

    Entries are never cleared or zeroed on failure; a channel that stops
    answering simply ages. Callers decide what counts as stale.
    """

    def __init__(self, readings: Optional[Dict[str, Reading]] = None) -> None:
        self._readings: Dict[str, Reading] = dict(readings or {})

    def update(self, channel: str, value: float, now: float) -> None:
        self._readings[channel] = Reading(value=value, last_update=now)

    def get(self, channel: str) -> Optional[Reading]:
        return self._readings.get(channel)

    def value(self, channel: str) -> Optional[float]:
        reading = self._readings.get(channel)
        return None if reading is None else reading.value

    def age(self, channel: str, now: float) -> Optional[float]:
        reading = self._readings.get(channel)
        return None if reading is None else now - reading.last_update

    def is_stale(self, channel: str, now: float, max_age: float) -> bool:
        """Return True if the channel has no reading newer than ``max_age``."""
        age = self.age(channel, now)
        return age is None or age > max_age

    @property
    def last_update(self) -> Optional[float]:
        if not self._readings:
            return None
        return max(reading.last_update for reading in self._readings.values())

    def copy(self) -> "TelemetrySnapshot":
        return TelemetrySnapshot(self._readings)

    def as_dict(self) -> Dict[str, float]:
        return {channel: reading.value for channel, reading in self._readings.items()}

    def __contains__(self, channel: object) -> bool:
        return channel in self._readings

    def __len__(self) -> int:
        return len(self._readings)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TelemetrySnapshot):
            return NotImplemented
        return self._readings == other._readings


@dataclass
class Statistics:
    """Request counters, smoothed response time and link uptime (seconds)."""

    total_requests: int = 0
    successes: int = 0
    failures: int = 0
    average_response_time: float = 0.0
    cumulative_uptime: float = 0.0
    last_connect_time: Optional[float] = None
    reconnect_attempts: int = 0
    connected: bool = False

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successes * 100.0 / self.total_requests

    def current_uptime(self, now: float) -> float:
        if not self.connected or self.last_connect_time is None:
            return 0.0
        return now - self.last_connect_time

    def record_request(self) -> None:
        self.total_requests += 1

    def record_success(self, response_time: float) -> None:
        # Weight 1/2 smoothing rather than a true mean.
        if self.successes == 0:
            self.average_response_time = response_time
        else:
            self.average_response_time = (self.average_response_time + response_time) / 2
        self.successes += 1

    def record_failure(self) -> None:
        self.failures += 1

    def record_reconnect_attempt(self) -> None:
        self.reconnect_attempts += 1

    def mark_connected(self, now: float) -> None:
        self.last_connect_time = now
        self.connected = True

    def mark_disconnected(self, now: float) -> float:
        """Fold the finished session into ``cumulative_uptime`` and return it."""
        uptime = self.current_uptime(now)
        self.cumulative_uptime += uptime
        self.connected = False
        return uptime

    def copy(self) -> "Statistics":
        return replace(self)


__all__ = ["Reading", "Statistics", "TelemetrySnapshot"]
