"""Value objects published by sensors and flow meters."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class SensorReading:
    """A validated temperature/humidity sample, replaced wholesale by the next one."""

    temperature: float
    humidity: float
    retries: int
    observed_at: datetime


@dataclass(frozen=True, slots=True)
class Pour:
    """One completed dispensing event on a keg line."""

    start_time: datetime
    end_time: datetime
    volume: float
    keg_pin: int
