"""DHT temperature/humidity sensor access with a bounded retry budget."""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Optional, Protocol, Tuple

from services.errors import ReadCancelledError, SensorReadError, SensorUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_BACKOFF_SECONDS = 0.5
MAX_BACKOFF_SECONDS = 5.0


class SensorModel(str, Enum):
    """Sensor types the monitor knows how to read."""

    dht11 = "dht11"
    dht22 = "dht22"


def get_sensor_model(name: str) -> SensorModel:
    try:
        return SensorModel(name.strip().lower())
    except ValueError as exc:
        raise ValueError(f"unknown model: {name}") from exc


class DHTDriver(Protocol):
    def read(self, model: SensorModel, pin: int) -> Tuple[float, float]:
        """Return ``(temperature_c, humidity_pct)`` or raise ``SensorReadError``."""
        ...


def backoff_delay(attempt: int, base: float) -> float:
    return min(base * (2 ** attempt), MAX_BACKOFF_SECONDS)


def read_with_retry(
    driver: DHTDriver,
    model: SensorModel,
    pin: int,
    attempts: int,
    cancel: Optional[threading.Event] = None,
    backoff: float = DEFAULT_BACKOFF_SECONDS,
) -> Tuple[float, float, int]:
    """Read a sensor, retrying failed exchanges with exponential backoff.

    Returns ``(temperature, humidity, retries)`` where ``retries`` counts the
    failed attempts that preceded the successful one. When ``cancel`` is set
    the read stops at the next attempt boundary, including while backing off.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    last_error: Optional[SensorReadError] = None
    for attempt in range(attempts):
        if cancel is not None and cancel.is_set():
            raise ReadCancelledError(f"read of {model.value} on pin {pin} cancelled")
        try:
            temperature, humidity = driver.read(model, pin)
        except SensorReadError as exc:
            last_error = exc
            logger.debug(
                "Sensor read attempt %d/%d failed: %s",
                attempt + 1,
                attempts,
                exc,
                extra={"pin": pin, "model": model.value},
            )
            if attempt + 1 == attempts:
                break
            delay = backoff_delay(attempt, backoff)
            if cancel is not None:
                if cancel.wait(delay):
                    raise ReadCancelledError(
                        f"read of {model.value} on pin {pin} cancelled"
                    ) from exc
            elif delay > 0:
                time.sleep(delay)
            continue
        return temperature, humidity, attempt

    raise SensorUnavailableError(
        f"{model.value} on pin {pin} did not answer after {attempts} attempts"
    ) from last_error
