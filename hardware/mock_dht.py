from __future__ import annotations

from collections import deque
from functools import lru_cache
from threading import Lock
from typing import Deque, Dict, Optional, Tuple, Union

from hardware.dht import SensorModel
from services.errors import SensorReadError

ScriptedResult = Union[Tuple[float, float], Exception]


class MockDHTDriver:
    """In-memory DHT driver whose answers are scripted per pin."""

    def __init__(self, default: Optional[Tuple[float, float]] = None) -> None:
        self._default = default
        self._steady: Dict[int, Tuple[float, float]] = {}
        self._scripts: Dict[int, Deque[ScriptedResult]] = {}
        self._reads: Dict[int, int] = {}
        self._lock = Lock()

    def set_reading(self, pin: int, temperature: float, humidity: float) -> None:
        with self._lock:
            self._steady[pin] = (temperature, humidity)

    def queue(self, pin: int, *results: ScriptedResult) -> None:
        """Queue one-shot answers consumed before the steady reading."""
        with self._lock:
            self._scripts.setdefault(pin, deque()).extend(results)

    def read_count(self, pin: int) -> int:
        with self._lock:
            return self._reads.get(pin, 0)

    def read(self, model: SensorModel, pin: int) -> Tuple[float, float]:
        with self._lock:
            self._reads[pin] = self._reads.get(pin, 0) + 1
            script = self._scripts.get(pin)
            if script:
                result = script.popleft()
            else:
                result = self._steady.get(pin, self._default)

        if result is None:
            raise SensorReadError(f"no response from {model.value} on pin {pin}")
        if isinstance(result, Exception):
            raise result
        return result


@lru_cache
def build_default_driver() -> MockDHTDriver:
    return MockDHTDriver(default=(4.0, 40.0))
