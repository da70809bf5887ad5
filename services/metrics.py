"""Prometheus metrics published by the sensor and keg services."""

from __future__ import annotations

import threading
from functools import lru_cache
from typing import Mapping, Optional, Set, Tuple

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest


class PrometheusMetrics:
    """Observability sink bound to a single collector registry."""

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        self.dht_temperature = Gauge(
            "kegerator_dht_temperature_celsius",
            "Last accepted temperature reported by a DHT sensor",
            ["pin", "model"],
            registry=self.registry,
        )
        self.dht_humidity = Gauge(
            "kegerator_dht_humidity_ratio",
            "Last accepted relative humidity reported by a DHT sensor (0-1)",
            ["pin", "model"],
            registry=self.registry,
        )
        self.dht_retries = Counter(
            "kegerator_dht_retries",
            "Failed read attempts that preceded accepted DHT readings",
            ["pin", "model"],
            registry=self.registry,
        )
        self.remaining_volume = Gauge(
            "kegerator_remaining_volume_liters",
            "Volume left in each keg",
            ["pin", "keg_type", "contents"],
            registry=self.registry,
        )
        self._remaining_labels: Set[Tuple[str, str, str]] = set()
        self._remaining_lock = threading.Lock()
        self.http_request_duration = Counter(
            "kegerator_http_request_duration_seconds",
            "Cumulative time spent serving HTTP requests",
            ["path"],
            registry=self.registry,
        )

    def observe_reading(
        self, pin: int, model: str, temperature: float, humidity: float, retries: int
    ) -> None:
        labels = (str(pin), model)
        self.dht_temperature.labels(*labels).set(temperature)
        self.dht_humidity.labels(*labels).set(humidity / 100.0)
        self.dht_retries.labels(*labels).inc(retries)

    def publish_remaining_volumes(self, volumes: Mapping[Tuple[int, str, str], float]) -> None:
        """Set every keg's gauge, then drop label sets no keg reports any more.

        The gauge is never emptied in between, so a concurrent render sees either
        the previous or the new series for each keg.
        """
        current = set()
        with self._remaining_lock:
            for (pin, keg_type, contents), volume in volumes.items():
                labels = (str(pin), keg_type, contents)
                self.remaining_volume.labels(*labels).set(volume)
                current.add(labels)
            for labels in self._remaining_labels - current:
                self.remaining_volume.remove(*labels)
            self._remaining_labels = current

    def observe_request(self, path: str, seconds: float) -> None:
        self.http_request_duration.labels(path).inc(seconds)

    def render(self) -> bytes:
        return generate_latest(self.registry)


@lru_cache
def build_default_metrics() -> PrometheusMetrics:
    return PrometheusMetrics()
