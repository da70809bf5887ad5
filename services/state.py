"""Aggregate owner of every keg and sensor, and the only source of consistent snapshots."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple

from hardware.dht import DHTDriver
from hardware.mock_dht import build_default_driver
from models.config import RigConfig, load_rig_config
from models.kegs import get_keg_type
from models.records import Pour
from services.errors import KegNotFoundError, SensorUnavailableError
from services.flow_meter import CalibrationInput, CalibrationResult, FlowMeter, KegSnapshot
from services.metrics import PrometheusMetrics, build_default_metrics
from services.sensor_reader import SensorChannel, SensorSnapshot
from settings import Settings, get_settings

logger = logging.getLogger(__name__)

DEFAULT_POUR_LIMIT = 100
DEFAULT_POUR_IDLE_TIMEOUT = 3.0


@dataclass(frozen=True)
class StateSnapshot:
    taken_at: datetime
    kegs: Tuple[KegSnapshot, ...]
    sensors: Tuple[SensorSnapshot, ...]


class GlobalState:
    """Owns the kegs and sensors behind a single aggregate lock.

    Lock order is always the aggregate lock first, then a keg or sensor lock.
    Operations that resolve a pin and then mutate the keg hold the aggregate
    lock across both steps.
    """

    def __init__(
        self,
        kegs: Iterable[FlowMeter],
        sensors: Iterable[SensorChannel],
        metrics: PrometheusMetrics,
        pour_idle_timeout: float = DEFAULT_POUR_IDLE_TIMEOUT,
    ) -> None:
        self._kegs: List[FlowMeter] = list(kegs)
        self._sensors: List[SensorChannel] = list(sensors)
        pins = [keg.pin for keg in self._kegs]
        if len(pins) != len(set(pins)):
            raise ValueError("Each keg must be attached to a distinct pin.")
        self.metrics = metrics
        self.pour_idle_timeout = pour_idle_timeout
        self._lock = threading.Lock()

    @contextmanager
    def lock(self) -> Iterator["GlobalState"]:
        with self._lock:
            yield self

    @property
    def kegs(self) -> Tuple[FlowMeter, ...]:
        return tuple(self._kegs)

    @property
    def sensors(self) -> Tuple[SensorChannel, ...]:
        return tuple(self._sensors)

    def snapshot(self, now: Optional[datetime] = None) -> StateSnapshot:
        taken_at = now or datetime.now(timezone.utc)
        with self._lock:
            self.refresh_derived_values(taken_at)
            return StateSnapshot(
                taken_at=taken_at,
                kegs=tuple(keg.snapshot() for keg in self._kegs),
                sensors=tuple(sensor.snapshot() for sensor in self._sensors),
            )

    def refresh_derived_values(self, now: datetime) -> None:
        """Close pours that have gone quiet. Caller holds the aggregate lock."""
        for keg in self._kegs:
            keg.close_idle_pour(now, self.pour_idle_timeout)

    def find_by_pin(self, pin: int) -> FlowMeter:
        """Resolve a keg by pin. Caller holds the aggregate lock."""
        for keg in self._kegs:
            if keg.pin == pin:
                return keg
        raise KegNotFoundError(pin)

    def calibrate(
        self,
        pin: int,
        constant: Optional[CalibrationInput] = None,
        coefficient: Optional[CalibrationInput] = None,
    ) -> CalibrationResult:
        with self._lock:
            keg = self.find_by_pin(pin)
            return keg.calibrate(constant=constant, coefficient=coefficient)

    def refill(self, pin: int, contents: Optional[str] = None) -> str:
        with self._lock:
            keg = self.find_by_pin(pin)
            return keg.refill(contents)

    def accumulate(self, pin: int, pulses: int, at: Optional[datetime] = None) -> float:
        with self._lock:
            keg = self.find_by_pin(pin)
            return keg.accumulate(pulses, at=at)

    def finish_pour(self, pin: int, end_time: Optional[datetime] = None) -> Optional[Pour]:
        with self._lock:
            keg = self.find_by_pin(pin)
            return keg.finish_pour(end_time)

    def list_pours(
        self, limit: int = DEFAULT_POUR_LIMIT, now: Optional[datetime] = None
    ) -> List[Pour]:
        """Pours from every keg, newest first. Idle pours are closed before listing."""
        if limit < 0:
            raise ValueError("limit cannot be negative")
        with self._lock:
            self.refresh_derived_values(now or datetime.now(timezone.utc))
            pours = [pour for keg in self._kegs for pour in keg.pours]
        pours.sort(key=lambda pour: pour.start_time, reverse=True)
        return pours[:limit]

    def record_pour_metrics(self) -> None:
        """Publish remaining volume per keg; driven by each metrics scrape."""
        with self._lock:
            volumes = {}
            for keg in self._kegs:
                snapshot = keg.snapshot()
                labels = (snapshot.pin, snapshot.keg_type, snapshot.contents)
                volumes[labels] = snapshot.remaining_volume
            self.metrics.publish_remaining_volumes(volumes)

    def start_sensors(self) -> None:
        """Attach and start every sensor. A sensor that does not answer stays detached."""
        for sensor in self._sensors:
            try:
                sensor.attach()
            except SensorUnavailableError as exc:
                logger.error(
                    "Could not attach sensor: %s",
                    exc,
                    extra={"pin": sensor.pin, "model": sensor.model.value},
                )
                continue
            sensor.start()

    def stop_sensors(self) -> None:
        for sensor in self._sensors:
            sensor.stop()


def build_state(
    rig: RigConfig,
    settings: Settings,
    driver: DHTDriver,
    metrics: PrometheusMetrics,
) -> GlobalState:
    kegs = [
        FlowMeter(
            pin=keg.pin,
            keg_type=get_keg_type(keg.keg_type),
            flow_constant=keg.flow_constant,
            contents=keg.contents,
            total_volume=keg.total_volume,
            dispensed_volume=keg.dispensed_volume,
            max_pours=settings.pour_history,
        )
        for keg in rig.kegs
    ]
    sensors = [
        SensorChannel(
            model=sensor.model,
            driver=driver,
            metrics=metrics,
            pin=sensor.pin,
            poll_interval=sensor.poll_interval or settings.poll_interval,
            attach_retries=settings.attach_retries,
            read_retries=settings.read_retries,
            temperature_limit=settings.temperature_limit,
            retry_backoff=settings.retry_backoff,
        )
        for sensor in rig.sensors
    ]
    return GlobalState(
        kegs=kegs,
        sensors=sensors,
        metrics=metrics,
        pour_idle_timeout=settings.pour_idle_timeout,
    )


def _build_driver(settings: Settings) -> DHTDriver:
    if settings.sensor_driver == "mock":
        return build_default_driver()
    raise ValueError(f"Unsupported sensor driver: {settings.sensor_driver!r}")


@lru_cache
def build_default_state() -> GlobalState:
    """Factory that wires the state from settings and the rig configuration file."""
    settings = get_settings()
    path = Path(settings.config_path) if settings.config_path else None
    rig = load_rig_config(path)
    return build_state(
        rig=rig,
        settings=settings,
        driver=_build_driver(settings),
        metrics=build_default_metrics(),
    )
