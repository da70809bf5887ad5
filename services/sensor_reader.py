"""Periodic sampling of one environmental sensor channel."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from hardware.dht import DEFAULT_BACKOFF_SECONDS, DHTDriver, SensorModel, read_with_retry
from models.records import SensorReading
from services.errors import ReadCancelledError, ReadingRejectedError, SensorUnavailableError
from services.metrics import PrometheusMetrics

logger = logging.getLogger(__name__)

DEFAULT_ATTACH_RETRIES = 4
DEFAULT_READ_RETRIES = 10
DEFAULT_POLL_INTERVAL = 10.0
DEFAULT_TEMPERATURE_LIMIT = 100.0  # ignore temperature values over 100C

UpdateCallback = Callable[[threading.Event], object]


class LifecycleState(str, Enum):
    detached = "detached"
    attached = "attached"
    running = "running"
    stopped = "stopped"


@dataclass(frozen=True)
class SensorSnapshot:
    model: SensorModel
    pin: Optional[int]
    poll_interval: float
    state: LifecycleState
    reading: Optional[SensorReading]


class SensorChannel:
    """Owns one physical sensor: retried reads, validation and the latest reading.

    Reads happen off the channel lock; the lock is only taken to publish a
    validated reading or to read the current one. Only the channel's own
    sampling thread writes readings, so published readings never go backwards.
    """

    def __init__(
        self,
        model: SensorModel,
        driver: DHTDriver,
        metrics: PrometheusMetrics,
        pin: Optional[int] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        attach_retries: int = DEFAULT_ATTACH_RETRIES,
        read_retries: int = DEFAULT_READ_RETRIES,
        temperature_limit: float = DEFAULT_TEMPERATURE_LIMIT,
        retry_backoff: float = DEFAULT_BACKOFF_SECONDS,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self.model = model
        self.poll_interval = poll_interval
        self.attach_retries = attach_retries
        self.read_retries = read_retries
        self.temperature_limit = temperature_limit
        self.retry_backoff = retry_backoff
        self._driver = driver
        self._metrics = metrics
        self._pin = pin
        self._latest: Optional[SensorReading] = None
        self._state = LifecycleState.detached
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def pin(self) -> Optional[int]:
        with self._lock:
            return self._pin

    @property
    def state(self) -> LifecycleState:
        with self._lock:
            return self._state

    @property
    def latest(self) -> Optional[SensorReading]:
        with self._lock:
            return self._latest

    def attach(self, pin: Optional[int] = None) -> Optional[SensorReading]:
        """Probe the sensor on ``pin`` and record the first reading.

        Raises ``SensorUnavailableError`` when every attach attempt fails. An
        over-limit first reading is discarded but the attach still succeeds.
        """
        with self._lock:
            if self._state is LifecycleState.running:
                raise RuntimeError("cannot attach a running sensor channel")
            target = self._pin if pin is None else pin
        if target is None:
            raise ValueError("a pin is required to attach a sensor channel")

        temperature, humidity, retries = read_with_retry(
            self._driver,
            self.model,
            target,
            self.attach_retries,
            backoff=self.retry_backoff,
        )

        with self._lock:
            self._pin = target
            self._state = LifecycleState.attached
        logger.info(
            "Attached %s sensor",
            self.model.value,
            extra={"pin": target, "model": self.model.value, "retries": retries},
        )
        return self._publish_or_warn(temperature, humidity, retries)

    def start(self, on_update: Optional[UpdateCallback] = None) -> None:
        """Begin periodic sampling; a no-op while already running."""
        with self._lock:
            if self._state is LifecycleState.running:
                return
            if self._state is LifecycleState.detached:
                raise RuntimeError("sensor channel must be attached before it is started")
            stop_event = threading.Event()
            self._stop_event = stop_event
            self._state = LifecycleState.running
            pin = self._pin

        callback = on_update or self.update
        thread = threading.Thread(
            target=self._run,
            args=(stop_event, callback),
            name=f"{self.model.value}-pin{pin}",
            daemon=True,
        )
        self._thread = thread
        thread.start()

    def stop(self) -> None:
        """Signal the sampling loop to exit and cancel its in-flight read.

        Does not wait for the loop thread; see ``join``.
        """
        with self._lock:
            if self._state is not LifecycleState.running or self._stop_event is None:
                return
            self._stop_event.set()
            self._state = LifecycleState.stopped

    def detach(self) -> None:
        """Stop the periodic timer. The last reading stays available."""
        with self._lock:
            if self._stop_event is not None:
                self._stop_event.set()
            self._state = LifecycleState.detached

    def join(self, timeout: Optional[float] = None) -> bool:
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def update(self, cancel: Optional[threading.Event] = None) -> Optional[SensorReading]:
        """Take one retried reading and publish it if it passes validation."""
        pin = self.pin
        if pin is None:
            raise RuntimeError("sensor channel has no pin")
        context = {"pin": pin, "model": self.model.value}

        try:
            temperature, humidity, retries = read_with_retry(
                self._driver,
                self.model,
                pin,
                self.read_retries,
                cancel=cancel,
                backoff=self.retry_backoff,
            )
        except ReadCancelledError:
            logger.debug("Sensor read cancelled", extra=context)
            return None
        except SensorUnavailableError as exc:
            logger.error("Sensor read failed, skipping cycle: %s", exc, extra=context)
            return None

        return self._publish_or_warn(temperature, humidity, retries)

    def snapshot(self) -> SensorSnapshot:
        with self._lock:
            return SensorSnapshot(
                model=self.model,
                pin=self._pin,
                poll_interval=self.poll_interval,
                state=self._state,
                reading=self._latest,
            )

    def _run(self, stop_event: threading.Event, callback: UpdateCallback) -> None:
        while not stop_event.wait(self.poll_interval):
            try:
                callback(stop_event)
            except Exception:
                logger.exception(
                    "Sensor update raised; continuing",
                    extra={"pin": self._pin, "model": self.model.value},
                )
        logger.debug("Sensor loop exited", extra={"pin": self._pin, "model": self.model.value})

    def _publish_or_warn(
        self, temperature: float, humidity: float, retries: int
    ) -> Optional[SensorReading]:
        try:
            return self._publish(temperature, humidity, retries)
        except ReadingRejectedError as exc:
            logger.warning(
                "%s",
                exc,
                extra={
                    "pin": self._pin,
                    "model": self.model.value,
                    "temperature": temperature,
                    "limit": self.temperature_limit,
                    "retries": retries,
                },
            )
            return None

    def _publish(self, temperature: float, humidity: float, retries: int) -> SensorReading:
        # The whole reading is dropped, humidity included, on a known sensor fault mode.
        if temperature > self.temperature_limit:
            raise ReadingRejectedError(
                f"Recorded temperature exceeds limit: {temperature:.2f} > "
                f"{self.temperature_limit:.2f}"
            )

        reading = SensorReading(
            temperature=temperature,
            humidity=humidity,
            retries=retries,
            observed_at=datetime.now(timezone.utc),
        )
        with self._lock:
            self._latest = reading
            self._metrics.observe_reading(
                self._pin, self.model.value, temperature, humidity, retries
            )
        return reading
