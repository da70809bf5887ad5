"""Pulse-to-volume accounting for a single keg line."""

from __future__ import annotations

import logging
import math
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Deque, Optional, Tuple, Union

from models.kegs import KegType
from models.records import Pour
from services.errors import InvalidCalibrationError

logger = logging.getLogger(__name__)

CalibrationInput = Union[str, float, int]


def flow_per_event(flow_constant: float) -> float:
    """Volume dispensed per pulse for a pulses-per-unit-volume constant."""
    return 1.0 / (flow_constant * 60.0)


def _parse_number(value: CalibrationInput, name: str) -> float:
    if isinstance(value, bool):
        raise InvalidCalibrationError(f"bad {name} value: {value!r}")
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidCalibrationError(f"bad {name} value: {value!r}") from exc
    if not math.isfinite(parsed):
        raise InvalidCalibrationError(f"bad {name} value: {value!r}")
    return parsed


@dataclass(frozen=True)
class CalibrationResult:
    flow_constant: float
    previous_constant: float
    applied: bool


@dataclass(frozen=True)
class KegSnapshot:
    pin: int
    keg_type: str
    contents: str
    flow_constant: float
    flow_per_event: float
    pulse_accumulator: int
    total_volume: float
    dispensed_volume: float
    remaining_volume: float
    pours: Tuple[Pour, ...]


class FlowMeter:
    """Tracks calibration, contents, dispensed volume and pours for one keg.

    Every mutable field is guarded by the meter's own lock. ``flow_per_event``
    is only ever assigned together with ``flow_constant`` so pulses are never
    converted with a stale constant.
    """

    def __init__(
        self,
        pin: int,
        keg_type: KegType,
        flow_constant: float,
        contents: str = "",
        total_volume: Optional[float] = None,
        dispensed_volume: float = 0.0,
        max_pours: Optional[int] = None,
    ) -> None:
        if flow_constant <= 0:
            raise ValueError("flow_constant must be positive")
        self.pin = pin
        self.keg_type = keg_type
        self.total_volume = keg_type.capacity if total_volume is None else total_volume
        self._contents = contents
        self._dispensed_volume = dispensed_volume
        self._pulse_accumulator = 0
        self._flow_constant = 0.0
        self._flow_per_event = 0.0
        self._pours: Deque[Pour] = deque(maxlen=max_pours)
        self._pour_start: Optional[datetime] = None
        self._pour_last: Optional[datetime] = None
        self._pour_volume = 0.0
        self._lock = threading.Lock()
        self._set_flow_constant(flow_constant)

    @property
    def contents(self) -> str:
        with self._lock:
            return self._contents

    @property
    def flow_constant(self) -> float:
        with self._lock:
            return self._flow_constant

    @property
    def flow_per_event(self) -> float:
        with self._lock:
            return self._flow_per_event

    @property
    def dispensed_volume(self) -> float:
        with self._lock:
            return self._dispensed_volume

    @property
    def pulse_accumulator(self) -> int:
        with self._lock:
            return self._pulse_accumulator

    @property
    def pours(self) -> Tuple[Pour, ...]:
        with self._lock:
            return tuple(self._pours)

    def accumulate(self, pulses: int, at: Optional[datetime] = None) -> float:
        """Account ``pulses`` at the constant in effect; returns the volume added."""
        if pulses < 0:
            raise ValueError("pulse count cannot be negative")
        when = at or datetime.now(timezone.utc)
        with self._lock:
            volume = pulses * self._flow_per_event
            self._pulse_accumulator += pulses
            self._dispensed_volume += volume
            if pulses:
                if self._pour_start is None:
                    self._pour_start = when
                    self._pour_volume = 0.0
                self._pour_volume += volume
                self._pour_last = when
        return volume

    def finish_pour(self, end_time: Optional[datetime] = None) -> Optional[Pour]:
        """Close the pour in progress, if any, and append it to the history."""
        with self._lock:
            return self._close_pour(end_time)

    def close_idle_pour(self, now: datetime, idle_after: float) -> Optional[Pour]:
        with self._lock:
            if self._pour_last is None:
                return None
            if (now - self._pour_last).total_seconds() < idle_after:
                return None
            return self._close_pour(self._pour_last)

    def refill(self, contents: Optional[str] = None) -> str:
        """Mark the keg full again. Pour history is kept; an open pour is dropped."""
        with self._lock:
            if contents:
                self._contents = contents
            self._dispensed_volume = 0.0
            self._pulse_accumulator = 0
            self._pour_start = None
            self._pour_last = None
            self._pour_volume = 0.0
            current = self._contents
        logger.info("Refilled keg", extra={"pin": self.pin, "contents": current})
        return current

    def calibrate(
        self,
        constant: Optional[CalibrationInput] = None,
        coefficient: Optional[CalibrationInput] = None,
    ) -> CalibrationResult:
        """Set the flow constant directly or scale the current one.

        With ``coefficient`` the new constant is ``floor(current * coefficient * 100) / 100``,
        computed from whatever constant is in effect at the time of the call, so
        repeated relative calibrations compound. A relative calibration that
        leaves the constant unchanged is not applied.
        """
        if constant is not None and coefficient is not None:
            raise InvalidCalibrationError("constant and coefficient are mutually exclusive")
        if constant is None and coefficient is None:
            raise InvalidCalibrationError("constant or coefficient required")

        direct = _parse_number(constant, "constant") if constant is not None else None
        factor = _parse_number(coefficient, "coefficient") if coefficient is not None else None

        with self._lock:
            previous = self._flow_constant
            if direct is not None:
                updated = direct
            else:
                scaled = previous * factor * 100
                if not math.isfinite(scaled):
                    raise InvalidCalibrationError(
                        f"coefficient {factor!r} overflows the flow constant"
                    )
                # round to 2 decimal places; the inner round drops float noise before flooring
                updated = math.floor(round(scaled, 6)) / 100
                if updated == previous:
                    logger.warning(
                        "Flow constant unchanged: %.2f",
                        updated,
                        extra={"pin": self.pin, "flow_constant": updated},
                    )
                    return CalibrationResult(
                        flow_constant=updated, previous_constant=previous, applied=False
                    )
            if updated <= 0:
                raise InvalidCalibrationError(
                    f"flow constant must be positive, got {updated:.2f}"
                )
            per_event = flow_per_event(updated)
            if not math.isfinite(per_event) or per_event <= 0:
                raise InvalidCalibrationError(
                    f"flow constant {updated!r} gives no usable volume per pulse"
                )
            self._set_flow_constant(updated)

        logger.info(
            "Calibrated flow constant from %.2f",
            previous,
            extra={"pin": self.pin, "flow_constant": updated},
        )
        return CalibrationResult(flow_constant=updated, previous_constant=previous, applied=True)

    def remaining_volume(self) -> float:
        with self._lock:
            return self._remaining_volume()

    def snapshot(self) -> KegSnapshot:
        with self._lock:
            return KegSnapshot(
                pin=self.pin,
                keg_type=self.keg_type.name,
                contents=self._contents,
                flow_constant=self._flow_constant,
                flow_per_event=self._flow_per_event,
                pulse_accumulator=self._pulse_accumulator,
                total_volume=self.total_volume,
                dispensed_volume=self._dispensed_volume,
                remaining_volume=self._remaining_volume(),
                pours=tuple(self._pours),
            )

    def _remaining_volume(self) -> float:
        return max(0.0, self.total_volume - self._dispensed_volume)

    def _set_flow_constant(self, constant: float) -> None:
        self._flow_constant = constant
        self._flow_per_event = flow_per_event(constant)

    def _close_pour(self, end_time: Optional[datetime]) -> Optional[Pour]:
        if self._pour_start is None or self._pour_last is None:
            return None
        pour = Pour(
            start_time=self._pour_start,
            end_time=end_time or self._pour_last,
            volume=self._pour_volume,
            keg_pin=self.pin,
        )
        self._pours.append(pour)
        self._pour_start = None
        self._pour_last = None
        self._pour_volume = 0.0
        logger.info(
            "Recorded pour",
            extra={"pin": self.pin, "contents": self._contents, "volume": round(pour.volume, 4)},
        )
        return pour
