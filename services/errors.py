"""Failures raised by the sensor, flow meter and state services."""

from __future__ import annotations


class KegeratorError(Exception):
    """Base class for monitor errors."""


class SensorReadError(KegeratorError):
    """A single protocol exchange with a sensor failed."""


class SensorUnavailableError(KegeratorError):
    """Every read attempt in a retry budget failed."""


class ReadCancelledError(SensorUnavailableError):
    """The read was abandoned because its channel is stopping."""


class ReadingRejectedError(KegeratorError):
    """A reading fell outside the safety bounds and was discarded."""


class KegNotFoundError(KegeratorError, KeyError):
    """No keg is attached to the requested pin."""

    def __init__(self, pin: int) -> None:
        super().__init__(pin)
        self.pin = pin

    def __str__(self) -> str:
        return f"No keg found on pin {self.pin}."


class InvalidCalibrationError(KegeratorError, ValueError):
    """Calibration input was missing, ambiguous or not a usable number."""
