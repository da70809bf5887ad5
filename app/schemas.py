"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from hardware.dht import SensorModel
from services.sensor_reader import LifecycleState


class PourOut(BaseModel):
    """A completed pour as exposed over HTTP."""

    model_config = ConfigDict(from_attributes=True)

    start_time: datetime
    end_time: datetime
    volume: float = Field(..., ge=0)
    keg_pin: int


class KegOut(BaseModel):
    """Calibration, contents and volume of one keg line."""

    model_config = ConfigDict(from_attributes=True)

    pin: int
    keg_type: str
    contents: str
    flow_constant: float
    flow_per_event: float
    pulse_accumulator: int = Field(..., ge=0)
    total_volume: float
    dispensed_volume: float
    remaining_volume: float = Field(..., ge=0)
    pours: List[PourOut] = Field(default_factory=list)


class ReadingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    temperature: float
    humidity: float
    retries: int = Field(..., ge=0)
    observed_at: datetime


class SensorOut(BaseModel):
    """A sensor channel with its latest accepted reading, possibly stale."""

    model_config = ConfigDict(from_attributes=True)

    model: SensorModel
    pin: Optional[int] = None
    poll_interval: float
    state: LifecycleState
    reading: Optional[ReadingOut] = None


class StateOut(BaseModel):
    """Tear-free view of every keg and sensor at one instant."""

    model_config = ConfigDict(from_attributes=True)

    taken_at: datetime
    kegs: List[KegOut] = Field(default_factory=list)
    sensors: List[SensorOut] = Field(default_factory=list)


class RefillResponse(BaseModel):
    pin: int
    contents: str


class CalibrationResponse(BaseModel):
    pin: int
    flow_constant: float
    previous_constant: float
    applied: bool
