"""Rig configuration file: which kegs and sensors are wired to which pins."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from hardware.dht import SensorModel, get_sensor_model
from models.kegs import get_keg_type

logger = logging.getLogger(__name__)


class KegConfig(BaseModel):
    pin: int = Field(..., ge=0)
    keg_type: str = "corny"
    contents: str = ""
    flow_constant: float = Field(..., gt=0)
    total_volume: Optional[float] = Field(default=None, gt=0)
    dispensed_volume: float = Field(default=0.0, ge=0)

    @field_validator("keg_type")
    @classmethod
    def _known_keg_type(cls, value: str) -> str:
        return get_keg_type(value).name


class SensorConfig(BaseModel):
    model: SensorModel = SensorModel.dht22
    pin: int = Field(..., ge=0)
    poll_interval: Optional[float] = Field(
        default=None, gt=0, description="Seconds between reads; falls back to settings."
    )

    @field_validator("model", mode="before")
    @classmethod
    def _known_model(cls, value: object) -> SensorModel:
        if isinstance(value, SensorModel):
            return value
        return get_sensor_model(str(value))


class RigConfig(BaseModel):
    kegs: List[KegConfig] = Field(default_factory=list)
    sensors: List[SensorConfig] = Field(default_factory=list)

    @field_validator("kegs")
    @classmethod
    def _unique_keg_pins(cls, kegs: List[KegConfig]) -> List[KegConfig]:
        pins = [keg.pin for keg in kegs]
        if len(pins) != len(set(pins)):
            raise ValueError("Each keg must be attached to a distinct pin.")
        return kegs


def load_rig_config(path: Optional[Path]) -> RigConfig:
    """Read the rig file, returning an empty rig when it does not exist."""
    if path is None or not path.exists():
        logger.warning("Rig configuration %s not found; starting with no kegs or sensors", path)
        return RigConfig()

    try:
        data = json.loads(path.read_text() or "{}")
        return RigConfig.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ValueError(f"Invalid rig configuration in {path}: {exc}") from exc
