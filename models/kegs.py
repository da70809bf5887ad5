from __future__ import annotations

from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True, slots=True)
class KegType:
    name: str
    capacity: float  # liters


KEG_TYPES: Dict[str, KegType] = {
    keg.name: keg
    for keg in (
        KegType(name="corny", capacity=18.93),
        KegType(name="sixtel", capacity=19.55),
        KegType(name="quarter", capacity=29.33),
        KegType(name="half", capacity=58.67),
    )
}


def get_keg_type(name: str) -> KegType:
    keg_type = KEG_TYPES.get(name.strip().lower())
    if keg_type is None:
        raise ValueError(f"Unknown keg type: {name!r}")
    return keg_type
