from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum


class PulseType(Enum):
    PATH = "path"
    RESTING = "resting"


@dataclass(frozen=True)
class Sample:
    lat: float
    lng: float
    time: int  # epoch ms
    altitude: float | None = None
    speed: float | None = None  # m/s
    accuracy: float | None = None  # metres

    def has_position(self) -> bool:
        return (
            isinstance(self.lat, int | float)
            and isinstance(self.lng, int | float)
            and math.isfinite(self.lat)
            and math.isfinite(self.lng)
        )

    @classmethod
    def from_dict(cls, d: dict) -> Sample:
        """Build a sample from a provider payload. Raises on missing or bad fields."""
        return cls(
            lat=float(d["lat"]),
            lng=float(d["lng"]),
            time=int(d["time"]),
            altitude=_optional_float(d.get("altitude")),
            speed=_optional_float(d.get("speed")),
            accuracy=_optional_float(d.get("accuracy")),
        )


@dataclass(frozen=True)
class StationaryAnchor:
    lat: float
    lng: float
    since: int  # epoch ms


@dataclass(frozen=True)
class Pulse:
    lat: float
    lng: float
    type: PulseType
    intensity: int
    floor: int = 0

    def to_dict(self) -> dict:
        return {
            "lat": self.lat,
            "lng": self.lng,
            "type": self.type.value,
            "intensity": self.intensity,
            "floor": self.floor,
        }


def _optional_float(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float | str):
        result = float(value)
        return result if math.isfinite(result) else None
    return None
