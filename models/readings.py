"""Domain models for sensor readings moving through the export pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping, Optional

METRICS = ("pm1_0", "pm2_5", "pm10_0", "humidity", "temperature", "pressure")


@dataclass(frozen=True, slots=True)
class Location:
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass(frozen=True, slots=True)
class RawReading:
    """A sensor sample exactly as reported by the sensor API."""

    sensor_id: Any
    name: Optional[str]
    last_seen: Any
    latitude: Any
    longitude: Any
    values: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class NormalizedReading:
    """A calibrated, range-checked reading ready for encoding.

    ``measurements`` maps every name in ``METRICS`` to a value rounded to one
    decimal place, or ``None`` when the raw value was unusable.
    """

    sensor_id: str
    name: Optional[str]
    last_seen: Optional[datetime]
    location: Location
    measurements: Mapping[str, Optional[float]]
    captured_at: datetime

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "measurements", MappingProxyType(dict(self.measurements))
        )

    def measurement(self, metric: str) -> Optional[float]:
        return self.measurements.get(metric)
