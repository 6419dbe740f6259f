"""Calibration and range cleaning for raw sensor payloads."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping, Optional, Union

from models.readings import METRICS, Location, NormalizedReading, RawReading
from services.errors import InvalidInputError

# Inclusive bounds applied after calibration.
VALID_RANGES: dict[str, tuple[float, float]] = {
    "pm1_0": (0.0, 1000.0),
    "pm2_5": (0.0, 1000.0),
    "pm10_0": (0.0, 1000.0),
    "humidity": (0.0, 100.0),
    "temperature": (-50.0, 70.0),
    "pressure": (800.0, 1200.0),
}

# Sensor API field names per metric; the first present key wins.
_SOURCE_FIELDS: dict[str, tuple[str, ...]] = {
    "pm1_0": ("pm1.0_atm", "pm1_0_atm"),
    "pm2_5": ("pm2.5_atm", "pm2_5_atm"),
    "pm10_0": ("pm10.0_atm", "pm10_0_atm"),
    "humidity": ("humidity",),
    "temperature": ("temperature",),
    "pressure": ("pressure",),
}

_ONE_DECIMAL = Decimal("0.1")

RawInput = Union[RawReading, Mapping[str, Any]]


def parse_raw(payload: Mapping[str, Any]) -> RawReading:
    """Validate the envelope of a sensor API payload and lift it into a RawReading."""
    if not isinstance(payload, Mapping):
        raise InvalidInputError("Invalid sensor data: payload is not an object.")
    sensor = payload.get("sensor")
    if not isinstance(sensor, Mapping):
        raise InvalidInputError("Invalid sensor data: missing sensor payload.")
    sensor_id = sensor.get("sensor_index")
    if sensor_id is None or str(sensor_id).strip() == "":
        raise InvalidInputError("Invalid sensor data: missing sensor identifier.")

    values: dict[str, Any] = {}
    for metric, keys in _SOURCE_FIELDS.items():
        for key in keys:
            if key in sensor:
                values[metric] = sensor[key]
                break

    return RawReading(
        sensor_id=sensor_id,
        name=sensor.get("name"),
        last_seen=sensor.get("last_seen"),
        latitude=sensor.get("latitude"),
        longitude=sensor.get("longitude"),
        values=values,
    )


def _as_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        # reject Python digit separators such as "1_000"
        if "_" in text:
            return None
        value = text
    elif not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except (OverflowError, ValueError):
        return None
    return number if math.isfinite(number) else None


def round_half_away(value: float) -> float:
    """Round to one decimal place, ties away from zero."""
    return float(Decimal(repr(value)).quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP))


def clean_value(value: Any, calibration_factor: float, metric: str) -> Optional[float]:
    number = _as_number(value)
    if number is None:
        return None
    calibrated = number * calibration_factor
    if not math.isfinite(calibrated):
        return None
    low, high = VALID_RANGES[metric]
    if calibrated < low or calibrated > high:
        return None
    # + 0.0 folds -0.0 into 0.0
    return round_half_away(calibrated) + 0.0


def _last_seen(value: Any) -> Optional[datetime]:
    seconds = _as_number(value)
    if seconds is None:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def normalize(
    raw: RawInput,
    calibration_factor: float = 1.0,
    captured_at: Optional[datetime] = None,
) -> NormalizedReading:
    """Turn one raw sensor payload into a NormalizedReading.

    Out-of-range or unparseable measurements become ``None``; only a payload
    without its sensor envelope or identifier raises ``InvalidInputError``.
    """
    reading = raw if isinstance(raw, RawReading) else parse_raw(raw)
    factor = _as_number(calibration_factor)
    if factor is None:
        raise InvalidInputError(
            f"Calibration factor must be a finite number, got {calibration_factor!r}."
        )

    measurements = {
        metric: clean_value(reading.values.get(metric), factor, metric)
        for metric in METRICS
    }

    return NormalizedReading(
        sensor_id=str(reading.sensor_id),
        name=reading.name,
        last_seen=_last_seen(reading.last_seen),
        location=Location(
            latitude=_as_number(reading.latitude),
            longitude=_as_number(reading.longitude),
        ),
        measurements=measurements,
        captured_at=captured_at or datetime.now(timezone.utc),
    )


def normalize_batch(
    raws: Iterable[RawInput],
    calibration_factor: float = 1.0,
    captured_at: Optional[datetime] = None,
) -> list[NormalizedReading]:
    """Normalize readings in input order with one shared capture time."""
    stamp = captured_at or datetime.now(timezone.utc)
    return [normalize(raw, calibration_factor, captured_at=stamp) for raw in raws]
