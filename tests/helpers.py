"""Canned payloads and fakes shared by the test modules."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from datastore.tables import JsonTable
from settings import Settings

FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
LAST_SEEN = 1704067200  # 2024-01-01T00:00:00Z


def raw_payload(sensor_index: Any = 131075, **fields: Any) -> Dict[str, Any]:
    sensor: Dict[str, Any] = {
        "sensor_index": sensor_index,
        "name": "Backyard",
        "last_seen": LAST_SEEN,
        "latitude": 37.7749,
        "longitude": -122.4194,
        "pm1.0_atm": 5.0,
        "pm2.5_atm": 12.3,
        "pm10.0_atm": 20.0,
        "humidity": 45.0,
        "temperature": 21.5,
        "pressure": 1013.2,
    }
    sensor.update(fields)
    return {"sensor": sensor}


class FakeSource:
    """Reading source that returns canned payloads or raises."""

    def __init__(
        self,
        payloads: Optional[Sequence[Dict[str, Any]]] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.payloads = list(payloads or [])
        self.error = error
        self.calls: List[tuple] = []

    async def fetch_readings(self, sensor_ids, start, end, api_key):
        self.calls.append((list(sensor_ids), start, end, api_key))
        if self.error is not None:
            raise self.error
        return list(self.payloads)


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = dict(
        purpleair_api_url="https://purpleair.test/v1",
        eagle_io_api_url="https://eagle.test",
        aqs_api_url="https://aqs.test/data/api",
        aqs_state_code="06",
        aqs_county_code="001",
        aqs_site_number="0001",
        aqs_submitter_name="Lavendair User",
        aqs_submitter_email="user@example.com",
        aqs_organization_name="Lavendair",
        export_files_path="",
        export_state_path="",
        default_calibration_factor=1.0,
        log_level="INFO",
    )
    values.update(overrides)
    return Settings(**values)


class BrokenDiskTable(JsonTable):
    """JsonTable whose file writes start failing after ``healthy_writes`` succeed."""

    def __init__(self, *args: Any, healthy_writes: int = 0, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.healthy_writes = healthy_writes

    def _persist(self) -> None:
        if self.healthy_writes <= 0:
            raise OSError("No space left on device")
        self.healthy_writes -= 1
        super()._persist()
