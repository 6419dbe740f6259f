"""Async client for the PurpleAir sensor API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

import httpx

from services.errors import InvalidInputError, ReadingFetchFailed

logger = logging.getLogger(__name__)

MEASUREMENT_FIELDS = "pm2.5_atm,pm1.0_atm,pm10.0_atm,humidity,temperature,pressure"
METADATA_FIELDS = "name,latitude,longitude,last_seen"
HISTORY_AVERAGE_MINUTES = "60"


@dataclass(frozen=True)
class ConnectionCheck:
    success: bool
    message: str
    data: Any = None


def error_detail(response: httpx.Response, *keys: str) -> Optional[str]:
    """Pull a human-readable message out of an error response body."""
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text or None
    if isinstance(body, dict):
        for key in keys:
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def _day_bounds(start: date, end: date) -> tuple[datetime, datetime]:
    lower = datetime.combine(start, time.min, tzinfo=timezone.utc)
    upper = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return lower, upper


class PurpleAirClient:
    """Reads sensor metadata and history.

    The API key travels with each call rather than living on the client, so
    one client can serve requests carrying different credentials.
    """

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get(
        self,
        path: str,
        api_key: Optional[str],
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        if not api_key:
            raise InvalidInputError(
                "PurpleAir API key not set. Supply it with the export credentials."
            )
        url = f"{self.base_url}{path}"
        extra: Dict[str, Any] = {}
        if timeout is not None:
            extra["timeout"] = timeout
        try:
            response = await self._client.get(
                url,
                params=params,
                headers={"X-API-Key": api_key, "Content-Type": "application/json"},
                **extra,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = error_detail(exc.response, "description", "message", "error")
            raise ReadingFetchFailed(
                f"PurpleAir request {path} failed with status "
                f"{exc.response.status_code}: {detail or 'no detail provided.'}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ReadingFetchFailed(f"PurpleAir request {path} failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise ReadingFetchFailed(f"PurpleAir returned a non-JSON body for {path}.") from exc
        if not isinstance(payload, dict):
            raise ReadingFetchFailed(f"PurpleAir returned an unexpected body for {path}.")
        return payload

    async def get_sensor(
        self, sensor_id: str, api_key: Optional[str], fields: str = MEASUREMENT_FIELDS
    ) -> Dict[str, Any]:
        return await self._get(f"/sensors/{sensor_id}", api_key, {"fields": fields})

    async def get_sensor_history(
        self,
        sensor_id: str,
        start: datetime,
        end: datetime,
        api_key: Optional[str],
        fields: str = MEASUREMENT_FIELDS,
    ) -> Dict[str, Any]:
        return await self._get(
            f"/sensors/{sensor_id}/history",
            api_key,
            {
                "start_timestamp": int(start.timestamp()),
                "end_timestamp": int(end.timestamp()),
                "average": HISTORY_AVERAGE_MINUTES,
                "fields": fields,
            },
        )

    async def test_connection(self, sensor_id: str, api_key: Optional[str]) -> ConnectionCheck:
        try:
            data = await self._get(
                f"/sensors/{sensor_id}", api_key, {"fields": "name,last_seen"}, timeout=5.0
            )
        except (InvalidInputError, ReadingFetchFailed) as exc:
            return ConnectionCheck(success=False, message=str(exc))
        return ConnectionCheck(success=True, message="PurpleAir connection successful", data=data)

    async def fetch_readings(
        self,
        sensor_ids: Sequence[str],
        start: date,
        end: date,
        api_key: Optional[str],
    ) -> List[Dict[str, Any]]:
        """Return one ``{"sensor": {...}}`` payload per hourly history row.

        Payloads are grouped by sensor in request order, oldest row first.
        """
        lower, upper = _day_bounds(start, end)
        payloads: List[Dict[str, Any]] = []
        for sensor_id in sensor_ids:
            metadata = await self.get_sensor(sensor_id, api_key, fields=METADATA_FIELDS)
            sensor_meta = metadata.get("sensor") or {}
            history = await self.get_sensor_history(sensor_id, lower, upper, api_key)
            fields = history.get("fields") or []
            rows = [dict(zip(fields, row)) for row in history.get("data") or []]
            rows.sort(key=lambda row: row.get("time_stamp") or 0)
            logger.debug(
                "Fetched sensor history",
                extra={"sensor_id": sensor_id, "record_count": len(rows)},
            )
            for row in rows:
                sensor = {
                    "sensor_index": sensor_meta.get("sensor_index", sensor_id),
                    "name": sensor_meta.get("name"),
                    "latitude": sensor_meta.get("latitude"),
                    "longitude": sensor_meta.get("longitude"),
                    "last_seen": row.pop("time_stamp", None),
                }
                sensor.update(row)
                payloads.append({"sensor": sensor})
        return payloads
