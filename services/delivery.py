"""Outbound delivery to the Eagle.io telemetry platform."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from services.errors import DeliveryFailed
from services.sensor_client import ConnectionCheck, error_detail

DELIVERY_TIMEOUT = 30.0
CONNECTION_TIMEOUT = 10.0


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class EagleIoClient:
    """Posts node data to Eagle.io with a bearer key supplied per call."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @staticmethod
    def _headers(api_key: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    async def deliver(self, payload: Dict[str, Any], api_url: str, api_key: Optional[str]) -> Any:
        """POST ``payload`` and return the decoded acknowledgement body.

        Raises ``DeliveryFailed`` carrying the remote ``message`` when the
        platform supplies one, otherwise the transport error text.
        """
        if not api_key:
            raise DeliveryFailed("Eagle.io API key not set.")
        url = f"{api_url.rstrip('/')}/v1/nodes/data"
        try:
            response = await self._client.post(
                url,
                json=payload,
                headers=self._headers(api_key),
                timeout=DELIVERY_TIMEOUT,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = error_detail(exc.response, "message")
            raise DeliveryFailed(
                detail or str(exc), status_code=exc.response.status_code
            ) from exc
        except httpx.HTTPError as exc:
            raise DeliveryFailed(str(exc) or type(exc).__name__) from exc

        return _decode_body(response)

    async def test_connection(self, api_url: str, api_key: Optional[str]) -> ConnectionCheck:
        if not api_key:
            return ConnectionCheck(success=False, message="Eagle.io API key not set.")
        try:
            response = await self._client.get(
                f"{api_url.rstrip('/')}/v1/nodes",
                headers=self._headers(api_key),
                timeout=CONNECTION_TIMEOUT,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = error_detail(exc.response, "message")
            return ConnectionCheck(success=False, message=detail or str(exc))
        except httpx.HTTPError as exc:
            return ConnectionCheck(success=False, message=str(exc) or type(exc).__name__)
        return ConnectionCheck(
            success=True, message="Eagle.io connection successful", data=_decode_body(response)
        )


class AqsClient:
    """Availability check against the EPA AQS data API.

    AQS submissions are files uploaded by the user, so the only live call is
    a credential check.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def test_connection(
        self, api_url: str, email: Optional[str], api_key: Optional[str]
    ) -> ConnectionCheck:
        if not email or not api_key:
            return ConnectionCheck(success=False, message="AQS email and API key are required.")
        try:
            response = await self._client.get(
                f"{api_url.rstrip('/')}/metaData/isAvailable",
                params={"email": email, "key": api_key},
                timeout=CONNECTION_TIMEOUT,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = error_detail(exc.response, "message")
            return ConnectionCheck(success=False, message=detail or str(exc))
        except httpx.HTTPError as exc:
            return ConnectionCheck(success=False, message=str(exc) or type(exc).__name__)
        return ConnectionCheck(
            success=True, message="AQS connection successful", data=_decode_body(response)
        )
