"""Credential checks against the upstream sensor, telemetry and AQS APIs."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from pydantic import SecretStr

from app.schemas import ConnectionCheckRequest, ConnectionCheckResult
from services.delivery import AqsClient, EagleIoClient
from services.sensor_client import ConnectionCheck, PurpleAirClient
from settings import Settings, get_settings

logger = logging.getLogger(__name__)


def _secret(value: Optional[SecretStr]) -> Optional[str]:
    return value.get_secret_value() if value is not None else None


def _result(service: str, check: ConnectionCheck) -> ConnectionCheckResult:
    logger.info(
        "Connection check finished",
        extra={"service": service, "success": check.success},
    )
    return ConnectionCheckResult(
        service=service, success=check.success, message=check.message, data=check.data
    )


class ConnectionChecker:
    """Runs one connectivity check per upstream service.

    Blank URLs and AQS emails fall back to the configured values; keys are
    always supplied by the caller.
    """

    def __init__(
        self,
        purpleair: PurpleAirClient,
        eagle_io: EagleIoClient,
        aqs: AqsClient,
        settings: Settings,
    ) -> None:
        self.purpleair = purpleair
        self.eagle_io = eagle_io
        self.aqs = aqs
        self.settings = settings

    async def aclose(self) -> None:
        await self.purpleair.aclose()
        await self.eagle_io.aclose()
        await self.aqs.aclose()

    async def check_purpleair(self, request: ConnectionCheckRequest) -> ConnectionCheckResult:
        if not request.sensor_id:
            return _result(
                "purpleair",
                ConnectionCheck(success=False, message="A sensor id is required to test PurpleAir."),
            )
        check = await self.purpleair.test_connection(request.sensor_id, _secret(request.api_key))
        return _result("purpleair", check)

    async def check_eagle_io(self, request: ConnectionCheckRequest) -> ConnectionCheckResult:
        api_url = request.api_url or self.settings.eagle_io_api_url
        check = await self.eagle_io.test_connection(api_url, _secret(request.api_key))
        return _result("eagle-io", check)

    async def check_aqs(self, request: ConnectionCheckRequest) -> ConnectionCheckResult:
        api_url = request.api_url or self.settings.aqs_api_url
        email = request.email or self.settings.aqs_submitter_email
        check = await self.aqs.test_connection(api_url, email, _secret(request.api_key))
        return _result("aqs", check)


@lru_cache
def build_default_connection_checker() -> ConnectionChecker:
    settings = get_settings()
    return ConnectionChecker(
        purpleair=PurpleAirClient(settings.purpleair_api_url),
        eagle_io=EagleIoClient(),
        aqs=AqsClient(),
        settings=settings,
    )
