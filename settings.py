from __future__ import annotations

import math
import os
from dataclasses import dataclass
from functools import lru_cache


_PURPLEAIR_URL_ENV = "PURPLEAIR_API_URL"
_EAGLE_IO_URL_ENV = "EAGLE_IO_API_URL"
_AQS_URL_ENV = "AQS_API_URL"
_STATE_CODE_ENV = "AQS_STATE_CODE"
_COUNTY_CODE_ENV = "AQS_COUNTY_CODE"
_SITE_NUMBER_ENV = "AQS_SITE_NUMBER"
_SUBMITTER_NAME_ENV = "AQS_SUBMITTER_NAME"
_SUBMITTER_EMAIL_ENV = "AQS_SUBMITTER_EMAIL"
_ORGANIZATION_ENV = "AQS_ORGANIZATION_NAME"
_FILES_PATH_ENV = "EXPORT_FILES_PATH"
_STATE_PATH_ENV = "EXPORT_STATE_PATH"
_CALIBRATION_ENV = "DEFAULT_CALIBRATION_FACTOR"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    purpleair_api_url: str
    eagle_io_api_url: str
    aqs_api_url: str
    aqs_state_code: str
    aqs_county_code: str
    aqs_site_number: str
    aqs_submitter_name: str
    aqs_submitter_email: str
    aqs_organization_name: str
    export_files_path: str
    export_state_path: str
    default_calibration_factor: float
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_url_env(name: str, default: str) -> str:
    return _read_str_env(name, default).rstrip("/")


def _read_calibration_factor(default: float) -> float:
    value = os.getenv(_CALIBRATION_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if math.isfinite(parsed) and parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        purpleair_api_url=_read_url_env(_PURPLEAIR_URL_ENV, "https://api.purpleair.com/v1"),
        eagle_io_api_url=_read_url_env(_EAGLE_IO_URL_ENV, "https://api.eagle.io"),
        aqs_api_url=_read_url_env(_AQS_URL_ENV, "https://aqs.epa.gov/data/api"),
        aqs_state_code=_read_str_env(_STATE_CODE_ENV, "06"),
        aqs_county_code=_read_str_env(_COUNTY_CODE_ENV, "001"),
        aqs_site_number=_read_str_env(_SITE_NUMBER_ENV, "0001"),
        aqs_submitter_name=_read_str_env(_SUBMITTER_NAME_ENV, "Lavendair User"),
        aqs_submitter_email=_read_str_env(_SUBMITTER_EMAIL_ENV, "user@example.com"),
        aqs_organization_name=_read_str_env(_ORGANIZATION_ENV, "Lavendair"),
        export_files_path=_read_str_env(_FILES_PATH_ENV, "./tmp/exports"),
        export_state_path=_read_str_env(_STATE_PATH_ENV, "./tmp/state"),
        default_calibration_factor=_read_calibration_factor(1.0),
        log_level=_read_log_level("INFO"),
    )
