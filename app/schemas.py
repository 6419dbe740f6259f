"""Pydantic schemas shared by the API, the orchestrator and the persisted tables."""

from __future__ import annotations

from datetime import date, datetime, time
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, SecretStr, model_validator


class ExportFormat(str, Enum):
    """File formats offered for downloadable exports."""

    csv = "csv"
    json = "json"


class Destination(str, Enum):
    """Delivery targets an export can be sent to."""

    download = "download"
    telemetry_platform = "telemetry-platform"
    regulatory = "regulatory"


class JobStatus(str, Enum):
    """Export job lifecycle states."""

    queued = "queued"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class JobType(str, Enum):
    manual = "manual"
    scheduled = "scheduled"


class ScheduleFrequency(str, Enum):
    hourly = "hourly"
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"


class ExportCredentials(BaseModel):
    """Per-request secrets; never persisted with the job."""

    purpleair_api_key: Optional[SecretStr] = None
    eagle_io_api_key: Optional[SecretStr] = None
    eagle_io_api_url: Optional[str] = Field(
        default=None, description="Overrides the configured Eagle.io base URL."
    )


class AqsOptions(BaseModel):
    """Caller-supplied AQS header and site values; blanks fall back to settings."""

    state_code: Optional[str] = None
    county_code: Optional[str] = None
    site_number: Optional[str] = None
    submitter_name: Optional[str] = None
    submitter_email: Optional[str] = None
    organization_name: Optional[str] = None


class ExportRequest(BaseModel):
    """Everything needed to run one export job."""

    start_date: date
    end_date: date
    sensor_ids: List[str] = Field(..., min_length=1)
    format: ExportFormat = ExportFormat.csv
    destination: str = Field(
        default=Destination.download.value,
        description="One of download, telemetry-platform or regulatory.",
    )
    calibration_factor: Optional[float] = Field(default=None, gt=0)
    credentials: ExportCredentials = Field(default_factory=ExportCredentials)
    aqs: AqsOptions = Field(default_factory=AqsOptions)

    @model_validator(mode="after")
    def _check_date_range(self) -> "ExportRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date.")
        return self


class ExportResult(BaseModel):
    """Outcome metadata for a completed export."""

    record_count: int = Field(0, ge=0)
    output_size: int = Field(0, ge=0, description="Encoded payload size in bytes.")
    filename: Optional[str] = None
    object_key: Optional[str] = Field(
        default=None, description="File store key for materialized exports."
    )
    acknowledgement: Optional[Any] = Field(
        default=None, description="Response body returned by a remote platform."
    )


class ExportJob(BaseModel):
    """A single export request and its lifecycle state."""

    id: str
    name: str
    created_at: datetime
    format: ExportFormat
    destination: str
    job_type: JobType = JobType.manual
    schedule_id: Optional[str] = None
    status: JobStatus = JobStatus.queued
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    result: Optional[ExportResult] = None
    error: Optional[str] = None


class ScheduleCreate(BaseModel):
    """Fields a user supplies when defining a recurring export."""

    name: str = Field(..., min_length=1)
    frequency: ScheduleFrequency = ScheduleFrequency.daily
    time_of_day: time = time(hour=9)
    sensor_ids: List[str] = Field(..., min_length=1)
    format: ExportFormat = ExportFormat.csv
    destination: Destination = Destination.telemetry_platform
    credentials_ref: Optional[str] = Field(
        default=None,
        description="Name of the destination credentials held by the caller.",
    )


class ScheduleDefinition(ScheduleCreate):
    id: str
    created_at: datetime
    status: str = "active"


class ExportHistoryRecord(BaseModel):
    """Immutable ledger entry for one finished export job."""

    id: str
    job_id: str
    destination: str
    job_type: JobType
    status: JobStatus
    record_count: int = Field(0, ge=0)
    timestamp: datetime
    duration_ms: int = Field(0, ge=0)
    error: Optional[str] = None


class ConnectionCheckRequest(BaseModel):
    """Credentials to test against one upstream service; never stored."""

    api_key: Optional[SecretStr] = None
    api_url: Optional[str] = Field(
        default=None, description="Overrides the configured base URL."
    )
    email: Optional[str] = Field(default=None, description="AQS account email.")
    sensor_id: Optional[str] = Field(default=None, description="PurpleAir sensor to read.")


class ConnectionCheckResult(BaseModel):
    service: str
    success: bool
    message: str
    data: Any = None
