"""Export job orchestration: fetch, normalize, encode, deliver, record."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from functools import lru_cache, partial
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Sequence
from uuid import uuid4

from pydantic import SecretStr

from app.schemas import (
    AqsOptions,
    Destination,
    ExportCredentials,
    ExportFormat,
    ExportHistoryRecord,
    ExportJob,
    ExportRequest,
    ExportResult,
    JobStatus,
    JobType,
    ScheduleDefinition,
    ScheduleFrequency,
)
from datastore.tables import JsonTable, build_default_table
from services.delivery import EagleIoClient
from services.encoders import (
    AqsSubmission,
    EncodedPayload,
    encode_aqs_xml,
    encode_csv,
    encode_eagle_io,
    encode_json,
)
from services.errors import InvalidTransition, UnsupportedDestination
from services.history import ExportHistoryLedger, build_default_ledger
from services.normalizer import normalize_batch
from services.sensor_client import PurpleAirClient
from settings import Settings, get_settings
from storage.file_store import ExportFileStore, build_default_file_store, export_file_key

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS: Dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.queued: frozenset({JobStatus.processing}),
    JobStatus.processing: frozenset({JobStatus.completed, JobStatus.failed}),
}
_TERMINAL_STATUSES = frozenset({JobStatus.completed, JobStatus.failed})

# Look-back window for a scheduled run, ending at trigger time.
SCHEDULE_WINDOWS: Dict[ScheduleFrequency, timedelta] = {
    ScheduleFrequency.hourly: timedelta(hours=1),
    ScheduleFrequency.daily: timedelta(days=1),
    ScheduleFrequency.weekly: timedelta(weeks=1),
    ScheduleFrequency.monthly: timedelta(days=30),
}


class ReadingSource(Protocol):
    async def fetch_readings(
        self,
        sensor_ids: Sequence[str],
        start: Any,
        end: Any,
        api_key: Optional[str],
    ) -> Sequence[Mapping[str, Any]]:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _secret(value: Optional[SecretStr]) -> Optional[str]:
    return value.get_secret_value() if value is not None else None


def describe_error(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or type(exc).__name__


class ExportOrchestrator:
    """Owns export job state and drives each job to a terminal status.

    ``run_export`` stores the job as queued and schedules the work on the
    running event loop. Jobs are independent of one another: nothing
    serializes two exports over the same sensors.
    """

    def __init__(
        self,
        source: ReadingSource,
        jobs: JsonTable[ExportJob],
        ledger: ExportHistoryLedger,
        file_store: ExportFileStore,
        telemetry: EagleIoClient,
        settings: Settings,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.source = source
        self.jobs = jobs
        self.ledger = ledger
        self.file_store = file_store
        self.telemetry = telemetry
        self.settings = settings
        self._clock = clock
        self._tasks: Dict[str, asyncio.Task[None]] = {}

    async def run_export(
        self,
        request: ExportRequest,
        job_type: JobType = JobType.manual,
        schedule_id: Optional[str] = None,
    ) -> ExportJob:
        created_at = self._clock()
        job = ExportJob(
            id=str(uuid4()),
            name=f"Export {created_at:%Y-%m-%d %H:%M}",
            created_at=created_at,
            format=request.format,
            destination=request.destination,
            job_type=job_type,
            schedule_id=schedule_id,
        )
        self.jobs.insert_item(job.id, job)
        logger.info(
            "Queued export job",
            extra={
                "job_id": job.id,
                "job_type": job_type,
                "destination": job.destination,
                "export_format": job.format,
            },
        )

        task = asyncio.create_task(self._execute(job.id, request))
        self._tasks[job.id] = task
        task.add_done_callback(partial(self._task_done, job.id))
        return job

    async def run_scheduled(
        self,
        schedule: ScheduleDefinition,
        credentials: Optional[ExportCredentials] = None,
        now: Optional[datetime] = None,
        aqs: Optional[AqsOptions] = None,
    ) -> ExportJob:
        """Run a stored schedule once, covering one frequency period before ``now``."""
        moment = now or self._clock()
        window = SCHEDULE_WINDOWS[schedule.frequency]
        request = ExportRequest(
            start_date=(moment - window).date(),
            end_date=moment.date(),
            sensor_ids=list(schedule.sensor_ids),
            format=schedule.format,
            destination=schedule.destination.value,
            credentials=credentials or ExportCredentials(),
            aqs=aqs or AqsOptions(),
        )
        return await self.run_export(request, JobType.scheduled, schedule_id=schedule.id)

    def fetch_job(self, job_id: str) -> ExportJob:
        job = self.jobs.get_item(job_id)
        if job is None:
            raise KeyError(f"Export job {job_id!r} not found.")
        return job

    def list_jobs(self) -> list[ExportJob]:
        return sorted(self.jobs.scan(), key=lambda job: job.created_at, reverse=True)

    def fetch_file(self, job_id: str) -> tuple[ExportJob, bytes]:
        """Return a finished job with the bytes of its materialized file."""
        job = self.fetch_job(job_id)
        if job.status is not JobStatus.completed or job.result is None or not job.result.object_key:
            raise KeyError(f"Export job {job_id!r} has no downloadable file.")
        return job, self.file_store.get_object(job.result.object_key)

    async def wait_for(self, job_id: str) -> ExportJob:
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        return self.fetch_job(job_id)

    async def aclose(self) -> None:
        pending = list(self._tasks.values())
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        aclose = getattr(self.source, "aclose", None)
        if aclose is not None:
            await aclose()
        await self.telemetry.aclose()

    async def _execute(self, job_id: str, request: ExportRequest) -> None:
        start_time = time.perf_counter()
        try:
            job = self._transition(job_id, JobStatus.processing)
            result = await self._perform(job, request)
            final = self._transition(job_id, JobStatus.completed, result=result)
        except Exception as exc:  # every failure ends the job, never the caller
            final = self._fail(job_id, exc)
        if final is None:
            return

        if final.status is JobStatus.completed and final.result is not None:
            logger.info(
                "Export job completed",
                extra={
                    "job_id": job_id,
                    "destination": final.destination,
                    "status": final.status,
                    "record_count": final.result.record_count,
                    "output_size": final.result.output_size,
                },
            )
        else:
            logger.warning(
                "Export job failed",
                extra={
                    "job_id": job_id,
                    "destination": final.destination,
                    "status": final.status,
                    "reason": final.error,
                },
            )

        duration_ms = int((time.perf_counter() - start_time) * 1000)
        record = ExportHistoryRecord(
            id=str(uuid4()),
            job_id=job_id,
            destination=final.destination,
            job_type=final.job_type,
            status=final.status,
            record_count=final.result.record_count if final.result else 0,
            timestamp=final.finished_at or self._clock(),
            duration_ms=duration_ms,
            error=final.error,
        )
        try:
            self.ledger.append(record)
        except Exception:
            logger.exception("Could not record export history", extra={"job_id": job_id})

    def _fail(self, job_id: str, exc: BaseException) -> Optional[ExportJob]:
        """Move a job to failed; returns its terminal state, or None if it is gone.

        Table writes update memory before the file, so a job whose transition
        raised while persisting is already in its new status.
        """
        try:
            return self._transition(job_id, JobStatus.failed, error=describe_error(exc))
        except Exception:
            logger.exception("Could not store failed export job", extra={"job_id": job_id})
        job = self.jobs.get_item(job_id)
        if job is None or job.status not in _TERMINAL_STATUSES:
            return None
        return job

    def _task_done(self, job_id: str, task: asyncio.Task[None]) -> None:
        self._tasks.pop(job_id, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Export task crashed", exc_info=exc, extra={"job_id": job_id})

    async def _perform(self, job: ExportJob, request: ExportRequest) -> ExportResult:
        destination = self._resolve_destination(request.destination)
        credentials = request.credentials

        raw_readings = await self.source.fetch_readings(
            request.sensor_ids,
            request.start_date,
            request.end_date,
            _secret(credentials.purpleair_api_key),
        )
        factor = request.calibration_factor or self.settings.default_calibration_factor
        now = self._clock()
        readings = normalize_batch(raw_readings, factor, captured_at=now)

        if destination is Destination.download:
            if request.format is ExportFormat.csv:
                payload = encode_csv(readings, now)
            else:
                payload = encode_json(readings, now)
            return self._materialize(job, payload)

        if destination is Destination.regulatory:
            payload = encode_aqs_xml(readings, now, self._aqs_submission(request.aqs))
            return self._materialize(job, payload)

        payload = encode_eagle_io(readings, now)
        api_url = credentials.eagle_io_api_url or self.settings.eagle_io_api_url
        acknowledgement = await self.telemetry.deliver(
            payload.document, api_url, _secret(credentials.eagle_io_api_key)
        )
        return ExportResult(
            record_count=payload.record_count,
            output_size=payload.size,
            acknowledgement=acknowledgement,
        )

    @staticmethod
    def _resolve_destination(value: str) -> Destination:
        try:
            return Destination(value)
        except ValueError as exc:
            raise UnsupportedDestination(value) from exc

    def _materialize(self, job: ExportJob, payload: EncodedPayload) -> ExportResult:
        key = export_file_key(job.id, payload.filename)
        size = self.file_store.put_object(key, payload.data)
        return ExportResult(
            record_count=payload.record_count,
            output_size=size,
            filename=payload.filename,
            object_key=key,
        )

    def _aqs_submission(self, options: AqsOptions) -> AqsSubmission:
        settings = self.settings
        return AqsSubmission(
            state_code=options.state_code or settings.aqs_state_code,
            county_code=options.county_code or settings.aqs_county_code,
            site_number=options.site_number or settings.aqs_site_number,
            submitter_name=options.submitter_name or settings.aqs_submitter_name,
            submitter_email=options.submitter_email or settings.aqs_submitter_email,
            organization_name=options.organization_name or settings.aqs_organization_name,
        )

    def _transition(self, job_id: str, status: JobStatus, **changes: Any) -> ExportJob:
        def advance(job: ExportJob) -> ExportJob:
            if status not in _ALLOWED_TRANSITIONS.get(job.status, frozenset()):
                raise InvalidTransition(
                    f"Export job {job_id!r} cannot move from {job.status.value} to {status.value}."
                )
            stamp = "started_at" if status is JobStatus.processing else "finished_at"
            return job.model_copy(update={"status": status, stamp: self._clock(), **changes})

        return self.jobs.update_item(job_id, advance)


@lru_cache
def build_default_orchestrator() -> ExportOrchestrator:
    """Factory that wires the orchestrator with the configured stores and clients."""
    settings = get_settings()
    return ExportOrchestrator(
        source=PurpleAirClient(settings.purpleair_api_url),
        jobs=build_default_table("jobs", ExportJob),
        ledger=build_default_ledger(),
        file_store=build_default_file_store(),
        telemetry=EagleIoClient(),
        settings=settings,
    )
