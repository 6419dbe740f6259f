"""HTTP route definitions for the service."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.schemas import (
    ConnectionCheckRequest,
    ConnectionCheckResult,
    ExportHistoryRecord,
    ExportJob,
    ExportRequest,
    ScheduleCreate,
    ScheduleDefinition,
)
from services.connections import ConnectionChecker, build_default_connection_checker
from services.history import ExportHistoryLedger, build_default_ledger
from services.orchestrator import ExportOrchestrator, build_default_orchestrator
from services.schedules import ScheduleRegistry, build_default_registry

router = APIRouter()

_MEDIA_TYPES = {
    ".csv": "text/csv; charset=utf-8",
    ".json": "application/json",
    ".xml": "application/xml",
}


def get_orchestrator() -> ExportOrchestrator:
    return build_default_orchestrator()


def get_registry() -> ScheduleRegistry:
    return build_default_registry()


def get_ledger() -> ExportHistoryLedger:
    return build_default_ledger()


def get_connection_checker() -> ConnectionChecker:
    return build_default_connection_checker()


@router.post(
    "/exports",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=ExportJob,
    summary="Queue an export job.",
)
async def create_export(
    request: ExportRequest,
    orchestrator: ExportOrchestrator = Depends(get_orchestrator),
) -> ExportJob:
    return await orchestrator.run_export(request)


@router.get(
    "/exports",
    response_model=list[ExportJob],
    summary="List export jobs, newest first.",
)
async def list_exports(
    orchestrator: ExportOrchestrator = Depends(get_orchestrator),
) -> list[ExportJob]:
    return orchestrator.list_jobs()


@router.get(
    "/exports/{job_id}",
    response_model=ExportJob,
    summary="Fetch the status and result metadata of an export job.",
)
async def get_export(
    job_id: str,
    orchestrator: ExportOrchestrator = Depends(get_orchestrator),
) -> ExportJob:
    try:
        return orchestrator.fetch_job(job_id)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc


@router.get(
    "/exports/{job_id}/file",
    summary="Download the file produced by a completed export.",
)
async def download_export(
    job_id: str,
    orchestrator: ExportOrchestrator = Depends(get_orchestrator),
) -> Response:
    try:
        job, data = orchestrator.fetch_file(job_id)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    filename = job.result.filename if job.result and job.result.filename else f"{job_id}.dat"
    suffix = filename[filename.rfind("."):] if "." in filename else ""
    return Response(
        content=data,
        media_type=_MEDIA_TYPES.get(suffix, "application/octet-stream"),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post(
    "/schedules",
    status_code=status.HTTP_201_CREATED,
    response_model=ScheduleDefinition,
    summary="Store a recurring export definition.",
)
async def create_schedule(
    definition: ScheduleCreate,
    registry: ScheduleRegistry = Depends(get_registry),
) -> ScheduleDefinition:
    return registry.create(definition)


@router.get(
    "/schedules",
    response_model=list[ScheduleDefinition],
    summary="List stored export schedules.",
)
async def list_schedules(
    registry: ScheduleRegistry = Depends(get_registry),
) -> list[ScheduleDefinition]:
    return registry.list()


@router.delete(
    "/schedules/{schedule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a schedule; unknown ids are accepted.",
)
async def delete_schedule(
    schedule_id: str,
    registry: ScheduleRegistry = Depends(get_registry),
) -> Response:
    registry.delete(schedule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/history",
    response_model=list[ExportHistoryRecord],
    summary="Export history, most recent first.",
)
async def list_history(
    ledger: ExportHistoryLedger = Depends(get_ledger),
) -> list[ExportHistoryRecord]:
    return ledger.list()


@router.post(
    "/connections/purpleair",
    response_model=ConnectionCheckResult,
    summary="Check a PurpleAir read key against one sensor.",
)
async def check_purpleair_connection(
    request: ConnectionCheckRequest,
    checker: ConnectionChecker = Depends(get_connection_checker),
) -> ConnectionCheckResult:
    return await checker.check_purpleair(request)


@router.post(
    "/connections/eagle-io",
    response_model=ConnectionCheckResult,
    summary="Check an Eagle.io API key.",
)
async def check_eagle_io_connection(
    request: ConnectionCheckRequest,
    checker: ConnectionChecker = Depends(get_connection_checker),
) -> ConnectionCheckResult:
    return await checker.check_eagle_io(request)


@router.post(
    "/connections/aqs",
    response_model=ConnectionCheckResult,
    summary="Check EPA AQS credentials.",
)
async def check_aqs_connection(
    request: ConnectionCheckRequest,
    checker: ConnectionChecker = Depends(get_connection_checker),
) -> ConnectionCheckResult:
    return await checker.check_aqs(request)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}
