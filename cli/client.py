from __future__ import annotations

import time
from typing import Any, Dict, List, NoReturn

import httpx
import typer

from cli.config import CLIConfig

_PENDING_STATUSES = {"queued", "processing"}


class ApiClient:
    """Minimal HTTP client for the export service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=30.0)

    def close(self) -> None:
        self._client.close()

    def create_export(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self._client.post("/exports", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        job = response.json()
        if not isinstance(job, dict) or not isinstance(job.get("id"), str):
            raise typer.BadParameter("Unexpected response payload when creating export.")
        return job

    def get_job(self, job_id: str) -> Dict[str, Any]:
        try:
            response = self._client.get(f"/exports/{job_id}")
            if response.status_code == 404:
                raise typer.BadParameter(f"Export job {job_id} was not found.")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def download_file(self, job_id: str) -> bytes:
        try:
            response = self._client.get(f"/exports/{job_id}/file")
            if response.status_code == 404:
                raise typer.BadParameter(f"Export job {job_id} has no downloadable file.")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.content

    def poll_job(self, job_id: str, interval: float, timeout: float) -> Dict[str, Any]:
        deadline = time.monotonic() + timeout
        last_payload: Dict[str, Any] | None = None
        while time.monotonic() <= deadline:
            last_payload = self.get_job(job_id)
            if last_payload.get("status") not in _PENDING_STATUSES:
                return last_payload
            time.sleep(interval)
        typer.secho(
            (
                f"Timed out waiting for export {job_id}. "
                f"Last status: {last_payload.get('status') if last_payload else 'unknown'}"
            ),
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)

    def list_history(self) -> List[Dict[str, Any]]:
        return self._get_list("/history")

    def list_schedules(self) -> List[Dict[str, Any]]:
        return self._get_list("/schedules")

    def create_schedule(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self._client.post("/schedules", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def delete_schedule(self, schedule_id: str) -> None:
        try:
            response = self._client.delete(f"/schedules/{schedule_id}")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)

    def check_connection(self, service: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self._client.post(f"/connections/{service}", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def _get_list(self, path: str) -> List[Dict[str, Any]]:
        try:
            response = self._client.get(path)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> NoReturn:
        detail: Any = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except ValueError:
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
