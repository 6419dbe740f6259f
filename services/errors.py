"""Exceptions raised along the export pipeline.

The orchestrator converts every one of these into a failed export job; none of
them is retried automatically.
"""

from __future__ import annotations


class ExportError(Exception):
    """Base exception for export pipeline failures."""


class InvalidInputError(ExportError):
    """Raised when a raw reading or request is malformed."""


class UnsupportedDestination(ExportError):
    """Raised when an export names a destination the pipeline cannot serve."""

    def __init__(self, destination: object) -> None:
        super().__init__(f"Unsupported export destination: {destination!r}")
        self.destination = destination


class EncodingFailed(ExportError):
    """Raised when a reading batch cannot be serialized."""


class DeliveryFailed(ExportError):
    """Raised when a remote platform rejects or never receives a payload."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ReadingFetchFailed(ExportError):
    """Raised when raw readings cannot be retrieved from the sensor API."""


class InvalidTransition(ExportError):
    """Raised on an export job status change the lifecycle does not allow."""
