from __future__ import annotations

from typing import Any, Callable, Optional

import httpx
import pytest

from app.schemas import ExportHistoryRecord, ExportJob
from datastore.tables import JsonTable
from services.delivery import EagleIoClient
from services.history import ExportHistoryLedger
from services.orchestrator import ExportOrchestrator
from settings import Settings
from storage.file_store import ExportFileStore
from tests.helpers import FIXED_NOW, make_settings


def _accepting_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"status": "accepted"})


@pytest.fixture
def make_orchestrator(tmp_path) -> Callable[..., ExportOrchestrator]:
    """Build orchestrators over temp-dir stores with a mocked Eagle.io transport."""

    def factory(
        source: Any,
        handler: Callable[[httpx.Request], httpx.Response] = _accepting_handler,
        settings: Optional[Settings] = None,
        jobs: Optional[JsonTable[ExportJob]] = None,
        history: Optional[JsonTable[ExportHistoryRecord]] = None,
    ) -> ExportOrchestrator:
        transport = httpx.MockTransport(handler)
        return ExportOrchestrator(
            source=source,
            jobs=jobs or JsonTable("jobs", ExportJob, persistence_path=tmp_path / "jobs.json"),
            ledger=ExportHistoryLedger(
                history
                or JsonTable("history", ExportHistoryRecord, persistence_path=tmp_path / "history.json")
            ),
            file_store=ExportFileStore(name="test", root_path=tmp_path / "exports"),
            telemetry=EagleIoClient(httpx.AsyncClient(transport=transport)),
            settings=settings or make_settings(),
            clock=lambda: FIXED_NOW,
        )

    return factory
