"""Append-only ledger of finished export jobs."""

from __future__ import annotations

from functools import lru_cache

from app.schemas import ExportHistoryRecord
from datastore.tables import JsonTable, build_default_table


class ExportHistoryLedger:

    def __init__(self, table: JsonTable[ExportHistoryRecord]) -> None:
        self.table = table

    def append(self, record: ExportHistoryRecord) -> None:
        self.table.insert_item(record.id, record)

    def list(self) -> list[ExportHistoryRecord]:
        """Return every record, most recent first."""
        return sorted(self.table.scan(), key=lambda record: record.timestamp, reverse=True)


@lru_cache
def build_default_ledger() -> ExportHistoryLedger:
    return ExportHistoryLedger(build_default_table("history", ExportHistoryRecord))
