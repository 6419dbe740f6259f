"""Storage for recurring export definitions."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional
from uuid import uuid4

from app.schemas import ScheduleCreate, ScheduleDefinition
from datastore.tables import JsonTable, build_default_table

logger = logging.getLogger(__name__)


class ScheduleRegistry:
    """CRUD over stored schedules.

    The registry never evaluates due times; an external scheduler reads the
    definitions and triggers runs through the orchestrator.
    """

    def __init__(self, table: JsonTable[ScheduleDefinition]) -> None:
        self.table = table

    def create(
        self, definition: ScheduleCreate, now: Optional[datetime] = None
    ) -> ScheduleDefinition:
        schedule = ScheduleDefinition(
            id=str(uuid4()),
            created_at=now or datetime.now(timezone.utc),
            **definition.model_dump(),
        )
        self.table.insert_item(schedule.id, schedule)
        logger.info(
            "Created export schedule",
            extra={"schedule_id": schedule.id, "destination": schedule.destination},
        )
        return schedule

    def get(self, schedule_id: str) -> ScheduleDefinition:
        schedule = self.table.get_item(schedule_id)
        if schedule is None:
            raise KeyError(f"Schedule {schedule_id!r} not found.")
        return schedule

    def list(self) -> list[ScheduleDefinition]:
        return sorted(self.table.scan(), key=lambda item: item.created_at)

    def delete(self, schedule_id: str) -> bool:
        """Remove a schedule; unknown ids are ignored. Past history is kept."""
        removed = self.table.delete_item(schedule_id)
        if removed:
            logger.info("Deleted export schedule", extra={"schedule_id": schedule_id})
        return removed


@lru_cache
def build_default_registry() -> ScheduleRegistry:
    return ScheduleRegistry(build_default_table("schedules", ScheduleDefinition))
