"""Unit tests for the JSON-backed job tables."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from app.schemas import ExportFormat, ExportJob, ExportResult, JobStatus
from datastore.tables import JsonTable


def _sample_job(job_id: str = "job-123") -> ExportJob:
    return ExportJob(
        id=job_id,
        name="Export 2024-01-01 12:00",
        created_at=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
        format=ExportFormat.csv,
        destination="download",
        status=JobStatus.completed,
        result=ExportResult(record_count=5, output_size=120, filename="a.csv", object_key="k"),
    )


def test_insert_and_get_returns_deep_copy() -> None:
    table = JsonTable("jobs", ExportJob)
    original = _sample_job()

    table.insert_item(original.id, original)
    fetched = table.get_item(original.id)

    assert fetched == original
    assert fetched is not original

    fetched.result.record_count = 42  # type: ignore[union-attr]
    assert table.get_item(original.id).result.record_count == 5  # type: ignore[union-attr]


def test_get_item_returns_none_when_missing() -> None:
    assert JsonTable("jobs", ExportJob).get_item("missing-id") is None


def test_insert_item_rejects_existing_key() -> None:
    table = JsonTable("jobs", ExportJob)
    table.insert_item("job-1", _sample_job("job-1"))

    with pytest.raises(KeyError):
        table.insert_item("job-1", _sample_job("job-1"))


def test_update_item_applies_mutation_and_returns_result() -> None:
    table = JsonTable("jobs", ExportJob)
    table.insert_item("job-1", _sample_job("job-1"))

    updated = table.update_item("job-1", lambda job: job.model_copy(update={"error": "boom"}))

    assert updated.error == "boom"
    assert table.get_item("job-1").error == "boom"  # type: ignore[union-attr]


def test_update_item_leaves_item_untouched_when_mutation_raises() -> None:
    table = JsonTable("jobs", ExportJob)
    table.insert_item("job-1", _sample_job("job-1"))

    def explode(job: ExportJob) -> ExportJob:
        job.error = "half-applied"
        raise RuntimeError("nope")

    with pytest.raises(RuntimeError):
        table.update_item("job-1", explode)

    assert table.get_item("job-1").error is None  # type: ignore[union-attr]


def test_update_item_missing_key_raises() -> None:
    with pytest.raises(KeyError):
        JsonTable("jobs", ExportJob).update_item("nope", lambda job: job)


def test_delete_item_reports_whether_anything_was_removed() -> None:
    table = JsonTable("jobs", ExportJob)
    table.insert_item("job-1", _sample_job("job-1"))

    assert table.delete_item("job-1") is True
    assert table.delete_item("job-1") is False
    assert table.scan() == []


def test_insert_item_persists_to_disk_and_reloads(tmp_path) -> None:
    path = tmp_path / "state" / "jobs.json"
    table = JsonTable("jobs", ExportJob, persistence_path=path)
    job = _sample_job()

    table.insert_item(job.id, job)

    payload = json.loads(path.read_text())
    assert payload[job.id]["status"] == "completed"
    assert not path.with_suffix(".json.tmp").exists()

    reloaded = JsonTable("jobs", ExportJob, persistence_path=path).get_item(job.id)
    assert reloaded == job


def test_corrupt_state_file_loads_as_empty(tmp_path) -> None:
    path = tmp_path / "jobs.json"
    path.write_text("{not json")

    assert JsonTable("jobs", ExportJob, persistence_path=path).scan() == []


def test_scan_returns_all_items_as_deep_copies() -> None:
    table = JsonTable("jobs", ExportJob)
    table.insert_item("job-1", _sample_job("job-1"))
    table.insert_item("job-2", _sample_job("job-2"))

    scanned = sorted(table.scan(), key=lambda item: item.id)
    assert [item.id for item in scanned] == ["job-1", "job-2"]

    scanned[0].result.record_count = 99  # type: ignore[union-attr]
    assert all(item.result.record_count == 5 for item in table.scan())  # type: ignore[union-attr]
