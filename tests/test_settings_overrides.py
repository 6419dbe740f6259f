from __future__ import annotations

from typing import Iterable

from app.schemas import ExportJob
from datastore.tables import build_default_table
from services.connections import build_default_connection_checker
from services.history import build_default_ledger
from services.orchestrator import build_default_orchestrator
from services.schedules import build_default_registry
from settings import get_settings
from storage.file_store import build_default_file_store


def _clear_caches(caches: Iterable) -> None:
    for cache in caches:
        cache.cache_clear()


CACHES = (
    get_settings,
    build_default_table,
    build_default_file_store,
    build_default_ledger,
    build_default_registry,
    build_default_orchestrator,
    build_default_connection_checker,
)


def test_environment_overrides_apply(monkeypatch, tmp_path) -> None:
    files_root = tmp_path / "exports"
    state_root = tmp_path / "state"

    monkeypatch.setenv("PURPLEAIR_API_URL", "https://purpleair.example/v1/")
    monkeypatch.setenv("EAGLE_IO_API_URL", "https://eagle.example")
    monkeypatch.setenv("AQS_API_URL", "https://aqs.example/data/api/")
    monkeypatch.setenv("AQS_STATE_CODE", "53")
    monkeypatch.setenv("EXPORT_FILES_PATH", str(files_root))
    monkeypatch.setenv("EXPORT_STATE_PATH", str(state_root))
    monkeypatch.setenv("DEFAULT_CALIBRATION_FACTOR", "0.52")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    _clear_caches(CACHES)

    try:
        settings = get_settings()
        store = build_default_file_store()
        registry = build_default_registry()
        ledger = build_default_ledger()
        orchestrator = build_default_orchestrator()
        checker = build_default_connection_checker()

        assert settings.purpleair_api_url == "https://purpleair.example/v1"
        assert settings.aqs_state_code == "53"
        assert settings.default_calibration_factor == 0.52
        assert settings.log_level == "DEBUG"
        assert store.root_path == files_root
        assert registry.table.persistence_path == state_root / "schedules.json"
        assert ledger.table.persistence_path == state_root / "history.json"
        assert orchestrator.jobs.persistence_path == state_root / "jobs.json"
        assert orchestrator.source.base_url == "https://purpleair.example/v1"
        assert orchestrator.ledger is ledger
        assert settings.aqs_api_url == "https://aqs.example/data/api"
        assert checker.settings.eagle_io_api_url == "https://eagle.example"
        assert checker.purpleair.base_url == "https://purpleair.example/v1"
    finally:
        _clear_caches(CACHES)


def test_invalid_values_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.setenv("DEFAULT_CALIBRATION_FACTOR", "-3")
    monkeypatch.setenv("AQS_COUNTY_CODE", "   ")
    get_settings.cache_clear()

    try:
        settings = get_settings()
        assert settings.default_calibration_factor == 1.0
        assert settings.aqs_county_code == "001"
    finally:
        get_settings.cache_clear()


def test_empty_paths_keep_state_in_memory() -> None:
    build_default_table.cache_clear()
    build_default_file_store.cache_clear()

    try:
        table = build_default_table("jobs", ExportJob, state_path="")
        store = build_default_file_store(root_path="")

        assert table.persistence_path is None
        assert store.root_path is None
    finally:
        build_default_table.cache_clear()
        build_default_file_store.cache_clear()


def test_non_finite_calibration_factor_falls_back(monkeypatch) -> None:
    for raw in ("inf", "nan", "1e400"):
        monkeypatch.setenv("DEFAULT_CALIBRATION_FACTOR", raw)
        get_settings.cache_clear()
        try:
            assert get_settings().default_calibration_factor == 1.0
        finally:
            get_settings.cache_clear()
