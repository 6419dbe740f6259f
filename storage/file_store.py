from __future__ import annotations
from functools import lru_cache
from pathlib import Path, PurePosixPath
from threading import Lock
from typing import Dict, Optional

from settings import get_settings


def export_file_key(job_id: str, filename: str) -> str:
    """Key under which a job's materialized file is stored."""
    return f"{job_id}/{filename}"


class ExportFileStore:
    """Materialized export files, one directory per job.

    Files are written under ``root_path`` when it is set; without one the
    store keeps them in memory for the lifetime of the process.
    """

    def __init__(self, name: str, root_path: Optional[Path] = None) -> None:
        self.name = name
        self.root_path = root_path
        self._memory: Dict[str, bytes] = {}
        self._lock = Lock()
        if root_path:
            root_path.mkdir(parents=True, exist_ok=True)

    def put_object(self, key: str, data: bytes) -> int:
        """Store ``data`` under ``key`` and return its size in bytes."""
        target = self._resolve(key)
        with self._lock:
            if target is None:
                self._memory[key] = bytes(data)
            else:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(data)
        return len(data)

    def get_object(self, key: str) -> bytes:
        target = self._resolve(key)
        with self._lock:
            if target is None:
                data = self._memory.get(key)
            else:
                data = target.read_bytes() if target.is_file() else None
        if data is None:
            raise KeyError(f"Export file {key!r} not found in store {self.name!r}.")
        return data

    def _resolve(self, key: str) -> Optional[Path]:
        parts = PurePosixPath(key).parts
        if not parts or key.startswith("/") or ".." in parts:
            raise KeyError(f"Invalid export file key {key!r}.")
        if self.root_path is None:
            return None
        return self.root_path.joinpath(*parts)


@lru_cache
def build_default_file_store(
    name: str = "exports",
    root_path: Optional[str] = None,
) -> ExportFileStore:
    settings = get_settings()
    root = settings.export_files_path if root_path is None else root_path
    path = Path(root) if root else None
    return ExportFileStore(name=name, root_path=path)
