from __future__ import annotations
import json
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, Generic, Optional, Type, TypeVar

from pydantic import BaseModel

from settings import get_settings

ModelT = TypeVar("ModelT", bound=BaseModel)


class JsonTable(Generic[ModelT]):
    """Key-value table of pydantic models, optionally mirrored to a JSON file.

    All writes go through one lock, so a read-modify-write done with
    :meth:`update_item` cannot interleave with another writer on the same table.
    """

    def __init__(
        self,
        name: str,
        model: Type[ModelT],
        persistence_path: Optional[Path] = None,
    ) -> None:
        self.name = name
        self.model = model
        self._items: Dict[str, ModelT] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def insert_item(self, key: str, item: ModelT) -> None:
        """Store ``item`` only if ``key`` is new."""
        with self._lock:
            if key in self._items:
                raise KeyError(f"Item {key!r} already exists in table {self.name!r}.")
            self._items[key] = item.model_copy(deep=True)
            self._persist()

    def update_item(self, key: str, mutate: Callable[[ModelT], ModelT]) -> ModelT:
        """Atomically replace the stored item with ``mutate(current)``."""
        with self._lock:
            current = self._items.get(key)
            if current is None:
                raise KeyError(f"Item {key!r} not found in table {self.name!r}.")
            updated = mutate(current.model_copy(deep=True))
            self._items[key] = updated.model_copy(deep=True)
            self._persist()
            return updated

    def get_item(self, key: str) -> Optional[ModelT]:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            return item.model_copy(deep=True)

    def delete_item(self, key: str) -> bool:
        with self._lock:
            removed = self._items.pop(key, None)
            if removed is None:
                return False
            self._persist()
            return True

    def scan(self) -> list[ModelT]:
        """Return deep copies of all stored items."""
        with self._lock:
            return [item.model_copy(deep=True) for item in self._items.values()]

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {key: item.model_dump(mode="json") for key, item in self._items.items()}
        tmp_path = self.persistence_path.with_suffix(self.persistence_path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload, indent=2, sort_keys=True))
        tmp_path.replace(self.persistence_path)

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for key, payload in data.items():
            self._items[key] = self.model.model_validate(payload)


@lru_cache
def build_default_table(
    name: str,
    model: Type[ModelT],
    state_path: Optional[str] = None,
) -> JsonTable[ModelT]:
    """Open the table ``name`` under the configured state directory."""
    settings = get_settings()
    root = settings.export_state_path if state_path is None else state_path
    persistence = Path(root) / f"{name}.json" if root else None
    return JsonTable(name=name, model=model, persistence_path=persistence)
