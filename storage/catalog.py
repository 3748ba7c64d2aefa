"""
Catalog Repository
Read/write access to catalog items for the pricing pipeline.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import json
import logging
from pathlib import Path
from threading import RLock
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from core import BulkUpdateResult, CatalogItem, CatalogUpdate
from utils.exceptions import StorageError

from .settings_store import write_json_atomic


logger = logging.getLogger(__name__)


class BaseCatalog(ABC):
    """Catalog contract consumed by the orchestrator."""

    @abstractmethod
    def list_all(self) -> List[CatalogItem]:
        pass

    @abstractmethod
    def find(self, item_id: str) -> Optional[CatalogItem]:
        """Lookup by document id, then by numeric id."""

    @abstractmethod
    def find_by_name(self, name: str) -> Optional[CatalogItem]:
        pass

    @abstractmethod
    def bulk_update(self, updates: Sequence[CatalogUpdate]) -> BulkUpdateResult:
        """Apply keyed updates. Unordered; one failure does not block others."""


class InMemoryCatalog(BaseCatalog):
    """Dictionary-backed catalog."""

    def __init__(self, items: Optional[Iterable[Union[CatalogItem, Dict[str, Any]]]] = None) -> None:
        self._items: Dict[str, CatalogItem] = {}
        self._lock = RLock()
        for raw in items or []:
            item = raw if isinstance(raw, CatalogItem) else CatalogItem.model_validate(raw)
            self._items[item.id] = item.model_copy(deep=True)

    def list_all(self) -> List[CatalogItem]:
        with self._lock:
            return [item.model_copy(deep=True) for item in self._items.values()]

    def find(self, item_id: str) -> Optional[CatalogItem]:
        key = str(item_id or "").strip()
        if not key:
            return None
        with self._lock:
            item = self._items.get(key)
            if item is None:
                item = next((i for i in self._items.values() if i.numeric_id is not None and str(i.numeric_id) == key), None)
            return item.model_copy(deep=True) if item else None

    def find_by_name(self, name: str) -> Optional[CatalogItem]:
        target = str(name or "").strip()
        if not target:
            return None
        with self._lock:
            item = next((i for i in self._items.values() if i.name == target), None)
            return item.model_copy(deep=True) if item else None

    def bulk_update(self, updates: Sequence[CatalogUpdate]) -> BulkUpdateResult:
        result = BulkUpdateResult()
        with self._lock:
            for update in updates:
                current = self._items.get(update.item_id)
                if current is None:
                    result.errors[update.item_id] = "item not found"
                    continue
                result.matched += 1
                try:
                    data = current.model_dump()
                    data.update(update.fields)
                    replacement = CatalogItem.model_validate(data)
                except PydanticValidationError as exc:
                    result.errors[update.item_id] = str(exc)
                    continue
                if replacement != current:
                    result.modified += 1
                self._items[update.item_id] = replacement
            self._after_bulk_update(result)
        return result

    def _after_bulk_update(self, result: BulkUpdateResult) -> None:
        return None


class JsonFileCatalog(InMemoryCatalog):
    """Catalog loaded from a JSON array file and written back after updates."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        items: List[Dict[str, Any]] = []
        if self.path.exists():
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    items = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise StorageError(f"Failed to read catalog {self.path}: {e}") from e
            if not isinstance(items, list):
                raise StorageError(f"Catalog file must hold a JSON array: {self.path}")
        super().__init__(items)

    def _after_bulk_update(self, result: BulkUpdateResult) -> None:
        if not result.modified:
            return
        write_json_atomic(self.path, [item.model_dump(mode="json") for item in self._items.values()])
        logger.info("catalog_saved path=%s modified=%s", self.path, result.modified)
