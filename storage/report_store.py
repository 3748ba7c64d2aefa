"""
Run Report Store
Append-style audit trail, one document per pricing run.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
import fcntl
import json
import logging
from pathlib import Path
import re
from threading import RLock
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from core import ReportItem, RunReport, utcnow
from utils.exceptions import StorageError

from .settings_store import write_json_atomic


logger = logging.getLogger(__name__)

_FINALIZE_FIELDS = {"status", "finished_at", "totals", "error", "dry_run", "started_at"}


def _apply_patch(report: RunReport, patch: Mapping[str, Any]) -> RunReport:
    data = report.model_dump()
    for key, value in patch.items():
        if key in _FINALIZE_FIELDS:
            data[key] = value
    data["updated_at"] = utcnow()
    return RunReport.model_validate(data)


def _upsert_from_patch(run_id: str, patch: Mapping[str, Any]) -> RunReport:
    data: Dict[str, Any] = {key: value for key, value in patch.items() if key in _FINALIZE_FIELDS}
    data["run_id"] = run_id
    data.setdefault("started_at", utcnow())
    try:
        return RunReport.model_validate(data)
    except PydanticValidationError as exc:
        raise StorageError(f"Cannot upsert report {run_id}", {"errors": exc.errors()}) from exc


class BaseRunReportStore(ABC):
    """Persistence contract for run reports."""

    @abstractmethod
    def create(self, report: RunReport) -> RunReport:
        """Insert a new report. Raises StorageError when the run_id exists."""

    @abstractmethod
    def append_items(self, run_id: str, items: Sequence[ReportItem]) -> bool:
        """Append decisions in order. Returns False for an unknown run."""

    @abstractmethod
    def finalize(self, run_id: str, patch: Mapping[str, Any], *, upsert: bool = False) -> Optional[RunReport]:
        """Set terminal fields (status, finished_at, totals, error)."""

    @abstractmethod
    def find(self, run_id: str) -> Optional[RunReport]:
        pass

    @abstractmethod
    def find_latest(self) -> Optional[RunReport]:
        """Report with the most recent ``started_at``."""

    @abstractmethod
    def delete(self, run_id: str) -> bool:
        pass

    @abstractmethod
    def list_running(self) -> List[RunReport]:
        pass

    @abstractmethod
    def heartbeat(self, run_id: str) -> bool:
        """Stamp ``heartbeat_at`` on a running report. False when it is gone or terminal."""


class InMemoryRunReportStore(BaseRunReportStore):
    """Thread-safe in-memory report store."""

    def __init__(self) -> None:
        self._reports: Dict[str, RunReport] = {}
        self._lock = RLock()

    def create(self, report: RunReport) -> RunReport:
        with self._lock:
            if report.run_id in self._reports:
                raise StorageError(f"Run report already exists: {report.run_id}")
            self._reports[report.run_id] = report.model_copy(deep=True)
            return report.model_copy(deep=True)

    def append_items(self, run_id: str, items: Sequence[ReportItem]) -> bool:
        with self._lock:
            report = self._reports.get(run_id)
            if report is None:
                return False
            report.items.extend(item.model_copy() for item in items)
            report.updated_at = utcnow()
            return True

    def finalize(self, run_id: str, patch: Mapping[str, Any], *, upsert: bool = False) -> Optional[RunReport]:
        with self._lock:
            report = self._reports.get(run_id)
            if report is None:
                if not upsert:
                    return None
                updated = _upsert_from_patch(run_id, patch)
            else:
                updated = _apply_patch(report, patch)
            self._reports[run_id] = updated
            return updated.model_copy(deep=True)

    def find(self, run_id: str) -> Optional[RunReport]:
        with self._lock:
            report = self._reports.get(run_id)
            return report.model_copy(deep=True) if report else None

    def find_latest(self) -> Optional[RunReport]:
        with self._lock:
            if not self._reports:
                return None
            latest = max(self._reports.values(), key=lambda r: r.started_at)
            return latest.model_copy(deep=True)

    def delete(self, run_id: str) -> bool:
        with self._lock:
            return self._reports.pop(run_id, None) is not None

    def list_running(self) -> List[RunReport]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._reports.values() if r.status == "running"]

    def heartbeat(self, run_id: str) -> bool:
        with self._lock:
            report = self._reports.get(run_id)
            if report is None or report.status != "running":
                return False
            report.heartbeat_at = utcnow()
            return True


class DiskRunReportStore(BaseRunReportStore):
    """
    One JSON file per run under ``<data_dir>/reports``.

    ``_index.json`` keeps run_id -> started_at/status so latest/running
    lookups do not load every item list. Operations hold an ``flock`` and
    re-read the index, so several processes can share one directory.
    """

    _SAFE_ID = re.compile(r"^[A-Za-z0-9_.-]+$")

    def __init__(self, data_dir: str = "./data/pricing") -> None:
        self.reports_dir = Path(data_dir) / "reports"
        self.reports_dir.mkdir(parents=True, exist_ok=True)
        self.index_file = self.reports_dir / "_index.json"
        self._lock_path = self.reports_dir / ".index.lock"
        self._lock = RLock()
        self._index: Dict[str, Dict[str, str]] = {}

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        with self._lock:
            with open(self._lock_path, "a+") as handle:
                fcntl.flock(handle, fcntl.LOCK_EX)
                try:
                    self._load_index()
                    yield
                finally:
                    fcntl.flock(handle, fcntl.LOCK_UN)

    def _load_index(self) -> None:
        if self.index_file.exists():
            try:
                with open(self.index_file, "r", encoding="utf-8") as f:
                    self._index = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise StorageError(f"Failed to read report index: {e}") from e
        else:
            self._index = {}

    def _save_index(self) -> None:
        write_json_atomic(self.index_file, self._index)

    def _get_path(self, run_id: str) -> Path:
        if not self._SAFE_ID.match(run_id or ""):
            raise StorageError(f"Invalid run id: {run_id!r}")
        return self.reports_dir / f"{run_id}.json"

    def _read(self, run_id: str) -> Optional[RunReport]:
        try:
            path = self._get_path(run_id)
        except StorageError:
            return None
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return RunReport.model_validate(json.load(f))
        except (OSError, json.JSONDecodeError, PydanticValidationError) as e:
            raise StorageError(f"Failed to load report {run_id}: {e}") from e

    def _write(self, report: RunReport) -> None:
        write_json_atomic(self._get_path(report.run_id), report.model_dump(mode="json"))
        self._index[report.run_id] = {
            "started_at": report.started_at.isoformat(),
            "status": report.status,
        }
        self._save_index()

    def create(self, report: RunReport) -> RunReport:
        with self._transaction():
            if self._get_path(report.run_id).exists():
                raise StorageError(f"Run report already exists: {report.run_id}")
            self._write(report)
            return report.model_copy(deep=True)

    def append_items(self, run_id: str, items: Sequence[ReportItem]) -> bool:
        with self._transaction():
            report = self._read(run_id)
            if report is None:
                return False
            report.items.extend(items)
            report.updated_at = utcnow()
            self._write(report)
            return True

    def finalize(self, run_id: str, patch: Mapping[str, Any], *, upsert: bool = False) -> Optional[RunReport]:
        with self._transaction():
            report = self._read(run_id)
            if report is None:
                if not upsert:
                    return None
                updated = _upsert_from_patch(run_id, patch)
            else:
                updated = _apply_patch(report, patch)
            self._write(updated)
            return updated

    def find(self, run_id: str) -> Optional[RunReport]:
        with self._transaction():
            return self._read(run_id)

    def find_latest(self) -> Optional[RunReport]:
        with self._transaction():
            if not self._index:
                return None
            run_id = max(
                self._index,
                key=lambda key: datetime.fromisoformat(self._index[key]["started_at"]),
            )
            return self._read(run_id)

    def delete(self, run_id: str) -> bool:
        with self._transaction():
            try:
                path = self._get_path(run_id)
            except StorageError:
                return False
            existed = path.exists()
            if existed:
                path.unlink()
            if self._index.pop(run_id, None) is not None:
                self._save_index()
            return existed

    def list_running(self) -> List[RunReport]:
        with self._transaction():
            running = [key for key, meta in self._index.items() if meta.get("status") == "running"]
            reports = [self._read(run_id) for run_id in running]
            return [r for r in reports if r is not None and r.status == "running"]

    def heartbeat(self, run_id: str) -> bool:
        with self._transaction():
            report = self._read(run_id)
            if report is None or report.status != "running":
                return False
            report.heartbeat_at = utcnow()
            write_json_atomic(self._get_path(run_id), report.model_dump(mode="json"))
            return True
