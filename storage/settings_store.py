"""
Settings Store
Singleton agent settings with run status and bounded run history.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
import fcntl
import json
import logging
import os
from pathlib import Path
import tempfile
from threading import RLock
from typing import Any, Dict, Iterator, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from core import MAX_RUN_HISTORY, AgentSettings, PricingRules, RunSummary, SearchConfig, Vendor, utcnow
from core.contracts import AgentStatus, RoundingMode
from utils.exceptions import StorageError, ValidationError


logger = logging.getLogger(__name__)


class SearchConfigUpdate(BaseModel):
    model: Optional[str] = None
    temperature: Optional[float] = Field(default=None, ge=0, le=1)
    top_p: Optional[float] = Field(default=None, ge=0, le=1)
    system_prompt: Optional[str] = None
    guardrails: Optional[str] = None


class PricingRulesUpdate(BaseModel):
    markup_unavailable: Optional[float] = Field(default=None, ge=0, le=3)
    scale_by_scarcity: Optional[bool] = None
    rounding: Optional[RoundingMode] = None
    min_price: Optional[float] = Field(default=None, ge=0)
    max_price: Optional[float] = Field(default=None, ge=0)


class SettingsUpdate(BaseModel):
    """Partial settings update. Unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore")

    search_config: Optional[SearchConfigUpdate] = None
    pricing_rules: Optional[PricingRulesUpdate] = None
    search_vendors: Optional[List[Optional[Vendor]]] = None
    api_key: Optional[str] = None
    reset_api_key: bool = False

    @field_validator("api_key", mode="before")
    @classmethod
    def _api_key_text(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        if not text:
            raise ValueError("api_key must not be empty")
        return text


def _field_errors(exc: PydanticValidationError) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    for err in exc.errors():
        path = ".".join(str(part) for part in err.get("loc", ())) or "__root__"
        errors.setdefault(path, str(err.get("msg", "invalid value")))
    return errors


def parse_settings_update(partial: Mapping[str, Any]) -> SettingsUpdate:
    """Validate a partial update, raising ValidationError with field-level messages."""
    try:
        return SettingsUpdate.model_validate(dict(partial or {}))
    except PydanticValidationError as exc:
        raise ValidationError("Validation failed", _field_errors(exc)) from exc


class BaseSettingsStore(ABC):
    """
    Settings singleton persistence.

    Every public operation is one read-modify-write inside ``_transaction``.
    Backends implement ``_load``/``_save`` of the raw JSON document.
    """

    def __init__(self) -> None:
        self._lock = RLock()

    @abstractmethod
    def _load(self) -> Optional[Dict[str, Any]]:
        """Return the stored document, or None when absent."""

    @abstractmethod
    def _save(self, document: Dict[str, Any]) -> None:
        """Persist the full document."""

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        with self._lock:
            yield

    def _read(self) -> AgentSettings:
        document = self._load()
        if document is None:
            settings = AgentSettings()
            self._write(settings)
            logger.info("settings_created defaults=true")
            return settings
        try:
            return AgentSettings.model_validate(document)
        except PydanticValidationError as exc:
            raise StorageError("Stored settings document is invalid", _field_errors(exc)) from exc

    def _write(self, settings: AgentSettings) -> None:
        settings.updated_at = utcnow()
        self._save(settings.model_dump(mode="json"))

    def get_or_create(self, *, include_secret: bool = False) -> AgentSettings:
        with self._transaction():
            return self._read().redacted(include_secret=include_secret)

    def update(self, partial: Mapping[str, Any]) -> AgentSettings:
        """Merge a partial update. Vendor lists replace the stored list wholesale."""
        patch = parse_settings_update(partial)
        with self._transaction():
            settings = self._read()
            try:
                if patch.search_config is not None:
                    merged = settings.search_config.model_dump()
                    merged.update(patch.search_config.model_dump(exclude_none=True))
                    settings.search_config = SearchConfig.model_validate(merged)
                if patch.pricing_rules is not None:
                    merged = settings.pricing_rules.model_dump()
                    merged.update(patch.pricing_rules.model_dump(exclude_none=True))
                    settings.pricing_rules = PricingRules.model_validate(merged)
            except PydanticValidationError as exc:
                raise ValidationError("Validation failed", _field_errors(exc)) from exc
            if patch.search_vendors is not None:
                settings.search_vendors = [vendor for vendor in patch.search_vendors if vendor is not None]
            if patch.reset_api_key:
                settings.search_config.api_key = None
            elif patch.api_key:
                settings.search_config.api_key = patch.api_key
            self._write(settings)
            logger.info(
                "settings_updated vendors=%s has_secret=%s",
                len(settings.search_vendors),
                bool(settings.search_config.api_key),
            )
            return settings.redacted()

    def reveal_secret(self) -> Optional[str]:
        with self._transaction():
            return self._read().search_config.api_key

    def clear_secret(self) -> AgentSettings:
        with self._transaction():
            settings = self._read()
            settings.search_config.api_key = None
            self._write(settings)
            return settings.redacted()

    def try_begin_run(self, summary: RunSummary) -> bool:
        """Compare-and-swap ``status`` to running and prepend the run to history."""
        with self._transaction():
            settings = self._read()
            if settings.status == "running":
                return False
            settings.status = "running"
            settings.last_run_at = None
            settings.last_run_summary = summary.model_copy(deep=True)
            settings.run_history = [summary.model_copy(deep=True), *settings.run_history][:MAX_RUN_HISTORY]
            self._write(settings)
            return True

    def finish_run(self, summary: RunSummary, status: AgentStatus) -> AgentSettings:
        """Record a terminal run: status, last-run fields and its history entry."""
        with self._transaction():
            settings = self._read()
            settings.status = status
            settings.last_run_at = summary.finished_at or utcnow()
            settings.last_run_summary = summary.model_copy(deep=True)
            settings.run_history = [
                summary.model_copy(deep=True) if entry.run_id == summary.run_id else entry
                for entry in settings.run_history
            ]
            self._write(settings)
            return settings.redacted()

    def replace_history_entry(self, summary: RunSummary) -> bool:
        with self._transaction():
            settings = self._read()
            replaced = False
            history: List[RunSummary] = []
            for entry in settings.run_history:
                if entry.run_id == summary.run_id:
                    history.append(summary.model_copy(deep=True))
                    replaced = True
                else:
                    history.append(entry)
            if not replaced:
                return False
            settings.run_history = history
            if settings.last_run_summary and settings.last_run_summary.run_id == summary.run_id:
                settings.last_run_summary = summary.model_copy(deep=True)
            self._write(settings)
            return True

    def set_status(self, status: AgentStatus) -> None:
        with self._transaction():
            settings = self._read()
            if settings.status == status:
                return
            settings.status = status
            self._write(settings)

    def remove_history(self, run_id: str) -> bool:
        with self._transaction():
            settings = self._read()
            kept = [entry for entry in settings.run_history if entry.run_id != run_id]
            if len(kept) == len(settings.run_history):
                return False
            settings.run_history = kept
            self._write(settings)
            return True


class InMemorySettingsStore(BaseSettingsStore):
    """Process-local settings store (tests, ephemeral runs)."""

    def __init__(self, initial: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__()
        self._document: Optional[Dict[str, Any]] = json.loads(json.dumps(dict(initial), default=str)) if initial else None

    def _load(self) -> Optional[Dict[str, Any]]:
        if self._document is None:
            return None
        return json.loads(json.dumps(self._document))

    def _save(self, document: Dict[str, Any]) -> None:
        self._document = json.loads(json.dumps(document))


class DiskSettingsStore(BaseSettingsStore):
    """
    JSON file settings store.

    Writes go through a temp file and ``os.replace``; an ``flock`` on a
    sidecar lock file makes the compare-and-swap hold across processes on
    the same host.
    """

    def __init__(self, data_dir: str = "./data/pricing", filename: str = "agent_settings.json") -> None:
        super().__init__()
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.path = self.data_dir / filename
        self._lock_path = self.data_dir / f".{filename}.lock"

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        with self._lock:
            with open(self._lock_path, "a+") as handle:
                fcntl.flock(handle, fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    fcntl.flock(handle, fcntl.LOCK_UN)

    def _load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read settings file {self.path}: {e}") from e

    def _save(self, document: Dict[str, Any]) -> None:
        write_json_atomic(self.path, document)


def write_json_atomic(path: Path, document: Any) -> None:
    """Write JSON next to ``path`` and rename it into place."""
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(document, f, ensure_ascii=False, default=str)
        os.replace(tmp_name, path)
    except OSError as e:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise StorageError(f"Failed to write {path}: {e}") from e
