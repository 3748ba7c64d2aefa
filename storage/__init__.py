"""
Storage Module
Settings store, run report store and catalog repository.
"""
from typing import Optional

from utils.exceptions import ConfigurationError

from .settings_store import (
    BaseSettingsStore,
    DiskSettingsStore,
    InMemorySettingsStore,
    parse_settings_update,
)
from .report_store import (
    BaseRunReportStore,
    DiskRunReportStore,
    InMemoryRunReportStore,
)
from .catalog import BaseCatalog, InMemoryCatalog, JsonFileCatalog


def get_settings_store(provider: Optional[str] = None, data_dir: Optional[str] = None) -> BaseSettingsStore:
    """Build the settings store configured by ``STORAGE_*``."""
    from config import get_storage_settings

    storage = get_storage_settings()
    provider = provider or storage.backend
    if provider == "memory":
        return InMemorySettingsStore()
    if provider == "disk":
        return DiskSettingsStore(data_dir=data_dir or storage.data_dir)
    raise ConfigurationError(f"Unknown storage backend: {provider}", {"backend": provider})


def get_report_store(provider: Optional[str] = None, data_dir: Optional[str] = None) -> BaseRunReportStore:
    from config import get_storage_settings

    storage = get_storage_settings()
    provider = provider or storage.backend
    if provider == "memory":
        return InMemoryRunReportStore()
    if provider == "disk":
        return DiskRunReportStore(data_dir=data_dir or storage.data_dir)
    raise ConfigurationError(f"Unknown storage backend: {provider}", {"backend": provider})


def get_catalog(path: Optional[str] = None) -> BaseCatalog:
    from config import get_storage_settings

    catalog_path = path or get_storage_settings().catalog_path
    if catalog_path:
        return JsonFileCatalog(catalog_path)
    return InMemoryCatalog()


__all__ = [
    "BaseSettingsStore",
    "DiskSettingsStore",
    "InMemorySettingsStore",
    "parse_settings_update",
    "BaseRunReportStore",
    "DiskRunReportStore",
    "InMemoryRunReportStore",
    "BaseCatalog",
    "InMemoryCatalog",
    "JsonFileCatalog",
    "get_settings_store",
    "get_report_store",
    "get_catalog",
]
