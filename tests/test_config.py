from __future__ import annotations

import pytest

from config import Settings
from storage import DiskRunReportStore, InMemorySettingsStore, JsonFileCatalog, get_catalog, get_report_store, get_settings_store
from utils.exceptions import ConfigurationError


def test_settings_read_prefixed_environment(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    monkeypatch.setenv("SEARCH_CALL_TIMEOUT", "3.5")
    monkeypatch.setenv("AGENT_JOB_GRACE_SECONDS", "0")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")

    settings = Settings.load_from_env_file(tmp_path / "missing.env")

    assert settings.storage.backend == "memory"
    assert settings.search.call_timeout == 3.5
    assert settings.search.max_results_per_domain == 5
    assert settings.agent.job_grace_seconds == 0
    assert settings.agent.recover_on_startup is True
    assert settings.log.level == "DEBUG"


def test_env_file_is_loaded(monkeypatch, tmp_path) -> None:
    # register the variable so teardown removes what load_dotenv sets
    monkeypatch.setenv("SEARCH_API_URL", "unset")
    monkeypatch.delenv("SEARCH_API_URL")
    env_file = tmp_path / ".env"
    env_file.write_text("SEARCH_API_URL=https://searx.internal/search\n", encoding="utf-8")

    settings = Settings.load_from_env_file(env_file)
    assert settings.search.api_url == "https://searx.internal/search"


def test_store_factories(tmp_path) -> None:
    assert isinstance(get_settings_store("memory"), InMemorySettingsStore)
    assert isinstance(get_report_store("disk", data_dir=str(tmp_path)), DiskRunReportStore)
    catalog_path = tmp_path / "catalog.json"
    catalog_path.write_text("[]", encoding="utf-8")
    assert isinstance(get_catalog(str(catalog_path)), JsonFileCatalog)


def test_unknown_backend_is_a_configuration_error(tmp_path) -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        get_settings_store("sqlite", data_dir=str(tmp_path))
    assert exc_info.value.details == {"backend": "sqlite"}
    with pytest.raises(ConfigurationError):
        get_report_store("s3", data_dir=str(tmp_path))
