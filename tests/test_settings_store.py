from __future__ import annotations

from datetime import datetime, timedelta, timezone
import json

import pytest

from core import RunSummary
from storage import DiskSettingsStore, InMemorySettingsStore
from utils.exceptions import StorageError, ValidationError


def _summary(run_id: str, offset: int = 0, status: str = "running") -> RunSummary:
    started = datetime(2026, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=offset)
    return RunSummary(run_id=run_id, status=status, started_at=started)


def test_get_or_create_returns_defaults() -> None:
    settings = InMemorySettingsStore().get_or_create()
    assert settings.status == "idle"
    assert settings.search_vendors == []
    assert settings.search_config.model == "gpt-4o-mini"
    assert settings.search_config.temperature == 0.2
    assert settings.search_config.top_p == 1.0
    assert settings.search_config.system_prompt.startswith("You are an electronics sourcing analyst")
    assert settings.pricing_rules.markup_unavailable == 0.25
    assert settings.pricing_rules.rounding == "nearest_0.99"
    assert settings.search_config.has_secret is False


def test_update_merges_fields_and_replaces_vendor_list() -> None:
    store = InMemorySettingsStore()
    store.update({"search_vendors": [{"name": "Old", "url": "old.com"}]})

    settings = store.update(
        {
            "search_config": {"temperature": 0.5, "guardrails": "Only use listed vendors"},
            "pricing_rules": {"max_price": 500},
            "search_vendors": [
                {"name": "DigiKey", "url": "https://digikey.com"},
                None,
                {"name": "Mouser", "enabled": None},
            ],
        }
    )

    assert settings.search_config.temperature == 0.5
    assert settings.search_config.top_p == 1.0
    assert settings.search_config.guardrails == "Only use listed vendors"
    assert settings.pricing_rules.max_price == 500
    assert settings.pricing_rules.markup_unavailable == 0.25
    assert [(v.name, v.url, v.enabled) for v in settings.search_vendors] == [
        ("DigiKey", "https://digikey.com", True),
        ("Mouser", "", True),
    ]


@pytest.mark.parametrize(
    "partial,field",
    [
        ({"pricing_rules": {"markup_unavailable": 3.5}}, "pricing_rules.markup_unavailable"),
        ({"pricing_rules": {"min_price": -1}}, "pricing_rules.min_price"),
        ({"pricing_rules": {"rounding": "nearest_0.49"}}, "pricing_rules.rounding"),
        ({"search_config": {"temperature": 1.5}}, "search_config.temperature"),
        ({"search_config": {"top_p": -0.1}}, "search_config.top_p"),
        ({"search_vendors": [{"name": "", "url": "x.com"}]}, "search_vendors.0.name"),
    ],
)
def test_invalid_update_raises_without_mutation(partial, field) -> None:
    store = InMemorySettingsStore()
    before = store.get_or_create()

    with pytest.raises(ValidationError) as excinfo:
        store.update(partial)

    assert any(key.startswith(field) for key in excinfo.value.errors)
    after = store.get_or_create()
    assert after.pricing_rules == before.pricing_rules
    assert after.search_config == before.search_config
    assert after.search_vendors == before.search_vendors


def test_secret_is_never_returned_by_default_reads() -> None:
    store = InMemorySettingsStore()
    updated = store.update({"api_key": "  sk-secret  "})
    assert updated.search_config.api_key is None
    assert updated.search_config.has_secret is True

    default_read = store.get_or_create()
    assert default_read.search_config.api_key is None
    assert "sk-secret" not in json.dumps(default_read.model_dump(mode="json"))
    assert store.get_or_create(include_secret=True).search_config.api_key == "sk-secret"
    assert store.reveal_secret() == "sk-secret"

    cleared = store.update({"reset_api_key": True})
    assert cleared.search_config.has_secret is False
    assert store.reveal_secret() is None


def test_clear_secret() -> None:
    store = InMemorySettingsStore()
    store.update({"api_key": "sk-1"})
    assert store.clear_secret().search_config.has_secret is False
    assert store.reveal_secret() is None


def test_try_begin_run_is_compare_and_swap() -> None:
    store = InMemorySettingsStore()
    assert store.try_begin_run(_summary("run_a")) is True
    assert store.try_begin_run(_summary("run_b")) is False

    settings = store.get_or_create()
    assert settings.status == "running"
    assert settings.last_run_at is None
    assert [h.run_id for h in settings.run_history] == ["run_a"]


def test_finish_run_replaces_history_entry() -> None:
    store = InMemorySettingsStore()
    store.try_begin_run(_summary("run_a"))
    done = _summary("run_a", status="completed").model_copy(
        update={"finished_at": datetime(2026, 1, 1, 0, 5, tzinfo=timezone.utc)}
    )
    settings = store.finish_run(done, "idle")

    assert settings.status == "idle"
    assert settings.last_run_at == done.finished_at
    assert settings.last_run_summary.status == "completed"
    assert settings.run_history[0].status == "completed"
    assert len(settings.run_history) == 1


def test_history_is_bounded_most_recent_first() -> None:
    store = InMemorySettingsStore()
    for index in range(25):
        run_id = f"run_{index:02d}"
        assert store.try_begin_run(_summary(run_id, offset=index))
        store.finish_run(_summary(run_id, offset=index, status="completed"), "idle")

    history = store.get_or_create().run_history
    assert len(history) == 20
    assert history[0].run_id == "run_24"
    assert history[-1].run_id == "run_05"


def test_remove_history() -> None:
    store = InMemorySettingsStore()
    store.try_begin_run(_summary("run_a"))
    assert store.remove_history("run_a") is True
    assert store.remove_history("run_a") is False
    assert store.get_or_create().run_history == []


def test_disk_store_persists_across_instances(tmp_path) -> None:
    store = DiskSettingsStore(data_dir=str(tmp_path))
    store.update({"api_key": "sk-disk", "search_vendors": [{"name": "LCSC", "url": "lcsc.com"}]})
    store.try_begin_run(_summary("run_disk"))

    reopened = DiskSettingsStore(data_dir=str(tmp_path))
    settings = reopened.get_or_create()
    assert settings.status == "running"
    assert settings.search_vendors[0].name == "LCSC"
    assert settings.search_config.has_secret is True
    assert reopened.reveal_secret() == "sk-disk"
    assert not list(tmp_path.glob("*.tmp"))


def test_disk_store_rejects_corrupt_file(tmp_path) -> None:
    (tmp_path / "agent_settings.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(StorageError):
        DiskSettingsStore(data_dir=str(tmp_path)).get_or_create()
