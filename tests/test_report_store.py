from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from core import ReportItem, RunReport, RunTotals
from storage import DiskRunReportStore, InMemoryRunReportStore
from utils.exceptions import StorageError


def _report(run_id: str, minutes: int = 0) -> RunReport:
    return RunReport(run_id=run_id, started_at=datetime(2026, 3, 1, tzinfo=timezone.utc) + timedelta(minutes=minutes))


def _item(index: int) -> ReportItem:
    return ReportItem(
        product_id=f"p{index}",
        name=f"Board {index}",
        base_price=10,
        old_price=10,
        new_price=12.49,
        availability_hits=0,
        availability_status="unavailable",
        price_action="changed",
        sample_urls=["https://a", "https://b", "https://c", "https://d"],
    )


@pytest.fixture(params=["memory", "disk"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryRunReportStore()
    return DiskRunReportStore(data_dir=str(tmp_path))


def test_create_append_finalize_roundtrip(store) -> None:
    store.create(_report("run_1"))
    assert store.append_items("run_1", [_item(1), _item(2)]) is True
    assert store.append_items("run_1", [_item(3)]) is True

    finished = datetime(2026, 3, 1, 0, 10, tzinfo=timezone.utc)
    final = store.finalize(
        "run_1",
        {"status": "completed", "finished_at": finished, "totals": RunTotals(products=3, doubled=3, updated=3), "items": []},
    )

    assert final.status == "completed"
    loaded = store.find("run_1")
    assert [i.product_id for i in loaded.items] == ["p1", "p2", "p3"]
    assert loaded.items[0].sample_urls == ["https://a", "https://b", "https://c"]
    assert loaded.totals.doubled == 3
    assert loaded.finished_at == finished


def test_create_rejects_duplicate_run_id(store) -> None:
    store.create(_report("run_dup"))
    with pytest.raises(StorageError):
        store.create(_report("run_dup"))


def test_unknown_run_is_not_found(store) -> None:
    assert store.find("missing") is None
    assert store.append_items("missing", [_item(1)]) is False
    assert store.finalize("missing", {"status": "failed"}) is None
    assert store.delete("missing") is False


def test_finalize_upsert_creates_failed_report(store) -> None:
    report = store.finalize("run_lost", {"status": "failed", "error": "boom"}, upsert=True)
    assert report.status == "failed"
    assert store.find("run_lost").error == "boom"


def test_find_latest_and_list_running(store) -> None:
    store.create(_report("run_old", minutes=0))
    store.create(_report("run_new", minutes=5))
    store.finalize("run_old", {"status": "completed"})

    assert store.find_latest().run_id == "run_new"
    assert [r.run_id for r in store.list_running()] == ["run_new"]


def test_delete_removes_report(store) -> None:
    store.create(_report("run_del"))
    assert store.delete("run_del") is True
    assert store.find("run_del") is None
    assert store.find_latest() is None


def test_disk_store_reloads_index(tmp_path) -> None:
    first = DiskRunReportStore(data_dir=str(tmp_path))
    first.create(_report("run_a", minutes=1))
    first.create(_report("run_b", minutes=2))

    second = DiskRunReportStore(data_dir=str(tmp_path))
    assert second.find_latest().run_id == "run_b"
    assert second.find("../etc/passwd") is None


def test_heartbeat_only_touches_running_reports(store) -> None:
    store.create(_report("run_live"))
    assert store.find("run_live").heartbeat_at is None
    assert store.heartbeat("run_live") is True
    assert store.find("run_live").heartbeat_at is not None

    store.finalize("run_live", {"status": "completed"})
    assert store.heartbeat("run_live") is False
    assert store.heartbeat("missing") is False


def test_disk_stores_sharing_a_directory_keep_each_others_runs(tmp_path) -> None:
    first = DiskRunReportStore(data_dir=str(tmp_path))
    second = DiskRunReportStore(data_dir=str(tmp_path))

    first.create(_report("run_a", minutes=1))
    second.create(_report("run_b", minutes=2))
    first.finalize("run_a", {"status": "completed"})

    assert [r.run_id for r in second.list_running()] == ["run_b"]
    assert first.find_latest().run_id == "run_b"
