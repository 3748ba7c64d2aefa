"""Orchestrator service for availability-driven pricing runs."""

from __future__ import annotations

import asyncio
from datetime import datetime
import logging
from threading import Event, Lock, Thread, Timer
from typing import List, Optional, Set
from uuid import uuid4

from availability import AvailabilityResolver, normalize_vendors
from core import (
    AgentSettings,
    CatalogItem,
    CatalogUpdate,
    PreviewProduct,
    PreviewResult,
    ReportItem,
    RunReport,
    RunStartResult,
    RunStatusView,
    RunSummary,
    RunTotals,
    VendorRef,
    utcnow,
)
from pricing import compute_price
from storage import BaseCatalog, BaseRunReportStore, BaseSettingsStore
from utils.exceptions import ConflictError, PricingAgentError, RunCancelledError, RunFatalError, StorageError

from .job import JobHandle, owner_process_gone, process_owner


logger = logging.getLogger(__name__)

REPORT_FLUSH_SIZE = 200
CANCELED_MESSAGE = "run canceled"
INTERRUPTED_MESSAGE = "run interrupted before completion"


def _new_run_id() -> str:
    return f"run_{utcnow().strftime('%Y%m%d_%H%M%S')}_{uuid4().hex[:8]}"


def _error_message(exc: BaseException) -> str:
    if isinstance(exc, PricingAgentError):
        return exc.message
    return str(exc) or exc.__class__.__name__


class PricingRunOrchestrator:
    """
    Single-flight pricing run lifecycle.

    ``start`` validates and persists the run synchronously, then hands the
    batch loop to a background thread running its own event loop. The run
    report is the source of truth; the job handle only carries live progress
    and is dropped ``job_grace_seconds`` after the run ends. While a run
    executes, its report carries the owning process and a heartbeat renewed
    every quarter of ``run_lease_seconds``; recovery leaves such runs alone.
    """

    def __init__(
        self,
        *,
        settings_store: BaseSettingsStore,
        report_store: BaseRunReportStore,
        catalog: BaseCatalog,
        resolver: AvailabilityResolver,
        job_grace_seconds: float = 5.0,
        run_lease_seconds: float = 120.0,
    ) -> None:
        self._settings = settings_store
        self._reports = report_store
        self._catalog = catalog
        self._resolver = resolver
        self.job_grace_seconds = max(0.0, float(job_grace_seconds))
        self.run_lease_seconds = max(1.0, float(run_lease_seconds))
        self._lock = Lock()
        self._job: Optional[JobHandle] = None
        self._worker: Optional[Thread] = None

    @property
    def settings_store(self) -> BaseSettingsStore:
        return self._settings

    @property
    def catalog(self) -> BaseCatalog:
        return self._catalog

    # ------------------------------------------------------------------
    # run lifecycle
    # ------------------------------------------------------------------

    def start(self, *, dry_run: bool = False, initiated_by: Optional[str] = None) -> RunStartResult:
        with self._lock:
            if self._job is not None and self._job.is_running:
                raise ConflictError("AI pricing run already in progress", run_id=self._job.run_id)

            settings = self._settings.get_or_create()
            run_id = _new_run_id()
            started_at = utcnow()
            summary = RunSummary(
                run_id=run_id,
                status="running",
                started_at=started_at,
                dry_run=bool(dry_run),
                initiated_by=initiated_by,
            )
            if not self._settings.try_begin_run(summary):
                raise ConflictError("AI pricing run already in progress")

            report = RunReport(
                run_id=run_id,
                status="running",
                started_at=started_at,
                dry_run=bool(dry_run),
                pricing_rules=settings.pricing_rules,
                vendors_used=[VendorRef(name=v.name, url=v.url) for v in normalize_vendors(settings.search_vendors)],
                owner=process_owner(),
                heartbeat_at=started_at,
            )
            try:
                self._reports.create(report)
            except Exception as exc:
                failed = summary.model_copy(
                    update={"status": "failed", "finished_at": utcnow(), "error": _error_message(exc)}
                )
                self._settings.finish_run(failed, "error")
                raise

            job = JobHandle(run_id=run_id, started_at=started_at, dry_run=bool(dry_run), initiated_by=initiated_by)
            worker = Thread(target=self._run_job, args=(job,), name=f"pricing-run-{run_id}", daemon=True)
            job.thread = worker
            self._job = job
            self._worker = worker
            worker.start()

        logger.info("run_start run_id=%s dry_run=%s initiated_by=%s", run_id, bool(dry_run), initiated_by or "-")
        return RunStartResult(run_id=run_id, started_at=started_at, dry_run=bool(dry_run))

    def _run_job(self, job: JobHandle) -> None:
        stop = Event()
        beat = Thread(target=self._heartbeat, args=(job.run_id, stop), name=f"pricing-lease-{job.run_id}", daemon=True)
        beat.start()
        try:
            asyncio.run(self._execute(job))
        except Exception:
            logger.exception("run_worker_crashed run_id=%s", job.run_id)
            job.update(status="failed", stage="error", finished_at=utcnow())
        finally:
            stop.set()
            beat.join()
            self._schedule_cleanup(job)

    def _heartbeat(self, run_id: str, stop: Event) -> None:
        while not stop.wait(self.run_lease_seconds / 4):
            try:
                if not self._reports.heartbeat(run_id):
                    return
            except StorageError:
                logger.warning("run_heartbeat_failed run_id=%s", run_id, exc_info=True)

    async def _execute(self, job: JobHandle) -> None:
        run_id = job.run_id
        totals = RunTotals()
        buffer: List[ReportItem] = []
        try:
            job.update(stage="collecting_products", message="Loading products")
            settings = self._settings.get_or_create(include_secret=True)
            items = self._catalog.list_all()
            allowed_count = len(normalize_vendors(settings.search_vendors))
            checked_at = utcnow()
            totals.products = len(items)
            job.update(
                total=len(items),
                totals=totals.model_copy(),
                stage="evaluating_availability",
                message="Checking product availability",
            )

            unavailable_count = 0
            available_count = 0
            updates: List[CatalogUpdate] = []
            for index, item in enumerate(items, 1):
                if job.cancel_requested:
                    raise RunCancelledError(CANCELED_MESSAGE, run_id=run_id)

                report_item, update = await self._evaluate_item(item, settings, allowed_count, checked_at)
                if report_item.availability_status == "unavailable":
                    unavailable_count += 1
                else:
                    available_count += 1
                if report_item.price_action == "changed":
                    totals.updated += 1
                totals.doubled = unavailable_count
                totals.normalized = available_count

                buffer.append(report_item)
                if len(buffer) >= REPORT_FLUSH_SIZE:
                    self._flush(run_id, buffer)
                    buffer = []
                if not job.dry_run:
                    updates.append(update)
                job.update(processed=index, totals=totals.model_copy())

            self._flush(run_id, buffer)
            buffer = []

            if updates:
                job.update(stage="updating_database", message="Applying price updates")
                result = self._catalog.bulk_update(updates)
                if result.errors:
                    logger.warning(
                        "catalog_update_partial run_id=%s matched=%s modified=%s errors=%s",
                        run_id,
                        result.matched,
                        result.modified,
                        len(result.errors),
                    )
                else:
                    logger.info("catalog_updated run_id=%s modified=%s", run_id, result.modified)

            finished_at = utcnow()
            job.update(stage="finalizing", message="Recording run summary")
            report = self._reports.finalize(
                run_id,
                {"status": "completed", "finished_at": finished_at, "totals": totals},
                upsert=True,
            )
            self._settings.finish_run(report.summary(initiated_by=job.initiated_by), "idle")
            job.update(status="completed", finished_at=finished_at, totals=totals.model_copy())
            logger.info(
                "run_completed run_id=%s products=%s unavailable=%s available=%s updated=%s dry_run=%s",
                run_id,
                totals.products,
                totals.doubled,
                totals.normalized,
                totals.updated,
                job.dry_run,
            )
        except Exception as exc:
            self._record_failure(job, exc, totals, buffer)

    async def _evaluate_item(
        self,
        item: CatalogItem,
        settings: AgentSettings,
        allowed_count: int,
        checked_at,
    ):
        availability = await self._resolver.resolve(item, settings)
        base = item.effective_base_price
        new_price = compute_price(base, availability.hits, allowed_count, settings.pricing_rules)
        old_price = float(item.price or 0)
        report_item = ReportItem(
            product_id=item.id,
            product_numeric_id=item.numeric_id,
            name=item.name,
            base_price=base,
            old_price=old_price,
            new_price=new_price,
            availability_hits=availability.hits,
            availability_status="available" if availability.hits > 0 else "unavailable",
            price_action="changed" if old_price != new_price else "unchanged",
            sample_urls=availability.sample_urls,
        )
        update = CatalogUpdate(
            item_id=item.id,
            fields={
                "price": new_price,
                "base_price": base,
                "availability_hits": availability.hits,
                "availability_last_checked": checked_at,
                "availability_sample_urls": list(availability.sample_urls),
                "price_source": "computed",
                "updated_at": checked_at,
            },
        )
        return report_item, update

    def _flush(self, run_id: str, buffer: List[ReportItem]) -> None:
        if not buffer:
            return
        if not self._reports.append_items(run_id, buffer):
            raise RunFatalError(f"Run report {run_id} is missing", run_id=run_id)
        logger.debug("report_flush run_id=%s items=%s", run_id, len(buffer))

    def _record_failure(self, job: JobHandle, exc: Exception, totals: RunTotals, pending: List[ReportItem]) -> None:
        run_id = job.run_id
        message = _error_message(exc)
        finished_at = utcnow()
        if isinstance(exc, RunCancelledError):
            logger.warning("run_canceled run_id=%s processed=%s", run_id, job.processed)
        else:
            logger.exception("run_failed run_id=%s error=%s", run_id, message)
        job.update(stage="error", message=message, error=message)

        if pending:
            try:
                self._reports.append_items(run_id, pending)
            except Exception:
                logger.exception("report_flush_failed run_id=%s items=%s", run_id, len(pending))

        summary = RunSummary(
            run_id=run_id,
            status="failed",
            started_at=job.started_at,
            finished_at=finished_at,
            dry_run=job.dry_run,
            totals=totals.model_copy(),
            error=message,
            initiated_by=job.initiated_by,
        )
        try:
            self._reports.finalize(
                run_id,
                {
                    "status": "failed",
                    "finished_at": finished_at,
                    "error": message,
                    "totals": totals,
                    "started_at": job.started_at,
                    "dry_run": job.dry_run,
                },
                upsert=True,
            )
        except Exception:
            logger.exception("report_finalize_failed run_id=%s", run_id)
        try:
            self._settings.finish_run(summary, "error")
        except Exception:
            logger.exception("settings_finish_failed run_id=%s", run_id)
        job.update(status="failed", finished_at=finished_at, totals=totals.model_copy())

    def _schedule_cleanup(self, job: JobHandle) -> None:
        if self.job_grace_seconds <= 0:
            self._clear_job(job)
            return
        timer = Timer(self.job_grace_seconds, self._clear_job, args=(job,))
        timer.daemon = True
        timer.start()

    def _clear_job(self, job: JobHandle) -> None:
        with self._lock:
            if self._job is job:
                self._job = None

    def _live_job(self) -> Optional[JobHandle]:
        with self._lock:
            return self._job

    def _running_run_id(self) -> Optional[str]:
        job = self._live_job()
        if job is not None and job.is_running:
            return job.run_id
        return None

    def cancel(self, run_id: Optional[str] = None) -> bool:
        """Request cancellation; the loop stops before the next item."""
        job = self._live_job()
        if job is None or not job.is_running:
            return False
        if run_id and job.run_id != run_id:
            return False
        job.request_cancel()
        job.update(message="Cancellation requested")
        logger.info("run_cancel_requested run_id=%s", job.run_id)
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Join the most recent worker thread. Returns False on timeout."""
        with self._lock:
            worker = self._worker
        if worker is None:
            return True
        worker.join(timeout)
        return not worker.is_alive()

    # ------------------------------------------------------------------
    # read side
    # ------------------------------------------------------------------

    def status(self) -> RunStatusView:
        self._reconcile()
        settings = self._settings.get_or_create()
        job = self._live_job()
        return RunStatusView(
            status=settings.status,
            current_job=job.snapshot() if job is not None else None,
            last_run=settings.last_run_summary,
            last_run_at=settings.last_run_at,
        )

    def history(self) -> List[RunSummary]:
        self._reconcile()
        return self._settings.get_or_create().run_history

    def get_report(self, run_id: str) -> Optional[RunReport]:
        return self._reports.find(str(run_id or ""))

    def get_latest_report(self) -> Optional[RunReport]:
        return self._reports.find_latest()

    def delete_report(self, run_id: str) -> bool:
        """Delete a run's report and its history entry."""
        run_id = str(run_id or "")
        if run_id and run_id == self._running_run_id():
            raise ConflictError("Cannot delete a run that is still in progress", run_id=run_id)
        removed_report = self._reports.delete(run_id)
        removed_history = self._settings.remove_history(run_id)
        logger.info("run_deleted run_id=%s report=%s history=%s", run_id, removed_report, removed_history)
        return removed_report or removed_history

    def _reconcile(self) -> None:
        """Repair history entries left ``running`` once their report is terminal."""
        settings = self._settings.get_or_create()
        live_run_id = self._running_run_id()
        for entry in settings.run_history:
            if entry.status != "running" or entry.run_id == live_run_id:
                continue
            report = self._reports.find(entry.run_id)
            if report is None or report.status == "running":
                continue
            repaired = report.summary(initiated_by=entry.initiated_by)
            if (
                settings.status == "running"
                and settings.last_run_summary is not None
                and settings.last_run_summary.run_id == entry.run_id
            ):
                self._settings.finish_run(repaired, "idle" if report.status == "completed" else "error")
            else:
                self._settings.replace_history_entry(repaired)
            logger.info("history_reconciled run_id=%s status=%s", entry.run_id, report.status)

    def _lease_expired(self, stamp: Optional[datetime], now: datetime) -> bool:
        return stamp is None or (now - stamp).total_seconds() > self.run_lease_seconds

    def _is_orphaned(self, report: RunReport, now: datetime) -> bool:
        """A running report nobody executes: no owner, a dead local owner, or a lapsed heartbeat."""
        if not report.owner or owner_process_gone(report.owner):
            return True
        return self._lease_expired(report.heartbeat_at or report.updated_at, now)

    def recover_orphaned_runs(self) -> List[str]:
        """
        Fail runs left ``running`` by a process that is gone.

        Called once at startup. Reports still marked running are finalized
        as failed unless they belong to the live job or to another process
        that still holds their lease; settings status and history are then
        brought in line. Runs owned elsewhere keep the persisted ``running``
        status so single-flight holds across processes.
        """
        live_run_id = self._running_run_id()
        now = utcnow()
        active: Set[str] = {live_run_id} if live_run_id else set()
        recovered: List[str] = []
        for report in self._reports.list_running():
            if report.run_id in active:
                continue
            if not self._is_orphaned(report, now):
                active.add(report.run_id)
                logger.info("run_still_leased run_id=%s owner=%s", report.run_id, report.owner)
                continue
            self._reports.finalize(
                report.run_id,
                {"status": "failed", "finished_at": now, "error": INTERRUPTED_MESSAGE},
            )
            recovered.append(report.run_id)

        settings = self._settings.get_or_create()
        for entry in settings.run_history:
            if entry.status != "running" or entry.run_id in active:
                continue
            report = self._reports.find(entry.run_id)
            if report is not None:
                if report.status == "running":
                    active.add(entry.run_id)
                    continue
                repaired = report.summary(initiated_by=entry.initiated_by)
            elif self._lease_expired(entry.started_at, now):
                repaired = entry.model_copy(
                    update={"status": "failed", "finished_at": now, "error": INTERRUPTED_MESSAGE}
                )
            else:
                # another process may sit between claiming the run and creating its report
                active.add(entry.run_id)
                continue
            self._settings.replace_history_entry(repaired)
            if entry.run_id not in recovered:
                recovered.append(entry.run_id)

        settings = self._settings.get_or_create()
        last = settings.last_run_summary
        if settings.status == "running" and not (last is not None and last.run_id in active):
            if last is not None and last.status != "running":
                self._settings.finish_run(last, "error" if last.status == "failed" else "idle")
            else:
                self._settings.set_status("error")

        if recovered:
            logger.warning("runs_recovered count=%s run_ids=%s", len(recovered), ",".join(recovered))
        return recovered

    # ------------------------------------------------------------------
    # single-item preview
    # ------------------------------------------------------------------

    async def apreview(self, *, item_id: Optional[str] = None, name: Optional[str] = None) -> Optional[PreviewResult]:
        item = self._catalog.find(item_id) if item_id else None
        if item is None and name:
            item = self._catalog.find_by_name(name)
        if item is None:
            return None

        settings = self._settings.get_or_create(include_secret=True)
        allowed_count = len(normalize_vendors(settings.search_vendors))
        base = item.effective_base_price
        availability = await self._resolver.resolve(item, settings)
        return PreviewResult(
            product=PreviewProduct(id=item.id, name=item.name, base_price=base, current_price=float(item.price or 0)),
            availability=availability,
            computed_price=compute_price(base, availability.hits, allowed_count, settings.pricing_rules),
            rules=settings.pricing_rules,
        )

    def preview(self, *, item_id: Optional[str] = None, name: Optional[str] = None) -> Optional[PreviewResult]:
        """Evaluate one catalog item without touching the catalog or reports."""
        return asyncio.run(self.apreview(item_id=item_id, name=name))
