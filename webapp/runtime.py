"""Shared runtime singletons for the web and CLI entrypoints."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Optional

from availability import build_default_resolver
from config import get_agent_settings
from orchestrator import PricingRunOrchestrator
from storage import get_catalog, get_report_store, get_settings_store


logger = logging.getLogger(__name__)

_LOCK = Lock()
_ORCHESTRATOR: Optional[PricingRunOrchestrator] = None


def build_orchestrator() -> PricingRunOrchestrator:
    agent = get_agent_settings()
    orchestrator = PricingRunOrchestrator(
        settings_store=get_settings_store(),
        report_store=get_report_store(),
        catalog=get_catalog(),
        resolver=build_default_resolver(),
        job_grace_seconds=agent.job_grace_seconds,
        run_lease_seconds=agent.run_lease_seconds,
    )
    if agent.recover_on_startup:
        orchestrator.recover_orphaned_runs()
    return orchestrator


def get_orchestrator() -> PricingRunOrchestrator:
    global _ORCHESTRATOR
    with _LOCK:
        if _ORCHESTRATOR is None:
            _ORCHESTRATOR = build_orchestrator()
            logger.info("orchestrator_ready")
        return _ORCHESTRATOR
