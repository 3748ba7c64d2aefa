"""Core contracts and shared types for the pricing agent."""

from .contracts import (
    DEFAULT_SYSTEM_PROMPT,
    MAX_REPORT_SAMPLE_URLS,
    MAX_RUN_HISTORY,
    MAX_SAMPLE_URLS,
    AgentSettings,
    AvailabilityResult,
    BulkUpdateResult,
    CatalogItem,
    CatalogUpdate,
    JobSnapshot,
    PreviewProduct,
    PreviewResult,
    PricingRules,
    ReportItem,
    RunReport,
    RunStartResult,
    RunStatusView,
    RunSummary,
    RunTotals,
    SearchConfig,
    SearchHit,
    Vendor,
    VendorHit,
    VendorRef,
    utcnow,
)

__all__ = [
    "DEFAULT_SYSTEM_PROMPT",
    "MAX_REPORT_SAMPLE_URLS",
    "MAX_RUN_HISTORY",
    "MAX_SAMPLE_URLS",
    "AgentSettings",
    "AvailabilityResult",
    "BulkUpdateResult",
    "CatalogItem",
    "CatalogUpdate",
    "JobSnapshot",
    "PreviewProduct",
    "PreviewResult",
    "PricingRules",
    "ReportItem",
    "RunReport",
    "RunStartResult",
    "RunStatusView",
    "RunSummary",
    "RunTotals",
    "SearchConfig",
    "SearchHit",
    "Vendor",
    "VendorHit",
    "VendorRef",
    "utcnow",
]
