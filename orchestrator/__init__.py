"""Pricing run orchestration."""

from .job import JobHandle
from .service import CANCELED_MESSAGE, REPORT_FLUSH_SIZE, PricingRunOrchestrator

__all__ = [
    "CANCELED_MESSAGE",
    "JobHandle",
    "PricingRunOrchestrator",
    "REPORT_FLUSH_SIZE",
]
