"""Canonical data contracts for settings, run reports and availability lookups."""

from __future__ import annotations

from datetime import datetime, timezone
import math
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


MAX_RUN_HISTORY = 20
MAX_REPORT_SAMPLE_URLS = 3
MAX_SAMPLE_URLS = 5

DEFAULT_SYSTEM_PROMPT = (
    "You are an electronics sourcing analyst who determines product availability across reputable vendors."
)

RunState = Literal["running", "completed", "failed"]
AgentStatus = Literal["idle", "running", "error"]
RoundingMode = Literal["none", "nearest_0.99"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Vendor(BaseModel):
    """Marketplace vendor searched for availability."""

    name: str
    url: str = ""
    enabled: bool = True

    @field_validator("name", mode="before")
    @classmethod
    def _non_empty_name(cls, value: Any) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("vendor name is required")
        return text

    @field_validator("url", mode="before")
    @classmethod
    def _url_text(cls, value: Any) -> str:
        return str(value or "").strip()

    @field_validator("enabled", mode="before")
    @classmethod
    def _enabled_default(cls, value: Any) -> Any:
        return True if value is None else value


class SearchConfig(BaseModel):
    """Model and prompt configuration for the tool-assisted search."""

    model: str = "gpt-4o-mini"
    temperature: float = Field(default=0.2, ge=0, le=1)
    top_p: float = Field(default=1.0, ge=0, le=1)
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    guardrails: str = ""
    api_key: Optional[str] = None
    has_secret: bool = False


class PricingRules(BaseModel):
    """Markup, clamping and rounding policy."""

    markup_unavailable: float = Field(default=0.25, ge=0, le=3)
    scale_by_scarcity: bool = True
    rounding: RoundingMode = "nearest_0.99"
    min_price: float = Field(default=0.0, ge=0)
    max_price: float = Field(default=0.0, ge=0)


class RunTotals(BaseModel):
    """Run counters. `doubled` counts unavailable items, `normalized` available ones."""

    products: int = 0
    doubled: int = 0
    normalized: int = 0
    updated: int = 0


class RunSummary(BaseModel):
    """Lightweight run entry kept in the settings run history."""

    run_id: str
    status: RunState = "running"
    started_at: datetime
    finished_at: Optional[datetime] = None
    dry_run: bool = False
    totals: RunTotals = Field(default_factory=RunTotals)
    error: Optional[str] = None
    initiated_by: Optional[str] = None


class AgentSettings(BaseModel):
    """Singleton settings document of the pricing agent."""

    search_vendors: List[Vendor] = Field(default_factory=list)
    search_config: SearchConfig = Field(default_factory=SearchConfig)
    pricing_rules: PricingRules = Field(default_factory=PricingRules)
    status: AgentStatus = "idle"
    last_run_at: Optional[datetime] = None
    last_run_summary: Optional[RunSummary] = None
    run_history: List[RunSummary] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def redacted(self, *, include_secret: bool = False) -> "AgentSettings":
        """Copy for readers: secret replaced by `has_secret` unless requested."""
        copy = self.model_copy(deep=True)
        copy.search_config.has_secret = bool(self.search_config.api_key)
        if not include_secret:
            copy.search_config.api_key = None
        copy.run_history = copy.run_history[:MAX_RUN_HISTORY]
        return copy


class ReportItem(BaseModel):
    """Per-product pricing decision recorded in a run report."""

    product_id: str
    product_numeric_id: Optional[int] = None
    name: str = ""
    base_price: float = 0.0
    old_price: float = 0.0
    new_price: float = 0.0
    availability_hits: int = 0
    availability_status: Literal["available", "unavailable"] = "unavailable"
    price_action: Literal["changed", "unchanged"] = "unchanged"
    sample_urls: List[str] = Field(default_factory=list)

    @field_validator("sample_urls")
    @classmethod
    def _cap_samples(cls, value: List[str]) -> List[str]:
        return list(value or [])[:MAX_REPORT_SAMPLE_URLS]


class VendorRef(BaseModel):
    name: str = ""
    url: str = ""


class RunReport(BaseModel):
    """Full audit trail of one pricing run."""

    run_id: str
    status: RunState = "running"
    started_at: datetime
    finished_at: Optional[datetime] = None
    dry_run: bool = False
    pricing_rules: PricingRules = Field(default_factory=PricingRules)
    vendors_used: List[VendorRef] = Field(default_factory=list)
    totals: RunTotals = Field(default_factory=RunTotals)
    items: List[ReportItem] = Field(default_factory=list)
    error: Optional[str] = None
    owner: Optional[str] = None  # "<host>:<pid>" of the executing process
    heartbeat_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def summary(self, *, initiated_by: Optional[str] = None) -> RunSummary:
        return RunSummary(
            run_id=self.run_id,
            status=self.status,
            started_at=self.started_at,
            finished_at=self.finished_at,
            dry_run=self.dry_run,
            totals=self.totals.model_copy(),
            error=self.error,
            initiated_by=initiated_by,
        )


class CatalogItem(BaseModel):
    """Catalog record fields read and written by the pricing pipeline."""

    model_config = ConfigDict(extra="allow")

    id: str
    numeric_id: Optional[int] = None
    product_id: Optional[Union[int, str]] = None
    name: str = ""
    category_name: str = ""
    price: float = 0.0
    base_price: Optional[float] = None
    availability_hits: Optional[int] = None
    availability_last_checked: Optional[datetime] = None
    availability_sample_urls: List[str] = Field(default_factory=list)
    price_source: str = "manual"
    updated_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_text(cls, value: Any) -> str:
        text = str(value if value is not None else "").strip()
        if not text:
            raise ValueError("id is required")
        return text

    @property
    def effective_base_price(self) -> float:
        """`base_price` when it is a real number, else the current price."""
        if isinstance(self.base_price, (int, float)) and not math.isnan(self.base_price):
            return float(self.base_price)
        if isinstance(self.price, (int, float)) and not math.isnan(self.price):
            return float(self.price)
        return 0.0


class CatalogUpdate(BaseModel):
    """One keyed write of the final bulk catalog update."""

    item_id: str
    fields: Dict[str, Any] = Field(default_factory=dict)


class BulkUpdateResult(BaseModel):
    matched: int = 0
    modified: int = 0
    errors: Dict[str, str] = Field(default_factory=dict)


class SearchHit(BaseModel):
    """One search result (title/url/snippet) from a fallback strategy."""

    title: str = ""
    url: str = ""
    snippet: str = ""


class VendorHit(BaseModel):
    name: str
    url: str = ""
    hit: bool = False


class AvailabilityResult(BaseModel):
    """Outcome of resolving one catalog item against all vendors."""

    hits: int = 0
    vendors: List[VendorHit] = Field(default_factory=list)
    sample_urls: List[str] = Field(default_factory=list)
    strategy_used: str = "none"

    @field_validator("sample_urls")
    @classmethod
    def _cap_samples(cls, value: List[str]) -> List[str]:
        return list(value or [])[:MAX_SAMPLE_URLS]


class JobSnapshot(BaseModel):
    """Live view of the in-memory job handle."""

    run_id: str
    status: RunState
    started_at: datetime
    finished_at: Optional[datetime] = None
    dry_run: bool = False
    stage: str = "initializing"
    message: str = ""
    processed: int = 0
    total: int = 0
    cancel_requested: bool = False
    totals: RunTotals = Field(default_factory=RunTotals)
    error: Optional[str] = None


class RunStatusView(BaseModel):
    status: AgentStatus
    current_job: Optional[JobSnapshot] = None
    last_run: Optional[RunSummary] = None
    last_run_at: Optional[datetime] = None


class RunStartResult(BaseModel):
    run_id: str
    started_at: datetime
    dry_run: bool = False


class PreviewProduct(BaseModel):
    id: str
    name: str = ""
    base_price: float = 0.0
    current_price: float = 0.0


class PreviewResult(BaseModel):
    """Single-item evaluation without touching the catalog or reports."""

    product: PreviewProduct
    availability: AvailabilityResult
    computed_price: float
    rules: PricingRules
