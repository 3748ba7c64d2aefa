"""
Availability Resolver
Decides, per catalog item, which configured vendors list the product.

The tool-assisted web search answers first when an API key is configured.
Otherwise (or when it fails) each vendor domain is searched through an ordered
chain of site-restricted strategies; the first strategy returning results wins
for that domain.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from core import AgentSettings, AvailabilityResult, CatalogItem, MAX_SAMPLE_URLS, SearchHit, Vendor, VendorHit
from utils.exceptions import ResolverTransientError, SearchUnavailableError

from .domains import basic_match_score, build_query, normalize_vendors, vendor_domain
from .strategies import SearchStrategy
from .web_search import ToolAssistedSearch


logger = logging.getLogger(__name__)

STRATEGY_NONE = "none"
STRATEGY_WEB_SEARCH = "web_search"
STRATEGY_SITE_SEARCH = "site_search"


def _unique(values: Iterable[str]) -> List[str]:
    seen = set()
    ordered: List[str] = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


class AvailabilityResolver:
    def __init__(
        self,
        strategies: Sequence[SearchStrategy],
        web_search: Optional[ToolAssistedSearch] = None,
        *,
        max_results_per_domain: int = 5,
        call_timeout: float = 20.0,
        primary_timeout: Optional[float] = None,
    ):
        self.strategies = list(strategies or [])
        self.web_search = web_search
        self.max_results_per_domain = max(1, int(max_results_per_domain))
        self.call_timeout = call_timeout
        self.primary_timeout = primary_timeout

    async def resolve(self, item: CatalogItem, settings: AgentSettings) -> AvailabilityResult:
        vendors = normalize_vendors(settings.search_vendors)
        domains = _unique(vendor_domain(vendor) for vendor in vendors)

        if not domains:
            return AvailabilityResult(
                hits=0,
                vendors=[VendorHit(name=v.name, url=v.url, hit=False) for v in vendors],
                sample_urls=[],
                strategy_used=STRATEGY_NONE,
            )

        query = build_query(item)

        if settings.search_config.api_key and self.web_search is not None:
            try:
                return await self._resolve_with_web_search(query, vendors, domains, settings)
            except Exception as exc:
                logger.warning("web_search_failed item=%s fallback=site_search error=%s", item.id, exc)

        return await self._resolve_with_site_search(item, query, vendors, domains)

    async def _resolve_with_web_search(
        self,
        query: str,
        vendors: List[Vendor],
        domains: List[str],
        settings: AgentSettings,
    ) -> AvailabilityResult:
        finding = await asyncio.wait_for(
            self.web_search.find(query, domains, settings.search_config),
            timeout=self.primary_timeout,
        )
        found = set(finding.domains)
        enriched = [VendorHit(name=v.name, url=v.url, hit=vendor_domain(v) in found) for v in vendors]
        return AvailabilityResult(
            hits=sum(1 for v in enriched if v.hit),
            vendors=enriched,
            sample_urls=finding.sample_urls[:MAX_SAMPLE_URLS],
            strategy_used=STRATEGY_WEB_SEARCH,
        )

    async def _resolve_with_site_search(
        self,
        item: CatalogItem,
        query: str,
        vendors: List[Vendor],
        domains: List[str],
    ) -> AvailabilityResult:
        results: Dict[str, List[SearchHit]] = {}
        failures: Dict[str, str] = {}
        for domain in domains:
            try:
                results[domain] = await self.search_domain(query, domain)
            except ResolverTransientError as exc:
                failures[domain] = exc.message
                results[domain] = []
                logger.warning("domain_search_failed item=%s domain=%s error=%s", item.id, domain, exc.message)

        if len(failures) == len(domains):
            raise SearchUnavailableError(
                "all search strategies failed for every vendor domain",
                {"item_id": item.id, "domains": failures},
            )

        enriched: List[VendorHit] = []
        for vendor in vendors:
            hits = results.get(vendor_domain(vendor)) or []
            best = max((basic_match_score(item.name, hit) for hit in hits), default=0)
            enriched.append(VendorHit(name=vendor.name, url=vendor.url, hit=best >= 2 or len(hits) > 0))

        sample_urls: List[str] = []
        for domain in domains:
            for hit in results.get(domain) or []:
                if hit.url:
                    sample_urls.append(hit.url)
                if len(sample_urls) >= MAX_SAMPLE_URLS:
                    break
            if len(sample_urls) >= MAX_SAMPLE_URLS:
                break

        return AvailabilityResult(
            hits=sum(1 for v in enriched if v.hit),
            vendors=enriched,
            sample_urls=sample_urls,
            strategy_used=STRATEGY_SITE_SEARCH,
        )

    async def search_domain(self, query: str, domain: str) -> List[SearchHit]:
        """
        Walk the strategy chain for one domain.

        Returns the first non-empty result list, or an empty list when at
        least one strategy answered without results. Raises
        ResolverTransientError when every attempted strategy failed.
        """
        errors: List[str] = []
        answered = False
        for strategy in self.strategies:
            if not strategy.is_configured():
                continue
            try:
                hits = await asyncio.wait_for(
                    strategy.search(query, domain, self.max_results_per_domain),
                    timeout=self.call_timeout,
                )
            except asyncio.TimeoutError:
                errors.append(f"{strategy.name}: timed out after {self.call_timeout}s")
                continue
            except Exception as exc:
                errors.append(f"{strategy.name}: {exc}")
                continue
            answered = True
            if hits:
                return list(hits)[: self.max_results_per_domain]

        if answered:
            return []
        raise ResolverTransientError(
            "; ".join(errors) or "no search strategy configured",
            domain=domain,
            strategy=self.strategies[-1].name if self.strategies else None,
        )
