"""
Availability Module
Vendor availability lookups for catalog items.
"""
from typing import Optional

from config import get_agent_settings, get_search_settings

from .domains import basic_match_score, build_query, normalize_vendors, to_domain, vendor_domain
from .resolver import AvailabilityResolver
from .strategies import (
    DuckDuckGoHtmlStrategy,
    SearchStrategy,
    SearxSearchStrategy,
    decode_duck_link,
    parse_duckduckgo_html,
)
from .web_search import ToolAssistedSearch, WebSearchFinding, parse_finding


def build_default_resolver(web_search: Optional[ToolAssistedSearch] = None) -> AvailabilityResolver:
    """Resolver wired from SEARCH_/AGENT_ configuration."""
    search = get_search_settings()
    agent = get_agent_settings()
    strategies = [
        SearxSearchStrategy(search.api_url, timeout=search.request_timeout),
        DuckDuckGoHtmlStrategy(
            search.html_url,
            user_agent=search.user_agent,
            timeout=search.request_timeout,
        ),
    ]
    if web_search is None:
        web_search = ToolAssistedSearch(max_output_tokens=agent.max_output_tokens, timeout=agent.llm_timeout)
    return AvailabilityResolver(
        strategies,
        web_search,
        max_results_per_domain=search.max_results_per_domain,
        call_timeout=search.call_timeout,
        primary_timeout=agent.llm_timeout,
    )


__all__ = [
    "AvailabilityResolver",
    "DuckDuckGoHtmlStrategy",
    "SearchStrategy",
    "SearxSearchStrategy",
    "ToolAssistedSearch",
    "WebSearchFinding",
    "basic_match_score",
    "build_default_resolver",
    "build_query",
    "decode_duck_link",
    "normalize_vendors",
    "parse_duckduckgo_html",
    "parse_finding",
    "to_domain",
    "vendor_domain",
]
