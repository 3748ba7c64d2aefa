"""
Tool-Assisted Web Search
Primary availability strategy: an OpenAI model with the hosted ``web_search``
tool is asked which of the allowed vendor domains list the product.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from core import MAX_SAMPLE_URLS, SearchConfig
from llm import BaseLLM, Message, OpenAILLM
from utils.exceptions import LLMError

from .domains import to_domain


logger = logging.getLogger(__name__)

WEB_SEARCH_TOOLS = [{"type": "web_search"}]

LLMFactory = Callable[[SearchConfig], BaseLLM]


class WebSearchFinding(BaseModel):
    domains: List[str] = Field(default_factory=list)
    sample_urls: List[str] = Field(default_factory=list)


def _extract_json(text: str) -> Dict[str, Any]:
    raw = (text or "").strip()
    if not raw:
        raise LLMError("web search returned an empty answer", provider="openai")
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        match = re.search(r"\{[\s\S]*\}", raw)
        if not match:
            raise LLMError("web search answer is not parseable as JSON", provider="openai")
        try:
            parsed = json.loads(match.group())
        except json.JSONDecodeError as exc:
            raise LLMError(f"web search answer is not parseable as JSON: {exc}", provider="openai") from exc
    if not isinstance(parsed, dict):
        raise LLMError("web search answer is not a JSON object", provider="openai")
    return parsed


def parse_finding(text: str) -> WebSearchFinding:
    """Parse ``{"domains": [...], "sample_urls": [...]}``, also when embedded in prose."""
    payload = _extract_json(text)
    raw_domains = payload.get("domains")
    raw_urls = payload.get("sample_urls")
    domains = [to_domain(value) for value in raw_domains] if isinstance(raw_domains, list) else []
    urls = [value for value in raw_urls if isinstance(value, str)] if isinstance(raw_urls, list) else []
    return WebSearchFinding(domains=[d for d in domains if d], sample_urls=urls)


def build_prompt(query: str, allowed_domains: List[str]) -> str:
    return (
        f"Allowed domains: {', '.join(allowed_domains)}\n"
        f"Task: Determine which allowed domains list this product and provide up to {MAX_SAMPLE_URLS} "
        "example URLs from those domains.\n"
        f"Product query: {query}\n"
        "Constraints: Only search allowed domains. If possible, use site:domain style queries. "
        "If no matches, return empty arrays.\n"
        'Output JSON with this shape: {"domains": ["example.com"], "sample_urls": ["https://example.com/..."]}'
    )


def build_instructions(config: SearchConfig) -> str:
    instructions = str(config.system_prompt or "").strip()
    guardrails = str(config.guardrails or "").strip()
    if guardrails:
        instructions = f"{instructions}\n\n{guardrails}".strip()
    return instructions


class ToolAssistedSearch:
    """Runs one web-search-enabled completion per catalog item."""

    def __init__(
        self,
        llm_factory: Optional[LLMFactory] = None,
        *,
        max_output_tokens: int = 300,
        timeout: float = 60.0,
    ):
        self.max_output_tokens = max_output_tokens
        self.timeout = timeout
        self._llm_factory = llm_factory or self._default_factory

    def _default_factory(self, config: SearchConfig) -> BaseLLM:
        return OpenAILLM(
            model=config.model,
            api_key=config.api_key,
            temperature=config.temperature,
            top_p=config.top_p,
            max_output_tokens=self.max_output_tokens,
            timeout=self.timeout,
        )

    async def find(self, query: str, allowed_domains: List[str], config: SearchConfig) -> WebSearchFinding:
        if not config.api_key:
            raise LLMError("web search requires an API key", provider="openai")

        messages = [Message.system(build_instructions(config)), Message.user(build_prompt(query, allowed_domains))]
        llm = self._llm_factory(config)
        try:
            response = await llm.acomplete(
                messages,
                tools=WEB_SEARCH_TOOLS,
                temperature=config.temperature,
                top_p=config.top_p,
                max_output_tokens=self.max_output_tokens,
            )
        finally:
            await llm.aclose()

        finding = parse_finding(response.content)
        logger.debug(
            "web_search_answer model=%s domains=%s urls=%s",
            response.model,
            len(finding.domains),
            len(finding.sample_urls),
        )
        return finding
