from __future__ import annotations

import pytest

from availability.web_search import ToolAssistedSearch, build_instructions, parse_finding
from core import SearchConfig
from llm import BaseLLM, LLMResponse
from utils.exceptions import LLMError


class _FakeLLM(BaseLLM):
    def __init__(self, content: str):
        super().__init__(model="fake-model")
        self.content = content
        self.calls = []
        self.closed = False

    @property
    def provider(self) -> str:
        return "fake"

    async def acomplete(self, messages, tools=None, **kwargs) -> LLMResponse:
        self.calls.append({"messages": messages, "tools": tools, "kwargs": kwargs})
        return LLMResponse(content=self.content, model=self.model)

    async def aclose(self) -> None:
        self.closed = True


def test_parse_finding_accepts_plain_json() -> None:
    finding = parse_finding('{"domains": ["www.DigiKey.com", "https://mouser.com"], "sample_urls": ["https://mouser.com/a", 3]}')
    assert finding.domains == ["digikey.com", "mouser.com"]
    assert finding.sample_urls == ["https://mouser.com/a"]


def test_parse_finding_extracts_json_from_prose() -> None:
    text = 'Here is what I found:\n{"domains": ["lcsc.com"], "sample_urls": []}\nHope that helps.'
    finding = parse_finding(text)
    assert finding.domains == ["lcsc.com"]
    assert finding.sample_urls == []


def test_parse_finding_rejects_unparseable_answers() -> None:
    with pytest.raises(LLMError):
        parse_finding("no json here")
    with pytest.raises(LLMError):
        parse_finding("")
    with pytest.raises(LLMError):
        parse_finding("[1, 2]")


def test_build_instructions_appends_guardrails() -> None:
    config = SearchConfig(system_prompt="You are a sourcing analyst.", guardrails="Never invent URLs.")
    assert build_instructions(config) == "You are a sourcing analyst.\n\nNever invent URLs."
    assert build_instructions(SearchConfig(system_prompt="Only prompt")) == "Only prompt"


@pytest.mark.asyncio
async def test_find_sends_web_search_tool_and_closes_client() -> None:
    fake = _FakeLLM('{"domains": ["digikey.com"], "sample_urls": ["https://digikey.com/p/1"]}')
    seen_configs = []

    def _factory(config: SearchConfig) -> BaseLLM:
        seen_configs.append(config)
        return fake

    search = ToolAssistedSearch(_factory, max_output_tokens=300)
    config = SearchConfig(model="gpt-4o-mini", temperature=0.1, top_p=0.9, api_key="sk-test")
    finding = await search.find("FR4 board", ["digikey.com", "mouser.com"], config)

    assert finding.domains == ["digikey.com"]
    assert fake.closed is True
    assert seen_configs[0].model == "gpt-4o-mini"
    call = fake.calls[0]
    assert call["tools"] == [{"type": "web_search"}]
    assert call["kwargs"]["temperature"] == 0.1
    assert call["kwargs"]["top_p"] == 0.9
    assert "Allowed domains: digikey.com, mouser.com" in call["messages"][1].content
    assert "Product query: FR4 board" in call["messages"][1].content


@pytest.mark.asyncio
async def test_find_requires_api_key() -> None:
    search = ToolAssistedSearch(lambda config: _FakeLLM("{}"))
    with pytest.raises(LLMError):
        await search.find("x", ["a.com"], SearchConfig())
