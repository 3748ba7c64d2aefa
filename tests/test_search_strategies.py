from __future__ import annotations

import pytest

from availability import strategies
from availability.strategies import (
    DuckDuckGoHtmlStrategy,
    SearxSearchStrategy,
    decode_duck_link,
    parse_duckduckgo_html,
)


DDG_HTML = """
<html><body>
  <div class="result results_links web-result">
    <div class="links_main result__body">
      <h2 class="result__title">
        <a class="result__a" href="//duckduckgo.com/l/?uddg=https%3A%2F%2Fwww.digikey.com%2Fen%2Fproducts%2Fdetail%2Fstm32f103c8t6&amp;rut=abc">STM32F103C8T6 | DigiKey</a>
      </h2>
      <a class="result__snippet" href="#">In stock: STM32F103C8T6 ARM Cortex-M3 MCU</a>
    </div>
  </div>
  <div class="result results_links web-result">
    <div class="links_main result__body">
      <h2 class="result__title">
        <a class="result__a" href="https://www.digikey.com/en/products/filter/mcu">Microcontrollers | DigiKey</a>
      </h2>
      <div class="result__snippet">Browse microcontrollers</div>
    </div>
  </div>
</body></html>
""".strip()


def test_decode_duck_link_unwraps_redirects() -> None:
    wrapped = "//duckduckgo.com/l/?uddg=https%3A%2F%2Fmouser.com%2Fp%2F1&rut=x"
    assert decode_duck_link(wrapped) == "https://mouser.com/p/1"
    assert decode_duck_link("/l/?uddg=https%3A%2F%2Flcsc.com%2Fa") == "https://lcsc.com/a"
    assert decode_duck_link("https://arrow.com/x") == "https://arrow.com/x"
    assert decode_duck_link("") == ""


def test_parse_duckduckgo_html_extracts_hits() -> None:
    hits = parse_duckduckgo_html(DDG_HTML, limit=5)
    assert [h.url for h in hits] == [
        "https://www.digikey.com/en/products/detail/stm32f103c8t6",
        "https://www.digikey.com/en/products/filter/mcu",
    ]
    assert hits[0].title == "STM32F103C8T6 | DigiKey"
    assert "ARM Cortex-M3" in hits[0].snippet
    assert hits[1].snippet == "Browse microcontrollers"


def test_parse_duckduckgo_html_respects_limit_and_empty_page() -> None:
    assert len(parse_duckduckgo_html(DDG_HTML, limit=1)) == 1
    assert parse_duckduckgo_html("<html><body>No results</body></html>") == []


@pytest.mark.asyncio
async def test_html_strategy_sends_site_query(monkeypatch) -> None:
    seen = {}

    async def _fake_get_text(url: str, *, params=None, headers=None, timeout: float = 12.0) -> str:
        seen["url"] = url
        seen["params"] = params
        seen["headers"] = headers
        return DDG_HTML

    monkeypatch.setattr(strategies, "_http_get_text", _fake_get_text)

    strategy = DuckDuckGoHtmlStrategy("https://html.duckduckgo.com/html/", user_agent="pytest-agent")
    hits = await strategy.search("STM32F103C8T6", "digikey.com", limit=5)

    assert len(hits) == 2
    assert seen["params"]["q"] == "STM32F103C8T6 site:digikey.com"
    assert seen["params"]["kl"] == "en-us"
    assert seen["headers"]["User-Agent"] == "pytest-agent"


@pytest.mark.asyncio
async def test_searx_strategy_maps_results(monkeypatch) -> None:
    payload = {
        "results": [
            {"title": "FR4 PCB", "url": "https://jlcpcb.com/pcb", "content": "2-layer FR4"},
            {"title": "no url"},
            {"title": "Second", "url": "https://jlcpcb.com/other", "content": ""},
            {"title": "Third", "url": "https://jlcpcb.com/third", "content": ""},
        ]
    }

    async def _fake_get_json(url: str, *, params=None, headers=None, timeout: float = 12.0):
        assert url == "https://searx.local/search"
        assert params["q"] == "FR4 PCB site:jlcpcb.com"
        assert params["format"] == "json"
        return payload

    monkeypatch.setattr(strategies, "_http_get_json", _fake_get_json)

    strategy = SearxSearchStrategy("https://searx.local/search")
    assert strategy.is_configured()
    hits = await strategy.search("FR4 PCB", "jlcpcb.com", limit=2)

    assert [h.url for h in hits] == ["https://jlcpcb.com/pcb", "https://jlcpcb.com/other"]
    assert hits[0].snippet == "2-layer FR4"


def test_searx_strategy_is_skipped_without_url() -> None:
    assert not SearxSearchStrategy(None).is_configured()
    assert not SearxSearchStrategy("  ").is_configured()
