from __future__ import annotations

from availability import basic_match_score, build_query, normalize_vendors, to_domain, vendor_domain
from core import CatalogItem, SearchHit, Vendor


def test_to_domain_strips_scheme_www_and_path() -> None:
    assert to_domain("https://www.Digikey.com/en/products") == "digikey.com"
    assert to_domain("http://mouser.com") == "mouser.com"
    assert to_domain("lcsc.com/search?q=x") == "lcsc.com"
    assert to_domain("") == ""
    assert to_domain(None) == ""


def test_vendor_domain_falls_back_to_name() -> None:
    assert vendor_domain(Vendor(name="Arrow", url="https://www.arrow.com")) == "arrow.com"
    assert vendor_domain(Vendor(name="octopart.com")) == "octopart.com"


def test_name_only_vendor_key_is_lowercased_even_when_not_a_host() -> None:
    assert vendor_domain(Vendor(name="Mouser Electronics")) == "mouser electronics"
    assert to_domain("WWW.Farnell Europe") == "farnell europe"


def test_normalize_vendors_drops_disabled_and_empty_entries() -> None:
    vendors = normalize_vendors(
        [
            {"name": "DigiKey", "url": "https://www.digikey.com", "enabled": True},
            {"name": "Mouser", "url": "https://mouser.com", "enabled": False},
            {"name": "", "url": ""},
            None,
            {"url": "https://lcsc.com"},
            Vendor(name="Arrow"),
        ]
    )
    assert [v.name for v in vendors] == ["DigiKey", "https://lcsc.com", "Arrow"]
    assert all(v.enabled for v in vendors)


def test_build_query_joins_present_fields() -> None:
    item = CatalogItem(id="abc", numeric_id=17, product_id="PCB-2L", name="FR4 2-layer board", category_name="PCB")
    assert build_query(item) == "FR4 2-layer board PCB 17 PCB-2L"

    bare = CatalogItem(id="x1", name="Stencil")
    assert build_query(bare) == "Stencil"


def test_basic_match_score_rewards_title_and_snippet_matches() -> None:
    name = "STM32F103C8T6"
    exact = SearchHit(title="STM32F103C8T6 - ARM MCU", url="https://x", snippet="Buy STM32F103C8T6 today")
    assert basic_match_score(name, exact) == 2 + 1 + 1

    partial = SearchHit(title="ESP32 dev kit", url="https://y", snippet="wifi module")
    assert basic_match_score("ESP32 DevKitC", partial) == 1

    unrelated = SearchHit(title="Resistor pack", url="https://z", snippet="")
    assert basic_match_score("ESP32 DevKitC", unrelated) == 0
    assert basic_match_score("", exact) == 0


def test_token_overlap_is_capped_at_two() -> None:
    hit = SearchHit(title="double sided copper pcb board", snippet="")
    assert basic_match_score("pcb double sided copper", hit) == 2
