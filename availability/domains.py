"""Vendor domain keys, search queries and result scoring."""

from __future__ import annotations

import re
from typing import Any, Iterable, List, Mapping, Union
from urllib.parse import urlparse

from core import CatalogItem, SearchHit, Vendor


VendorInput = Union[Vendor, Mapping[str, Any]]

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9]+")


def to_domain(value: Any) -> str:
    """Lowercased hostname without a leading ``www.``; accepts bare hosts and names."""
    text = str(value or "").strip()
    if not text:
        return ""
    candidate = text if text.lower().startswith("http") else f"https://{text}"
    try:
        host = urlparse(candidate).hostname or ""
    except ValueError:
        host = ""
    if not host:
        host = re.split(r"[/#?]", _SCHEME_RE.sub("", text), maxsplit=1)[0]
    host = host.lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def vendor_domain(vendor: Vendor) -> str:
    return to_domain(vendor.url or vendor.name)


def normalize_vendors(vendors: Iterable[VendorInput]) -> List[Vendor]:
    """Enabled vendors that carry a name or url."""
    normalized: List[Vendor] = []
    for raw in list(vendors or []):
        if raw is None:
            continue
        data = raw.model_dump() if isinstance(raw, Vendor) else dict(raw)
        if data.get("enabled") is False:
            continue
        name = str(data.get("name") or "").strip()
        url = str(data.get("url") or "").strip()
        if not name and not url:
            continue
        normalized.append(Vendor(name=name or url, url=url))
    return normalized


def build_query(item: CatalogItem) -> str:
    parts = [item.name, item.category_name, item.numeric_id, item.product_id]
    return " ".join(str(part).strip() for part in parts if part not in (None, "") and str(part).strip())


def basic_match_score(name: str, hit: SearchHit) -> int:
    """
    Score a search result against the item name.

    +2 when the title contains the full name, +1 when the snippet does, plus
    up to 2 for name tokens found in either.
    """
    title = str(hit.title or "").lower()
    snippet = str(hit.snippet or "").lower()
    query = str(name or "").lower()
    if not query:
        return 0
    score = 0
    if query in title:
        score += 2
    if query in snippet:
        score += 1
    tokens = [token for token in _TOKEN_SPLIT_RE.split(query) if token]
    token_hits = sum(1 for token in tokens if token in title or token in snippet)
    score += min(2, token_hits)
    return score
