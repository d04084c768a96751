"""Capability interfaces consumed by the research core.

Concrete providers (HTTP adapters, test fakes) implement these protocols;
the core only ever sees the typed exceptions from product_research.exceptions.
"""

from __future__ import annotations
import re
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from pydantic import BaseModel, Field

from product_research.models import QueryIdentity
from product_research.tools.search_models import ResultKind, SearchHit


@runtime_checkable
class SearchProvider(Protocol):
    """Web search capability.

    Raises AuthenticationError / BillingError (critical), RateLimitError,
    or SearchFailure for anything else.
    """
    name: str

    def search(self, query: str, limit: int, locale: Optional[str] = None,
               result_kind: ResultKind = "web") -> List[SearchHit]:
        ...


@runtime_checkable
class ExtractProvider(Protocol):
    """Schema-driven extraction over a bounded URL set. Raises ExtractFailure."""

    def extract(self, urls: Sequence[str], instruction: str, schema: Dict[str, Any]) -> Dict[str, Any]:
        ...


class ScrapeResult(BaseModel):
    url: str
    markdown: str = ""
    structured_fields: Dict[str, Any] = Field(default_factory=dict)


@runtime_checkable
class ScrapeProvider(Protocol):
    def scrape(self, url: str) -> ScrapeResult:
        ...


IdentityParser = Callable[[str], QueryIdentity]


_TYPE_MARKERS = (
    ("toner_cartridge", ("toner", "тонер", "картридж", "cartridge")),
    ("drum_unit", ("drum", "драм", "фотобарабан", "imaging unit")),
    ("ink_cartridge", ("ink", "чернил", "струйн")),
)
_COLOR_MARKERS = (
    ("black", ("black", "черн", "чёрн", "bk")),
    ("cyan", ("cyan", "голуб", "синий")),
    ("magenta", ("magenta", "пурпур", "малинов")),
    ("yellow", ("yellow", "желт", "жёлт")),
)
_YIELD_RE = re.compile(r"(\d[\d\s]{1,6})\s*(?:стр|pages|pgs|p\b)", re.I)
_YIELD_K_RE = re.compile(r"\b(\d{1,3}(?:[.,]\d)?)\s*[kк]\b", re.I)
_MODEL_RE = re.compile(r"^[A-Za-z]*-?\d[\w\-]*$")


def seed_identity(raw: str, brands: Sequence[str] = ()) -> QueryIdentity:
    """Minimal offline parse of a supplier title.

    Brand: first token that is a known brand. Model: first token that mixes
    letters and digits. Type/color/yield from keyword markers.
    """
    text = (raw or "").strip()
    lowered = text.lower()
    tokens = re.split(r"[\s,;()/]+", text)
    known = {b.lower(): b for b in brands}

    brand = None
    for tok in tokens:
        if tok.lower() in known:
            brand = tok.upper() if len(tok) <= 3 else tok.capitalize()
            break

    model = None
    for tok in tokens:
        if tok and _MODEL_RE.match(tok) and any(c.isalpha() for c in tok) and tok.lower() not in known:
            model = tok.upper()
            break

    consumable_type = "unknown"
    for kind, markers in _TYPE_MARKERS:
        if any(m in lowered for m in markers):
            consumable_type = kind
            break

    color = None
    for name, markers in _COLOR_MARKERS:
        if any(re.search(rf"\b{re.escape(m)}", lowered) for m in markers):
            color = name
            break

    yield_pages = None
    m = _YIELD_RE.search(text)
    if m:
        yield_pages = int(re.sub(r"\s", "", m.group(1)))
    else:
        m = _YIELD_K_RE.search(text)
        if m:
            yield_pages = int(float(m.group(1).replace(",", ".")) * 1000)

    confidence = 0.0
    if brand:
        confidence += 0.4
    if model:
        confidence += 0.4
    if consumable_type != "unknown":
        confidence += 0.2

    return QueryIdentity(
        raw=text,
        brand=brand,
        model=model,
        consumable_type=consumable_type,
        color=color,
        yield_pages=yield_pages,
        confidence=round(confidence, 2),
    )


def make_identity_parser(brands: Sequence[str]) -> IdentityParser:
    """Bind the default parser to a brand vocabulary."""
    brands = tuple(brands)

    def _parse(raw: str) -> QueryIdentity:
        return seed_identity(raw, brands)

    return _parse
