from pydantic import BaseModel, Field, model_validator
from typing import Annotated, Optional, List, Dict, Any, Iterable, Literal, Union, Set
from enum import Enum

from product_research.exceptions import StatusTransitionError


AutomationStatus = Literal["needs_review", "done", "failed"]

# Only forward moves out of needs_review are legal
_ALLOWED_TRANSITIONS = {
    ("needs_review", "done"),
    ("needs_review", "failed"),
}


class ResearchCategory(str, Enum):
    """Research categories the planner can target"""
    LOGISTICS = "logistics"
    COMPATIBILITY = "compatibility"
    RELATED = "related"
    IMAGES = "images"
    FAQ = "faq"


CATEGORY_ORDER = [
    ResearchCategory.LOGISTICS,
    ResearchCategory.COMPATIBILITY,
    ResearchCategory.RELATED,
    ResearchCategory.IMAGES,
    ResearchCategory.FAQ,
]


class SourceTier(str, Enum):
    """Trust class of a source URL"""
    TIER_A_OEM = "TierA_OEM"
    TIER_B_RETAILER = "TierB_Retailer"
    TIER_C_MARKETPLACE = "TierC_Marketplace"
    UNKNOWN = "Unknown"


def append_unique(target: List[str], items: Iterable[str]) -> int:
    """Append items not already present, preserving order. Returns number added."""
    seen = set(target)
    added = 0
    for item in items:
        if not item or item in seen:
            continue
        target.append(item)
        seen.add(item)
        added += 1
    return added


class QueryIdentity(BaseModel):
    """Offline-seeded guess of what the raw query names"""
    raw: str
    brand: Optional[str] = None
    model: Optional[str] = None
    consumable_type: str = "unknown"
    color: Optional[str] = None
    yield_pages: Optional[int] = None
    confidence: float = Field(default=0.0, ge=0, le=1)


class Evidence(BaseModel):
    field: str
    value: Any = None
    sources: List[str] = Field(default_factory=list)
    confidence: float = Field(default=0.5, ge=0, le=1)
    method: str = "unknown"

    def add_sources(self, urls: Iterable[str]) -> int:
        return append_unique(self.sources, urls)


class Packaging(BaseModel):
    length_mm: Optional[float] = None
    width_mm: Optional[float] = None
    height_mm: Optional[float] = None
    weight_g: Optional[float] = None
    evidence_urls: List[str] = Field(default_factory=list)
    not_found_on_nix: bool = False
    confidence: float = Field(default=1.0, ge=0, le=1)

    def has_any_field(self) -> bool:
        return any(v is not None for v in (self.length_mm, self.width_mm, self.height_mm, self.weight_g))

    def is_complete(self) -> bool:
        return all(v is not None for v in (self.length_mm, self.width_mm, self.height_mm, self.weight_g))


class Compatibility(BaseModel):
    printers: List[str] = Field(default_factory=list)
    evidence_urls: List[str] = Field(default_factory=list)
    trusted: bool = False
    needs_review: bool = True
    exclusion_notes: List[str] = Field(default_factory=list)


class RelatedItem(BaseModel):
    name: str
    relation: str = "related"
    url: Optional[str] = None


class ImageCandidate(BaseModel):
    url: str
    width: int = 0
    height: int = 0
    white_bg_score: float = Field(default=0.0, ge=0, le=1)
    is_packaging: bool = False
    has_watermark: bool = False
    has_oem_logo: bool = False
    passes_rules: bool = False
    reject_reasons: List[str] = Field(default_factory=list)
    source: Optional[str] = None

    @model_validator(mode="after")
    def apply_image_rules(self):
        """Derive passes_rules/reject_reasons from the measured attributes"""
        reasons = []
        if self.width < 800 or self.height < 800:
            reasons.append("resolution_below_800x800")
        if self.white_bg_score < 0.7:
            reasons.append("background_not_white")
        if self.is_packaging:
            reasons.append("shows_packaging")
        if self.has_watermark:
            reasons.append("watermark")
        self.reject_reasons = reasons
        self.passes_rules = not reasons
        return self


class FAQItem(BaseModel):
    question: str
    answer: str
    source_url: Optional[str] = None


class ErrorDetail(BaseModel):
    category: str
    reason: str
    severity: Literal["critical", "high", "medium", "low"] = "medium"


class RunBudgets(BaseModel):
    time_ms: int
    max_calls: int
    max_sources: int


class RunStats(BaseModel):
    iterations: int = 0
    calls_made: int = 0
    sources_collected: int = 0
    extract_calls: int = 0
    duration_ms: int = 0
    empty_passes: int = 0
    # Every URL admitted during the run; used to count "new" URLs per pass
    seen_urls: Set[str] = Field(default_factory=set, exclude=True)
    # Queries already sent; a query is never repeated within a run
    queries_sent: Set[str] = Field(default_factory=set, exclude=True)


class RunMeta(BaseModel):
    mode: str = "standard"
    locale: str = "RU"
    strict_sources: bool = True
    budgets: RunBudgets = Field(default_factory=lambda: RunBudgets(time_ms=0, max_calls=0, max_sources=0))
    stats: RunStats = Field(default_factory=RunStats)
    warnings: List[str] = Field(default_factory=list)
    errors: List[ErrorDetail] = Field(default_factory=list)
    states: List[str] = Field(default_factory=list)
    termination_reason: Optional[str] = None


class EnrichedRecord(BaseModel):
    # Identity
    supplier_title_raw: str
    brand: Optional[str] = None
    model: Optional[str] = None
    consumable_type: str = "unknown"
    color: Optional[str] = None
    yield_pages: Optional[int] = None
    identity_confidence: float = Field(default=0.0, ge=0, le=1)

    # Researched fields
    packaging: Optional[Packaging] = None
    # Lowered-confidence logistics seen only on non-catalog domains; never counts as packaging
    packaging_candidate: Optional[Packaging] = None
    compatibility: Optional[Compatibility] = None
    related: List[RelatedItem] = Field(default_factory=list)
    images: List[ImageCandidate] = Field(default_factory=list)
    faq: List[FAQItem] = Field(default_factory=list)
    evidence: Dict[str, Evidence] = Field(default_factory=dict)

    meta: RunMeta = Field(default_factory=RunMeta)
    automation_status: AutomationStatus = "needs_review"
    publish_ready: bool = False
    readiness: Optional[Dict[str, Any]] = None

    @classmethod
    def empty(cls, query: str, mode: str = "standard", locale: str = "RU", strict_sources: bool = True,
              budgets: Optional[RunBudgets] = None) -> "EnrichedRecord":
        meta = RunMeta(mode=mode, locale=locale, strict_sources=strict_sources)
        if budgets is not None:
            meta.budgets = budgets
        return cls(supplier_title_raw=query, meta=meta)

    def seed(self, identity: QueryIdentity) -> None:
        """Copy the offline parse into identity fields"""
        self.brand = identity.brand
        self.model = identity.model
        self.consumable_type = identity.consumable_type or "unknown"
        self.color = identity.color
        self.yield_pages = identity.yield_pages
        self.identity_confidence = identity.confidence
        if identity.brand:
            self.add_evidence("brand", identity.brand, [], identity.confidence, "offline_parse")
        if identity.model:
            self.add_evidence("model", identity.model, [], identity.confidence, "offline_parse")

    @property
    def printers(self) -> List[str]:
        return self.compatibility.printers if self.compatibility else []

    @property
    def search_model(self) -> str:
        return self.model or self.supplier_title_raw

    def add_evidence(self, field: str, value: Any, urls: Iterable[str], confidence: float, method: str) -> Evidence:
        """Create or extend the evidence entry for a field. URLs are append-only."""
        ev = self.evidence.get(field)
        if ev is None:
            ev = Evidence(field=field, value=value, confidence=confidence, method=method)
            self.evidence[field] = ev
        ev.add_sources(urls)
        return ev

    def add_warning(self, code: str) -> None:
        append_unique(self.meta.warnings, [code])

    def set_status(self, status: AutomationStatus) -> None:
        """Move automation_status forward; never regresses."""
        current = self.automation_status
        if status == current:
            return
        if (current, status) not in _ALLOWED_TRANSITIONS:
            raise StatusTransitionError(f"Illegal status transition {current} -> {status}")
        self.automation_status = status


class CategoryPlan(BaseModel):
    category: ResearchCategory
    queries: List[str] = Field(default_factory=list)
    needed: bool = False
    escalated: bool = False


class ResearchPlan(BaseModel):
    categories: Dict[ResearchCategory, CategoryPlan] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return all(not cp.queries for cp in self.categories.values())

    def total_queries(self) -> int:
        return sum(len(cp.queries) for cp in self.categories.values())

    def queries_for(self, category: ResearchCategory) -> List[str]:
        cp = self.categories.get(category)
        return list(cp.queries) if cp else []

    def active(self) -> List[CategoryPlan]:
        """Category plans with work to do, in canonical order"""
        return [self.categories[c] for c in CATEGORY_ORDER if c in self.categories and self.categories[c].queries]


class Finding(BaseModel):
    category: ResearchCategory
    urls: List[str] = Field(default_factory=list)
    new_urls: List[str] = Field(default_factory=list)


# ---- Partial records: tagged union merged field by field ----

class PackagingPartial(BaseModel):
    kind: Literal["packaging"] = "packaging"
    length_mm: Optional[float] = None
    width_mm: Optional[float] = None
    height_mm: Optional[float] = None
    weight_g: Optional[float] = None
    evidence_urls: List[str] = Field(default_factory=list)
    confidence: float = Field(default=1.0, ge=0, le=1)
    catalog_verified: bool = True

    def has_any_field(self) -> bool:
        return any(v is not None for v in (self.length_mm, self.width_mm, self.height_mm, self.weight_g))


class CompatibilityPartial(BaseModel):
    kind: Literal["compatibility"] = "compatibility"
    printers: List[str] = Field(default_factory=list)
    evidence_urls: List[str] = Field(default_factory=list)
    exclusion_notes: List[str] = Field(default_factory=list)


class RelatedPartial(BaseModel):
    kind: Literal["related"] = "related"
    items: List[RelatedItem] = Field(default_factory=list)
    evidence_urls: List[str] = Field(default_factory=list)


class FaqPartial(BaseModel):
    kind: Literal["faq"] = "faq"
    items: List[FAQItem] = Field(default_factory=list)
    evidence_urls: List[str] = Field(default_factory=list)


class ImagesPartial(BaseModel):
    kind: Literal["images"] = "images"
    items: List[ImageCandidate] = Field(default_factory=list)
    evidence_urls: List[str] = Field(default_factory=list)


PartialRecord = Annotated[
    Union[PackagingPartial, CompatibilityPartial, RelatedPartial, FaqPartial, ImagesPartial],
    Field(discriminator="kind"),
]


class RunResult(BaseModel):
    record: EnrichedRecord
    logs: List[str] = Field(default_factory=list)
    status: AutomationStatus
