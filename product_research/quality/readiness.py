"""Publication readiness scoring.

Scores a finished record on five weighted components and lists what blocks
publication. The score is stamped onto the record for operator triage; it
never gates the research loop.
"""

import logging
from collections import Counter, defaultdict
from typing import Dict, Iterable, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field

from product_research.models import EnrichedRecord, ImageCandidate, SourceTier
from product_research.tools.domain_tiers import SourceTierClassifier
from product_research.tools.url_norm import host_of

logger = logging.getLogger(__name__)

READINESS_WEIGHTS = {
    "required_fields": 0.4,
    "data_quality": 0.25,
    "target_market": 0.15,
    "image_validation": 0.1,
    "source_reliability": 0.1,
}

MINIMUM_SCORE = 0.7
MINIMUM_VERIFIED_PRINTERS = 1
MINIMUM_MARKET_SOURCES = 2

STATUS_MULTIPLIER = {"done": 1.0, "needs_review": 0.7, "failed": 0.3}

# (reliability multiplier, weight) per source class
SOURCE_CLASS_WEIGHTS = {
    "catalog": (1.2, 2.0),
    "official": (1.1, 1.5),
    "compatibility_db": (1.0, 1.0),
    "marketplace": (0.8, 0.8),
    "search": (0.7, 0.7),
}

MISSING_PACKAGING = "Missing package dimensions from NIX.ru"
NO_VERIFIED_PRINTERS = "No verified target-market printers"


class ReadinessScore(BaseModel):
    overall_score: float
    component_scores: Dict[str, float]
    is_ready: bool
    blocking_issues: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    confidence_level: Literal["high", "medium", "low"]
    estimated_manual_effort: int


class BlockingIssueCount(BaseModel):
    issue: str
    count: int
    severity: Literal["high", "medium", "low"]


class BrandReadiness(BaseModel):
    ready: int = 0
    total: int = 0
    avg_score: float = 0.0


class ReadinessReport(BaseModel):
    total_items: int
    ready_for_publication: int
    needs_minor_fixes: int
    needs_major_work: int
    blocked_items: int
    average_readiness_score: float
    top_blocking_issues: List[BlockingIssueCount] = Field(default_factory=list)
    readiness_by_brand: Dict[str, BrandReadiness] = Field(default_factory=dict)


# ---- component scores ----

def score_required_fields(record: EnrichedRecord) -> float:
    score = 0
    if record.brand and record.brand.strip():
        score += 1
    if record.consumable_type and record.consumable_type not in ("unknown", "other"):
        score += 1
    if record.model and record.model.strip():
        score += 1
    if record.packaging is not None and record.packaging.is_complete():
        score += 1
    if record.printers:
        score += 1
    return score / 5


def _confidence_components(record: EnrichedRecord) -> Optional[Dict[str, float]]:
    if not record.evidence and record.identity_confidence == 0:
        return None
    model_ev = record.evidence.get("model")
    compat_ev = record.evidence.get("compatibility")
    components = {
        "model_name": model_ev.confidence if model_ev else record.identity_confidence,
        "logistics": record.packaging.confidence if record.packaging else 0.0,
        "compatibility": compat_ev.confidence if compat_ev else 0.0,
    }
    components["overall"] = sum(components.values()) / 3
    return components


def score_data_quality(record: EnrichedRecord) -> float:
    components = _confidence_components(record)
    if components is None:
        return 0.3
    confidence_score = (
        components["model_name"] * 0.3
        + components["logistics"] * 0.25
        + components["compatibility"] * 0.25
        + components["overall"] * 0.2
    )
    multiplier = STATUS_MULTIPLIER.get(record.automation_status, 0.5)
    error_penalty = min(len(record.meta.errors) * 0.1, 0.4)
    return max(0.0, confidence_score * multiplier - error_penalty)


def _verified_printers(record: EnrichedRecord) -> List[str]:
    compat = record.compatibility
    if compat is None or not compat.trusted:
        return []
    return list(compat.printers)


def score_target_market(record: EnrichedRecord, classifier: SourceTierClassifier) -> float:
    score = 0.0
    if len(_verified_printers(record)) >= MINIMUM_VERIFIED_PRINTERS:
        score += 0.6
    elif record.printers:
        score += 0.3

    urls = record.compatibility.evidence_urls if record.compatibility else []
    market_sources = [
        u for u in urls
        if host_of(u).endswith(".ru") or classifier.classify(u, record.brand) is SourceTier.TIER_B_RETAILER
    ]
    if len(market_sources) >= MINIMUM_MARKET_SOURCES:
        score += 0.4
    elif market_sources:
        score += 0.2
    return min(score, 1.0)


def image_score(image: ImageCandidate) -> float:
    if image.width >= 800 and image.height >= 800:
        score = 0.3
    elif image.width >= 600 and image.height >= 600:
        score = 0.2
    else:
        score = 0.1
    score += image.white_bg_score * 0.3
    if not image.is_packaging:
        score += 0.2
    if not image.has_watermark:
        score += 0.1
    if not image.has_oem_logo:
        score += 0.1
    return min(score, 1.0)


def score_images(record: EnrichedRecord) -> float:
    if not record.images:
        return 0.0
    if not any(img.passes_rules for img in record.images):
        return 0.2
    return max(image_score(img) for img in record.images)


def _source_class(url: str, brand: Optional[str], classifier: SourceTierClassifier) -> str:
    if classifier.is_catalog(url):
        return "catalog"
    tier = classifier.classify(url, brand)
    if tier is SourceTier.TIER_A_OEM:
        return "official"
    if tier is SourceTier.TIER_B_RETAILER:
        return "compatibility_db"
    if tier is SourceTier.TIER_C_MARKETPLACE:
        return "marketplace"
    return "search"


def _evidence_sources(record: EnrichedRecord) -> List[Tuple[str, float]]:
    """Unique evidence URLs with the confidence of the first field citing them."""
    seen: Dict[str, float] = {}
    for ev in record.evidence.values():
        for url in ev.sources:
            seen.setdefault(url, ev.confidence)
    return list(seen.items())


def score_source_reliability(record: EnrichedRecord, classifier: SourceTierClassifier) -> float:
    sources = _evidence_sources(record)
    if not sources:
        return 0.0
    total = 0.0
    weights = 0.0
    for url, confidence in sources:
        multiplier, weight = SOURCE_CLASS_WEIGHTS[_source_class(url, record.brand, classifier)]
        total += (confidence or 0.5) * multiplier * weight
        weights += weight
    average = total / weights if weights else 0.0
    count_bonus = min(len(sources) * 0.1, 0.3)
    return min(average + count_bonus, 1.0)


# ---- issues / recommendations ----

def identify_blocking_issues(record: EnrichedRecord, scores: Dict[str, float]) -> List[str]:
    issues = []
    if scores["required_fields"] < 0.8:
        if not record.brand:
            issues.append("Missing brand information")
        if not record.model:
            issues.append("Missing consumable model")
        if not record.consumable_type or record.consumable_type in ("unknown", "other"):
            issues.append("Consumable type not determined")
        if record.packaging is None:
            issues.append(MISSING_PACKAGING)
    if scores["target_market"] < 0.5 and not _verified_printers(record):
        issues.append(NO_VERIFIED_PRINTERS)
    critical = [e.reason for e in record.meta.errors if e.severity == "critical"]
    if critical:
        issues.append(f"Critical errors: {', '.join(critical)}")
    if scores["data_quality"] < 0.4:
        issues.append("Low data quality or confidence scores")
    return issues


def generate_recommendations(record: EnrichedRecord, scores: Dict[str, float]) -> List[str]:
    recs = []
    if scores["required_fields"] < 1.0:
        if not record.yield_pages:
            recs.append("Add page yield information if available")
        if not record.color and record.consumable_type == "toner_cartridge":
            recs.append("Specify toner color (Black, Cyan, Magenta, Yellow)")
    if record.packaging is None and record.packaging_candidate is not None:
        recs.append("Confirm package dimensions found outside NIX.ru against the catalog")
    if scores["image_validation"] < 0.8:
        if not record.images:
            recs.append("Add high-quality product image (800x800px minimum)")
        elif not any(img.passes_rules for img in record.images):
            recs.append("Improve image quality: white background, no watermarks, product only")
    if scores["target_market"] < 0.8:
        recs.append("Verify printer compatibility in additional target-market sources")
        recs.append("Check official distributor websites")
    if scores["source_reliability"] < 0.7:
        recs.append("Add more reliable data sources")
        recs.append("Verify information from official manufacturer sources")
    if len(record.related) < 3:
        recs.append("Enhance related products discovery for better cross-selling")
    return recs


def confidence_level(overall_score: float, confidence: float) -> str:
    combined = (overall_score + confidence) / 2
    if combined >= 0.8:
        return "high"
    if combined >= 0.6:
        return "medium"
    return "low"


def estimate_manual_effort(blocking_issues: List[str], recommendations: List[str]) -> int:
    """Minutes of operator work, capped at two hours."""
    effort = len(blocking_issues) * 15 + len(recommendations) * 5
    for issue in blocking_issues:
        if issue == MISSING_PACKAGING:
            effort += 20
        if issue == NO_VERIFIED_PRINTERS:
            effort += 30
        if issue.startswith("Critical errors"):
            effort += 25
    return min(effort, 120)


def evaluate_publication_readiness(record: EnrichedRecord,
                                   classifier: Optional[SourceTierClassifier] = None) -> ReadinessScore:
    """Compute the weighted readiness score for a single record."""
    if classifier is None:
        from product_research.config.domains import default_source_lists
        classifier = SourceTierClassifier(default_source_lists())

    scores = {
        "required_fields": score_required_fields(record),
        "data_quality": score_data_quality(record),
        "target_market": score_target_market(record, classifier),
        "image_validation": score_images(record),
        "source_reliability": score_source_reliability(record, classifier),
    }
    overall = sum(scores[k] * w for k, w in READINESS_WEIGHTS.items())
    blocking = identify_blocking_issues(record, scores)
    recs = generate_recommendations(record, scores)
    components = _confidence_components(record)
    overall_confidence = components["overall"] if components else 0.0

    return ReadinessScore(
        overall_score=round(overall, 4),
        component_scores={k: round(v, 4) for k, v in scores.items()},
        is_ready=overall >= MINIMUM_SCORE and not blocking,
        blocking_issues=blocking,
        recommendations=recs,
        confidence_level=confidence_level(overall, overall_confidence),
        estimated_manual_effort=estimate_manual_effort(blocking, recs),
    )


def _issue_severity(issue: str) -> str:
    if issue.startswith("Critical errors") or issue in ("Missing brand information", "Missing consumable model"):
        return "high"
    if issue in (NO_VERIFIED_PRINTERS, MISSING_PACKAGING):
        return "medium"
    return "low"


def summarize_readiness(records: Iterable[EnrichedRecord],
                        classifier: Optional[SourceTierClassifier] = None) -> ReadinessReport:
    """Batch report over many records (uses stamped readiness when present)."""
    evaluations: List[Tuple[EnrichedRecord, ReadinessScore]] = []
    for record in records:
        if record.readiness:
            score = ReadinessScore.model_validate(record.readiness)
        else:
            score = evaluate_publication_readiness(record, classifier)
        evaluations.append((record, score))

    total = len(evaluations)
    issue_counts: Counter = Counter()
    by_brand: Dict[str, BrandReadiness] = defaultdict(BrandReadiness)
    score_sum = 0.0
    ready = minor = major = blocked = 0

    for record, score in evaluations:
        s = score.overall_score
        score_sum += s
        if score.is_ready:
            ready += 1
        elif s >= 0.6:
            minor += 1
        if 0.3 <= s < 0.6:
            major += 1
        if s < 0.3:
            blocked += 1
        issue_counts.update(score.blocking_issues)

        brand = by_brand[record.brand or "Unknown"]
        brand.total += 1
        brand.ready += int(score.is_ready)
        brand.avg_score += s

    for brand in by_brand.values():
        brand.avg_score = round(brand.avg_score / brand.total, 4)

    top = [
        BlockingIssueCount(issue=issue, count=count, severity=_issue_severity(issue))
        for issue, count in issue_counts.most_common(10)
    ]
    return ReadinessReport(
        total_items=total,
        ready_for_publication=ready,
        needs_minor_fixes=minor,
        needs_major_work=major,
        blocked_items=blocked,
        average_readiness_score=round(score_sum / total, 4) if total else 0.0,
        top_blocking_issues=top,
        readiness_by_brand=dict(by_brand),
    )
